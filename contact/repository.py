"""
Contact Submission Repository

Translates listing parameters into remote queries and status/delete
requests into remote mutations. Every call requires an active, authorized
operator session.
"""
import logging

from django.conf import settings
from django.utils import timezone

from core.exceptions import NotFound
from core.remote import QueryDescriptor, call_remote

from .domain import FilterSpec, PageRequest, PageResult, Submission, SubmissionStatus

logger = logging.getLogger(__name__)

SEARCH_COLUMNS = ('name', 'email', 'subject')

# Newest first; id breaks created_at ties so identical queries page identically
LIST_ORDER = (('created_at', True), ('id', True))


class SubmissionRepository:
    """
    Queries and mutations over the contact submissions collection.

    Usage:
        repository = SubmissionRepository(remote, session_manager)
        result = await repository.list(PageRequest(page=2), FilterSpec(status='unread'))
        await repository.update_status(result.items[0].id, SubmissionStatus.READ)
    """

    def __init__(self, remote, session_manager, collection: str = None):
        self.remote = remote
        self.session_manager = session_manager
        self.collection = collection or settings.CONTACT_SUBMISSIONS_TABLE

    def _guard(self):
        self.session_manager.require_session()

    @staticmethod
    def build_list_query(page: PageRequest, filter_spec: FilterSpec) -> QueryDescriptor:
        filters = []
        if filter_spec.status_filter:
            filters.append(('status', 'eq', filter_spec.status_filter))
        if filter_spec.date_range:
            start, end = filter_spec.date_range
            if start:
                filters.append(('created_at', 'gte', start))
            if end:
                filters.append(('created_at', 'lte', end))

        return QueryDescriptor(
            columns=('*',),
            filters=tuple(filters),
            search=filter_spec.search_term,
            search_columns=SEARCH_COLUMNS,
            order_by=LIST_ORDER,
            range_start=page.range_start,
            range_end=page.range_end,
            count_exact=True,
        )

    async def list(self, page: PageRequest = None, filter_spec: FilterSpec = None,
                   timeout: float = None) -> PageResult:
        """
        One page of submissions, newest first.

        total_count covers every row matching filter_spec, not just the page.
        """
        self._guard()
        page = page or PageRequest()
        filter_spec = filter_spec or FilterSpec()

        result = await call_remote(
            self.remote.query_collection(self.collection, self.build_list_query(page, filter_spec)),
            timeout,
        )
        return PageResult(
            items=[Submission.from_row(row) for row in result.rows],
            total_count=result.matched_count or 0,
            page=page.page,
            page_size=page.page_size,
        )

    async def recent(self, limit: int = 5, timeout: float = None):
        """The most recently created submissions, any status."""
        result = await self.list(PageRequest(page=1, page_size=limit), FilterSpec(), timeout)
        return result.items

    async def get(self, submission_id: str, timeout: float = None) -> Submission:
        self._guard()
        query = QueryDescriptor(filters=(('id', 'eq', submission_id),), range_start=0, range_end=0)
        result = await call_remote(self.remote.query_collection(self.collection, query), timeout)
        if not result.rows:
            raise NotFound(f"Contact submission {submission_id} not found")
        return Submission.from_row(result.rows[0])

    async def update_status(self, submission_id: str, new_status: str, timeout: float = None) -> Submission:
        """
        Move a submission to any of the four statuses.

        There is no transition table; the operator may set any status from
        any other. updated_at is stamped with the current time.
        """
        self._guard()
        SubmissionStatus.validate(new_status)

        row = await call_remote(
            self.remote.update_row(self.collection, submission_id, {
                'status': new_status,
                'updated_at': timezone.now(),
            }),
            timeout,
        )
        if row is None:
            raise NotFound(f"Contact submission {submission_id} not found")

        logger.info(f"Contact submission {submission_id} marked {new_status}")
        return Submission.from_row(row)

    async def mark_as_read(self, submission_id: str, timeout: float = None) -> Submission:
        return await self.update_status(submission_id, SubmissionStatus.READ, timeout)

    async def mark_as_replied(self, submission_id: str, timeout: float = None) -> Submission:
        return await self.update_status(submission_id, SubmissionStatus.REPLIED, timeout)

    async def archive(self, submission_id: str, timeout: float = None) -> Submission:
        return await self.update_status(submission_id, SubmissionStatus.ARCHIVED, timeout)

    async def delete(self, submission_id: str, timeout: float = None):
        """
        Permanently remove a submission.

        Raises:
            NotFound: Nothing with that id exists (including already deleted)
        """
        self._guard()
        deleted = await call_remote(self.remote.delete_row(self.collection, submission_id), timeout)
        if not deleted:
            raise NotFound(f"Contact submission {submission_id} not found")
        logger.info(f"Contact submission {submission_id} deleted")
