"""
Contact Submission Statistics

Dashboard counts derived from the full submission set, rescanned on every
call.
"""
import logging
from collections import Counter
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from core.remote import QueryDescriptor, call_remote

from .domain import StatisticsSnapshot, Submission, SubmissionStatus

logger = logging.getLogger(__name__)

DAILY_WINDOW_DAYS = 7


class StatisticsAggregator:
    """
    Usage:
        aggregator = StatisticsAggregator(remote, session_manager)
        snapshot = await aggregator.compute()
    """

    def __init__(self, remote, session_manager, collection: str = None, batch_size: int = None):
        self.remote = remote
        self.session_manager = session_manager
        self.collection = collection or settings.CONTACT_SUBMISSIONS_TABLE
        self.batch_size = batch_size or settings.CONTACT_ADMIN_STATS_BATCH_SIZE

    async def _fetch_all(self, timeout: float = None):
        """(status, created_at) for every submission, read in id-ordered batches."""
        rows = []
        start = 0
        while True:
            query = QueryDescriptor(
                columns=('id', 'status', 'created_at'),
                order_by=(('id', False),),
                range_start=start,
                range_end=start + self.batch_size - 1,
            )
            result = await call_remote(self.remote.query_collection(self.collection, query), timeout)
            rows.extend(result.rows)
            if len(result.rows) < self.batch_size:
                return rows
            start += self.batch_size

    async def compute(self, now=None, timeout: float = None) -> StatisticsSnapshot:
        self.session_manager.require_session()
        now = now or timezone.now()

        rows = await self._fetch_all(timeout)
        statuses = Counter()
        last_24_hours = 0
        last_7_days = 0
        per_day = Counter()
        day_cutoff = now - timedelta(hours=24)
        week_cutoff = now - timedelta(days=7)

        for row in rows:
            submission = Submission.from_row({'message': '', **row})
            statuses[submission.status] += 1
            if submission.created_at > day_cutoff:
                last_24_hours += 1
            if submission.created_at > week_cutoff:
                last_7_days += 1
            per_day[timezone.localtime(submission.created_at).date()] += 1

        today = timezone.localtime(now).date()
        days = [today - timedelta(days=offset) for offset in range(DAILY_WINDOW_DAYS - 1, -1, -1)]

        snapshot = StatisticsSnapshot(
            total=len(rows),
            unread=statuses[SubmissionStatus.UNREAD],
            replied=statuses[SubmissionStatus.REPLIED],
            last_24_hours=last_24_hours,
            last_7_days=last_7_days,
            daily_counts=[(day, per_day[day]) for day in days],
        )
        logger.debug(f"Contact statistics computed over {snapshot.total} submissions")
        return snapshot
