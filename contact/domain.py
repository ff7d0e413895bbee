"""
Contact Submission Types

Value types for contact form submissions held in the remote store, and the
filter/page parameters used to query them.
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from datetime import timezone as dt_timezone
from typing import Any, Dict, List, Optional, Tuple

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.exceptions import TransportError, ValidationError


class SubmissionStatus:
    UNREAD = 'unread'
    READ = 'read'
    REPLIED = 'replied'
    ARCHIVED = 'archived'

    ALL = 'all'

    CHOICES = [
        (UNREAD, 'Unread'),
        (READ, 'Read'),
        (REPLIED, 'Replied'),
        (ARCHIVED, 'Archived'),
    ]

    VALUES = frozenset(value for value, _ in CHOICES)

    @classmethod
    def validate(cls, value: str) -> str:
        if value not in cls.VALUES:
            raise ValidationError(
                f"Invalid status '{value}'",
                details={'fields': {'status': [f"Must be one of: {', '.join(sorted(cls.VALUES))}"]}},
            )
        return value


def _parse_timestamp(value: Any, column: str) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = parse_datetime(str(value))
    if parsed is None:
        raise TransportError(f"Malformed {column} in submission row", details={column: value})
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


@dataclass(frozen=True)
class Submission:
    """One contact form record owned by the remote store."""
    id: str
    name: str
    email: str
    message: str
    status: str
    created_at: datetime
    subject: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Submission':
        try:
            status = row['status']
            submission = cls(
                id=str(row['id']),
                name=row.get('name') or '',
                email=row.get('email') or '',
                subject=row.get('subject'),
                message=row.get('message') or '',
                status=status,
                created_at=_parse_timestamp(row['created_at'], 'created_at'),
                updated_at=_parse_timestamp(row.get('updated_at'), 'updated_at'),
            )
        except KeyError as e:
            raise TransportError(f"Submission row missing column {e}", details={'row': row})

        if status not in SubmissionStatus.VALUES:
            raise TransportError(f"Unknown submission status '{status}'", details={'row': row})
        return submission

    @property
    def is_unread(self) -> bool:
        return self.status == SubmissionStatus.UNREAD


@dataclass(frozen=True)
class FilterSpec:
    """
    Criteria narrowing a submission listing.

    Immutable; a new FilterSpec replaces the previous one entirely.
    date_range bounds are inclusive and either may be None.
    """
    status: Optional[str] = None
    search: Optional[str] = None
    date_range: Optional[Tuple[Optional[datetime], Optional[datetime]]] = None

    def __post_init__(self):
        if self.status not in (None, '', SubmissionStatus.ALL):
            SubmissionStatus.validate(self.status)
        if self.date_range:
            start, end = self.date_range
            if start and end and start > end:
                raise ValidationError(
                    'Start date must not be after end date',
                    details={'fields': {'start_date': ['Must not be after end_date']}},
                )

    @property
    def status_filter(self) -> Optional[str]:
        """Status to match exactly, or None for every status."""
        if self.status in (None, '', SubmissionStatus.ALL):
            return None
        return self.status

    @property
    def search_term(self) -> Optional[str]:
        term = (self.search or '').strip()
        return term or None


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    page_size: int = 10

    def __post_init__(self):
        if not isinstance(self.page, int) or self.page < 1:
            raise ValidationError('page must be an integer >= 1',
                                  details={'fields': {'page': ['Must be >= 1']}})
        if not isinstance(self.page_size, int) or self.page_size < 1:
            raise ValidationError('page_size must be a positive integer',
                                  details={'fields': {'page_size': ['Must be >= 1']}})

    @property
    def range_start(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def range_end(self) -> int:
        """Inclusive offset of the last row in the window."""
        return self.range_start + self.page_size - 1


@dataclass(frozen=True)
class PageResult:
    items: List[Submission]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


@dataclass(frozen=True)
class StatisticsSnapshot:
    """Derived counts; recomputed from the full submission set on every request."""
    total: int = 0
    unread: int = 0
    replied: int = 0
    last_24_hours: int = 0
    last_7_days: int = 0
    daily_counts: List[Tuple[date, int]] = field(default_factory=list)
