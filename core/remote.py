"""
Remote Data Service Contract

The hosted backend that issues authentication sessions and stores contact
submissions. Everything in here is transport-agnostic; see
core.supabase_service for the Supabase implementation.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from django.conf import settings
from django.utils import timezone

from core.exceptions import TransportError


@dataclass(frozen=True)
class Identity:
    """Authenticated user as reported by the remote auth service."""
    email: str
    id: Optional[str] = None


@dataclass(frozen=True)
class Session:
    """
    Proof of authentication issued by the remote service.

    Token fields are opaque credential material; only the remote service
    interprets them.
    """
    identity: Identity
    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or timezone.now()) >= self.expires_at


class AuthEventType:
    SIGNED_IN = 'SIGNED_IN'
    SIGNED_OUT = 'SIGNED_OUT'
    TOKEN_REFRESHED = 'TOKEN_REFRESHED'

    CHOICES = [SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED]


@dataclass(frozen=True)
class AuthEvent:
    type: str
    session: Optional[Session] = None


AuthEventHandler = Callable[[AuthEvent], Awaitable[None]]


@dataclass(frozen=True)
class QueryDescriptor:
    """
    Abstract query over one collection.

    filters holds (column, operator, value) triples with operator one of
    'eq', 'gte' or 'lte'. search is matched case-insensitively as a
    substring against any of search_columns. range_start and range_end are
    inclusive, zero-based row offsets.
    """
    columns: Tuple[str, ...] = ('*',)
    filters: Tuple[Tuple[str, str, Any], ...] = ()
    search: Optional[str] = None
    search_columns: Tuple[str, ...] = ()
    order_by: Tuple[Tuple[str, bool], ...] = ()
    range_start: Optional[int] = None
    range_end: Optional[int] = None
    count_exact: bool = False


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]]
    matched_count: Optional[int] = None


class RemoteDataService(ABC):
    """
    Asynchronous, fallible remote backend.

    Implementations raise core.exceptions errors: InvalidCredentials,
    EmailNotConfirmed or RateLimited for rejected sign-ins and
    TransportError for anything unreachable or malformed.
    """

    @abstractmethod
    async def sign_in_with_credentials(self, email: str, password: str) -> Session:
        ...

    @abstractmethod
    async def get_current_session(self) -> Optional[Session]:
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        ...

    @abstractmethod
    def subscribe_to_auth_events(self, handler: AuthEventHandler) -> Callable[[], None]:
        """Register handler; returns a callable that removes it."""

    @abstractmethod
    async def query_collection(self, name: str, query: QueryDescriptor) -> QueryResult:
        ...

    @abstractmethod
    async def update_row(self, collection: str, row_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply patch; returns the updated row, or None when no row matched."""

    @abstractmethod
    async def delete_row(self, collection: str, row_id: str) -> bool:
        """Delete the row; returns False when no row matched."""


async def call_remote(awaitable, timeout: float = None):
    """
    Await a remote call with an upper bound on its duration.

    timeout=None uses CONTACT_ADMIN_OPERATION_TIMEOUT; zero, a negative
    value or an unset setting waits indefinitely.

    Raises:
        TransportError: The call did not complete in time
    """
    if timeout is None:
        timeout = settings.CONTACT_ADMIN_OPERATION_TIMEOUT
    if not timeout or timeout <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        raise TransportError(
            f"Remote data service did not respond within {timeout}s",
            details={'timeout': timeout},
        )
