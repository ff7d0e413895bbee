"""
Operator Session Management

Owns the authentication state of the contact admin: who is signed in,
whether that identity is the authorized operator, and how the state reacts
to asynchronous session notifications from the remote data service.
"""
import hmac
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, List, Optional

from core.exceptions import AccessDenied, ContactAdminError, NotAuthenticated
from core.remote import AuthEvent, AuthEventType, RemoteDataService, Session, call_remote

logger = logging.getLogger(__name__)


class AuthStatus:
    UNKNOWN = 'unknown'
    UNAUTHENTICATED = 'unauthenticated'
    AUTHENTICATED = 'authenticated'
    AUTHENTICATED_NOT_AUTHORIZED = 'authenticated_not_authorized'

    CHOICES = [
        (UNKNOWN, 'Unknown'),
        (UNAUTHENTICATED, 'Unauthenticated'),
        (AUTHENTICATED, 'Authenticated'),
        (AUTHENTICATED_NOT_AUTHORIZED, 'Authenticated, not authorized'),
    ]


@dataclass(frozen=True)
class AuthState:
    """
    One value of the authentication state machine.

    session is set only for AUTHENTICATED and AUTHENTICATED_NOT_AUTHORIZED.
    error carries the failure that produced an UNAUTHENTICATED state, if any.
    """
    status: str
    session: Optional[Session] = None
    error: Optional[ContactAdminError] = None

    @classmethod
    def unknown(cls):
        return cls(AuthStatus.UNKNOWN)

    @classmethod
    def unauthenticated(cls, error: ContactAdminError = None):
        return cls(AuthStatus.UNAUTHENTICATED, error=error)

    @classmethod
    def authenticated(cls, session: Session):
        return cls(AuthStatus.AUTHENTICATED, session=session)

    @classmethod
    def not_authorized(cls, session: Session):
        return cls(AuthStatus.AUTHENTICATED_NOT_AUTHORIZED, session=session)

    @property
    def is_authenticated(self) -> bool:
        return self.status == AuthStatus.AUTHENTICATED and self.session is not None

    @property
    def email(self) -> Optional[str]:
        return self.session.identity.email if self.session else None


AuthStateListener = Callable[[AuthState], None]


class SessionManager:
    """
    Authentication state machine for the single operator.

    Usage:
        manager = SessionManager(remote=SupabaseService(), policy=get_access_policy())
        await manager.initialize()
        session = await manager.sign_in('operator@example.com', 'secret')
        unsubscribe = manager.subscribe(lambda state: print(state.status))

    Every authorization failure signs the remote session out before the
    denial is reported, so a rejected session never stays live.
    """

    def __init__(self, remote: RemoteDataService, policy, operation_timeout: float = None):
        self.remote = remote
        self.policy = policy
        self.operation_timeout = operation_timeout
        self._state = AuthState.unknown()
        self._listeners: List[AuthStateListener] = []
        self._unsubscribe_remote = None
        self._driving = 0
        self._superseded_token = None

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    def get_current_session(self) -> Optional[Session]:
        """Last resolved, authorized session. Makes no remote call."""
        if self._state.is_authenticated:
            return self._state.session
        return None

    def require_session(self) -> Session:
        """
        Guard for data operations.

        Evaluated on every call; never cached, since an auth event may have
        revoked the session since the previous call.

        Raises:
            NotAuthenticated: No active, authorized session
        """
        session = self.get_current_session()
        if session is None:
            raise NotAuthenticated()
        return session

    def authenticate_token(self, token: str, allow_expired: bool = False,
                           allow_superseded: bool = False) -> Session:
        """
        Match a client-presented access token against the active session.

        allow_superseded also accepts the token the last refresh replaced,
        so a client can trade it in for the new one.

        Raises:
            NotAuthenticated: No active session, or the token does not
                belong to it (code token_expired when it has expired)
        """
        session = self.require_session()
        if token and hmac.compare_digest(token, session.access_token):
            if not allow_expired and session.is_expired():
                raise NotAuthenticated('Access token expired', code='token_expired')
            return session
        if allow_superseded and token and self._superseded_token \
                and hmac.compare_digest(token, self._superseded_token):
            return session
        raise NotAuthenticated('Invalid access token')

    def subscribe(self, listener: AuthStateListener) -> Callable[[], None]:
        """Call listener with every new AuthState; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, new_state: AuthState):
        if new_state == self._state:
            return
        logger.info(f"Auth state {self._state.status} -> {new_state.status}")
        if not new_state.is_authenticated:
            self._superseded_token = None
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.exception("Auth state listener failed")

    @contextmanager
    def _driving_remote(self):
        # Remote notifications caused by our own calls are resolved by the
        # calling operation, not by on_auth_event.
        self._driving += 1
        try:
            yield
        finally:
            self._driving -= 1

    def _listen(self):
        if self._unsubscribe_remote is None:
            self._unsubscribe_remote = self.remote.subscribe_to_auth_events(self.on_auth_event)

    def close(self):
        """Stop listening to remote auth notifications."""
        if self._unsubscribe_remote is not None:
            self._unsubscribe_remote()
            self._unsubscribe_remote = None

    def _timeout(self, timeout):
        return self.operation_timeout if timeout is None else timeout

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    async def _authorize(self, session: Session, timeout: float = None, refreshed: bool = False) -> Session:
        if self.policy.is_authorized(session.identity):
            previous = self.get_current_session()
            if refreshed and previous is not None and previous.identity == session.identity \
                    and previous.access_token != session.access_token:
                self._superseded_token = previous.access_token
            self._transition(AuthState.authenticated(session))
            return session

        logger.warning(f"Access denied for {session.identity.email}, forcing sign-out")
        self._transition(AuthState.not_authorized(session))
        error = AccessDenied()
        await self._force_sign_out(error, timeout)
        raise error

    async def _force_sign_out(self, error: ContactAdminError, timeout: float = None):
        try:
            await call_remote(self.remote.sign_out(), self._timeout(timeout))
        except ContactAdminError as e:
            logger.error(f"Forced sign-out failed: {e.message}")
        finally:
            self._transition(AuthState.unauthenticated(error=error))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def initialize(self, timeout: float = None) -> AuthState:
        """
        Resolve the state on process start from any persisted remote session.

        Raises:
            AccessDenied: A persisted session belongs to someone other than
                the operator (it has been signed out)
            TransportError: The remote service could not be reached
        """
        self._listen()
        with self._driving_remote():
            try:
                session = await call_remote(self.remote.get_current_session(), self._timeout(timeout))
            except ContactAdminError as e:
                logger.error(f"Session restore failed: {e.message}")
                self._transition(AuthState.unauthenticated(error=e))
                raise

            if session is None:
                logger.info("No persisted session found")
                self._transition(AuthState.unauthenticated())
                return self._state

            await self._authorize(session, timeout)
        return self._state

    async def sign_in(self, email: str, password: str, timeout: float = None) -> Session:
        """
        Sign the operator in.

        Returns:
            The authorized session

        Raises:
            InvalidCredentials, EmailNotConfirmed, RateLimited: Rejected by
                the remote auth service
            AccessDenied: Valid credentials for a non-operator identity
            TransportError: The remote service could not be reached
        """
        self._listen()
        email = (email or '').strip()
        logger.info(f"Sign-in attempt for {email}")

        with self._driving_remote():
            try:
                session = await call_remote(
                    self.remote.sign_in_with_credentials(email, password),
                    self._timeout(timeout),
                )
            except ContactAdminError as e:
                logger.warning(f"Sign-in failed for {email}: {e.code}")
                self._transition(AuthState.unauthenticated(error=e))
                raise

            await self._authorize(session, timeout)

        logger.info(f"Operator {email} signed in")
        return session

    async def refresh(self, timeout: float = None) -> Session:
        """
        Re-read the remote session, refreshing expired credentials.

        Returns:
            The authorized session, possibly with a new access token

        Raises:
            NotAuthenticated: The remote session is gone (refresh rejected)
            AccessDenied: The session no longer belongs to the operator
            TransportError: The remote service could not be reached
        """
        self._listen()
        with self._driving_remote():
            session = await call_remote(self.remote.get_current_session(), self._timeout(timeout))
            if session is None:
                logger.info("Remote session gone on refresh")
                error = NotAuthenticated('Session expired, sign in again')
                self._transition(AuthState.unauthenticated(error=error))
                raise error
            return await self._authorize(session, timeout, refreshed=True)

    async def sign_out(self, timeout: float = None):
        """
        Sign out remotely, then clear local state unconditionally.

        A remote failure is re-raised after the local transition.
        """
        with self._driving_remote():
            try:
                await call_remote(self.remote.sign_out(), self._timeout(timeout))
            except ContactAdminError as e:
                logger.error(f"Remote sign-out failed: {e.message}")
                raise
            finally:
                self._transition(AuthState.unauthenticated())
        logger.info("Operator signed out")

    async def on_auth_event(self, event: AuthEvent):
        """Handle an asynchronous session notification from the remote service."""
        if self._driving:
            logger.debug(f"Auth event {event.type} handled by in-flight operation")
            return

        logger.info(f"Auth event: {event.type}")

        if event.type == AuthEventType.SIGNED_OUT:
            self._transition(AuthState.unauthenticated())
            return

        if event.type not in (AuthEventType.SIGNED_IN, AuthEventType.TOKEN_REFRESHED):
            logger.warning(f"Ignoring unknown auth event {event.type}")
            return

        if event.session is None:
            self._transition(AuthState.unauthenticated())
            return

        with self._driving_remote():
            try:
                await self._authorize(
                    event.session,
                    refreshed=event.type == AuthEventType.TOKEN_REFRESHED,
                )
            except AccessDenied:
                logger.warning(f"{event.type} for non-operator {event.session.identity.email} rejected")
