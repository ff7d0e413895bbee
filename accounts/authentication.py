"""
Operator Token Authentication

Admin requests carry the operator session's access token:

    Authorization: Bearer <access_token>

The token is matched against the session held by the SessionManager, so
a sign-out, a forced sign-out or a remote SIGNED_OUT revokes it at once.
"""
from rest_framework import authentication

from core.exceptions import NotAuthenticated

from .services import get_session_manager


class OperatorUser:
    """Request user for an authenticated operator session."""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, identity):
        self.identity = identity
        self.email = identity.email
        # throttles key authenticated requests on user.pk
        self.pk = identity.id or identity.email

    def __str__(self):
        return self.email


class OperatorTokenAuthentication(authentication.BaseAuthentication):
    """
    Bearer token authentication against the active operator session.

    Requests without an Authorization header are left unauthenticated;
    a header with a token that does not match is rejected.
    """

    keyword = 'Bearer'
    allow_expired = False
    allow_superseded = False
    strict = True

    def authenticate(self, request):
        auth = authentication.get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None

        try:
            if len(auth) != 2:
                raise NotAuthenticated('Invalid Authorization header')
            try:
                token = auth[1].decode()
            except UnicodeError:
                raise NotAuthenticated('Invalid Authorization header')

            session = get_session_manager().authenticate_token(
                token,
                allow_expired=self.allow_expired,
                allow_superseded=self.allow_superseded,
            )
        except NotAuthenticated:
            if self.strict:
                raise
            return None

        return (OperatorUser(session.identity), session)

    def authenticate_header(self, request):
        return self.keyword


class SessionRenewalAuthentication(OperatorTokenAuthentication):
    """For refresh and sign-out: expired or just-replaced tokens still count."""

    allow_expired = True
    allow_superseded = True


class OptionalOperatorTokenAuthentication(OperatorTokenAuthentication):
    """Identify the operator when possible; never reject the request."""

    strict = False
