"""
Contact Admin Permissions

The admin API has no per-user accounts of its own: access follows the
operator session held by the SessionManager, presented by the client as a
bearer token (see accounts.authentication).
"""
from rest_framework import permissions

from core.exceptions import NotAuthenticated


class IsOperatorSession(permissions.BasePermission):
    """
    Allow requests only from a client holding the active operator session.

    Checked on every request; an auth event may have revoked the session
    since the previous one.
    """

    def has_permission(self, request, view):
        from accounts.services import get_session_manager

        # a missing token is a 401 not_authenticated, not a generic 403
        if request.auth is None:
            raise NotAuthenticated()
        get_session_manager().require_session()
        return True
