"""
Contact Admin Errors

Typed failures raised by the session layer, the submission repository and
the remote data service, plus the DRF exception handler that renders them.
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ContactAdminError(Exception):
    """Base exception for contact admin errors"""

    default_code = 'CONTACT_ADMIN_ERROR'
    default_message = 'Contact admin error'
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = False

    def __init__(self, message: str = None, code: str = None, details: dict = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.code = code or self.default_code
        self.details = details or {}


class NotAuthenticated(ContactAdminError):
    """No valid session for a repository call."""
    default_code = 'not_authenticated'
    default_message = 'Not authenticated'
    http_status = status.HTTP_401_UNAUTHORIZED


class AccessDenied(ContactAdminError):
    """Valid session, but not the operator identity."""
    default_code = 'access_denied'
    default_message = 'Access denied. Admin privileges required.'
    http_status = status.HTTP_403_FORBIDDEN


class InvalidCredentials(ContactAdminError):
    """Sign-in rejected by the remote service."""
    default_code = 'invalid_credentials'
    default_message = 'Invalid email or password'
    http_status = status.HTTP_401_UNAUTHORIZED


class EmailNotConfirmed(ContactAdminError):
    default_code = 'email_not_confirmed'
    default_message = 'Please verify your email first'
    http_status = status.HTTP_403_FORBIDDEN


class RateLimited(ContactAdminError):
    default_code = 'rate_limited'
    default_message = 'Too many attempts. Please try again later.'
    http_status = status.HTTP_429_TOO_MANY_REQUESTS
    retryable = True


class NotFound(ContactAdminError):
    """Status-update, detail or delete target is absent."""
    default_code = 'not_found'
    default_message = 'Contact submission not found'
    http_status = status.HTTP_404_NOT_FOUND


class TransportError(ContactAdminError):
    """Remote service unreachable, timed out or returned a malformed response."""
    default_code = 'transport_error'
    default_message = 'Remote data service unavailable'
    http_status = status.HTTP_502_BAD_GATEWAY
    retryable = True


class ValidationError(ContactAdminError):
    default_code = 'validation_error'
    default_message = 'Validation failed'
    http_status = status.HTTP_400_BAD_REQUEST


def contact_admin_exception_handler(exc, context):
    """
    Render ContactAdminError subclasses as JSON error responses.

    Everything else falls through to the default DRF handler.
    """
    if not isinstance(exc, ContactAdminError):
        return exception_handler(exc, context)

    if exc.http_status >= 500:
        logger.error(f"{exc.code}: {exc.message}", extra={'details': exc.details})
    else:
        logger.info(f"{exc.code}: {exc.message}")

    body = {
        'success': False,
        'error': exc.message,
        'code': exc.code,
    }
    if exc.retryable:
        body['retryable'] = True
    if exc.details.get('fields'):
        body['fields'] = exc.details['fields']

    return Response(body, status=exc.http_status)
