"""
Session services for the contact admin.

Process-wide instances of the remote data service and the operator
SessionManager, built lazily from settings.
"""

import logging

from django.conf import settings
from django.utils.module_loading import import_string

from accounts.policies import get_access_policy
from accounts.session import SessionManager

logger = logging.getLogger(__name__)

_instances = {}


def get_remote_data_service():
    """Remote data service named by CONTACT_ADMIN_REMOTE_DATA_SERVICE."""
    if 'remote' not in _instances:
        service_class = import_string(settings.CONTACT_ADMIN_REMOTE_DATA_SERVICE)
        _instances['remote'] = service_class()
        logger.info(f"Remote data service: {service_class.__name__}")
    return _instances['remote']


def get_session_manager() -> SessionManager:
    if 'session_manager' not in _instances:
        policy = get_access_policy()
        _instances['session_manager'] = SessionManager(
            remote=get_remote_data_service(),
            policy=policy,
        )
        logger.info(f"Session manager ready with {policy!r}")
    return _instances['session_manager']


def reset_services():
    """Drop the cached instances (settings changed, or between tests)."""
    manager = _instances.pop('session_manager', None)
    if manager is not None:
        manager.close()
    _instances.clear()
