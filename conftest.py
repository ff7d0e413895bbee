"""
Shared fixtures for the contact admin test suite.
"""
from datetime import timedelta

import pytest
from asgiref.sync import async_to_sync
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.services import get_remote_data_service, get_session_manager, reset_services

OPERATOR_EMAIL = 'operator@example.com'
OPERATOR_PASSWORD = 'correct-horse-battery'
INTRUDER_EMAIL = 'intruder@example.com'
INTRUDER_PASSWORD = 'also-a-valid-password'


@pytest.fixture(autouse=True)
def fresh_services():
    cache.clear()
    reset_services()
    yield
    reset_services()


@pytest.fixture
def remote():
    service = get_remote_data_service()
    service.add_user(OPERATOR_EMAIL, OPERATOR_PASSWORD)
    service.add_user(INTRUDER_EMAIL, INTRUDER_PASSWORD)
    return service


@pytest.fixture
def session_manager(remote):
    return get_session_manager()


@pytest.fixture
def signed_in(session_manager):
    async_to_sync(session_manager.sign_in)(OPERATOR_EMAIL, OPERATOR_PASSWORD)
    return session_manager


@pytest.fixture
def repository(remote, session_manager):
    from contact.services import get_submission_repository
    return get_submission_repository()


@pytest.fixture
def aggregator(remote, session_manager):
    from contact.services import get_statistics_aggregator
    return get_statistics_aggregator()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def operator_client(signed_in):
    """API client presenting the signed-in operator's access token."""
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {signed_in.get_current_session().access_token}')
    return client


@pytest.fixture
def make_submissions(remote):
    """
    Add `count` submissions spaced one minute apart, ending just before now.

    Returns the rows in creation order (oldest first).
    """
    def factory(count, status='unread', start=None, **fields):
        start = start or timezone.now() - timedelta(minutes=count)
        return [
            remote.add_submission(
                status=status,
                created_at=start + timedelta(minutes=index),
                name=fields.get('name', f'Sender {status} {index}'),
                **{key: value for key, value in fields.items() if key != 'name'}
            )
            for index in range(count)
        ]

    return factory
