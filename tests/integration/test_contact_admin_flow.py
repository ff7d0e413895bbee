"""
End-to-end operator workflow through the admin API.

Covers sign-in, triage of the inbox, dashboard statistics and the ways a
session can end, all against the in-memory remote data service.
"""

from datetime import timedelta

import pytest
from asgiref.sync import async_to_sync
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from accounts.session import AuthStatus
from conftest import INTRUDER_EMAIL, INTRUDER_PASSWORD, OPERATOR_EMAIL, OPERATOR_PASSWORD
from core.remote import AuthEventType

LIST_URL = '/api/admin/contact-submissions/'
STATS_URL = '/api/admin/contact-stats/'


def sign_in(api_client, email=OPERATOR_EMAIL, password=OPERATOR_PASSWORD):
    """Sign in and, on success, present the returned token on later requests."""
    response = api_client.post('/api/auth/sign-in/', {'email': email, 'password': password}, format='json')
    if response.status_code == status.HTTP_200_OK:
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access_token']}")
    return response


class TestOperatorWorkflow:
    """Test a full triage session."""

    def test_triage_inbox(self, api_client, remote, make_submissions):
        """Sign in, work through unread messages, check the dashboard, sign out."""
        make_submissions(12, status='unread')
        make_submissions(3, status='replied', start=timezone.now() - timedelta(days=1))

        response = sign_in(api_client)
        assert response.data['status'] == AuthStatus.AUTHENTICATED

        # Inbox: unread first page
        response = api_client.get(LIST_URL, {'status': 'unread'})
        assert response.data['count'] == 12
        assert response.data['total_pages'] == 2
        newest = response.data['results'][0]

        # Open, reply, archive
        detail_url = f"{LIST_URL}{newest['id']}/"
        assert api_client.post(f'{detail_url}mark-read/').data['status'] == 'read'
        assert api_client.post(f'{detail_url}mark-replied/').data['status'] == 'replied'

        # Spam: delete outright
        spam = response.data['results'][1]
        assert api_client.delete(f"{LIST_URL}{spam['id']}/").status_code == status.HTTP_204_NO_CONTENT

        response = api_client.get(LIST_URL, {'status': 'unread'})
        assert response.data['count'] == 10
        assert newest['id'] not in [item['id'] for item in response.data['results']]

        response = api_client.get(STATS_URL)
        assert response.data['total'] == 14
        assert response.data['unread'] == 10
        assert response.data['replied'] == 4
        assert response.data['recent_submissions'][0]['id'] == newest['id']

        response = api_client.post('/api/auth/sign-out/')
        assert response.data['status'] == AuthStatus.UNAUTHENTICATED

        response = api_client.get(LIST_URL)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestUnauthorizedIdentity:
    """Test that a valid non-operator account never reaches submission data."""

    def test_non_operator_is_signed_out(self, api_client, remote, make_submissions):
        make_submissions(3)

        response = sign_in(api_client, INTRUDER_EMAIL, INTRUDER_PASSWORD)
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert remote.session is None
        assert len(remote.calls_to('sign_out')) == 1

        for url in (LIST_URL, STATS_URL):
            response = api_client.get(url)
            assert response.status_code == status.HTTP_401_UNAUTHORIZED

        assert remote.calls_to('query_collection') == []

    def test_non_operator_does_not_replace_operator(self, api_client, remote, make_submissions):
        """A second client with valid non-operator credentials cannot end the operator's session."""
        make_submissions(2)
        assert sign_in(api_client).status_code == status.HTTP_200_OK
        intruder = APIClient()

        response = sign_in(intruder, INTRUDER_EMAIL, INTRUDER_PASSWORD)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'session_active'

        assert intruder.post('/api/auth/sign-out/').status_code == status.HTTP_401_UNAUTHORIZED
        assert intruder.get(LIST_URL).status_code == status.HTTP_401_UNAUTHORIZED

        assert remote.calls_to('sign_out') == []
        response = api_client.get(LIST_URL)
        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2


class TestSessionEndsRemotely:
    """Test session changes that arrive as remote notifications."""

    def test_remote_sign_out_blocks_next_request(self, api_client, remote, make_submissions):
        make_submissions(2)
        sign_in(api_client)
        assert api_client.get(LIST_URL).status_code == status.HTTP_200_OK

        remote.session = None
        async_to_sync(remote.emit)(AuthEventType.SIGNED_OUT)

        response = api_client.get(LIST_URL)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'not_authenticated'

    def test_restart_restores_operator_session(self, api_client, remote, make_submissions):
        make_submissions(2)
        remote.session = remote.issue_session(OPERATOR_EMAIL)

        # The client still holds the token it was given before the restart
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {remote.session.access_token}')
        response = api_client.get(LIST_URL)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

        response = api_client.post('/api/auth/initialize/')
        assert response.data['status'] == AuthStatus.AUTHENTICATED

        response = api_client.get(LIST_URL)
        assert response.data['count'] == 2

    @pytest.mark.parametrize('event_type', [AuthEventType.SIGNED_IN, AuthEventType.TOKEN_REFRESHED])
    def test_non_operator_notification_is_rejected(self, api_client, remote, event_type):
        sign_in(api_client)
        remote.session = remote.issue_session(INTRUDER_EMAIL)

        async_to_sync(remote.emit)(event_type, remote.session)

        response = api_client.get('/api/auth/state/')
        assert response.data['status'] == AuthStatus.UNAUTHENTICATED
        assert response.data['error']['code'] == 'access_denied'
        assert remote.session is None
