"""
Tests for operator sessions and access policy
"""
import pytest
from asgiref.sync import async_to_sync
from rest_framework import status

from accounts.policies import AllowlistPolicy, BasePolicy, OperatorPolicy, get_access_policy
from accounts.session import AuthStatus
from conftest import INTRUDER_EMAIL, INTRUDER_PASSWORD, OPERATOR_EMAIL, OPERATOR_PASSWORD
from core.exceptions import (
    AccessDenied,
    EmailNotConfirmed,
    InvalidCredentials,
    NotAuthenticated,
    RateLimited,
    TransportError,
)
from core.remote import AuthEventType, Identity


class TestOperatorPolicy:
    """Test the single-operator allowlist."""

    def test_operator_is_authorized(self):
        policy = OperatorPolicy('operator@example.com')
        assert policy.is_authorized(Identity(email='operator@example.com')) is True

    def test_other_identity_is_not_authorized(self):
        policy = OperatorPolicy('operator@example.com')
        assert policy.is_authorized(Identity(email='someone@example.com')) is False

    def test_comparison_is_case_sensitive(self):
        policy = OperatorPolicy('operator@example.com')
        assert policy.is_authorized(Identity(email='Operator@Example.com')) is False

    def test_unset_operator_authorizes_nobody(self):
        policy = OperatorPolicy('')
        assert policy.is_authorized(Identity(email='')) is False
        assert policy.is_authorized(None) is False

    def test_allowlist_policy(self):
        policy = AllowlistPolicy(['a@example.com', 'b@example.com'])
        assert policy(Identity(email='b@example.com')) is True
        assert policy(Identity(email='c@example.com')) is False

    def test_configured_policy(self):
        policy = get_access_policy()
        assert isinstance(policy, OperatorPolicy)
        assert policy.operator_email == OPERATOR_EMAIL

    def test_policy_is_swappable_from_settings(self, settings):
        settings.CONTACT_ADMIN_ACCESS_POLICY = 'accounts.policies.AllowlistPolicy'
        settings.CONTACT_ADMIN_ALLOWED_EMAILS = ['second@example.com']

        policy = get_access_policy()

        assert isinstance(policy, AllowlistPolicy)
        assert policy.is_authorized(Identity(email='second@example.com'))
        assert policy.is_authorized(Identity(email=OPERATOR_EMAIL))

    def test_base_policy_is_abstract(self):
        with pytest.raises(TypeError):
            BasePolicy()

        class EveryonePolicy(BasePolicy):
            def is_authorized(self, identity):
                return True

        assert EveryonePolicy()(Identity(email='anyone@example.com')) is True


class TestInitialize:
    """Test restoring the auth state on process start."""

    def test_initial_state_is_unknown(self, session_manager):
        assert session_manager.state.status == AuthStatus.UNKNOWN
        assert session_manager.get_current_session() is None

    def test_no_persisted_session(self, session_manager):
        state = async_to_sync(session_manager.initialize)()
        assert state.status == AuthStatus.UNAUTHENTICATED

    def test_persisted_operator_session(self, remote, session_manager):
        remote.session = remote.issue_session(OPERATOR_EMAIL)

        state = async_to_sync(session_manager.initialize)()

        assert state.status == AuthStatus.AUTHENTICATED
        assert session_manager.get_current_session() == remote.session

    def test_persisted_non_operator_session_is_signed_out(self, remote, session_manager):
        remote.session = remote.issue_session(INTRUDER_EMAIL)

        with pytest.raises(AccessDenied):
            async_to_sync(session_manager.initialize)()

        assert len(remote.calls_to('sign_out')) == 1
        assert remote.session is None
        assert session_manager.state.status == AuthStatus.UNAUTHENTICATED

    def test_unreachable_remote(self, remote, session_manager):
        remote.unreachable = True

        with pytest.raises(TransportError):
            async_to_sync(session_manager.initialize)()

        assert session_manager.state.status == AuthStatus.UNAUTHENTICATED
        assert session_manager.state.error.code == 'transport_error'


class TestSignIn:
    """Test operator sign-in."""

    def test_operator_sign_in(self, remote, session_manager):
        session = async_to_sync(session_manager.sign_in)(OPERATOR_EMAIL, OPERATOR_PASSWORD)

        assert session.identity.email == OPERATOR_EMAIL
        assert session_manager.state.status == AuthStatus.AUTHENTICATED
        assert session_manager.get_current_session() == session
        assert remote.calls_to('sign_out') == []

    def test_email_is_trimmed(self, session_manager):
        session = async_to_sync(session_manager.sign_in)(f'  {OPERATOR_EMAIL} ', OPERATOR_PASSWORD)
        assert session.identity.email == OPERATOR_EMAIL

    def test_valid_non_operator_is_denied_and_signed_out(self, remote, session_manager):
        with pytest.raises(AccessDenied):
            async_to_sync(session_manager.sign_in)(INTRUDER_EMAIL, INTRUDER_PASSWORD)

        assert len(remote.calls_to('sign_out')) == 1
        assert remote.session is None
        assert session_manager.state.status == AuthStatus.UNAUTHENTICATED
        assert session_manager.state.error.code == 'access_denied'
        assert session_manager.get_current_session() is None

    def test_denied_sign_in_passes_through_not_authorized(self, session_manager):
        seen = []
        session_manager.subscribe(lambda state: seen.append(state.status))

        with pytest.raises(AccessDenied):
            async_to_sync(session_manager.sign_in)(INTRUDER_EMAIL, INTRUDER_PASSWORD)

        assert seen == [AuthStatus.AUTHENTICATED_NOT_AUTHORIZED, AuthStatus.UNAUTHENTICATED]

    def test_wrong_password(self, session_manager):
        with pytest.raises(InvalidCredentials):
            async_to_sync(session_manager.sign_in)(OPERATOR_EMAIL, 'wrong')

        assert session_manager.state.status == AuthStatus.UNAUTHENTICATED
        assert session_manager.state.error.code == 'invalid_credentials'

    def test_unconfirmed_email(self, remote, session_manager):
        remote.add_user('new@example.com', 'pw', confirmed=False)

        with pytest.raises(EmailNotConfirmed):
            async_to_sync(session_manager.sign_in)('new@example.com', 'pw')

    def test_rate_limited(self, remote, session_manager):
        remote.rate_limited = True

        with pytest.raises(RateLimited):
            async_to_sync(session_manager.sign_in)(OPERATOR_EMAIL, OPERATOR_PASSWORD)

        assert session_manager.state.status == AuthStatus.UNAUTHENTICATED

    def test_hung_remote_times_out(self, remote, session_manager):
        remote.hang = True

        with pytest.raises(TransportError):
            async_to_sync(session_manager.sign_in)(OPERATOR_EMAIL, OPERATOR_PASSWORD, timeout=0.05)

        assert session_manager.state.status == AuthStatus.UNAUTHENTICATED


class TestSignOut:
    """Test sign-out."""

    def test_sign_out(self, remote, signed_in):
        async_to_sync(signed_in.sign_out)()

        assert remote.session is None
        assert signed_in.state.status == AuthStatus.UNAUTHENTICATED
        assert signed_in.get_current_session() is None

    def test_local_state_cleared_when_remote_fails(self, remote, signed_in):
        remote.unreachable = True

        with pytest.raises(TransportError):
            async_to_sync(signed_in.sign_out)()

        assert signed_in.state.status == AuthStatus.UNAUTHENTICATED
        with pytest.raises(NotAuthenticated):
            signed_in.require_session()


class TestAuthEvents:
    """Test reactions to asynchronous session notifications."""

    def test_signed_in_event_for_non_operator_forces_sign_out(self, remote, session_manager):
        async_to_sync(session_manager.initialize)()
        remote.session = remote.issue_session(INTRUDER_EMAIL)

        async_to_sync(remote.emit)(AuthEventType.SIGNED_IN, remote.session)

        assert len(remote.calls_to('sign_out')) == 1
        assert remote.session is None
        assert session_manager.state.status == AuthStatus.UNAUTHENTICATED
        assert session_manager.state.error.code == 'access_denied'

    def test_signed_in_event_for_operator(self, remote, session_manager):
        async_to_sync(session_manager.initialize)()
        session = remote.issue_session(OPERATOR_EMAIL)

        async_to_sync(remote.emit)(AuthEventType.SIGNED_IN, session)

        assert session_manager.state.status == AuthStatus.AUTHENTICATED
        assert session_manager.get_current_session() == session

    def test_signed_out_event(self, remote, signed_in):
        async_to_sync(remote.emit)(AuthEventType.SIGNED_OUT)

        assert signed_in.state.status == AuthStatus.UNAUTHENTICATED
        with pytest.raises(NotAuthenticated):
            signed_in.require_session()

    def test_token_refresh_adopts_new_credentials(self, remote, signed_in):
        original = signed_in.get_current_session()
        refreshed = remote.issue_session(OPERATOR_EMAIL)

        async_to_sync(remote.emit)(AuthEventType.TOKEN_REFRESHED, refreshed)

        assert signed_in.state.status == AuthStatus.AUTHENTICATED
        assert signed_in.get_current_session() == refreshed
        assert signed_in.get_current_session().access_token != original.access_token
        assert remote.calls_to('sign_out') == []

    def test_token_refresh_for_non_operator_forces_sign_out(self, remote, signed_in):
        async_to_sync(remote.emit)(AuthEventType.TOKEN_REFRESHED, remote.issue_session(INTRUDER_EMAIL))

        assert len(remote.calls_to('sign_out')) == 1
        assert signed_in.state.status == AuthStatus.UNAUTHENTICATED

    def test_signed_in_event_without_session(self, remote, signed_in):
        async_to_sync(remote.emit)(AuthEventType.SIGNED_IN, None)
        assert signed_in.state.status == AuthStatus.UNAUTHENTICATED

    def test_close_stops_listening(self, remote, signed_in):
        signed_in.close()

        async_to_sync(remote.emit)(AuthEventType.SIGNED_OUT)

        assert signed_in.state.status == AuthStatus.AUTHENTICATED

    def test_unsubscribed_listener_is_not_called(self, remote, signed_in):
        seen = []
        unsubscribe = signed_in.subscribe(seen.append)
        unsubscribe()

        async_to_sync(remote.emit)(AuthEventType.SIGNED_OUT)

        assert seen == []


class TestAccessTokens:
    """Test matching client tokens against the operator session."""

    def test_current_token(self, signed_in):
        session = signed_in.get_current_session()
        assert signed_in.authenticate_token(session.access_token) == session

    def test_other_token_is_rejected(self, signed_in):
        with pytest.raises(NotAuthenticated) as exc_info:
            signed_in.authenticate_token('access-guess')
        assert exc_info.value.code == 'not_authenticated'

    def test_no_session(self, session_manager):
        with pytest.raises(NotAuthenticated):
            session_manager.authenticate_token('access-anything')

    def test_expired_token(self, remote, session_manager):
        remote.session = remote.issue_session(OPERATOR_EMAIL, expires_in=-60)
        async_to_sync(session_manager.initialize)()

        with pytest.raises(NotAuthenticated) as exc_info:
            session_manager.authenticate_token(remote.session.access_token)
        assert exc_info.value.code == 'token_expired'

        session = session_manager.authenticate_token(remote.session.access_token, allow_expired=True)
        assert session == remote.session

    def test_replaced_token_only_accepted_for_renewal(self, remote, signed_in):
        original = signed_in.get_current_session()
        remote.session = remote.issue_session(OPERATOR_EMAIL)
        async_to_sync(remote.emit)(AuthEventType.TOKEN_REFRESHED, remote.session)

        with pytest.raises(NotAuthenticated):
            signed_in.authenticate_token(original.access_token)
        assert signed_in.authenticate_token(original.access_token, allow_superseded=True) == remote.session

    def test_replaced_token_forgotten_after_sign_out(self, remote, signed_in):
        original = signed_in.get_current_session()
        remote.session = remote.issue_session(OPERATOR_EMAIL)
        async_to_sync(remote.emit)(AuthEventType.TOKEN_REFRESHED, remote.session)
        async_to_sync(signed_in.sign_out)()
        async_to_sync(signed_in.sign_in)(OPERATOR_EMAIL, OPERATOR_PASSWORD)

        with pytest.raises(NotAuthenticated):
            signed_in.authenticate_token(original.access_token, allow_superseded=True)


class TestRefresh:
    """Test re-reading the remote session."""

    def test_refresh_adopts_remote_session(self, remote, signed_in):
        original = signed_in.get_current_session()
        remote.session = remote.issue_session(OPERATOR_EMAIL)

        session = async_to_sync(signed_in.refresh)()

        assert session == remote.session
        assert signed_in.get_current_session() == remote.session
        assert signed_in.authenticate_token(original.access_token, allow_superseded=True) == session

    def test_refresh_rejected(self, remote, signed_in):
        remote.session = None

        with pytest.raises(NotAuthenticated):
            async_to_sync(signed_in.refresh)()

        assert signed_in.state.status == AuthStatus.UNAUTHENTICATED
        assert signed_in.state.error.code == 'not_authenticated'


class TestAuthEndpoints:
    """Test the session API."""

    def test_sign_in(self, api_client, remote):
        response = api_client.post(
            '/api/auth/sign-in/',
            {'email': OPERATOR_EMAIL, 'password': OPERATOR_PASSWORD},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == AuthStatus.AUTHENTICATED
        assert response.data['authenticated'] is True
        assert response.data['email'] == OPERATOR_EMAIL
        assert response.data['access_token'] == remote.session.access_token

    def test_sign_in_non_operator(self, api_client, remote):
        response = api_client.post(
            '/api/auth/sign-in/',
            {'email': INTRUDER_EMAIL, 'password': INTRUDER_PASSWORD},
            format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['code'] == 'access_denied'

    def test_sign_in_wrong_password(self, api_client, remote):
        response = api_client.post(
            '/api/auth/sign-in/',
            {'email': OPERATOR_EMAIL, 'password': 'nope'},
            format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'invalid_credentials'
        assert response.data['success'] is False

    def test_sign_in_rate_limited(self, api_client, remote):
        remote.rate_limited = True

        response = api_client.post(
            '/api/auth/sign-in/',
            {'email': OPERATOR_EMAIL, 'password': OPERATOR_PASSWORD},
            format='json'
        )

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.data['code'] == 'rate_limited'

    def test_sign_in_missing_fields(self, api_client, remote):
        response = api_client.post('/api/auth/sign-in/', {'email': OPERATOR_EMAIL}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'password' in response.data['fields']

    def test_state_and_sign_out(self, operator_client):
        response = operator_client.get('/api/auth/state/')
        assert response.data['status'] == AuthStatus.AUTHENTICATED
        assert response.data['email'] == OPERATOR_EMAIL

        response = operator_client.post('/api/auth/sign-out/')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == AuthStatus.UNAUTHENTICATED

    def test_state_hides_session_from_other_clients(self, api_client, signed_in):
        response = api_client.get('/api/auth/state/')

        assert response.data['status'] == AuthStatus.AUTHENTICATED
        assert response.data['email'] is None
        assert response.data['expires_at'] is None

    def test_anonymous_sign_out_is_rejected(self, api_client, remote, signed_in):
        response = api_client.post('/api/auth/sign-out/')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert signed_in.state.status == AuthStatus.AUTHENTICATED
        assert remote.calls_to('sign_out') == []

    def test_sign_in_while_operator_session_active(self, api_client, remote, signed_in):
        session = signed_in.get_current_session()

        response = api_client.post(
            '/api/auth/sign-in/',
            {'email': INTRUDER_EMAIL, 'password': INTRUDER_PASSWORD},
            format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'session_active'
        assert signed_in.get_current_session() == session
        assert len(remote.calls_to('sign_in_with_credentials')) == 1
        assert remote.calls_to('sign_out') == []

    def test_operator_can_sign_in_again(self, operator_client, remote, signed_in):
        previous = signed_in.get_current_session()

        response = operator_client.post(
            '/api/auth/sign-in/',
            {'email': OPERATOR_EMAIL, 'password': OPERATOR_PASSWORD},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['access_token'] != previous.access_token
        assert response.data['access_token'] == signed_in.get_current_session().access_token

    def test_refresh(self, operator_client, remote, signed_in):
        remote.add_submission()
        remote.session = remote.issue_session(OPERATOR_EMAIL)
        async_to_sync(remote.emit)(AuthEventType.TOKEN_REFRESHED, remote.session)

        response = operator_client.get('/api/admin/contact-submissions/')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

        response = operator_client.post('/api/auth/refresh/')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['access_token'] == remote.session.access_token

        operator_client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access_token']}")
        response = operator_client.get('/api/admin/contact-submissions/')
        assert response.data['count'] == 1

    def test_refresh_expired_token(self, api_client, remote, session_manager):
        expired = remote.issue_session(OPERATOR_EMAIL, expires_in=-60)
        remote.session = expired
        async_to_sync(session_manager.initialize)()
        remote.session = remote.issue_session(OPERATOR_EMAIL)
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {expired.access_token}')

        response = api_client.post('/api/auth/refresh/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['access_token'] == remote.session.access_token

    def test_refresh_without_token(self, api_client, signed_in):
        response = api_client.post('/api/auth/refresh/')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_initialize(self, api_client, remote):
        remote.session = remote.issue_session(OPERATOR_EMAIL)

        response = api_client.post('/api/auth/initialize/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == AuthStatus.AUTHENTICATED
        assert response.data['email'] is None
        assert 'access_token' not in response.data
