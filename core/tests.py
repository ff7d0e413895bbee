"""
Tests for the Supabase remote data service and error rendering
"""
import asyncio
import importlib.util
import json
from datetime import datetime, timezone as dt_timezone
from unittest import mock

import pytest
import requests
from asgiref.sync import async_to_sync
from django.conf import settings
from django.core.cache import cache
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.settings import api_settings

from accounts.authentication import OperatorTokenAuthentication
from contact.permissions import IsOperatorSession
from contact.views import (
    ContactStatsView,
    ContactSubmissionActionView,
    ContactSubmissionDetailView,
    ContactSubmissionListView,
)
from core.exceptions import (
    AccessDenied,
    EmailNotConfirmed,
    InvalidCredentials,
    NotAuthenticated,
    NotFound,
    RateLimited,
    TransportError,
    ValidationError,
    contact_admin_exception_handler,
)
from core.remote import AuthEventType, QueryDescriptor, call_remote
from core.supabase_service import (
    SupabaseService,
    build_query_params,
    parse_content_range,
    sanitize_search_term,
)

SUPABASE_URL = 'https://project.supabase.co'

SESSION_PAYLOAD = {
    'access_token': 'access-1',
    'refresh_token': 'refresh-1',
    'expires_in': 3600,
    'user': {'id': 'user-1', 'email': 'operator@example.com'},
}


def make_response(status_code=200, payload=None, headers=None):
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps({} if payload is None else payload).encode()
    response.headers.update(headers or {})
    return response


@pytest.fixture
def service():
    return SupabaseService(url=SUPABASE_URL, anon_key='anon-key', storage_key='test-auth')


@pytest.fixture
def events(service):
    received = []

    async def handler(event):
        received.append(event)

    service.subscribe_to_auth_events(handler)
    return received


@pytest.fixture
def http():
    with mock.patch('core.supabase_service.requests.request') as request:
        yield request


def sign_in(service, http):
    http.return_value = make_response(200, SESSION_PAYLOAD)
    session = async_to_sync(service.sign_in_with_credentials)('operator@example.com', 'pw')
    http.reset_mock()
    return session


class TestQueryEncoding:
    """Test PostgREST parameter encoding."""

    def test_listing_query(self):
        query = QueryDescriptor(
            filters=(('status', 'eq', 'unread'),),
            search='ama',
            search_columns=('name', 'email', 'subject'),
            order_by=(('created_at', True), ('id', True)),
            range_start=10,
            range_end=19,
            count_exact=True,
        )

        assert build_query_params(query) == [
            ('select', '*'),
            ('status', 'eq.unread'),
            ('or', '(name.ilike.*ama*,email.ilike.*ama*,subject.ilike.*ama*)'),
            ('order', 'created_at.desc,id.desc'),
            ('offset', '10'),
            ('limit', '10'),
        ]

    def test_date_range_filters(self):
        start = datetime(2026, 3, 1, tzinfo=dt_timezone.utc)
        end = datetime(2026, 3, 2, tzinfo=dt_timezone.utc)
        query = QueryDescriptor(filters=(('created_at', 'gte', start), ('created_at', 'lte', end)))

        params = build_query_params(query)

        assert ('created_at', 'gte.2026-03-01T00:00:00+00:00') in params
        assert ('created_at', 'lte.2026-03-02T00:00:00+00:00') in params

    def test_unsupported_operator(self):
        with pytest.raises(ValueError):
            build_query_params(QueryDescriptor(filters=(('status', 'like', 'x'),)))

    def test_search_term_is_sanitized(self):
        assert sanitize_search_term(' a,b(c)*"d\\ ') == 'abcd'

    def test_like_wildcards_match_literally(self):
        params = build_query_params(QueryDescriptor(search='100%_off', search_columns=('name', 'subject')))
        assert dict(params)['or'] == r'(name.ilike.*100\%\_off*,subject.ilike.*100\%\_off*)'

    def test_search_of_only_reserved_characters_is_dropped(self):
        params = build_query_params(QueryDescriptor(search='(*)', search_columns=('name',)))
        assert 'or' not in dict(params)

    @pytest.mark.parametrize('header, expected', [
        ('0-9/25', 25),
        ('*/0', 0),
        ('0-9/*', None),
        ('garbage', None),
        (None, None),
    ])
    def test_parse_content_range(self, header, expected):
        assert parse_content_range(header) == expected


class TestSupabaseAuth:
    """Test sign-in, refresh and sign-out against the auth API."""

    def test_sign_in(self, service, events, http):
        http.return_value = make_response(200, SESSION_PAYLOAD)

        session = async_to_sync(service.sign_in_with_credentials)('operator@example.com', 'pw')

        kwargs = http.call_args.kwargs
        assert kwargs['method'] == 'POST'
        assert kwargs['url'] == f'{SUPABASE_URL}/auth/v1/token'
        assert kwargs['params'] == {'grant_type': 'password'}
        assert kwargs['headers']['apikey'] == 'anon-key'
        assert session.identity.email == 'operator@example.com'
        assert session.access_token == 'access-1'
        assert cache.get('test-auth')['refresh_token'] == 'refresh-1'
        assert [event.type for event in events] == [AuthEventType.SIGNED_IN]

    @pytest.mark.parametrize('status_code, payload, error', [
        (400, {'error': 'invalid_grant', 'error_description': 'Invalid login credentials'}, InvalidCredentials),
        (400, {'error_code': 'email_not_confirmed', 'msg': 'Email not confirmed'}, EmailNotConfirmed),
        (429, {'msg': 'Request rate limit reached'}, RateLimited),
        (500, {'msg': 'boom'}, TransportError),
    ])
    def test_sign_in_errors(self, service, events, http, status_code, payload, error):
        http.return_value = make_response(status_code, payload)

        with pytest.raises(error):
            async_to_sync(service.sign_in_with_credentials)('operator@example.com', 'pw')

        assert events == []
        assert cache.get('test-auth') is None

    @pytest.mark.parametrize('failure', [
        requests.exceptions.ConnectionError('refused'),
        requests.exceptions.Timeout('slow'),
    ])
    def test_network_failure(self, service, http, failure):
        http.side_effect = failure

        with pytest.raises(TransportError):
            async_to_sync(service.sign_in_with_credentials)('operator@example.com', 'pw')

    def test_malformed_session_payload(self, service, http):
        http.return_value = make_response(200, {'unexpected': True})

        with pytest.raises(TransportError):
            async_to_sync(service.sign_in_with_credentials)('operator@example.com', 'pw')

    def test_session_survives_restart(self, service, http):
        sign_in(service, http)

        restarted = SupabaseService(url=SUPABASE_URL, anon_key='anon-key', storage_key='test-auth')
        session = async_to_sync(restarted.get_current_session)()

        assert session.identity.email == 'operator@example.com'
        http.assert_not_called()

    def test_no_persisted_session(self, service, http):
        assert async_to_sync(service.get_current_session)() is None

    def test_expired_session_is_refreshed(self, service, events, http):
        cache.set('test-auth', {**SESSION_PAYLOAD, 'expires_in': None, 'expires_at': 1})
        http.return_value = make_response(200, {**SESSION_PAYLOAD, 'access_token': 'access-2'})

        session = async_to_sync(service.get_current_session)()

        assert http.call_args.kwargs['params'] == {'grant_type': 'refresh_token'}
        assert http.call_args.kwargs['json'] == {'refresh_token': 'refresh-1'}
        assert session.access_token == 'access-2'
        assert [event.type for event in events] == [AuthEventType.TOKEN_REFRESHED]

    def test_rejected_refresh_signs_out(self, service, events, http):
        cache.set('test-auth', {**SESSION_PAYLOAD, 'expires_in': None, 'expires_at': 1})
        http.return_value = make_response(400, {'error': 'invalid_grant'})

        assert async_to_sync(service.get_current_session)() is None
        assert cache.get('test-auth') is None
        assert [event.type for event in events] == [AuthEventType.SIGNED_OUT]

    def test_sign_out(self, service, events, http):
        sign_in(service, http)
        http.return_value = make_response(204)

        async_to_sync(service.sign_out)()

        assert http.call_args.kwargs['url'] == f'{SUPABASE_URL}/auth/v1/logout'
        assert http.call_args.kwargs['headers']['Authorization'] == 'Bearer access-1'
        assert cache.get('test-auth') is None
        assert events[-1].type == AuthEventType.SIGNED_OUT

    def test_sign_out_with_dead_token(self, service, http):
        sign_in(service, http)
        http.return_value = make_response(401, {'msg': 'invalid JWT'})

        async_to_sync(service.sign_out)()

        assert async_to_sync(service.get_current_session)() is None

    def test_sign_out_clears_local_session_when_unreachable(self, service, events, http):
        sign_in(service, http)
        http.side_effect = requests.exceptions.ConnectionError('refused')

        with pytest.raises(TransportError):
            async_to_sync(service.sign_out)()

        assert cache.get('test-auth') is None
        assert events[-1].type == AuthEventType.SIGNED_OUT

    def test_failing_handler_does_not_break_sign_in(self, service, http):
        async def broken(event):
            raise RuntimeError('listener bug')

        service.subscribe_to_auth_events(broken)
        http.return_value = make_response(200, SESSION_PAYLOAD)

        session = async_to_sync(service.sign_in_with_credentials)('operator@example.com', 'pw')

        assert session.access_token == 'access-1'


class TestSupabaseData:
    """Test collection queries and row mutations against the REST API."""

    @pytest.fixture(autouse=True)
    def session(self, service, http):
        return sign_in(service, http)

    def test_query_with_exact_count(self, service, http):
        http.return_value = make_response(
            200, [{'id': '1'}, {'id': '2'}], headers={'Content-Range': '0-1/12'}
        )

        result = async_to_sync(service.query_collection)(
            'contact_submissions', QueryDescriptor(range_start=0, range_end=1, count_exact=True)
        )

        kwargs = http.call_args.kwargs
        assert kwargs['method'] == 'GET'
        assert kwargs['url'] == f'{SUPABASE_URL}/rest/v1/contact_submissions'
        assert kwargs['headers']['Prefer'] == 'count=exact'
        assert kwargs['headers']['Authorization'] == 'Bearer access-1'
        assert result.rows == [{'id': '1'}, {'id': '2'}]
        assert result.matched_count == 12

    def test_missing_count_is_a_transport_error(self, service, http):
        http.return_value = make_response(200, [])

        with pytest.raises(TransportError):
            async_to_sync(service.query_collection)(
                'contact_submissions', QueryDescriptor(count_exact=True)
            )

    def test_non_list_body(self, service, http):
        http.return_value = make_response(200, {'rows': []})

        with pytest.raises(TransportError):
            async_to_sync(service.query_collection)('contact_submissions', QueryDescriptor())

    def test_rejected_token(self, service, http):
        http.return_value = make_response(401, {'message': 'JWT expired'})

        with pytest.raises(NotAuthenticated):
            async_to_sync(service.query_collection)('contact_submissions', QueryDescriptor())

    @pytest.mark.parametrize('method, args', [
        ('query_collection', ('contact_submissions', QueryDescriptor(count_exact=True))),
        ('update_row', ('contact_submissions', '7', {'status': 'read'})),
        ('delete_row', ('contact_submissions', '7')),
    ])
    def test_data_call_without_session(self, http, method, args):
        cache.delete('test-auth')
        restarted = SupabaseService(url=SUPABASE_URL, anon_key='anon-key', storage_key='test-auth')

        with pytest.raises(NotAuthenticated):
            async_to_sync(getattr(restarted, method))(*args)

        http.assert_not_called()

    def test_rejected_refresh_fails_data_call(self, http):
        cache.set('test-auth', {**SESSION_PAYLOAD, 'expires_in': None, 'expires_at': 1})
        restarted = SupabaseService(url=SUPABASE_URL, anon_key='anon-key', storage_key='test-auth')
        http.return_value = make_response(400, {'error': 'invalid_grant'})

        with pytest.raises(NotAuthenticated):
            async_to_sync(restarted.query_collection)(
                'contact_submissions', QueryDescriptor(count_exact=True)
            )

        # only the refresh went out; no data request with a fallback key
        assert http.call_count == 1
        assert http.call_args.kwargs['params'] == {'grant_type': 'refresh_token'}

    def test_update_row(self, service, http):
        http.return_value = make_response(200, [{'id': '7', 'status': 'read'}])
        stamp = datetime(2026, 3, 10, 12, 0, tzinfo=dt_timezone.utc)

        row = async_to_sync(service.update_row)(
            'contact_submissions', '7', {'status': 'read', 'updated_at': stamp}
        )

        kwargs = http.call_args.kwargs
        assert kwargs['method'] == 'PATCH'
        assert kwargs['params'] == {'id': 'eq.7'}
        assert kwargs['json'] == {'status': 'read', 'updated_at': '2026-03-10T12:00:00+00:00'}
        assert kwargs['headers']['Prefer'] == 'return=representation'
        assert row == {'id': '7', 'status': 'read'}

    def test_update_missing_row(self, service, http):
        http.return_value = make_response(200, [])

        assert async_to_sync(service.update_row)('contact_submissions', '7', {'status': 'read'}) is None

    def test_malformed_id(self, service, http):
        http.return_value = make_response(400, {'code': '22P02', 'message': 'invalid input syntax for type uuid'})

        with pytest.raises(NotFound):
            async_to_sync(service.delete_row)('contact_submissions', 'not-a-uuid')

    @pytest.mark.parametrize('payload, expected', [([{'id': '7'}], True), ([], False)])
    def test_delete_row(self, service, http, payload, expected):
        http.return_value = make_response(200, payload)

        assert async_to_sync(service.delete_row)('contact_submissions', '7') is expected
        assert http.call_args.kwargs['method'] == 'DELETE'


class TestCallRemote:
    """Test the timeout wrapper for remote calls."""

    def test_returns_result(self):
        async def work():
            return 42

        assert async_to_sync(call_remote)(work(), 1) == 42

    def test_timeout(self):
        async def hang():
            await asyncio.sleep(3600)

        with pytest.raises(TransportError) as exc_info:
            async_to_sync(call_remote)(hang(), 0.05)

        assert exc_info.value.details == {'timeout': 0.05}


class TestExceptionHandler:
    """Test rendering of contact admin errors."""

    @pytest.mark.parametrize('error, http_status', [
        (NotAuthenticated(), status.HTTP_401_UNAUTHORIZED),
        (AccessDenied(), status.HTTP_403_FORBIDDEN),
        (InvalidCredentials(), status.HTTP_401_UNAUTHORIZED),
        (RateLimited(), status.HTTP_429_TOO_MANY_REQUESTS),
        (NotFound(), status.HTTP_404_NOT_FOUND),
        (TransportError(), status.HTTP_502_BAD_GATEWAY),
    ])
    def test_status_mapping(self, error, http_status):
        response = contact_admin_exception_handler(error, {})

        assert response.status_code == http_status
        assert response.data['success'] is False
        assert response.data['code'] == error.code
        assert response.data['error'] == error.message

    def test_retryable_flag(self):
        assert contact_admin_exception_handler(TransportError(), {}).data['retryable'] is True
        assert 'retryable' not in contact_admin_exception_handler(NotFound(), {}).data

    def test_field_errors(self):
        error = ValidationError(details={'fields': {'status': ['Invalid']}})

        response = contact_admin_exception_handler(error, {})

        assert response.data['fields'] == {'status': ['Invalid']}

    def test_other_exceptions_use_default_handler(self):
        response = contact_admin_exception_handler(drf_exceptions.MethodNotAllowed('PUT'), {})

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED


class TestRestFrameworkSettings:
    """Test the project-wide DRF configuration."""

    def test_defaults_name_only_rest_framework_classes(self):
        classes = list(api_settings.DEFAULT_AUTHENTICATION_CLASSES) + list(api_settings.DEFAULT_PERMISSION_CLASSES)

        assert classes
        assert all(cls.__module__.startswith('rest_framework.') for cls in classes)

    @pytest.mark.parametrize('view', [
        ContactSubmissionListView,
        ContactSubmissionDetailView,
        ContactSubmissionActionView,
        ContactStatsView,
    ])
    def test_admin_views_require_operator_token(self, view):
        assert view.authentication_classes == [OperatorTokenAuthentication]
        assert view.permission_classes == [IsOperatorSession]


class TestGunicornConfig:
    """Test the production server configuration."""

    def test_single_sync_worker(self):
        path = settings.BASE_DIR / 'deployment' / 'gunicorn' / 'gunicorn_config.py'
        spec = importlib.util.spec_from_file_location('gunicorn_config', path)
        config = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(config)

        assert config.workers == 1
        assert config.worker_class == 'sync'
        assert getattr(config, 'threads', 1) == 1
