"""
Supabase Remote Data Service

Talks to a hosted Supabase project through its REST endpoints:
- GoTrue auth (/auth/v1) for password sign-in, token refresh and logout
- PostgREST (/rest/v1) for filtered, ordered, counted collection queries

The signed-in session is persisted in the Django cache so it survives a
process restart, and expired access tokens are refreshed transparently the
next time the current session is requested.

Documentation: https://supabase.com/docs/guides/api
"""

import logging
import re
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from typing import Any, Dict, List, Optional, Tuple

import requests
from asgiref.sync import sync_to_async
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from core.exceptions import (
    EmailNotConfirmed,
    InvalidCredentials,
    NotAuthenticated,
    NotFound,
    RateLimited,
    TransportError,
)
from core.remote import (
    AuthEvent,
    AuthEventType,
    Identity,
    QueryDescriptor,
    QueryResult,
    RemoteDataService,
    Session,
)

logger = logging.getLogger(__name__)

# PostgREST treats these as syntax inside an or=(...) expression
POSTGREST_RESERVED = re.compile(r'[,()*\\"]')

# LIKE wildcards; escaped so they match literally
LIKE_WILDCARDS = re.compile(r'([%_])')

CONTENT_RANGE = re.compile(r'^(?:\d+-\d+|\*)/(\d+|\*)$')


def sanitize_search_term(term: str) -> str:
    """Strip characters that would break out of an ilike pattern."""
    return POSTGREST_RESERVED.sub('', term or '').strip()


def escape_like_wildcards(term: str) -> str:
    """Backslash-escape % and _ so an ilike pattern matches them literally."""
    return LIKE_WILDCARDS.sub(r'\\\1', term)


def format_filter_value(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def build_query_params(query: QueryDescriptor) -> List[Tuple[str, str]]:
    """
    Encode a QueryDescriptor as PostgREST query-string parameters.

    A list of pairs rather than a dict, since the same column may carry
    several filters (e.g. created_at=gte... and created_at=lte...).
    """
    params = [('select', ','.join(query.columns))]

    for column, operator, value in query.filters:
        if operator not in ('eq', 'gte', 'lte'):
            raise ValueError(f"Unsupported filter operator: {operator}")
        params.append((column, f"{operator}.{format_filter_value(value)}"))

    term = sanitize_search_term(query.search) if query.search else ''
    if term and query.search_columns:
        pattern = escape_like_wildcards(term)
        clauses = ','.join(f"{column}.ilike.*{pattern}*" for column in query.search_columns)
        params.append(('or', f"({clauses})"))

    if query.order_by:
        params.append(('order', ','.join(
            f"{column}.{'desc' if descending else 'asc'}"
            for column, descending in query.order_by
        )))

    if query.range_start is not None:
        params.append(('offset', str(query.range_start)))
        if query.range_end is not None:
            params.append(('limit', str(max(query.range_end - query.range_start + 1, 0))))

    return params


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """Total row count from a PostgREST Content-Range header ('0-9/25', '*/0')."""
    if not header:
        return None
    match = CONTENT_RANGE.match(header.strip())
    if not match or match.group(1) == '*':
        return None
    return int(match.group(1))


class SupabaseService(RemoteDataService):
    """
    Supabase implementation of the remote data service.

    Usage:
        from core.supabase_service import SupabaseService

        service = SupabaseService()
        session = await service.sign_in_with_credentials(email, password)
        result = await service.query_collection('contact_submissions', QueryDescriptor())
    """

    AUTH_PATH = '/auth/v1'
    REST_PATH = '/rest/v1'

    def __init__(self, url: str = None, anon_key: str = None,
                 storage_key: str = None, http_timeout: float = None):
        self.base_url = (url or settings.SUPABASE_URL or '').rstrip('/')
        self.anon_key = anon_key or settings.SUPABASE_ANON_KEY
        self.storage_key = storage_key or settings.SUPABASE_SESSION_STORAGE_KEY
        self.http_timeout = http_timeout or settings.CONTACT_ADMIN_HTTP_TIMEOUT
        self._session: Optional[Session] = None
        self._handlers = []

        if not self.base_url or not self.anon_key:
            logger.warning(
                "SUPABASE_URL or SUPABASE_ANON_KEY is not set. "
                "Remote calls will fail!"
            )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _get_headers(self, access_token: str = None) -> Dict[str, str]:
        return {
            'apikey': self.anon_key,
            'Authorization': f'Bearer {access_token or self.anon_key}',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }

    def _make_request(self, method: str, path: str, params=None, json: dict = None,
                      headers: Dict[str, str] = None, access_token: str = None) -> requests.Response:
        """
        Make a blocking HTTP request to the Supabase project.

        Raises:
            TransportError: Network failure or timeout
        """
        url = f"{self.base_url}{path}"
        request_headers = self._get_headers(access_token)
        if headers:
            request_headers.update(headers)

        try:
            return requests.request(
                method=method,
                url=url,
                params=params,
                json=json,
                headers=request_headers,
                timeout=self.http_timeout,
            )
        except requests.exceptions.Timeout:
            logger.error(f"Supabase request timeout: {method} {path}")
            raise TransportError('Remote data service timed out', details={'timeout': self.http_timeout})
        except requests.exceptions.RequestException as e:
            logger.error(f"Supabase network error: {method} {path}: {e}")
            raise TransportError(f"Remote data service unreachable: {e}")

    async def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        return await sync_to_async(self._make_request, thread_sensitive=False)(method, path, **kwargs)

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            raise TransportError(
                'Malformed response from remote data service',
                details={'status_code': response.status_code, 'body': response.text[:500]},
            )

    @staticmethod
    def _error_text(payload: Any) -> str:
        """Flatten the several GoTrue/PostgREST error shapes into one string."""
        if not isinstance(payload, dict):
            return str(payload or '')
        parts = [
            payload.get(key) for key in
            ('error_code', 'error', 'error_description', 'msg', 'message', 'code')
        ]
        return ' '.join(str(part) for part in parts if part)

    def _raise_for_auth_error(self, response: requests.Response):
        try:
            payload = response.json()
        except ValueError:
            payload = {'message': response.text}
        text = self._error_text(payload).lower()

        logger.warning(f"Supabase auth error {response.status_code}: {text}")

        if response.status_code == 429 or 'rate limit' in text or 'over_request_rate_limit' in text:
            raise RateLimited()
        if 'email not confirmed' in text or 'email_not_confirmed' in text:
            raise EmailNotConfirmed()
        if response.status_code in (400, 401) and (
            'invalid' in text or 'credentials' in text or 'invalid_grant' in text
        ):
            raise InvalidCredentials()
        raise TransportError(
            f"Auth API error: {response.status_code}",
            details={'status_code': response.status_code, 'response': payload},
        )

    def _raise_for_data_error(self, response: requests.Response, collection: str):
        try:
            payload = response.json()
        except ValueError:
            payload = {'message': response.text}

        logger.error(f"Supabase data API error on {collection}: {response.status_code}", extra={
            'status_code': response.status_code,
            'response': payload,
        })

        if response.status_code == 401:
            raise NotAuthenticated('Remote session rejected')
        # invalid_text_representation: an id that cannot exist in the column
        if isinstance(payload, dict) and payload.get('code') == '22P02':
            raise NotFound()
        raise TransportError(
            f"Data API error: {response.status_code}",
            details={'status_code': response.status_code, 'response': payload},
        )

    # ------------------------------------------------------------------
    # Session persistence
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_session(payload: Dict[str, Any]) -> Session:
        try:
            user = payload['user']
            access_token = payload['access_token']
        except (KeyError, TypeError):
            raise TransportError('Malformed session payload from auth service')

        if payload.get('expires_at'):
            expires_at = datetime.fromtimestamp(int(payload['expires_at']), tz=dt_timezone.utc)
        elif payload.get('expires_in'):
            expires_at = timezone.now() + timedelta(seconds=int(payload['expires_in']))
        else:
            expires_at = None

        return Session(
            identity=Identity(email=user.get('email') or '', id=user.get('id')),
            access_token=access_token,
            refresh_token=payload.get('refresh_token'),
            expires_at=expires_at,
        )

    @staticmethod
    def _serialize_session(session: Session) -> Dict[str, Any]:
        return {
            'access_token': session.access_token,
            'refresh_token': session.refresh_token,
            'expires_at': int(session.expires_at.timestamp()) if session.expires_at else None,
            'user': {'id': session.identity.id, 'email': session.identity.email},
        }

    async def _store_session(self, session: Session):
        self._session = session
        await cache.aset(self.storage_key, self._serialize_session(session), timeout=None)

    async def _clear_session(self):
        self._session = None
        await cache.adelete(self.storage_key)

    async def _load_session(self) -> Optional[Session]:
        if self._session is not None:
            return self._session
        stored = await cache.aget(self.storage_key)
        if not stored:
            return None
        try:
            self._session = self._parse_session(stored)
        except TransportError:
            logger.warning("Discarding unreadable persisted session")
            await cache.adelete(self.storage_key)
            return None
        return self._session

    # ------------------------------------------------------------------
    # Auth events
    # ------------------------------------------------------------------

    def subscribe_to_auth_events(self, handler):
        self._handlers.append(handler)

        def unsubscribe():
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def _emit(self, event_type: str, session: Session = None):
        event = AuthEvent(type=event_type, session=session)
        for handler in list(self._handlers):
            try:
                await handler(event)
            except Exception:
                logger.exception(f"Auth event handler failed for {event_type}")

    # ------------------------------------------------------------------
    # Auth API
    # ------------------------------------------------------------------

    async def sign_in_with_credentials(self, email: str, password: str) -> Session:
        response = await self._request(
            'POST',
            f"{self.AUTH_PATH}/token",
            params={'grant_type': 'password'},
            json={'email': email, 'password': password},
        )
        if not response.ok:
            self._raise_for_auth_error(response)

        session = self._parse_session(self._json(response))
        await self._store_session(session)
        logger.info(f"Supabase sign-in succeeded for {session.identity.email}")
        await self._emit(AuthEventType.SIGNED_IN, session)
        return session

    async def refresh_session(self, session: Session) -> Optional[Session]:
        """
        Exchange the refresh token for new credential material.

        Returns None (and emits SIGNED_OUT) when the refresh token is rejected.
        """
        if not session.refresh_token:
            await self._clear_session()
            await self._emit(AuthEventType.SIGNED_OUT)
            return None

        response = await self._request(
            'POST',
            f"{self.AUTH_PATH}/token",
            params={'grant_type': 'refresh_token'},
            json={'refresh_token': session.refresh_token},
        )
        if response.status_code in (400, 401):
            logger.info("Refresh token rejected, clearing persisted session")
            await self._clear_session()
            await self._emit(AuthEventType.SIGNED_OUT)
            return None
        if not response.ok:
            self._raise_for_auth_error(response)

        refreshed = self._parse_session(self._json(response))
        await self._store_session(refreshed)
        await self._emit(AuthEventType.TOKEN_REFRESHED, refreshed)
        return refreshed

    async def get_current_session(self) -> Optional[Session]:
        session = await self._load_session()
        if session is None:
            return None
        if session.is_expired():
            logger.info("Access token expired, refreshing session")
            return await self.refresh_session(session)
        return session

    async def sign_out(self) -> None:
        session = await self._load_session()
        try:
            if session is not None:
                response = await self._request(
                    'POST',
                    f"{self.AUTH_PATH}/logout",
                    access_token=session.access_token,
                )
                # 401/404: the token is already dead remotely
                if not response.ok and response.status_code not in (401, 404):
                    self._raise_for_auth_error(response)
        finally:
            await self._clear_session()
            await self._emit(AuthEventType.SIGNED_OUT)

    # ------------------------------------------------------------------
    # Data API
    # ------------------------------------------------------------------

    async def _access_token(self) -> str:
        """
        Bearer token for a data call; never the anon key.

        Raises:
            NotAuthenticated: No session, or its refresh was rejected
        """
        session = await self.get_current_session()
        if session is None:
            raise NotAuthenticated('No remote session for data call')
        return session.access_token

    async def query_collection(self, name: str, query: QueryDescriptor) -> QueryResult:
        headers = {'Prefer': 'count=exact'} if query.count_exact else None
        response = await self._request(
            'GET',
            f"{self.REST_PATH}/{name}",
            params=build_query_params(query),
            headers=headers,
            access_token=await self._access_token(),
        )
        if not response.ok:
            self._raise_for_data_error(response, name)

        rows = self._json(response)
        if not isinstance(rows, list):
            raise TransportError('Malformed collection response', details={'body': rows})

        matched = parse_content_range(response.headers.get('Content-Range'))
        if query.count_exact and matched is None:
            raise TransportError('Remote data service did not return an exact count')
        return QueryResult(rows=rows, matched_count=matched)

    async def update_row(self, collection: str, row_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = await self._request(
            'PATCH',
            f"{self.REST_PATH}/{collection}",
            params={'id': f"eq.{row_id}"},
            json={key: format_filter_value(value) for key, value in patch.items()},
            headers={'Prefer': 'return=representation'},
            access_token=await self._access_token(),
        )
        if not response.ok:
            self._raise_for_data_error(response, collection)

        rows = self._json(response)
        return rows[0] if rows else None

    async def delete_row(self, collection: str, row_id: str) -> bool:
        response = await self._request(
            'DELETE',
            f"{self.REST_PATH}/{collection}",
            params={'id': f"eq.{row_id}"},
            headers={'Prefer': 'return=representation'},
            access_token=await self._access_token(),
        )
        if not response.ok:
            self._raise_for_data_error(response, collection)

        return bool(self._json(response))
