"""
In-memory remote data service for tests.

Behaves like the Supabase service as seen through core.remote: it issues
sessions, emits auth events after its own state changes, and evaluates
QueryDescriptors against rows held in plain dicts. Every call is recorded
in `calls` so tests can assert on what reached the remote side.
"""
import asyncio
import uuid
from datetime import datetime, timedelta

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.exceptions import EmailNotConfirmed, InvalidCredentials, RateLimited, TransportError
from core.remote import (
    AuthEvent,
    AuthEventType,
    Identity,
    QueryResult,
    RemoteDataService,
    Session,
)


def _comparable(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is not None:
            return parsed
    return value


class InMemoryDataService(RemoteDataService):

    def __init__(self):
        self.users = {}
        self.collections = {}
        self.session = None
        self.calls = []
        self.handlers = []
        self.unreachable = False
        self.rate_limited = False
        self.hang = False

    # -- test helpers --------------------------------------------------

    def add_user(self, email, password, confirmed=True):
        self.users[email] = {'password': password, 'confirmed': confirmed, 'id': str(uuid.uuid4())}

    def add_submission(self, collection='contact_submissions', **fields):
        now = timezone.now()
        row = {
            'id': str(uuid.uuid4()),
            'name': 'Ama Mensah',
            'email': 'ama@example.com',
            'subject': 'General inquiry',
            'message': 'Hello, I would like to know more about your services.',
            'status': 'unread',
            'created_at': now,
            'updated_at': None,
        }
        row.update(fields)
        for column in ('created_at', 'updated_at'):
            if isinstance(row[column], datetime):
                row[column] = row[column].isoformat()
        self.collections.setdefault(collection, []).append(row)
        return row

    def rows(self, collection='contact_submissions'):
        return self.collections.setdefault(collection, [])

    def calls_to(self, method):
        return [call for call in self.calls if call[0] == method]

    def issue_session(self, email, expires_in=3600):
        user = self.users.get(email, {'id': str(uuid.uuid4())})
        return Session(
            identity=Identity(email=email, id=user['id']),
            access_token=f"access-{uuid.uuid4().hex}",
            refresh_token=f"refresh-{uuid.uuid4().hex}",
            expires_at=timezone.now() + timedelta(seconds=expires_in),
        )

    async def emit(self, event_type, session=None):
        event = AuthEvent(type=event_type, session=session)
        for handler in list(self.handlers):
            await handler(event)

    async def _remote_call(self, method, *args):
        self.calls.append((method, args))
        if self.hang:
            await asyncio.sleep(3600)
        if self.unreachable:
            raise TransportError('Remote data service unreachable')
        await asyncio.sleep(0)

    # -- auth ----------------------------------------------------------

    async def sign_in_with_credentials(self, email, password):
        await self._remote_call('sign_in_with_credentials', email)
        if self.rate_limited:
            raise RateLimited()
        user = self.users.get(email)
        if user is None or user['password'] != password:
            raise InvalidCredentials()
        if not user['confirmed']:
            raise EmailNotConfirmed()

        self.session = self.issue_session(email)
        await self.emit(AuthEventType.SIGNED_IN, self.session)
        return self.session

    async def get_current_session(self):
        await self._remote_call('get_current_session')
        return self.session

    async def sign_out(self):
        await self._remote_call('sign_out')
        self.session = None
        await self.emit(AuthEventType.SIGNED_OUT)

    def subscribe_to_auth_events(self, handler):
        self.handlers.append(handler)

        def unsubscribe():
            if handler in self.handlers:
                self.handlers.remove(handler)

        return unsubscribe

    # -- data ----------------------------------------------------------

    def _matches(self, row, query):
        for column, operator, value in query.filters:
            actual, expected = _comparable(row.get(column)), _comparable(value)
            if operator == 'eq' and str(actual) != str(expected):
                return False
            if operator == 'gte' and not actual >= expected:
                return False
            if operator == 'lte' and not actual <= expected:
                return False

        term = (query.search or '').strip().lower()
        if term and query.search_columns:
            if not any(term in (row.get(column) or '').lower() for column in query.search_columns):
                return False
        return True

    async def query_collection(self, name, query):
        await self._remote_call('query_collection', name, query)
        matched = [row for row in self.rows(name) if self._matches(row, query)]

        for column, descending in reversed(query.order_by):
            matched.sort(key=lambda row: _comparable(row.get(column)), reverse=descending)

        window = matched
        if query.range_start is not None:
            end = query.range_end + 1 if query.range_end is not None else None
            window = matched[query.range_start:end]

        if query.columns != ('*',):
            window = [{column: row.get(column) for column in query.columns} for row in window]
        else:
            window = [dict(row) for row in window]

        return QueryResult(rows=window, matched_count=len(matched) if query.count_exact else None)

    async def update_row(self, collection, row_id, patch):
        await self._remote_call('update_row', collection, row_id, patch)
        for row in self.rows(collection):
            if str(row['id']) == str(row_id):
                for key, value in patch.items():
                    row[key] = value.isoformat() if isinstance(value, datetime) else value
                return dict(row)
        return None

    async def delete_row(self, collection, row_id):
        await self._remote_call('delete_row', collection, row_id)
        rows = self.rows(collection)
        for index, row in enumerate(rows):
            if str(row['id']) == str(row_id):
                del rows[index]
                return True
        return False
