"""
Operator Session Views

Sign-in, sign-out and auth-state endpoints for the contact admin UI.
"""
from asgiref.sync import async_to_sync
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from contact.permissions import IsOperatorSession
from core.exceptions import NotAuthenticated

from .authentication import OptionalOperatorTokenAuthentication, SessionRenewalAuthentication
from .serializers import AuthStateSerializer, SessionTokenSerializer, SignInSerializer
from .services import get_session_manager


def state_response(state, operator=False, http_status=status.HTTP_200_OK):
    return Response(AuthStateSerializer(state, context={'operator': operator}).data, status=http_status)


def token_response(state):
    return Response(SessionTokenSerializer(state, context={'operator': True}).data)


class AuthStateView(APIView):
    """
    Current auth state.

    GET /api/auth/state/
    """
    authentication_classes = [OptionalOperatorTokenAuthentication]
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        return state_response(get_session_manager().state, operator=request.auth is not None)


class AuthInitializeView(APIView):
    """
    Resolve the auth state from any persisted session.

    POST /api/auth/initialize/

    Returns the status only; the access token is handed out by sign-in
    and refresh alone.
    """
    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        manager = get_session_manager()
        state = async_to_sync(manager.initialize)()
        return state_response(state)


class SignInView(APIView):
    """
    Operator sign-in.

    POST /api/auth/sign-in/   {"email": "...", "password": "..."}

    Returns the session's access token, to be sent as
    `Authorization: Bearer <access_token>` on every admin request.
    While an unexpired operator session is active, only its holder may
    sign in again.

    Failures carry a code the UI uses to tell invalid credentials,
    access denied and rate limiting apart.
    """
    authentication_classes = [OptionalOperatorTokenAuthentication]
    permission_classes = [permissions.AllowAny]
    throttle_scope = 'sign_in'

    def post(self, request):
        serializer = SignInSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'success': False, 'error': 'Validation failed', 'code': 'validation_error',
                 'fields': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        manager = get_session_manager()
        active = manager.get_current_session()
        if active is not None and not active.is_expired() and request.auth is None:
            raise NotAuthenticated('An operator session is already active', code='session_active')

        async_to_sync(manager.sign_in)(
            serializer.validated_data['email'],
            serializer.validated_data['password'],
        )
        return token_response(manager.state)


class RefreshView(APIView):
    """
    Exchange an expired (or just-replaced) access token for the current one.

    POST /api/auth/refresh/
    """
    authentication_classes = [SessionRenewalAuthentication]
    permission_classes = [IsOperatorSession]

    def post(self, request):
        manager = get_session_manager()
        async_to_sync(manager.refresh)()
        return token_response(manager.state)


class SignOutView(APIView):
    """
    POST /api/auth/sign-out/
    """
    authentication_classes = [SessionRenewalAuthentication]
    permission_classes = [IsOperatorSession]

    def post(self, request):
        manager = get_session_manager()
        async_to_sync(manager.sign_out)()
        return state_response(manager.state)
