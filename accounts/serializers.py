"""
Operator Session Serializers
"""
from rest_framework import serializers

from .session import AuthStatus


class SignInSerializer(serializers.Serializer):
    email = serializers.EmailField(max_length=255)
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class AuthStateSerializer(serializers.Serializer):
    """
    Snapshot of the operator AuthState for the UI.

    email and expires_at are only shown to the client holding the session
    (context['operator'] true); anyone else sees the status alone.
    error is present only when the last transition was caused by a failure.
    """

    status = serializers.ChoiceField(choices=AuthStatus.CHOICES)
    authenticated = serializers.BooleanField(source='is_authenticated')
    email = serializers.SerializerMethodField()
    expires_at = serializers.SerializerMethodField()
    error = serializers.SerializerMethodField()

    def _operator(self, obj):
        return self.context.get('operator', False) and obj.session is not None

    def get_email(self, obj):
        return obj.email if self._operator(obj) else None

    def get_expires_at(self, obj):
        if not self._operator(obj) or obj.session.expires_at is None:
            return None
        return serializers.DateTimeField().to_representation(obj.session.expires_at)

    def get_error(self, obj):
        if obj.error is None:
            return None
        return {'code': obj.error.code, 'message': obj.error.message}


class SessionTokenSerializer(AuthStateSerializer):
    """AuthState plus the bearer token, returned only on sign-in and refresh."""

    access_token = serializers.SerializerMethodField()

    def get_access_token(self, obj):
        return obj.session.access_token if self._operator(obj) else None
