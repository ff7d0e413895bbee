"""
Base Policy Class

Contract shared by the contact admin access policies.
"""
from abc import ABC, abstractmethod


class BasePolicy(ABC):
    """
    Base class for access policies.

    A policy answers one question: may this authenticated identity operate
    the contact admin? Policies are pure and synchronous; they never touch
    the remote service.
    """

    @abstractmethod
    def is_authorized(self, identity):
        """True when identity may operate the contact admin."""

    def __call__(self, identity):
        return self.is_authorized(identity)

    @staticmethod
    def email_of(identity):
        """Email of an identity, or None for a missing identity."""
        if identity is None:
            return None
        return getattr(identity, 'email', None)
