"""
Operator Access Policies

Single-operator allowlist, not a role system: exactly one configured
address (or, with AllowlistPolicy, a fixed set of addresses) may use the
admin.
"""

from .base_policy import BasePolicy


class OperatorPolicy(BasePolicy):
    """Authorize the single configured operator address."""

    def __init__(self, operator_email):
        self.operator_email = operator_email

    def is_authorized(self, identity):
        """
        Check if identity is the operator.

        Comparison is exact and case-sensitive; an unset operator address
        authorizes nobody.
        """
        email = self.email_of(identity)
        if not email or not self.operator_email:
            return False
        return email == self.operator_email

    def __repr__(self):
        return f"OperatorPolicy({self.operator_email!r})"


class AllowlistPolicy(BasePolicy):
    """Authorize any address in a fixed allowlist (case-sensitive)."""

    def __init__(self, emails):
        self.emails = frozenset(email for email in emails if email)

    def is_authorized(self, identity):
        email = self.email_of(identity)
        return bool(email) and email in self.emails

    def __repr__(self):
        return f"AllowlistPolicy({sorted(self.emails)!r})"
