"""
Access Policies

The policy used to gate the contact admin is injectable: the
CONTACT_ADMIN_ACCESS_POLICY setting names the class to build.
"""

from django.conf import settings
from django.utils.module_loading import import_string

from .base_policy import BasePolicy
from .operator_policy import AllowlistPolicy, OperatorPolicy


def get_access_policy():
    """
    Build the configured access policy.

    OperatorPolicy receives CONTACT_ADMIN_OPERATOR_EMAIL; AllowlistPolicy
    receives CONTACT_ADMIN_ALLOWED_EMAILS plus the operator address. Any
    other class is instantiated without arguments.
    """
    policy_class = import_string(settings.CONTACT_ADMIN_ACCESS_POLICY)

    if issubclass(policy_class, OperatorPolicy):
        return policy_class(settings.CONTACT_ADMIN_OPERATOR_EMAIL)

    if issubclass(policy_class, AllowlistPolicy):
        emails = list(settings.CONTACT_ADMIN_ALLOWED_EMAILS)
        if settings.CONTACT_ADMIN_OPERATOR_EMAIL:
            emails.append(settings.CONTACT_ADMIN_OPERATOR_EMAIL)
        return policy_class(emails)

    return policy_class()


__all__ = [
    'BasePolicy',
    'OperatorPolicy',
    'AllowlistPolicy',
    'get_access_policy',
]
