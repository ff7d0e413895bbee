"""
Settings for the test suite.

Runs against the in-memory remote data service in tests/fakes.py; no
network access, no .env file required.
"""
import os

os.environ.setdefault('SECRET_KEY', 'test-secret-key-not-for-production')

from .settings import *  # noqa: E402,F401,F403

DEBUG = False

TIME_ZONE = 'UTC'

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'contact-admin-tests',
    }
}

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

SUPABASE_URL = 'https://test-project.supabase.co'
SUPABASE_ANON_KEY = 'test-anon-key'

CONTACT_ADMIN_REMOTE_DATA_SERVICE = 'tests.fakes.InMemoryDataService'
CONTACT_ADMIN_OPERATOR_EMAIL = 'operator@example.com'
CONTACT_ADMIN_ACCESS_POLICY = 'accounts.policies.OperatorPolicy'
CONTACT_ADMIN_OPERATION_TIMEOUT = 5

SECURE_SSL_REDIRECT = False

LOGGING['root']['level'] = 'WARNING'  # noqa: F405
