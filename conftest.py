"""
Root pytest configuration for the Django project.

This module adjusts settings for the test run. Shared fixtures live in
app/conftest.py; app-specific fixtures in each app's tests/conftest.py.

Without a DATABASE_URL in the environment the suite runs against an
in-memory SQLite database, so it does not need the docker-compose
PostgreSQL service.
"""

import os

import environ
import pytest


def pytest_configure():
    """Configure Django settings before tests run."""
    from django.conf import settings
    from django.db import connections

    if "DATABASE_URL" not in os.environ:
        # Updated in place; connection handlers hold a reference to this dict
        settings.DATABASES["default"].update(
            environ.Env.db_url_config("sqlite://:memory:"),
            HOST="",
            PORT="",
            USER="",
            PASSWORD="",
            OPTIONS={},
        )
        # Drop the handler's cached view of DATABASES
        connections.__dict__.pop("settings", None)
        # Drop any wrapper already built from the PostgreSQL settings
        if hasattr(connections._connections, "default"):
            del connections["default"]

    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
    }

    # Tasks queued by views run inline
    from config.celery import app as celery_app

    # Namespaced keys: the app reads settings with namespace="CELERY"
    celery_app.conf.CELERY_TASK_ALWAYS_EAGER = True
    celery_app.conf.CELERY_TASK_EAGER_PROPAGATES = False

    # Test client requests are plain HTTP
    settings.SECURE_SSL_REDIRECT = False


@pytest.fixture(scope="session")
def django_db_modify_db_settings():
    """Allow database modifications for testing."""
    pass
