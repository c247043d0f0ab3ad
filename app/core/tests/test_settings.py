"""
Tests for the test-run settings overrides in the root conftest.
"""

import os

import pytest
from django.conf import settings
from django.db import connection

from authentication.models import User


@pytest.mark.django_db
def test_plain_http_requests_are_not_redirected(client):
    response = client.get("/api/v1/payments/payouts/")

    assert settings.SECURE_SSL_REDIRECT is False
    assert response.status_code == 401


@pytest.mark.skipif("DATABASE_URL" in os.environ, reason="explicit database configured")
class TestSqliteFallback:
    def test_default_database_keeps_connection_keys(self):
        database = settings.DATABASES["default"]

        assert database["ENGINE"] == "django.db.backends.sqlite3"
        assert database["NAME"] == ":memory:"
        assert database["HOST"] == ""
        assert database["OPTIONS"] == {}

    @pytest.mark.django_db
    def test_test_database_is_created(self):
        assert connection.vendor == "sqlite"
        assert User.objects.count() == 0
