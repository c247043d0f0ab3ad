"""
Tests for the email-based UserManager.
"""

import pytest

from authentication.models import User, UserRole


@pytest.mark.django_db
class TestUserManager:
    """Tests for user creation helpers."""

    def test_create_user_normalizes_email(self):
        """Domain part of the email is lower-cased."""
        user = User.objects.create_user(email="Owner@EXAMPLE.com", password="pw")

        assert user.email == "Owner@example.com"
        assert user.check_password("pw")
        assert user.role == UserRole.RENTER

    def test_create_user_requires_email(self):
        """An empty email is rejected."""
        with pytest.raises(ValueError):
            User.objects.create_user(email="", password="pw")

    def test_create_user_without_password_is_unusable(self):
        """Users created without a password cannot log in with one."""
        user = User.objects.create_user(email="nopw@example.com")

        assert not user.has_usable_password()

    def test_create_superuser_is_admin(self):
        """Superusers are staff with the admin role."""
        admin = User.objects.create_superuser(email="admin@example.com", password="pw")

        assert admin.is_staff
        assert admin.is_superuser
        assert admin.role == UserRole.ADMIN
        assert admin.is_owner

    def test_full_name_falls_back_to_email(self):
        """Users without a name display their email."""
        user = User.objects.create_user(email="anon@example.com")

        assert user.get_full_name() == "anon@example.com"
        assert user.get_short_name() == "anon"
