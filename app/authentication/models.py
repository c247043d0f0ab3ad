"""
Authentication models.

This module defines the marketplace User:
- User: Custom user model with email-based authentication, carrying the
  marketplace role (renter / owner / admin) and the country used for
  payout account onboarding.

Related files:
    - managers.py: Custom user manager for email-based creation
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class UserRole(models.TextChoices):
    """Marketplace role of a user."""

    RENTER = "RENTER", "Renter"
    OWNER = "OWNER", "Owner"
    ADMIN = "ADMIN", "Admin"


class Country(models.TextChoices):
    """Countries the marketplace operates in."""

    NZ = "NZ", "New Zealand"
    AU = "AU", "Australia"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        first_name / last_name: Display name used in payout summaries
        role: Marketplace role (renters book, owners list and get paid)
        country: Operating country (selects payout account country)
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created

    Usage:
        owner = User.objects.create_user(
            email="owner@example.com",
            password="securepassword",
            role=UserRole.OWNER,
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)

    role = models.CharField(
        max_length=10,
        choices=UserRole.choices,
        default=UserRole.RENTER,
        help_text="Marketplace role",
    )

    country = models.CharField(
        max_length=2,
        choices=Country.choices,
        default=Country.NZ,
        help_text="Operating country for payments and payouts",
    )

    # Account status flags
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    # Timestamps
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        """Return the user's email as string representation."""
        return self.email

    def get_full_name(self):
        """Return "first last", or the email when no name is set."""
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    def get_short_name(self):
        """Return the first name, or the email local part."""
        return self.first_name or self.email.split("@")[0]

    @property
    def is_owner(self) -> bool:
        """Owners and admins may hold payout accounts."""
        return self.role in (UserRole.OWNER, UserRole.ADMIN)
