"""
Factory Boy factories for authentication models.

Usage:
    from authentication.tests.factories import UserFactory, OwnerFactory

    renter = UserFactory()
    owner = OwnerFactory(first_name="Aroha")
"""

import factory

from authentication.models import User, UserRole


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for User model.

    Creates active renters by default.
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    email = factory.Sequence(lambda n: f"user{n}@example.com")
    first_name = factory.Faker("first_name")
    last_name = factory.Faker("last_name")
    role = UserRole.RENTER
    is_active = True
    is_staff = False

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        """Override create to use UserManager.create_user()."""
        password = kwargs.pop("password", "TestPass123!")
        return model_class.objects.create_user(
            email=kwargs.pop("email"), password=password, **kwargs
        )


class OwnerFactory(UserFactory):
    """Factory for equipment owners."""

    role = UserRole.OWNER


class StaffFactory(UserFactory):
    """Factory for platform staff (admin API access)."""

    role = UserRole.ADMIN
    is_staff = True
