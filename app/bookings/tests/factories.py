"""
Factory Boy factories for bookings.

Usage:
    from bookings.tests.factories import BookingFactory

    booking = BookingFactory(booking_status=BookingStatus.ACCEPTED)
"""

import datetime
from decimal import Decimal

import factory

from authentication.tests.factories import OwnerFactory, UserFactory
from bookings.models import Booking, BookingStatus


class BookingFactory(factory.django.DjangoModelFactory):
    """Factory for Booking; ACCEPTED NZD rental by default."""

    class Meta:
        model = Booking
        skip_postgeneration_save = True

    booking_status = BookingStatus.ACCEPTED
    renter = factory.SubFactory(UserFactory)
    owner = factory.SubFactory(OwnerFactory)
    listing_title = factory.Faker("catch_phrase")
    rental_total = Decimal("1000.00")
    bond_amount = Decimal("0.00")
    currency = "NZD"
    start_date = factory.LazyFunction(lambda: datetime.date.today())
    end_date = factory.LazyAttribute(lambda o: o.start_date + datetime.timedelta(days=3))


class CompletedBookingFactory(BookingFactory):
    """A returned, completed booking."""

    booking_status = BookingStatus.COMPLETED
    actual_return_time = factory.LazyFunction(
        lambda: datetime.datetime.now(tz=datetime.timezone.utc)
    )
