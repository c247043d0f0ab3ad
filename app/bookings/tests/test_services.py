"""
Tests for BookingLifecycleService.
"""

import pytest

from bookings.models import BookingStatus
from bookings.services import BookingLifecycleService, BookingTransitionError
from bookings.tests.factories import BookingFactory


@pytest.mark.django_db
class TestTransition:
    """Tests for BookingLifecycleService.transition."""

    def test_accepted_to_awaiting_pickup(self):
        booking = BookingFactory(booking_status=BookingStatus.ACCEPTED)

        BookingLifecycleService.transition(booking, BookingStatus.AWAITING_PICKUP)

        booking.refresh_from_db()
        assert booking.booking_status == BookingStatus.AWAITING_PICKUP

    def test_illegal_transition_raises(self):
        """Completed bookings are terminal."""
        booking = BookingFactory(booking_status=BookingStatus.COMPLETED)

        with pytest.raises(BookingTransitionError) as exc_info:
            BookingLifecycleService.transition(booking, BookingStatus.ACCEPTED)

        assert exc_info.value.details["current_status"] == BookingStatus.COMPLETED
        booking.refresh_from_db()
        assert booking.booking_status == BookingStatus.COMPLETED

    def test_completion_sets_return_time(self):
        """Resolving a dispute to COMPLETED stamps the return time if missing."""
        booking = BookingFactory(booking_status=BookingStatus.IN_DISPUTE)

        BookingLifecycleService.transition(booking, BookingStatus.COMPLETED)

        booking.refresh_from_db()
        assert booking.actual_return_time is not None

    def test_mark_returned_completes_active_booking(self):
        booking = BookingFactory(booking_status=BookingStatus.ACTIVE)

        BookingLifecycleService.mark_returned(booking)

        booking.refresh_from_db()
        assert booking.booking_status == BookingStatus.COMPLETED
