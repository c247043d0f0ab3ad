"""
Booking lifecycle service.

BookingLifecycleService owns the legal booking transitions. The payment
core calls transition() for its payment-triggered edges; pickup and
return flows call it for the rest.

Usage:
    from bookings.models import BookingStatus
    from bookings.services import BookingLifecycleService

    BookingLifecycleService.transition(booking, BookingStatus.AWAITING_PICKUP)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.utils import timezone

from core.exceptions import ConflictError
from core.services import BaseService

from bookings.models import Booking, BookingStatus

if TYPE_CHECKING:
    from datetime import datetime

    from authentication.models import User


OPEN_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.ACCEPTED,
    BookingStatus.AWAITING_PICKUP,
    BookingStatus.ACTIVE,
)

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    BookingStatus.PENDING: {
        BookingStatus.ACCEPTED,
        BookingStatus.DECLINED,
        BookingStatus.CANCELLED,
        BookingStatus.IN_DISPUTE,
    },
    BookingStatus.ACCEPTED: {
        BookingStatus.AWAITING_PICKUP,
        BookingStatus.CANCELLED,
        BookingStatus.IN_DISPUTE,
    },
    BookingStatus.DECLINED: {BookingStatus.CANCELLED},
    BookingStatus.AWAITING_PICKUP: {
        BookingStatus.ACTIVE,
        BookingStatus.CANCELLED,
        BookingStatus.IN_DISPUTE,
    },
    BookingStatus.ACTIVE: {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.IN_DISPUTE,
    },
    # Resolution restores the status the booking had when the dispute opened
    BookingStatus.IN_DISPUTE: {
        BookingStatus.PENDING,
        BookingStatus.ACCEPTED,
        BookingStatus.AWAITING_PICKUP,
        BookingStatus.ACTIVE,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


class BookingTransitionError(ConflictError):
    """Raised when a booking cannot move to the requested status."""

    default_error_code: str = "INVALID_BOOKING_TRANSITION"


class BookingLifecycleService(BaseService):
    """Applies booking status transitions."""

    @classmethod
    def can_transition(cls, booking: Booking, new_status: str) -> bool:
        return new_status in ALLOWED_TRANSITIONS.get(booking.booking_status, set())

    @classmethod
    def transition(
        cls,
        booking: Booking,
        new_status: str,
        actor: User | None = None,
        reason: str = "",
    ) -> Booking:
        """
        Move a booking to new_status.

        The caller is expected to hold a row lock on the booking when the
        transition is driven by a concurrent source (webhooks).

        Raises:
            BookingTransitionError: If the transition is not allowed
        """
        previous = booking.booking_status
        if not cls.can_transition(booking, new_status):
            raise BookingTransitionError(
                f"Cannot move booking from {previous} to {new_status}",
                details={
                    "booking_id": str(booking.id),
                    "current_status": previous,
                    "target_status": new_status,
                },
            )

        booking.booking_status = new_status
        update_fields = ["booking_status", "updated_at"]
        if new_status == BookingStatus.COMPLETED and booking.actual_return_time is None:
            booking.actual_return_time = timezone.now()
            update_fields.append("actual_return_time")
        booking.save(update_fields=update_fields)

        cls.get_logger().info(
            f"Booking {booking.id}: {previous} -> {new_status}",
            extra={
                "booking_id": str(booking.id),
                "previous_status": previous,
                "new_status": new_status,
                "actor_id": actor.pk if actor else None,
                "reason": reason,
            },
        )
        return booking

    @classmethod
    def mark_returned(cls, booking: Booking, returned_at: datetime | None = None) -> Booking:
        """Record the return of an ACTIVE rental and complete it."""
        booking.actual_return_time = returned_at or timezone.now()
        booking.save(update_fields=["actual_return_time", "updated_at"])
        return cls.transition(booking, BookingStatus.COMPLETED, reason="returned")
