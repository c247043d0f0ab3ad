"""
Booking state synchronization driven by payment signals.

Payment outcomes (webhooks, reconciliation, refunds) move the booking
through a small, fixed table of legal edges. Anything not in the table
is a no-op, so a stale or redelivered signal can never roll a booking
back.

    Current booking state                Signal            New state
    ACCEPTED                             SUCCEEDED         AWAITING_PICKUP
    any                                  FAILED            unchanged
    ACCEPTED                             CANCELLED         unchanged
    not CANCELLED / COMPLETED            REFUNDED (full)   CANCELLED
    not COMPLETED / CANCELLED / DECLINED DISPUTE_CREATED   IN_DISPUTE

Callers hold row locks on the PaymentIntent and Booking and own the
surrounding transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from audit.models import AuditAction
from audit.services import AuditService
from bookings.models import BookingStatus
from bookings.services import BookingLifecycleService
from core.services import BaseService
from notifications.models import NotificationType
from notifications.services import NotificationService

from payments.state_machines import PaymentSignal

if TYPE_CHECKING:
    from bookings.models import Booking
    from payments.models import PaymentIntent


DISPUTE_BLOCKED_STATUSES = (
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.DECLINED,
)

REFUND_BLOCKED_STATUSES = (
    BookingStatus.CANCELLED,
    BookingStatus.COMPLETED,
)


class BookingStateSynchronizer(BaseService):
    """
    Applies the payment signal -> booking transition table.

    Methods:
        sync: Apply one signal to the booking of a PaymentIntent
    """

    @classmethod
    def sync(
        cls,
        payment_intent: PaymentIntent,
        signal: PaymentSignal,
        trigger: str = "webhook",
        context: dict[str, Any] | None = None,
    ) -> str | None:
        """
        Apply a payment signal to the booking.

        Args:
            payment_intent: Locked PaymentIntent the signal belongs to
            signal: PaymentSignal value
            trigger: What produced the signal (webhook, reconciliation, refund)
            context: Signal details (dispute id, reason, amount)

        Returns:
            The booking's new status if it changed, else None
        """
        context = context or {}
        booking = payment_intent.booking
        handler = {
            PaymentSignal.SUCCEEDED: cls._on_succeeded,
            PaymentSignal.FAILED: cls._on_failed,
            PaymentSignal.CANCELLED: cls._on_cancelled,
            PaymentSignal.REFUNDED: cls._on_refunded,
            PaymentSignal.DISPUTE_CREATED: cls._on_dispute_created,
        }[PaymentSignal(signal)]

        cls.get_logger().info(
            f"Syncing booking for payment signal {signal}",
            extra={
                "booking_id": str(booking.id),
                "booking_status": booking.booking_status,
                "payment_intent_id": str(payment_intent.id),
                "signal": str(signal),
                "trigger": trigger,
            },
        )
        return handler(payment_intent, booking, trigger, context)

    # =========================================================================
    # Signal handlers
    # =========================================================================

    @classmethod
    def _on_succeeded(cls, payment_intent, booking, trigger, context):
        if booking.booking_status != BookingStatus.ACCEPTED:
            return None

        cls._transition(payment_intent, booking, BookingStatus.AWAITING_PICKUP, trigger)
        cls._notify(
            booking.owner,
            NotificationType.PAYMENT_RECEIVED,
            booking,
            payment_intent,
            idempotency_key=f"payment_received:{booking.id}",
        )
        return booking.booking_status

    @classmethod
    def _on_failed(cls, payment_intent, booking, trigger, context):
        cls._notify(booking.renter, NotificationType.PAYMENT_FAILED, booking, payment_intent)
        return None

    @classmethod
    def _on_cancelled(cls, payment_intent, booking, trigger, context):
        if booking.booking_status != BookingStatus.ACCEPTED:
            return None
        cls._notify(booking.renter, NotificationType.PAYMENT_CANCELLED, booking, payment_intent)
        return None

    @classmethod
    def _on_refunded(cls, payment_intent, booking, trigger, context):
        if booking.booking_status in REFUND_BLOCKED_STATUSES:
            return None

        cls._transition(payment_intent, booking, BookingStatus.CANCELLED, trigger)
        cls._notify(
            booking.renter,
            NotificationType.BOOKING_REFUNDED,
            booking,
            payment_intent,
            idempotency_key=f"booking_refunded:{booking.id}",
        )
        return booking.booking_status

    @classmethod
    def _on_dispute_created(cls, payment_intent, booking, trigger, context):
        if booking.booking_status in DISPUTE_BLOCKED_STATUSES:
            cls.get_logger().info(
                "Dispute on closed booking ignored",
                extra={"booking_id": str(booking.id), "booking_status": booking.booking_status},
            )
            return None

        reason = context.get("reason") or "unknown"
        dispute_id = context.get("dispute_id") or ""

        payment_intent.dispute_hold = True
        payment_intent.external_dispute_ref = dispute_id
        update_fields = ["dispute_hold", "external_dispute_ref", "updated_at"]
        if booking.booking_status != BookingStatus.IN_DISPUTE:
            payment_intent.pre_dispute_booking_status = booking.booking_status
            update_fields.append("pre_dispute_booking_status")
        payment_intent.save(update_fields=update_fields)

        new_status = None
        if booking.booking_status != BookingStatus.IN_DISPUTE:
            cls._transition(payment_intent, booking, BookingStatus.IN_DISPUTE, trigger)
            new_status = booking.booking_status

        AuditService.record(
            action=AuditAction.DISPUTE_CREATED,
            description=f"Payment dispute created: {reason}",
            target_type="booking",
            target_id=booking.id,
            booking=booking,
            metadata={
                "disputeId": dispute_id,
                "reason": reason,
                "amount": str(context.get("amount", "")),
            },
        )

        data = {
            "bookingId": str(booking.id),
            "disputeId": dispute_id,
            "reason": reason,
            "amount": str(context.get("amount", "")),
            "listingTitle": booking.listing_title,
        }
        result = NotificationService.notify(
            recipient=booking.owner,
            notification_type=NotificationType.DISPUTE_RAISED,
            data=data,
            idempotency_key=f"dispute_raised:{dispute_id or booking.id}",
        )
        if not result.success:
            cls.get_logger().info(
                f"Dispute notification not sent: {result.error_code}",
                extra={"booking_id": str(booking.id)},
            )
        return new_status

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _transition(
        cls,
        payment_intent: PaymentIntent,
        booking: Booking,
        new_status: str,
        trigger: str,
    ) -> None:
        previous = booking.booking_status
        BookingLifecycleService.transition(
            booking,
            new_status,
            reason=f"payment {payment_intent.status.lower()} ({trigger})",
        )
        AuditService.record(
            action=AuditAction.BOOKING_STATUS_CHANGED,
            description=(
                f"Booking status changed from {previous} to {new_status} "
                f"due to payment {payment_intent.status}"
            ),
            target_type="booking",
            target_id=booking.id,
            booking=booking,
            metadata={
                "previousStatus": previous,
                "newStatus": new_status,
                "paymentStatus": payment_intent.status,
                "trigger": trigger,
            },
        )

    @classmethod
    def _notify(
        cls,
        recipient,
        notification_type: str,
        booking: Booking,
        payment_intent: PaymentIntent,
        idempotency_key: str | None = None,
    ) -> None:
        result = NotificationService.notify(
            recipient=recipient,
            notification_type=notification_type,
            data={
                "bookingId": str(booking.id),
                "listingTitle": booking.listing_title,
                "paymentStatus": payment_intent.status,
            },
            idempotency_key=idempotency_key,
        )
        if not result.success:
            # Duplicate keys are expected on redelivery
            cls.get_logger().info(
                f"Notification {notification_type} not sent: {result.error_code}",
                extra={"booking_id": str(booking.id)},
            )
