"""
Tests for BookingStateSynchronizer.

Each payment signal may only move the booking along its one legal edge;
everything else is a no-op so redelivered or stale signals never roll a
booking back.
"""

import pytest

from audit.models import AuditAction, AuditLog
from bookings.models import Booking, BookingStatus
from notifications.models import Notification, NotificationType
from payments.models import PaymentIntent
from payments.services import BookingStateSynchronizer
from payments.state_machines import PaymentIntentStatus, PaymentSignal
from payments.tests.factories import PaymentIntentFactory


def intent_for(status: str, payment_status: str = PaymentIntentStatus.SUCCEEDED) -> PaymentIntent:
    return PaymentIntentFactory(booking__booking_status=status, status=payment_status)


def booking_status(payment_intent: PaymentIntent) -> str:
    return Booking.objects.get(pk=payment_intent.booking_id).booking_status


@pytest.mark.django_db
class TestSucceededSignal:
    def test_accepted_booking_moves_to_awaiting_pickup(self):
        payment_intent = intent_for(BookingStatus.ACCEPTED)

        new_status = BookingStateSynchronizer.sync(payment_intent, PaymentSignal.SUCCEEDED)

        assert new_status == BookingStatus.AWAITING_PICKUP
        assert booking_status(payment_intent) == BookingStatus.AWAITING_PICKUP

    def test_records_audit_and_notifies_owner(self):
        payment_intent = intent_for(BookingStatus.ACCEPTED)

        BookingStateSynchronizer.sync(payment_intent, PaymentSignal.SUCCEEDED, trigger="reconciliation")

        log = AuditLog.objects.get(
            booking_id=payment_intent.booking_id,
            action=AuditAction.BOOKING_STATUS_CHANGED,
        )
        assert log.metadata["previousStatus"] == BookingStatus.ACCEPTED
        assert log.metadata["newStatus"] == BookingStatus.AWAITING_PICKUP
        assert log.metadata["trigger"] == "reconciliation"

        notification = Notification.objects.get(notification_type=NotificationType.PAYMENT_RECEIVED)
        assert notification.recipient_id == payment_intent.booking.owner_id
        assert notification.data["bookingId"] == str(payment_intent.booking_id)

    @pytest.mark.parametrize(
        "status",
        [BookingStatus.AWAITING_PICKUP, BookingStatus.ACTIVE, BookingStatus.CANCELLED],
    )
    def test_other_states_are_untouched(self, status):
        payment_intent = intent_for(status)

        assert BookingStateSynchronizer.sync(payment_intent, PaymentSignal.SUCCEEDED) is None
        assert booking_status(payment_intent) == status

    def test_redelivery_sends_one_notification(self):
        payment_intent = intent_for(BookingStatus.ACCEPTED)

        BookingStateSynchronizer.sync(payment_intent, PaymentSignal.SUCCEEDED)
        BookingStateSynchronizer.sync(payment_intent, PaymentSignal.SUCCEEDED)

        assert Notification.objects.filter(
            notification_type=NotificationType.PAYMENT_RECEIVED
        ).count() == 1


@pytest.mark.django_db
class TestFailedAndCancelledSignals:
    def test_failed_keeps_booking_and_notifies_renter(self):
        payment_intent = intent_for(BookingStatus.ACCEPTED, PaymentIntentStatus.FAILED)

        assert BookingStateSynchronizer.sync(payment_intent, PaymentSignal.FAILED) is None

        assert booking_status(payment_intent) == BookingStatus.ACCEPTED
        notification = Notification.objects.get(notification_type=NotificationType.PAYMENT_FAILED)
        assert notification.recipient_id == payment_intent.booking.renter_id

    def test_cancelled_on_accepted_booking_notifies_renter(self):
        payment_intent = intent_for(BookingStatus.ACCEPTED, PaymentIntentStatus.CANCELLED)

        assert BookingStateSynchronizer.sync(payment_intent, PaymentSignal.CANCELLED) is None

        assert booking_status(payment_intent) == BookingStatus.ACCEPTED
        assert Notification.objects.filter(
            notification_type=NotificationType.PAYMENT_CANCELLED
        ).exists()

    def test_cancelled_on_later_booking_is_ignored(self):
        payment_intent = intent_for(BookingStatus.AWAITING_PICKUP, PaymentIntentStatus.CANCELLED)

        BookingStateSynchronizer.sync(payment_intent, PaymentSignal.CANCELLED)

        assert not Notification.objects.exists()


@pytest.mark.django_db
class TestRefundedSignal:
    @pytest.mark.parametrize(
        "status",
        [BookingStatus.ACCEPTED, BookingStatus.AWAITING_PICKUP, BookingStatus.ACTIVE],
    )
    def test_open_booking_is_cancelled(self, status):
        payment_intent = intent_for(status, PaymentIntentStatus.REFUNDED)

        new_status = BookingStateSynchronizer.sync(payment_intent, PaymentSignal.REFUNDED)

        assert new_status == BookingStatus.CANCELLED
        assert booking_status(payment_intent) == BookingStatus.CANCELLED
        assert Notification.objects.filter(
            notification_type=NotificationType.BOOKING_REFUNDED,
            recipient_id=payment_intent.booking.renter_id,
        ).exists()

    @pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED])
    def test_closed_booking_is_untouched(self, status):
        payment_intent = intent_for(status, PaymentIntentStatus.REFUNDED)

        assert BookingStateSynchronizer.sync(payment_intent, PaymentSignal.REFUNDED) is None
        assert booking_status(payment_intent) == status


@pytest.mark.django_db
class TestDisputeCreatedSignal:
    def test_active_booking_moves_to_in_dispute(self):
        payment_intent = intent_for(BookingStatus.ACTIVE)

        new_status = BookingStateSynchronizer.sync(
            payment_intent,
            PaymentSignal.DISPUTE_CREATED,
            context={"dispute_id": "dp_123", "reason": "product_not_received", "amount": "1000.00"},
        )

        assert new_status == BookingStatus.IN_DISPUTE
        assert booking_status(payment_intent) == BookingStatus.IN_DISPUTE

        payment_intent = PaymentIntent.objects.get(pk=payment_intent.pk)
        assert payment_intent.dispute_hold is True
        assert payment_intent.external_dispute_ref == "dp_123"
        assert payment_intent.pre_dispute_booking_status == BookingStatus.ACTIVE

        log = AuditLog.objects.get(action=AuditAction.DISPUTE_CREATED)
        assert log.metadata["disputeId"] == "dp_123"
        assert log.metadata["reason"] == "product_not_received"

        notification = Notification.objects.get(notification_type=NotificationType.DISPUTE_RAISED)
        assert notification.recipient_id == payment_intent.booking.owner_id

    def test_booking_already_in_dispute_keeps_status(self):
        payment_intent = intent_for(BookingStatus.IN_DISPUTE)

        new_status = BookingStateSynchronizer.sync(
            payment_intent,
            PaymentSignal.DISPUTE_CREATED,
            context={"dispute_id": "dp_456"},
        )

        assert new_status is None
        assert PaymentIntent.objects.get(pk=payment_intent.pk).dispute_hold is True

    @pytest.mark.parametrize(
        "status",
        [BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.DECLINED],
    )
    def test_closed_booking_is_ignored(self, status):
        payment_intent = intent_for(status)

        assert (
            BookingStateSynchronizer.sync(
                payment_intent,
                PaymentSignal.DISPUTE_CREATED,
                context={"dispute_id": "dp_789"},
            )
            is None
        )

        assert booking_status(payment_intent) == status
        assert PaymentIntent.objects.get(pk=payment_intent.pk).dispute_hold is False
        assert not AuditLog.objects.filter(action=AuditAction.DISPUTE_CREATED).exists()
