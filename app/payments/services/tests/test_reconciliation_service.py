"""
Tests for ReconciliationService.
"""

from decimal import Decimal

import pytest
from freezegun import freeze_time

from audit.models import AuditAction, AuditLog
from bookings.models import Booking, BookingStatus
from payments.exceptions import StripeAPIUnavailableError
from payments.models import PaymentIntent, Transaction
from payments.services import EscrowService, ReconciliationService
from payments.services.reconciliation_service import map_processor_status
from payments.state_machines import PaymentIntentStatus, TransactionType
from payments.tests.factories import PaymentIntentFactory


@pytest.mark.parametrize(
    "processor_status, expected",
    [
        ("succeeded", PaymentIntentStatus.SUCCEEDED),
        ("processing", PaymentIntentStatus.PROCESSING),
        ("canceled", PaymentIntentStatus.CANCELLED),
        ("requires_payment_method", PaymentIntentStatus.PENDING),
        ("requires_action", PaymentIntentStatus.PENDING),
        ("requires_capture", PaymentIntentStatus.PENDING),
        ("something_new", PaymentIntentStatus.FAILED),
    ],
)
def test_map_processor_status(processor_status, expected):
    assert map_processor_status(processor_status) == expected


@pytest.mark.django_db
class TestReconcilePaymentIntent:
    def test_missed_success_is_applied(self, processor, pending_intent):
        processor.set_intent(
            pending_intent.external_ref,
            "succeeded",
            latest_charge="ch_missed",
            amount_received=100000,
        )

        result = ReconciliationService.reconcile_payment_intent(pending_intent.external_ref)

        assert result.success
        payment_intent = PaymentIntent.objects.get(pk=pending_intent.pk)
        assert payment_intent.status == PaymentIntentStatus.SUCCEEDED
        assert payment_intent.external_charge_ref == "ch_missed"
        assert payment_intent.paid_at is not None
        assert Booking.objects.get(pk=pending_intent.booking_id).booking_status == (
            BookingStatus.AWAITING_PICKUP
        )

        txn = Transaction.objects.get(type=TransactionType.RENTAL_PAYMENT)
        assert txn.amount == Decimal("1000.00")

        log = AuditLog.objects.get(action=AuditAction.PAYMENT_RECONCILED)
        assert log.metadata["previousStatus"] == PaymentIntentStatus.PENDING
        assert log.metadata["newStatus"] == PaymentIntentStatus.SUCCEEDED
        assert log.metadata["processorStatus"] == "succeeded"

    def test_unknown_status_marks_failed(self, processor, pending_intent):
        processor.set_intent(
            pending_intent.external_ref,
            "blocked",
            last_payment_error="Blocked by radar",
        )

        ReconciliationService.reconcile_payment_intent(pending_intent.external_ref)

        payment_intent = PaymentIntent.objects.get(pk=pending_intent.pk)
        assert payment_intent.status == PaymentIntentStatus.FAILED
        assert payment_intent.failure_reason == "Blocked by radar"

    def test_matching_status_changes_nothing(self, processor, pending_intent):
        processor.set_intent(pending_intent.external_ref, "requires_payment_method")

        result = ReconciliationService.reconcile_payment_intent(pending_intent.external_ref)

        assert result.success
        assert result.data.status == PaymentIntentStatus.PENDING
        assert not AuditLog.objects.filter(action=AuditAction.PAYMENT_RECONCILED).exists()

    def test_refunded_record_is_never_regressed(self, processor):
        payment_intent = PaymentIntentFactory(status=PaymentIntentStatus.REFUNDED)
        processor.set_intent(payment_intent.external_ref, "succeeded")

        result = ReconciliationService.reconcile_payment_intent(payment_intent.external_ref)

        assert result.success
        assert PaymentIntent.objects.get(pk=payment_intent.pk).status == (
            PaymentIntentStatus.REFUNDED
        )
        assert not AuditLog.objects.filter(action=AuditAction.PAYMENT_RECONCILED).exists()

    def test_unknown_reference(self, processor):
        result = ReconciliationService.reconcile_payment_intent("pi_unknown")

        assert result.error_code == "PAYMENT_NOT_FOUND"
        assert processor.calls == []

    def test_processor_unavailable(self, processor, pending_intent):
        processor.fail("retrieve_payment_intent", StripeAPIUnavailableError("Stripe down"))

        result = ReconciliationService.reconcile_payment_intent(pending_intent.external_ref)

        assert result.error_code == "STRIPE_UNAVAILABLE"
        assert PaymentIntent.objects.get(pk=pending_intent.pk).status == (
            PaymentIntentStatus.PENDING
        )

    def test_client_confirmation_uses_reconciliation(self, processor, pending_intent):
        processor.set_intent(pending_intent.external_ref, "succeeded")

        result = EscrowService.confirm_payment_status(pending_intent.external_ref)

        assert result.data.status == PaymentIntentStatus.SUCCEEDED
        log = AuditLog.objects.get(action=AuditAction.PAYMENT_RECONCILED)
        assert log.metadata["trigger"] == "client_confirm"


@pytest.mark.django_db
class TestReconcileStalePayments:
    def test_only_stale_open_payments_are_checked(self, processor):
        with freeze_time("2026-03-01 09:00:00"):
            stale = PaymentIntentFactory()
            stale_processing = PaymentIntentFactory(status=PaymentIntentStatus.PROCESSING)
            settled = PaymentIntentFactory(status=PaymentIntentStatus.SUCCEEDED)
        with freeze_time("2026-03-01 09:50:00"):
            recent = PaymentIntentFactory()

        processor.set_intent(stale.external_ref, "succeeded")
        processor.set_intent(stale_processing.external_ref, "processing")

        with freeze_time("2026-03-01 10:00:00"):
            result = ReconciliationService.reconcile_stale_payments(older_than_minutes=30)

        assert result.checked == 2
        assert result.updated == 1
        assert result.errors == {}
        checked = {call["payment_intent_id"] for call in processor.calls_to("retrieve_payment_intent")}
        assert checked == {stale.external_ref, stale_processing.external_ref}
        assert settled.external_ref not in checked
        assert recent.external_ref not in checked

    def test_errors_are_collected_per_record(self, processor):
        with freeze_time("2026-03-01 09:00:00"):
            payment_intent = PaymentIntentFactory()
        processor.fail("retrieve_payment_intent", StripeAPIUnavailableError("Stripe down"))

        with freeze_time("2026-03-01 10:00:00"):
            result = ReconciliationService.reconcile_stale_payments()

        assert result.checked == 1
        assert result.updated == 0
        assert str(payment_intent.id) in result.errors

    def test_limit_bounds_the_batch(self, processor):
        with freeze_time("2026-03-01 09:00:00"):
            intents = PaymentIntentFactory.create_batch(3)
        for payment_intent in intents:
            processor.set_intent(payment_intent.external_ref, "requires_payment_method")

        with freeze_time("2026-03-01 10:00:00"):
            result = ReconciliationService.reconcile_stale_payments(limit=2)

        assert result.checked == 2
