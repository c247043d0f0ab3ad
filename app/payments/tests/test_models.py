"""
Tests for payment domain models.

Tests model constraints, defaults, optimistic-lock versioning and the
django-fsm transitions of BondHold and Payout.
"""

import datetime
from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django_fsm import TransitionNotAllowed
from freezegun import freeze_time

from payments.exceptions import ImmutableRecordError
from payments.models import OwnerPayoutAccount, PaymentIntent, Payout, Transaction, WebhookEvent
from payments.state_machines import (
    BondHoldStatus,
    PaymentIntentStatus,
    PayoutStatus,
    TransactionType,
    WebhookEventStatus,
)
from payments.tests.factories import (
    BondHoldFactory,
    OwnerPayoutAccountFactory,
    PaymentIntentFactory,
    PayoutFactory,
    PayoutItemFactory,
    WebhookEventFactory,
)


def make_transaction(**overrides) -> Transaction:
    fields = {
        "type": TransactionType.RENTAL_PAYMENT,
        "reference_type": "Booking",
        "reference_id": "booking-1",
        "currency": "NZD",
        "amount": Decimal("100.00"),
    }
    fields.update(overrides)
    return Transaction.objects.create(**fields)


# =============================================================================
# PaymentIntent
# =============================================================================


@pytest.mark.django_db
class TestPaymentIntent:
    def test_save_increments_version(self):
        payment_intent = PaymentIntentFactory()
        assert payment_intent.version == 1

        payment_intent.status = PaymentIntentStatus.PROCESSING
        payment_intent.save(update_fields=["status", "updated_at"])

        assert payment_intent.version == 2
        assert PaymentIntent.objects.get(pk=payment_intent.pk).version == 2

    def test_refund_cannot_exceed_total(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PaymentIntentFactory(refunded_amount=Decimal("1000.01"))

    def test_negative_amounts_rejected(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PaymentIntentFactory(owner_amount=Decimal("-1.00"))

    def test_refundable_amount(self):
        payment_intent = PaymentIntentFactory.build(refunded_amount=Decimal("250.00"))

        assert payment_intent.refundable_amount == Decimal("750.00")

    @pytest.mark.parametrize(
        "fields, eligible",
        [
            ({"status": PaymentIntentStatus.SUCCEEDED}, True),
            ({"status": PaymentIntentStatus.PARTIALLY_REFUNDED}, True),
            ({"status": PaymentIntentStatus.REFUNDED}, False),
            ({"status": PaymentIntentStatus.PENDING}, False),
            ({"status": PaymentIntentStatus.SUCCEEDED, "is_in_escrow": False}, False),
            ({"status": PaymentIntentStatus.SUCCEEDED, "dispute_hold": True}, False),
        ],
    )
    def test_is_payout_eligible(self, fields, eligible):
        assert PaymentIntentFactory.build(**fields).is_payout_eligible is eligible


# =============================================================================
# Transaction
# =============================================================================


@pytest.mark.django_db
class TestTransaction:
    def test_entries_cannot_be_updated(self):
        txn = make_transaction()
        txn.amount = Decimal("1.00")

        with pytest.raises(ImmutableRecordError):
            txn.save()

        assert Transaction.objects.get(pk=txn.pk).amount == Decimal("100.00")

    def test_entries_cannot_be_deleted(self):
        txn = make_transaction()

        with pytest.raises(ImmutableRecordError):
            txn.delete()

        assert Transaction.objects.filter(pk=txn.pk).exists()

    def test_amount_must_be_non_negative(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                make_transaction(amount=Decimal("-0.01"))

    def test_idempotency_key_is_unique(self):
        make_transaction(idempotency_key="rental_payment:1")

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                make_transaction(idempotency_key="rental_payment:1")

    def test_entries_without_key_do_not_collide(self):
        make_transaction()
        make_transaction()

        assert Transaction.objects.count() == 2


# =============================================================================
# BondHold
# =============================================================================


@pytest.mark.django_db
class TestBondHoldTransitions:
    def test_partial_capture_then_release(self):
        bond_hold = BondHoldFactory()

        bond_hold.capture(Decimal("120.00"), "Dirty")
        bond_hold.release()

        assert bond_hold.status == BondHoldStatus.RELEASED
        assert bond_hold.captured_amount == Decimal("120.00")
        assert bond_hold.released_amount == Decimal("380.00")

    def test_full_capture_is_terminal(self):
        bond_hold = BondHoldFactory()
        bond_hold.capture(Decimal("500.00"), "Lost")

        assert bond_hold.status == BondHoldStatus.CAPTURED
        with pytest.raises(TransitionNotAllowed):
            bond_hold.release()

    def test_expired_hold_cannot_be_captured(self):
        with freeze_time("2026-03-01"):
            bond_hold = BondHoldFactory()

        with freeze_time("2026-03-08 00:00:01"):
            assert bond_hold.is_expired
            with pytest.raises(TransitionNotAllowed):
                bond_hold.capture(Decimal("10.00"), "Late")

    def test_expiry_boundary_is_inclusive(self):
        bond_hold = BondHoldFactory(
            expires_at=datetime.datetime(2026, 3, 8, tzinfo=datetime.timezone.utc)
        )

        with freeze_time("2026-03-08 00:00:00"):
            assert bond_hold.is_expired

    def test_expire_releases_everything(self):
        bond_hold = BondHoldFactory()

        bond_hold.expire()

        assert bond_hold.status == BondHoldStatus.EXPIRED
        assert bond_hold.released_amount == Decimal("500.00")

    def test_status_cannot_be_assigned_directly(self):
        bond_hold = BondHoldFactory()

        with pytest.raises(AttributeError):
            bond_hold.status = BondHoldStatus.CAPTURED

    def test_save_increments_version(self):
        bond_hold = BondHoldFactory()

        bond_hold.release()
        bond_hold.save()

        assert bond_hold.version == 2


# =============================================================================
# Payout
# =============================================================================


@pytest.mark.django_db
class TestPayoutTransitions:
    def test_transfer_then_complete(self):
        payout = PayoutFactory()

        payout.start_processing("tr_123")
        payout.save()
        payout.complete()
        payout.save()

        stored = Payout.objects.get(pk=payout.pk)
        assert stored.status == PayoutStatus.COMPLETED
        assert stored.external_transfer_ref == "tr_123"
        assert stored.processed_at is not None
        assert stored.version == 3

    def test_completed_payout_can_fail_on_reversal(self):
        payout = PayoutFactory()
        payout.complete()

        payout.fail("Transfer reversed")

        assert payout.status == PayoutStatus.FAILED
        assert payout.failure_reason == "Transfer reversed"
        assert payout.failed_at is not None

    def test_completed_payout_cannot_be_cancelled(self):
        payout = PayoutFactory()
        payout.complete()

        with pytest.raises(TransitionNotAllowed):
            payout.cancel("Too late")

    def test_net_amount_must_be_positive(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PayoutFactory(net_amount=Decimal("0.00"))

    def test_booking_appears_once_per_payout(self):
        item = PayoutItemFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PayoutItemFactory(payout=item.payout, booking=item.booking)


# =============================================================================
# OwnerPayoutAccount & WebhookEvent
# =============================================================================


@pytest.mark.django_db
class TestOwnerPayoutAccount:
    def test_ready_when_onboarded_and_verified(self):
        assert OwnerPayoutAccountFactory().is_payout_ready is True

    @pytest.mark.parametrize(
        "fields",
        [
            {"onboarding_complete": False},
            {"is_verified": False},
            {"external_account_ref": ""},
        ],
    )
    def test_not_ready(self, fields):
        assert OwnerPayoutAccountFactory(**fields).is_payout_ready is False

    def test_default_minimum_payout(self, owner):
        account = OwnerPayoutAccount(owner=owner, external_account_ref="acct_default")

        assert account.minimum_payout_amount == Decimal("50.00")


@pytest.mark.django_db
class TestWebhookEvent:
    def test_external_event_id_is_unique(self):
        event = WebhookEventFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                WebhookEventFactory(external_event_id=event.external_event_id)

    def test_data_object(self):
        event = WebhookEventFactory.build(
            payload={"id": "evt_1", "data": {"object": {"id": "pi_1"}}}
        )

        assert event.data_object == {"id": "pi_1"}

    @pytest.mark.parametrize("payload", [{}, {"data": None}, {"data": {"object": "x"}}, []])
    def test_data_object_tolerates_malformed_payloads(self, payload):
        assert WebhookEventFactory.build(payload=payload).data_object == {}

    def test_mark_helpers(self):
        event = WebhookEventFactory.build()

        event.mark_failed("x" * 3000)
        assert event.status == WebhookEventStatus.FAILED
        assert len(event.last_error) == 2000

        event.mark_processed()
        assert event.is_processed
        assert event.last_error == ""
        assert event.processed_at is not None
