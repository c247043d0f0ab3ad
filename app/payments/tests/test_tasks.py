"""
Tests for the scheduled payment tasks.

Webhook tasks are covered in payments/webhooks/tests/test_tasks.py.
"""

from unittest.mock import patch

import pytest
from freezegun import freeze_time

from payments.exceptions import StripeAPIUnavailableError
from payments.models import BondHold, Payout
from payments.services.payout_service import PayoutBatchResult
from payments.state_machines import BondHoldStatus, PayoutSchedule, PayoutStatus
from payments.tasks import (
    expire_bond_holds,
    process_scheduled_payouts,
    reconcile_stale_payments,
    retry_pending_payouts,
)
from payments.tests.factories import BondHoldFactory, PaymentIntentFactory


@pytest.mark.django_db
class TestProcessScheduledPayouts:
    def test_pays_out_owners_on_the_schedule(self, processor, paid_intent, payout_account):
        result = process_scheduled_payouts(PayoutSchedule.WEEKLY)

        assert result["schedule"] == PayoutSchedule.WEEKLY
        assert result["owners_processed"] == 1
        payout = Payout.objects.get()
        assert result["payouts_created"] == [str(payout.id)]
        assert result["errors"] == {}
        assert payout.status == PayoutStatus.PROCESSING

    def test_other_schedules_are_skipped(self, processor, paid_intent, payout_account):
        result = process_scheduled_payouts(PayoutSchedule.MONTHLY)

        assert result["payouts_created"] == []
        assert not Payout.objects.exists()

    def test_reports_service_result(self):
        with patch(
            "payments.services.PayoutService.process_scheduled_payouts",
            return_value=PayoutBatchResult(
                schedule=PayoutSchedule.DAILY,
                owners_processed=2,
                payouts_created=["payout-1"],
                errors={"owner-1": "Stripe down"},
            ),
        ):
            result = process_scheduled_payouts(PayoutSchedule.DAILY)

        assert result == {
            "schedule": PayoutSchedule.DAILY,
            "owners_processed": 2,
            "payouts_created": ["payout-1"],
            "errors": {"owner-1": "Stripe down"},
        }


@pytest.mark.django_db
class TestRetryPendingPayouts:
    def test_interrupted_transfer_is_retried(self, processor, paid_intent, payout_account):
        with freeze_time("2026-03-01 10:00:00"):
            processor.fail("create_transfer", StripeAPIUnavailableError("Stripe down"))
            payout = process_and_get_payout()
            assert payout.status == PayoutStatus.PENDING

        processor.errors.clear()
        with freeze_time("2026-03-01 10:10:00"):
            result = retry_pending_payouts()

        assert result == {"payouts": {str(payout.id): PayoutStatus.PROCESSING}}

    def test_nothing_pending(self, processor):
        assert retry_pending_payouts() == {"payouts": {}}


def process_and_get_payout() -> Payout:
    process_scheduled_payouts(PayoutSchedule.WEEKLY)
    return Payout.objects.get()


@pytest.mark.django_db
def test_expire_bond_holds():
    with freeze_time("2026-03-01"):
        stale = BondHoldFactory()

    with freeze_time("2026-03-09"):
        result = expire_bond_holds()

    assert result == {"expired": 1}
    assert BondHold.objects.get(pk=stale.pk).status == BondHoldStatus.EXPIRED


@pytest.mark.django_db
def test_reconcile_stale_payments(processor):
    with freeze_time("2026-03-01 09:00:00"):
        payment_intent = PaymentIntentFactory()
    processor.set_intent(payment_intent.external_ref, "succeeded")

    with freeze_time("2026-03-01 10:00:00"):
        result = reconcile_stale_payments(older_than_minutes=30)

    assert result == {"checked": 1, "updated": 1, "errors": {}}
