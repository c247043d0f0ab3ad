"""
Pytest fixtures for webhook tests.

Provides request helpers for the webhook view, WebhookEvent rows in each
ledger state, and processor event payloads for the registered handlers.
"""

import json

import pytest
from django.test import RequestFactory

from payments.state_machines import ProcessorEventType, WebhookEventStatus
from payments.tests.factories import (
    PayoutItemFactory,
    ProcessingPayoutFactory,
    WebhookEventFactory,
    recorded_webhook_event,
)


WEBHOOK_URL = "/api/v1/payments/webhooks/stripe/"


# =============================================================================
# Requests
# =============================================================================


@pytest.fixture
def rf():
    """Request factory for creating test requests."""
    return RequestFactory()


@pytest.fixture
def make_webhook_request(rf):
    """Build a signed POST to the webhook endpoint."""

    def _make(payload: dict, signature: str | None = "t=1614556800,v1=test_sig"):
        headers = {}
        if signature is not None:
            headers["HTTP_STRIPE_SIGNATURE"] = signature
        return rf.post(
            WEBHOOK_URL,
            data=json.dumps(payload),
            content_type="application/json",
            **headers,
        )

    return _make


# =============================================================================
# Ledger rows
# =============================================================================


@pytest.fixture
def pending_webhook_event(db):
    return WebhookEventFactory()


@pytest.fixture
def processed_webhook_event(db):
    return WebhookEventFactory(status=WebhookEventStatus.PROCESSED)


@pytest.fixture
def failed_webhook_event(db):
    return WebhookEventFactory(
        status=WebhookEventStatus.FAILED,
        last_error="Handler exploded",
        attempts=2,
    )


# =============================================================================
# Payment intent payloads
# =============================================================================


@pytest.fixture
def succeeded_event(pending_intent):
    return recorded_webhook_event(
        ProcessorEventType.PAYMENT_INTENT_SUCCEEDED,
        {
            "id": pending_intent.external_ref,
            "object": "payment_intent",
            "status": "succeeded",
            "amount_received": 100000,
            "latest_charge": "ch_test_succeeded",
        },
    )


@pytest.fixture
def failed_event(pending_intent):
    return recorded_webhook_event(
        ProcessorEventType.PAYMENT_INTENT_FAILED,
        {
            "id": pending_intent.external_ref,
            "object": "payment_intent",
            "status": "requires_payment_method",
            "last_payment_error": {"message": "Your card has insufficient funds."},
        },
    )


# =============================================================================
# Payouts
# =============================================================================


@pytest.fixture
def processing_payout(paid_intent, payout_account):
    """A PROCESSING payout of paid_intent's booking with escrow released."""
    payout = ProcessingPayoutFactory(owner_account=payout_account)
    PayoutItemFactory(payout=payout, booking=paid_intent.booking)
    paid_intent.is_in_escrow = False
    paid_intent.save(update_fields=["is_in_escrow", "updated_at"])
    return payout
