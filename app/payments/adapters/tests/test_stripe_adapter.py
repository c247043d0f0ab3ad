"""
Tests for the Stripe adapter.

Tests cover:
- Parameter validation and idempotency key generation
- Retry helpers (is_retryable_stripe_error, backoff_delay)
- Translation of SDK errors to payments exceptions
- Request shape of destination charges, bond holds, refunds and transfers
- Connected account calls and webhook verification
"""

import uuid

import pytest
import stripe
from django.test import override_settings

from payments.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
    backoff_delay,
    is_retryable_stripe_error,
)
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
    WebhookVerificationError,
)


def rental_params(**overrides) -> CreatePaymentIntentParams:
    params = {
        "amount_cents": 100000,
        "currency": "nzd",
        "idempotency_key": "create_intent:booking-1:1:abcd1234",
        "metadata": {"bookingId": "booking-1"},
        "application_fee_amount": 1500,
        "transfer_data": {"destination": "acct_owner123"},
    }
    params.update(overrides)
    return CreatePaymentIntentParams(**params)


# =============================================================================
# CreatePaymentIntentParams Tests
# =============================================================================


class TestCreatePaymentIntentParams:
    def test_defaults(self):
        params = CreatePaymentIntentParams(
            amount_cents=5000,
            currency="nzd",
            idempotency_key="key",
        )

        assert params.capture_method == "automatic"
        assert params.metadata == {}
        assert params.application_fee_amount is None
        assert params.confirm is False

    @pytest.mark.parametrize("amount", [0, -100])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValueError, match="amount_cents must be positive"):
            CreatePaymentIntentParams(amount_cents=amount, currency="nzd", idempotency_key="key")

    def test_idempotency_key_required(self):
        with pytest.raises(ValueError, match="idempotency_key is required"):
            CreatePaymentIntentParams(amount_cents=5000, currency="nzd", idempotency_key="")

    def test_currency_required(self):
        with pytest.raises(ValueError, match="currency is required"):
            CreatePaymentIntentParams(amount_cents=5000, currency="", idempotency_key="key")

    def test_application_fee_cannot_exceed_amount(self):
        with pytest.raises(ValueError, match="application_fee_amount"):
            rental_params(amount_cents=1000, application_fee_amount=1001)


# =============================================================================
# IdempotencyKeyGenerator Tests
# =============================================================================


class TestIdempotencyKeyGenerator:
    def test_key_format(self):
        entity_id = uuid.uuid4()

        key = IdempotencyKeyGenerator.generate("payout_transfer", entity_id)

        operation, entity, attempt, digest = key.split(":")
        assert operation == "payout_transfer"
        assert entity == str(entity_id)
        assert attempt == "1"
        assert len(digest) == 8

    def test_deterministic(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate("refund", entity_id, 2) == (
            IdempotencyKeyGenerator.generate("refund", entity_id, 2)
        )

    def test_attempt_and_operation_change_key(self):
        entity_id = uuid.uuid4()
        base = IdempotencyKeyGenerator.generate("refund", entity_id, 1)

        assert base != IdempotencyKeyGenerator.generate("refund", entity_id, 2)
        assert base != IdempotencyKeyGenerator.generate("bond_capture", entity_id, 1)


# =============================================================================
# Retry Helpers
# =============================================================================


class TestRetryHelpers:
    def test_transient_errors_are_retryable(self):
        assert is_retryable_stripe_error(StripeRateLimitError("Rate limited")) is True
        assert is_retryable_stripe_error(StripeAPIUnavailableError("Down")) is True
        assert is_retryable_stripe_error(StripeTimeoutError("Timeout")) is True

    def test_permanent_errors_are_not_retryable(self):
        assert is_retryable_stripe_error(StripeCardDeclinedError("Declined")) is False
        assert is_retryable_stripe_error(StripeInvalidAccountError("Bad account")) is False
        assert is_retryable_stripe_error(StripeInvalidRequestError("Bad request")) is False
        assert is_retryable_stripe_error(ValueError("not stripe")) is False

    def test_backoff_grows_exponentially_with_jitter(self):
        assert 1.0 <= backoff_delay(0) <= 1.25
        assert 4.0 <= backoff_delay(2) <= 5.0

    def test_backoff_is_capped(self):
        assert backoff_delay(10, max_delay=60.0) <= 75.0


# =============================================================================
# Error Translation
# =============================================================================


class TestStripeAdapterErrorTranslation:
    def test_card_declined(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            StripeAdapter.create_payment_intent(rental_params())

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_retryable is False

    def test_insufficient_funds(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error("insufficient_funds")

        with pytest.raises(StripeInsufficientFundsError):
            StripeAdapter.create_payment_intent(rental_params())

    def test_invalid_request(self, mock_stripe_payment_intent, invalid_request_error):
        mock_stripe_payment_intent.retrieve.side_effect = invalid_request_error()

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.retrieve_payment_intent("pi_missing")

        assert exc_info.value.stripe_code == "resource_missing"

    def test_invalid_destination_account(self, mock_stripe_transfer, invalid_request_error):
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="No such destination", param="destination", code="resource_missing"
        )

        with pytest.raises(StripeInvalidAccountError):
            StripeAdapter.create_transfer(98500, "acct_gone", "key")

    def test_rate_limit(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = stripe.RateLimitError("Too many")

        with pytest.raises(StripeRateLimitError) as exc_info:
            StripeAdapter.create_payment_intent(rental_params())

        assert exc_info.value.is_retryable is True

    def test_connection_timeout(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = stripe.APIConnectionError(
            "Request timed out"
        )

        with pytest.raises(StripeTimeoutError):
            StripeAdapter.create_payment_intent(rental_params())

    def test_connection_error(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = stripe.APIConnectionError(
            "Could not connect to Stripe."
        )

        with pytest.raises(StripeAPIUnavailableError):
            StripeAdapter.create_payment_intent(rental_params())

    def test_authentication_error(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = stripe.AuthenticationError("Bad key")

        with pytest.raises(StripeAuthenticationError):
            StripeAdapter.create_payment_intent(rental_params())

    def test_unknown_error_is_retryable_unavailable(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = RuntimeError("boom")

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            StripeAdapter.create_payment_intent(rental_params())

        assert exc_info.value.stripe_code == "unknown_error"


# =============================================================================
# PaymentIntents
# =============================================================================


class TestStripeAdapterPaymentIntents:
    def test_create_destination_charge(self, mock_stripe_payment_intent):
        result = StripeAdapter.create_payment_intent(rental_params())

        kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert kwargs["amount"] == 100000
        assert kwargs["currency"] == "nzd"
        assert kwargs["application_fee_amount"] == 1500
        assert kwargs["transfer_data"] == {"destination": "acct_owner123"}
        assert kwargs["automatic_payment_methods"] == {"enabled": True}
        assert kwargs["idempotency_key"] == "create_intent:booking-1:1:abcd1234"
        assert result.id == "pi_test123456"
        assert result.client_secret == "pi_test123456_secret_abc123"

    def test_create_bond_hold_uses_manual_capture(self, mock_stripe_payment_intent):
        params = CreatePaymentIntentParams(
            amount_cents=50000,
            currency="nzd",
            idempotency_key="bond_hold:booking-1:1:abcd1234",
            capture_method="manual",
            payment_method="pm_card_visa",
            confirm=True,
        )

        StripeAdapter.create_payment_intent(params)

        kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert kwargs["capture_method"] == "manual"
        assert kwargs["payment_method"] == "pm_card_visa"
        assert kwargs["confirm"] is True
        assert "automatic_payment_methods" not in kwargs
        assert "application_fee_amount" not in kwargs

    def test_retrieve_maps_charge_and_error(
        self, mock_stripe_payment_intent, mock_payment_intent
    ):
        mock_stripe_payment_intent.retrieve.return_value = mock_payment_intent(
            status="succeeded",
            amount_received=100000,
            latest_charge="ch_123",
        )

        result = StripeAdapter.retrieve_payment_intent("pi_test123456")

        assert result.status == "succeeded"
        assert result.latest_charge == "ch_123"
        assert result.amount_received == 100000
        assert result.last_payment_error is None

    def test_partial_capture(self, mock_stripe_payment_intent):
        result = StripeAdapter.capture_payment_intent(
            "pi_bond", idempotency_key="key", amount_to_capture=30000
        )

        mock_stripe_payment_intent.capture.assert_called_once_with(
            "pi_bond", idempotency_key="key", amount_to_capture=30000
        )
        assert result.amount_received == 30000

    def test_cancel(self, mock_stripe_payment_intent):
        result = StripeAdapter.cancel_payment_intent("pi_bond", idempotency_key="key")

        mock_stripe_payment_intent.cancel.assert_called_once_with("pi_bond", idempotency_key="key")
        assert result.status == "canceled"


# =============================================================================
# Refunds & Transfers
# =============================================================================


class TestStripeAdapterRefundsAndTransfers:
    def test_partial_refund(self, mock_stripe_refund):
        result = StripeAdapter.create_refund(
            "pi_test123456",
            idempotency_key="refund:pi:1:abcd1234",
            amount_cents=20000,
            reason="requested_by_customer",
            metadata={"bookingId": "booking-1"},
        )

        kwargs = mock_stripe_refund.create.call_args.kwargs
        assert kwargs["payment_intent"] == "pi_test123456"
        assert kwargs["amount"] == 20000
        assert kwargs["reason"] == "requested_by_customer"
        assert result.id == "re_test123456"
        assert result.payment_intent_id == "pi_test123456"

    def test_full_refund_omits_amount(self, mock_stripe_refund):
        StripeAdapter.create_refund("pi_test123456", idempotency_key="key")

        assert "amount" not in mock_stripe_refund.create.call_args.kwargs

    def test_transfer(self, mock_stripe_transfer):
        result = StripeAdapter.create_transfer(
            98500,
            "acct_owner123",
            idempotency_key="payout_transfer:p1:1:abcd1234",
            metadata={"payoutId": "p1"},
        )

        mock_stripe_transfer.create.assert_called_once_with(
            idempotency_key="payout_transfer:p1:1:abcd1234",
            amount=98500,
            currency="nzd",
            destination="acct_owner123",
            metadata={"payoutId": "p1"},
        )
        assert result.id == "tr_test123456"
        assert result.destination_account == "acct_owner123"


# =============================================================================
# Connected Accounts & Events
# =============================================================================


class TestStripeAdapterConnect:
    def test_create_express_account(self, mock_stripe_account):
        result = StripeAdapter.create_connected_account(
            email="owner@example.com",
            country="NZ",
            idempotency_key="connect_account:u1:1:abcd1234",
        )

        kwargs = mock_stripe_account.create.call_args.kwargs
        assert kwargs["type"] == "express"
        assert kwargs["capabilities"] == {"transfers": {"requested": True}}
        assert result.id == "acct_owner123"
        assert result.details_submitted is False

    def test_retrieve_account(self, mock_stripe_account):
        result = StripeAdapter.retrieve_account("acct_owner123")

        assert result.details_submitted is True
        assert result.payouts_enabled is True

    def test_account_link(self, mock_stripe_account_link):
        link = StripeAdapter.create_account_link(
            "acct_owner123",
            refresh_url="http://localhost:3000/owner/payouts/refresh",
            return_url="http://localhost:3000/owner/payouts/complete",
        )

        assert mock_stripe_account_link.create.call_args.kwargs["type"] == "account_onboarding"
        assert link.url.startswith("https://connect.stripe.com/")
        assert link.expires_at == 1700000300

    def test_retrieve_event(self, mock_stripe_event):
        event = StripeAdapter.retrieve_event("evt_test123")

        assert event["type"] == "charge.refunded"


class TestStripeAdapterVerifyWebhookSignature:
    @override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    def test_valid_signature(self, mock_stripe_webhook):
        event = StripeAdapter.verify_webhook_signature(b'{"id": "evt_test123"}', "t=1,v1=abc")

        mock_stripe_webhook.construct_event.assert_called_once_with(
            b'{"id": "evt_test123"}', "t=1,v1=abc", "whsec_test"
        )
        assert event["id"] == "evt_test123"

    @override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    def test_invalid_signature(self, mock_stripe_webhook):
        mock_stripe_webhook.construct_event.side_effect = stripe.SignatureVerificationError(
            "No signatures found", sig_header="bad"
        )

        with pytest.raises(WebhookVerificationError) as exc_info:
            StripeAdapter.verify_webhook_signature(b"tampered", "bad")

        assert exc_info.value.error_code == "INVALID_SIGNATURE"

    @override_settings(STRIPE_WEBHOOK_SECRET="")
    def test_missing_secret_fails_closed(self, mock_stripe_webhook):
        with pytest.raises(WebhookVerificationError) as exc_info:
            StripeAdapter.verify_webhook_signature(b"{}", "t=1,v1=abc")

        assert exc_info.value.error_code == "MISSING_SIGNATURE"
        mock_stripe_webhook.construct_event.assert_not_called()

    @override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    def test_missing_signature_fails_closed(self, mock_stripe_webhook):
        with pytest.raises(WebhookVerificationError):
            StripeAdapter.verify_webhook_signature(b"{}", "")


# =============================================================================
# Configuration
# =============================================================================


class TestStripeAdapterConfiguration:
    @override_settings(STRIPE_SECRET_KEY="sk_test_custom")
    def test_uses_settings_api_key(self, mock_stripe_payment_intent):
        StripeAdapter.create_payment_intent(rental_params())

        assert stripe.api_key == "sk_test_custom"

    @override_settings(STRIPE_API_TIMEOUT_SECONDS=30)
    def test_uses_settings_timeout(self, mock_stripe_payment_intent, mock_stripe_http_client):
        StripeAdapter.create_payment_intent(rental_params())

        mock_stripe_http_client.assert_called_with(timeout=30)
