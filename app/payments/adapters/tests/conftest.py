"""
Pytest fixtures for Stripe adapter tests.

The stripe SDK is patched at the resource level (stripe.PaymentIntent,
stripe.Transfer, ...) so no request leaves the process.

Sections:
    - Mock Stripe Objects
    - Mock Stripe Resources
    - Stripe SDK Errors
"""

from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
import stripe


# =============================================================================
# Mock Stripe Objects
# =============================================================================


@dataclass
class MockStripeObject:
    """Stripe API object stand-in with attribute access and to_dict()."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def mock_payment_intent():
    """Build a PaymentIntent response."""

    def _create(
        id: str = "pi_test123456",
        status: str = "requires_payment_method",
        amount: int = 100000,
        currency: str = "nzd",
        client_secret: str = "pi_test123456_secret_abc123",
        amount_received: int = 0,
        latest_charge: str | None = None,
        last_payment_error: Any = None,
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount,
                "currency": currency,
                "client_secret": client_secret,
                "amount_received": amount_received,
                "latest_charge": latest_charge,
                "last_payment_error": last_payment_error,
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_transfer():
    def _create(
        id: str = "tr_test123456",
        amount: int = 98500,
        currency: str = "nzd",
        destination: str = "acct_owner123",
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "transfer",
                "amount": amount,
                "currency": currency,
                "destination": destination,
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_refund():
    def _create(
        id: str = "re_test123456",
        amount: int = 20000,
        currency: str = "nzd",
        status: str = "succeeded",
        payment_intent: str = "pi_test123456",
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "refund",
                "amount": amount,
                "currency": currency,
                "status": status,
                "payment_intent": payment_intent,
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_account():
    def _create(
        id: str = "acct_owner123",
        details_submitted: bool = False,
        payouts_enabled: bool = False,
        charges_enabled: bool = False,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "account",
                "details_submitted": details_submitted,
                "payouts_enabled": payouts_enabled,
                "charges_enabled": charges_enabled,
            }
        )

    return _create


# =============================================================================
# Mock Stripe Resources
# =============================================================================


@pytest.fixture(autouse=True)
def mock_stripe_http_client():
    """Keep _configure_stripe from building a real HTTP client."""
    with patch("stripe.RequestsClient") as mock:
        yield mock


@pytest.fixture
def mock_stripe_payment_intent(mock_payment_intent):
    with patch("stripe.PaymentIntent") as mock:
        mock.create.return_value = mock_payment_intent()
        mock.retrieve.return_value = mock_payment_intent()
        mock.capture.return_value = mock_payment_intent(
            status="succeeded", amount_received=30000
        )
        mock.cancel.return_value = mock_payment_intent(status="canceled")
        yield mock


@pytest.fixture
def mock_stripe_transfer(mock_transfer):
    with patch("stripe.Transfer") as mock:
        mock.create.return_value = mock_transfer()
        yield mock


@pytest.fixture
def mock_stripe_refund(mock_refund):
    with patch("stripe.Refund") as mock:
        mock.create.return_value = mock_refund()
        yield mock


@pytest.fixture
def mock_stripe_account(mock_account):
    with patch("stripe.Account") as mock:
        mock.create.return_value = mock_account()
        mock.retrieve.return_value = mock_account(
            details_submitted=True,
            payouts_enabled=True,
            charges_enabled=True,
        )
        yield mock


@pytest.fixture
def mock_stripe_account_link():
    with patch("stripe.AccountLink") as mock:
        mock.create.return_value = MockStripeObject(
            {"url": "https://connect.stripe.com/setup/e/acct_owner123", "expires_at": 1700000300}
        )
        yield mock


@pytest.fixture
def mock_stripe_event():
    with patch("stripe.Event") as mock:
        mock.retrieve.return_value = MockStripeObject(
            {
                "id": "evt_test123",
                "type": "charge.refunded",
                "data": {"object": {"id": "ch_test123", "payment_intent": "pi_test123"}},
            }
        )
        yield mock


@pytest.fixture
def mock_stripe_webhook():
    with patch("stripe.Webhook") as mock:
        mock.construct_event.return_value = MockStripeObject(
            {
                "id": "evt_test123",
                "type": "payment_intent.succeeded",
                "data": {"object": {"id": "pi_test123", "object": "payment_intent"}},
            }
        )
        yield mock


# =============================================================================
# Stripe SDK Errors
# =============================================================================


@pytest.fixture
def card_error():
    def _create(decline_code: str | None = "generic_decline") -> stripe.CardError:
        error = stripe.CardError(
            message="Your card was declined.",
            param=None,
            code="card_declined",
        )
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture
def invalid_request_error():
    def _create(
        message: str = "No such payment_intent",
        param: str | None = "payment_intent",
        code: str = "resource_missing",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(message=message, param=param, code=code)

    return _create
