"""
Payment processor interface.

Services talk to the payment processor only through this protocol, and
obtain the implementation from their get_processor() hook. StripeAdapter
is the production implementation; tests inject a fake with
set_processor().

Every money-moving method takes an idempotency key so a retried call
after a timeout never moves money twice.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from payments.adapters.stripe_adapter import (
        AccountLinkResult,
        AccountResult,
        CreatePaymentIntentParams,
        PaymentIntentResult,
        RefundResult,
        TransferResult,
    )


class PaymentProcessor(Protocol):
    """Capabilities the settlement core needs from a payment processor."""

    def create_payment_intent(
        self,
        params: CreatePaymentIntentParams,
        trace_id: str | None = None,
    ) -> PaymentIntentResult: ...

    def retrieve_payment_intent(
        self,
        payment_intent_id: str,
        trace_id: str | None = None,
    ) -> PaymentIntentResult: ...

    def capture_payment_intent(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        amount_to_capture: int | None = None,
        trace_id: str | None = None,
    ) -> PaymentIntentResult: ...

    def cancel_payment_intent(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        trace_id: str | None = None,
    ) -> PaymentIntentResult: ...

    def create_refund(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        amount_cents: int | None = None,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> RefundResult: ...

    def create_transfer(
        self,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "nzd",
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> TransferResult: ...

    def create_connected_account(
        self,
        email: str,
        country: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> AccountResult: ...

    def create_account_link(
        self,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> AccountLinkResult: ...

    def retrieve_account(self, account_id: str) -> AccountResult: ...

    def retrieve_event(self, event_id: str) -> dict[str, Any]: ...

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
        secret: str | None = None,
    ) -> dict[str, Any]: ...
