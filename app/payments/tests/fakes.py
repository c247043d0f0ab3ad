"""
In-memory payment processor for service tests.

FakePaymentProcessor implements the PaymentProcessor protocol without any
network calls. It records every call, returns deterministic ids, and can
be told to raise on a given method.

Usage:
    processor = FakePaymentProcessor()
    EscrowService.set_processor(processor)

    processor.fail("create_transfer", StripeAPIUnavailableError("Stripe down"))
    processor.intent_status["pi_123"] = "succeeded"
"""

from __future__ import annotations

import itertools
from typing import Any

from payments.adapters import (
    AccountLinkResult,
    AccountResult,
    CreatePaymentIntentParams,
    PaymentIntentResult,
    RefundResult,
    TransferResult,
)


class FakePaymentProcessor:
    """Records calls and returns canned processor results."""

    def __init__(self):
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.errors: dict[str, Exception] = {}
        self.intents: dict[str, PaymentIntentResult] = {}
        self.accounts: dict[str, AccountResult] = {}
        self.events: dict[str, dict[str, Any]] = {}
        self.webhook_event: dict[str, Any] | None = None
        self._ids = itertools.count(1)

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def fail(self, method: str, error: Exception) -> None:
        self.errors[method] = error

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def set_intent(self, intent_id: str, status: str, **fields) -> PaymentIntentResult:
        result = PaymentIntentResult(
            id=intent_id,
            status=status,
            amount_cents=fields.pop("amount_cents", 100000),
            currency=fields.pop("currency", "nzd"),
            **fields,
        )
        self.intents[intent_id] = result
        return result

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append((method, kwargs))
        error = self.errors.get(method)
        if error is not None:
            raise error

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_test_{next(self._ids)}"

    # -------------------------------------------------------------------------
    # PaymentProcessor protocol
    # -------------------------------------------------------------------------

    def create_payment_intent(
        self,
        params: CreatePaymentIntentParams,
        trace_id: str | None = None,
    ) -> PaymentIntentResult:
        self._record("create_payment_intent", params=params)
        intent_id = self._next_id("pi")
        status = "requires_capture" if params.capture_method == "manual" else "requires_payment_method"
        result = PaymentIntentResult(
            id=intent_id,
            status=status,
            amount_cents=params.amount_cents,
            currency=params.currency,
            client_secret=f"{intent_id}_secret",
            metadata=dict(params.metadata),
        )
        self.intents[intent_id] = result
        return result

    def retrieve_payment_intent(
        self,
        payment_intent_id: str,
        trace_id: str | None = None,
    ) -> PaymentIntentResult:
        self._record("retrieve_payment_intent", payment_intent_id=payment_intent_id)
        return self.intents[payment_intent_id]

    def capture_payment_intent(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        amount_to_capture: int | None = None,
        trace_id: str | None = None,
    ) -> PaymentIntentResult:
        self._record(
            "capture_payment_intent",
            payment_intent_id=payment_intent_id,
            idempotency_key=idempotency_key,
            amount_to_capture=amount_to_capture,
        )
        return PaymentIntentResult(
            id=payment_intent_id,
            status="succeeded",
            amount_cents=amount_to_capture or 0,
            currency="nzd",
            amount_received=amount_to_capture or 0,
        )

    def cancel_payment_intent(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        trace_id: str | None = None,
    ) -> PaymentIntentResult:
        self._record(
            "cancel_payment_intent",
            payment_intent_id=payment_intent_id,
            idempotency_key=idempotency_key,
        )
        return PaymentIntentResult(
            id=payment_intent_id,
            status="canceled",
            amount_cents=0,
            currency="nzd",
        )

    def create_refund(
        self,
        payment_intent_id: str,
        idempotency_key: str,
        amount_cents: int | None = None,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> RefundResult:
        self._record(
            "create_refund",
            payment_intent_id=payment_intent_id,
            idempotency_key=idempotency_key,
            amount_cents=amount_cents,
            reason=reason,
            metadata=metadata,
        )
        return RefundResult(
            id=self._next_id("re"),
            amount_cents=amount_cents or 0,
            currency="nzd",
            status="succeeded",
            payment_intent_id=payment_intent_id,
            metadata=metadata or {},
        )

    def create_transfer(
        self,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "nzd",
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> TransferResult:
        self._record(
            "create_transfer",
            amount_cents=amount_cents,
            destination_account=destination_account,
            idempotency_key=idempotency_key,
            currency=currency,
            metadata=metadata,
        )
        return TransferResult(
            id=self._next_id("tr"),
            amount_cents=amount_cents,
            currency=currency,
            destination_account=destination_account,
            metadata=metadata or {},
        )

    def create_connected_account(
        self,
        email: str,
        country: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> AccountResult:
        self._record(
            "create_connected_account",
            email=email,
            country=country,
            idempotency_key=idempotency_key,
            metadata=metadata,
        )
        result = AccountResult(id=self._next_id("acct"))
        self.accounts[result.id] = result
        return result

    def create_account_link(
        self,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> AccountLinkResult:
        self._record(
            "create_account_link",
            account_id=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
        )
        return AccountLinkResult(
            url=f"https://connect.stripe.test/setup/{account_id}",
            expires_at=1700000000,
        )

    def retrieve_account(self, account_id: str) -> AccountResult:
        self._record("retrieve_account", account_id=account_id)
        return self.accounts.get(account_id) or AccountResult(id=account_id)

    def retrieve_event(self, event_id: str) -> dict[str, Any]:
        self._record("retrieve_event", event_id=event_id)
        return self.events[event_id]

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
        secret: str | None = None,
    ) -> dict[str, Any]:
        self._record("verify_webhook_signature", payload=payload, signature=signature)
        return self.webhook_event
