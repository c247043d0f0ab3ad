"""
Payment processor adapters.

All payment processor calls go through these adapters to ensure
consistent error handling, timeouts, idempotency and observability.
Services depend on the PaymentProcessor protocol and default to
StripeAdapter.

Usage:
    from payments.adapters import StripeAdapter, CreatePaymentIntentParams

    result = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount_cents=100000,
            currency="nzd",
            idempotency_key="create_intent:booking_123:1:a1b2c3d4",
        )
    )
"""

from payments.adapters.protocols import PaymentProcessor
from payments.adapters.stripe_adapter import (
    AccountLinkResult,
    AccountResult,
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
    backoff_delay,
    is_retryable_stripe_error,
)

__all__ = [
    "AccountLinkResult",
    "AccountResult",
    "CreatePaymentIntentParams",
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "PaymentProcessor",
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
    "backoff_delay",
    "is_retryable_stripe_error",
]
