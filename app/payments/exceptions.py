"""
Exceptions raised by the payment and settlement core.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Escrow record, bond hold or payout lookup failures
    ├── PaymentValidationError - Amount, currency or request validation failures
    ├── PaymentProcessingError - Processor call failures
    │   └── StripeError - Base for all Stripe errors (carries is_retryable)
    │       ├── StripeCardDeclinedError - Card declined (permanent)
    │       ├── StripeInsufficientFundsError - Insufficient funds (permanent)
    │       ├── StripeInvalidAccountError - Invalid connected account (permanent)
    │       ├── StripeInvalidRequestError - Invalid request params (permanent)
    │       ├── StripeAuthenticationError - Bad API key (permanent)
    │       ├── StripeRateLimitError - Rate limited (transient, retry)
    │       ├── StripeAPIUnavailableError - API unavailable (transient, retry)
    │       └── StripeTimeoutError - Request timeout (transient, retry)
    ├── WebhookVerificationError - Missing or invalid event signature
    ├── WebhookPayloadError - Verified event with an unusable payload
    ├── BondCaptureError - Over-capture, expired hold, non-positive amount
    └── PayoutError - Payout could not be created
        ├── PayoutNotReadyError - Owner payout account not onboarded
        ├── PayoutBelowMinimumError - Aggregate net below owner minimum
        └── ActiveDisputeError - Booking is held by an open dispute

    ImmutableRecordError - Update/delete of an append-only record (ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (ConflictError)

Domain invariant errors (over-capture, below-minimum payout, illegal
transition) are raised synchronously and must not be retried blindly.
Processor errors carry is_retryable so webhook and payout retry paths
can tell transient failures from permanent ones.

Usage:
    from payments.exceptions import BondCaptureError

    if amount > bond_hold.authorized_amount:
        raise BondCaptureError(
            "Capture amount exceeds authorized amount",
            details={"amount": str(amount), "authorized": str(bond_hold.authorized_amount)},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    Inherits from BaseApplicationError so views can render any payment
    failure with to_dict() and http_status.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """
    Raised when a payment entity cannot be found.

    Use for PaymentIntent, BondHold, Payout and OwnerPayoutAccount lookups.
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"
    http_status: int = 404


class PaymentValidationError(PaymentError):
    """
    Raised when payment validation fails.

    Use for:
    - Negative or zero amounts
    - Unsupported currency
    - Fee or deposit percentage out of range
    - Refund exceeding the refundable balance
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class PaymentProcessingError(PaymentError):
    """Raised when the payment processor call fails."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"
    http_status: int = 502
    is_retryable: bool = False


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        decline_code: Card decline code (if applicable)
        is_retryable: True for transient errors, safe to retry with backoff

    Example:
        try:
            StripeAdapter.create_transfer(...)
        except StripeError as e:
            if e.is_retryable:
                raise  # Leave payout PENDING for the retry task
            PayoutService._fail_payout(payout, str(e))
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    The decline_code attribute carries the issuer reason. End users only
    see the derived PAYMENT_FAILED signal.
    """

    default_error_code: str = "CARD_DECLINED"


class StripeInsufficientFundsError(StripeError):
    """Insufficient funds on the payment method. User action required."""

    default_error_code: str = "INSUFFICIENT_FUNDS"


class StripeInvalidAccountError(StripeError):
    """
    Invalid connected account.

    Raised when the owner's destination account is missing, restricted
    or unable to receive transfers. Needs manual intervention.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Usually a bug on our side (bad id, capture above authorized amount,
    refund above charged amount). Logged for developer investigation.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"


class StripeAuthenticationError(StripeError):
    """API key missing or rejected. Configuration problem."""

    default_error_code: str = "STRIPE_AUTHENTICATION_ERROR"


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by the Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    Covers network connectivity issues and Stripe 5xx responses.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    The operation may have succeeded upstream. Retries reuse the same
    idempotency key so Stripe returns the original response.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Webhook Exceptions
# =============================================================================


class WebhookVerificationError(PaymentError):
    """
    Raised when a webhook signature is missing or invalid.

    The payload is never parsed and nothing is recorded.
    """

    default_error_code: str = "INVALID_SIGNATURE"


class WebhookPayloadError(PaymentError):
    """
    Raised by a handler when a verified event lacks required fields.

    The ledger row is marked FAILED with this message.
    """

    default_error_code: str = "INVALID_WEBHOOK_PAYLOAD"


# =============================================================================
# Bond, Payout and Reconciliation Exceptions
# =============================================================================


class BondCaptureError(PaymentError):
    """
    Raised when a bond capture violates the hold's constraints.

    Use for non-positive amounts, amounts above the authorized amount and
    holds whose upstream authorization has already expired.
    """

    default_error_code: str = "BOND_CAPTURE_ERROR"
    http_status: int = 409


class PayoutError(PaymentError):
    """Base exception for payout creation failures."""

    default_error_code: str = "PAYOUT_ERROR"
    http_status: int = 409


class PayoutNotReadyError(PayoutError):
    """Owner payout account has no external ref or onboarding is incomplete."""

    default_error_code: str = "PAYOUT_NOT_READY"


class PayoutBelowMinimumError(PayoutError):
    """
    Aggregate net amount is below the owner's minimum payout amount.

    Not a failure for scheduled runs: bookings roll to the next cycle.
    """

    default_error_code: str = "BELOW_MINIMUM"


class ActiveDisputeError(PayoutError):
    """A requested booking is held by an unresolved dispute."""

    default_error_code: str = "ACTIVE_DISPUTE"


# =============================================================================
# Record Integrity Exceptions
# =============================================================================


class ImmutableRecordError(ConflictError):
    """
    Raised on an attempt to update or delete an append-only record.

    Transaction entries are the audit trail of record: corrections are
    new entries, never edits.
    """

    default_error_code: str = "IMMUTABLE_RECORD"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed with our standard error format.

    Example:
        try:
            bond_hold.release()
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot release bond hold from '{bond_hold.status}' state",
                details={
                    "current_state": bond_hold.status,
                    "target_state": BondHoldStatus.RELEASED,
                    "transition": "release",
                },
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "PaymentProcessingError",
    # Stripe-specific
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeAuthenticationError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    # Webhooks
    "WebhookVerificationError",
    "WebhookPayloadError",
    # Bonds, payouts, reconciliation
    "BondCaptureError",
    "PayoutError",
    "PayoutNotReadyError",
    "PayoutBelowMinimumError",
    "ActiveDisputeError",
    # Record integrity
    "ImmutableRecordError",
    "InvalidStateTransitionError",
]
