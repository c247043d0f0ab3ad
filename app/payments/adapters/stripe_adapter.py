"""
Stripe API adapter for payment operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. Every Stripe call goes through this adapter to
get consistent error handling, timeouts, idempotency and observability.

Features:
- Configurable timeouts and network retries on all API calls
- Translation of SDK errors to payments exceptions (retryable vs permanent)
- Structured logging with timing metrics and correlation ids
- Idempotency keys for every money-moving call

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK network retries (default: 3)

Usage:
    from payments.adapters import StripeAdapter, CreatePaymentIntentParams

    result = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount_cents=100000,
            currency="nzd",
            idempotency_key=IdempotencyKeyGenerator.generate("create_intent", booking.id),
            application_fee_amount=1500,
            transfer_data={"destination": "acct_123"},
            metadata={"bookingId": str(booking.id)},
        )
    )
"""

from __future__ import annotations

import hashlib
import logging
import random
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
    WebhookVerificationError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePaymentIntentParams:
    """
    Parameters for creating a Stripe PaymentIntent.

    Attributes:
        amount_cents: Amount in the currency's minor unit
        currency: ISO 4217 currency code (lowercase)
        idempotency_key: Unique key for idempotent creation
        metadata: Correlation metadata (bookingId, renterId, ownerId, ...)
        capture_method: 'automatic' for rentals, 'manual' for bond holds
        application_fee_amount: Platform fee kept on a destination charge
        transfer_data: Connect destination ({"destination": "acct_xxx"})
        payment_method: Payment method to confirm with (bond holds)
        confirm: Confirm immediately (bond holds)
    """

    amount_cents: int
    currency: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)
    capture_method: str = "automatic"
    application_fee_amount: int | None = None
    transfer_data: dict[str, Any] | None = None
    payment_method: str | None = None
    confirm: bool = False

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")
        if self.application_fee_amount is not None and not (
            0 <= self.application_fee_amount <= self.amount_cents
        ):
            raise ValueError("application_fee_amount must be within the charged amount")


@dataclass
class PaymentIntentResult:
    """
    Result from Stripe PaymentIntent operations.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: Stripe status (requires_payment_method, succeeded, ...)
        amount_cents: Amount in minor units
        currency: Currency code
        client_secret: Secret for client-side confirmation
        amount_received: Amount captured so far in minor units
        latest_charge: Latest charge ID (ch_xxx), if any
        last_payment_error: Message of the last payment error, if any
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    status: str
    amount_cents: int
    currency: str
    client_secret: str | None = None
    amount_received: int = 0
    latest_charge: str | None = None
    last_payment_error: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_cents: Amount transferred in minor units
        currency: Currency code
        destination_account: Destination connected account ID
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount_cents: Refunded amount in minor units
        currency: Currency code
        status: Refund status (succeeded, pending, failed)
        payment_intent_id: Original PaymentIntent ID
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class AccountResult:
    """
    Result from Stripe connected account operations.

    Attributes:
        id: Account ID (acct_xxx)
        details_submitted: Owner finished the onboarding form
        payouts_enabled: Stripe allows payouts to this account
        charges_enabled: Stripe allows charges on this account
        raw_response: Full Stripe response dict
    """

    id: str
    details_submitted: bool = False
    payouts_enabled: bool = False
    charges_enabled: bool = False
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class AccountLinkResult:
    """Onboarding link for a connected account."""

    url: str
    expires_at: int | None = None


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same (operation, entity, attempt) always yields the same key, so a
    call retried after a timeout is deduplicated by Stripe.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="payout_transfer",
            entity_id=payout.id,
        )
        # "payout_transfer:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        # Short hash keyed on SECRET_KEY keeps keys unique per deployment
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_stripe_error(error: Exception) -> bool:
    """
    Check if an error is a transient Stripe error that can be retried.

    Used by Celery tasks and the payout batcher to tell transient failures
    (leave for retry) from permanent ones (fail now).
    """
    if isinstance(error, StripeError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    # Jitter (0-25% of delay) spreads out concurrent retries
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


def _error_message(obj) -> str | None:
    error = getattr(obj, "last_payment_error", None)
    if not error:
        return None
    return getattr(error, "message", None)


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Usage:
        result = StripeAdapter.create_payment_intent(params)
        result = StripeAdapter.capture_payment_intent(pi_id, idem_key, amount_to_capture=35000)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _call(
        cls,
        log_context: dict[str, Any],
        call: Callable[[], Any],
        result_context: Callable[[Any], dict[str, Any]] | None = None,
        level: int = logging.INFO,
    ) -> Any:
        """
        Run one Stripe call with timing logs and error translation.

        Raises:
            StripeError subclass: Translated SDK error
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        start_time = time.time()
        logger.log(level, "Starting Stripe operation", extra=log_context)

        try:
            response = call()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise  # Never reached, _handle_stripe_error always raises

        duration_ms = (time.time() - start_time) * 1000
        extra = result_context(response) if result_context else {}
        logger.log(
            level,
            "Stripe operation completed",
            extra={**log_context, **extra, "duration_ms": duration_ms},
        )
        return response

    @staticmethod
    def _intent_result(intent) -> PaymentIntentResult:
        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
            currency=intent.currency,
            client_secret=getattr(intent, "client_secret", None),
            amount_received=getattr(intent, "amount_received", 0) or 0,
            latest_charge=getattr(intent, "latest_charge", None),
            last_payment_error=_error_message(intent),
            metadata=dict(intent.metadata or {}),
            raw_response=intent.to_dict(),
        )

    @staticmethod
    def _account_result(account) -> AccountResult:
        return AccountResult(
            id=account.id,
            details_submitted=bool(getattr(account, "details_submitted", False)),
            payouts_enabled=bool(getattr(account, "payouts_enabled", False)),
            charges_enabled=bool(getattr(account, "charges_enabled", False)),
            raw_response=account.to_dict(),
        )

    # =========================================================================
    # PaymentIntents
    # =========================================================================

    @classmethod
    def create_payment_intent(
        cls,
        params: CreatePaymentIntentParams,
        trace_id: str | None = None,
    ) -> PaymentIntentResult:
        """
        Create a Stripe PaymentIntent.

        Rental charges are destination charges (application_fee_amount +
        transfer_data). Bond holds use capture_method='manual' with an
        explicit payment method and confirm=True.

        Raises:
            StripeCardDeclinedError: Card was declined (bond confirm)
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        log_context = {
            "operation": "create_payment_intent",
            "amount_cents": params.amount_cents,
            "currency": params.currency,
            "capture_method": params.capture_method,
            "idempotency_key": params.idempotency_key,
            "booking_id": params.metadata.get("bookingId"),
            "trace_id": trace_id,
        }

        create_params: dict[str, Any] = {
            "amount": params.amount_cents,
            "currency": params.currency,
            "metadata": params.metadata,
            "capture_method": params.capture_method,
        }
        if params.application_fee_amount is not None:
            create_params["application_fee_amount"] = params.application_fee_amount
        if params.transfer_data:
            create_params["transfer_data"] = params.transfer_data
        if params.payment_method:
            create_params["payment_method"] = params.payment_method
            create_params["confirm"] = params.confirm
            create_params["payment_method_types"] = ["card"]
        else:
            create_params["automatic_payment_methods"] = {"enabled": True}

        intent = cls._call(
            log_context,
            lambda: stripe.PaymentIntent.create(
                idempotency_key=params.idempotency_key,
                **create_params,
            ),
            lambda i: {"payment_intent_id": i.id, "status": i.status},
        )
        return cls._intent_result(intent)

    @classmethod
    def retrieve_payment_intent(
        cls,
        payment_intent_id: str,
        trace_id: str | None = None,
    ) -> PaymentIntentResult:
        """
        Retrieve a PaymentIntent by ID (authoritative status for reconciliation).

        Raises:
            StripeInvalidRequestError: PaymentIntent not found
        """
        log_context = {
            "operation": "retrieve_payment_intent",
            "payment_intent_id": payment_intent_id,
            "trace_id": trace_id,
        }
        intent = cls._call(
            log_context,
            lambda: stripe.PaymentIntent.retrieve(payment_intent_id),
            lambda i: {"status": i.status},
            level=logging.DEBUG,
        )
        return cls._intent_result(intent)

    @classmethod
    def capture_payment_intent(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        amount_to_capture: int | None = None,
        trace_id: str | None = None,
    ) -> PaymentIntentResult:
        """
        Capture a manual-capture PaymentIntent, optionally partially.

        A partial capture releases the uncaptured remainder upstream.

        Raises:
            StripeInvalidRequestError: PaymentIntent not capturable
        """
        log_context = {
            "operation": "capture_payment_intent",
            "payment_intent_id": payment_intent_id,
            "idempotency_key": idempotency_key,
            "amount_to_capture": amount_to_capture,
            "trace_id": trace_id,
        }
        capture_params: dict[str, Any] = {}
        if amount_to_capture is not None:
            capture_params["amount_to_capture"] = amount_to_capture

        intent = cls._call(
            log_context,
            lambda: stripe.PaymentIntent.capture(
                payment_intent_id,
                idempotency_key=idempotency_key,
                **capture_params,
            ),
            lambda i: {"status": i.status, "amount_captured": i.amount_received},
        )
        return cls._intent_result(intent)

    @classmethod
    def cancel_payment_intent(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        trace_id: str | None = None,
    ) -> PaymentIntentResult:
        """
        Cancel a PaymentIntent, releasing any uncaptured authorization.

        Raises:
            StripeInvalidRequestError: PaymentIntent cannot be cancelled
        """
        log_context = {
            "operation": "cancel_payment_intent",
            "payment_intent_id": payment_intent_id,
            "idempotency_key": idempotency_key,
            "trace_id": trace_id,
        }
        intent = cls._call(
            log_context,
            lambda: stripe.PaymentIntent.cancel(
                payment_intent_id,
                idempotency_key=idempotency_key,
            ),
            lambda i: {"status": i.status},
        )
        return cls._intent_result(intent)

    # =========================================================================
    # Refunds & Transfers
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        amount_cents: int | None = None,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> RefundResult:
        """
        Create a refund for a PaymentIntent.

        Args:
            amount_cents: Amount to refund (None for full refund)
            reason: Stripe refund reason (duplicate, fraudulent, requested_by_customer)

        Raises:
            StripeInvalidRequestError: Refund not possible
        """
        log_context = {
            "operation": "create_refund",
            "payment_intent_id": payment_intent_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
            "trace_id": trace_id,
        }
        refund_params: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "metadata": metadata or {},
        }
        if amount_cents is not None:
            refund_params["amount"] = amount_cents
        if reason:
            refund_params["reason"] = reason

        refund = cls._call(
            log_context,
            lambda: stripe.Refund.create(
                idempotency_key=idempotency_key,
                **refund_params,
            ),
            lambda r: {"refund_id": r.id, "status": r.status},
        )
        return RefundResult(
            id=refund.id,
            amount_cents=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_intent_id=refund.payment_intent,
            metadata=dict(refund.metadata or {}),
            raw_response=refund.to_dict(),
        )

    @classmethod
    def create_transfer(
        cls,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "nzd",
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected account (owner payout).

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInvalidRequestError: Insufficient platform balance or bad params
        """
        log_context = {
            "operation": "create_transfer",
            "amount_cents": amount_cents,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
            "trace_id": trace_id,
        }
        transfer = cls._call(
            log_context,
            lambda: stripe.Transfer.create(
                idempotency_key=idempotency_key,
                amount=amount_cents,
                currency=currency,
                destination=destination_account,
                metadata=metadata or {},
            ),
            lambda t: {"transfer_id": t.id},
        )
        return TransferResult(
            id=transfer.id,
            amount_cents=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(transfer.metadata or {}),
            raw_response=transfer.to_dict(),
        )

    # =========================================================================
    # Connected Accounts
    # =========================================================================

    @classmethod
    def create_connected_account(
        cls,
        email: str,
        country: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> AccountResult:
        """
        Create an Express connected account with the transfers capability.

        Raises:
            StripeInvalidRequestError: Unsupported country or bad params
        """
        log_context = {
            "operation": "create_connected_account",
            "country": country,
            "idempotency_key": idempotency_key,
        }
        account = cls._call(
            log_context,
            lambda: stripe.Account.create(
                idempotency_key=idempotency_key,
                type="express",
                country=country,
                email=email,
                capabilities={"transfers": {"requested": True}},
                metadata=metadata or {},
            ),
            lambda a: {"account_id": a.id},
        )
        return cls._account_result(account)

    @classmethod
    def create_account_link(
        cls,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> AccountLinkResult:
        """Create an onboarding link for a connected account."""
        log_context = {
            "operation": "create_account_link",
            "account_id": account_id,
        }
        link = cls._call(
            log_context,
            lambda: stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            ),
        )
        return AccountLinkResult(url=link.url, expires_at=getattr(link, "expires_at", None))

    @classmethod
    def retrieve_account(cls, account_id: str) -> AccountResult:
        """Retrieve a connected account's onboarding state."""
        log_context = {
            "operation": "retrieve_account",
            "account_id": account_id,
        }
        account = cls._call(
            log_context,
            lambda: stripe.Account.retrieve(account_id),
            lambda a: {
                "details_submitted": a.details_submitted,
                "payouts_enabled": a.payouts_enabled,
            },
            level=logging.DEBUG,
        )
        return cls._account_result(account)

    # =========================================================================
    # Events & Webhook Verification
    # =========================================================================

    @classmethod
    def retrieve_event(cls, event_id: str) -> dict[str, Any]:
        """Re-fetch an event from Stripe (manual webhook reprocessing)."""
        log_context = {
            "operation": "retrieve_event",
            "event_id": event_id,
        }
        event = cls._call(
            log_context,
            lambda: stripe.Event.retrieve(event_id),
            lambda e: {"event_type": e.type},
        )
        return event.to_dict()

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
        secret: str | None = None,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Fails closed: a missing secret, missing signature or any
        verification failure raises before the payload is trusted.

        Returns:
            Parsed event data dict

        Raises:
            WebhookVerificationError: Signature missing or invalid
        """
        secret = secret if secret is not None else settings.STRIPE_WEBHOOK_SECRET
        if not secret or not signature:
            raise WebhookVerificationError(
                "Missing webhook signature or signing secret",
                error_code="MISSING_SIGNATURE",
            )
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            cls.get_logger().warning(
                "Webhook signature verification failed",
                extra={"error": str(e)},
            )
            raise WebhookVerificationError("Invalid webhook signature") from e
        except ValueError as e:
            # construct_event parses JSON only after the signature matched
            raise WebhookVerificationError(
                "Invalid webhook payload",
                error_code="INVALID_PAYLOAD",
            ) from e
        return event.to_dict()

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to payments exceptions.

        Raises:
            StripeCardDeclinedError / StripeInsufficientFundsError: Card errors
            StripeInvalidAccountError: Invalid connected account
            StripeInvalidRequestError: Invalid request parameters
            StripeAuthenticationError: Bad API key
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: Network or Stripe server error
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                ) from error
            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            if error.param in ("destination", "account") or "account" in (error.code or ""):
                raise StripeInvalidAccountError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                ) from error
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            if "timed out" in str(error).lower():
                logger.error("Stripe request timed out", extra=log_context)
                raise StripeTimeoutError(
                    "Stripe request timed out. Please retry.",
                    stripe_code="timeout",
                ) from error
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAuthenticationError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise StripeAPIUnavailableError(
            f"Unexpected Stripe error: {error}",
            stripe_code="unknown_error",
        ) from error
