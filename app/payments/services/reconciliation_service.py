"""
Reconciliation service for healing payment status divergence.

Compares a local PaymentIntent with the processor's authoritative status
and, on divergence, applies the processor status through the same
EscrowService.apply_payment_status() the webhook handlers use. It covers
webhooks that were missed or exhausted their retries, and client-side
confirmations.

Usage:
    from payments.services import ReconciliationService

    result = ReconciliationService.reconcile_payment_intent("pi_123")
    if result.success:
        print(result.data.status)

    # Batch over stale PENDING / PROCESSING records (Celery beat)
    batch = ReconciliationService.reconcile_stale_payments(older_than_minutes=30)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from audit.models import AuditAction
from audit.services import AuditService
from core.services import BaseService, ServiceResult

from payments.adapters import StripeAdapter
from payments.exceptions import StripeError
from payments.models import PaymentIntent
from payments.state_machines import PaymentIntentStatus

if TYPE_CHECKING:
    from payments.adapters import PaymentProcessor


DEFAULT_STALE_MINUTES = 30
DEFAULT_BATCH_SIZE = 200


def map_processor_status(processor_status: str) -> str:
    """
    Map a processor PaymentIntent status to the local status.

    succeeded -> SUCCEEDED, processing -> PROCESSING, canceled -> CANCELLED,
    requires_* -> PENDING, anything else -> FAILED.
    """
    if processor_status == "succeeded":
        return PaymentIntentStatus.SUCCEEDED
    if processor_status == "processing":
        return PaymentIntentStatus.PROCESSING
    if processor_status == "canceled":
        return PaymentIntentStatus.CANCELLED
    if processor_status.startswith("requires_"):
        return PaymentIntentStatus.PENDING
    return PaymentIntentStatus.FAILED


@dataclass
class StaleReconciliationResult:
    """
    Outcome of a batch reconciliation run.

    Attributes:
        checked: Number of records compared with the processor
        updated: Number of records whose status changed
        errors: Per-record error messages keyed by PaymentIntent id
    """

    checked: int = 0
    updated: int = 0
    errors: dict[str, str] = field(default_factory=dict)


class ReconciliationService(BaseService):
    """
    Service for reconciling local payment state against the processor.

    Methods:
        reconcile_payment_intent: Reconcile one record by processor reference
        reconcile_stale_payments: Reconcile PENDING / PROCESSING records in bulk
    """

    _processor: PaymentProcessor | None = None

    @classmethod
    def get_processor(cls) -> PaymentProcessor:
        """Get the payment processor (StripeAdapter unless injected)."""
        return cls._processor or StripeAdapter

    @classmethod
    def set_processor(cls, processor: PaymentProcessor | None) -> None:
        """Set the payment processor (for testing)."""
        cls._processor = processor

    @classmethod
    def reconcile_payment_intent(
        cls,
        external_ref: str,
        trigger: str = "reconciliation",
    ) -> ServiceResult[PaymentIntent]:
        """
        Pull the processor status of a payment and apply it locally.

        Refunded records are never regressed; the refund path owns them.

        Error codes:
            PAYMENT_NOT_FOUND: No local record for external_ref
            plus processor error codes
        """
        from payments.services.escrow_service import EscrowService

        logger = cls.get_logger()

        if not PaymentIntent.objects.filter(external_ref=external_ref).exists():
            return ServiceResult.failure(
                f"No payment found for {external_ref}",
                error_code="PAYMENT_NOT_FOUND",
            )

        try:
            remote = cls.get_processor().retrieve_payment_intent(external_ref)
        except StripeError as e:
            logger.warning(
                f"Could not retrieve payment for reconciliation: {e.error_code}",
                extra={"external_ref": external_ref, "error": str(e)},
            )
            return ServiceResult.from_exception(e)

        target_status = map_processor_status(remote.status)

        with transaction.atomic():
            payment_intent = (
                PaymentIntent.objects.select_for_update()
                .select_related("booking", "booking__owner", "booking__renter")
                .get(external_ref=external_ref)
            )
            previous_status = payment_intent.status

            if previous_status == target_status:
                return ServiceResult.success(payment_intent)

            changed = EscrowService.apply_payment_status(
                payment_intent,
                target_status,
                trigger=trigger,
                context={
                    "latest_charge": remote.latest_charge,
                    "amount_received": remote.amount_received,
                    "failure_reason": remote.last_payment_error,
                },
            )

            if changed:
                AuditService.record(
                    action=AuditAction.PAYMENT_RECONCILED,
                    description=(
                        f"Payment reconciled from {previous_status} to {target_status}"
                    ),
                    target_type="payment_intent",
                    target_id=payment_intent.id,
                    booking=payment_intent.booking,
                    metadata={
                        "previousStatus": previous_status,
                        "newStatus": target_status,
                        "processorStatus": remote.status,
                        "trigger": trigger,
                    },
                )

        logger.info(
            "Payment reconciled" if changed else "Payment divergence not applied",
            extra={
                "payment_intent_id": str(payment_intent.id),
                "external_ref": external_ref,
                "previous_status": previous_status,
                "processor_status": remote.status,
                "target_status": target_status,
                "trigger": trigger,
            },
        )
        return ServiceResult.success(payment_intent)

    @classmethod
    def reconcile_stale_payments(
        cls,
        older_than_minutes: int = DEFAULT_STALE_MINUTES,
        limit: int = DEFAULT_BATCH_SIZE,
    ) -> StaleReconciliationResult:
        """
        Reconcile PENDING / PROCESSING payments untouched for a while.

        Each record is independent; failures are collected per record.
        """
        cutoff = timezone.now() - timedelta(minutes=older_than_minutes)
        candidates = list(
            PaymentIntent.objects.filter(
                status__in=[PaymentIntentStatus.PENDING, PaymentIntentStatus.PROCESSING],
                updated_at__lt=cutoff,
                external_ref__isnull=False,
            )
            .order_by("updated_at")
            .values_list("id", "external_ref", "status")[:limit]
        )

        result = StaleReconciliationResult()
        for payment_intent_id, external_ref, status in candidates:
            result.checked += 1
            outcome = cls.reconcile_payment_intent(external_ref)
            if not outcome.success:
                result.errors[str(payment_intent_id)] = outcome.error or "unknown error"
            elif outcome.data.status != status:
                result.updated += 1

        cls.get_logger().info(
            "Stale payment reconciliation finished",
            extra={
                "checked": result.checked,
                "updated": result.updated,
                "errors": len(result.errors),
            },
        )
        return result
