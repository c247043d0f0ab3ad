"""
Celery tasks for payment processing.

This module provides async tasks for:
- Processing webhook events recorded by the webhook view
- Retrying failed webhook events
- Scheduled owner payouts (daily / weekly / monthly)
- Retrying payout transfers interrupted by transient errors
- Expiring lapsed bond holds
- Reconciling stale payments against the processor

Periodic schedules are installed into django-celery-beat by the
payments data migration.

Usage:
    from payments.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(str(webhook_event.id))

    # Run a payout schedule by hand
    from payments.tasks import process_scheduled_payouts
    process_scheduled_payouts.delay("weekly")
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from payments.adapters import backoff_delay
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeRateLimitError,
    StripeTimeoutError,
)
from payments.models import WebhookEvent
from payments.state_machines import PayoutSchedule, WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_TASK_RETRIES = 5
STALE_PAYMENT_MINUTES = 30
FAILED_WEBHOOK_BATCH_SIZE = 100
STUCK_PENDING_MINUTES = 10

RETRYABLE_ERROR_CODES = frozenset(
    {
        StripeRateLimitError.default_error_code,
        StripeAPIUnavailableError.default_error_code,
        StripeTimeoutError.default_error_code,
    }
)


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(bind=True, acks_late=True, max_retries=MAX_WEBHOOK_TASK_RETRIES)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a recorded webhook event.

    The ledger guarantees at-most-once effects, so redelivered tasks are
    safe. Only transient processor errors are retried with backoff; other
    failures stay FAILED for retry_failed_webhooks or an admin.

    Returns:
        Dict with processing result status
    """
    from payments.services import WebhookService

    if self.request.retries:
        WebhookService.record_attempt(webhook_event_id)

    result = WebhookService.process_event(webhook_event_id)

    if result.success:
        return {
            "status": result.data.status,
            "webhook_event_id": str(webhook_event_id),
        }

    if result.error_code in RETRYABLE_ERROR_CODES:
        countdown = backoff_delay(self.request.retries)
        logger.warning(
            "Transient error processing webhook, retrying",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "error_code": result.error_code,
                "countdown": countdown,
            },
        )
        raise self.retry(countdown=countdown)

    logger.warning(
        f"Webhook processing failed: {result.error_code}",
        extra={"webhook_event_id": str(webhook_event_id), "error": result.error},
    )
    return {
        "status": "failed",
        "webhook_event_id": str(webhook_event_id),
        "error": result.error,
        "error_code": result.error_code,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to reprocess failed webhook events.

    Also picks up PENDING events whose task was never queued. Events that
    reached WEBHOOK_MAX_ATTEMPTS are left for admins in the failed-event queue.
    """
    from payments.services import WebhookService

    max_attempts = settings.WEBHOOK_MAX_ATTEMPTS
    stuck_cutoff = timezone.now() - timedelta(minutes=STUCK_PENDING_MINUTES)
    event_ids = list(
        WebhookEvent.objects.filter(
            Q(status=WebhookEventStatus.FAILED)
            | Q(status=WebhookEventStatus.PENDING, updated_at__lt=stuck_cutoff),
            attempts__lt=max_attempts,
        )
        .order_by("updated_at")
        .values_list("id", flat=True)[:FAILED_WEBHOOK_BATCH_SIZE]
    )

    processed = 0
    failed = 0
    for event_id in event_ids:
        result = WebhookService.retry_event(event_id, refetch=False)
        if result.success:
            processed += 1
        else:
            failed += 1

    logger.info(
        "Failed webhook retry completed",
        extra={"retried": len(event_ids), "processed": processed, "still_failed": failed},
    )
    return {"retried": len(event_ids), "processed": processed, "still_failed": failed}


# =============================================================================
# Payout Tasks
# =============================================================================


@shared_task
def process_scheduled_payouts(schedule: str = PayoutSchedule.WEEKLY) -> dict:
    """
    Create payouts for every owner due on a schedule.

    Scheduled daily, weekly and monthly via celery-beat.
    """
    from payments.services import PayoutService

    result = PayoutService.process_scheduled_payouts(schedule)
    return {
        "schedule": result.schedule,
        "owners_processed": result.owners_processed,
        "payouts_created": result.payouts_created,
        "errors": result.errors,
    }


@shared_task
def retry_pending_payouts() -> dict:
    """Re-run transfers for payouts left PENDING by transient processor errors."""
    from payments.services import PayoutService

    outcomes = PayoutService.retry_pending_payouts()
    if outcomes:
        logger.info(
            "Pending payout retry completed",
            extra={"payouts": len(outcomes)},
        )
    return {"payouts": outcomes}


# =============================================================================
# Bond & Reconciliation Tasks
# =============================================================================


@shared_task
def expire_bond_holds() -> dict:
    """Mark lapsed bond authorizations as EXPIRED."""
    from payments.services import BondHoldService

    return {"expired": BondHoldService.expire_stale_holds()}


@shared_task
def reconcile_stale_payments(older_than_minutes: int = STALE_PAYMENT_MINUTES) -> dict:
    """Reconcile PENDING / PROCESSING payments that no webhook has settled."""
    from payments.services import ReconciliationService

    result = ReconciliationService.reconcile_stale_payments(older_than_minutes=older_than_minutes)
    return {"checked": result.checked, "updated": result.updated, "errors": result.errors}
