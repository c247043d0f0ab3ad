"""
Idempotent webhook pipeline.

Verified processor events are recorded in the WebhookEvent ledger and
processed at most once:

1. receive_event: get_or_create on the unique external_event_id, then an
   atomic F("attempts") + 1 update. Concurrent deliveries of one event
   race on the unique constraint, never on a read-then-write check.
2. process_event: inside one transaction the ledger row is locked with
   select_for_update; a PROCESSED row short-circuits as a duplicate. The
   handler runs in a savepoint, so a failing handler rolls back its own
   writes while the FAILED outcome is still recorded.

Usage:
    from payments.services import WebhookService

    webhook_event, already_processed = WebhookService.receive_event(event_data)
    if not already_processed:
        process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from django.db import transaction
from django.db.models import F

from core.services import BaseService, ServiceResult

from payments.adapters import StripeAdapter
from payments.exceptions import PaymentNotFoundError, StripeError, WebhookPayloadError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

if TYPE_CHECKING:
    from payments.adapters import PaymentProcessor


class WebhookService(BaseService):
    """
    Service for the webhook idempotency ledger.

    Methods:
        receive_event: Record a verified event delivery
        process_event: Run the handler for a recorded event at most once
        handle_event: receive_event + process_event (synchronous path)
        get_failed_events: Failed events for the admin queue
        retry_event: Re-fetch and reprocess a failed event
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
    def receive_event(cls, event_data: dict[str, Any]) -> tuple[WebhookEvent, bool]:
        """
        Record one delivery of a verified event.

        Returns:
            (webhook_event, already_processed)

        Raises:
            WebhookPayloadError: Event has no id or type
        """
        event_id = event_data.get("id")
        event_type = event_data.get("type")
        if not event_id or not event_type:
            raise WebhookPayloadError("Webhook event is missing id or type")

        webhook_event, created = WebhookEvent.objects.get_or_create(
            external_event_id=event_id,
            defaults={
                "event_type": event_type,
                "payload": event_data,
                "status": WebhookEventStatus.PENDING,
            },
        )
        WebhookEvent.objects.filter(pk=webhook_event.pk).update(attempts=F("attempts") + 1)
        webhook_event.refresh_from_db(fields=["attempts", "status"])

        cls.get_logger().info(
            f"Received webhook: {event_type}",
            extra={
                "event_id": event_id,
                "event_type": event_type,
                "row_created": created,
                "attempts": webhook_event.attempts,
                "status": webhook_event.status,
            },
        )
        return webhook_event, webhook_event.is_processed

    @classmethod
    def record_attempt(cls, webhook_event_id) -> None:
        """Count a re-run of an unprocessed event, e.g. a task retry."""
        WebhookEvent.objects.filter(pk=webhook_event_id).exclude(
            status=WebhookEventStatus.PROCESSED
        ).update(attempts=F("attempts") + 1)

    @classmethod
    def process_event(cls, webhook_event_id) -> ServiceResult[WebhookEvent]:
        """
        Process a recorded event with its registered handler.

        Outcome: PROCESSED on success, SKIPPED when no handler is
        registered, FAILED with last_error when the handler fails. A
        PROCESSED event is returned unchanged.

        Error codes:
            WEBHOOK_NOT_FOUND: No ledger row
            the handler's error code when it fails
        """
        from payments.webhooks.handlers import get_handler

        logger = cls.get_logger()

        with transaction.atomic():
            webhook_event = (
                WebhookEvent.objects.select_for_update().filter(id=webhook_event_id).first()
            )
            if webhook_event is None:
                return ServiceResult.failure(
                    f"Webhook event {webhook_event_id} not found",
                    error_code="WEBHOOK_NOT_FOUND",
                )

            log_context = {
                "event_id": webhook_event.external_event_id,
                "event_type": webhook_event.event_type,
                "webhook_event_id": str(webhook_event.id),
                "attempts": webhook_event.attempts,
            }

            if webhook_event.is_processed:
                logger.info("Webhook already processed, skipping", extra=log_context)
                return ServiceResult.success(webhook_event)

            handler = get_handler(webhook_event.event_type)
            if handler is None:
                webhook_event.mark_skipped()
                webhook_event.save(update_fields=["status", "processed_at", "updated_at"])
                logger.info("No handler for webhook type, skipped", extra=log_context)
                return ServiceResult.success(webhook_event)

            try:
                with transaction.atomic():
                    result = handler(webhook_event)
            except Exception as e:
                logger.error(
                    f"Webhook handler raised: {type(e).__name__}",
                    extra={**log_context, "error": str(e)},
                    exc_info=True,
                )
                webhook_event.mark_failed(getattr(e, "message", None) or str(e))
                webhook_event.save(update_fields=["status", "last_error", "updated_at"])
                return ServiceResult.from_exception(e)

            if result is not None and not result.success:
                logger.warning(
                    f"Webhook handler failed: {result.error_code}",
                    extra={**log_context, "error": result.error},
                )
                webhook_event.mark_failed(result.error or "Handler failed")
                webhook_event.save(update_fields=["status", "last_error", "updated_at"])
                return ServiceResult.failure(result.error or "Handler failed", result.error_code)

            webhook_event.mark_processed()
            webhook_event.save(
                update_fields=["status", "processed_at", "last_error", "updated_at"]
            )

        logger.info("Webhook processed", extra=log_context)
        return ServiceResult.success(webhook_event)

    @classmethod
    def handle_event(cls, event_data: dict[str, Any]) -> ServiceResult[WebhookEvent]:
        """Record and process an event synchronously."""
        webhook_event, already_processed = cls.receive_event(event_data)
        if already_processed:
            return ServiceResult.success(webhook_event)
        return cls.process_event(webhook_event.id)

    @classmethod
    def get_failed_events(cls, limit: int = 100) -> list[WebhookEvent]:
        return list(
            WebhookEvent.objects.filter(status=WebhookEventStatus.FAILED).order_by("-updated_at")[
                :limit
            ]
        )

    @classmethod
    def retry_event(cls, webhook_event_id, refetch: bool = True) -> ServiceResult[WebhookEvent]:
        """
        Reprocess a failed event, by default with a fresh copy from the processor.

        Every retry counts as an attempt.

        Raises:
            PaymentNotFoundError: No ledger row
        """
        webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
        if webhook_event is None:
            raise PaymentNotFoundError(
                "Webhook event not found",
                details={"webhook_event_id": str(webhook_event_id)},
            )
        if webhook_event.is_processed:
            return ServiceResult.success(webhook_event)

        updates: dict[str, Any] = {
            "status": WebhookEventStatus.PENDING,
            "attempts": F("attempts") + 1,
        }
        if refetch:
            try:
                updates["payload"] = cls.get_processor().retrieve_event(
                    webhook_event.external_event_id
                )
            except StripeError as e:
                cls.get_logger().warning(
                    f"Could not re-fetch webhook event: {e.error_code}",
                    extra={"event_id": webhook_event.external_event_id, "error": str(e)},
                )
                return ServiceResult.from_exception(e)

        WebhookEvent.objects.filter(pk=webhook_event.pk).exclude(
            status=WebhookEventStatus.PROCESSED
        ).update(**updates)

        cls.get_logger().info(
            "Retrying webhook event",
            extra={
                "event_id": webhook_event.external_event_id,
                "webhook_event_id": str(webhook_event.id),
            },
        )
        return cls.process_event(webhook_event.id)
