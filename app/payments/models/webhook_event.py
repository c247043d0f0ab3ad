"""
WebhookEvent model: the idempotency ledger for processor events.

Every verified event received from the processor gets exactly one row,
keyed by the processor's event id. The unique constraint on
external_event_id is the serialization point for concurrent redelivery:
rows are claimed with get_or_create plus a row lock, never with a
read-then-write check. Rows are never deleted.

Usage:
    from payments.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        external_event_id="evt_123",
        defaults={"event_type": "payment_intent.succeeded", "payload": payload},
    )
    if not created and event.is_processed:
        return  # Duplicate delivery, already applied
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks processor webhook events for at-most-once effect application.

    Processing Flow:
        1. Webhook arrives, signature verified (failures never reach this table)
        2. get_or_create on external_event_id, attempts incremented atomically
        3. Row locked; PROCESSED -> duplicate, return success
        4. Handler looked up by event type; none -> SKIPPED
        5. Handler runs -> PROCESSED, or FAILED with last_error

    Fields:
        external_event_id: Processor event ID (evt_xxx), unique
        event_type: Processor event type (e.g. 'payment_intent.succeeded')
        payload: Full event payload
        status: PENDING / PROCESSED / FAILED / SKIPPED
        attempts: Number of deliveries and processing attempts
        last_error: Message of the last handler failure
        processed_at: When the event reached PROCESSED or SKIPPED
    """

    external_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Processor event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Processor event type (e.g., 'payment_intent.succeeded')",
    )

    payload = models.JSONField(
        default=dict,
        help_text="Full webhook payload (JSON)",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    attempts = models.PositiveIntegerField(
        default=0,
        help_text="Incremented on every delivery and processing attempt",
    )

    last_error = models.TextField(blank=True)

    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "attempts"], name="webhook_status_attempts_idx"),
            models.Index(fields=["event_type", "created_at"], name="webhook_type_created_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.external_event_id}, {self.event_type}, {self.status})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def data_object(self) -> dict:
        """The event's data.object, or an empty dict."""
        data = self.payload.get("data") if isinstance(self.payload, dict) else None
        if not isinstance(data, dict):
            return {}
        obj = data.get("object")
        return obj if isinstance(obj, dict) else {}

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processed(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.last_error = ""

    def mark_skipped(self) -> None:
        """
        Mark event as skipped (no handler registered for its type).

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.SKIPPED
        self.processed_at = timezone.now()

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with the handler's error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.last_error = error_message[:2000]
