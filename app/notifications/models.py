"""
Notification models.

Notification is the durable hand-off record between the payment core and
whatever delivers messages to users. Each row is typed, carries the
structured payload used to render it, and may carry an idempotency key so
redelivered payment events never notify a user twice.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class NotificationType(models.TextChoices):
    """Notification types raised by the payment and settlement core."""

    PAYMENT_RECEIVED = "PAYMENT_RECEIVED", "Payment received"
    PAYMENT_FAILED = "PAYMENT_FAILED", "Payment failed"
    PAYMENT_CANCELLED = "PAYMENT_CANCELLED", "Payment cancelled"
    BOOKING_REFUNDED = "BOOKING_REFUNDED", "Booking refunded"
    DISPUTE_RAISED = "DISPUTE_RAISED", "Dispute raised"
    PAYOUT_SENT = "PAYOUT_SENT", "Payout sent"
    PAYOUT_FAILED = "PAYOUT_FAILED", "Payout failed"


class Notification(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single notification addressed to one user.

    Fields:
        recipient: User receiving the notification
        notification_type: Typed notification kind
        title / body: Rendered text
        data: Structured payload (bookingId, listingTitle, paymentStatus, ...)
        is_read: Whether the recipient has seen it
        idempotency_key: Optional key preventing duplicates
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        help_text="User receiving the notification",
    )

    notification_type = models.CharField(
        max_length=32,
        choices=NotificationType.choices,
        db_index=True,
        help_text="Notification type",
    )

    title = models.CharField(max_length=200)
    body = models.TextField(blank=True)

    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Structured payload for clients and renderers",
    )

    is_read = models.BooleanField(default=False)

    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Prevents duplicate notifications for the same trigger",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read", "created_at"],
                name="notif_recipient_read_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Notification({self.notification_type} -> {self.recipient_id})"
