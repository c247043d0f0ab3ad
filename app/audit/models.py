"""
Audit models.

AuditLog is written alongside every payment-driven state change so that
support staff can reconstruct what happened to a booking without reading
processor dashboards.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class AuditAction(models.TextChoices):
    """Audited actions."""

    BOOKING_STATUS_CHANGED = "BOOKING_STATUS_CHANGED", "Booking status changed"
    DISPUTE_CREATED = "DISPUTE_CREATED", "Dispute created"
    PAYOUT_HELD = "PAYOUT_HELD", "Payout held"
    ADMIN_DISPUTE_RESOLVED = "ADMIN_DISPUTE_RESOLVED", "Dispute resolved by admin"
    PAYOUT_CREATED = "PAYOUT_CREATED", "Payout created"
    PAYMENT_RECONCILED = "PAYMENT_RECONCILED", "Payment reconciled"
    BOND_CAPTURED = "BOND_CAPTURED", "Bond captured"
    BOND_RELEASED = "BOND_RELEASED", "Bond released"


class AuditLog(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single audit entry.

    Fields:
        action: What happened
        description: Human-readable summary
        target_type / target_id: The record the action applied to
        booking: Booking the action relates to (when any)
        actor: User that triggered it (null for webhooks and scheduled jobs)
        metadata: Structured context (previous/new status, amounts, trigger)
    """

    action = models.CharField(
        max_length=32,
        choices=AuditAction.choices,
        db_index=True,
    )

    description = models.TextField()

    target_type = models.CharField(
        max_length=50,
        help_text="Type of the record the action applied to",
    )
    target_id = models.CharField(
        max_length=64,
        help_text="Identifier of the record the action applied to",
    )

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
        help_text="User that triggered the action (null for system actions)",
    )

    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["target_type", "target_id"], name="audit_target_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.target_type}:{self.target_id}"
