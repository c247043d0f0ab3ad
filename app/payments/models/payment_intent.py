"""
PaymentIntent model: the escrow record for one booking.

The record is created once when the renter starts paying and holds the
server-computed rental/fee/owner split. After creation it is mutated only
by verified processor events or by reconciliation; every money movement
is additionally recorded as an append-only Transaction.

Usage:
    from payments.models import PaymentIntent
    from payments.state_machines import PaymentIntentStatus

    intent = PaymentIntent.objects.get(external_ref="pi_123")
    intent.is_payout_eligible  # SUCCEEDED, still in escrow, no dispute hold
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import F

from core.models import BaseModel, Currency
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import (
    DisputeResolution,
    PaymentIntentStatus,
    PaymentMode,
)

MONEY = {"max_digits": 12, "decimal_places": 2}

# Payment statuses whose funds can still be paid out
PAYOUT_ELIGIBLE_STATUSES = (
    PaymentIntentStatus.SUCCEEDED,
    PaymentIntentStatus.PARTIALLY_REFUNDED,
)


class PaymentIntent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Authoritative escrow record of rental, fee, owner and refund amounts.

    Invariants:
        owner_amount + platform_fee_amount == rental_amount (undisputed records)
        refunded_amount <= total_amount (database check constraint)

    Fields:
        booking: Booking paid by this intent (one-to-one)
        external_ref: Processor PaymentIntent ID (pi_xxx)
        client_secret: Secret handed to the client to confirm the payment
        external_charge_ref: Processor charge ID (ch_xxx) once charged
        payment_mode: FULL or DEPOSIT
        deposit_percent / balance_amount: Deposit mode split
        rental_amount / platform_fee_amount / owner_amount / total_amount:
            Server-computed split (total_amount == rental_amount)
        refunded_amount: Amount refunded so far
        status: Processor-derived payment status
        is_in_escrow: Funds not yet released to the owner
        dispute_hold: An open dispute blocks payout
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships & Processor References
    # ==========================================================================

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payment_intent",
        help_text="Booking paid by this intent (at most one per booking)",
    )

    external_ref = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Processor PaymentIntent ID (pi_xxx)",
    )

    client_secret = models.CharField(
        max_length=255,
        blank=True,
        help_text="Client secret for confirming the payment client-side",
    )

    external_charge_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Processor charge ID (ch_xxx)",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.NZD,
    )

    payment_mode = models.CharField(
        max_length=10,
        choices=PaymentMode.choices,
        default=PaymentMode.FULL,
    )

    deposit_percent = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Deposit percentage when payment_mode is DEPOSIT",
    )

    balance_amount = models.DecimalField(
        **MONEY,
        default=Decimal("0.00"),
        help_text="Amount left to pay after the deposit",
    )

    rental_amount = models.DecimalField(**MONEY)
    platform_fee_amount = models.DecimalField(**MONEY)
    platform_fee_percent = models.DecimalField(max_digits=5, decimal_places=2)
    owner_amount = models.DecimalField(**MONEY)
    total_amount = models.DecimalField(**MONEY)

    bond_amount = models.DecimalField(
        **MONEY,
        default=Decimal("0.00"),
        help_text="Bond authorized separately (never part of total_amount)",
    )

    refunded_amount = models.DecimalField(**MONEY, default=Decimal("0.00"))

    # ==========================================================================
    # Status & Escrow
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=PaymentIntentStatus.choices,
        default=PaymentIntentStatus.PENDING,
        db_index=True,
    )

    is_in_escrow = models.BooleanField(
        default=True,
        help_text="Funds are held until the booking completes and a payout runs",
    )

    escrow_released_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    refund_reason = models.TextField(blank=True)

    # ==========================================================================
    # Dispute
    # ==========================================================================

    dispute_hold = models.BooleanField(
        default=False,
        help_text="An open dispute blocks this booking from payouts",
    )

    external_dispute_ref = models.CharField(max_length=255, blank=True)

    pre_dispute_booking_status = models.CharField(
        max_length=20,
        blank=True,
        help_text="Booking status restored when the dispute is resolved",
    )

    dispute_resolution = models.CharField(
        max_length=20,
        choices=DisputeResolution.choices,
        blank=True,
    )

    dispute_resolved_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Intent"
        verbose_name_plural = "Payment Intents"
        indexes = [
            models.Index(fields=["status", "is_in_escrow"], name="pi_status_escrow_idx"),
            models.Index(fields=["status", "updated_at"], name="pi_status_updated_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(refunded_amount__lte=F("total_amount")),
                name="pi_refund_within_total",
            ),
            models.CheckConstraint(
                condition=models.Q(refunded_amount__gte=0)
                & models.Q(rental_amount__gte=0)
                & models.Q(platform_fee_amount__gte=0)
                & models.Q(owner_amount__gte=0)
                & models.Q(total_amount__gte=0),
                name="pi_amounts_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentIntent({self.external_ref or self.id}, {self.status}, {self.total_amount} {self.currency})"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def refundable_amount(self) -> Decimal:
        """Amount that can still be refunded."""
        return self.total_amount - self.refunded_amount

    @property
    def is_refunded(self) -> bool:
        return self.status in (
            PaymentIntentStatus.REFUNDED,
            PaymentIntentStatus.PARTIALLY_REFUNDED,
        )

    @property
    def is_payout_eligible(self) -> bool:
        """
        Payment side of payout eligibility (booking status checked separately).

        A partial refund keeps the booking eligible; its owner share is
        reduced proportionally at payout time.
        """
        return (
            self.status in PAYOUT_ELIGIBLE_STATUSES
            and self.is_in_escrow
            and not self.dispute_hold
        )
