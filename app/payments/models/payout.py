"""
Payout and PayoutItem models for owner settlements.

A Payout is one transfer of an owner's aggregated net earnings to their
connected account. Each PayoutItem records the contribution of one booking.
The Payout, its items and the escrow release of every included
PaymentIntent are committed in one database transaction.

Invariant:
    sum(PayoutItem.net_amount) == Payout.net_amount

Usage:
    from payments.models import Payout

    payout.start_processing(transfer_ref="tr_123")  # PENDING -> PROCESSING
    payout.save()

    payout.complete()  # PROCESSING -> COMPLETED (payout.paid event)
    payout.save()
"""

from __future__ import annotations

from django.db import models
from django.db.models import F
from django.utils import timezone
from django_fsm import FSMField, transition

from core.models import BaseModel, Currency
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PayoutStatus

MONEY = {"max_digits": 12, "decimal_places": 2}


class Payout(UUIDPrimaryKeyMixin, BaseModel):
    """
    Transfer of aggregated owner earnings to a connected account.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING -> FAILED (permanent transfer error, escrow restored)
        PROCESSING -> FAILED / CANCELLED (processor payout events)
        COMPLETED -> FAILED (transfer reversed)

    Fields:
        owner_account: Destination OwnerPayoutAccount
        external_transfer_ref: Processor transfer ID (tr_xxx)
        gross_amount / platform_fees / net_amount: Aggregated amounts
        period_start / period_end: Completion times of first/last booking
        booking_count: Number of PayoutItems
        status: Current FSM state (protected, change only via transitions)
        version: Optimistic locking version
    """

    owner_account = models.ForeignKey(
        "payments.OwnerPayoutAccount",
        on_delete=models.PROTECT,
        related_name="payouts",
    )

    external_transfer_ref = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Processor transfer ID (tr_xxx)",
    )

    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.NZD,
    )

    gross_amount = models.DecimalField(**MONEY)
    platform_fees = models.DecimalField(**MONEY)
    net_amount = models.DecimalField(**MONEY)

    period_start = models.DateTimeField()
    period_end = models.DateTimeField()
    booking_count = models.PositiveIntegerField(default=0)

    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True)

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["owner_account", "status"], name="payout_account_status_idx"),
            models.Index(fields=["status", "created_at"], name="payout_status_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(net_amount__gt=0),
                name="payout_net_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout({self.id}, {self.status}, {self.net_amount} {self.currency})"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PayoutStatus.PENDING,
        target=PayoutStatus.PROCESSING,
    )
    def start_processing(self, transfer_ref: str):
        """
        Record the processor transfer.

        Transition: PENDING -> PROCESSING
        """
        self.external_transfer_ref = transfer_ref
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING],
        target=PayoutStatus.COMPLETED,
    )
    def complete(self):
        """
        Mark payout as paid out.

        Transition: PENDING/PROCESSING -> COMPLETED
        """
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING, PayoutStatus.COMPLETED],
        target=PayoutStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark payout as failed.

        Transition: PENDING/PROCESSING/COMPLETED -> FAILED

        COMPLETED is a source because a transfer can be reversed after
        the payout completed.
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING],
        target=PayoutStatus.CANCELLED,
    )
    def cancel(self, reason: str | None = None):
        """
        Cancel a payout that has not completed.

        Transition: PENDING/PROCESSING -> CANCELLED
        """
        if reason:
            self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in (PayoutStatus.FAILED, PayoutStatus.CANCELLED)


class PayoutItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    One booking's contribution to a payout.

    Fields:
        payout: Parent payout
        booking: Booking paid out
        gross_amount: Rental amount of the booking
        platform_fee: Platform fee retained
        net_amount: Owner amount after proportional refund reduction
    """

    payout = models.ForeignKey(
        Payout,
        on_delete=models.CASCADE,
        related_name="items",
    )

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payout_items",
    )

    gross_amount = models.DecimalField(**MONEY)
    platform_fee = models.DecimalField(**MONEY)
    net_amount = models.DecimalField(**MONEY)

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Payout Item"
        verbose_name_plural = "Payout Items"
        constraints = [
            models.UniqueConstraint(
                fields=["payout", "booking"],
                name="payout_item_unique_booking",
            ),
        ]

    def __str__(self) -> str:
        return f"PayoutItem({self.payout_id}, {self.booking_id}, {self.net_amount})"
