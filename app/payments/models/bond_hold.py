"""
BondHold model for security deposit authorizations.

A bond is authorized on the renter's card (manual capture) and either
captured, in full or in part, to cover damage or cleaning costs, or
released back to the renter. Authorizations lapse upstream after
BOND_HOLD_EXPIRY_DAYS; an expired uncaptured hold counts as released.

Usage:
    from payments.models import BondHold

    bond_hold.capture(amount=Decimal("350.00"), reason="Cleaning", captured_by=admin)
    bond_hold.save()

    bond_hold.release()
    bond_hold.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone
from django_fsm import FSMField, transition

from core.models import BaseModel, Currency
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import BondHoldStatus

MONEY = {"max_digits": 12, "decimal_places": 2}


class BondHold(UUIDPrimaryKeyMixin, BaseModel):
    """
    Security deposit authorization for a booking.

    State Flow:
        AUTHORIZED -> CAPTURED (full capture)
        AUTHORIZED -> PARTIALLY_CAPTURED -> RELEASED
        AUTHORIZED -> RELEASED
        AUTHORIZED -> EXPIRED

    Invariants:
        captured_amount <= authorized_amount (database check constraint)
        after release: released_amount + captured_amount == authorized_amount

    Fields:
        booking: Booking the bond secures
        external_ref: Processor PaymentIntent ID of the manual-capture intent
        payment_method_ref: Renter payment method used for the authorization
        authorized_amount / captured_amount / released_amount: Bond amounts
        status: Current FSM state (protected, change only via transitions)
        expires_at: When the upstream authorization lapses
        capture_reason / captured_by: Why and by whom the bond was captured
    """

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="bond_holds",
    )

    external_ref = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Processor PaymentIntent ID for the authorization",
    )

    payment_method_ref = models.CharField(max_length=255, blank=True)

    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.NZD,
    )

    authorized_amount = models.DecimalField(**MONEY)
    captured_amount = models.DecimalField(**MONEY, default=Decimal("0.00"))
    released_amount = models.DecimalField(**MONEY, default=Decimal("0.00"))

    status = FSMField(
        default=BondHoldStatus.AUTHORIZED,
        choices=BondHoldStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the bond hold (managed by FSM)",
    )

    authorized_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(db_index=True)
    captured_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)

    capture_reason = models.TextField(blank=True)
    captured_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="captured_bond_holds",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Bond Hold"
        verbose_name_plural = "Bond Holds"
        indexes = [
            models.Index(fields=["status", "expires_at"], name="bond_status_expiry_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(captured_amount__lte=F("authorized_amount")),
                name="bond_capture_within_authorized",
            ),
            models.CheckConstraint(
                condition=models.Q(authorized_amount__gt=0),
                name="bond_authorized_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"BondHold({self.id}, {self.status}, {self.authorized_amount} {self.currency})"

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
        source=BondHoldStatus.AUTHORIZED,
        target=BondHoldStatus.CAPTURED,
        conditions=[lambda hold: not hold.is_expired],
    )
    def capture_full(self, reason: str, captured_by=None):
        """
        Capture the whole authorized amount.

        Transition: AUTHORIZED -> CAPTURED
        """
        self._record_capture(self.authorized_amount, reason, captured_by)

    @transition(
        field=status,
        source=BondHoldStatus.AUTHORIZED,
        target=BondHoldStatus.PARTIALLY_CAPTURED,
        conditions=[lambda hold: not hold.is_expired],
    )
    def capture_partial(self, amount: Decimal, reason: str, captured_by=None):
        """
        Capture part of the authorized amount.

        Transition: AUTHORIZED -> PARTIALLY_CAPTURED
        """
        self._record_capture(amount, reason, captured_by)

    def capture(self, amount: Decimal, reason: str, captured_by=None) -> None:
        """
        Capture amount, choosing full or partial capture.

        Callers validate 0 < amount <= authorized_amount first.
        """
        if amount == self.authorized_amount:
            self.capture_full(reason=reason, captured_by=captured_by)
        else:
            self.capture_partial(amount=amount, reason=reason, captured_by=captured_by)

    @transition(
        field=status,
        source=[BondHoldStatus.AUTHORIZED, BondHoldStatus.PARTIALLY_CAPTURED],
        target=BondHoldStatus.RELEASED,
    )
    def release(self):
        """
        Release the uncaptured remainder to the renter.

        Transition: AUTHORIZED/PARTIALLY_CAPTURED -> RELEASED
        """
        self.released_amount = self.authorized_amount - self.captured_amount
        self.released_at = timezone.now()

    @transition(
        field=status,
        source=BondHoldStatus.AUTHORIZED,
        target=BondHoldStatus.EXPIRED,
    )
    def expire(self):
        """
        Mark a lapsed authorization as expired.

        Transition: AUTHORIZED -> EXPIRED

        Nothing was captured, so the whole amount is effectively released.
        """
        self.released_amount = self.authorized_amount
        self.released_at = timezone.now()

    def _record_capture(self, amount: Decimal, reason: str, captured_by) -> None:
        self.captured_amount = amount
        self.captured_at = timezone.now()
        self.capture_reason = reason
        self.captured_by = captured_by

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_expired(self) -> bool:
        """Upstream authorization has lapsed."""
        return self.expires_at is not None and timezone.now() >= self.expires_at

    @property
    def remaining_amount(self) -> Decimal:
        return self.authorized_amount - self.captured_amount
