"""
Booking models.

Only the fields the settlement core reads are modelled here: parties,
amounts, rental period and the lifecycle status.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from core.models import BaseModel, Currency
from core.model_mixins import UUIDPrimaryKeyMixin


class BookingStatus(models.TextChoices):
    """
    Booking lifecycle status.

    State Flow:
        PENDING -> ACCEPTED -> AWAITING_PICKUP -> ACTIVE -> COMPLETED
        PENDING -> DECLINED
        any open state -> CANCELLED / IN_DISPUTE
        IN_DISPUTE -> COMPLETED (dispute resolved)
    """

    PENDING = "PENDING", "Pending"
    ACCEPTED = "ACCEPTED", "Accepted"
    DECLINED = "DECLINED", "Declined"
    AWAITING_PICKUP = "AWAITING_PICKUP", "Awaiting pickup"
    ACTIVE = "ACTIVE", "Active"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"
    IN_DISPUTE = "IN_DISPUTE", "In dispute"


class Booking(UUIDPrimaryKeyMixin, BaseModel):
    """
    A rental of one listing by one renter for a date range.

    Fields:
        booking_status: Lifecycle status (see BookingStatus)
        renter: User paying for the rental
        owner: User listing the equipment and receiving payouts
        listing_title: Snapshot of the listing title at booking time
        rental_total: Authoritative rental price (source of charge amounts)
        bond_amount: Security deposit held separately from the rental charge
        currency: Settlement currency
        start_date / end_date: Rental period
        actual_return_time: When the equipment came back (completion time)
    """

    booking_status = models.CharField(
        max_length=20,
        choices=BookingStatus.choices,
        default=BookingStatus.PENDING,
        db_index=True,
    )

    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings_as_renter",
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings_as_owner",
    )

    listing_title = models.CharField(max_length=200)

    rental_total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
        help_text="Rental price; the only source of the charge amount",
    )
    bond_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.NZD,
    )

    start_date = models.DateField()
    end_date = models.DateField()

    actual_return_time = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the rental was returned; orders payout eligibility",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["owner", "booking_status"], name="booking_owner_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.booking_status})"
