"""
Transaction model: append-only ledger of money movements.

Every rental payment, platform fee, owner payout, refund, bond capture and
bond release writes one Transaction. Entries are immutable once created:
corrections are made via new entries. save() on an existing row and
delete() raise ImmutableRecordError; bulk queryset updates are not used
on this table.

Entries that a redelivered event could write twice carry an
idempotency_key (e.g. 'rental_payment:<payment intent id>'); the unique
constraint turns the second write into a no-op for the caller.

Usage:
    from payments.models import Transaction
    from payments.state_machines import TransactionType

    Transaction.objects.create(
        type=TransactionType.BOND_CAPTURE,
        reference_type="Booking",
        reference_id=str(booking.id),
        currency="NZD",
        amount=Decimal("350.00"),
        bond_hold=bond_hold,
        description="Bond captured: Cleaning",
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel, Currency
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.exceptions import ImmutableRecordError
from payments.state_machines import TransactionType


class Transaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable ledger entry recording one money movement.

    Fields:
        type: Kind of movement (TransactionType)
        reference_type / reference_id: Business entity the entry belongs to
        currency / amount: Money moved (never negative)
        from_user / to_user: Parties, where known
        payment_intent / bond_hold / payout: Optional links
        external_charge_ref / external_transfer_ref: Processor references
        description: Human-readable description
        idempotency_key: Optional unique key guarding duplicate writes
    """

    type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
        db_index=True,
    )

    reference_type = models.CharField(max_length=50)
    reference_id = models.CharField(max_length=64, db_index=True)

    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.NZD,
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)

    from_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="outgoing_transactions",
    )
    to_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="incoming_transactions",
    )

    payment_intent = models.ForeignKey(
        "payments.PaymentIntent",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    bond_hold = models.ForeignKey(
        "payments.BondHold",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    payout = models.ForeignKey(
        "payments.Payout",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )

    external_charge_ref = models.CharField(max_length=255, blank=True)
    external_transfer_ref = models.CharField(max_length=255, blank=True)

    description = models.TextField(blank=True)

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Unique key to prevent duplicate entries",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        indexes = [
            models.Index(fields=["reference_type", "reference_id"], name="txn_reference_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="txn_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_type_display()}: {self.amount} {self.currency}"

    def save(self, *args, **kwargs):
        """Insert only. Existing entries cannot be changed."""
        if not self._state.adding:
            raise ImmutableRecordError(
                "Transactions are append-only and cannot be updated",
                details={"transaction_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(
            "Transactions are append-only and cannot be deleted",
            details={"transaction_id": str(self.pk)},
        )
