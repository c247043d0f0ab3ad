"""
OwnerPayoutAccount model: an owner's connected account for receiving payouts.

Each owner has at most one payout account. It links the owner to their
processor connected account, tracks onboarding and verification, and holds
the owner's payout preferences (schedule and minimum amount).

Usage:
    from payments.models import OwnerPayoutAccount

    account = OwnerPayoutAccount.objects.get(owner=owner)
    if account.is_payout_ready:
        PayoutService.create_owner_payout(owner.id)
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models

from core.models import BaseModel, Currency
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import AccountStatus, PayoutSchedule


def default_minimum_payout_amount() -> Decimal:
    return settings.DEFAULT_MINIMUM_PAYOUT_AMOUNT


class OwnerPayoutAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    Connected account and payout preferences for one owner.

    Fields:
        owner: Owner receiving payouts (one-to-one)
        external_account_ref: Processor connected account ID (acct_xxx)
        account_status: pending / pending_verification / active
        onboarding_complete: Details submitted and payouts enabled upstream
        is_verified: Verified by the processor
        minimum_payout_amount: Aggregate net below this rolls to the next cycle
        payout_schedule: daily / weekly / monthly / manual

    Properties:
        is_payout_ready: True if transfers can be sent to this account
    """

    owner = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payout_account",
    )

    external_account_ref = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Processor connected account ID (acct_xxx)",
    )

    account_status = models.CharField(
        max_length=32,
        choices=AccountStatus.choices,
        default=AccountStatus.PENDING,
    )

    onboarding_complete = models.BooleanField(default=False)
    is_verified = models.BooleanField(default=False)
    verified_at = models.DateTimeField(null=True, blank=True)

    minimum_payout_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=default_minimum_payout_amount,
    )

    payout_schedule = models.CharField(
        max_length=10,
        choices=PayoutSchedule.choices,
        default=PayoutSchedule.WEEKLY,
        db_index=True,
    )

    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.NZD,
    )

    class Meta:
        verbose_name = "Owner Payout Account"
        verbose_name_plural = "Owner Payout Accounts"

    def __str__(self) -> str:
        return f"OwnerPayoutAccount({self.owner_id}, {self.external_account_ref}, {self.account_status})"

    @property
    def is_payout_ready(self) -> bool:
        """Connected account exists, onboarding is complete and verified."""
        return bool(
            self.external_account_ref and self.onboarding_complete and self.is_verified
        )
