"""
Connected account onboarding for owners.

Owners receive payouts through an Express connected account. Onboarding
creates the account (once), stores it on OwnerPayoutAccount and hands
back a hosted onboarding link. refresh_account_status() pulls the
account's state after the owner returns from onboarding.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import StripeError
from payments.models import OwnerPayoutAccount
from payments.state_machines import AccountStatus

if TYPE_CHECKING:
    from authentication.models import User
    from payments.adapters import PaymentProcessor


COUNTRY_CURRENCIES = {
    "NZ": "NZD",
    "AU": "AUD",
}

ONBOARDING_PATH = "/owner/payouts/onboarding"


@dataclass
class OnboardingLink:
    account_id: str
    onboarding_url: str
    expires_at: int | None = None


class ConnectAccountService(BaseService):
    """
    Service for owner connected accounts.

    Methods:
        create_connected_account: Create (or reuse) the account and an onboarding link
        refresh_account_status: Sync onboarding/verification state from the processor
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
    def create_connected_account(
        cls,
        owner: User,
        country: str | None = None,
    ) -> ServiceResult[OnboardingLink]:
        """
        Start or resume payout onboarding for an owner.

        Error codes:
            NOT_OWNER: User cannot list equipment
            UNSUPPORTED_COUNTRY: No payout currency for the country
            plus processor error codes
        """
        if not owner.is_owner:
            return ServiceResult.failure(
                "Only owners can set up payouts",
                error_code="NOT_OWNER",
            )

        country = (country or owner.country).upper()
        currency = COUNTRY_CURRENCIES.get(country)
        if currency is None:
            return ServiceResult.failure(
                f"Payouts are not supported in {country}",
                error_code="UNSUPPORTED_COUNTRY",
            )

        processor = cls.get_processor()
        account = OwnerPayoutAccount.objects.filter(owner=owner).first()

        try:
            if account is None or not account.external_account_ref:
                remote = processor.create_connected_account(
                    email=owner.email,
                    country=country,
                    idempotency_key=IdempotencyKeyGenerator.generate("connect_account", owner.pk),
                    metadata={"ownerId": str(owner.pk)},
                )
                account, _ = OwnerPayoutAccount.objects.update_or_create(
                    owner=owner,
                    defaults={
                        "external_account_ref": remote.id,
                        "account_status": AccountStatus.PENDING,
                        "currency": currency,
                    },
                )
                cls.get_logger().info(
                    "Connected account created",
                    extra={"owner_id": owner.pk, "account_id": remote.id},
                )

            base_url = settings.APP_BASE_URL.rstrip("/")
            link = processor.create_account_link(
                account.external_account_ref,
                refresh_url=f"{base_url}{ONBOARDING_PATH}?refresh=true",
                return_url=f"{base_url}{ONBOARDING_PATH}?success=true",
            )
        except StripeError as e:
            cls.get_logger().warning(
                f"Connected account onboarding failed: {e.error_code}",
                extra={"owner_id": owner.pk, "error": str(e)},
            )
            return ServiceResult.from_exception(e)

        return ServiceResult.success(
            OnboardingLink(
                account_id=account.external_account_ref,
                onboarding_url=link.url,
                expires_at=link.expires_at,
            )
        )

    @classmethod
    def refresh_account_status(cls, owner: User) -> ServiceResult[OwnerPayoutAccount]:
        """
        Pull the connected account's onboarding state.

        active when details are submitted and payouts are enabled,
        pending_verification when only details are submitted, else pending.

        Error codes:
            NO_ACCOUNT: Owner never started onboarding
        """
        account = OwnerPayoutAccount.objects.filter(owner=owner).first()
        if account is None or not account.external_account_ref:
            return ServiceResult.failure(
                "No connected account for this owner",
                error_code="NO_ACCOUNT",
            )

        try:
            remote = cls.get_processor().retrieve_account(account.external_account_ref)
        except StripeError as e:
            return ServiceResult.from_exception(e)

        if remote.details_submitted and remote.payouts_enabled:
            status = AccountStatus.ACTIVE
        elif remote.details_submitted:
            status = AccountStatus.PENDING_VERIFICATION
        else:
            status = AccountStatus.PENDING

        account.account_status = status
        update_fields = ["account_status", "updated_at"]
        if status == AccountStatus.ACTIVE and not account.is_verified:
            account.onboarding_complete = True
            account.is_verified = True
            account.verified_at = timezone.now()
            update_fields.extend(["onboarding_complete", "is_verified", "verified_at"])
        account.save(update_fields=update_fields)

        cls.get_logger().info(
            f"Connected account status: {status}",
            extra={"owner_id": owner.pk, "account_id": account.external_account_ref},
        )
        return ServiceResult.success(account)
