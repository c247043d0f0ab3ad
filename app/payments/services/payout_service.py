"""
Payout service: owner earnings calculation, batching and transfers.

Owners are paid only after a booking completes. Eligible bookings are
aggregated per owner; refunds reduce the owner's share proportionally;
a payout is created only when the aggregate meets the owner's minimum,
otherwise the bookings roll over to the next cycle.

Money leaves the platform in three phases:
1. Phase 1 (one transaction): lock the PaymentIntents, re-check
   eligibility, create the Payout and its PayoutItems, flip escrow off
2. Phase 2: processor transfer OUTSIDE the transaction, idempotency key
   derived from the payout id so retries never pay twice
3. Phase 3 (one transaction): store the transfer ref, Payout -> PROCESSING,
   record the OWNER_PAYOUT transaction

A permanent processor error fails the payout and returns its bookings to
escrow atomically. A transient error leaves the payout PENDING for
retry_pending_payouts().

Usage:
    from payments.services import PayoutService

    summary = PayoutService.get_owner_payout_summary(owner.id)
    if summary.meets_minimum and summary.is_payout_ready:
        payout = PayoutService.create_owner_payout(owner.id)

    batch = PayoutService.process_scheduled_payouts(PayoutSchedule.WEEKLY)
    print(batch.payouts_created, batch.errors)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.db.models.functions import Coalesce
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from audit.models import AuditAction
from audit.services import AuditService
from bookings.models import Booking, BookingStatus
from bookings.services import BookingLifecycleService
from core.services import BaseService, ServiceResult
from notifications.models import NotificationType
from notifications.services import NotificationService

from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.amounts import (
    calculate_net_owner_amount,
    resolve_dispute_owner_amount,
    to_minor_units,
)
from payments.exceptions import (
    ActiveDisputeError,
    PaymentError,
    PaymentNotFoundError,
    PayoutBelowMinimumError,
    PayoutError,
    PayoutNotReadyError,
    StripeError,
)
from payments.models import (
    PAYOUT_ELIGIBLE_STATUSES,
    OwnerPayoutAccount,
    PaymentIntent,
    Payout,
    PayoutItem,
    Transaction,
)
from payments.state_machines import (
    DisputeResolution,
    PayoutStatus,
    TransactionType,
)

if TYPE_CHECKING:
    from authentication.models import User
    from payments.adapters import PaymentProcessor


# PENDING payouts younger than this may still be mid-transfer
PENDING_RETRY_GRACE_MINUTES = 5

DEFAULT_HISTORY_LIMIT = 20


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PayoutEligibleBooking:
    """One completed booking whose owner share is still in escrow."""

    booking_id: str
    payment_intent_id: str
    listing_title: str
    currency: str
    rental_amount: Decimal
    platform_fee: Decimal
    owner_amount: Decimal
    refunded_amount: Decimal
    net_amount: Decimal
    completed_at: datetime


@dataclass
class OwnerPayoutSummary:
    """
    Aggregated payout position of one owner.

    Attributes:
        gross_amount: Sum of rental amounts
        platform_fees: Sum of platform fees
        net_amount: Sum of refund-adjusted owner amounts (what gets paid)
        minimum_payout_amount: Owner's configured minimum
        is_payout_ready: Owner's connected account can receive transfers
        meets_minimum: net_amount >= minimum_payout_amount with at least one booking
    """

    owner_id: str
    currency: str
    eligible_bookings: list[PayoutEligibleBooking]
    gross_amount: Decimal
    platform_fees: Decimal
    net_amount: Decimal
    minimum_payout_amount: Decimal
    is_payout_ready: bool

    @property
    def booking_count(self) -> int:
        return len(self.eligible_bookings)

    @property
    def meets_minimum(self) -> bool:
        return self.booking_count > 0 and self.net_amount >= self.minimum_payout_amount


@dataclass
class PayoutBatchResult:
    """
    Outcome of a scheduled payout run.

    Attributes:
        schedule: Payout schedule processed
        owners_processed: Owners attempted
        payouts_created: Ids of payouts created
        errors: Error message per owner id; other owners are unaffected
    """

    schedule: str
    owners_processed: int = 0
    payouts_created: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


# =============================================================================
# Payout Service
# =============================================================================


class PayoutService(BaseService):
    """
    Service for owner payouts.

    Methods:
        get_eligible_bookings: Completed, paid, undisputed bookings in escrow
        get_owner_payout_summary: Aggregate position of one owner
        create_owner_payout: Create and transfer one owner's payout
        execute_transfer: Phases 2 and 3 for a PENDING payout
        process_scheduled_payouts: Batch run for one schedule
        get_owners_due_for_payout: Owners with a payout due on a schedule
        retry_pending_payouts: Re-run transfers interrupted by transient errors
        update_payout_status: Apply processor payout / transfer events
        hold_payout_for_dispute / resolve_dispute: Dispute interplay
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

    # =========================================================================
    # Calculation
    # =========================================================================

    @classmethod
    def _eligible_queryset(cls, owner_id, currency: str | None = None):
        queryset = PaymentIntent.objects.filter(
            booking__owner_id=owner_id,
            booking__booking_status=BookingStatus.COMPLETED,
            status__in=PAYOUT_ELIGIBLE_STATUSES,
            is_in_escrow=True,
            dispute_hold=False,
        )
        if currency:
            queryset = queryset.filter(currency=currency)
        return queryset.select_related("booking").annotate(
            completed_at=Coalesce("booking__actual_return_time", "booking__updated_at")
        ).order_by("completed_at", "id")

    @staticmethod
    def _to_eligible(payment_intent: PaymentIntent) -> PayoutEligibleBooking:
        return PayoutEligibleBooking(
            booking_id=str(payment_intent.booking_id),
            payment_intent_id=str(payment_intent.id),
            listing_title=payment_intent.booking.listing_title,
            currency=payment_intent.currency,
            rental_amount=payment_intent.rental_amount,
            platform_fee=payment_intent.platform_fee_amount,
            owner_amount=payment_intent.owner_amount,
            refunded_amount=payment_intent.refunded_amount,
            net_amount=calculate_net_owner_amount(
                payment_intent.owner_amount,
                payment_intent.rental_amount,
                payment_intent.refunded_amount,
                currency=payment_intent.currency,
            ),
            completed_at=payment_intent.completed_at,
        )

    @classmethod
    def get_eligible_bookings(cls, owner_id, currency: str | None = None) -> list[PayoutEligibleBooking]:
        """Payout-eligible bookings of an owner, oldest completion first."""
        return [cls._to_eligible(pi) for pi in cls._eligible_queryset(owner_id, currency)]

    @classmethod
    def _summarize(
        cls,
        owner_id,
        account: OwnerPayoutAccount | None,
        eligible: list[PayoutEligibleBooking],
    ) -> OwnerPayoutSummary:
        currency = account.currency if account else settings.DEFAULT_CURRENCY
        return OwnerPayoutSummary(
            owner_id=str(owner_id),
            currency=currency,
            eligible_bookings=eligible,
            gross_amount=sum((b.rental_amount for b in eligible), Decimal("0.00")),
            platform_fees=sum((b.platform_fee for b in eligible), Decimal("0.00")),
            net_amount=sum((b.net_amount for b in eligible), Decimal("0.00")),
            minimum_payout_amount=(
                account.minimum_payout_amount
                if account
                else settings.DEFAULT_MINIMUM_PAYOUT_AMOUNT
            ),
            is_payout_ready=bool(account and account.is_payout_ready),
        )

    @classmethod
    def get_owner_payout_summary(cls, owner_id) -> OwnerPayoutSummary:
        """Aggregate the payout position of an owner."""
        account = OwnerPayoutAccount.objects.filter(owner_id=owner_id).first()
        currency = account.currency if account else None
        return cls._summarize(owner_id, account, cls.get_eligible_bookings(owner_id, currency))

    # =========================================================================
    # Creation (Phase 1)
    # =========================================================================

    @classmethod
    def create_owner_payout(cls, owner_id, booking_ids: list | None = None) -> Payout:
        """
        Create a payout of an owner's eligible bookings and transfer it.

        Args:
            owner_id: Owner to pay
            booking_ids: Restrict the payout to these bookings

        Returns:
            The Payout: PROCESSING once transferred, PENDING if the transfer
            hit a transient error, FAILED if the processor rejected it

        Raises:
            PayoutNotReadyError: Owner account cannot receive transfers
            ActiveDisputeError: A requested booking is under dispute
            PayoutBelowMinimumError: Nothing eligible or below the minimum
        """
        logger = cls.get_logger()

        account = OwnerPayoutAccount.objects.filter(owner_id=owner_id).first()
        if account is None or not account.is_payout_ready:
            raise PayoutNotReadyError(
                "Owner payout account is not ready to receive payouts",
                details={"owner_id": str(owner_id)},
            )

        if booking_ids:
            booking_ids = [str(b) for b in booking_ids]
            disputed = PaymentIntent.objects.filter(
                booking_id__in=booking_ids,
                dispute_hold=True,
            ).exists() or Booking.objects.filter(
                id__in=booking_ids,
                booking_status=BookingStatus.IN_DISPUTE,
            ).exists()
            if disputed:
                raise ActiveDisputeError(
                    "One or more bookings have an active dispute",
                    details={"owner_id": str(owner_id), "booking_ids": booking_ids},
                )

        with transaction.atomic():
            queryset = cls._eligible_queryset(owner_id, account.currency)
            if booking_ids:
                queryset = queryset.filter(booking_id__in=booking_ids)
            # Lock only the escrow rows; the booking join is read-only here
            locked = list(queryset.select_for_update(of=("self",)))
            eligible = [cls._to_eligible(pi) for pi in locked]
            summary = cls._summarize(owner_id, account, eligible)

            if not summary.meets_minimum:
                raise PayoutBelowMinimumError(
                    f"Eligible earnings {summary.net_amount} are below the minimum "
                    f"payout of {summary.minimum_payout_amount}",
                    details={
                        "owner_id": str(owner_id),
                        "net_amount": str(summary.net_amount),
                        "minimum_payout_amount": str(summary.minimum_payout_amount),
                        "booking_count": summary.booking_count,
                    },
                )

            payout = cls._create_payout_records(account, summary, locked)

        logger.info(
            "Payout created",
            extra={
                "payout_id": str(payout.id),
                "owner_id": str(owner_id),
                "net_amount": str(payout.net_amount),
                "booking_count": payout.booking_count,
            },
        )

        try:
            return cls.execute_transfer(payout.id)
        except StripeError as e:
            logger.warning(
                "Transient transfer error, payout left PENDING for retry",
                extra={"payout_id": str(payout.id), "error": str(e)},
            )
            return Payout.objects.get(id=payout.id)

    @classmethod
    def _create_payout_records(
        cls,
        account: OwnerPayoutAccount,
        summary: OwnerPayoutSummary,
        locked: list[PaymentIntent],
    ) -> Payout:
        """Payout + PayoutItems + escrow flip + PLATFORM_FEE entry. Caller owns the transaction."""
        now = timezone.now()
        eligible = summary.eligible_bookings

        payout = Payout.objects.create(
            owner_account=account,
            currency=summary.currency,
            gross_amount=summary.gross_amount,
            platform_fees=summary.platform_fees,
            net_amount=summary.net_amount,
            period_start=eligible[0].completed_at,
            period_end=eligible[-1].completed_at,
            booking_count=summary.booking_count,
        )
        PayoutItem.objects.bulk_create(
            [
                PayoutItem(
                    payout=payout,
                    booking_id=b.booking_id,
                    gross_amount=b.rental_amount,
                    platform_fee=b.platform_fee,
                    net_amount=b.net_amount,
                )
                for b in eligible
            ]
        )
        PaymentIntent.objects.filter(id__in=[pi.id for pi in locked]).update(
            is_in_escrow=False,
            escrow_released_at=now,
            version=F("version") + 1,
            updated_at=now,
        )

        Transaction.objects.create(
            type=TransactionType.PLATFORM_FEE,
            reference_type="Payout",
            reference_id=str(payout.id),
            currency=payout.currency,
            amount=payout.platform_fees,
            from_user_id=account.owner_id,
            payout=payout,
            description=f"Platform fees for payout {payout.id}",
        )
        AuditService.record(
            action=AuditAction.PAYOUT_CREATED,
            description=f"Payout created for {payout.booking_count} booking(s)",
            target_type="payout",
            target_id=payout.id,
            metadata={
                "ownerId": str(account.owner_id),
                "netAmount": str(payout.net_amount),
                "bookingIds": [b.booking_id for b in eligible],
            },
        )
        return payout

    # =========================================================================
    # Transfer (Phases 2 and 3)
    # =========================================================================

    @classmethod
    def execute_transfer(cls, payout_id) -> Payout:
        """
        Transfer a PENDING payout to the owner's connected account.

        Idempotent: a payout that already left PENDING is returned as is,
        and the idempotency key is the same on every retry.

        Raises:
            PaymentNotFoundError: Unknown payout
            StripeError: Transient processor error (payout stays PENDING)
        """
        logger = cls.get_logger()

        payout = Payout.objects.select_related("owner_account").filter(id=payout_id).first()
        if payout is None:
            raise PaymentNotFoundError("Payout not found", details={"payout_id": str(payout_id)})
        if payout.status != PayoutStatus.PENDING:
            return payout

        account = payout.owner_account
        booking_ids = list(payout.items.values_list("booking_id", flat=True))

        logger.info(
            "Phase 2: Calling processor create_transfer",
            extra={
                "payout_id": str(payout.id),
                "destination_account": account.external_account_ref,
                "net_amount": str(payout.net_amount),
            },
        )
        try:
            transfer = cls.get_processor().create_transfer(
                amount_cents=to_minor_units(payout.net_amount, payout.currency),
                destination_account=account.external_account_ref,
                idempotency_key=IdempotencyKeyGenerator.generate("payout_transfer", payout.id),
                currency=payout.currency.lower(),
                metadata={
                    "ownerId": str(account.owner_id),
                    "payoutId": str(payout.id),
                    "bookingCount": str(payout.booking_count),
                    "bookingIds": ",".join(str(b) for b in booking_ids)[:500],
                },
            )
        except StripeError as e:
            if e.is_retryable:
                raise
            logger.error(
                f"Processor rejected payout transfer: {e.error_code}",
                extra={"payout_id": str(payout.id), "error": str(e)},
            )
            return cls._fail_payout(payout.id, e.message)

        logger.info(
            "Phase 3: Storing transfer reference",
            extra={"payout_id": str(payout.id), "transfer_id": transfer.id},
        )
        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(id=payout.id)
            if payout.status != PayoutStatus.PENDING:
                return payout
            payout.start_processing(transfer.id)
            payout.save()

            Transaction.objects.get_or_create(
                idempotency_key=f"owner_payout:{payout.id}",
                defaults={
                    "type": TransactionType.OWNER_PAYOUT,
                    "reference_type": "Payout",
                    "reference_id": str(payout.id),
                    "currency": payout.currency,
                    "amount": payout.net_amount,
                    "to_user_id": account.owner_id,
                    "payout": payout,
                    "external_transfer_ref": transfer.id,
                    "description": f"Payout for {payout.booking_count} completed booking(s)",
                },
            )

        NotificationService.notify(
            recipient=account.owner,
            notification_type=NotificationType.PAYOUT_SENT,
            data={
                "payoutId": str(payout.id),
                "amount": str(payout.net_amount),
                "currency": payout.currency,
                "bookingCount": payout.booking_count,
            },
            idempotency_key=f"payout_sent:{payout.id}",
        )
        return payout

    @classmethod
    def _fail_payout(cls, payout_id, reason: str, restore_escrow: bool = True) -> Payout:
        """Fail a payout and, by default, return its bookings to escrow atomically."""
        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            payout.fail(reason)
            payout.save()
            if restore_escrow:
                cls._restore_escrow(payout)

        cls.get_logger().warning(
            "Payout failed",
            extra={
                "payout_id": str(payout.id),
                "reason": reason,
                "escrow_restored": restore_escrow,
            },
        )
        return payout

    @staticmethod
    def _restore_escrow(payout: Payout) -> None:
        now = timezone.now()
        booking_ids = payout.items.values_list("booking_id", flat=True)
        PaymentIntent.objects.filter(booking_id__in=booking_ids).update(
            is_in_escrow=True,
            escrow_released_at=None,
            version=F("version") + 1,
            updated_at=now,
        )

    @classmethod
    def retry_pending_payouts(cls) -> dict[str, str]:
        """
        Re-run transfers for PENDING payouts left by transient errors.

        Returns:
            Final status (or error message) per payout id
        """
        cutoff = timezone.now() - timedelta(minutes=PENDING_RETRY_GRACE_MINUTES)
        outcomes: dict[str, str] = {}
        for payout_id in Payout.objects.filter(
            status=PayoutStatus.PENDING,
            created_at__lt=cutoff,
        ).values_list("id", flat=True):
            try:
                outcomes[str(payout_id)] = cls.execute_transfer(payout_id).status
            except PaymentError as e:
                outcomes[str(payout_id)] = e.message
        return outcomes

    # =========================================================================
    # Scheduled runs
    # =========================================================================

    @classmethod
    def get_owners_due_for_payout(cls, schedule: str) -> list[OwnerPayoutSummary]:
        """Ready owners on a schedule whose eligible earnings meet their minimum."""
        due = []
        accounts = OwnerPayoutAccount.objects.filter(
            payout_schedule=schedule,
            onboarding_complete=True,
            is_verified=True,
            external_account_ref__isnull=False,
        )
        for account in accounts:
            eligible = cls.get_eligible_bookings(account.owner_id, account.currency)
            summary = cls._summarize(account.owner_id, account, eligible)
            if summary.meets_minimum:
                due.append(summary)
        return due

    @classmethod
    def process_scheduled_payouts(cls, schedule: str) -> PayoutBatchResult:
        """
        Create payouts for every owner due on a schedule.

        Owners are independent; one owner's failure is recorded in
        errors and the run moves on.
        """
        logger = cls.get_logger()
        result = PayoutBatchResult(schedule=schedule)

        for summary in cls.get_owners_due_for_payout(schedule):
            result.owners_processed += 1
            try:
                payout = cls.create_owner_payout(summary.owner_id)
            except PaymentError as e:
                result.errors[summary.owner_id] = e.message
                logger.warning(
                    f"Payout for owner failed: {e.error_code}",
                    extra={"owner_id": summary.owner_id, "error": str(e)},
                )
                continue
            except Exception as e:
                result.errors[summary.owner_id] = str(e)
                logger.exception(
                    "Unexpected error creating payout",
                    extra={"owner_id": summary.owner_id},
                )
                continue

            if payout.status == PayoutStatus.FAILED:
                result.errors[summary.owner_id] = payout.failure_reason
            else:
                result.payouts_created.append(str(payout.id))

        logger.info(
            f"Scheduled payout run finished: {schedule}",
            extra={
                "schedule": schedule,
                "owners_processed": result.owners_processed,
                "payouts_created": len(result.payouts_created),
                "errors": len(result.errors),
            },
        )
        return result

    @classmethod
    def get_owner_payout_history(cls, owner_id, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Payout]:
        return list(
            Payout.objects.filter(owner_account__owner_id=owner_id).order_by("-created_at")[:limit]
        )

    # =========================================================================
    # Processor events
    # =========================================================================

    @classmethod
    def update_payout_status(
        cls,
        external_transfer_ref: str,
        status: str,
        failure_reason: str | None = None,
        restore_escrow: bool = False,
    ) -> ServiceResult[Payout | None]:
        """
        Apply a processor payout event to the matching Payout.

        Unknown references belong to payouts made outside this system and
        succeed with None. Out-of-order events that the FSM rejects are
        logged and ignored.
        """
        logger = cls.get_logger()

        with transaction.atomic():
            payout = (
                Payout.objects.select_for_update()
                .filter(external_transfer_ref=external_transfer_ref)
                .first()
            )
            if payout is None:
                logger.info(
                    "No payout for processor reference, may be external",
                    extra={"external_transfer_ref": external_transfer_ref},
                )
                return ServiceResult.success(None)

            if payout.status == status:
                return ServiceResult.success(payout)

            transition = {
                PayoutStatus.COMPLETED: payout.complete,
                PayoutStatus.FAILED: lambda: payout.fail(failure_reason or "Payout failed"),
                PayoutStatus.CANCELLED: lambda: payout.cancel(failure_reason),
            }.get(status)
            if transition is None:
                return ServiceResult.failure(
                    f"Unsupported payout status: {status}",
                    error_code="INVALID_PAYOUT_STATUS",
                )

            try:
                transition()
            except TransitionNotAllowed:
                logger.warning(
                    f"Ignoring payout event: {payout.status} -> {status}",
                    extra={"payout_id": str(payout.id), "external_transfer_ref": external_transfer_ref},
                )
                return ServiceResult.success(payout)
            payout.save()

            if status == PayoutStatus.FAILED and restore_escrow:
                cls._restore_escrow(payout)

        logger.info(
            f"Payout status updated to {status}",
            extra={"payout_id": str(payout.id), "external_transfer_ref": external_transfer_ref},
        )

        if status == PayoutStatus.FAILED:
            account = payout.owner_account
            NotificationService.notify(
                recipient=account.owner,
                notification_type=NotificationType.PAYOUT_FAILED,
                data={
                    "payoutId": str(payout.id),
                    "amount": str(payout.net_amount),
                    "currency": payout.currency,
                    "reason": failure_reason or "",
                },
                idempotency_key=f"payout_failed:{payout.id}",
            )
        return ServiceResult.success(payout)

    # =========================================================================
    # Disputes
    # =========================================================================

    @classmethod
    def hold_payout_for_dispute(cls, booking_id, actor: User | None = None) -> PaymentIntent:
        """
        Keep a booking's earnings out of payouts until its dispute is resolved.

        Raises:
            PaymentNotFoundError: Booking has no payment
        """
        with transaction.atomic():
            payment_intent = (
                PaymentIntent.objects.select_for_update()
                .select_related("booking")
                .filter(booking_id=booking_id)
                .first()
            )
            if payment_intent is None:
                raise PaymentNotFoundError(
                    "No payment found for booking",
                    details={"booking_id": str(booking_id)},
                )
            if not payment_intent.dispute_hold:
                payment_intent.dispute_hold = True
                payment_intent.save(update_fields=["dispute_hold", "updated_at"])

            AuditService.record(
                action=AuditAction.PAYOUT_HELD,
                description="Payout held due to dispute",
                target_type="booking",
                target_id=booking_id,
                booking=payment_intent.booking,
                actor=actor,
                metadata={"reason": "dispute"},
            )
        return payment_intent

    @classmethod
    def resolve_dispute(
        cls,
        booking_id,
        resolution: str,
        resolved_by: User | None = None,
    ) -> PaymentIntent:
        """
        Resolve a dispute and release the hold on the booking's earnings.

        owner_favor keeps the owner amount, renter_favor zeroes it, split
        halves it. The booking returns to the status it had when the
        dispute opened (COMPLETED when that was not recorded) and enters
        the payout pool once it is COMPLETED.

        Raises:
            PaymentNotFoundError: Booking has no payment
            PayoutError: Booking is not under dispute
            PaymentValidationError: Unknown resolution
        """
        with transaction.atomic():
            payment_intent = (
                PaymentIntent.objects.select_for_update()
                .select_related("booking")
                .filter(booking_id=booking_id)
                .first()
            )
            if payment_intent is None:
                raise PaymentNotFoundError(
                    "No payment found for booking",
                    details={"booking_id": str(booking_id)},
                )
            booking = Booking.objects.select_for_update().get(id=booking_id)
            if not payment_intent.dispute_hold and booking.booking_status != BookingStatus.IN_DISPUTE:
                raise PayoutError(
                    "Booking has no active dispute",
                    error_code="NO_ACTIVE_DISPUTE",
                    details={"booking_id": str(booking_id)},
                )

            final_owner_amount = resolve_dispute_owner_amount(
                payment_intent.owner_amount,
                resolution,
                currency=payment_intent.currency,
            )
            restored_status = payment_intent.pre_dispute_booking_status or BookingStatus.COMPLETED
            payment_intent.owner_amount = final_owner_amount
            payment_intent.dispute_hold = False
            payment_intent.pre_dispute_booking_status = ""
            payment_intent.dispute_resolution = DisputeResolution(resolution)
            payment_intent.dispute_resolved_at = timezone.now()
            payment_intent.save(
                update_fields=[
                    "owner_amount",
                    "dispute_hold",
                    "dispute_resolution",
                    "dispute_resolved_at",
                    "pre_dispute_booking_status",
                    "updated_at",
                ]
            )

            if booking.booking_status == BookingStatus.IN_DISPUTE:
                BookingLifecycleService.transition(
                    booking,
                    restored_status,
                    actor=resolved_by,
                    reason=f"dispute resolved: {resolution}",
                )

            AuditService.record(
                action=AuditAction.ADMIN_DISPUTE_RESOLVED,
                description=f"Dispute resolved: {resolution}",
                target_type="booking",
                target_id=booking.id,
                booking=booking,
                actor=resolved_by,
                metadata={
                    "resolution": resolution,
                    "finalOwnerAmount": str(final_owner_amount),
                    "bookingStatus": booking.booking_status,
                },
            )

        cls.get_logger().info(
            "Dispute resolved",
            extra={
                "booking_id": str(booking_id),
                "resolution": resolution,
                "final_owner_amount": str(final_owner_amount),
            },
        )
        return payment_intent
