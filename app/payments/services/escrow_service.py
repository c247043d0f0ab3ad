"""
Escrow service: payment intent creation, status application and refunds.

The escrow record (PaymentIntent) is created once per booking from the
booking's own amounts. After creation its status only changes through
apply_payment_status(), which webhook handlers and reconciliation share
so both paths converge on the same invariants.

Usage:
    from payments.services import EscrowService

    result = EscrowService.create_payment_intent(booking.id, actor=request.user)
    if result.success:
        client_secret = result.data.client_secret
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from bookings.models import Booking, BookingStatus
from core.services import BaseService, ServiceResult

from payments.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from payments.amounts import (
    calculate_deposit_amount,
    calculate_payment_amounts,
    from_minor_units,
    quantize_money,
    to_minor_units,
)
from payments.exceptions import PaymentNotFoundError, PaymentValidationError, StripeError
from payments.models import OwnerPayoutAccount, PaymentIntent, Transaction
from payments.state_machines import (
    PaymentIntentStatus,
    PaymentMode,
    PaymentSignal,
    TransactionType,
)
from payments.services.booking_sync import BookingStateSynchronizer

if TYPE_CHECKING:
    from authentication.models import User
    from payments.adapters import PaymentProcessor


# Local statuses a new processor status may replace
UPDATABLE_STATUSES = (
    PaymentIntentStatus.PENDING,
    PaymentIntentStatus.PROCESSING,
    PaymentIntentStatus.FAILED,
)

STATUS_SIGNALS = {
    PaymentIntentStatus.SUCCEEDED: PaymentSignal.SUCCEEDED,
    PaymentIntentStatus.FAILED: PaymentSignal.FAILED,
    PaymentIntentStatus.CANCELLED: PaymentSignal.CANCELLED,
}


class EscrowService(BaseService):
    """
    Service for the escrow record of a booking.

    Methods:
        create_payment_intent: Open the single charge path of a booking
        create_deposit_payment_intent: Same, charging only a deposit
        confirm_payment_status: Server-side status check for client callbacks
        apply_payment_status: Shared status transition logic
        process_refund: Refund part or all of a payment
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
    # Intent creation
    # =========================================================================

    @classmethod
    def create_payment_intent(
        cls,
        booking_id,
        actor: User | None = None,
    ) -> ServiceResult[PaymentIntent]:
        """
        Create the PaymentIntent for an accepted booking.

        Amounts come from the booking record only. A repeat request
        returns the existing PaymentIntent without contacting the processor.

        Error codes:
            BOOKING_NOT_FOUND, NOT_RENTER, BOOKING_NOT_ACCEPTED,
            OWNER_NOT_ONBOARDED, plus processor error codes
        """
        return cls._create(booking_id, actor=actor)

    @classmethod
    def create_deposit_payment_intent(
        cls,
        booking_id,
        deposit_percent: int | None = None,
        actor: User | None = None,
    ) -> ServiceResult[PaymentIntent]:
        """
        Create a PaymentIntent that charges a deposit of the rental total.

        deposit_percent is clamped to [DEPOSIT_PERCENT_MIN, DEPOSIT_PERCENT_MAX].
        """
        if deposit_percent is None:
            deposit_percent = settings.DEFAULT_DEPOSIT_PERCENT
        deposit_percent = max(
            settings.DEPOSIT_PERCENT_MIN,
            min(settings.DEPOSIT_PERCENT_MAX, int(deposit_percent)),
        )
        return cls._create(booking_id, actor=actor, deposit_percent=deposit_percent)

    @classmethod
    def _create(
        cls,
        booking_id,
        actor: User | None = None,
        deposit_percent: int | None = None,
    ) -> ServiceResult[PaymentIntent]:
        logger = cls.get_logger()

        booking = (
            Booking.objects.select_related("owner", "renter").filter(id=booking_id).first()
        )
        if booking is None:
            return ServiceResult.failure("Booking not found", error_code="BOOKING_NOT_FOUND")

        if actor is not None and actor.pk != booking.renter_id:
            return ServiceResult.failure(
                "Only the renter can pay for this booking",
                error_code="NOT_RENTER",
            )

        existing = PaymentIntent.objects.filter(booking=booking).first()
        if existing is not None:
            logger.info(
                "Payment intent already exists for booking",
                extra={"booking_id": str(booking.id), "payment_intent_id": str(existing.id)},
            )
            return ServiceResult.success(existing)

        if booking.booking_status != BookingStatus.ACCEPTED:
            return ServiceResult.failure(
                f"Booking must be accepted before payment (current: {booking.booking_status})",
                error_code="BOOKING_NOT_ACCEPTED",
            )

        account = OwnerPayoutAccount.objects.filter(owner_id=booking.owner_id).first()
        if account is None or not account.external_account_ref or not account.onboarding_complete:
            return ServiceResult.failure(
                "Owner has not completed payout onboarding",
                error_code="OWNER_NOT_ONBOARDED",
            )

        try:
            if deposit_percent is None:
                amounts = calculate_payment_amounts(
                    booking.rental_total,
                    bond_amount=booking.bond_amount,
                    currency=booking.currency,
                )
                deposit = None
            else:
                deposit = calculate_deposit_amount(
                    booking.rental_total,
                    deposit_percent,
                    currency=booking.currency,
                )
                amounts = calculate_payment_amounts(
                    deposit.deposit_amount,
                    bond_amount=booking.bond_amount,
                    currency=booking.currency,
                )
        except PaymentValidationError as e:
            return ServiceResult.from_exception(e)

        metadata = {
            "bookingId": str(booking.id),
            "renterId": str(booking.renter_id),
            "ownerId": str(booking.owner_id),
            "listingTitle": booking.listing_title[:200],
        }
        if deposit is not None:
            metadata.update(
                {
                    "paymentType": PaymentMode.DEPOSIT,
                    "depositPercent": str(deposit.deposit_percent),
                    "totalAmount": str(booking.rental_total),
                }
            )

        params = CreatePaymentIntentParams(
            amount_cents=to_minor_units(amounts.total_amount, amounts.currency),
            currency=amounts.currency.lower(),
            idempotency_key=IdempotencyKeyGenerator.generate("create_intent", booking.id),
            metadata=metadata,
            application_fee_amount=to_minor_units(amounts.platform_fee_amount, amounts.currency),
            transfer_data={"destination": account.external_account_ref},
        )

        try:
            result = cls.get_processor().create_payment_intent(params)
        except StripeError as e:
            logger.warning(
                f"Processor rejected payment intent: {e.error_code}",
                extra={"booking_id": str(booking.id), "error": str(e)},
            )
            return ServiceResult.from_exception(e)

        try:
            with transaction.atomic():
                payment_intent = PaymentIntent.objects.create(
                    booking=booking,
                    external_ref=result.id,
                    client_secret=result.client_secret or "",
                    currency=amounts.currency,
                    payment_mode=PaymentMode.FULL if deposit is None else PaymentMode.DEPOSIT,
                    deposit_percent=None if deposit is None else deposit.deposit_percent,
                    balance_amount=Decimal("0.00") if deposit is None else deposit.balance_amount,
                    rental_amount=amounts.rental_amount,
                    platform_fee_amount=amounts.platform_fee_amount,
                    platform_fee_percent=amounts.platform_fee_percent,
                    owner_amount=amounts.owner_amount,
                    total_amount=amounts.total_amount,
                    bond_amount=amounts.bond_amount,
                    status=PaymentIntentStatus.PENDING,
                    is_in_escrow=True,
                )
        except IntegrityError:
            # A concurrent request won the one-to-one insert
            winner = PaymentIntent.objects.filter(booking=booking).first()
            if winner is None:
                raise
            logger.info(
                "Concurrent payment intent creation, returning existing record",
                extra={"booking_id": str(booking.id), "payment_intent_id": str(winner.id)},
            )
            return ServiceResult.success(winner)

        logger.info(
            "Payment intent created",
            extra={
                "booking_id": str(booking.id),
                "payment_intent_id": str(payment_intent.id),
                "external_ref": result.id,
                "total_amount": str(amounts.total_amount),
                "platform_fee_amount": str(amounts.platform_fee_amount),
                "payment_mode": payment_intent.payment_mode,
            },
        )
        return ServiceResult.success(payment_intent)

    # =========================================================================
    # Status
    # =========================================================================

    @classmethod
    def confirm_payment_status(cls, external_ref: str) -> ServiceResult[PaymentIntent]:
        """
        Verify a payment with the processor after a client-side confirmation.

        Clients never set status directly; this reconciles against the
        processor's view of the intent.
        """
        from payments.services.reconciliation_service import ReconciliationService

        return ReconciliationService.reconcile_payment_intent(external_ref, trigger="client_confirm")

    @classmethod
    def apply_payment_status(
        cls,
        payment_intent: PaymentIntent,
        new_status: str,
        trigger: str = "webhook",
        context: dict[str, Any] | None = None,
    ) -> bool:
        """
        Move a locked PaymentIntent to new_status and run its side effects.

        Must be called inside a transaction with the PaymentIntent row
        locked. Refunded records are never regressed, and a SUCCEEDED or
        CANCELLED record never moves back to an earlier status.

        Context keys:
            latest_charge: Processor charge id (SUCCEEDED)
            amount_received: Amount received in minor units (SUCCEEDED)
            failure_reason: Failure message (FAILED)

        Returns:
            True if the status changed
        """
        context = context or {}
        current = payment_intent.status

        if new_status == current or current not in UPDATABLE_STATUSES:
            cls.get_logger().debug(
                "Payment status unchanged",
                extra={
                    "payment_intent_id": str(payment_intent.id),
                    "current_status": current,
                    "new_status": new_status,
                    "trigger": trigger,
                },
            )
            return False

        now = timezone.now()
        payment_intent.status = new_status
        update_fields = ["status", "updated_at"]

        if new_status == PaymentIntentStatus.SUCCEEDED:
            payment_intent.paid_at = now
            update_fields.append("paid_at")
            if context.get("latest_charge"):
                payment_intent.external_charge_ref = context["latest_charge"]
                update_fields.append("external_charge_ref")
        elif new_status == PaymentIntentStatus.FAILED:
            payment_intent.failed_at = now
            payment_intent.failure_reason = context.get("failure_reason") or "Payment failed"
            update_fields.extend(["failed_at", "failure_reason"])
        elif new_status == PaymentIntentStatus.CANCELLED:
            payment_intent.cancelled_at = now
            update_fields.append("cancelled_at")

        payment_intent.save(update_fields=update_fields)

        cls.get_logger().info(
            f"Payment status {current} -> {new_status}",
            extra={
                "payment_intent_id": str(payment_intent.id),
                "booking_id": str(payment_intent.booking_id),
                "previous_status": current,
                "new_status": new_status,
                "trigger": trigger,
            },
        )

        if new_status == PaymentIntentStatus.SUCCEEDED:
            cls._record_rental_payment(payment_intent, context)

        signal = STATUS_SIGNALS.get(new_status)
        if signal is not None:
            BookingStateSynchronizer.sync(payment_intent, signal, trigger=trigger, context=context)
        return True

    @classmethod
    def _record_rental_payment(cls, payment_intent: PaymentIntent, context: dict[str, Any]) -> None:
        booking = payment_intent.booking
        amount = payment_intent.total_amount
        if context.get("amount_received"):
            amount = from_minor_units(context["amount_received"], payment_intent.currency)

        Transaction.objects.get_or_create(
            idempotency_key=f"rental_payment:{payment_intent.id}",
            defaults={
                "type": TransactionType.RENTAL_PAYMENT,
                "reference_type": "Booking",
                "reference_id": str(booking.id),
                "currency": payment_intent.currency,
                "amount": amount,
                "from_user_id": booking.renter_id,
                "payment_intent": payment_intent,
                "external_charge_ref": payment_intent.external_charge_ref or "",
                "description": f"Rental payment for booking {booking.id}",
            },
        )

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def process_refund(
        cls,
        booking_id,
        amount: Decimal,
        reason: str,
        actor: User | None = None,
    ) -> ServiceResult[PaymentIntent]:
        """
        Refund part or all of a booking's payment.

        The processor call runs outside any transaction; the local update
        re-reads the row under lock and keeps the larger of the local and
        expected refunded amount, so a charge.refunded webhook landing in
        between is not double counted.

        Error codes:
            PAYMENT_NOT_FOUND, NOT_REFUNDABLE, INVALID_AMOUNT, plus
            processor error codes
        """
        logger = cls.get_logger()

        payment_intent = PaymentIntent.objects.filter(booking_id=booking_id).first()
        if payment_intent is None:
            return ServiceResult.failure(
                "No payment found for booking",
                error_code="PAYMENT_NOT_FOUND",
            )

        if payment_intent.status not in (
            PaymentIntentStatus.SUCCEEDED,
            PaymentIntentStatus.PARTIALLY_REFUNDED,
        ):
            return ServiceResult.failure(
                f"Payment in status {payment_intent.status} cannot be refunded",
                error_code="NOT_REFUNDABLE",
            )

        amount = quantize_money(Decimal(amount), payment_intent.currency)
        if amount <= 0 or amount > payment_intent.refundable_amount:
            return ServiceResult.failure(
                f"Refund amount must be between 0 and {payment_intent.refundable_amount}",
                error_code="INVALID_AMOUNT",
            )

        previously_refunded = payment_intent.refunded_amount
        refund_count = Transaction.objects.filter(
            payment_intent=payment_intent,
            type=TransactionType.REFUND,
        ).count()

        try:
            refund = cls.get_processor().create_refund(
                payment_intent.external_ref,
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "refund", payment_intent.id, attempt=refund_count + 1
                ),
                amount_cents=to_minor_units(amount, payment_intent.currency),
                reason="requested_by_customer",
                metadata={"bookingId": str(booking_id), "reason": reason[:500]},
            )
        except StripeError as e:
            logger.warning(
                f"Refund rejected by processor: {e.error_code}",
                extra={
                    "booking_id": str(booking_id),
                    "payment_intent_id": str(payment_intent.id),
                    "amount": str(amount),
                    "error": str(e),
                },
            )
            return ServiceResult.from_exception(e)

        with transaction.atomic():
            payment_intent = (
                PaymentIntent.objects.select_for_update()
                .select_related("booking")
                .get(id=payment_intent.id)
            )
            refunded = min(
                payment_intent.total_amount,
                max(payment_intent.refunded_amount, previously_refunded + amount),
            )
            is_full = refunded >= payment_intent.total_amount

            payment_intent.refunded_amount = refunded
            payment_intent.status = (
                PaymentIntentStatus.REFUNDED if is_full else PaymentIntentStatus.PARTIALLY_REFUNDED
            )
            payment_intent.refunded_at = timezone.now()
            payment_intent.refund_reason = reason
            payment_intent.save(
                update_fields=[
                    "refunded_amount",
                    "status",
                    "refunded_at",
                    "refund_reason",
                    "updated_at",
                ]
            )

            Transaction.objects.get_or_create(
                idempotency_key=f"refund:{refund.id}",
                defaults={
                    "type": TransactionType.REFUND,
                    "reference_type": "Booking",
                    "reference_id": str(payment_intent.booking_id),
                    "currency": payment_intent.currency,
                    "amount": amount,
                    "to_user_id": payment_intent.booking.renter_id,
                    "payment_intent": payment_intent,
                    "external_charge_ref": payment_intent.external_charge_ref or "",
                    "description": f"Refund: {reason}",
                },
            )

            if is_full:
                BookingStateSynchronizer.sync(
                    payment_intent,
                    PaymentSignal.REFUNDED,
                    trigger="refund",
                )

        logger.info(
            "Refund processed",
            extra={
                "booking_id": str(booking_id),
                "payment_intent_id": str(payment_intent.id),
                "refund_id": refund.id,
                "amount": str(amount),
                "refunded_amount": str(payment_intent.refunded_amount),
                "actor_id": actor.pk if actor else None,
            },
        )
        return ServiceResult.success(payment_intent)

    @classmethod
    def get_payment_intent(cls, booking_id) -> PaymentIntent:
        """
        Raises:
            PaymentNotFoundError: If the booking has no PaymentIntent
        """
        payment_intent = PaymentIntent.objects.filter(booking_id=booking_id).first()
        if payment_intent is None:
            raise PaymentNotFoundError(
                "No payment found for booking",
                details={"booking_id": str(booking_id)},
            )
        return payment_intent
