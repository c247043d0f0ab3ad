"""
Bond hold service: authorize, capture, release and expire security deposits.

A bond is a manual-capture authorization on the renter's card. Staff
capture part or all of it to cover damage or cleaning, or release it.
Upstream authorizations lapse after BOND_HOLD_EXPIRY_DAYS; expired holds
are marked EXPIRED and treated as released.

Processor calls run outside database transactions. The local state change
is applied afterwards under a row lock, with the FSM guarding against a
concurrent capture or release that got there first.

Usage:
    from payments.services import BondHoldService

    result = BondHoldService.authorize(booking.id, Decimal("2000.00"), "pm_123")
    BondHoldService.capture(result.data.id, Decimal("350.00"), "Cleaning", captured_by=admin)
    BondHoldService.release(result.data.id)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from audit.models import AuditAction
from audit.services import AuditService
from bookings.models import Booking
from core.services import BaseService, ServiceResult

from payments.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from payments.amounts import quantize_money, to_minor_units, validate_currency
from payments.exceptions import (
    BondCaptureError,
    InvalidStateTransitionError,
    PaymentNotFoundError,
    PaymentValidationError,
    StripeError,
)
from payments.models import BondHold, Transaction
from payments.state_machines import BondHoldStatus, TransactionType

if TYPE_CHECKING:
    from authentication.models import User
    from payments.adapters import PaymentProcessor


@dataclass
class BondStatusSummary:
    """Current bond position of a booking."""

    bond_hold_id: str
    status: str
    currency: str
    authorized_amount: Decimal
    captured_amount: Decimal
    released_amount: Decimal
    remaining_amount: Decimal
    expires_at: datetime
    is_expired: bool


class BondHoldService(BaseService):
    """
    Service for bond hold operations.

    Methods:
        authorize: Reserve the bond on the renter's payment method
        capture: Capture part or all of an authorized bond
        release: Release the uncaptured remainder
        expire_stale_holds: Mark lapsed authorizations as EXPIRED
        get_bond_status: Summary of the latest hold for a booking
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
    # Authorize
    # =========================================================================

    @classmethod
    def authorize(
        cls,
        booking_id,
        amount: Decimal,
        payment_method_ref: str,
        currency: str | None = None,
    ) -> ServiceResult[BondHold]:
        """
        Authorize a bond on the renter's card. No funds move yet.

        Error codes:
            BOOKING_NOT_FOUND, INVALID_AMOUNT, plus processor error codes
        """
        booking = Booking.objects.filter(id=booking_id).first()
        if booking is None:
            return ServiceResult.failure("Booking not found", error_code="BOOKING_NOT_FOUND")

        currency = currency or booking.currency
        try:
            validate_currency(currency)
            amount = quantize_money(Decimal(amount), currency)
        except PaymentValidationError as e:
            return ServiceResult.from_exception(e)

        if amount <= 0:
            return ServiceResult.failure(
                "Bond amount must be positive",
                error_code="INVALID_AMOUNT",
            )

        attempt = BondHold.objects.filter(booking=booking).count() + 1
        params = CreatePaymentIntentParams(
            amount_cents=to_minor_units(amount, currency),
            currency=currency.lower(),
            idempotency_key=IdempotencyKeyGenerator.generate("bond_hold", booking.id, attempt),
            metadata={"bookingId": str(booking.id), "type": "BOND_HOLD"},
            capture_method="manual",
            payment_method=payment_method_ref,
            confirm=True,
        )

        try:
            result = cls.get_processor().create_payment_intent(params)
        except StripeError as e:
            cls.get_logger().warning(
                f"Bond authorization rejected: {e.error_code}",
                extra={"booking_id": str(booking.id), "amount": str(amount), "error": str(e)},
            )
            return ServiceResult.from_exception(e)

        now = timezone.now()
        bond_hold = BondHold.objects.create(
            booking=booking,
            external_ref=result.id,
            payment_method_ref=payment_method_ref,
            currency=currency,
            authorized_amount=amount,
            authorized_at=now,
            expires_at=now + timedelta(days=settings.BOND_HOLD_EXPIRY_DAYS),
        )

        cls.get_logger().info(
            "Bond authorized",
            extra={
                "booking_id": str(booking.id),
                "bond_hold_id": str(bond_hold.id),
                "external_ref": result.id,
                "amount": str(amount),
            },
        )
        return ServiceResult.success(bond_hold)

    # =========================================================================
    # Capture
    # =========================================================================

    @classmethod
    def capture(
        cls,
        bond_hold_id,
        amount: Decimal,
        reason: str,
        captured_by: User | None = None,
    ) -> BondHold:
        """
        Capture amount of an authorized bond.

        Exactly the authorized amount moves the hold to CAPTURED, less
        moves it to PARTIALLY_CAPTURED and the processor releases the rest.

        Raises:
            PaymentNotFoundError: Unknown bond hold
            InvalidStateTransitionError: Hold is not AUTHORIZED
            BondCaptureError: Hold expired or amount out of range
            StripeError: Processor rejected the capture
        """
        bond_hold = cls._get(bond_hold_id)

        if bond_hold.status != BondHoldStatus.AUTHORIZED:
            raise InvalidStateTransitionError(
                f"Cannot capture bond hold in '{bond_hold.status}' state",
                details={
                    "bond_hold_id": str(bond_hold.id),
                    "current_state": bond_hold.status,
                    "transition": "capture",
                },
            )
        if bond_hold.is_expired:
            raise BondCaptureError(
                "Bond authorization has expired",
                error_code="BOND_EXPIRED",
                details={"bond_hold_id": str(bond_hold.id)},
            )

        amount = quantize_money(Decimal(amount), bond_hold.currency)
        if amount <= 0 or amount > bond_hold.authorized_amount:
            raise BondCaptureError(
                f"Capture amount must be between 0 and {bond_hold.authorized_amount}",
                error_code="INVALID_CAPTURE_AMOUNT",
                details={
                    "bond_hold_id": str(bond_hold.id),
                    "amount": str(amount),
                    "authorized_amount": str(bond_hold.authorized_amount),
                },
            )

        cls.get_processor().capture_payment_intent(
            bond_hold.external_ref,
            idempotency_key=IdempotencyKeyGenerator.generate("bond_capture", bond_hold.id),
            amount_to_capture=to_minor_units(amount, bond_hold.currency),
        )

        with transaction.atomic():
            bond_hold = BondHold.objects.select_for_update().get(id=bond_hold.id)
            try:
                bond_hold.capture(amount=amount, reason=reason, captured_by=captured_by)
            except TransitionNotAllowed as e:
                raise InvalidStateTransitionError(
                    f"Cannot capture bond hold in '{bond_hold.status}' state",
                    details={"bond_hold_id": str(bond_hold.id), "current_state": bond_hold.status},
                ) from e
            bond_hold.save()

            booking = bond_hold.booking
            Transaction.objects.create(
                type=TransactionType.BOND_CAPTURE,
                reference_type="Booking",
                reference_id=str(booking.id),
                currency=bond_hold.currency,
                amount=amount,
                from_user_id=booking.renter_id,
                bond_hold=bond_hold,
                description=f"Bond captured: {reason}",
            )
            AuditService.record(
                action=AuditAction.BOND_CAPTURED,
                description=f"Bond captured: {reason}",
                target_type="bond_hold",
                target_id=bond_hold.id,
                booking=booking,
                actor=captured_by,
                metadata={
                    "amount": str(amount),
                    "authorizedAmount": str(bond_hold.authorized_amount),
                    "status": bond_hold.status,
                },
            )

        cls.get_logger().info(
            "Bond captured",
            extra={
                "bond_hold_id": str(bond_hold.id),
                "booking_id": str(bond_hold.booking_id),
                "amount": str(amount),
                "status": bond_hold.status,
            },
        )
        return bond_hold

    # =========================================================================
    # Release
    # =========================================================================

    @classmethod
    def release(cls, bond_hold_id, released_by: User | None = None) -> BondHold:
        """
        Release the uncaptured remainder of a bond to the renter.

        Only an uncaptured authorization still holds funds upstream; after
        a partial capture the processor has already returned the rest.

        Raises:
            PaymentNotFoundError: Unknown bond hold
            InvalidStateTransitionError: Hold is not AUTHORIZED / PARTIALLY_CAPTURED
            StripeError: Processor rejected the cancellation
        """
        bond_hold = cls._get(bond_hold_id)

        if bond_hold.status not in (
            BondHoldStatus.AUTHORIZED,
            BondHoldStatus.PARTIALLY_CAPTURED,
        ):
            raise InvalidStateTransitionError(
                f"Cannot release bond hold in '{bond_hold.status}' state",
                details={
                    "bond_hold_id": str(bond_hold.id),
                    "current_state": bond_hold.status,
                    "transition": "release",
                },
            )

        if bond_hold.status == BondHoldStatus.AUTHORIZED and not bond_hold.is_expired:
            cls.get_processor().cancel_payment_intent(
                bond_hold.external_ref,
                idempotency_key=IdempotencyKeyGenerator.generate("bond_release", bond_hold.id),
            )

        with transaction.atomic():
            bond_hold = BondHold.objects.select_for_update().get(id=bond_hold.id)
            try:
                bond_hold.release()
            except TransitionNotAllowed as e:
                raise InvalidStateTransitionError(
                    f"Cannot release bond hold in '{bond_hold.status}' state",
                    details={"bond_hold_id": str(bond_hold.id), "current_state": bond_hold.status},
                ) from e
            bond_hold.save()

            booking = bond_hold.booking
            Transaction.objects.create(
                type=TransactionType.BOND_RELEASE,
                reference_type="Booking",
                reference_id=str(booking.id),
                currency=bond_hold.currency,
                amount=bond_hold.released_amount,
                to_user_id=booking.renter_id,
                bond_hold=bond_hold,
                description="Bond released to renter",
            )
            AuditService.record(
                action=AuditAction.BOND_RELEASED,
                description="Bond released to renter",
                target_type="bond_hold",
                target_id=bond_hold.id,
                booking=booking,
                actor=released_by,
                metadata={
                    "releasedAmount": str(bond_hold.released_amount),
                    "capturedAmount": str(bond_hold.captured_amount),
                },
            )

        cls.get_logger().info(
            "Bond released",
            extra={
                "bond_hold_id": str(bond_hold.id),
                "booking_id": str(bond_hold.booking_id),
                "released_amount": str(bond_hold.released_amount),
            },
        )
        return bond_hold

    # =========================================================================
    # Expiry & status
    # =========================================================================

    @classmethod
    def expire_stale_holds(cls) -> int:
        """
        Mark AUTHORIZED holds past expires_at as EXPIRED.

        Returns:
            Number of holds expired
        """
        now = timezone.now()
        stale_ids = list(
            BondHold.objects.filter(
                status=BondHoldStatus.AUTHORIZED,
                expires_at__lte=now,
            ).values_list("id", flat=True)
        )

        expired = 0
        for bond_hold_id in stale_ids:
            with transaction.atomic():
                bond_hold = BondHold.objects.select_for_update().get(id=bond_hold_id)
                if bond_hold.status != BondHoldStatus.AUTHORIZED:
                    continue
                bond_hold.expire()
                bond_hold.save()
                expired += 1

        if expired:
            cls.get_logger().info(
                f"Expired {expired} bond holds",
                extra={"expired_count": expired},
            )
        return expired

    @classmethod
    def get_bond_status(cls, booking_id) -> BondStatusSummary | None:
        """Summary of the most recent bond hold of a booking, or None."""
        bond_hold = BondHold.objects.filter(booking_id=booking_id).order_by("-created_at").first()
        if bond_hold is None:
            return None
        return BondStatusSummary(
            bond_hold_id=str(bond_hold.id),
            status=bond_hold.status,
            currency=bond_hold.currency,
            authorized_amount=bond_hold.authorized_amount,
            captured_amount=bond_hold.captured_amount,
            released_amount=bond_hold.released_amount,
            remaining_amount=bond_hold.remaining_amount,
            expires_at=bond_hold.expires_at,
            is_expired=bond_hold.is_expired,
        )

    @classmethod
    def _get(cls, bond_hold_id) -> BondHold:
        bond_hold = BondHold.objects.filter(id=bond_hold_id).first()
        if bond_hold is None:
            raise PaymentNotFoundError(
                "Bond hold not found",
                details={"bond_hold_id": str(bond_hold_id)},
            )
        return bond_hold
