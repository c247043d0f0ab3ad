"""
Amount engine for rental payments.

Pure functions on Decimal. Every amount is rounded ROUND_HALF_UP to the
currency's minor unit, and derived amounts are computed as remainders so
splits always sum exactly:

    platform_fee_amount = round(rental_amount * fee_percent / 100)
    owner_amount        = rental_amount - platform_fee_amount
    deposit_amount      = round(total * deposit_percent / 100)
    balance_amount      = total - deposit_amount

Amounts are only ever computed here from the booking record. Client
requests select a booking and a payment mode, never an amount.

Usage:
    from payments.amounts import calculate_payment_amounts

    amounts = calculate_payment_amounts(Decimal("1000.00"), currency="NZD")
    amounts.platform_fee_amount  # Decimal("15.00")
    amounts.owner_amount         # Decimal("985.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings

from payments.exceptions import PaymentValidationError
from payments.state_machines import DisputeResolution

# Minor units per currency (decimal places)
CURRENCY_EXPONENTS: dict[str, int] = {
    "NZD": 2,
    "AUD": 2,
}

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PaymentAmounts:
    """
    Server-side breakdown of a rental charge.

    total_amount equals rental_amount: the bond is authorized separately
    and never part of the charged total.
    """

    rental_amount: Decimal
    platform_fee_amount: Decimal
    platform_fee_percent: Decimal
    owner_amount: Decimal
    bond_amount: Decimal
    total_amount: Decimal
    currency: str


@dataclass(frozen=True)
class DepositAmounts:
    """Deposit charged now and the exact complement left for later."""

    deposit_amount: Decimal
    balance_amount: Decimal
    deposit_percent: int


def _to_decimal(value, field_name: str) -> Decimal:
    if isinstance(value, float):
        # Floats carry binary rounding error into money
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise PaymentValidationError(
            f"{field_name} is not a valid amount",
            details={field_name: str(value)},
        ) from e


def _exponent(currency: str) -> int:
    try:
        return CURRENCY_EXPONENTS[currency.upper()]
    except (KeyError, AttributeError) as e:
        raise PaymentValidationError(
            f"Unsupported currency: {currency}",
            error_code="UNSUPPORTED_CURRENCY",
            details={"currency": currency},
        ) from e


def validate_currency(currency: str) -> str:
    """Return the upper-cased currency code or raise PaymentValidationError."""
    code = (currency or "").upper()
    if code not in settings.PAYMENT_CURRENCIES or code not in CURRENCY_EXPONENTS:
        raise PaymentValidationError(
            f"Unsupported currency: {currency}",
            error_code="UNSUPPORTED_CURRENCY",
            details={"currency": currency},
        )
    return code


def quantize_money(value, currency: str = "NZD") -> Decimal:
    """Round a value half-up to the currency's minor unit."""
    exponent = _exponent(currency)
    step = Decimal(1).scaleb(-exponent)
    return _to_decimal(value, "amount").quantize(step, rounding=ROUND_HALF_UP)


def to_minor_units(amount, currency: str = "NZD") -> int:
    """
    Convert a major-unit amount to the processor's integer minor units.

    Example:
        to_minor_units(Decimal("985.50"), "NZD")  # 98550
    """
    exponent = _exponent(currency)
    return int(quantize_money(amount, currency).scaleb(exponent))


def from_minor_units(value: int, currency: str = "NZD") -> Decimal:
    """Convert processor minor units back to a quantized Decimal."""
    exponent = _exponent(currency)
    return quantize_money(Decimal(int(value)).scaleb(-exponent), currency)


def calculate_payment_amounts(
    rental_total,
    bond_amount=ZERO,
    currency: str = "NZD",
    fee_percent=None,
) -> PaymentAmounts:
    """
    Compute the fee/owner split for a rental charge.

    The fee is rounded first; the owner amount is the remainder so
    owner_amount + platform_fee_amount == rental_amount exactly.

    Args:
        rental_total: Amount charged for the rental
        bond_amount: Security deposit authorized separately
        currency: NZD or AUD
        fee_percent: Platform fee percent (defaults to PLATFORM_FEE_PERCENT)

    Raises:
        PaymentValidationError: Negative amounts, unsupported currency,
            fee percent outside [0, 100]
    """
    currency = validate_currency(currency)
    if fee_percent is None:
        fee_percent = settings.PLATFORM_FEE_PERCENT
    fee_percent = _to_decimal(fee_percent, "fee_percent")
    rental_amount = quantize_money(rental_total, currency)
    bond = quantize_money(bond_amount or ZERO, currency)

    if rental_amount < ZERO:
        raise PaymentValidationError(
            "Rental total cannot be negative",
            details={"rental_total": str(rental_amount)},
        )
    if bond < ZERO:
        raise PaymentValidationError(
            "Bond amount cannot be negative",
            details={"bond_amount": str(bond)},
        )
    if not ZERO <= fee_percent <= HUNDRED:
        raise PaymentValidationError(
            "Platform fee percent must be between 0 and 100",
            details={"fee_percent": str(fee_percent)},
        )

    platform_fee_amount = quantize_money(rental_amount * fee_percent / HUNDRED, currency)
    owner_amount = rental_amount - platform_fee_amount

    return PaymentAmounts(
        rental_amount=rental_amount,
        platform_fee_amount=platform_fee_amount,
        platform_fee_percent=fee_percent,
        owner_amount=owner_amount,
        bond_amount=bond,
        total_amount=rental_amount,
        currency=currency,
    )


def calculate_deposit_amount(
    total,
    deposit_percent: int = 20,
    currency: str = "NZD",
) -> DepositAmounts:
    """
    Split a rental total into a deposit and the remaining balance.

    Raises:
        PaymentValidationError: Negative total or percent outside [0, 100]
    """
    total = quantize_money(total, currency)
    if total < ZERO:
        raise PaymentValidationError(
            "Total cannot be negative",
            details={"total": str(total)},
        )
    if not 0 <= int(deposit_percent) <= 100:
        raise PaymentValidationError(
            "Deposit percent must be between 0 and 100",
            details={"deposit_percent": deposit_percent},
        )

    deposit_amount = quantize_money(total * Decimal(int(deposit_percent)) / HUNDRED, currency)
    return DepositAmounts(
        deposit_amount=deposit_amount,
        balance_amount=total - deposit_amount,
        deposit_percent=int(deposit_percent),
    )


def calculate_net_owner_amount(
    owner_amount,
    rental_amount,
    refunded_amount,
    currency: str = "NZD",
) -> Decimal:
    """
    Reduce the owner's share in proportion to the refunded amount.

    net = owner_amount - owner_amount * (refunded / rental)

    Refunds reduce the owner's share, not the platform fee. The refund is
    capped at the rental amount so the result is never negative.

    Example:
        calculate_net_owner_amount(Decimal("985"), Decimal("1000"), Decimal("200"))
        # Decimal("788.00")
    """
    owner_amount = quantize_money(owner_amount, currency)
    rental_amount = quantize_money(rental_amount, currency)
    refunded_amount = quantize_money(refunded_amount or ZERO, currency)

    if rental_amount <= ZERO or refunded_amount <= ZERO:
        return owner_amount

    refunded_amount = min(refunded_amount, rental_amount)
    reduction = owner_amount * refunded_amount / rental_amount
    return quantize_money(owner_amount - reduction, currency)


def resolve_dispute_owner_amount(
    owner_amount,
    resolution: str,
    currency: str = "NZD",
) -> Decimal:
    """
    Final owner amount after an admin resolves a dispute.

    owner_favor keeps the full amount, renter_favor zeroes it and split
    halves it (rounded to the minor unit).
    """
    owner_amount = quantize_money(owner_amount, currency)
    if resolution == DisputeResolution.OWNER_FAVOR:
        return owner_amount
    if resolution == DisputeResolution.RENTER_FAVOR:
        return quantize_money(ZERO, currency)
    if resolution == DisputeResolution.SPLIT:
        return quantize_money(owner_amount / 2, currency)
    raise PaymentValidationError(
        f"Unknown dispute resolution: {resolution}",
        error_code="INVALID_RESOLUTION",
        details={"resolution": resolution},
    )
