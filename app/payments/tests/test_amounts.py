"""
Tests for the amount engine.

All money is Decimal, rounded half-up to the minor unit, and every split
sums back exactly to its source amount.
"""

from decimal import Decimal

import pytest
from django.test import override_settings

from payments.amounts import (
    calculate_deposit_amount,
    calculate_net_owner_amount,
    calculate_payment_amounts,
    from_minor_units,
    quantize_money,
    resolve_dispute_owner_amount,
    to_minor_units,
    validate_currency,
)
from payments.exceptions import PaymentValidationError
from payments.state_machines import DisputeResolution


class TestCalculatePaymentAmounts:
    def test_standard_fee_split(self):
        amounts = calculate_payment_amounts(Decimal("1000.00"), currency="NZD")

        assert amounts.rental_amount == Decimal("1000.00")
        assert amounts.platform_fee_amount == Decimal("15.00")
        assert amounts.owner_amount == Decimal("985.00")
        assert amounts.total_amount == Decimal("1000.00")
        assert amounts.platform_fee_percent == Decimal("1.5")

    def test_fee_rounds_half_up(self):
        # 1.5% of 123.30 is 1.8495
        amounts = calculate_payment_amounts(Decimal("123.30"))

        assert amounts.platform_fee_amount == Decimal("1.85")
        assert amounts.owner_amount == Decimal("121.45")

    @pytest.mark.parametrize(
        "rental", ["0.01", "0.99", "33.33", "123.45", "999.99", "12345.67"]
    )
    def test_split_always_sums_to_rental(self, rental):
        amounts = calculate_payment_amounts(Decimal(rental))

        assert amounts.platform_fee_amount + amounts.owner_amount == amounts.rental_amount

    def test_bond_is_not_part_of_the_charge(self):
        amounts = calculate_payment_amounts(Decimal("1000.00"), bond_amount=Decimal("500.00"))

        assert amounts.bond_amount == Decimal("500.00")
        assert amounts.total_amount == Decimal("1000.00")

    def test_zero_rental(self):
        amounts = calculate_payment_amounts(Decimal("0"))

        assert amounts.platform_fee_amount == Decimal("0.00")
        assert amounts.owner_amount == Decimal("0.00")

    def test_float_input_is_converted_via_str(self):
        amounts = calculate_payment_amounts(0.1 + 0.2)

        assert amounts.rental_amount == Decimal("0.30")

    @override_settings(PLATFORM_FEE_PERCENT=Decimal("10"))
    def test_fee_percent_comes_from_settings(self):
        amounts = calculate_payment_amounts(Decimal("200.00"), currency="AUD")

        assert amounts.platform_fee_amount == Decimal("20.00")
        assert amounts.currency == "AUD"

    def test_negative_rental_rejected(self):
        with pytest.raises(PaymentValidationError):
            calculate_payment_amounts(Decimal("-1.00"))

    def test_negative_bond_rejected(self):
        with pytest.raises(PaymentValidationError):
            calculate_payment_amounts(Decimal("10.00"), bond_amount=Decimal("-5"))

    def test_fee_percent_out_of_range_rejected(self):
        with pytest.raises(PaymentValidationError):
            calculate_payment_amounts(Decimal("10.00"), fee_percent=Decimal("101"))

    def test_unsupported_currency_rejected(self):
        with pytest.raises(PaymentValidationError) as exc_info:
            calculate_payment_amounts(Decimal("10.00"), currency="USD")

        assert exc_info.value.error_code == "UNSUPPORTED_CURRENCY"

    def test_non_numeric_amount_rejected(self):
        with pytest.raises(PaymentValidationError):
            calculate_payment_amounts("ten dollars")


class TestCalculateDepositAmount:
    def test_twenty_percent_deposit(self):
        deposit = calculate_deposit_amount(Decimal("1000.00"), 20)

        assert deposit.deposit_amount == Decimal("200.00")
        assert deposit.balance_amount == Decimal("800.00")
        assert deposit.deposit_percent == 20

    def test_deposit_and_balance_sum_exactly(self):
        deposit = calculate_deposit_amount(Decimal("333.33"), 33)

        assert deposit.deposit_amount == Decimal("110.00")
        assert deposit.deposit_amount + deposit.balance_amount == Decimal("333.33")

    @pytest.mark.parametrize("percent", [-1, 101])
    def test_percent_out_of_range_rejected(self, percent):
        with pytest.raises(PaymentValidationError):
            calculate_deposit_amount(Decimal("100.00"), percent)


class TestCalculateNetOwnerAmount:
    def test_partial_refund_reduces_owner_share(self):
        net = calculate_net_owner_amount(Decimal("985"), Decimal("1000"), Decimal("200"))

        assert net == Decimal("788.00")

    def test_no_refund_keeps_owner_amount(self):
        assert calculate_net_owner_amount(
            Decimal("985.00"), Decimal("1000.00"), Decimal("0")
        ) == Decimal("985.00")

    def test_refund_above_rental_is_capped(self):
        assert calculate_net_owner_amount(
            Decimal("985.00"), Decimal("1000.00"), Decimal("1500.00")
        ) == Decimal("0.00")

    def test_zero_rental_returns_owner_amount(self):
        assert calculate_net_owner_amount(
            Decimal("0.00"), Decimal("0.00"), Decimal("10.00")
        ) == Decimal("0.00")


class TestResolveDisputeOwnerAmount:
    def test_owner_favor(self):
        assert resolve_dispute_owner_amount(
            Decimal("985.00"), DisputeResolution.OWNER_FAVOR
        ) == Decimal("985.00")

    def test_renter_favor(self):
        assert resolve_dispute_owner_amount(
            Decimal("985.00"), DisputeResolution.RENTER_FAVOR
        ) == Decimal("0.00")

    def test_split_rounds_half_up(self):
        assert resolve_dispute_owner_amount(
            Decimal("98.55"), DisputeResolution.SPLIT
        ) == Decimal("49.28")

    def test_unknown_resolution_rejected(self):
        with pytest.raises(PaymentValidationError) as exc_info:
            resolve_dispute_owner_amount(Decimal("10.00"), "coin_toss")

        assert exc_info.value.error_code == "INVALID_RESOLUTION"


class TestMinorUnits:
    def test_to_minor_units(self):
        assert to_minor_units(Decimal("985.50"), "NZD") == 98550
        assert to_minor_units(Decimal("0.015"), "NZD") == 2

    def test_from_minor_units(self):
        assert from_minor_units(98550, "AUD") == Decimal("985.50")

    def test_quantize_money(self):
        assert quantize_money("1.005") == Decimal("1.01")

    def test_validate_currency_upper_cases(self):
        assert validate_currency("nzd") == "NZD"

    def test_validate_currency_rejects_unknown(self):
        with pytest.raises(PaymentValidationError):
            validate_currency("GBP")
