"""
DRF serializers for the payments API.

Provides:
- Request serializers: validate input for intent creation, confirmation,
  refunds, bond capture, payout requests, onboarding and dispute resolution
- Response serializers: read-only views of PaymentIntent, BondHold,
  Payout, OwnerPayoutAccount and WebhookEvent

Money fields are serialized as decimal strings, never floats.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from payments.models import BondHold, OwnerPayoutAccount, PaymentIntent, Payout, WebhookEvent
from payments.state_machines import DisputeResolution, PaymentMode


# =============================================================================
# Request Serializers
# =============================================================================


class CreatePaymentIntentSerializer(serializers.Serializer):
    """
    Request body for POST /intents/.

    deposit_percent only applies when payment_mode is DEPOSIT; the service
    clamps it to the configured range.
    """

    booking_id = serializers.UUIDField()
    payment_mode = serializers.ChoiceField(
        choices=PaymentMode.choices,
        default=PaymentMode.FULL,
        required=False,
    )
    deposit_percent = serializers.IntegerField(
        required=False,
        allow_null=True,
        min_value=1,
        max_value=100,
    )


class ConfirmPaymentSerializer(serializers.Serializer):
    payment_intent_id = serializers.CharField(max_length=255)


class RefundRequestSerializer(serializers.Serializer):
    booking_id = serializers.UUIDField()
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0.01"),
    )
    reason = serializers.CharField(max_length=500)


class BondCaptureSerializer(serializers.Serializer):
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0.01"),
    )
    reason = serializers.CharField(max_length=500)


class PayoutRequestSerializer(serializers.Serializer):
    """Optional subset of eligible bookings; all eligible bookings when omitted."""

    booking_ids = serializers.ListField(
        child=serializers.UUIDField(),
        required=False,
        allow_empty=False,
    )


class OnboardingRequestSerializer(serializers.Serializer):
    country = serializers.CharField(max_length=2, required=False)

    def validate_country(self, value: str) -> str:
        return value.upper()


class DisputeResolutionSerializer(serializers.Serializer):
    resolution = serializers.ChoiceField(choices=DisputeResolution.choices)


# =============================================================================
# Response Serializers
# =============================================================================


class PaymentIntentSerializer(serializers.ModelSerializer):
    """
    Read-only PaymentIntent for API responses.

    client_secret is included so the renter's client can confirm the
    payment; it is only returned to the renter who created the intent.
    """

    booking_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = PaymentIntent
        fields = [
            "id",
            "booking_id",
            "external_ref",
            "client_secret",
            "status",
            "currency",
            "payment_mode",
            "deposit_percent",
            "balance_amount",
            "rental_amount",
            "platform_fee_amount",
            "platform_fee_percent",
            "owner_amount",
            "total_amount",
            "bond_amount",
            "refunded_amount",
            "is_in_escrow",
            "dispute_hold",
            "paid_at",
            "refunded_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BondHoldSerializer(serializers.ModelSerializer):
    booking_id = serializers.UUIDField(read_only=True)
    remaining_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = BondHold
        fields = [
            "id",
            "booking_id",
            "external_ref",
            "status",
            "currency",
            "authorized_amount",
            "captured_amount",
            "released_amount",
            "remaining_amount",
            "capture_reason",
            "authorized_at",
            "expires_at",
            "captured_at",
            "released_at",
        ]
        read_only_fields = fields


class PayoutSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payout
        fields = [
            "id",
            "external_transfer_ref",
            "status",
            "currency",
            "gross_amount",
            "platform_fees",
            "net_amount",
            "booking_count",
            "period_start",
            "period_end",
            "processed_at",
            "completed_at",
            "failed_at",
            "failure_reason",
            "created_at",
        ]
        read_only_fields = fields


class PayoutEligibleBookingSerializer(serializers.Serializer):
    booking_id = serializers.UUIDField()
    payment_intent_id = serializers.UUIDField()
    listing_title = serializers.CharField()
    currency = serializers.CharField()
    rental_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    platform_fee = serializers.DecimalField(max_digits=12, decimal_places=2)
    owner_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    refunded_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    net_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    completed_at = serializers.DateTimeField()


class OwnerPayoutSummarySerializer(serializers.Serializer):
    """Pending earnings for an owner, from PayoutService.get_owner_payout_summary."""

    owner_id = serializers.UUIDField()
    currency = serializers.CharField()
    gross_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    platform_fees = serializers.DecimalField(max_digits=12, decimal_places=2)
    net_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    minimum_payout_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    booking_count = serializers.IntegerField()
    meets_minimum = serializers.BooleanField()
    is_payout_ready = serializers.BooleanField()
    eligible_bookings = PayoutEligibleBookingSerializer(many=True)


class OwnerPayoutAccountSerializer(serializers.ModelSerializer):
    is_payout_ready = serializers.BooleanField(read_only=True)

    class Meta:
        model = OwnerPayoutAccount
        fields = [
            "external_account_ref",
            "account_status",
            "onboarding_complete",
            "is_verified",
            "verified_at",
            "minimum_payout_amount",
            "payout_schedule",
            "currency",
            "is_payout_ready",
        ]
        read_only_fields = fields


class OnboardingLinkSerializer(serializers.Serializer):
    account_id = serializers.CharField()
    onboarding_url = serializers.URLField()
    expires_at = serializers.IntegerField(allow_null=True)


class WebhookEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = WebhookEvent
        fields = [
            "id",
            "external_event_id",
            "event_type",
            "status",
            "attempts",
            "last_error",
            "processed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
