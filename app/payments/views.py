"""
DRF views for the payments API.

Provides:
- PaymentIntentCreateView: Renter creates the payment for an accepted booking
- PaymentConfirmView: Server-side status check after client confirmation
- RefundView: Staff refunds part or all of a booking payment
- BondCaptureView / BondReleaseView: Staff settle a bond hold
- PayoutView: Owner payout summary, history and on-demand payout
- PayoutOnboardingView: Owner connected account onboarding
- DisputeResolveView: Staff resolve a payment dispute
- FailedWebhookListView / FailedWebhookRetryView: Staff webhook queue

The webhook receiver itself is a plain Django view in
payments.webhooks.views.

Errors:
    Application errors are returned as e.to_dict() with e.http_status.
    Rejected ServiceResults are returned as {"error", "error_code"}.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.services import ServiceResult

from payments.models import PaymentIntent
from payments.permissions import IsEquipmentOwner
from payments.serializers import (
    BondCaptureSerializer,
    BondHoldSerializer,
    ConfirmPaymentSerializer,
    CreatePaymentIntentSerializer,
    DisputeResolutionSerializer,
    OnboardingLinkSerializer,
    OnboardingRequestSerializer,
    OwnerPayoutAccountSerializer,
    OwnerPayoutSummarySerializer,
    PaymentIntentSerializer,
    PayoutRequestSerializer,
    PayoutSerializer,
    RefundRequestSerializer,
    WebhookEventSerializer,
)
from payments.services import (
    BondHoldService,
    ConnectAccountService,
    EscrowService,
    PayoutService,
    WebhookService,
)
from payments.state_machines import PaymentMode

logger = logging.getLogger(__name__)


FAILURE_STATUS_CODES = {
    "BOOKING_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PAYMENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "NO_ACCOUNT": status.HTTP_404_NOT_FOUND,
    "WEBHOOK_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "NOT_RENTER": status.HTTP_403_FORBIDDEN,
    "NOT_OWNER": status.HTTP_403_FORBIDDEN,
}


def failure_response(result: ServiceResult) -> Response:
    """Render a rejected ServiceResult."""
    return Response(
        {"error": result.error, "error_code": result.error_code},
        status=FAILURE_STATUS_CODES.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


def error_response(error: BaseApplicationError) -> Response:
    return Response(error.to_dict(), status=error.http_status)


# =============================================================================
# Payment Intents
# =============================================================================


class PaymentIntentCreateView(APIView):
    """
    Create the PaymentIntent for an accepted booking.

    POST /api/v1/payments/intents/

    Amounts always come from the booking record; the request only selects
    the booking and the payment mode. A repeat request returns the
    existing intent.

    Response:
        201 Created: PaymentIntent with client_secret
        400 Bad Request: Booking not accepted, owner not onboarded, processor error
        403 Forbidden: User is not the booking's renter
        404 Not Found: Booking doesn't exist
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payment_intent",
        summary="Create payment intent",
        request=CreatePaymentIntentSerializer,
        responses={
            201: OpenApiResponse(response=PaymentIntentSerializer, description="Intent created"),
            400: OpenApiResponse(description="Booking cannot be paid"),
            403: OpenApiResponse(description="Not the booking's renter"),
            404: OpenApiResponse(description="Booking not found"),
        },
        tags=["Payments - Intents"],
    )
    def post(self, request):
        serializer = CreatePaymentIntentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        if data["payment_mode"] == PaymentMode.DEPOSIT:
            result = EscrowService.create_deposit_payment_intent(
                data["booking_id"],
                deposit_percent=data.get("deposit_percent"),
                actor=request.user,
            )
        else:
            result = EscrowService.create_payment_intent(data["booking_id"], actor=request.user)

        if not result.success:
            return failure_response(result)

        return Response(PaymentIntentSerializer(result.data).data, status=status.HTTP_201_CREATED)


class PaymentConfirmView(APIView):
    """
    Verify a payment with the processor after the client confirmed it.

    POST /api/v1/payments/intents/confirm/

    The client never reports a status; the server asks the processor.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="confirm_payment_intent",
        summary="Confirm payment status",
        request=ConfirmPaymentSerializer,
        responses={
            200: OpenApiResponse(response=PaymentIntentSerializer, description="Current status"),
            404: OpenApiResponse(description="Payment not found"),
        },
        tags=["Payments - Intents"],
    )
    def post(self, request):
        serializer = ConfirmPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        external_ref = serializer.validated_data["payment_intent_id"]
        if not PaymentIntent.objects.filter(
            external_ref=external_ref,
            booking__renter=request.user,
        ).exists():
            return Response(
                {"error": "Payment not found", "error_code": "PAYMENT_NOT_FOUND"},
                status=status.HTTP_404_NOT_FOUND,
            )

        result = EscrowService.confirm_payment_status(external_ref)
        if not result.success:
            return failure_response(result)

        return Response(PaymentIntentSerializer(result.data).data)


# =============================================================================
# Refunds & Bonds (staff)
# =============================================================================


class RefundView(APIView):
    """
    Refund part or all of a booking payment.

    POST /api/v1/payments/refunds/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="create_refund",
        summary="Refund a booking payment",
        request=RefundRequestSerializer,
        responses={
            200: OpenApiResponse(response=PaymentIntentSerializer, description="Refund applied"),
            400: OpenApiResponse(description="Not refundable or amount out of range"),
            404: OpenApiResponse(description="Payment not found"),
        },
        tags=["Payments - Refunds"],
    )
    def post(self, request):
        serializer = RefundRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        result = EscrowService.process_refund(
            data["booking_id"],
            data["amount"],
            data["reason"],
            actor=request.user,
        )
        if not result.success:
            return failure_response(result)

        return Response(PaymentIntentSerializer(result.data).data)


class BondCaptureView(APIView):
    """POST /api/v1/payments/bonds/{bond_hold_id}/capture/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="capture_bond",
        summary="Capture a bond hold",
        request=BondCaptureSerializer,
        responses={
            200: OpenApiResponse(response=BondHoldSerializer, description="Bond captured"),
            404: OpenApiResponse(description="Bond hold not found"),
            409: OpenApiResponse(description="Bond not capturable"),
        },
        tags=["Payments - Bonds"],
    )
    def post(self, request, bond_hold_id):
        serializer = BondCaptureSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            bond_hold = BondHoldService.capture(
                bond_hold_id,
                serializer.validated_data["amount"],
                serializer.validated_data["reason"],
                captured_by=request.user,
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(BondHoldSerializer(bond_hold).data)


class BondReleaseView(APIView):
    """POST /api/v1/payments/bonds/{bond_hold_id}/release/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="release_bond",
        summary="Release a bond hold",
        request=None,
        responses={
            200: OpenApiResponse(response=BondHoldSerializer, description="Bond released"),
            404: OpenApiResponse(description="Bond hold not found"),
            409: OpenApiResponse(description="Bond not releasable"),
        },
        tags=["Payments - Bonds"],
    )
    def post(self, request, bond_hold_id):
        try:
            bond_hold = BondHoldService.release(bond_hold_id, released_by=request.user)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(BondHoldSerializer(bond_hold).data)


# =============================================================================
# Payouts (owners)
# =============================================================================


class PayoutView(APIView):
    """
    Owner payouts.

    GET /api/v1/payments/payouts/
        Pending earnings summary and recent payout history.

    POST /api/v1/payments/payouts/
        Pay out eligible bookings now, optionally a subset.
    """

    permission_classes = [IsEquipmentOwner]

    @extend_schema(
        operation_id="get_payouts",
        summary="Payout summary and history",
        responses={200: OpenApiResponse(description="Summary and history")},
        tags=["Payments - Payouts"],
    )
    def get(self, request):
        summary = PayoutService.get_owner_payout_summary(request.user.id)
        history = PayoutService.get_owner_payout_history(request.user.id)
        return Response(
            {
                "summary": OwnerPayoutSummarySerializer(summary).data,
                "history": PayoutSerializer(history, many=True).data,
            }
        )

    @extend_schema(
        operation_id="request_payout",
        summary="Request a payout",
        request=PayoutRequestSerializer,
        responses={
            201: OpenApiResponse(response=PayoutSerializer, description="Payout created"),
            409: OpenApiResponse(description="Account not ready, dispute or below minimum"),
        },
        tags=["Payments - Payouts"],
    )
    def post(self, request):
        serializer = PayoutRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            payout = PayoutService.create_owner_payout(
                request.user.id,
                booking_ids=serializer.validated_data.get("booking_ids"),
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(PayoutSerializer(payout).data, status=status.HTTP_201_CREATED)


class PayoutOnboardingView(APIView):
    """
    Connected account onboarding.

    POST /api/v1/payments/payouts/onboarding/
        Create (or resume) the account and return an onboarding link.

    GET /api/v1/payments/payouts/onboarding/
        Refresh and return the account's verification state.
    """

    permission_classes = [IsEquipmentOwner]

    @extend_schema(
        operation_id="start_payout_onboarding",
        summary="Start payout onboarding",
        request=OnboardingRequestSerializer,
        responses={
            201: OpenApiResponse(response=OnboardingLinkSerializer, description="Onboarding link"),
            400: OpenApiResponse(description="Unsupported country or processor error"),
        },
        tags=["Payments - Payouts"],
    )
    def post(self, request):
        serializer = OnboardingRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        result = ConnectAccountService.create_connected_account(
            request.user,
            country=serializer.validated_data.get("country"),
        )
        if not result.success:
            return failure_response(result)

        return Response(OnboardingLinkSerializer(result.data).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="get_payout_onboarding",
        summary="Payout account status",
        responses={
            200: OpenApiResponse(response=OwnerPayoutAccountSerializer, description="Account"),
            404: OpenApiResponse(description="No payout account"),
        },
        tags=["Payments - Payouts"],
    )
    def get(self, request):
        result = ConnectAccountService.refresh_account_status(request.user)
        if not result.success:
            return failure_response(result)

        return Response(OwnerPayoutAccountSerializer(result.data).data)


# =============================================================================
# Disputes & Webhook Queue (staff)
# =============================================================================


class DisputeResolveView(APIView):
    """POST /api/v1/payments/disputes/{booking_id}/resolve/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="resolve_dispute",
        summary="Resolve a payment dispute",
        request=DisputeResolutionSerializer,
        responses={
            200: OpenApiResponse(response=PaymentIntentSerializer, description="Dispute resolved"),
            404: OpenApiResponse(description="Payment not found"),
            409: OpenApiResponse(description="Booking is not under dispute"),
        },
        tags=["Payments - Disputes"],
    )
    def post(self, request, booking_id):
        serializer = DisputeResolutionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            payment_intent = PayoutService.resolve_dispute(
                booking_id,
                serializer.validated_data["resolution"],
                resolved_by=request.user,
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(PaymentIntentSerializer(payment_intent).data)


class FailedWebhookListView(APIView):
    """GET /api/v1/payments/webhooks/failed/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="list_failed_webhooks",
        summary="Failed webhook events",
        responses={200: WebhookEventSerializer(many=True)},
        tags=["Payments - Webhooks"],
    )
    def get(self, request):
        events = WebhookService.get_failed_events()
        return Response(WebhookEventSerializer(events, many=True).data)


class FailedWebhookRetryView(APIView):
    """
    Reprocess a failed webhook event with a fresh copy from the processor.

    POST /api/v1/payments/webhooks/failed/{webhook_event_id}/retry/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="retry_failed_webhook",
        summary="Retry a failed webhook event",
        request=None,
        responses={
            200: OpenApiResponse(response=WebhookEventSerializer, description="Event processed"),
            400: OpenApiResponse(description="Event failed again"),
            404: OpenApiResponse(description="Event not found"),
        },
        tags=["Payments - Webhooks"],
    )
    def post(self, request, webhook_event_id):
        try:
            result = WebhookService.retry_event(webhook_event_id)
        except BaseApplicationError as e:
            return error_response(e)

        if not result.success:
            return failure_response(result)

        logger.info(
            "Webhook event retried by staff",
            extra={"webhook_event_id": str(webhook_event_id), "user_id": str(request.user.id)},
        )
        return Response(WebhookEventSerializer(result.data).data)
