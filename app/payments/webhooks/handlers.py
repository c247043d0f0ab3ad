"""
Webhook event handlers for processor events.

Handlers are registered per ProcessorEventType. Adding an event type means
adding one decorated function; the pipeline never changes.

Each handler locks its target row and decides from the row's current
state, because events for different ids arrive in any order. A record
that does not exist locally belongs to something created outside this
system: it is logged and treated as success. A payload without the
fields a handler needs raises WebhookPayloadError.

Usage:
    from payments.webhooks.handlers import register_handler

    @register_handler(ProcessorEventType.PAYMENT_INTENT_SUCCEEDED)
    def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
        ...

WebhookService.process_event looks handlers up with get_handler.
"""

from __future__ import annotations

import logging
from typing import Callable

from django.db import transaction
from django.utils import timezone

from core.services import ServiceResult

from payments.amounts import from_minor_units
from payments.exceptions import WebhookPayloadError
from payments.models import PaymentIntent, WebhookEvent
from payments.services.booking_sync import BookingStateSynchronizer
from payments.services.escrow_service import UPDATABLE_STATUSES, EscrowService
from payments.services.payout_service import PayoutService
from payments.state_machines import (
    PaymentIntentStatus,
    PaymentSignal,
    PayoutStatus,
    ProcessorEventType,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: ProcessorEventType) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler(ProcessorEventType.CHARGE_REFUNDED)
        def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[ProcessorEventType(event_type).value] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def get_handler(event_type: str) -> Callable[[WebhookEvent], ServiceResult] | None:
    return WEBHOOK_HANDLERS.get(event_type)


# =============================================================================
# Helpers
# =============================================================================


def _require(obj: dict, key: str, webhook_event: WebhookEvent):
    value = obj.get(key)
    if not value:
        raise WebhookPayloadError(
            f"{webhook_event.event_type}: missing '{key}' in event object",
            details={"event_id": webhook_event.external_event_id},
        )
    return value


def _lock_payment_intent(external_ref: str, webhook_event: WebhookEvent) -> PaymentIntent | None:
    """Lock a PaymentIntent by processor reference. Call inside a transaction."""
    payment_intent = (
        PaymentIntent.objects.select_for_update()
        .select_related("booking", "booking__owner", "booking__renter")
        .filter(external_ref=external_ref)
        .first()
    )
    if payment_intent is None:
        logger.info(
            "No local payment for processor reference, may be external",
            extra={
                "external_ref": external_ref,
                "event_id": webhook_event.external_event_id,
                "event_type": webhook_event.event_type,
            },
        )
    return payment_intent


def _apply_status(webhook_event: WebhookEvent, new_status: str, context: dict) -> ServiceResult:
    obj = webhook_event.data_object
    external_ref = _require(obj, "id", webhook_event)

    with transaction.atomic():
        payment_intent = _lock_payment_intent(external_ref, webhook_event)
        if payment_intent is None:
            return ServiceResult.success(None)

        changed = EscrowService.apply_payment_status(
            payment_intent,
            new_status,
            trigger="webhook",
            context=context,
        )

    logger.info(
        f"Processed {webhook_event.event_type}",
        extra={
            "event_id": webhook_event.external_event_id,
            "payment_intent_id": str(payment_intent.id),
            "booking_id": str(payment_intent.booking_id),
            "changed": changed,
        },
    )
    return ServiceResult.success(payment_intent)


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler(ProcessorEventType.PAYMENT_INTENT_SUCCEEDED)
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """Payment captured: escrow record SUCCEEDED, booking AWAITING_PICKUP."""
    obj = webhook_event.data_object
    return _apply_status(
        webhook_event,
        PaymentIntentStatus.SUCCEEDED,
        {
            "latest_charge": obj.get("latest_charge"),
            "amount_received": obj.get("amount_received"),
        },
    )


@register_handler(ProcessorEventType.PAYMENT_INTENT_FAILED)
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    obj = webhook_event.data_object
    last_error = obj.get("last_payment_error") or {}
    return _apply_status(
        webhook_event,
        PaymentIntentStatus.FAILED,
        {"failure_reason": last_error.get("message") or "Payment failed"},
    )


@register_handler(ProcessorEventType.PAYMENT_INTENT_CANCELED)
def handle_payment_intent_canceled(webhook_event: WebhookEvent) -> ServiceResult:
    return _apply_status(webhook_event, PaymentIntentStatus.CANCELLED, {})


# =============================================================================
# Charge Handlers
# =============================================================================


@register_handler(ProcessorEventType.CHARGE_REFUNDED)
def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Apply a refund recorded by the processor.

    The refunded total is max(local, remote) so a refund already applied
    by EscrowService.process_refund is not counted twice. A refund that
    arrives before the succeeded event first applies the success it implies.
    """
    obj = webhook_event.data_object
    external_ref = _require(obj, "payment_intent", webhook_event)
    remote_refunded_cents = obj.get("amount_refunded") or 0

    with transaction.atomic():
        payment_intent = _lock_payment_intent(external_ref, webhook_event)
        if payment_intent is None:
            return ServiceResult.success(None)

        if payment_intent.status == PaymentIntentStatus.CANCELLED:
            logger.warning(
                "Refund event for cancelled payment ignored",
                extra={"payment_intent_id": str(payment_intent.id)},
            )
            return ServiceResult.success(payment_intent)

        if payment_intent.status in UPDATABLE_STATUSES:
            EscrowService.apply_payment_status(
                payment_intent,
                PaymentIntentStatus.SUCCEEDED,
                trigger="webhook",
                context={"latest_charge": obj.get("id")},
            )

        remote_refunded = from_minor_units(remote_refunded_cents, payment_intent.currency)
        refunded = min(
            payment_intent.total_amount,
            max(payment_intent.refunded_amount, remote_refunded),
        )
        is_full = refunded >= payment_intent.total_amount
        new_status = (
            PaymentIntentStatus.REFUNDED if is_full else PaymentIntentStatus.PARTIALLY_REFUNDED
        )

        if refunded == payment_intent.refunded_amount and payment_intent.status == new_status:
            return ServiceResult.success(payment_intent)

        payment_intent.refunded_amount = refunded
        payment_intent.status = new_status
        payment_intent.refunded_at = timezone.now()
        payment_intent.save(update_fields=["refunded_amount", "status", "refunded_at", "updated_at"])

        if is_full:
            BookingStateSynchronizer.sync(payment_intent, PaymentSignal.REFUNDED, trigger="webhook")

    logger.info(
        "Processed charge.refunded",
        extra={
            "event_id": webhook_event.external_event_id,
            "payment_intent_id": str(payment_intent.id),
            "refunded_amount": str(refunded),
            "status": new_status,
        },
    )
    return ServiceResult.success(payment_intent)


@register_handler(ProcessorEventType.CHARGE_DISPUTE_CREATED)
def handle_charge_dispute_created(webhook_event: WebhookEvent) -> ServiceResult:
    """Chargeback opened: hold the booking's payout and move it IN_DISPUTE."""
    obj = webhook_event.data_object
    dispute_id = _require(obj, "id", webhook_event)
    external_ref = _require(obj, "payment_intent", webhook_event)

    with transaction.atomic():
        payment_intent = _lock_payment_intent(external_ref, webhook_event)
        if payment_intent is None:
            return ServiceResult.success(None)

        if payment_intent.dispute_hold and payment_intent.external_dispute_ref == dispute_id:
            return ServiceResult.success(payment_intent)

        BookingStateSynchronizer.sync(
            payment_intent,
            PaymentSignal.DISPUTE_CREATED,
            trigger="webhook",
            context={
                "dispute_id": dispute_id,
                "reason": obj.get("reason") or "unknown",
                "amount": from_minor_units(obj.get("amount") or 0, payment_intent.currency),
            },
        )

    logger.info(
        "Processed charge.dispute.created",
        extra={
            "event_id": webhook_event.external_event_id,
            "payment_intent_id": str(payment_intent.id),
            "dispute_id": dispute_id,
        },
    )
    return ServiceResult.success(payment_intent)


# =============================================================================
# Payout Handlers
# =============================================================================


@register_handler(ProcessorEventType.PAYOUT_PAID)
def handle_payout_paid(webhook_event: WebhookEvent) -> ServiceResult:
    obj = webhook_event.data_object
    return PayoutService.update_payout_status(
        _require(obj, "id", webhook_event),
        PayoutStatus.COMPLETED,
    )


@register_handler(ProcessorEventType.PAYOUT_FAILED)
def handle_payout_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """Payout failed at the bank. Escrow stays released; the transfer itself stands."""
    obj = webhook_event.data_object
    return PayoutService.update_payout_status(
        _require(obj, "id", webhook_event),
        PayoutStatus.FAILED,
        failure_reason=obj.get("failure_message") or "Payout failed",
    )


@register_handler(ProcessorEventType.PAYOUT_CANCELED)
def handle_payout_canceled(webhook_event: WebhookEvent) -> ServiceResult:
    obj = webhook_event.data_object
    return PayoutService.update_payout_status(
        _require(obj, "id", webhook_event),
        PayoutStatus.CANCELLED,
        failure_reason="Payout cancelled",
    )


@register_handler(ProcessorEventType.TRANSFER_REVERSED)
def handle_transfer_reversed(webhook_event: WebhookEvent) -> ServiceResult:
    """Transfer pulled back: fail the payout and return its bookings to escrow."""
    obj = webhook_event.data_object
    return PayoutService.update_payout_status(
        _require(obj, "id", webhook_event),
        PayoutStatus.FAILED,
        failure_reason="Transfer reversed",
        restore_escrow=True,
    )
