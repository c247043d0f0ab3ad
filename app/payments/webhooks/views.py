"""
Webhook endpoint view for processor events.

The view:
1. Verifies the webhook signature (fails closed, nothing is recorded)
2. Records the delivery in the WebhookEvent ledger (idempotent)
3. Queues the event for async processing
4. Returns immediately

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.db import DatabaseError
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.exceptions import WebhookPayloadError, WebhookVerificationError
from payments.services import WebhookService


logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue processor webhook events.

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new, duplicate or already processed)
        - 400: Missing/invalid signature or malformed event
        - 500: The ledger write failed (processor will redeliver)

    Example Stripe-Signature header:
        t=1614556800,v1=xxx,v0=yyy
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    # Step 1: Verify signature
    try:
        event_data = WebhookService.get_processor().verify_webhook_signature(payload, signature)
    except WebhookVerificationError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        return HttpResponse("Invalid signature", status=400)

    # Step 2: Record the delivery
    try:
        webhook_event, already_processed = WebhookService.receive_event(event_data)
    except WebhookPayloadError as e:
        logger.warning("Webhook missing required fields", extra={"error": str(e)})
        return HttpResponse("Invalid event", status=400)
    except DatabaseError:
        logger.error(
            "Failed to record webhook event",
            extra={"event_id": event_data.get("id"), "event_type": event_data.get("type")},
            exc_info=True,
        )
        return HttpResponse("Could not record event", status=500)

    if already_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"event_id": webhook_event.external_event_id},
        )
        return HttpResponse("Already processed", status=200)

    # Step 3: Queue for async processing
    try:
        from payments.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
        logger.info(
            "Webhook queued for processing",
            extra={
                "event_id": webhook_event.external_event_id,
                "webhook_event_id": str(webhook_event.id),
            },
        )
    except Exception as e:
        # The event is recorded; retry_failed_webhooks and redelivery cover it
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"event_id": webhook_event.external_event_id},
            exc_info=True,
        )

    return HttpResponse("Accepted", status=200)
