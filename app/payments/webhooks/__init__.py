"""
Webhook handling for processor events.

Webhooks are verified at the view, recorded in the WebhookEvent ledger
and processed by a Celery task that dispatches to the handler registered
for the event type.

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from payments.webhooks.handlers import (
    WEBHOOK_HANDLERS,
    get_handler,
    register_handler,
)

__all__ = [
    "WEBHOOK_HANDLERS",
    "get_handler",
    "register_handler",
]
