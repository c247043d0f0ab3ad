"""
Payments app configuration.

This app provides the settlement core of the rental marketplace:
- Escrowed rental payments and refunds
- Bond holds on the renter's card
- Owner payouts through connected accounts
- Idempotent processor webhook handling
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self):
        # Register webhook handlers
        import payments.webhooks.handlers  # noqa: F401
