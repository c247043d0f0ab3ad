"""
URL configuration for the payments app.

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments import views
from payments.webhooks.views import stripe_webhook

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("webhooks/failed/", views.FailedWebhookListView.as_view(), name="failed_webhooks"),
    path(
        "webhooks/failed/<uuid:webhook_event_id>/retry/",
        views.FailedWebhookRetryView.as_view(),
        name="retry_webhook",
    ),
    # Payments
    path("intents/", views.PaymentIntentCreateView.as_view(), name="create_intent"),
    path("intents/confirm/", views.PaymentConfirmView.as_view(), name="confirm_intent"),
    path("refunds/", views.RefundView.as_view(), name="refunds"),
    # Bonds
    path("bonds/<uuid:bond_hold_id>/capture/", views.BondCaptureView.as_view(), name="capture_bond"),
    path("bonds/<uuid:bond_hold_id>/release/", views.BondReleaseView.as_view(), name="release_bond"),
    # Payouts
    path("payouts/", views.PayoutView.as_view(), name="payouts"),
    path("payouts/onboarding/", views.PayoutOnboardingView.as_view(), name="payout_onboarding"),
    # Disputes
    path(
        "disputes/<uuid:booking_id>/resolve/",
        views.DisputeResolveView.as_view(),
        name="resolve_dispute",
    ),
]
