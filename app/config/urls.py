"""
URL configuration for the rental settlement service.

URL Structure:
    /admin/                        - Django admin interface
    /api/schema/                   - OpenAPI schema (YAML)
    /api/docs/                     - Swagger UI
    /api/v1/auth/token/            - Obtain JWT pair (email/password)
    /api/v1/auth/token/refresh/    - Refresh JWT access token
    /api/v1/payments/              - Payment endpoints
        webhooks/stripe/           - Stripe webhook endpoint (POST)
        webhooks/failed/           - Failed webhook queue (staff)
        webhooks/failed/{id}/retry/ - Reprocess a failed event (staff)
        intents/                   - Create payment intent for a booking
        intents/confirm/           - Server-side payment status confirmation
        refunds/                   - Refund a booking payment (staff)
        bonds/{id}/capture/        - Capture a bond hold (staff)
        bonds/{id}/release/        - Release a bond hold (staff)
        payouts/                   - Owner payout summary/history, request payout
        payouts/onboarding/        - Connected account onboarding
        disputes/{booking_id}/resolve/ - Resolve a payment dispute (staff)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path(
        "api/docs/",
        SpectacularSwaggerView.as_view(url_name="schema"),
        name="swagger-ui",
    ),
    # Admin
    path("admin/", admin.site.urls),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Rental Settlement Admin"
admin.site.site_title = "Settlement Admin"
admin.site.index_title = "Payments, bonds and payouts"
