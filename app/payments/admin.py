"""
Payment admin configuration.

Settlement records are read-mostly in admin: status changes go through
the service layer. The WebhookEvent admin offers a retry action for the
failed-event queue.
"""

from django.contrib import admin, messages

from payments.models import (
    BondHold,
    OwnerPayoutAccount,
    PaymentIntent,
    Payout,
    PayoutItem,
    Transaction,
    WebhookEvent,
)


@admin.register(PaymentIntent)
class PaymentIntentAdmin(admin.ModelAdmin):
    """
    Admin configuration for PaymentIntent.

    Provides visibility into escrow balances and dispute holds.
    """

    list_display = [
        "id",
        "booking",
        "status",
        "total_amount",
        "owner_amount",
        "refunded_amount",
        "currency",
        "is_in_escrow",
        "dispute_hold",
        "created_at",
    ]
    list_filter = ["status", "is_in_escrow", "dispute_hold", "payment_mode", "currency"]
    search_fields = ["id", "external_ref", "external_charge_ref", "booking__id"]
    raw_id_fields = ["booking"]
    readonly_fields = [
        "id",
        "external_ref",
        "external_charge_ref",
        "client_secret",
        "status",
        "refunded_amount",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "booking", "status", "payment_mode", "deposit_percent")}),
        (
            "Amounts",
            {
                "fields": (
                    "currency",
                    "rental_amount",
                    "platform_fee_amount",
                    "platform_fee_percent",
                    "owner_amount",
                    "total_amount",
                    "balance_amount",
                    "bond_amount",
                    "refunded_amount",
                ),
            },
        ),
        (
            "Escrow & Disputes",
            {
                "fields": (
                    "is_in_escrow",
                    "escrow_released_at",
                    "dispute_hold",
                    "external_dispute_ref",
                    "pre_dispute_booking_status",
                    "dispute_resolution",
                    "dispute_resolved_at",
                ),
            },
        ),
        (
            "Processor",
            {
                "fields": ("external_ref", "external_charge_ref", "client_secret"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "paid_at",
                    "failed_at",
                    "failure_reason",
                    "cancelled_at",
                    "refunded_at",
                    "refund_reason",
                    "version",
                    "created_at",
                    "updated_at",
                ),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payments (audit trail)."""
        return False


@admin.register(BondHold)
class BondHoldAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "booking",
        "status",
        "authorized_amount",
        "captured_amount",
        "currency",
        "expires_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["id", "external_ref", "booking__id"]
    raw_id_fields = ["booking", "captured_by"]
    readonly_fields = [
        "id",
        "status",
        "external_ref",
        "captured_amount",
        "released_amount",
        "captured_at",
        "released_at",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(OwnerPayoutAccount)
class OwnerPayoutAccountAdmin(admin.ModelAdmin):
    list_display = [
        "owner",
        "external_account_ref",
        "account_status",
        "is_verified",
        "payout_schedule",
        "minimum_payout_amount",
        "currency",
    ]
    list_filter = ["account_status", "is_verified", "payout_schedule", "currency"]
    search_fields = ["owner__email", "external_account_ref"]
    raw_id_fields = ["owner"]
    readonly_fields = ["id", "external_account_ref", "verified_at", "created_at", "updated_at"]


class PayoutItemInline(admin.TabularInline):
    """Inline display of the bookings in a payout."""

    model = PayoutItem
    extra = 0
    can_delete = False
    raw_id_fields = ["booking"]
    readonly_fields = ["booking", "gross_amount", "platform_fee", "net_amount"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payout.

    Provides visibility into payout status and history.
    """

    list_display = [
        "id",
        "owner_account",
        "net_amount",
        "currency",
        "booking_count",
        "status",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "external_transfer_ref", "owner_account__owner__email"]
    raw_id_fields = ["owner_account"]
    readonly_fields = [
        "id",
        "status",
        "external_transfer_ref",
        "gross_amount",
        "platform_fees",
        "net_amount",
        "booking_count",
        "processed_at",
        "completed_at",
        "failed_at",
        "version",
        "created_at",
        "updated_at",
    ]
    inlines = [PayoutItemInline]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payouts (audit trail)."""
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Append-only money movement ledger. Nothing is editable."""

    list_display = [
        "id",
        "type",
        "amount",
        "currency",
        "reference_type",
        "reference_id",
        "from_user",
        "to_user",
        "created_at",
    ]
    list_filter = ["type", "currency", "created_at"]
    search_fields = ["id", "reference_id", "idempotency_key", "external_charge_ref"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "external_event_id",
        "event_type",
        "status",
        "attempts",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "external_event_id", "event_type"]
    readonly_fields = [
        "id",
        "external_event_id",
        "event_type",
        "status",
        "attempts",
        "last_error",
        "payload",
        "processed_at",
        "created_at",
        "updated_at",
    ]
    actions = ["retry_events"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    @admin.action(description="Re-fetch and reprocess selected events")
    def retry_events(self, request, queryset):
        from payments.services import WebhookService

        processed = 0
        for webhook_event in queryset.exclude(status="PROCESSED"):
            result = WebhookService.retry_event(webhook_event.id)
            if result.success:
                processed += 1
            else:
                self.message_user(
                    request,
                    f"{webhook_event.external_event_id}: {result.error}",
                    level=messages.ERROR,
                )
        self.message_user(request, f"{processed} event(s) processed.")

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False
