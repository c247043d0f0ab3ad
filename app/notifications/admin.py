"""Django admin configuration for notifications."""

from django.contrib import admin

from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    """Read-mostly admin for notifications raised by the payment core."""

    list_display = ["id", "recipient", "notification_type", "title", "is_read", "created_at"]
    list_filter = ["notification_type", "is_read"]
    search_fields = ["recipient__email", "title", "idempotency_key"]
    readonly_fields = ["id", "recipient", "notification_type", "data", "idempotency_key", "created_at"]
    ordering = ["-created_at"]
