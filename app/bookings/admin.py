"""Django admin configuration for bookings."""

from django.contrib import admin

from bookings.models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Admin list of bookings with payment-relevant fields."""

    list_display = [
        "id",
        "listing_title",
        "booking_status",
        "renter",
        "owner",
        "rental_total",
        "currency",
        "start_date",
        "end_date",
    ]
    list_filter = ["booking_status", "currency"]
    search_fields = ["listing_title", "renter__email", "owner__email"]
    raw_id_fields = ["renter", "owner"]
    ordering = ["-created_at"]
