"""
Bookings application.

Holds the payment-relevant subset of a rental booking and the lifecycle
service that owns its status transitions. Payment events drive a handful
of those transitions through BookingLifecycleService.
"""
