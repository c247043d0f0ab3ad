"""
Notifications application.

Records typed, user-facing notifications raised by the payment core
(payment received, payment failed, dispute raised, ...). Delivery over
email or push is handled elsewhere; this app is the hand-off point.

Usage:
    from notifications.services import NotificationService
    from notifications.models import NotificationType
"""
