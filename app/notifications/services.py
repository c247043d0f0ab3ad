"""
Notification service layer.

Services:
    NotificationService: Notification creation and read status management

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure()
    - Template rendering raises KeyError on missing placeholders
    - Idempotency keys are enforced by a unique constraint, so two
      concurrent deliveries of the same trigger create one notification

Usage:
    from notifications.services import NotificationService
    from notifications.models import NotificationType

    result = NotificationService.notify(
        recipient=booking.owner,
        notification_type=NotificationType.PAYMENT_RECEIVED,
        data={"bookingId": str(booking.id), "listingTitle": booking.listing_title},
        idempotency_key=f"{booking.id}:payment_received",
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService, ServiceResult

from notifications.models import Notification, NotificationType

if TYPE_CHECKING:
    from authentication.models import User

logger = logging.getLogger(__name__)


# Title/body templates rendered with str.format(**data)
NOTIFICATION_TEMPLATES: dict[str, tuple[str, str]] = {
    NotificationType.PAYMENT_RECEIVED: (
        "Payment received",
        "Payment for {listingTitle} has been received. The booking is awaiting pickup.",
    ),
    NotificationType.PAYMENT_FAILED: (
        "Payment failed",
        "Your payment for {listingTitle} could not be completed. Please try again.",
    ),
    NotificationType.PAYMENT_CANCELLED: (
        "Payment cancelled",
        "The payment for {listingTitle} was cancelled.",
    ),
    NotificationType.BOOKING_REFUNDED: (
        "Booking refunded",
        "Your booking for {listingTitle} has been refunded and cancelled.",
    ),
    NotificationType.DISPUTE_RAISED: (
        "Dispute raised",
        "A payment dispute was raised for {listingTitle}. Payout is on hold until it is resolved.",
    ),
    NotificationType.PAYOUT_SENT: (
        "Payout sent",
        "A payout of {amount} {currency} for {bookingCount} booking(s) is on its way.",
    ),
    NotificationType.PAYOUT_FAILED: (
        "Payout failed",
        "Your payout of {amount} {currency} failed. Please check your payout account.",
    ),
}


class NotificationService(BaseService):
    """
    Service for notification operations.

    Methods:
        notify: Create a typed notification (optionally idempotent)
        mark_as_read: Mark a single notification as read
    """

    @classmethod
    def notify(
        cls,
        recipient: User,
        notification_type: str,
        data: dict | None = None,
        title: str | None = None,
        body: str | None = None,
        idempotency_key: str | None = None,
    ) -> ServiceResult[Notification]:
        """
        Create a notification for a user.

        If title/body are not provided, the type's template is rendered
        with the data dict. Explicit title/body override templates.

        Args:
            recipient: User receiving the notification
            notification_type: NotificationType value
            data: Payload used for rendering and stored on the notification
            title: Explicit title (overrides template)
            body: Explicit body (overrides template)
            idempotency_key: Optional key to prevent duplicate notifications

        Returns:
            ServiceResult with created Notification if successful

        Error codes:
            UNKNOWN_TYPE: Notification type is not defined
            DUPLICATE: Notification with this idempotency_key already exists

        Raises:
            KeyError: If a template placeholder is missing from data
        """
        data = data or {}

        if notification_type not in NotificationType.values:
            cls.get_logger().warning(f"Unknown notification type: {notification_type}")
            return ServiceResult.failure(
                f"Unknown notification type: {notification_type}",
                error_code="UNKNOWN_TYPE",
            )

        title_template, body_template = NOTIFICATION_TEMPLATES[notification_type]
        rendered_title = title if title is not None else title_template.format(**data)
        rendered_body = body if body is not None else body_template.format(**data)

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    recipient=recipient,
                    notification_type=notification_type,
                    title=rendered_title,
                    body=rendered_body,
                    data=data,
                    idempotency_key=idempotency_key,
                )
        except IntegrityError:
            cls.get_logger().info(
                "Duplicate notification prevented",
                extra={"idempotency_key": idempotency_key},
            )
            return ServiceResult.failure(
                f"Notification with idempotency_key already exists: {idempotency_key}",
                error_code="DUPLICATE",
            )

        cls.get_logger().info(
            f"Notification created: {notification_type}",
            extra={
                "notification_id": str(notification.id),
                "recipient_id": recipient.pk,
                "notification_type": notification_type,
            },
        )
        return ServiceResult.success(notification)

    @classmethod
    def mark_as_read(
        cls,
        notification: Notification,
        user: User,
    ) -> ServiceResult[Notification]:
        """
        Mark a notification as read. Idempotent.

        Error codes:
            NOT_OWNER: User is not the recipient
        """
        if notification.recipient_id != user.pk:
            return ServiceResult.failure(
                "Cannot mark another user's notification as read",
                error_code="NOT_OWNER",
            )

        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read", "updated_at"])

        return ServiceResult.success(notification)
