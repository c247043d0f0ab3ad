"""
Audit service.

Usage:
    from audit.models import AuditAction
    from audit.services import AuditService

    AuditService.record(
        action=AuditAction.BOOKING_STATUS_CHANGED,
        description="Booking moved to AWAITING_PICKUP after payment",
        target_type="booking",
        target_id=booking.id,
        booking=booking,
        metadata={"previousStatus": "ACCEPTED", "newStatus": "AWAITING_PICKUP"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from core.services import BaseService

from audit.models import AuditLog

if TYPE_CHECKING:
    from authentication.models import User
    from bookings.models import Booking


class AuditService(BaseService):
    """Writes audit entries. Callers own the surrounding transaction."""

    @classmethod
    def record(
        cls,
        action: str,
        description: str,
        target_type: str,
        target_id: Any,
        booking: Booking | None = None,
        actor: User | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Create an audit entry and return it."""
        entry = AuditLog.objects.create(
            action=action,
            description=description,
            target_type=target_type,
            target_id=str(target_id),
            booking=booking,
            actor=actor,
            metadata=metadata or {},
        )
        cls.get_logger().info(
            f"Audit: {action}",
            extra={
                "audit_id": str(entry.id),
                "target_type": target_type,
                "target_id": str(target_id),
                "actor_id": actor.pk if actor else None,
            },
        )
        return entry

    @classmethod
    def for_booking(cls, booking_id) -> list[AuditLog]:
        """Return the audit trail of a booking, oldest first."""
        return list(AuditLog.objects.filter(booking_id=booking_id).order_by("created_at"))
