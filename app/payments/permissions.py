"""
Permission classes for the payments API.

- IsEquipmentOwner: User may hold a payout account (owner or admin role)

Staff-only endpoints use DRF's IsAdminUser (is_staff).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsEquipmentOwner(permissions.BasePermission):
    """Allows access only to users who list equipment and receive payouts."""

    message = "Only equipment owners can manage payouts."

    def has_permission(self, request: Request, view: APIView) -> bool:
        if not request.user.is_authenticated:
            return False
        return bool(getattr(request.user, "is_owner", False))
