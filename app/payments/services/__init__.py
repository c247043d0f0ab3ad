"""
Payment services for escrow, bonds, payouts and webhooks.

This module provides:
- EscrowService: PaymentIntent creation, status application and refunds
- BookingStateSynchronizer: Payment signal -> booking transition table
- BondHoldService: Bond authorize / capture / release / expiry
- PayoutService: Owner earnings, payout batching and transfers
- ConnectAccountService: Owner connected account onboarding
- WebhookService: Idempotent webhook ledger and processing
- ReconciliationService: Heals divergence from the processor

Usage:
    from payments.services import EscrowService, PayoutService

    result = EscrowService.create_payment_intent(booking.id, actor=request.user)
    batch = PayoutService.process_scheduled_payouts("weekly")
"""

from payments.services.booking_sync import BookingStateSynchronizer
from payments.services.escrow_service import EscrowService
from payments.services.reconciliation_service import (
    ReconciliationService,
    StaleReconciliationResult,
    map_processor_status,
)
from payments.services.bond_service import BondHoldService, BondStatusSummary
from payments.services.payout_service import (
    OwnerPayoutSummary,
    PayoutBatchResult,
    PayoutEligibleBooking,
    PayoutService,
)
from payments.services.connect_service import ConnectAccountService, OnboardingLink
from payments.services.webhook_service import WebhookService

__all__ = [
    "BondHoldService",
    "BondStatusSummary",
    "BookingStateSynchronizer",
    "ConnectAccountService",
    "EscrowService",
    "OnboardingLink",
    "OwnerPayoutSummary",
    "PayoutBatchResult",
    "PayoutEligibleBooking",
    "PayoutService",
    "ReconciliationService",
    "StaleReconciliationResult",
    "WebhookService",
    "map_processor_status",
]
