"""
Payment domain models.

This module contains all settlement models:
- PaymentIntent: Escrow record of rental/fee/owner/refund amounts per booking
- WebhookEvent: Idempotency ledger for processor events
- BondHold: Security deposit authorization lifecycle
- OwnerPayoutAccount: Owner connected account and payout preferences
- Payout / PayoutItem: Owner settlements and their per-booking lines
- Transaction: Append-only ledger of money movements
"""

from payments.models.bond_hold import BondHold
from payments.models.payment_intent import PAYOUT_ELIGIBLE_STATUSES, PaymentIntent
from payments.models.payout import Payout, PayoutItem
from payments.models.payout_account import OwnerPayoutAccount
from payments.models.transaction import Transaction
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "BondHold",
    "OwnerPayoutAccount",
    "PAYOUT_ELIGIBLE_STATUSES",
    "PaymentIntent",
    "Payout",
    "PayoutItem",
    "Transaction",
    "WebhookEvent",
]
