"""
State enums for payment models.

This module defines the state enums used by the settlement core. They are
Django TextChoices for database storage and admin integration; BondHold and
Payout drive theirs through django-fsm transitions.

State Machines Overview:

PaymentIntent (escrow record) statuses:
    PENDING → PROCESSING → SUCCEEDED → PARTIALLY_REFUNDED → REFUNDED
    PENDING/PROCESSING → FAILED / CANCELLED
    Set by verified events or reconciliation, never by client input.

BondHold states:
    AUTHORIZED → PARTIALLY_CAPTURED → RELEASED
    AUTHORIZED → CAPTURED / RELEASED / EXPIRED

Payout states:
    PENDING → PROCESSING → COMPLETED
    PENDING/PROCESSING → FAILED / CANCELLED
    COMPLETED → FAILED (transfer reversed after completion)

WebhookEvent statuses:
    PENDING → PROCESSED / FAILED / SKIPPED
    FAILED → PENDING (retry)
"""

from enum import Enum

from django.db import models


class PaymentIntentStatus(models.TextChoices):
    """
    Status of the escrow record for one booking.

    Terminal states: FAILED, CANCELLED, REFUNDED
    """

    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    SUCCEEDED = "SUCCEEDED", "Succeeded"
    FAILED = "FAILED", "Failed"
    CANCELLED = "CANCELLED", "Cancelled"
    REFUNDED = "REFUNDED", "Refunded"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED", "Partially Refunded"


class PaymentMode(models.TextChoices):
    """
    How the rental is charged.

    - FULL: the whole rental total is charged up front
    - DEPOSIT: a percentage is charged now, the balance later
    """

    FULL = "FULL", "Full payment"
    DEPOSIT = "DEPOSIT", "Deposit"


class BondHoldStatus(models.TextChoices):
    """
    States for the BondHold model lifecycle.

    Terminal states: CAPTURED, RELEASED, EXPIRED

    State Flow:
        AUTHORIZED → CAPTURED (capture of the full authorized amount)
        AUTHORIZED → PARTIALLY_CAPTURED → RELEASED
        AUTHORIZED → RELEASED
        AUTHORIZED → EXPIRED (upstream authorization lapsed)
    """

    AUTHORIZED = "AUTHORIZED", "Authorized"
    PARTIALLY_CAPTURED = "PARTIALLY_CAPTURED", "Partially Captured"
    CAPTURED = "CAPTURED", "Captured"
    RELEASED = "RELEASED", "Released"
    EXPIRED = "EXPIRED", "Expired"


class PayoutStatus(models.TextChoices):
    """
    States for the Payout model lifecycle.

    State Flow:
        PENDING → PROCESSING → COMPLETED
        PENDING → FAILED (permanent transfer error)
        PROCESSING → FAILED / CANCELLED (processor payout events)
        COMPLETED → FAILED (transfer reversed)
    """

    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    CANCELLED = "CANCELLED", "Cancelled"


class PayoutSchedule(models.TextChoices):
    """How often an owner's eligible bookings are batched into a payout."""

    DAILY = "daily", "Daily"
    WEEKLY = "weekly", "Weekly"
    MONTHLY = "monthly", "Monthly"
    MANUAL = "manual", "Manual"


class AccountStatus(models.TextChoices):
    """
    Connected account status for OwnerPayoutAccount.

    Only ACTIVE accounts with onboarding complete can receive transfers.
    """

    PENDING = "pending", "Pending"
    PENDING_VERIFICATION = "pending_verification", "Pending Verification"
    ACTIVE = "active", "Active"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    SKIPPED marks event types with no registered handler, so types added
    by the processor later are recorded without failing.
    """

    PENDING = "PENDING", "Pending"
    PROCESSED = "PROCESSED", "Processed"
    FAILED = "FAILED", "Failed"
    SKIPPED = "SKIPPED", "Skipped"


class TransactionType(models.TextChoices):
    """Kinds of append-only ledger entries."""

    RENTAL_PAYMENT = "RENTAL_PAYMENT", "Rental Payment"
    PLATFORM_FEE = "PLATFORM_FEE", "Platform Fee"
    OWNER_PAYOUT = "OWNER_PAYOUT", "Owner Payout"
    REFUND = "REFUND", "Refund"
    BOND_CAPTURE = "BOND_CAPTURE", "Bond Capture"
    BOND_RELEASE = "BOND_RELEASE", "Bond Release"


class DisputeResolution(models.TextChoices):
    """
    Admin outcome for a payment dispute.

    - OWNER_FAVOR: owner keeps the full owner amount
    - RENTER_FAVOR: owner amount becomes zero
    - SPLIT: owner amount is halved
    """

    OWNER_FAVOR = "owner_favor", "Owner favor"
    RENTER_FAVOR = "renter_favor", "Renter favor"
    SPLIT = "split", "Split"


class ProcessorEventType(models.TextChoices):
    """Processor event types with a registered webhook handler."""

    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded", "Payment succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed", "Payment failed"
    PAYMENT_INTENT_CANCELED = "payment_intent.canceled", "Payment canceled"
    CHARGE_REFUNDED = "charge.refunded", "Charge refunded"
    CHARGE_DISPUTE_CREATED = "charge.dispute.created", "Dispute created"
    PAYOUT_PAID = "payout.paid", "Payout paid"
    PAYOUT_FAILED = "payout.failed", "Payout failed"
    PAYOUT_CANCELED = "payout.canceled", "Payout canceled"
    TRANSFER_REVERSED = "transfer.reversed", "Transfer reversed"


class PaymentSignal(str, Enum):
    """
    Payment-side signal fed to the booking state synchronizer.

    Each signal maps to at most one legal booking transition.
    """

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    DISPUTE_CREATED = "DISPUTE_CREATED"


__all__ = [
    "PaymentIntentStatus",
    "PaymentMode",
    "BondHoldStatus",
    "PayoutStatus",
    "PayoutSchedule",
    "AccountStatus",
    "WebhookEventStatus",
    "TransactionType",
    "DisputeResolution",
    "ProcessorEventType",
    "PaymentSignal",
]
