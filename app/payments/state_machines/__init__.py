"""
State machine enums for payment models.

BondHold and Payout statuses are driven by django-fsm transitions; the
remaining enums are plain TextChoices.
"""

from payments.state_machines.states import (
    AccountStatus,
    BondHoldStatus,
    DisputeResolution,
    PaymentIntentStatus,
    PaymentMode,
    PaymentSignal,
    PayoutSchedule,
    PayoutStatus,
    ProcessorEventType,
    TransactionType,
    WebhookEventStatus,
)

__all__ = [
    "AccountStatus",
    "BondHoldStatus",
    "DisputeResolution",
    "PaymentIntentStatus",
    "PaymentMode",
    "PaymentSignal",
    "PayoutSchedule",
    "PayoutStatus",
    "ProcessorEventType",
    "TransactionType",
    "WebhookEventStatus",
]
