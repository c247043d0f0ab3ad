"""
Audit application.

Append-only record of state changes made by the payment core
(booking status changes, disputes, payouts, reconciliation).
"""
