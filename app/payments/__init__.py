"""
Payments app for rental settlement.

This app handles:
- Escrowed rental payments (full or deposit) per booking
- Bond holds (authorize, capture, release)
- Owner payouts to connected accounts
- Idempotent processor webhook handling
- Reconciliation against the processor

Related apps:
    - bookings: Booking status driven by payment events
    - notifications: Payment event notifications
    - audit: State change audit trail

Usage:
    from payments.services import EscrowService, PayoutService

    # Create the rental payment for an accepted booking
    result = EscrowService.create_payment_intent(booking_id, actor=request.user)

    # Pay out an owner's completed bookings
    payout = PayoutService.create_owner_payout(owner_id)
"""
