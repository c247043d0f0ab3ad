"""
Pytest fixtures shared by all payment test packages.

Every service in payments.services talks to the processor through an
injected PaymentProcessor. The processor fixture installs a
FakePaymentProcessor on all of them; the autouse fixture in
app/conftest.py restores the default afterwards.

Usage:
    def test_refund(processor, paid_intent):
        result = EscrowService.process_refund(paid_intent.booking_id, Decimal("10"), "Broken")
        assert processor.calls_to("create_refund")
"""

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import OwnerFactory, StaffFactory, UserFactory
from bookings.tests.factories import BookingFactory
from payments.services import (
    BondHoldService,
    ConnectAccountService,
    EscrowService,
    PayoutService,
    ReconciliationService,
    WebhookService,
)
from payments.tests.factories import (
    OwnerPayoutAccountFactory,
    PaidPaymentIntentFactory,
    PaymentIntentFactory,
)
from payments.tests.fakes import FakePaymentProcessor


@pytest.fixture
def processor():
    """Fake processor installed on every payment service."""
    fake = FakePaymentProcessor()
    for service in (
        BondHoldService,
        ConnectAccountService,
        EscrowService,
        PayoutService,
        ReconciliationService,
        WebhookService,
    ):
        service.set_processor(fake)
    return fake


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def renter(db):
    return UserFactory()


@pytest.fixture
def owner(db):
    return OwnerFactory()


@pytest.fixture
def staff_user(db):
    return StaffFactory()


@pytest.fixture
def payout_account(owner):
    """Active, verified payout account of the owner."""
    return OwnerPayoutAccountFactory(owner=owner)


# =============================================================================
# Bookings & Payments
# =============================================================================


@pytest.fixture
def accepted_booking(renter, owner):
    return BookingFactory(renter=renter, owner=owner)


@pytest.fixture
def pending_intent(accepted_booking):
    return PaymentIntentFactory(booking=accepted_booking)


@pytest.fixture
def paid_intent(renter, owner):
    """Succeeded payment of a completed booking owned by owner."""
    return PaidPaymentIntentFactory(booking__renter=renter, booking__owner=owner)


# =============================================================================
# API Clients
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def renter_client(renter):
    client = APIClient()
    client.force_authenticate(user=renter)
    return client


@pytest.fixture
def owner_client(owner):
    client = APIClient()
    client.force_authenticate(user=owner)
    return client


@pytest.fixture
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client
