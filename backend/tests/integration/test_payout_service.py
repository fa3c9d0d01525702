"""
Integration tests for owner payouts from the payment ledger.
"""
from decimal import Decimal

import pytest

from salonbook.api.middleware.error_handler import GatewayException
from salonbook.lib.metrics import get_metrics_collector
from salonbook.lib.request_context import Actor
from salonbook.models import (
    OwnerPayout,
    PaymentEvent,
    PaymentEventKind,
    PaymentEventSource,
    PaymentStatus,
    PayoutStatus,
    SettlementStatus,
    Store,
    UserRole,
)
from salonbook.services.payment_gateway import MockGateway
from salonbook.services.payment_service import PaymentService
from salonbook.services.payout_service import PayoutService

from tests.helpers import reload


class FailingGateway(MockGateway):
    def create_payout(self, fund_account_id, amount, currency, reference_id):
        raise GatewayException("Fund account is inactive")


@pytest.fixture
def add_entry(db_session, make_booking):
    booking = make_booking()

    def _add_entry(kind, amount, external_id, payout_status=SettlementStatus.PENDING, booking_id=None):
        entry = PaymentEvent(
            booking_id=booking_id or booking.id,
            kind=kind,
            source=PaymentEventSource.WEBHOOK,
            external_id=external_id,
            amount=Decimal(amount),
            payout_status=payout_status,
        )
        db_session.add(entry)
        db_session.commit()
        return entry
    return _add_entry


@pytest.mark.integration
def test_pays_net_of_refunds(db_session, gateway, owner, add_entry):
    capture = add_entry(PaymentEventKind.CAPTURED, "500.00", "pay_1")
    refund = add_entry(PaymentEventKind.REFUNDED, "100.00", "rfnd_1")
    ignored = add_entry(PaymentEventKind.FAILED, "500.00", "pay_2", payout_status=SettlementStatus.NOT_APPLICABLE)

    payouts = PayoutService(db_session, gateway).run_owner_payouts()

    assert len(payouts) == 1
    payout = payouts[0]
    assert payout.owner_id == owner.id
    assert payout.status == PayoutStatus.PROCESSED
    assert Decimal(payout.amount) == Decimal("400.00")
    assert payout.gateway_payout_id in gateway.payouts

    sent = gateway.payouts[payout.gateway_payout_id]
    assert sent["fund_account_id"] == "fa_test_owner"
    assert sent["amount"] == 40000
    assert sent["reference_id"] == str(payout.id)

    for entry in (capture, refund):
        stored = reload(PaymentEvent, entry.id)
        assert stored.payout_status == SettlementStatus.PAID_OUT
        assert stored.payout_id == payout.id
    assert reload(PaymentEvent, ignored.id).payout_status == SettlementStatus.NOT_APPLICABLE

    assert get_metrics_collector().get_counter_value("payouts_total", {"status": "PROCESSED"}) == 1


@pytest.mark.integration
def test_counter_payments_are_not_paid_out(db_session, gateway, customer, make_booking):
    booking = make_booking(paid_amount=Decimal("250.00"), payment_status=PaymentStatus.PARTIAL)
    payments = PaymentService(db_session, gateway)
    payments.record_direct_payment(
        Actor(user_id=customer.id, role=UserRole.CUSTOMER), booking.id, Decimal("250.00"), "CASH"
    )
    capture = PaymentEvent(
        booking_id=booking.id,
        kind=PaymentEventKind.CAPTURED,
        source=PaymentEventSource.WEBHOOK,
        external_id="pay_deposit",
        amount=Decimal("250.00"),
        payout_status=SettlementStatus.PENDING,
    )
    db_session.add(capture)
    db_session.commit()

    payouts = PayoutService(db_session, gateway).run_owner_payouts()

    assert len(payouts) == 1
    assert Decimal(payouts[0].amount) == Decimal("250.00")


@pytest.mark.integration
def test_second_run_pays_nothing(db_session, gateway, add_entry):
    add_entry(PaymentEventKind.CAPTURED, "250.00", "pay_1")
    service = PayoutService(db_session, gateway)

    assert len(service.run_owner_payouts()) == 1
    assert service.run_owner_payouts() == []
    assert len(gateway.payouts) == 1


@pytest.mark.integration
def test_owner_without_fund_account_is_skipped(db_session, gateway, owner, add_entry):
    owner.fund_account_id = None
    db_session.commit()
    entry = add_entry(PaymentEventKind.CAPTURED, "250.00", "pay_1")

    assert PayoutService(db_session, gateway).run_owner_payouts() == []
    assert reload(PaymentEvent, entry.id).payout_status == SettlementStatus.PENDING


@pytest.mark.integration
def test_negative_balance_is_carried_over(db_session, gateway, add_entry):
    entry = add_entry(PaymentEventKind.REFUNDED, "100.00", "rfnd_1")

    assert PayoutService(db_session, gateway).run_owner_payouts() == []
    assert gateway.payouts == {}
    assert reload(PaymentEvent, entry.id).payout_status == SettlementStatus.PENDING


@pytest.mark.integration
def test_failed_payout_leaves_entries_pending(db_session, add_entry):
    entry = add_entry(PaymentEventKind.CAPTURED, "250.00", "pay_1")

    payouts = PayoutService(db_session, FailingGateway()).run_owner_payouts()

    assert payouts[0].status == PayoutStatus.FAILED
    assert payouts[0].failure_reason == "Fund account is inactive"
    assert reload(PaymentEvent, entry.id).payout_status == SettlementStatus.PENDING
    assert reload(OwnerPayout, payouts[0].id).status == PayoutStatus.FAILED
    assert get_metrics_collector().get_counter_value("payouts_total", {"status": "FAILED"}) == 1


@pytest.mark.integration
def test_each_owner_paid_separately(db_session, gateway, add_entry, make_user, make_booking, service):
    second_owner = make_user(UserRole.OWNER, name="Kiran Owner", fund_account_id="fa_second")
    second_store = Store(owner_id=second_owner.id, name="Second Salon")
    db_session.add(second_store)
    db_session.commit()
    other_booking = make_booking("14:00", "15:00")
    other_booking.store_id = second_store.id
    db_session.commit()

    add_entry(PaymentEventKind.CAPTURED, "300.00", "pay_a")
    add_entry(PaymentEventKind.CAPTURED, "200.00", "pay_b", booking_id=other_booking.id)

    payouts = PayoutService(db_session, gateway).run_owner_payouts()

    amounts = {p.owner_id: Decimal(p.amount) for p in payouts}
    assert amounts[second_owner.id] == Decimal("200.00")
    assert len(amounts) == 2


@pytest.mark.integration
def test_list_payouts_scoped_to_owner(db_session, gateway, owner, add_entry, make_user):
    add_entry(PaymentEventKind.CAPTURED, "250.00", "pay_1")
    service = PayoutService(db_session, gateway)
    service.run_owner_payouts()

    mine = service.list_payouts(Actor(user_id=owner.id, role=UserRole.OWNER))
    assert len(mine) == 1

    stranger = make_user(UserRole.OWNER, name="Other Owner")
    assert service.list_payouts(Actor(user_id=stranger.id, role=UserRole.OWNER)) == []

    admin = make_user(UserRole.ADMIN, name="Admin")
    assert len(service.list_payouts(Actor(user_id=admin.id, role=UserRole.ADMIN))) == 1
