"""
Shared pytest fixtures.

The test run uses a throwaway SQLite file; the environment is set before any
salonbook module is imported so settings, engine and logging pick it up.
"""
import os
import tempfile
from datetime import date
from decimal import Decimal

_TEST_DIR = tempfile.mkdtemp(prefix="salonbook-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-jwt-secret-with-enough-length-for-hs256"
os.environ["PAYMENT_GATEWAY"] = "mock"
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from salonbook.lib.db import SessionLocal, init_db, drop_db  # noqa: E402
from salonbook.lib.metrics import reset_metrics  # noqa: E402
from salonbook.models import (  # noqa: E402
    Booking,
    BookingStatus,
    Employee,
    PaymentStatus,
    Store,
    StoreAvailability,
    StoreService,
    User,
    UserRole,
)
from salonbook.services.payment_gateway import MockGateway, set_payment_gateway  # noqa: E402

from tests.helpers import next_weekday  # noqa: E402


@pytest.fixture
def db_session():
    """Fresh schema per test; yields a session for setup and assertions."""
    init_db()
    reset_metrics()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_db()


@pytest.fixture
def gateway():
    """In-memory gateway sharing the test secrets; installed as the app-wide gateway."""
    mock = MockGateway(key_secret="test_key_secret", webhook_secret="test_webhook_secret")
    set_payment_gateway(mock)
    yield mock
    set_payment_gateway(None)


@pytest.fixture
def client(db_session, gateway):
    """TestClient against the app with the schema and mock gateway in place."""
    from salonbook.api.app import app
    return TestClient(app)


@pytest.fixture
def make_user(db_session):
    def _make_user(role: UserRole, name: str = None, fund_account_id: str = None) -> User:
        user = User(
            name=name or f"{role.value.title()} User",
            role=role,
            fund_account_id=fund_account_id,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make_user


@pytest.fixture
def owner(make_user):
    return make_user(UserRole.OWNER, name="Priya Owner", fund_account_id="fa_test_owner")


@pytest.fixture
def customer(make_user):
    return make_user(UserRole.CUSTOMER, name="Asha Customer")


@pytest.fixture
def other_customer(make_user):
    return make_user(UserRole.CUSTOMER, name="Ravi Customer")


@pytest.fixture
def store(db_session, owner):
    store = Store(owner_id=owner.id, name="Glow Salon", address="12 MG Road")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def service(db_session, store):
    """60-minute haircut priced 500.00."""
    svc = StoreService(
        store_id=store.id,
        name="Haircut",
        price=Decimal("500.00"),
        duration_minutes=60,
    )
    db_session.add(svc)
    db_session.commit()
    return svc


@pytest.fixture
def employee(db_session, store):
    emp = Employee(store_id=store.id, name="Meena Stylist", designation="Senior Stylist")
    db_session.add(emp)
    db_session.commit()
    return emp


@pytest.fixture
def monday_hours(db_session, store):
    """Store open Monday 09:00-18:00."""
    window = StoreAvailability(store_id=store.id, day_of_week=1, start_time="09:00", end_time="18:00")
    db_session.add(window)
    db_session.commit()
    return window


@pytest.fixture
def booking_date():
    """A Monday strictly in the future."""
    return next_weekday(0)


@pytest.fixture
def make_booking(db_session, customer, store, service, booking_date):
    """Insert a booking row directly (bypasses reservation checks)."""
    def _make_booking(
        start_time: str = "10:00",
        end_time: str = "11:00",
        status: BookingStatus = BookingStatus.PENDING,
        total_price: Decimal = Decimal("500.00"),
        paid_amount: Decimal = Decimal("0.00"),
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        customer_id=None,
        on_date: date = None,
    ) -> Booking:
        booking = Booking(
            customer_id=customer_id or customer.id,
            store_id=store.id,
            store_service_id=service.id,
            booking_date=on_date or booking_date,
            start_time=start_time,
            end_time=end_time,
            status=status,
            total_price=total_price,
            paid_amount=paid_amount,
            payment_status=payment_status,
        )
        db_session.add(booking)
        db_session.commit()
        return booking
    return _make_booking
