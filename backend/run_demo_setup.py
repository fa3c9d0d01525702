"""
Demo setup script - one owner, one store with a weekly schedule, two
services, a stylist and a customer. Prints bearer tokens for both users.

Run against DATABASE_URL after `alembic upgrade head` (or reset_db.py).
"""
from decimal import Decimal

from salonbook.lib.db import get_db_context
from salonbook.lib.jwt import create_access_token
from salonbook.models import (
    Employee,
    EmployeeAvailability,
    Store,
    StoreAvailability,
    StoreService,
    User,
    UserRole,
)

# Monday to Saturday (0 = Sunday)
OPEN_DAYS = range(1, 7)


def run_demo_setup():
    """Create the demo rows and print login tokens."""
    print("🚀 Starting demo setup...")

    with get_db_context() as db:
        owner = User(name="Demo Owner", email="owner@salonbook.test", role=UserRole.OWNER,
                     fund_account_id="fa_demo_owner")
        customer = User(name="Demo Customer", email="customer@salonbook.test", role=UserRole.CUSTOMER)
        db.add_all([owner, customer])
        db.flush()

        store = Store(owner_id=owner.id, name="Demo Salon", address="1 Demo Street")
        db.add(store)
        db.flush()

        db.add_all([
            StoreService(store_id=store.id, name="Haircut", price=Decimal("500.00"), duration_minutes=60),
            StoreService(store_id=store.id, name="Beard Trim", price=Decimal("250.00"), duration_minutes=30),
        ])
        for day in OPEN_DAYS:
            db.add(StoreAvailability(store_id=store.id, day_of_week=day, start_time="09:00", end_time="18:00"))

        stylist = Employee(store_id=store.id, name="Demo Stylist", designation="Stylist")
        db.add(stylist)
        db.flush()
        for day in OPEN_DAYS:
            db.add(EmployeeAvailability(
                employee_id=stylist.id, store_id=store.id, day_of_week=day, start_time="12:00", end_time="18:00"
            ))

        print(f"✅ Store created: {store.id}")
        print(f"✅ Stylist created: {stylist.id}")
        print(f"\nOwner token:\n{create_access_token(str(owner.id), UserRole.OWNER.value)}")
        print(f"\nCustomer token:\n{create_access_token(str(customer.id), UserRole.CUSTOMER.value)}")

    print("\n✅ Demo setup complete")


if __name__ == "__main__":
    run_demo_setup()
