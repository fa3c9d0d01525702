"""Reset database to clean state."""
from sqlalchemy import text

from salonbook.lib.db import engine, drop_db, init_db

ENUM_TYPES = (
    "user_role",
    "booking_status",
    "payment_status",
    "payout_status",
    "payment_event_kind",
    "payment_event_source",
    "payment_event_outcome",
    "settlement_status",
)

print("Resetting database...")

drop_db()

if engine.dialect.name == "postgresql":
    with engine.connect() as conn:
        for enum_type in ENUM_TYPES:
            conn.execute(text(f"DROP TYPE IF EXISTS {enum_type} CASCADE"))
        conn.commit()

init_db()
print("Database reset complete!")
