"""Plain helpers shared by the test modules (imported after conftest sets the environment)."""
from datetime import date, datetime, timedelta, timezone

from salonbook.lib.db import SessionLocal
from salonbook.lib.jwt import create_access_token
from salonbook.models import User


def next_weekday(weekday: int, today: date = None) -> date:
    """Next date strictly after today (UTC) with the given Python weekday (Monday = 0)."""
    today = today or datetime.now(timezone.utc).date()
    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


def auth_headers(user: User) -> dict:
    token = create_access_token(str(user.id), user.role.value)
    return {"Authorization": f"Bearer {token}"}


def reload(model, object_id):
    """Read a row through a fresh session (no identity-map caching, no open transaction)."""
    with SessionLocal() as session:
        return session.get(model, object_id)
