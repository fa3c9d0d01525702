"""Lookups that scope stores and bookings to the caller."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from salonbook.api.middleware.error_handler import NotFoundException
from salonbook.lib.request_context import Actor
from salonbook.models.stores import Store


def get_owned_store(session: Session, actor: Actor, store_id: UUID, for_update: bool = False) -> Store:
    """
    Load a store the caller manages (its owner, or an admin).

    Stores owned by someone else are reported as missing so their existence
    is not disclosed.

    Raises:
        NotFoundException: If the store does not exist or is not the caller's
    """
    stmt = select(Store).where(Store.id == store_id)
    if for_update:
        stmt = stmt.with_for_update()
    store = session.execute(stmt).scalar_one_or_none()
    if store is None or not (actor.is_admin or store.owner_id == actor.user_id):
        raise NotFoundException("Store", str(store_id))
    return store
