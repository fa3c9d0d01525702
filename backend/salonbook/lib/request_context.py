"""
Request-scoped identity passed from the API layer into services.
"""
from dataclasses import dataclass
from uuid import UUID

from salonbook.models.users import UserRole


@dataclass(frozen=True)
class Actor:
    """The authenticated caller: who they are and what role the token grants."""

    user_id: UUID
    role: UserRole

    @property
    def is_customer(self) -> bool:
        return self.role == UserRole.CUSTOMER

    @property
    def is_owner(self) -> bool:
        return self.role == UserRole.OWNER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
