"""Authenticated account acting on the system."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class Role(str, Enum):
    """Account role. Super-admins bypass row ownership checks."""

    SUPER_ADMIN = "super-admin"
    ADVOCATE = "advocate"


class Actor(BaseModel):
    """An admin or advocate account resolved from a session."""

    id: UUID
    role: Role
    email: str | None = None
    name: str | None = None

    model_config = {"frozen": True}

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    def can_access(self, owner_id: UUID) -> bool:
        """Whether this actor may read or mutate a row owned by owner_id."""
        return self.is_super_admin or self.id == owner_id
