"""
Tenant user model - per-tenant projection of a central user
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional
from enum import Enum

from membership.core.clock import utcnow
from membership.models.role import Role


class UserStatus(str, Enum):
    """Derived from is_disabled"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class TenantUser(SQLModel, table=True):
    """User inside one tenant store, keyed by the central global_id"""

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)

    # Exactly one row per global_id in each tenant store
    global_id: str = Field(unique=True, index=True, nullable=False, max_length=36)

    # Synced from the central user
    name: str = Field(nullable=False, max_length=255)
    email: str = Field(index=True, nullable=False, max_length=255)
    email_verified_at: Optional[datetime] = None

    # Tenant-local state
    is_disabled: bool = Field(default=False, index=True)
    role_id: Optional[int] = Field(default=None, foreign_key="roles.id", index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    # Relationships
    role: Optional[Role] = Relationship()

    @property
    def status(self) -> UserStatus:
        return UserStatus.INACTIVE if self.is_disabled else UserStatus.ACTIVE
