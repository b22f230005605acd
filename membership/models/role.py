"""
Tenant role model
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime
from typing import List, Optional

from membership.core.clock import utcnow
from membership.core.events import RoleRef
from membership.core.permissions import ADMIN_ROLE


class Role(SQLModel, table=True):
    """Role with its permission names, stored in the tenant store"""

    __tablename__ = "roles"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True, nullable=False, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_system: bool = Field(default=False, nullable=False)

    # Permission names, always reassigned as a new list so changes are tracked
    permissions: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def is_admin(self) -> bool:
        return self.name == ADMIN_ROLE

    def can_be_modified(self) -> bool:
        return not self.is_system

    def ref(self) -> RoleRef:
        return RoleRef(id=self.id, name=self.name)
