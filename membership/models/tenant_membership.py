"""
Tenant membership - link between a central user and a tenant
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Index, UniqueConstraint, text
from datetime import datetime
from typing import Optional

from membership.core.clock import utcnow


class TenantMembership(SQLModel, table=True):
    """Central user <-> tenant association, with the favorite marker"""

    __tablename__ = "tenant_memberships"
    __table_args__ = (
        UniqueConstraint("global_id", "tenant_id", name="uq_tenant_memberships_global_tenant"),
        # At most one favorite tenant per central user
        Index(
            "uq_tenant_memberships_favorite",
            "global_id",
            unique=True,
            sqlite_where=text("favorite = 1"),
            postgresql_where=text("favorite"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    global_id: str = Field(foreign_key="central_users.global_id", index=True, max_length=36)
    tenant_id: str = Field(foreign_key="tenants.id", index=True, max_length=36)
    favorite: bool = Field(default=False, nullable=False)

    created_at: datetime = Field(default_factory=utcnow)
