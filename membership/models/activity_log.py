"""
Activity log entry stored in the tenant store
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Index
from datetime import datetime
from typing import Optional

from membership.core.clock import utcnow


class ActivityLog(SQLModel, table=True):
    """Audit trail of user, role and invite changes in one tenant"""

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_feature_action", "feature", "action"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    # One row per domain event, so a redelivered event is not logged twice
    event_id: str = Field(unique=True, nullable=False, max_length=36)

    feature: str = Field(max_length=64)     # User, Role
    action: str = Field(max_length=64)      # Invite User, Create Role, ...
    details: str = Field(max_length=2000)

    performed_by: Optional[int] = Field(
        default=None,
        foreign_key="users.id",
        index=True,
        ondelete="SET NULL",
    )
    performed_at: datetime = Field(default_factory=utcnow, index=True)
