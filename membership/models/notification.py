"""
In-app notification stored in the tenant store
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime
from typing import Any, Dict, Optional
import uuid

from membership.core.clock import utcnow


class Notification(SQLModel, table=True):
    """Notification delivered through the in-app channel"""

    __tablename__ = "notifications"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    user_id: int = Field(foreign_key="users.id", index=True)
    event_type: str = Field(index=True, max_length=64)

    title: str = Field(max_length=255)
    body: str = Field(max_length=2000)
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    read_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def mark_as_read(self) -> None:
        if self.read_at is None:
            self.read_at = utcnow()
