"""
Push device tokens of tenant users
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime
from typing import Optional

from membership.core.clock import utcnow


class DeviceToken(SQLModel, table=True):
    """Registered push token of one device"""

    __tablename__ = "device_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_device_tokens_user_token"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    token: str = Field(nullable=False, max_length=512)

    device_type: str = Field(default="web", max_length=50)
    device_name: Optional[str] = Field(default=None, max_length=255)

    is_active: bool = Field(default=True, index=True)
    last_used_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    def activate(self) -> None:
        self.is_active = True
        self.last_used_at = utcnow()

    def deactivate(self) -> None:
        self.is_active = False
