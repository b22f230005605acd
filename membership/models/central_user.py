"""
Central user model - the global identity shared by every tenant
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional, Tuple
import uuid

from membership.core.clock import utcnow


def normalize_email(email: str) -> str:
    """Emails are unique case-insensitively, so they are stored lower-cased"""
    return email.strip().lower()


class CentralUser(SQLModel, table=True):
    """Global account living in the central store"""

    __tablename__ = "central_users"

    # Attributes copied onto every tenant user with the same global_id
    SYNCED_ATTRIBUTES: ClassVar[Tuple[str, ...]] = ("global_id", "name", "email", "email_verified_at")

    id: Optional[int] = Field(default=None, primary_key=True)
    global_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        unique=True,
        index=True,
        max_length=36,
        description="Immutable cross-store join key",
    )

    # Profile
    name: str = Field(nullable=False, max_length=255)
    email: str = Field(unique=True, index=True, nullable=False, max_length=255)

    # Authentication
    password_hash: str = Field(nullable=False)
    email_verified_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def synced_attributes(self) -> Dict[str, Any]:
        """Values that tenant users mirror"""
        return {name: getattr(self, name) for name in self.SYNCED_ATTRIBUTES}
