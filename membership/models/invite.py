"""
Invite model with derived status for the invitation lifecycle
"""

from sqlmodel import Field, SQLModel, Relationship
from sqlalchemy import Index, text
from datetime import datetime, timedelta
from typing import Optional
from enum import Enum

from membership.core.clock import utcnow
from membership.models.role import Role


class InviteStatus(str, Enum):
    """Status of an invite, derived from accepted_at and expires_at"""
    PENDING = "pending"             # Waiting for the invitee
    ACCEPTED = "accepted"           # Invitee joined the tenant
    EXPIRED = "expired"             # Not accepted before expires_at


class Invite(SQLModel, table=True):
    """Invitation to join a tenant, stored in the tenant store"""

    __tablename__ = "invites"
    __table_args__ = (
        # At most one unaccepted invite per email
        Index(
            "uq_invites_unaccepted_email",
            "email",
            unique=True,
            sqlite_where=text("accepted_at IS NULL"),
            postgresql_where=text("accepted_at IS NULL"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, max_length=255)
    # Accepted invites outlive their role
    role_id: Optional[int] = Field(default=None, foreign_key="roles.id", index=True, ondelete="SET NULL")

    token: str = Field(unique=True, index=True, nullable=False, max_length=128)
    resent_count: int = Field(default=0, nullable=False)

    accepted_at: Optional[datetime] = Field(default=None, nullable=True)
    expires_at: datetime = Field(
        default_factory=lambda: utcnow() + timedelta(days=7),
        index=True,
    )
    invited_by: Optional[int] = Field(default=None, index=True, description="Tenant user ID of the inviter")

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    # Relationships
    role: Optional[Role] = Relationship()

    # State machine methods
    def is_accepted(self) -> bool:
        return self.accepted_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Unaccepted and past its expiry"""
        if self.is_accepted():
            return False
        return (now or utcnow()) > self.expires_at

    def is_pending(self, now: Optional[datetime] = None) -> bool:
        return not self.is_accepted() and not self.is_expired(now)

    @property
    def status(self) -> InviteStatus:
        if self.is_accepted():
            return InviteStatus.ACCEPTED
        if self.is_expired():
            return InviteStatus.EXPIRED
        return InviteStatus.PENDING

    def can_be_resent(self, max_resends: int = 3) -> bool:
        """Expired invites may be resent too, which revives them"""
        return not self.is_accepted() and self.resent_count < max_resends

    def can_be_cancelled(self, now: Optional[datetime] = None) -> bool:
        """Only pending invites; expired ones must be resent first"""
        return self.is_pending(now)

    def transition_to_resent(self, token: str, expires_at: datetime, resent_by: Optional[int]) -> None:
        """Regenerate the token and push the expiry out"""
        self.token = token
        self.expires_at = expires_at
        self.resent_count += 1
        if resent_by is not None:
            self.invited_by = resent_by
        self.updated_at = utcnow()

    def transition_to_accepted(self) -> None:
        if self.is_accepted():
            raise ValueError("Cannot accept invite: already accepted")
        self.accepted_at = utcnow()
        self.updated_at = self.accepted_at
