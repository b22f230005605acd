"""
Notification settings - per user, per event type channel preferences
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime
from typing import Dict, List, Optional
from enum import Enum

from membership.core.clock import utcnow


class EventType(str, Enum):
    """Known notification event types (closed set)"""
    # User events
    USER_INVITED = "user_invited"
    USER_ROLE_UPDATED = "user_role_updated"
    USER_DISABLED = "user_disabled"
    USER_ENABLED = "user_enabled"
    USER_DELETED = "user_deleted"

    # Role events
    ROLE_CREATED = "role_created"
    ROLE_UPDATED = "role_updated"
    ROLE_DELETED = "role_deleted"

    # Invite events
    INVITE_SENT = "invite_sent"
    INVITE_CANCELLED = "invite_cancelled"
    INVITE_RESENT = "invite_resent"


EVENT_TYPE_LABELS: Dict[EventType, str] = {
    EventType.USER_INVITED: "User Invited",
    EventType.USER_ROLE_UPDATED: "User Role Updated",
    EventType.USER_DISABLED: "User Disabled",
    EventType.USER_ENABLED: "User Enabled",
    EventType.USER_DELETED: "User Deleted",
    EventType.ROLE_CREATED: "Role Created",
    EventType.ROLE_UPDATED: "Role Updated",
    EventType.ROLE_DELETED: "Role Deleted",
    EventType.INVITE_SENT: "Invite Sent",
    EventType.INVITE_CANCELLED: "Invite Cancelled",
    EventType.INVITE_RESENT: "Invite Resent",
}


def is_known_event_type(event_type: str) -> bool:
    return event_type in EventType._value2member_map_


class Channel(str, Enum):
    """Delivery channels"""
    EMAIL = "email"
    PUSH = "push"
    IN_APP = "in_app"


class NotificationSetting(SQLModel, table=True):
    """Channel flags of one user for one event type"""

    __tablename__ = "notification_settings"
    __table_args__ = (
        UniqueConstraint("user_id", "event_type", name="uq_notification_settings_user_event"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    event_type: str = Field(index=True, nullable=False, max_length=64)

    email_enabled: bool = Field(default=True, nullable=False)
    push_enabled: bool = Field(default=True, nullable=False)
    in_app_enabled: bool = Field(default=True, nullable=False)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def enabled_channels(self) -> List[Channel]:
        channels = []
        if self.email_enabled:
            channels.append(Channel.EMAIL)
        if self.push_enabled:
            channels.append(Channel.PUSH)
        if self.in_app_enabled:
            channels.append(Channel.IN_APP)
        return channels

    def is_channel_enabled(self, channel: Channel) -> bool:
        return channel in self.enabled_channels()
