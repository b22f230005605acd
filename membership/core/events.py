"""
Domain events system

Domain events are raised explicitly by the services after their transaction
commits, then handed to the event dispatcher for notification fan-out.
Events carry ids plus a small snapshot of names, so a handler running later
can still render messages for rows that were deleted in the meantime.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from enum import Enum
import uuid

from membership.core.clock import utcnow


@dataclass(frozen=True)
class RoleRef:
    """Role reference captured once when an event is created"""
    id: Optional[int]
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


class EventCategory(str, Enum):
    USER = "user"
    ROLE = "role"
    INVITE = "invite"


class DomainEvent:
    """Base class for domain events"""

    category: EventCategory

    def __init__(
        self,
        tenant_id: str,
        action: str,
        metadata: Optional[Dict[str, Any]] = None,
        event_id: uuid.UUID = None
    ):
        self.event_id = event_id or uuid.uuid4()
        self.occurred_at: datetime = utcnow()
        self.tenant_id = tenant_id
        self.action = action
        self.metadata: Dict[str, Any] = dict(metadata or {})

    @property
    def event_type(self) -> str:
        """Notification setting key, e.g. invite_sent"""
        return f"{self.category.value}_{self.action}"

    @property
    def name(self) -> str:
        """Dotted name, e.g. invite.sent"""
        return f"{self.category.value}.{self.action}"

    @property
    def performer(self) -> Optional[int]:
        return self.metadata.get("performer")

    @property
    def performer_name(self) -> str:
        return self.metadata.get("performer_name") or "Unknown User"

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        metadata = {
            key: value.to_dict() if isinstance(value, RoleRef) else value
            for key, value in self.metadata.items()
        }
        return {
            "event_id": str(self.event_id),
            "occurred_at": self.occurred_at.isoformat(),
            "event_type": self.event_type,
            "tenant_id": self.tenant_id,
            "action": self.action,
            "metadata": metadata,
        }


class UserEvent(DomainEvent):
    """Event fired when a tenant user is invited, changed, disabled, enabled or deleted"""

    category = EventCategory.USER

    def __init__(
        self,
        tenant_id: str,
        action: str,
        user_id: Optional[int],
        user_name: str,
        user_email: str,
        metadata: Optional[Dict[str, Any]] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(tenant_id, action, metadata, event_id)
        self.user_id = user_id
        self.user_name = user_name
        self.user_email = user_email

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_email": self.user_email,
        })
        return data


class RoleEvent(DomainEvent):
    """Event fired when a role is created, updated or deleted"""

    category = EventCategory.ROLE

    def __init__(
        self,
        tenant_id: str,
        action: str,
        role: RoleRef,
        metadata: Optional[Dict[str, Any]] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(tenant_id, action, metadata, event_id)
        self.role = role

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["role"] = self.role.to_dict()
        return data


class InviteEvent(DomainEvent):
    """Event fired when an invite is sent, resent, cancelled or accepted"""

    category = EventCategory.INVITE

    def __init__(
        self,
        tenant_id: str,
        action: str,
        invite_id: Optional[int],
        email: str,
        role: RoleRef,
        metadata: Optional[Dict[str, Any]] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(tenant_id, action, metadata, event_id)
        self.invite_id = invite_id
        self.email = email
        self.role = role

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "invite_id": self.invite_id,
            "email": self.email,
            "role": self.role.to_dict(),
        })
        return data


def performer_metadata(actor) -> Dict[str, Any]:
    """Metadata identifying the tenant user who performed an action"""
    if actor is None:
        return {"performer": None, "performer_name": "Unknown User"}
    return {"performer": actor.id, "performer_name": actor.name}
