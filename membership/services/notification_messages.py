"""
Notification message templates

Titles and bodies are rendered per (category, action, channel). Every
category has a fallback, so any action renders to a non-empty message.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from membership.core.events import DomainEvent, EventCategory, InviteEvent, RoleEvent, RoleRef, UserEvent
from membership.models import Channel

TITLES: Dict[EventCategory, Dict[str, str]] = {
    EventCategory.USER: {
        "invited": "User Invited",
        "role_updated": "User Role Updated",
        "disabled": "User Disabled",
        "enabled": "User Enabled",
        "deleted": "User Deleted",
    },
    EventCategory.ROLE: {
        "created": "Role Created",
        "updated": "Role Updated",
        "deleted": "Role Deleted",
    },
    EventCategory.INVITE: {
        "sent": "New Invitation",
        "accepted": "Invitation Accepted",
        "cancelled": "Invitation Cancelled",
        "resent": "Invitation Resent",
    },
}

DEFAULT_TITLES: Dict[EventCategory, str] = {
    EventCategory.USER: "User Action",
    EventCategory.ROLE: "Role Action",
    EventCategory.INVITE: "Invitation Update",
}

ACTION_TEXTS: Dict[EventCategory, Dict[str, str]] = {
    EventCategory.USER: {
        "invited": "View Invitation",
        "role_updated": "View User",
        "disabled": "View User",
        "enabled": "View User",
    },
    EventCategory.ROLE: {
        "created": "View Roles",
        "updated": "View Roles",
    },
    EventCategory.INVITE: {
        "sent": "View Invites",
        "accepted": "View Invites",
        "resent": "View Invites",
    },
}


@dataclass
class RenderedMessage:
    """Channel-ready notification content"""
    title: str
    body: str
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


def role_name(role: Optional[RoleRef]) -> str:
    return role.name if role is not None else "No Role"


def render_title(event: DomainEvent) -> str:
    return TITLES[event.category].get(event.action, DEFAULT_TITLES[event.category])


def _user_body(event: UserEvent) -> str:
    name = event.user_name
    if event.action == "invited":
        return f"User {name} has been invited to join the platform."
    if event.action == "role_updated":
        old_role = role_name(event.metadata.get("old_role"))
        new_role = role_name(event.metadata.get("new_role"))
        return f"User {name} has had their role updated from {old_role} to {new_role}."
    if event.action in ("disabled", "enabled", "deleted"):
        return f"User {name} has been {event.action}."
    return f"User {name} action performed."


def _role_body(event: RoleEvent) -> str:
    name = event.role.name
    if event.action in ("created", "updated", "deleted"):
        return f"Role '{name}' has been {event.action} by {event.performer_name}."
    return f"Role '{name}' action performed by {event.performer_name}."


def _invite_body(event: InviteEvent) -> str:
    email = event.email
    role = role_name(event.role)
    if event.action == "sent":
        return f"{event.performer_name} has invited '{email}' to join our platform with the role: '{role}'"
    if event.action == "accepted":
        return f"The invite to '{email}' for role '{role}' has been accepted."
    if event.action in ("cancelled", "resent"):
        return f"An invite to '{email}' for role '{role}' has been {event.action} by '{event.performer_name}'."
    return f"Your invitation has been {event.action}"


def render_body(event: DomainEvent) -> str:
    if isinstance(event, UserEvent):
        return _user_body(event)
    if isinstance(event, RoleEvent):
        return _role_body(event)
    if isinstance(event, InviteEvent):
        return _invite_body(event)
    return f"{event.category.value.title()} {event.action}"


def invite_accept_url(base_url: str, tenant_id: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/tenants/{tenant_id}/invites/accept/{token}"


def action_url(event: DomainEvent, base_url: str) -> Optional[str]:
    """Link shown with the message, None for deletions and cancellations"""
    base = f"{base_url.rstrip('/')}/tenants/{event.tenant_id}"
    if isinstance(event, InviteEvent):
        if event.action in ("sent", "resent"):
            return f"{base}/invites"
        if event.action == "accepted":
            return f"{base}/users"
        return None
    if event.action == "deleted":
        return None
    if isinstance(event, RoleEvent):
        return f"{base}/roles"
    return f"{base}/users"


def action_text(event: DomainEvent) -> Optional[str]:
    texts = ACTION_TEXTS.get(event.category, {})
    if event.action in texts:
        return texts[event.action]
    return None if event.category == EventCategory.INVITE else "View Details"


def _event_data(event: DomainEvent) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "event_type": event.event_type,
        "action": event.action,
        "tenant_id": event.tenant_id,
        "timestamp": event.occurred_at.isoformat(),
    }
    if isinstance(event, UserEvent):
        data.update({"user_id": event.user_id, "user_name": event.user_name})
        if event.action == "role_updated":
            for key in ("old_role", "new_role"):
                role = event.metadata.get(key)
                data[f"{key}_id"] = role.id if role is not None else None
                data[f"{key}_name"] = role_name(role)
    elif isinstance(event, RoleEvent):
        data.update({"role_id": event.role.id, "role_name": event.role.name})
    elif isinstance(event, InviteEvent):
        data.update({"invite_id": event.invite_id})
    return data


def render(event: DomainEvent, channel: Channel, base_url: str) -> RenderedMessage:
    """Render an event for one delivery channel"""
    data = _event_data(event)
    url = action_url(event, base_url)
    if channel == Channel.PUSH:
        # Push payload values must all be strings
        data = {key: "" if value is None else str(value) for key, value in data.items()}
        data["click_action"] = url or ""
    return RenderedMessage(
        title=render_title(event),
        body=render_body(event),
        action_url=url,
        action_text=action_text(event) if channel == Channel.EMAIL else None,
        data=data,
    )


def render_invitation(email: str, role: RoleRef, tenant_name: str, tenant_id: str,
                      token: str, inviter_name: Optional[str], base_url: str,
                      expiry_days: int = 7) -> RenderedMessage:
    """Mail sent to the invitee itself"""
    inviter = inviter_name or "Someone"
    return RenderedMessage(
        title=f"You're invited to join {tenant_name}",
        body=(
            f"{inviter} has invited you to join {tenant_name} with the role '{role_name(role)}'. "
            f"This invitation expires in {expiry_days} days."
        ),
        action_url=invite_accept_url(base_url, tenant_id, token),
        action_text="Accept Invitation",
        data={"email": email, "tenant_id": tenant_id},
    )
