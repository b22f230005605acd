"""
Delivery transports

Mail and push are external collaborators; the defaults here only log what
would be sent, real deployments plug in their own implementations. The
in-app channel stores a Notification row in the tenant store.
"""

from typing import Any, Dict, List, Protocol
from sqlmodel import Session
import structlog

from membership.core.database import transaction
from membership.models import Notification
from membership.services.notification_messages import RenderedMessage

logger = structlog.get_logger(__name__)


class MailTransport(Protocol):
    def send(self, to: str, message: RenderedMessage) -> None:
        """Deliver a message; raises on failure"""
        ...


class PushTransport(Protocol):
    def send(self, tokens: List[str], title: str, body: str, data: Dict[str, Any]) -> bool:
        """Deliver to every token; returns False when the provider rejected the batch"""
        ...


class LoggingMailTransport:
    """Mail transport that only logs"""

    def __init__(self, sender: str):
        self.sender = sender

    def send(self, to: str, message: RenderedMessage) -> None:
        logger.info(f"Mail from {self.sender} to {to}: {message.title}")


class LoggingPushTransport:
    """Push transport that only logs"""

    def send(self, tokens: List[str], title: str, body: str, data: Dict[str, Any]) -> bool:
        logger.info(f"Push to {len(tokens)} device(s): {title}")
        return True


class InAppChannel:
    """Stores notifications for the in-app inbox"""

    def deliver(self, session: Session, user_id: int, event_type: str, message: RenderedMessage) -> Notification:
        with transaction(session):
            notification = Notification(
                user_id=user_id,
                event_type=event_type,
                title=message.title,
                body=message.body,
                data=dict(message.data, action_url=message.action_url),
            )
            session.add(notification)
        return notification
