"""
Device token store for push delivery
"""

from typing import List, Optional
from sqlmodel import Session, select
import structlog

from membership.core.database import transaction
from membership.models import DeviceToken

logger = structlog.get_logger(__name__)


class DeviceTokenStore:

    def __init__(self, session: Session):
        self.session = session

    def _find(self, user_id: int, token: str) -> Optional[DeviceToken]:
        return self.session.exec(
            select(DeviceToken).where(DeviceToken.user_id == user_id, DeviceToken.token == token)
        ).first()

    def store_token(
        self,
        user_id: int,
        token: str,
        device_type: str = "web",
        device_name: Optional[str] = None,
    ) -> DeviceToken:
        """Register a token, reactivating it if it was seen before"""
        with transaction(self.session):
            device = self._find(user_id, token)
            if device is None:
                device = DeviceToken(user_id=user_id, token=token)
            device.device_type = device_type
            if device_name is not None:
                device.device_name = device_name
            device.activate()
            self.session.add(device)
        logger.info(f"Device token stored for user {user_id} ({device_type})")
        return device

    def active_tokens(self, user_id: int) -> List[str]:
        return list(self.session.exec(
            select(DeviceToken.token).where(
                DeviceToken.user_id == user_id,
                DeviceToken.is_active == True,  # noqa: E712
            )
        ).all())

    def deactivate_token(self, user_id: int, token: str) -> bool:
        with transaction(self.session):
            device = self._find(user_id, token)
            if device is None:
                return False
            device.deactivate()
            self.session.add(device)
        logger.info(f"Device token deactivated for user {user_id}")
        return True
