"""
Pydantic schemas for notification settings, inbox and device tokens
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from datetime import datetime


class NotificationSettingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_type: str
    label: str = ""
    email_enabled: bool
    push_enabled: bool
    in_app_enabled: bool


class ChannelFlags(BaseModel):
    """Omitted flags keep their current value"""
    email_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None


class NotificationSettingsUpdate(BaseModel):
    settings: Dict[str, ChannelFlags]


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: str
    title: str
    body: str
    data: Dict[str, Any]
    read_at: Optional[datetime] = None
    created_at: datetime


class UnreadCountResponse(BaseModel):
    unread: int


class DeviceTokenCreate(BaseModel):
    token: str = Field(..., min_length=1, max_length=512)
    device_type: str = Field(default="web", max_length=50)
    device_name: Optional[str] = Field(default=None, max_length=255)


class DeviceTokenDelete(BaseModel):
    token: str = Field(..., min_length=1, max_length=512)
