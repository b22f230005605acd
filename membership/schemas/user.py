"""
Pydantic schemas for tenant users and roles
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from membership.models import UserStatus


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    global_id: str
    name: str
    email: str
    email_verified_at: Optional[datetime] = None
    status: UserStatus
    role_id: Optional[int] = None
    created_at: datetime


class UserRoleUpdate(BaseModel):
    role_id: int


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    permissions: List[str] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    permissions: Optional[List[str]] = None


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    is_system: bool
    permissions: List[str]
    created_at: datetime
