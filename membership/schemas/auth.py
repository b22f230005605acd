"""
Pydantic schemas for central accounts and tokens
"""

from pydantic import BaseModel, ConfigDict, Field, EmailStr
from typing import Optional
from datetime import datetime


class RegisterRequest(BaseModel):
    """Central account registration"""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=100)


class TokenResponse(BaseModel):
    """Token response"""
    access_token: str
    token_type: str = "bearer"
    scope: str
    tenant_id: Optional[str] = None


class CentralUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    global_id: str
    name: str
    email: str
    email_verified_at: Optional[datetime] = None
    created_at: datetime


class ProfileUpdate(BaseModel):
    """Changes to the central account, mirrored into every tenant"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
