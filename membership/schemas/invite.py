"""
Pydantic schemas for invitations
"""

from pydantic import BaseModel, ConfigDict, Field, EmailStr
from typing import List, Optional
from datetime import datetime

from membership.models import InviteStatus


class InviteCreate(BaseModel):
    """Invite a batch of emails with one role"""
    emails: List[EmailStr] = Field(..., min_length=1, max_length=100)
    role_id: int


class SkippedEmailResponse(BaseModel):
    email: str
    reason: str


class InviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role_id: Optional[int]
    status: InviteStatus
    resent_count: int
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    invited_by: Optional[int] = None
    created_at: datetime


class IssueInvitesResponse(BaseModel):
    message: str
    sent: int
    skipped: int
    invites: List[InviteResponse]
    skipped_emails: List[SkippedEmailResponse]


class InviteDetails(BaseModel):
    """What the acceptance page needs to know about an invite"""
    email: str
    role_name: str
    business_name: str
    expires_at: datetime
    existing_user: bool


class AcceptInviteRequest(BaseModel):
    """Name and password are only used when the email has no account yet"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    password: Optional[str] = Field(default=None, min_length=8, max_length=100)


class AcceptInviteResponse(BaseModel):
    message: str
    user_id: int
    global_id: str
    is_new_user: bool
    central_token: Optional[str] = None
    tenant_token: Optional[str] = None
