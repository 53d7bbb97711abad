"""
Participant schemas.
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime


class ParticipantCreate(BaseModel):
    """Enroll a participant; is_user is auto-detected when omitted."""
    email: EmailStr
    name: Optional[str] = None
    is_user: Optional[bool] = None
    vote_weight: float = Field(default=1.0, gt=0)
    token: Optional[str] = None


class GroupParticipantsCreate(BaseModel):
    """Enroll every member of a user group."""
    group_id: str = Field(..., min_length=1)
    vote_weight: float = Field(default=1.0, gt=0)


class ParticipantUpdate(BaseModel):
    vote_weight: Optional[float] = Field(None, gt=0)
    token: Optional[str] = None
    name: Optional[str] = None


class ParticipantResponse(BaseModel):
    """Participant without its token."""
    id: str
    poll_id: str
    user_id: Optional[str] = None
    email: str
    name: str
    is_user: bool
    token_used: bool = False
    token_viewed: bool = False
    token_last_revoked_at: Optional[int] = None
    vote_weight: float
    status: str
    has_voted: bool
    last_email_sent_at: Optional[int] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class ParticipantListResponse(BaseModel):
    items: list[ParticipantResponse]
    total: int


class GroupParticipantsResult(BaseModel):
    group_id: str
    group_name: str
    total: int
    added: list[ParticipantResponse]
    skipped: list[dict]


class ParticipantTokenResponse(BaseModel):
    participant_id: str
    participant_name: str
    participant_email: str
    token: str


class AuditEventResponse(BaseModel):
    id: str
    event_type: str
    actor_user_id: Optional[str] = None
    actor_name: str
    poll_id: str
    participant_id: Optional[str] = None
    meta: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: int
