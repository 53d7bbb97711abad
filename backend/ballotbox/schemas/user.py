"""
Account and user-group management schemas (admin only).
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime

from ballotbox.models.user import UserRole
from ballotbox.schemas.auth import UserResponse


class SubAdminCreate(BaseModel):
    """Create sub-admin request."""
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1, max_length=200)


class UserCreate(SubAdminCreate):
    """Create user request; any role."""
    role: UserRole = UserRole.USER


class UserUpdate(BaseModel):
    """Update user request; omitted fields are left unchanged."""
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[UserRole] = None


class UserListResponse(BaseModel):
    items: list[UserResponse]
    total: int


# ============================================================================
# USER GROUPS
# ============================================================================

class UserGroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class UserGroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class GroupMemberAdd(BaseModel):
    user_id: str = Field(..., min_length=1)


class UserGroupResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    members: list[UserResponse] = Field(default_factory=list)
    created: datetime
    updated: datetime


class UserGroupListResponse(BaseModel):
    items: list[UserGroupResponse]
    total: int
