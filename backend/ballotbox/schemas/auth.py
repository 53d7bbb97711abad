"""
Authentication and user schemas.
"""
from pydantic import BaseModel, EmailStr
from datetime import datetime


class UserLogin(BaseModel):
    """User login request."""
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    created: datetime
    updated: datetime


class TokenResponse(BaseModel):
    """Auth token response."""
    token: str
    record: UserResponse
