"""
Invitation mail template schemas.
"""
from typing import Optional
from pydantic import BaseModel, Field
from datetime import datetime


class MailTemplateCreate(BaseModel):
    """Create mail template request."""
    name: str = Field(..., min_length=1, max_length=200)
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    html_body: Optional[str] = None
    is_default: bool = False


class MailTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    subject: Optional[str] = Field(None, min_length=1, max_length=500)
    body: Optional[str] = Field(None, min_length=1)
    html_body: Optional[str] = None
    is_default: Optional[bool] = None


class MailTemplateResponse(BaseModel):
    id: str
    name: str
    subject: str
    body: str
    html_body: Optional[str] = None
    is_default: bool
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class MailTemplateListResponse(BaseModel):
    items: list[MailTemplateResponse]
    total: int
