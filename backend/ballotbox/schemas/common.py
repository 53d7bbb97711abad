"""
Shared response schemas.
"""
from pydantic import BaseModel


class HealthResponse(BaseModel):
    code: int
    message: str


class MessageResponse(BaseModel):
    message: str


class InvitationRunResponse(BaseModel):
    polls_processed: int
    emails_sent: int
    errors: list[str]
