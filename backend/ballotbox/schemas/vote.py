"""
Voting request and response schemas.
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, model_validator


class AccessRequest(BaseModel):
    """Participant authentication: a token, or email plus password."""
    token: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None

    @model_validator(mode='after')
    def validate_credentials(self):
        if not self.token and not (self.email and self.password):
            raise ValueError("Either token or email and password must be provided")
        return self


class VoteSubmission(BaseModel):
    """Ballot answers: question id -> selected option ids."""
    participant_token: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    votes: dict[str, list[str]]
    in_person_participant_id: Optional[str] = None

    @model_validator(mode='after')
    def validate_credentials(self):
        if not self.participant_token and not (self.email and self.password):
            raise ValueError("Either participant_token or email and password must be provided")
        return self


class DelegatedParticipant(BaseModel):
    id: str
    name: str
    email: str
    vote_weight: float


class AccessResponse(BaseModel):
    participant_id: str
    name: str
    email: str
    vote_weight: float
    has_voted: bool
    allow_vote_changes: bool
    in_person_targets: list[DelegatedParticipant] = []


class VoteResult(BaseModel):
    participant_id: str
    in_person: bool = False
    revote: bool = False
    message: str


class VoteStatusResponse(BaseModel):
    has_voted: bool
    name: str
    email: str
