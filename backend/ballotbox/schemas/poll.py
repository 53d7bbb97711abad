"""
Poll, ballot and settings schemas.
"""
from typing import Optional, Any
from pydantic import BaseModel, Field, model_validator
from datetime import datetime


# ============================================================================
# BALLOT
# ============================================================================

class BallotOption(BaseModel):
    """A selectable option of a question."""
    id: str = Field(..., min_length=1)
    title: str
    short_description: Optional[str] = None
    long_description: Optional[str] = None
    link: Optional[str] = None
    image: Optional[str] = None


class BallotQuestion(BaseModel):
    """A ballot question with its selection bounds."""
    id: str = Field(..., min_length=1)
    title: str
    description: Optional[str] = None
    randomized_order: bool = False
    min_selection: int = Field(default=1, ge=0)
    max_selection: int = Field(default=1, ge=1)
    attachments: list[str] = Field(default_factory=list)
    image: Optional[str] = None
    options: list[BallotOption] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_bounds(self):
        if self.min_selection > self.max_selection:
            raise ValueError(
                f"min_selection ({self.min_selection}) exceeds "
                f"max_selection ({self.max_selection}) for question '{self.id}'"
            )
        option_ids = [option.id for option in self.options]
        if len(option_ids) != len(set(option_ids)):
            raise ValueError(f"Duplicate option ids in question '{self.id}'")
        return self

    @property
    def option_ids(self) -> set[str]:
        return {option.id for option in self.options}


def _check_unique_question_ids(ballot: Optional[list[BallotQuestion]]) -> None:
    if not ballot:
        return
    question_ids = [q.id for q in ballot]
    if len(question_ids) != len(set(question_ids)):
        raise ValueError("Duplicate question ids in ballot")


# ============================================================================
# SETTINGS
# ============================================================================

class PollSettings(BaseModel):
    """
    Disclosure and voting settings of a poll.

    Stored as JSON on the poll row; always validated through this model so
    read sites get explicit defaults.
    """
    show_participant_names: bool = False
    show_participant_initials: bool = False
    show_vote_weights: bool = False
    show_vote_counts: bool = False
    show_results_before_end: bool = False
    allow_results_view: bool = True
    vote_weight_enabled: bool = False
    allow_vote_changes: bool = False
    allow_in_person_voting: bool = False
    mail_template_id: Optional[str] = None

    class Config:
        extra = "forbid"


# ============================================================================
# POLL
# ============================================================================

class PollCreate(BaseModel):
    """Create poll request."""
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    start_date: Optional[int] = None  # epoch millis
    end_date: Optional[int] = None  # epoch millis
    manager_id: Optional[str] = None
    settings: PollSettings = Field(default_factory=PollSettings)
    ballot: list[BallotQuestion] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_poll(self):
        _check_unique_question_ids(self.ballot)
        if self.start_date is not None and self.end_date is not None and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class PollUpdate(BaseModel):
    """
    Update poll request.

    Only the fields present in the request body count as changed
    (``model_fields_set``).
    """
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = None
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    status: Optional[str] = None
    settings: Optional[PollSettings] = None
    ballot: Optional[list[BallotQuestion]] = None

    @model_validator(mode='after')
    def validate_ballot(self):
        _check_unique_question_ids(self.ballot)
        return self


class PollResponse(BaseModel):
    """Poll response."""
    id: str
    title: str
    description: Optional[str] = None
    start_date: int
    end_date: int
    status: str
    voting_window: Optional[str] = None
    manager_id: str
    created_by_id: str
    settings: PollSettings
    ballot: list[BallotQuestion]
    will_send_emails: bool = False
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class PublicPollResponse(BaseModel):
    """Poll data shown to voters, without management fields."""
    id: str
    title: str
    description: Optional[str] = None
    start_date: int
    end_date: int
    status: str
    voting_window: str
    settings: PollSettings
    ballot: list[BallotQuestion]


class PollListResponse(BaseModel):
    items: list[PollResponse]
    total: int


class RoleAssignmentCreate(BaseModel):
    """Assign a sub-admin as auditor or editor."""
    user_id: str = Field(..., min_length=1)


class RoleAssignmentResponse(BaseModel):
    id: str
    user_id: str
    name: str
    email: str
    role: str
    added_at: datetime


class AssignmentsResponse(BaseModel):
    manager: Optional[dict[str, Any]] = None
    auditors: list[RoleAssignmentResponse]
    editors: list[RoleAssignmentResponse]
