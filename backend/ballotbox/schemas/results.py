"""
Results view schemas. Optional fields left as None are redacted for the
requester and excluded when serialized.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel


class OptionResult(BaseModel):
    option_id: str
    title: str
    vote_count: int
    weighted_vote_count: float
    percentage: float
    weighted_percentage: float


class QuestionResult(BaseModel):
    question_id: str
    title: str
    total_votes: Optional[int] = None
    total_weighted_votes: Optional[float] = None
    options: Optional[list[OptionResult]] = None


class ParticipantResult(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    is_user: Optional[bool] = None
    vote_weight: Optional[float] = None
    has_voted: bool
    voted_at: Optional[datetime] = None


class PersonSummary(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class PollSummary(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    start_date: int
    end_date: int
    status: str
    manager: PersonSummary
    auditors: list[PersonSummary]
    vote_weight_enabled: bool


class ResultStatistics(BaseModel):
    total_participants: int
    voted_participants: int
    participation_rate: float
    total_vote_weight: Optional[float] = None


class ResultPermissions(BaseModel):
    can_view_full_results: bool
    can_view_vote_counts: bool
    can_view_results_breakdown: bool
    can_view_participant_names: bool
    can_view_participant_initials: bool
    can_view_vote_weights: bool


class ResultsView(BaseModel):
    tier: str
    poll_ended: bool
    poll: PollSummary
    statistics: ResultStatistics
    questions: list[QuestionResult]
    participants: list[ParticipantResult]
    permissions: ResultPermissions
