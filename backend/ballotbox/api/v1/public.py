"""
Participant-facing poll endpoints - no account token required.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.deps import get_request_meta
from ballotbox.db.base import get_db
from ballotbox.schemas.poll import PublicPollResponse
from ballotbox.schemas.results import ResultsView
from ballotbox.schemas.vote import (
    AccessRequest,
    AccessResponse,
    VoteResult,
    VoteStatusResponse,
    VoteSubmission,
)
from ballotbox.services import voting
from ballotbox.services.audit import RequestMeta
from ballotbox.services.results import results_for_participant_token

router = APIRouter()


@router.get("/{poll_id}", response_model=PublicPollResponse)
async def get_public_poll(
    poll_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Ballot and schedule of an active poll."""
    return await voting.get_public_poll(db, poll_id)


@router.post("/{poll_id}/validate-access", response_model=AccessResponse)
async def validate_access(
    poll_id: str,
    access_data: AccessRequest,
    db: AsyncSession = Depends(get_db)
):
    return await voting.validate_access(db, poll_id, access_data)


@router.post("/{poll_id}/vote", response_model=VoteResult)
async def submit_vote(
    poll_id: str,
    submission: VoteSubmission,
    db: AsyncSession = Depends(get_db),
    request_meta: RequestMeta = Depends(get_request_meta)
):
    """
    Submit a ballot.

    With in_person_participant_id the ballot is cast on behalf of a
    participant the caller marked for in-person voting.
    """
    return await voting.submit_ballot(db, poll_id, submission, request=request_meta)


@router.get("/{poll_id}/vote-status/{participant_token}", response_model=VoteStatusResponse)
async def vote_status(
    poll_id: str,
    participant_token: str,
    db: AsyncSession = Depends(get_db)
):
    return await voting.vote_status(db, poll_id, participant_token)


@router.get(
    "/{poll_id}/results/{participant_token}",
    response_model=ResultsView,
    response_model_exclude_none=True
)
async def participant_results(
    poll_id: str,
    participant_token: str,
    db: AsyncSession = Depends(get_db)
):
    return await results_for_participant_token(db, poll_id, participant_token)
