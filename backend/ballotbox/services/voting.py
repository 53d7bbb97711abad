"""
Participant-facing voting service.

Covers participant authentication (token or account credentials), the
public poll view, and the vote submission state machine: first vote,
re-vote under allow_vote_changes, and in-person ballots cast by a delegate
who previously marked the target participant.

A participant moves from not-voted to voted exactly once. The transition is
a compare-and-swap on the participant row inside the same SAVEPOINT as the
vote rows, so two concurrent submissions cannot both consume it.
"""
import logging
import random
from typing import Mapping, Optional, Sequence

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.clock import now_ms
from ballotbox.core.exceptions import (
    AuthenticationFailed,
    Conflict,
    NotFound,
    PermissionDenied,
    StateError,
)
from ballotbox.core.permissions import ensure_poll_exists
from ballotbox.core.security import DUMMY_PASSWORD_HASH, verify_password
from ballotbox.models.audit_event import AuditEvent, AuditEventType
from ballotbox.models.participant import Participant, ParticipantStatus
from ballotbox.models.poll import Poll, PollStatus
from ballotbox.models.user import User
from ballotbox.models.vote import Vote
from ballotbox.schemas.poll import BallotQuestion, PublicPollResponse
from ballotbox.schemas.vote import (
    AccessRequest,
    AccessResponse,
    DelegatedParticipant,
    VoteResult,
    VoteStatusResponse,
    VoteSubmission,
)
from ballotbox.services.audit import RequestMeta, NO_REQUEST_META, log_audit_event
from ballotbox.services.ballot import validate_vote_payload

logger = logging.getLogger(__name__)

POLL_ENDED_MESSAGE = "This poll has ended. Voting is no longer allowed."


def ensure_voting_open(poll: Poll, now: int) -> None:
    """Refuse voting on ended, inactive or not-yet-started polls."""
    if poll.has_ended(now):
        raise StateError(POLL_ENDED_MESSAGE)
    if not poll.is_open_for_voting(now):
        raise StateError()


# ============================================================================
# AUTHENTICATION
# ============================================================================

async def _participant_by_token(db: AsyncSession, poll_id: str, token: str) -> Optional[Participant]:
    result = await db.execute(
        select(Participant).where(
            Participant.poll_id == poll_id,
            Participant.token == token,
            Participant.status == ParticipantStatus.APPROVED,
        )
    )
    return result.scalar_one_or_none()


async def _participant_by_credentials(
    db: AsyncSession, poll_id: str, email: str, password: str
) -> Optional[Participant]:
    result = await db.execute(select(User).where(User.email == email.lower()))
    user = result.scalar_one_or_none()
    if user is None:
        verify_password(password, DUMMY_PASSWORD_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None

    result = await db.execute(
        select(Participant).where(
            Participant.poll_id == poll_id,
            Participant.user_id == user.id,
            Participant.status == ParticipantStatus.APPROVED,
        )
    )
    return result.scalar_one_or_none()


async def authenticate_participant(
    db: AsyncSession,
    poll_id: str,
    token: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
    now: Optional[int] = None,
) -> Participant:
    """
    Resolve a token, or an email and password, to an approved participant.

    The poll must be open for voting whatever the credentials are. Failures
    never reveal which check failed.
    """
    poll = await ensure_poll_exists(db, poll_id)
    ensure_voting_open(poll, now if now is not None else now_ms())

    if token:
        participant = await _participant_by_token(db, poll.id, token)
        if participant is None:
            raise AuthenticationFailed("Invalid participant token")
        return participant

    if email and password:
        participant = await _participant_by_credentials(db, poll.id, email, password)
        if participant is None:
            raise AuthenticationFailed("Invalid credentials")
        return participant

    raise AuthenticationFailed()


# ============================================================================
# PUBLIC VIEWS
# ============================================================================

def shuffle_options(questions: list[BallotQuestion], rng=random) -> list[BallotQuestion]:
    """Options of randomized_order questions in a fresh random order per call."""
    return [
        question.model_copy(update={"options": rng.sample(question.options, len(question.options))})
        if question.randomized_order else question
        for question in questions
    ]


async def get_public_poll(db: AsyncSession, poll_id: str, now: Optional[int] = None) -> PublicPollResponse:
    poll = await ensure_poll_exists(db, poll_id)
    if poll.status != PollStatus.ACTIVE:
        raise StateError("Poll is not currently active")

    now = now if now is not None else now_ms()
    return PublicPollResponse(
        id=poll.id,
        title=poll.title,
        description=poll.description,
        start_date=poll.start_date,
        end_date=poll.end_date,
        status=poll.status.value,
        voting_window=poll.voting_window(now).value,
        settings=poll.poll_settings,
        ballot=shuffle_options(poll.questions),
    )


async def pending_in_person_targets(
    db: AsyncSession, poll_id: str, delegate_user_id: str
) -> list[Participant]:
    """Participants the delegate marked and has not yet voted for."""
    result = await db.execute(
        select(AuditEvent.participant_id, AuditEvent.event_type).where(
            AuditEvent.poll_id == poll_id,
            AuditEvent.actor_user_id == delegate_user_id,
            AuditEvent.event_type.in_([
                AuditEventType.MARKED_AS_IN_PERSON_VOTED.value,
                AuditEventType.IN_PERSON_VOTE_CAST.value,
            ]),
        )
    )
    marked: list[str] = []
    cast: set[str] = set()
    for participant_id, event_type in result.all():
        if not participant_id:
            continue
        if event_type == AuditEventType.IN_PERSON_VOTE_CAST.value:
            cast.add(participant_id)
        elif participant_id not in marked:
            marked.append(participant_id)

    pending = [participant_id for participant_id in marked if participant_id not in cast]
    if not pending:
        return []
    result = await db.execute(
        select(Participant)
        .where(Participant.poll_id == poll_id, Participant.id.in_(pending))
        .order_by(Participant.name.asc())
    )
    return list(result.scalars().all())


async def validate_access(
    db: AsyncSession,
    poll_id: str,
    data: AccessRequest,
    now: Optional[int] = None,
) -> AccessResponse:
    participant = await authenticate_participant(
        db, poll_id, token=data.token, email=data.email, password=data.password, now=now
    )
    poll = await ensure_poll_exists(db, poll_id)

    targets: list[Participant] = []
    if participant.user_id and poll.poll_settings.allow_in_person_voting:
        targets = await pending_in_person_targets(db, poll.id, participant.user_id)

    return AccessResponse(
        participant_id=participant.id,
        name=participant.name,
        email=participant.email,
        vote_weight=participant.vote_weight,
        has_voted=participant.has_voted,
        allow_vote_changes=poll.poll_settings.allow_vote_changes,
        in_person_targets=[
            DelegatedParticipant(id=t.id, name=t.name, email=t.email, vote_weight=t.vote_weight)
            for t in targets
        ],
    )


async def vote_status(db: AsyncSession, poll_id: str, token: str) -> VoteStatusResponse:
    await ensure_poll_exists(db, poll_id)
    participant = await _participant_by_token(db, poll_id, token)
    if participant is None:
        raise AuthenticationFailed("Invalid participant token")
    return VoteStatusResponse(
        has_voted=participant.has_voted,
        name=participant.name,
        email=participant.email,
    )


# ============================================================================
# SUBMISSION
# ============================================================================

async def _in_person_event_exists(
    db: AsyncSession,
    poll_id: str,
    participant_id: str,
    delegate_user_id: str,
    event_type: AuditEventType,
) -> bool:
    result = await db.execute(
        select(AuditEvent.id).where(
            AuditEvent.poll_id == poll_id,
            AuditEvent.participant_id == participant_id,
            AuditEvent.actor_user_id == delegate_user_id,
            AuditEvent.event_type == event_type.value,
        )
    )
    return result.first() is not None


async def _resolve_in_person_target(
    db: AsyncSession, poll: Poll, delegate: Participant, target_id: str
) -> Participant:
    if not poll.poll_settings.allow_in_person_voting:
        raise PermissionDenied("In-person voting is not enabled for this poll")
    if not delegate.user_id:
        raise PermissionDenied("Only registered users can cast in-person votes")

    marked = await _in_person_event_exists(
        db, poll.id, target_id, delegate.user_id, AuditEventType.MARKED_AS_IN_PERSON_VOTED
    )
    if not marked:
        raise PermissionDenied("You are not authorized to cast an in-person vote for this participant")

    already_cast = await _in_person_event_exists(
        db, poll.id, target_id, delegate.user_id, AuditEventType.IN_PERSON_VOTE_CAST
    )
    if already_cast:
        raise Conflict("You have already cast an in-person vote for this participant")

    result = await db.execute(
        select(Participant).where(Participant.id == target_id, Participant.poll_id == poll.id)
    )
    target = result.scalar_one_or_none()
    if target is None:
        raise NotFound("Target participant not found")
    if target.has_voted:
        raise Conflict("Participant has already voted")
    return target


async def submit_vote(
    db: AsyncSession,
    poll_id: str,
    participant_id: str,
    payload: Mapping[str, Sequence[str]],
    in_person_target_id: Optional[str] = None,
    request: RequestMeta = NO_REQUEST_META,
    now: Optional[int] = None,
) -> VoteResult:
    """
    Record a ballot for an authenticated participant.

    With in_person_target_id the ballot is cast on behalf of that
    participant by the authenticated (delegate) participant; the delegate's
    own record is left untouched.

    Raises:
        StateError: poll ended, not active or outside its window
        PermissionDenied: delegation not enabled or not marked
        Conflict: already voted, or delegation already used
        ValidationFailed: ballot bounds violated; nothing is written
    """
    poll = await ensure_poll_exists(db, poll_id)
    now = now if now is not None else now_ms()
    ensure_voting_open(poll, now)

    result = await db.execute(
        select(Participant).where(
            Participant.id == participant_id,
            Participant.poll_id == poll.id,
            Participant.status == ParticipantStatus.APPROVED,
        )
    )
    voter = result.scalar_one_or_none()
    if voter is None:
        raise NotFound("Participant not found")

    poll_settings = poll.poll_settings
    in_person = in_person_target_id is not None
    if in_person:
        target = await _resolve_in_person_target(db, poll, voter, in_person_target_id)
    else:
        target = voter
        if target.has_voted and not poll_settings.allow_vote_changes:
            raise Conflict("Vote already submitted and changes are not allowed")

    validate_vote_payload(poll.questions, payload)

    revote = target.has_voted
    values = {"has_voted": True}
    if not in_person and not target.is_user:
        values["token_used"] = True

    async with db.begin_nested():
        # Locks the participant row; a lost race finds has_voted already flipped
        swapped = await db.execute(
            update(Participant)
            .where(Participant.id == target.id, Participant.has_voted == revote)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            raise Conflict("Vote already submitted and changes are not allowed")

        await db.execute(delete(Vote).where(Vote.participant_id == target.id))
        for question in poll.questions:
            if question.id not in payload:
                continue
            db.add(Vote(
                poll_id=poll.id,
                participant_id=target.id,
                question_id=question.id,
                selected_options=list(payload[question.id]),
                vote_weight=target.vote_weight,
            ))
        await db.flush()

        if in_person:
            await log_audit_event(
                db,
                poll,
                AuditEventType.IN_PERSON_VOTE_CAST,
                actor_user_id=voter.user_id,
                participant_id=target.id,
                meta={
                    "actor_name": voter.name,
                    "participant_name": target.name,
                    "vote_weight": target.vote_weight,
                },
                request=request,
                required=True,
            )

    await db.refresh(target)

    if not in_person:
        await log_audit_event(
            db,
            poll,
            AuditEventType.VOTE_CAST,
            actor_user_id=target.user_id,
            participant_id=target.id,
            meta={"revote": revote, "questions": sorted(payload)},
            request=request,
        )

    logger.info(
        f"Vote recorded for participant {target.id} in poll {poll.id}"
        f"{' (in person)' if in_person else ''}{' (re-vote)' if revote else ''}"
    )
    if in_person:
        message = f"In-person vote cast successfully for {target.name}"
    elif revote:
        message = "Vote updated successfully"
    else:
        message = "Vote submitted successfully"
    return VoteResult(participant_id=target.id, in_person=in_person, revote=revote, message=message)


async def submit_ballot(
    db: AsyncSession,
    poll_id: str,
    submission: VoteSubmission,
    request: RequestMeta = NO_REQUEST_META,
    now: Optional[int] = None,
) -> VoteResult:
    """Authenticate the submitter, then record their ballot."""
    participant = await authenticate_participant(
        db,
        poll_id,
        token=submission.participant_token,
        email=submission.email,
        password=submission.password,
        now=now,
    )
    return await submit_vote(
        db,
        poll_id,
        participant.id,
        submission.votes,
        in_person_target_id=submission.in_person_participant_id,
        request=request,
        now=now,
    )
