"""
Results tabulation and redaction.

Tallies stored votes per question and option, then strips whatever the
requester's access tier and the poll's disclosure settings do not allow.
"""
import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.clock import now_ms
from ballotbox.core.exceptions import PermissionDenied
from ballotbox.core.permissions import AccessTier, PRIVILEGED_TIERS, ensure_poll_exists, resolve_access_tier
from ballotbox.models.participant import Participant, ParticipantStatus
from ballotbox.models.poll import Poll, PollStatus
from ballotbox.models.poll_role import PollAuditor
from ballotbox.models.user import User
from ballotbox.models.vote import Vote
from ballotbox.schemas.poll import BallotQuestion, PollSettings
from ballotbox.schemas.results import (
    OptionResult,
    ParticipantResult,
    PersonSummary,
    PollSummary,
    QuestionResult,
    ResultPermissions,
    ResultStatistics,
    ResultsView,
)
from ballotbox.utils.formatting import format_name_with_initials, percentage, round2

logger = logging.getLogger(__name__)

# Tiers that see every participant in full
PARTICIPANT_DETAIL_TIERS = PRIVILEGED_TIERS + (AccessTier.EDITOR,)


def tally_question(question: BallotQuestion, votes: list[Vote]) -> QuestionResult:
    """
    Count and weight-sum the selections of one question.

    Percentages are relative to this question's votes only.
    """
    total_votes = len(votes)
    total_weight = sum((Decimal(str(v.vote_weight)) for v in votes), Decimal("0"))

    options = []
    for option in question.options:
        selecting = [v for v in votes if option.id in (v.selected_options or [])]
        weighted = sum((Decimal(str(v.vote_weight)) for v in selecting), Decimal("0"))
        options.append(OptionResult(
            option_id=option.id,
            title=option.title,
            vote_count=len(selecting),
            weighted_vote_count=float(weighted),
            percentage=percentage(len(selecting), total_votes),
            weighted_percentage=percentage(weighted, total_weight),
        ))

    return QuestionResult(
        question_id=question.id,
        title=question.title,
        total_votes=total_votes,
        total_weighted_votes=float(total_weight),
        options=options,
    )


def redact_question(result: QuestionResult, show_vote_counts: bool, vote_weight_enabled: bool) -> QuestionResult:
    return QuestionResult(
        question_id=result.question_id,
        title=result.title,
        total_votes=result.total_votes if show_vote_counts else None,
        total_weighted_votes=(
            result.total_weighted_votes if show_vote_counts and vote_weight_enabled else None
        ),
    )


def project_participants(
    participants: list[Participant],
    tier: AccessTier,
    poll_settings: PollSettings,
    voted_at: dict[str, datetime],
) -> list[ParticipantResult]:
    """Participant rows visible to the tier."""
    if tier in PARTICIPANT_DETAIL_TIERS:
        return [
            ParticipantResult(
                id=p.id,
                name=p.name,
                email=p.email,
                is_user=p.is_user,
                vote_weight=p.vote_weight,
                has_voted=p.has_voted,
                voted_at=voted_at.get(p.id),
            )
            for p in participants
        ]

    if tier != AccessTier.PARTICIPANT:
        return []

    voted = [p for p in participants if p.has_voted]
    if poll_settings.show_participant_names or poll_settings.show_participant_initials:
        return [
            ParticipantResult(
                name=p.name if poll_settings.show_participant_names else format_name_with_initials(p.name),
                vote_weight=p.vote_weight if poll_settings.show_vote_weights else None,
                has_voted=True,
            )
            for p in voted
        ]
    if poll_settings.vote_weight_enabled:
        return [ParticipantResult(vote_weight=p.vote_weight, has_voted=True) for p in voted]
    return []


async def _poll_summary(db: AsyncSession, poll: Poll, poll_settings: PollSettings) -> PollSummary:
    manager = await db.get(User, poll.manager_id)
    result = await db.execute(
        select(User)
        .join(PollAuditor, PollAuditor.user_id == User.id)
        .where(PollAuditor.poll_id == poll.id)
        .order_by(PollAuditor.created.asc())
    )
    auditors = result.scalars().all()
    return PollSummary(
        id=poll.id,
        title=poll.title,
        description=poll.description,
        start_date=poll.start_date,
        end_date=poll.end_date,
        status=poll.status.value,
        manager=PersonSummary(
            id=manager.id if manager else None,
            name=manager.name if manager else None,
            email=manager.email if manager else None,
        ),
        auditors=[PersonSummary(id=a.id, name=a.name, email=a.email) for a in auditors],
        vote_weight_enabled=poll_settings.vote_weight_enabled,
    )


async def compute_results(
    db: AsyncSession,
    poll: Poll,
    tier: AccessTier,
    participant: Optional[Participant] = None,
    now: Optional[int] = None,
) -> ResultsView:
    """
    Build the results view of a poll for a requester tier.

    Args:
        tier: Requester access tier
        participant: The requesting participant, for participant-tier views
        now: Epoch millis, defaults to the current time
    """
    if participant is not None and (
        participant.poll_id != poll.id or participant.status != ParticipantStatus.APPROVED
    ):
        raise PermissionDenied()

    now = now if now is not None else now_ms()
    poll_settings = poll.poll_settings
    poll_ended = poll.has_ended(now) or poll.status == PollStatus.COMPLETED
    privileged = tier in PRIVILEGED_TIERS

    result = await db.execute(
        select(Participant)
        .where(Participant.poll_id == poll.id)
        .order_by(Participant.created.asc())
    )
    participants = list(result.scalars().all())

    result = await db.execute(select(Vote).where(Vote.poll_id == poll.id))
    votes_by_question: dict[str, list[Vote]] = defaultdict(list)
    for vote in result.scalars().all():
        votes_by_question[vote.question_id].append(vote)

    voted_at: dict[str, datetime] = {}
    if tier in PARTICIPANT_DETAIL_TIERS:
        result = await db.execute(
            select(Vote.participant_id, func.max(Vote.created))
            .where(Vote.poll_id == poll.id)
            .group_by(Vote.participant_id)
        )
        voted_at = {participant_id: created for participant_id, created in result.all()}

    total_participants = len(participants)
    voted_participants = sum(1 for p in participants if p.has_voted)
    total_vote_weight = sum(
        (Decimal(str(p.vote_weight)) for p in participants if p.has_voted), Decimal("0")
    )

    show_vote_counts = poll_ended or poll_settings.show_vote_counts or privileged
    show_breakdown = poll_ended or poll_settings.show_results_before_end or privileged

    questions = [tally_question(q, votes_by_question.get(q.id, [])) for q in poll.questions]
    if not show_breakdown:
        questions = [
            redact_question(q, show_vote_counts, poll_settings.vote_weight_enabled)
            for q in questions
        ]

    is_participant = tier == AccessTier.PARTICIPANT
    sees_details = tier in PARTICIPANT_DETAIL_TIERS
    permissions = ResultPermissions(
        can_view_full_results=privileged,
        can_view_vote_counts=show_vote_counts,
        can_view_results_breakdown=show_breakdown,
        can_view_participant_names=sees_details or (is_participant and poll_settings.show_participant_names),
        can_view_participant_initials=sees_details or (is_participant and poll_settings.show_participant_initials),
        can_view_vote_weights=sees_details or (is_participant and poll_settings.show_vote_weights),
    )

    return ResultsView(
        tier=tier.value,
        poll_ended=poll_ended,
        poll=await _poll_summary(db, poll, poll_settings),
        statistics=ResultStatistics(
            total_participants=total_participants,
            voted_participants=voted_participants,
            participation_rate=percentage(voted_participants, total_participants),
            total_vote_weight=round2(total_vote_weight) if poll_settings.vote_weight_enabled else None,
        ),
        questions=questions,
        participants=project_participants(participants, tier, poll_settings, voted_at),
        permissions=permissions,
    )


async def results_for_user(db: AsyncSession, user: User, poll_id: str, now: Optional[int] = None) -> ResultsView:
    """Results for an authenticated account; tier none is refused."""
    poll = await ensure_poll_exists(db, poll_id)
    tier = await resolve_access_tier(db, user, poll)
    if tier == AccessTier.NONE:
        raise PermissionDenied()
    return await compute_results(db, poll, tier, now=now)


async def results_for_participant_token(
    db: AsyncSession, poll_id: str, token: str, now: Optional[int] = None
) -> ResultsView:
    """Participant-tier results for a token holder."""
    poll = await ensure_poll_exists(db, poll_id)
    if not poll.poll_settings.allow_results_view:
        raise PermissionDenied("Results viewing is not allowed for this poll")

    result = await db.execute(
        select(Participant).where(
            Participant.poll_id == poll.id,
            Participant.token == token,
            Participant.status == ParticipantStatus.APPROVED,
        )
    )
    participant = result.scalar_one_or_none()
    if participant is None:
        raise PermissionDenied()
    return await compute_results(db, poll, AccessTier.PARTICIPANT, participant=participant, now=now)
