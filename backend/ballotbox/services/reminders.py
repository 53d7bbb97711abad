"""
Invitation mail flow.

send_pending_invitations is meant to be triggered by an external scheduler;
each participant is mailed at most once (last_email_sent_at).
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.clock import format_date, now_ms
from ballotbox.core.config import settings
from ballotbox.core.exceptions import BallotboxError, ValidationFailed
from ballotbox.core.permissions import require_capability
from ballotbox.models.participant import Participant, ParticipantStatus
from ballotbox.models.poll import Poll, PollStatus
from ballotbox.models.user import User
from ballotbox.services.email import EmailService, InvitationTemplate, email_service
from ballotbox.services.mail_templates import invitation_template_for
from ballotbox.services.participants import get_participant

logger = logging.getLogger(__name__)


@dataclass
class InvitationRunResult:
    polls_processed: int = 0
    emails_sent: int = 0
    errors: list[str] = field(default_factory=list)


def poll_url(poll: Poll, participant: Participant) -> str:
    url = f"{settings.FRONTEND_URL}/poll/{poll.id}"
    if participant.token:
        url += f"?token={participant.token}"
    return url


def invitation_variables(poll: Poll, participant: Participant) -> dict[str, str]:
    return {
        "participantName": participant.name,
        "pollTitle": poll.title,
        "pollDescription": poll.description or "No description provided",
        "pollUrl": poll_url(poll, participant),
        "pollStartDate": format_date(poll.start_date),
        "pollEndDate": format_date(poll.end_date),
    }


async def _mail_participant(
    db: AsyncSession,
    mailer: EmailService,
    poll: Poll,
    participant: Participant,
    template: InvitationTemplate,
    now: int,
) -> bool:
    sent = await mailer.send_poll_invitation(
        participant.email, invitation_variables(poll, participant), template
    )
    if sent:
        participant.last_email_sent_at = now
        await db.flush()
    return sent


async def send_pending_invitations(
    db: AsyncSession,
    mailer: EmailService = email_service,
    now: Optional[int] = None,
) -> InvitationRunResult:
    """Mail every approved, not-yet-voted, not-yet-mailed participant of running polls."""
    now = now if now is not None else now_ms()
    run = InvitationRunResult()

    result = await db.execute(
        select(Poll).where(
            Poll.status == PollStatus.ACTIVE,
            Poll.will_send_emails.is_(True),
            Poll.start_date <= now,
            Poll.end_date >= now,
        )
    )
    polls = result.scalars().all()
    if not polls:
        logger.info("No running polls with email sending enabled")
        return run

    for poll in polls:
        template = await invitation_template_for(db, poll)
        result = await db.execute(
            select(Participant)
            .where(
                Participant.poll_id == poll.id,
                Participant.last_email_sent_at.is_(None),
                Participant.has_voted.is_(False),
                Participant.status == ParticipantStatus.APPROVED,
            )
            .order_by(Participant.created.asc())
        )
        for participant in result.scalars().all():
            if await _mail_participant(db, mailer, poll, participant, template, now):
                run.emails_sent += 1
            else:
                run.errors.append(f"Failed to send email to {participant.email}")
        run.polls_processed += 1

    logger.info(
        f"Invitation run: {run.polls_processed} polls, {run.emails_sent} emails, {len(run.errors)} errors"
    )
    return run


async def send_participant_email(
    db: AsyncSession,
    user: User,
    poll_id: str,
    participant_id: str,
    mailer: EmailService = email_service,
    now: Optional[int] = None,
) -> Participant:
    """Manually (re)send the invitation to one participant. Admin or manager."""
    poll, _ = await require_capability(db, user, poll_id, "can_manage")
    if poll.status != PollStatus.ACTIVE:
        raise ValidationFailed("Emails can only be sent for active polls")

    participant = await get_participant(db, poll.id, participant_id)
    now = now if now is not None else now_ms()
    template = await invitation_template_for(db, poll)
    if not await _mail_participant(db, mailer, poll, participant, template, now):
        raise BallotboxError("Failed to send email")
    return participant
