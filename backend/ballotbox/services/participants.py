"""
Participant roster service.

Provides business logic for:
- Enrolling participants one by one or from a user group
- Updating, removing and listing participants
- Revealing and revoking participant tokens
- Marking participants for in-person voting
- Reading a participant's audit trail
"""
import logging
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.clock import now_ms
from ballotbox.core.exceptions import (
    Conflict,
    NotFound,
    PermissionDenied,
    StateError,
    ValidationFailed,
)
from ballotbox.core.permissions import get_auditor, require_capability
from ballotbox.core.security import generate_participant_token
from ballotbox.models.audit_event import AuditEvent, AuditEventType
from ballotbox.models.participant import Participant, ParticipantStatus
from ballotbox.models.user import User, UserRole
from ballotbox.models.user_group import UserGroup
from ballotbox.models.vote import Vote
from ballotbox.schemas.participant import (
    AuditEventResponse,
    GroupParticipantsCreate,
    ParticipantCreate,
    ParticipantUpdate,
)
from ballotbox.services.audit import RequestMeta, NO_REQUEST_META, log_audit_event
from ballotbox.services.users import get_group, group_members

logger = logging.getLogger(__name__)


async def get_participant(db: AsyncSession, poll_id: str, participant_id: str) -> Participant:
    result = await db.execute(
        select(Participant).where(
            Participant.id == participant_id,
            Participant.poll_id == poll_id,
        )
    )
    participant = result.scalar_one_or_none()
    if participant is None:
        raise NotFound("Participant not found")
    return participant


async def _token_taken(
    db: AsyncSession, poll_id: str, token: str, exclude_id: Optional[str] = None
) -> bool:
    query = select(Participant.id).where(
        Participant.poll_id == poll_id,
        Participant.token == token,
    )
    if exclude_id:
        query = query.where(Participant.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def _unique_token(db: AsyncSession, poll_id: str) -> str:
    token = generate_participant_token()
    while await _token_taken(db, poll_id, token):
        token = generate_participant_token()
    return token


# ============================================================================
# ENROLLMENT
# ============================================================================

async def add_participant(
    db: AsyncSession,
    user: User,
    poll_id: str,
    data: ParticipantCreate,
    request: RequestMeta = NO_REQUEST_META,
) -> Participant:
    """
    Enroll one participant.

    Registered users are linked by email and take their account name;
    everyone else gets an access token (custom or generated).
    """
    poll, _ = await require_capability(db, user, poll_id, "can_manage_participants")
    email = data.email.lower()

    existing = await db.execute(
        select(Participant.id).where(
            Participant.poll_id == poll.id,
            Participant.email == email,
        )
    )
    if existing.first() is not None:
        raise Conflict("Participant with this email already exists in this poll")

    result = await db.execute(select(User).where(User.email == email))
    system_user = result.scalar_one_or_none()

    is_user = data.is_user if data.is_user is not None else system_user is not None
    if is_user and system_user is None:
        raise ValidationFailed(
            "No registered user with this email",
            details=[{"field": "email", "message": "user not found"}],
        )

    token = None
    token_viewed = False
    if is_user:
        name = system_user.name
    else:
        name = (data.name or "").strip() or email
        custom_token = (data.token or "").strip()
        if custom_token:
            if await _token_taken(db, poll.id, custom_token):
                raise Conflict("Token is already in use in this poll")
            token = custom_token
            token_viewed = True
        else:
            token = await _unique_token(db, poll.id)

    participant = Participant(
        poll_id=poll.id,
        user_id=system_user.id if is_user else None,
        email=email,
        name=name,
        is_user=is_user,
        token=token,
        token_used=False,
        token_viewed=token_viewed,
        vote_weight=data.vote_weight,
        status=ParticipantStatus.APPROVED,
        has_voted=False,
    )
    db.add(participant)
    await db.flush()

    await log_audit_event(
        db,
        poll,
        AuditEventType.PARTICIPANT_ADDED,
        actor_user_id=user.id,
        participant_id=participant.id,
        meta={
            "email": participant.email,
            "name": participant.name,
            "is_user": participant.is_user,
            "vote_weight": participant.vote_weight,
            "custom_token": token_viewed,
        },
        request=request,
    )
    logger.info(f"Participant {participant.id} added to poll {poll.id}")
    return participant


async def add_group_participants(
    db: AsyncSession,
    user: User,
    poll_id: str,
    data: GroupParticipantsCreate,
    request: RequestMeta = NO_REQUEST_META,
) -> tuple[UserGroup, int, list[Participant], list[dict]]:
    """
    Enroll every member of a user group as a user participant.

    Members already enrolled (by email) are skipped.

    Returns:
        (group, member count, added participants, skipped entries)
    """
    poll, _ = await require_capability(db, user, poll_id, "can_manage_participants")

    group = await get_group(db, data.group_id)
    members = await group_members(db, group)
    if not members:
        raise ValidationFailed("Group has no members")

    result = await db.execute(select(Participant.email).where(Participant.poll_id == poll.id))
    existing_emails = {row[0] for row in result.all()}

    added: list[Participant] = []
    skipped: list[dict] = []
    for member in members:
        email = member.email.lower()
        if email in existing_emails:
            skipped.append({"email": email, "name": member.name, "reason": "Already a participant"})
            continue
        participant = Participant(
            poll_id=poll.id,
            user_id=member.id,
            email=email,
            name=member.name,
            is_user=True,
            token=None,
            vote_weight=data.vote_weight,
            status=ParticipantStatus.APPROVED,
            has_voted=False,
        )
        db.add(participant)
        added.append(participant)
        existing_emails.add(email)
    await db.flush()

    if added:
        await log_audit_event(
            db,
            poll,
            AuditEventType.GROUP_PARTICIPANTS_ADDED,
            actor_user_id=user.id,
            meta={
                "group_id": group.id,
                "group_name": group.name,
                "total_members": len(members),
                "added_count": len(added),
                "skipped_count": len(skipped),
                "vote_weight": data.vote_weight,
            },
            request=request,
        )
    logger.info(f"Group {group.id}: {len(added)} added, {len(skipped)} skipped in poll {poll.id}")
    return group, len(members), added, skipped


# ============================================================================
# MAINTENANCE
# ============================================================================

async def list_participants(db: AsyncSession, user: User, poll_id: str) -> list[Participant]:
    poll, _ = await require_capability(db, user, poll_id, "can_view_participants")
    result = await db.execute(
        select(Participant)
        .where(Participant.poll_id == poll.id)
        .order_by(Participant.created.asc())
    )
    return list(result.scalars().all())


async def update_participant(
    db: AsyncSession,
    user: User,
    poll_id: str,
    participant_id: str,
    data: ParticipantUpdate,
    request: RequestMeta = NO_REQUEST_META,
) -> Participant:
    poll, _ = await require_capability(db, user, poll_id, "can_manage_participants")
    participant = await get_participant(db, poll.id, participant_id)

    changes: dict[str, dict] = {}
    if data.vote_weight is not None and data.vote_weight != participant.vote_weight:
        changes["vote_weight"] = {"old": participant.vote_weight, "new": data.vote_weight}
        participant.vote_weight = data.vote_weight

    if data.name is not None and data.name.strip() and not participant.is_user:
        new_name = data.name.strip()
        if new_name != participant.name:
            changes["name"] = {"old": participant.name, "new": new_name}
            participant.name = new_name

    # Blank tokens are ignored
    new_token = (data.token or "").strip()
    if new_token and not participant.is_user and new_token != participant.token:
        if await _token_taken(db, poll.id, new_token, exclude_id=participant.id):
            raise Conflict("Token is already in use in this poll")
        participant.token = new_token
        participant.token_viewed = True
        changes["token"] = {"changed": True}

    await db.flush()

    if changes:
        await log_audit_event(
            db,
            poll,
            AuditEventType.PARTICIPANT_UPDATED,
            actor_user_id=user.id,
            participant_id=participant.id,
            meta={"email": participant.email, "changes": changes},
            request=request,
        )
    return participant


async def remove_participant(
    db: AsyncSession,
    user: User,
    poll_id: str,
    participant_id: str,
    request: RequestMeta = NO_REQUEST_META,
) -> None:
    """Remove a participant together with their votes."""
    poll, _ = await require_capability(db, user, poll_id, "can_manage_participants")
    participant = await get_participant(db, poll.id, participant_id)
    snapshot = {
        "email": participant.email,
        "name": participant.name,
        "is_user": participant.is_user,
        "has_voted": participant.has_voted,
        "vote_weight": participant.vote_weight,
    }

    async with db.begin_nested():
        await db.execute(delete(Vote).where(Vote.participant_id == participant.id))
        await db.execute(delete(Participant).where(Participant.id == participant.id))

    await log_audit_event(
        db,
        poll,
        AuditEventType.PARTICIPANT_REMOVED,
        actor_user_id=user.id,
        participant_id=participant_id,
        meta=snapshot,
        request=request,
    )
    logger.info(f"Participant {participant_id} removed from poll {poll.id}")


# ============================================================================
# TOKENS
# ============================================================================

async def reveal_participant_token(
    db: AsyncSession,
    user: User,
    poll_id: str,
    participant_id: str,
    request: RequestMeta = NO_REQUEST_META,
) -> Participant:
    poll, _ = await require_capability(db, user, poll_id, "can_manage_participants")
    participant = await get_participant(db, poll.id, participant_id)
    if participant.is_user or not participant.token:
        raise ValidationFailed("Registered users sign in with their account and have no token")

    participant.token_viewed = True
    await db.flush()

    await log_audit_event(
        db,
        poll,
        AuditEventType.TOKEN_VIEWED,
        actor_user_id=user.id,
        participant_id=participant.id,
        meta={"email": participant.email, "name": participant.name},
        request=request,
    )
    return participant


async def revoke_participant_token(
    db: AsyncSession,
    user: User,
    poll_id: str,
    participant_id: str,
    request: RequestMeta = NO_REQUEST_META,
    now: Optional[int] = None,
) -> Participant:
    """Replace a participant's token; the old one stops working immediately."""
    poll, _ = await require_capability(db, user, poll_id, "can_manage_participants")
    participant = await get_participant(db, poll.id, participant_id)
    if participant.is_user:
        raise ValidationFailed("Registered users sign in with their account and have no token")

    participant.token = await _unique_token(db, poll.id)
    participant.token_used = False
    participant.token_viewed = False
    participant.token_last_revoked_at = now if now is not None else now_ms()
    await db.flush()

    await log_audit_event(
        db,
        poll,
        AuditEventType.TOKEN_REVOKED,
        actor_user_id=user.id,
        participant_id=participant.id,
        meta={"email": participant.email, "name": participant.name},
        request=request,
    )
    return participant


# ============================================================================
# IN-PERSON VOTING
# ============================================================================

async def mark_in_person_voted(
    db: AsyncSession,
    user: User,
    poll_id: str,
    participant_id: str,
    request: RequestMeta = NO_REQUEST_META,
    now: Optional[int] = None,
) -> Participant:
    """
    Record that the caller will cast the participant's ballot in person.

    The marker is the audit event itself; the participant stays not-voted
    until the delegated ballot is submitted.
    """
    poll, _ = await require_capability(db, user, poll_id, "can_manage_participants")
    if not poll.poll_settings.allow_in_person_voting:
        raise ValidationFailed("In-person voting is not enabled for this poll")

    now = now if now is not None else now_ms()
    if not poll.is_open_for_voting(now):
        raise StateError()

    participant = await get_participant(db, poll.id, participant_id)
    if participant.has_voted:
        raise Conflict("Participant has already voted")

    existing = await db.execute(
        select(AuditEvent.id).where(
            AuditEvent.poll_id == poll.id,
            AuditEvent.participant_id == participant.id,
            AuditEvent.actor_user_id == user.id,
            AuditEvent.event_type == AuditEventType.MARKED_AS_IN_PERSON_VOTED.value,
        )
    )
    if existing.first() is not None:
        raise Conflict("Participant is already marked for in-person voting")

    await log_audit_event(
        db,
        poll,
        AuditEventType.MARKED_AS_IN_PERSON_VOTED,
        actor_user_id=user.id,
        participant_id=participant.id,
        meta={
            "participant_name": participant.name,
            "participant_email": participant.email,
            "marked_by": user.email,
        },
        request=request,
        required=True,
    )
    logger.info(f"Participant {participant.id} marked for in-person voting by {user.id}")
    return participant


# ============================================================================
# AUDIT TRAIL
# ============================================================================

async def participant_audit_events(
    db: AsyncSession,
    user: User,
    poll_id: str,
    participant_id: str,
) -> list[AuditEventResponse]:
    """Audit events naming a participant, oldest first. Admin, manager or auditor."""
    poll, _ = await require_capability(db, user, poll_id, "can_view")
    if not (
        user.role == UserRole.ADMIN
        or poll.manager_id == user.id
        or await get_auditor(db, poll.id, user.id) is not None
    ):
        raise PermissionDenied()

    participant = await get_participant(db, poll.id, participant_id)

    result = await db.execute(
        select(AuditEvent, User)
        .outerjoin(User, AuditEvent.actor_user_id == User.id)
        .where(
            AuditEvent.poll_id == poll.id,
            AuditEvent.participant_id == participant.id,
        )
        .order_by(AuditEvent.created_at.asc(), AuditEvent.created.asc())
    )

    events = []
    for event, actor in result.all():
        actor_name = f"{actor.name} ({actor.email})" if actor is not None else "System"
        events.append(AuditEventResponse(
            id=event.id,
            event_type=event.event_type,
            actor_user_id=event.actor_user_id,
            actor_name=actor_name,
            poll_id=event.poll_id,
            participant_id=event.participant_id,
            meta=event.meta,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            created_at=event.created_at,
        ))
    return events
