"""
Poll lifecycle service.

Provides business logic for:
- Poll creation, update (mutation policy), deletion and email toggling
- Listing the polls visible to a caller
- Auditor / editor role assignments
"""
import logging
from datetime import timedelta
from typing import Optional, Union

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.clock import now_ms
from ballotbox.core.config import settings
from ballotbox.core.exceptions import Conflict, NotFound, PermissionDenied, ValidationFailed
from ballotbox.core.permissions import ensure_poll_exists, require_capability
from ballotbox.models.audit_event import AuditEvent, AuditEventType
from ballotbox.models.participant import Participant, ParticipantStatus
from ballotbox.models.poll import Poll, PollStatus
from ballotbox.models.poll_role import PollAuditor, PollEditor
from ballotbox.models.user import User, UserRole
from ballotbox.models.vote import Vote
from ballotbox.schemas.permissions import Capabilities
from ballotbox.schemas.poll import PollCreate, PollUpdate
from ballotbox.services.audit import RequestMeta, NO_REQUEST_META, log_audit_event

logger = logging.getLogger(__name__)

# Fields a non-manager (editor) may ever change
EDITOR_UPDATABLE_FIELDS = frozenset({"title", "description", "ballot", "settings"})
# Fields anyone but a manager may change once an active poll has started
STARTED_POLL_UPDATABLE_FIELDS = frozenset({"settings"})

ALLOWED_STATUS_TRANSITIONS: dict[PollStatus, set[PollStatus]] = {
    PollStatus.DRAFT: {PollStatus.ACTIVE, PollStatus.CANCELLED},
    PollStatus.ACTIVE: {PollStatus.COMPLETED, PollStatus.CANCELLED},
    PollStatus.COMPLETED: set(),
    PollStatus.CANCELLED: set(),
}

AssignmentModel = Union[type[PollAuditor], type[PollEditor]]


# ============================================================================
# MUTATION POLICY
# ============================================================================

def check_update_allowed(
    poll: Poll,
    changed_fields: set[str],
    permissions: Capabilities,
    now: int,
) -> None:
    """
    Enforce which fields a caller may change.

    Both rules apply; any forbidden field rejects the whole update.
    """
    started = poll.status == PollStatus.ACTIVE and poll.start_date <= now
    if started and not permissions.can_manage:
        restricted = changed_fields - STARTED_POLL_UPDATABLE_FIELDS
        if restricted:
            raise ValidationFailed(
                "Cannot modify poll details after it has started",
                details=[{"field": f, "message": "locked after start"} for f in sorted(restricted)],
            )

    if not permissions.can_manage:
        restricted = changed_fields - EDITOR_UPDATABLE_FIELDS
        if restricted:
            raise ValidationFailed(
                "Insufficient permissions to modify these fields",
                details=[{"field": f, "message": "manager only"} for f in sorted(restricted)],
            )


def parse_status_transition(current: PollStatus, requested: str) -> PollStatus:
    try:
        new_status = PollStatus(requested)
    except ValueError:
        raise ValidationFailed(
            f"Unknown poll status '{requested}'",
            details=[{"field": "status", "message": "unknown status"}],
        )
    if new_status != current and new_status not in ALLOWED_STATUS_TRANSITIONS[current]:
        raise ValidationFailed(
            f"Cannot change poll status from {current.value} to {new_status.value}",
            details=[{"field": "status", "message": "transition not allowed"}],
        )
    return new_status


# ============================================================================
# POLLS
# ============================================================================

async def create_poll(
    db: AsyncSession,
    user: User,
    data: PollCreate,
    now: Optional[int] = None,
) -> Poll:
    """Create a draft poll. Admins must name the managing sub-admin."""
    if user.role not in (UserRole.ADMIN, UserRole.SUB_ADMIN):
        raise PermissionDenied("Sub-admin access required")
    now = now if now is not None else now_ms()

    manager_id = data.manager_id
    if not manager_id:
        if user.role != UserRole.SUB_ADMIN:
            raise ValidationFailed(
                "Manager must be specified for admin-created polls",
                details=[{"field": "manager_id", "message": "required"}],
            )
        manager_id = user.id

    manager = await db.get(User, manager_id)
    if manager is None or manager.role != UserRole.SUB_ADMIN:
        raise ValidationFailed(
            "Manager must be a sub-admin",
            details=[{"field": "manager_id", "message": "must reference a sub-admin"}],
        )

    start_date = data.start_date if data.start_date is not None else now
    end_date = data.end_date if data.end_date is not None else now + int(
        timedelta(days=settings.DEFAULT_POLL_DURATION_DAYS).total_seconds() * 1000
    )
    if start_date > end_date:
        raise ValidationFailed(
            "start_date must not be after end_date",
            details=[{"field": "end_date", "message": "before start_date"}],
        )

    poll = Poll(
        title=data.title,
        description=data.description,
        start_date=start_date,
        end_date=end_date,
        manager_id=manager_id,
        created_by_id=user.id,
        settings=data.settings.model_dump(),
        ballot=[q.model_dump() for q in data.ballot],
        status=PollStatus.DRAFT,
    )
    db.add(poll)
    await db.flush()

    logger.info(f"Poll {poll.id} created by {user.id} (manager {manager_id})")
    return poll


async def update_poll(
    db: AsyncSession,
    user: User,
    poll_id: str,
    data: PollUpdate,
    request: RequestMeta = NO_REQUEST_META,
    now: Optional[int] = None,
) -> Poll:
    """Apply a partial update after checking the mutation policy."""
    poll, permissions = await require_capability(db, user, poll_id, "can_edit")
    now = now if now is not None else now_ms()

    changed = set(data.model_fields_set)
    check_update_allowed(poll, changed, permissions, now)

    new_status = poll.status
    if "status" in changed and data.status is not None:
        new_status = parse_status_transition(poll.status, data.status)

    start_date = data.start_date if "start_date" in changed and data.start_date is not None else poll.start_date
    end_date = data.end_date if "end_date" in changed and data.end_date is not None else poll.end_date
    if start_date > end_date:
        raise ValidationFailed(
            "start_date must not be after end_date",
            details=[{"field": "end_date", "message": "before start_date"}],
        )

    before = {
        "title": poll.title,
        "description": poll.description,
        "start_date": poll.start_date,
        "end_date": poll.end_date,
        "status": poll.status.value,
    }

    if "title" in changed and data.title is not None:
        poll.title = data.title
    if "description" in changed:
        poll.description = data.description
    poll.start_date = start_date
    poll.end_date = end_date
    poll.status = new_status
    if "settings" in changed and data.settings is not None:
        poll.settings = data.settings.model_dump()
    if "ballot" in changed and data.ballot is not None:
        poll.ballot = [q.model_dump() for q in data.ballot]

    await db.flush()

    await log_audit_event(
        db,
        poll,
        AuditEventType.POLL_UPDATED,
        actor_user_id=user.id,
        meta={
            "updated_fields": sorted(changed),
            "old_title": before["title"],
            "new_title": poll.title,
            "old_description": before["description"],
            "new_description": poll.description,
            "old_start_date": before["start_date"],
            "new_start_date": poll.start_date,
            "old_end_date": before["end_date"],
            "new_end_date": poll.end_date,
            "old_status": before["status"],
            "new_status": poll.status.value,
            "settings_changed": "settings" in changed,
            "ballot_changed": "ballot" in changed,
        },
        request=request,
    )
    return poll


async def toggle_emails(db: AsyncSession, user: User, poll_id: str) -> Poll:
    """Flip will_send_emails; managers and admins only, active polls only."""
    poll, _ = await require_capability(db, user, poll_id, "can_manage")
    if poll.status != PollStatus.ACTIVE:
        raise ValidationFailed("Email sending can only be toggled for active polls")
    poll.will_send_emails = not poll.will_send_emails
    await db.flush()
    return poll


async def delete_poll(db: AsyncSession, user: User, poll_id: str) -> None:
    """Delete a poll and everything it owns. Admin only."""
    poll, _ = await require_capability(db, user, poll_id, "can_delete")

    async with db.begin_nested():
        await db.execute(delete(Vote).where(Vote.poll_id == poll.id))
        await db.execute(delete(Participant).where(Participant.poll_id == poll.id))
        await db.execute(delete(PollAuditor).where(PollAuditor.poll_id == poll.id))
        await db.execute(delete(PollEditor).where(PollEditor.poll_id == poll.id))
        await db.execute(delete(AuditEvent).where(AuditEvent.poll_id == poll.id))
        await db.execute(delete(Poll).where(Poll.id == poll.id))
    logger.info(f"Poll {poll_id} deleted by {user.id}")


async def list_polls_for_user(db: AsyncSession, user: User) -> list[Poll]:
    """
    Polls visible to a caller.

    Admins see all polls, sub-admins the polls they manage, audit or edit,
    users the polls they are an approved participant of.
    """
    if user.role == UserRole.ADMIN:
        result = await db.execute(select(Poll).order_by(Poll.created.desc()))
        return list(result.scalars().all())

    if user.role == UserRole.SUB_ADMIN:
        audited = select(PollAuditor.poll_id).where(PollAuditor.user_id == user.id)
        edited = select(PollEditor.poll_id).where(PollEditor.user_id == user.id)
        result = await db.execute(
            select(Poll)
            .where(
                (Poll.manager_id == user.id)
                | Poll.id.in_(audited)
                | Poll.id.in_(edited)
            )
            .order_by(Poll.created.desc())
        )
        return list(result.scalars().all())

    participating = select(Participant.poll_id).where(
        Participant.user_id == user.id,
        Participant.status == ParticipantStatus.APPROVED,
    )
    result = await db.execute(
        select(Poll).where(Poll.id.in_(participating)).order_by(Poll.created.desc())
    )
    return list(result.scalars().all())


async def list_other_polls(db: AsyncSession, user: User) -> list[Poll]:
    """
    Polls a sub-admin holds no role on, for browsing.

    Admins already see every poll and users only their own, so both get an
    empty list.
    """
    if user.role != UserRole.SUB_ADMIN:
        return []
    audited = select(PollAuditor.poll_id).where(PollAuditor.user_id == user.id)
    edited = select(PollEditor.poll_id).where(PollEditor.user_id == user.id)
    result = await db.execute(
        select(Poll)
        .where(
            Poll.manager_id != user.id,
            Poll.id.not_in(audited),
            Poll.id.not_in(edited),
        )
        .order_by(Poll.created.desc())
    )
    return list(result.scalars().all())


async def get_poll_for_user(db: AsyncSession, user: User, poll_id: str) -> tuple[Poll, Capabilities]:
    return await require_capability(db, user, poll_id, "can_view")


# ============================================================================
# ROLE ASSIGNMENTS
# ============================================================================

async def _add_assignment(
    db: AsyncSession,
    user: User,
    poll_id: str,
    target_user_id: str,
    model: AssignmentModel,
    label: str,
) -> tuple[PollAuditor | PollEditor, User]:
    poll, _ = await require_capability(db, user, poll_id, "can_manage")

    target = await db.get(User, target_user_id)
    if target is None:
        raise NotFound("User not found")
    if target.role != UserRole.SUB_ADMIN:
        raise ValidationFailed(f"Only sub-admins can be assigned as {label}s")

    existing = await db.execute(
        select(model).where(model.poll_id == poll.id, model.user_id == target.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise Conflict(f"User is already an {label} for this poll")

    assignment = model(poll_id=poll.id, user_id=target.id)
    db.add(assignment)
    await db.flush()
    logger.info(f"{label.capitalize()} {target.id} added to poll {poll.id} by {user.id}")
    return assignment, target


async def add_auditor(db: AsyncSession, user: User, poll_id: str, target_user_id: str):
    return await _add_assignment(db, user, poll_id, target_user_id, PollAuditor, "auditor")


async def add_editor(db: AsyncSession, user: User, poll_id: str, target_user_id: str):
    return await _add_assignment(db, user, poll_id, target_user_id, PollEditor, "editor")


async def _remove_assignment(
    db: AsyncSession,
    user: User,
    poll_id: str,
    assignment_id: str,
    model: AssignmentModel,
    label: str,
) -> None:
    poll, _ = await require_capability(db, user, poll_id, "can_manage")
    result = await db.execute(
        select(model).where(model.id == assignment_id, model.poll_id == poll.id)
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFound(f"{label.capitalize()} not found")
    await db.delete(assignment)
    await db.flush()


async def remove_auditor(db: AsyncSession, user: User, poll_id: str, auditor_id: str) -> None:
    await _remove_assignment(db, user, poll_id, auditor_id, PollAuditor, "auditor")


async def remove_editor(db: AsyncSession, user: User, poll_id: str, editor_id: str) -> None:
    await _remove_assignment(db, user, poll_id, editor_id, PollEditor, "editor")


async def list_assignments(
    db: AsyncSession, user: User, poll_id: str
) -> tuple[Optional[User], list[tuple[PollAuditor, User]], list[tuple[PollEditor, User]]]:
    """Manager, auditors and editors of a poll with their user records."""
    poll, _ = await require_capability(db, user, poll_id, "can_view_participants")

    manager = await db.get(User, poll.manager_id)
    auditors = await db.execute(
        select(PollAuditor, User)
        .join(User, PollAuditor.user_id == User.id)
        .where(PollAuditor.poll_id == poll.id)
        .order_by(PollAuditor.created.asc())
    )
    editors = await db.execute(
        select(PollEditor, User)
        .join(User, PollEditor.user_id == User.id)
        .where(PollEditor.poll_id == poll.id)
        .order_by(PollEditor.created.asc())
    )
    return (
        manager,
        [(row[0], row[1]) for row in auditors.all()],
        [(row[0], row[1]) for row in editors.all()],
    )


async def available_sub_admins(db: AsyncSession, user: User, poll_id: str) -> list[User]:
    """Sub-admins not yet assigned as auditor or editor of the poll."""
    poll, _ = await require_capability(db, user, poll_id, "can_manage")
    audited = select(PollAuditor.user_id).where(PollAuditor.poll_id == poll.id)
    edited = select(PollEditor.user_id).where(PollEditor.poll_id == poll.id)
    result = await db.execute(
        select(User)
        .where(
            User.role == UserRole.SUB_ADMIN,
            User.id.not_in(audited),
            User.id.not_in(edited),
        )
        .order_by(User.name.asc())
    )
    return list(result.scalars().all())
