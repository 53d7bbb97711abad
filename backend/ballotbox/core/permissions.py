"""Role & capability resolution for poll-scoped resources.

A caller's capabilities on a poll come from their global role (admin), the
poll's manager field, and the relations they hold on the poll (auditor,
editor, approved participant). Relation capabilities are unioned.
"""
import enum
import operator
from functools import reduce
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.exceptions import NotFound, PermissionDenied
from ballotbox.models.participant import Participant, ParticipantStatus
from ballotbox.models.poll import Poll
from ballotbox.models.poll_role import PollAuditor, PollEditor
from ballotbox.models.user import User, UserRole
from ballotbox.schemas.permissions import Capabilities


NO_CAPABILITIES = Capabilities()
ADMIN_CAPABILITIES = Capabilities.full()
# Delete is admin-exclusive
MANAGER_CAPABILITIES = Capabilities.full(can_delete=False)
AUDITOR_CAPABILITIES = Capabilities(
    can_view=True,
    can_audit=True,
    can_view_results=True,
    can_view_participants=True,
    can_view_settings=True,
)
EDITOR_CAPABILITIES = Capabilities(
    can_view=True,
    can_edit=True,
    can_view_results=True,
    can_view_participants=True,
    can_manage_participants=True,
    can_view_settings=True,
    can_edit_settings=True,
)


class AccessTier(str, enum.Enum):
    """Coarse access category driving results redaction."""
    ADMIN = "admin"
    MANAGER = "manager"
    AUDITOR = "auditor"
    EDITOR = "editor"
    PARTICIPANT = "participant"
    NONE = "none"


PRIVILEGED_TIERS = (AccessTier.ADMIN, AccessTier.MANAGER, AccessTier.AUDITOR)


def participant_capabilities(poll: Poll) -> Capabilities:
    return Capabilities(
        can_view=True,
        can_view_results=poll.poll_settings.allow_results_view,
    )


def combine_capabilities(capability_sets: Iterable[Capabilities]) -> Capabilities:
    """Union of capability sets, field by field."""
    return reduce(operator.or_, capability_sets, NO_CAPABILITIES)


def capabilities_for(
    poll: Optional[Poll],
    user_id: str,
    user_role: UserRole | str,
    is_auditor: bool = False,
    is_editor: bool = False,
    is_participant: bool = False,
) -> Capabilities:
    """Pure resolution from already-loaded relation flags."""
    if poll is None:
        return NO_CAPABILITIES
    if UserRole(user_role) == UserRole.ADMIN:
        return ADMIN_CAPABILITIES
    if poll.manager_id == user_id:
        return MANAGER_CAPABILITIES

    matched = []
    if is_auditor:
        matched.append(AUDITOR_CAPABILITIES)
    if is_editor:
        matched.append(EDITOR_CAPABILITIES)
    if is_participant:
        matched.append(participant_capabilities(poll))
    return combine_capabilities(matched)


async def get_poll(db: AsyncSession, poll_id: str) -> Optional[Poll]:
    result = await db.execute(select(Poll).where(Poll.id == poll_id))
    return result.scalar_one_or_none()


async def ensure_poll_exists(db: AsyncSession, poll_id: str) -> Poll:
    poll = await get_poll(db, poll_id)
    if poll is None:
        raise NotFound("Poll not found")
    return poll


async def get_auditor(db: AsyncSession, poll_id: str, user_id: str) -> Optional[PollAuditor]:
    result = await db.execute(
        select(PollAuditor).where(
            PollAuditor.poll_id == poll_id,
            PollAuditor.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_editor(db: AsyncSession, poll_id: str, user_id: str) -> Optional[PollEditor]:
    result = await db.execute(
        select(PollEditor).where(
            PollEditor.poll_id == poll_id,
            PollEditor.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_approved_participant(
    db: AsyncSession, poll_id: str, user_id: str
) -> Optional[Participant]:
    result = await db.execute(
        select(Participant).where(
            Participant.poll_id == poll_id,
            Participant.user_id == user_id,
            Participant.status == ParticipantStatus.APPROVED,
        )
    )
    return result.scalar_one_or_none()


async def permissions_for_poll(
    db: AsyncSession,
    user_id: str,
    user_role: UserRole | str,
    poll: Optional[Poll],
) -> Capabilities:
    if poll is None:
        return NO_CAPABILITIES
    # Admins and managers never need the relation lookups
    if UserRole(user_role) == UserRole.ADMIN or poll.manager_id == user_id:
        return capabilities_for(poll, user_id, user_role)

    auditor = await get_auditor(db, poll.id, user_id)
    editor = await get_editor(db, poll.id, user_id)
    participant = await get_approved_participant(db, poll.id, user_id)
    return capabilities_for(
        poll,
        user_id,
        user_role,
        is_auditor=auditor is not None,
        is_editor=editor is not None,
        is_participant=participant is not None,
    )


async def resolve_permissions(
    db: AsyncSession,
    user_id: str,
    user_role: UserRole | str,
    poll_id: str,
) -> Capabilities:
    """Capability set of a caller on a poll; all false when the poll is missing."""
    poll = await get_poll(db, poll_id)
    return await permissions_for_poll(db, user_id, user_role, poll)


async def require_capability(
    db: AsyncSession,
    user: User,
    poll_id: str,
    capability: str,
) -> tuple[Poll, Capabilities]:
    """Load the poll and ensure the caller holds a capability.

    Raises NotFound before PermissionDenied so a missing poll is never
    reported as a permission problem.
    """
    poll = await ensure_poll_exists(db, poll_id)
    permissions = await permissions_for_poll(db, user.id, user.role, poll)
    if not getattr(permissions, capability):
        raise PermissionDenied()
    return poll, permissions


async def resolve_access_tier(db: AsyncSession, user: User, poll: Poll) -> AccessTier:
    """Tier used for results redaction; first match wins."""
    if user.role == UserRole.ADMIN:
        return AccessTier.ADMIN
    if poll.manager_id == user.id:
        return AccessTier.MANAGER
    if await get_auditor(db, poll.id, user.id):
        return AccessTier.AUDITOR
    if await get_editor(db, poll.id, user.id):
        return AccessTier.EDITOR
    participant = await get_approved_participant(db, poll.id, user.id)
    if participant is not None and poll.poll_settings.allow_results_view:
        return AccessTier.PARTICIPANT
    return AccessTier.NONE


def require_admin(user: User) -> User:
    """Account and template management is reserved to admins."""
    if user.role != UserRole.ADMIN:
        raise PermissionDenied("Admin access required")
    return user
