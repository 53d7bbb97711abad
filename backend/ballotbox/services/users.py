"""
Account and user-group management service.

Admins create, update and delete accounts of any role (sub-admins manage
polls, users vote with their credentials) and maintain user groups, which
are enrolled into polls as a whole. Group membership is stored on the user
row (group_ids).
"""
import logging
from typing import Optional

from sqlalchemy import select, delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.exceptions import Conflict, NotFound, ValidationFailed
from ballotbox.core.permissions import require_admin
from ballotbox.core.security import get_password_hash
from ballotbox.models.audit_event import AuditEvent
from ballotbox.models.participant import Participant
from ballotbox.models.poll import Poll
from ballotbox.models.poll_role import PollAuditor, PollEditor
from ballotbox.models.user import User, UserRole
from ballotbox.models.user_group import UserGroup
from ballotbox.models.vote import Vote
from ballotbox.schemas.user import (
    SubAdminCreate,
    UserCreate,
    UserGroupCreate,
    UserGroupUpdate,
    UserUpdate,
)

logger = logging.getLogger(__name__)


# ============================================================================
# USERS
# ============================================================================

async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def list_users(db: AsyncSession, actor: User, role: Optional[UserRole] = None) -> list[User]:
    require_admin(actor)
    query = select(User)
    if role is not None:
        query = query.where(User.role == role)
    result = await db.execute(query.order_by(User.name.asc()))
    return list(result.scalars().all())


async def create_user(db: AsyncSession, actor: User, data: UserCreate) -> User:
    """Create an account; emails are unique case-insensitively."""
    require_admin(actor)
    if await get_user_by_email(db, data.email) is not None:
        raise Conflict("User already exists")

    user = User(
        email=data.email.lower(),
        name=data.name,
        password_hash=get_password_hash(data.password),
        role=data.role,
        group_ids=[],
    )
    db.add(user)
    await db.flush()
    logger.info(f"User {user.id} ({user.role.value}) created by {actor.id}")
    return user


async def create_sub_admin(db: AsyncSession, actor: User, data: SubAdminCreate) -> User:
    return await create_user(db, actor, UserCreate(**data.model_dump(), role=UserRole.SUB_ADMIN))


async def update_user(db: AsyncSession, actor: User, user_id: str, data: UserUpdate) -> User:
    require_admin(actor)
    user = await get_user(db, user_id)

    if data.email is not None and data.email.lower() != user.email:
        if await get_user_by_email(db, data.email) is not None:
            raise Conflict("Email already exists")
        user.email = data.email.lower()
    if data.name is not None:
        user.name = data.name
    if data.role is not None:
        if user.id == actor.id and data.role != UserRole.ADMIN:
            raise ValidationFailed(
                "Admins cannot demote themselves",
                details=[{"field": "role", "message": "cannot change own role"}],
            )
        user.role = data.role
    if data.password is not None:
        user.password_hash = get_password_hash(data.password)

    await db.flush()
    return user


async def delete_user(db: AsyncSession, actor: User, user_id: str) -> None:
    """
    Delete an account with its participations and role assignments.

    Accounts that manage or created polls are kept; reassign the polls first.
    """
    require_admin(actor)
    user = await get_user(db, user_id)
    if user.id == actor.id:
        raise ValidationFailed("Admins cannot delete their own account")

    result = await db.execute(
        select(Poll.id).where((Poll.manager_id == user.id) | (Poll.created_by_id == user.id)).limit(1)
    )
    if result.first() is not None:
        raise Conflict("User still manages or created polls")

    participations = select(Participant.id).where(Participant.user_id == user.id)
    async with db.begin_nested():
        await db.execute(delete(Vote).where(Vote.participant_id.in_(participations)))
        await db.execute(delete(Participant).where(Participant.user_id == user.id))
        await db.execute(delete(PollAuditor).where(PollAuditor.user_id == user.id))
        await db.execute(delete(PollEditor).where(PollEditor.user_id == user.id))
        await db.execute(
            update(AuditEvent)
            .where(AuditEvent.actor_user_id == user.id)
            .values(actor_user_id=None)
        )
        await db.execute(delete(User).where(User.id == user.id))
    logger.info(f"User {user_id} deleted by {actor.id}")


# ============================================================================
# USER GROUPS
# ============================================================================

async def group_members(db: AsyncSession, group: UserGroup) -> list[User]:
    """Members of a group, ordered by email."""
    # group_ids is a JSON array; filter in Python to stay portable across backends
    result = await db.execute(select(User).order_by(User.email.asc()))
    return [u for u in result.scalars().all() if group.id in (u.group_ids or [])]


async def get_group(db: AsyncSession, group_id: str) -> UserGroup:
    group = await db.get(UserGroup, group_id)
    if group is None:
        raise NotFound("Group not found")
    return group


async def list_groups(db: AsyncSession, actor: User) -> list[tuple[UserGroup, list[User]]]:
    require_admin(actor)
    result = await db.execute(select(UserGroup).order_by(UserGroup.name.asc()))
    groups = list(result.scalars().all())
    return [(group, await group_members(db, group)) for group in groups]


async def create_group(db: AsyncSession, actor: User, data: UserGroupCreate) -> UserGroup:
    require_admin(actor)
    group = UserGroup(name=data.name, description=data.description)
    db.add(group)
    await db.flush()
    return group


async def update_group(db: AsyncSession, actor: User, group_id: str, data: UserGroupUpdate) -> UserGroup:
    require_admin(actor)
    group = await get_group(db, group_id)
    if data.name is not None:
        group.name = data.name
    if "description" in data.model_fields_set:
        group.description = data.description
    await db.flush()
    return group


async def delete_group(db: AsyncSession, actor: User, group_id: str) -> None:
    """Delete a group and drop it from its members; poll participants stay enrolled."""
    require_admin(actor)
    group = await get_group(db, group_id)
    for member in await group_members(db, group):
        member.group_ids = [g for g in member.group_ids if g != group.id]
    await db.delete(group)
    await db.flush()


async def add_group_member(db: AsyncSession, actor: User, group_id: str, user_id: str) -> UserGroup:
    require_admin(actor)
    group = await get_group(db, group_id)
    user = await get_user(db, user_id)
    current = list(user.group_ids or [])
    if group.id in current:
        raise Conflict("User is already a member of this group")
    # Reassign so the JSON column is flagged dirty
    user.group_ids = current + [group.id]
    await db.flush()
    return group


async def remove_group_member(db: AsyncSession, actor: User, group_id: str, user_id: str) -> UserGroup:
    require_admin(actor)
    group = await get_group(db, group_id)
    user = await get_user(db, user_id)
    current = list(user.group_ids or [])
    if group.id not in current:
        raise NotFound("User is not a member of this group")
    user.group_ids = [g for g in current if g != group.id]
    await db.flush()
    return group
