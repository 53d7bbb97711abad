"""
User group endpoints (admin only).
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.api.v1.auth import user_to_response
from ballotbox.core.deps import get_current_user
from ballotbox.db.base import get_db
from ballotbox.models.user import User
from ballotbox.models.user_group import UserGroup
from ballotbox.schemas.user import (
    GroupMemberAdd,
    UserGroupCreate,
    UserGroupListResponse,
    UserGroupResponse,
    UserGroupUpdate,
)
from ballotbox.services import users as user_service

router = APIRouter()


def group_to_response(group: UserGroup, members: list[User]) -> UserGroupResponse:
    return UserGroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        members=[user_to_response(m) for m in members],
        created=group.created,
        updated=group.updated,
    )


async def _group_response(db: AsyncSession, group: UserGroup) -> UserGroupResponse:
    return group_to_response(group, await user_service.group_members(db, group))


@router.get("", response_model=UserGroupListResponse)
async def list_groups(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    groups = await user_service.list_groups(db, current_user)
    return UserGroupListResponse(
        items=[group_to_response(group, members) for group, members in groups],
        total=len(groups),
    )


@router.post("", response_model=UserGroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    group_data: UserGroupCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    group = await user_service.create_group(db, current_user, group_data)
    return group_to_response(group, [])


@router.put("/{group_id}", response_model=UserGroupResponse)
async def update_group(
    group_id: str,
    group_data: UserGroupUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    group = await user_service.update_group(db, current_user, group_id, group_data)
    return await _group_response(db, group)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await user_service.delete_group(db, current_user, group_id)


@router.post("/{group_id}/members", response_model=UserGroupResponse)
async def add_member(
    group_id: str,
    member_data: GroupMemberAdd,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    group = await user_service.add_group_member(db, current_user, group_id, member_data.user_id)
    return await _group_response(db, group)


@router.delete("/{group_id}/members/{user_id}", response_model=UserGroupResponse)
async def remove_member(
    group_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    group = await user_service.remove_group_member(db, current_user, group_id, user_id)
    return await _group_response(db, group)
