"""
Account management endpoints. Everything but /profile is admin only.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.api.v1.auth import user_to_response
from ballotbox.core.deps import get_current_user
from ballotbox.db.base import get_db
from ballotbox.models.user import User, UserRole
from ballotbox.schemas.auth import UserResponse
from ballotbox.schemas.user import SubAdminCreate, UserCreate, UserListResponse, UserUpdate
from ballotbox.services import users as user_service

router = APIRouter()


def users_to_response(users: list[User]) -> UserListResponse:
    return UserListResponse(items=[user_to_response(u) for u in users], total=len(users))


@router.get("/profile", response_model=UserResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    return user_to_response(current_user)


@router.get("", response_model=UserListResponse)
async def list_users(
    role: Optional[UserRole] = Query(None, description="Only accounts with this role"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    users = await user_service.list_users(db, current_user, role=role)
    return users_to_response(users)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user = await user_service.create_user(db, current_user, user_data)
    return user_to_response(user)


@router.get("/sub-admins", response_model=UserListResponse)
async def list_sub_admins(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    users = await user_service.list_users(db, current_user, role=UserRole.SUB_ADMIN)
    return users_to_response(users)


@router.post("/sub-admins", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_sub_admin(
    user_data: SubAdminCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create a sub-admin, who can then manage, audit or edit polls."""
    user = await user_service.create_sub_admin(db, current_user, user_data)
    return user_to_response(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user = await user_service.update_user(db, current_user, user_id, user_data)
    return user_to_response(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await user_service.delete_user(db, current_user, user_id)
