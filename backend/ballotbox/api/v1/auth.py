"""
Account login endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.deps import get_current_user
from ballotbox.core.exceptions import AuthenticationFailed
from ballotbox.core.security import DUMMY_PASSWORD_HASH, create_access_token, verify_password
from ballotbox.db.base import get_db
from ballotbox.models.user import User
from ballotbox.schemas.auth import TokenResponse, UserLogin, UserResponse

router = APIRouter()


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role.value,
        created=user.created,
        updated=user.updated,
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
):
    """Exchange email and password for a bearer token."""
    result = await db.execute(select(User).where(User.email == credentials.email.lower()))
    user = result.scalar_one_or_none()
    if user is None:
        verify_password(credentials.password, DUMMY_PASSWORD_HASH)
        raise AuthenticationFailed()
    if not verify_password(credentials.password, user.password_hash):
        raise AuthenticationFailed()

    token = create_access_token(user.id, role=user.role.value)
    return TokenResponse(token=token, record=user_to_response(user))


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return user_to_response(current_user)
