"""
User model.
"""
from typing import Optional
from sqlalchemy import String, Enum, JSON
from sqlalchemy.orm import Mapped, mapped_column
import enum
from ballotbox.models.base import BaseModel


class UserRole(str, enum.Enum):
    """Global role of a user account."""
    ADMIN = "admin"
    SUB_ADMIN = "sub-admin"
    USER = "user"


class User(BaseModel):
    """User model for authentication and role resolution."""
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=UserRole.USER,
        index=True
    )

    # Ids of the user groups this account belongs to (JSON array)
    group_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_sub_admin(self) -> bool:
        return self.role == UserRole.SUB_ADMIN

    def __repr__(self) -> str:
        return f"<User {self.email}>"
