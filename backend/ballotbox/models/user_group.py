"""
User group model - named sets of users that can be enrolled in a poll at once.
"""
from typing import Optional
from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column
from ballotbox.models.base import BaseModel


class UserGroup(BaseModel):
    __tablename__ = "user_groups"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<UserGroup {self.name}>"
