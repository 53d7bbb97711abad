"""
Shared columns: short hex primary keys and created/updated timestamps.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from ballotbox.db.base import Base


def generate_id() -> str:
    return uuid.uuid4().hex[:15]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class BaseModel(Base, TimestampMixin):
    """Abstract base for every ballotbox table."""
    __abstract__ = True

    id: Mapped[str] = mapped_column(String(15), primary_key=True, default=generate_id)
