"""
Audit event model - append-only trail of changes made while a poll is active.
"""
from typing import Optional
from sqlalchemy import String, BigInteger, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column
import enum
from ballotbox.core.clock import now_ms
from ballotbox.models.base import BaseModel


class AuditEventType(str, enum.Enum):
    POLL_UPDATED = "POLL_UPDATED"
    PARTICIPANT_ADDED = "PARTICIPANT_ADDED"
    PARTICIPANT_REMOVED = "PARTICIPANT_REMOVED"
    PARTICIPANT_UPDATED = "PARTICIPANT_UPDATED"
    GROUP_PARTICIPANTS_ADDED = "GROUP_PARTICIPANTS_ADDED"
    TOKEN_VIEWED = "TOKEN_VIEWED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    MARKED_AS_IN_PERSON_VOTED = "MARKED_AS_IN_PERSON_VOTED"
    IN_PERSON_VOTE_CAST = "IN_PERSON_VOTE_CAST"
    VOTE_CAST = "VOTE_CAST"


class AuditEvent(BaseModel):
    __tablename__ = "audit_events"

    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Null means system-initiated
    actor_user_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    poll_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("polls.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Kept as a plain id so events outlive a removed participant
    participant_id: Mapped[Optional[str]] = mapped_column(String(15), nullable=True, index=True)

    meta: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.event_type} on poll {self.poll_id}>"
