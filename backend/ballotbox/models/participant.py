"""
Participant model - a voter enrolled in one poll.
"""
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Boolean, Float, BigInteger, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from ballotbox.models.base import BaseModel

if TYPE_CHECKING:
    from ballotbox.models.poll import Poll
    from ballotbox.models.user import User
    from ballotbox.models.vote import Vote


class ParticipantStatus(str, enum.Enum):
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"


class Participant(BaseModel):
    """Participant in a poll, either a registered user or a token invitee."""
    __tablename__ = "poll_participants"
    __table_args__ = (
        UniqueConstraint("poll_id", "email", name="uq_poll_participants_poll_email"),
        UniqueConstraint("poll_id", "token", name="uq_poll_participants_poll_token"),
    )

    poll_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("polls.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Set only for registered users
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_user: Mapped[bool] = mapped_column(Boolean, default=False)

    # Token access (non-user participants only)
    token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    token_used: Mapped[bool] = mapped_column(Boolean, default=False)
    token_viewed: Mapped[bool] = mapped_column(Boolean, default=False)
    token_last_revoked_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    vote_weight: Mapped[float] = mapped_column(Float, default=1.0)

    status: Mapped[ParticipantStatus] = mapped_column(
        Enum(ParticipantStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=ParticipantStatus.APPROVED
    )
    has_voted: Mapped[bool] = mapped_column(Boolean, default=False)
    last_email_sent_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    # Relationships
    poll: Mapped["Poll"] = relationship(
        "Poll",
        back_populates="participants"
    )
    user: Mapped[Optional["User"]] = relationship(
        "User",
        foreign_keys=[user_id]
    )
    votes: Mapped[list["Vote"]] = relationship(
        "Vote",
        back_populates="participant",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Participant {self.email} in poll {self.poll_id}>"
