"""
Poll model.
"""
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Text, Boolean, BigInteger, ForeignKey, Enum, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from ballotbox.models.base import BaseModel
from ballotbox.schemas.poll import PollSettings, BallotQuestion

if TYPE_CHECKING:
    from ballotbox.models.participant import Participant
    from ballotbox.models.poll_role import PollAuditor, PollEditor
    from ballotbox.models.vote import Vote


class PollStatus(str, enum.Enum):
    """Persisted poll status."""
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VotingWindow(str, enum.Enum):
    """Derived from the poll dates, never stored."""
    UPCOMING = "upcoming"
    OPEN = "open"
    ENDED = "ended"


class Poll(BaseModel):
    """A poll with its ballot, disclosure settings and schedule."""
    __tablename__ = "polls"

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Schedule (epoch milliseconds)
    start_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    end_date: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[PollStatus] = mapped_column(
        Enum(PollStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PollStatus.DRAFT,
        index=True
    )

    # Owning sub-admin
    manager_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    created_by_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Validated PollSettings / list of BallotQuestion, stored as JSON
    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    ballot: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    will_send_emails: Mapped[bool] = mapped_column(Boolean, default=False)

    # Relationships
    participants: Mapped[list["Participant"]] = relationship(
        "Participant",
        back_populates="poll",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    votes: Mapped[list["Vote"]] = relationship(
        "Vote",
        back_populates="poll",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    auditors: Mapped[list["PollAuditor"]] = relationship(
        "PollAuditor",
        back_populates="poll",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    editors: Mapped[list["PollEditor"]] = relationship(
        "PollEditor",
        back_populates="poll",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    @property
    def poll_settings(self) -> PollSettings:
        return PollSettings.model_validate(self.settings or {})

    @property
    def questions(self) -> list[BallotQuestion]:
        return [BallotQuestion.model_validate(q) for q in (self.ballot or [])]

    def voting_window(self, now: int) -> VotingWindow:
        if now < self.start_date:
            return VotingWindow.UPCOMING
        if now <= self.end_date:
            return VotingWindow.OPEN
        return VotingWindow.ENDED

    def has_ended(self, now: int) -> bool:
        return now > self.end_date

    def is_open_for_voting(self, now: int) -> bool:
        return self.status == PollStatus.ACTIVE and self.voting_window(now) == VotingWindow.OPEN

    def __repr__(self) -> str:
        return f"<Poll {self.title}>"
