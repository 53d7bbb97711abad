"""
Vote model - one row per (participant, question).
"""
from typing import TYPE_CHECKING
from sqlalchemy import String, Float, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ballotbox.models.base import BaseModel

if TYPE_CHECKING:
    from ballotbox.models.poll import Poll
    from ballotbox.models.participant import Participant


class Vote(BaseModel):
    """Selected options of one participant for one question."""
    __tablename__ = "poll_votes"
    __table_args__ = (
        UniqueConstraint("participant_id", "question_id", name="uq_poll_votes_participant_question"),
    )

    poll_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("polls.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    participant_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("poll_participants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    question_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Ordered list of option ids
    selected_options: Mapped[list] = mapped_column(JSON, nullable=False)

    # Copied from the participant at cast time
    vote_weight: Mapped[float] = mapped_column(Float, default=1.0)

    poll: Mapped["Poll"] = relationship("Poll", back_populates="votes")
    participant: Mapped["Participant"] = relationship("Participant", back_populates="votes")

    def __repr__(self) -> str:
        return f"<Vote by {self.participant_id} on question {self.question_id}>"
