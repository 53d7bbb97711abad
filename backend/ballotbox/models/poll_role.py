"""
Poll role assignments - auditors and editors are sub-admins linked to a poll.

The manager is not an assignment; it is the poll's manager_id field.
"""
from typing import TYPE_CHECKING
from sqlalchemy import String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ballotbox.models.base import BaseModel

if TYPE_CHECKING:
    from ballotbox.models.poll import Poll
    from ballotbox.models.user import User


class PollAuditor(BaseModel):
    __tablename__ = "poll_auditors"
    __table_args__ = (
        UniqueConstraint("poll_id", "user_id", name="uq_poll_auditors_poll_user"),
    )

    poll_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("polls.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    poll: Mapped["Poll"] = relationship("Poll", back_populates="auditors")
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<PollAuditor {self.user_id} on poll {self.poll_id}>"


class PollEditor(BaseModel):
    __tablename__ = "poll_editors"
    __table_args__ = (
        UniqueConstraint("poll_id", "user_id", name="uq_poll_editors_poll_user"),
    )

    poll_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("polls.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    poll: Mapped["Poll"] = relationship("Poll", back_populates="editors")
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<PollEditor {self.user_id} on poll {self.poll_id}>"
