"""
Mail template model - admin-managed subject and body for poll invitations.

Bodies use {{placeholder}} variables (participantName, pollTitle, pollUrl, ...).
At most one template is the default.
"""
from typing import Optional
from sqlalchemy import String, Text, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from ballotbox.models.base import BaseModel


class MailTemplate(BaseModel):
    __tablename__ = "mail_templates"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    html_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<MailTemplate {self.name}{' (default)' if self.is_default else ''}>"
