"""
Email dispatch for poll invitations.

Emails are logged to a file and the console; production transports (SMTP,
SendGrid, SES) plug in behind send_email.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from datetime import datetime
from pathlib import Path

from ballotbox.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "You're invited to vote: {{pollTitle}}"

DEFAULT_BODY = """Hello {{participantName}},

You have been invited to vote in "{{pollTitle}}".

{{pollDescription}}

Voting is open from {{pollStartDate}} to {{pollEndDate}}.

Cast your vote here:

{{pollUrl}}

Best regards,
The Ballotbox Team
"""


@dataclass(frozen=True)
class InvitationTemplate:
    """Subject and bodies with {{placeholder}} variables."""
    subject: str
    body: str
    html_body: Optional[str] = None


DEFAULT_TEMPLATE = InvitationTemplate(subject=DEFAULT_SUBJECT, body=DEFAULT_BODY)


def render_template(template: str, variables: dict[str, str]) -> str:
    """Replace {{name}} placeholders; unknown placeholders are left as is."""
    rendered = template
    for name, value in variables.items():
        rendered = rendered.replace("{{" + name + "}}", value)
    return rendered


class EmailService:
    """
    Email service for participant invitations.

    In development mode, emails are logged to a file.
    """

    def __init__(self, log_path: Optional[str] = None):
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.debug = settings.DEBUG
        self.email_log_path = Path(log_path or settings.EMAIL_LOG_PATH)

    def _log_email(self, to: str, subject: str, body: str, html_body: Optional[str] = None):
        """Log email to file for development/testing."""
        timestamp = datetime.now().isoformat()
        log_entry = f"""
================================================================================
EMAIL SENT: {timestamp}
================================================================================
TO: {to}
FROM: {self.from_name} <{self.from_email}>
SUBJECT: {subject}
--------------------------------------------------------------------------------
BODY:
{body}
--------------------------------------------------------------------------------
"""
        if html_body:
            log_entry += f"HTML BODY:\n{html_body}\n" + "-" * 80 + "\n"
        with open(self.email_log_path, 'a') as f:
            f.write(log_entry)

        logger.info(f"Email logged: to={to}, subject={subject}")

    async def send_email(self, to: str, subject: str, body: str, html_body: Optional[str] = None) -> bool:
        """
        Send an email.

        Returns:
            True if email was sent/logged successfully
        """
        try:
            self._log_email(to, subject, body, html_body)
            return True
        except OSError as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

    async def send_poll_invitation(
        self,
        to: str,
        variables: dict[str, str],
        template: InvitationTemplate = DEFAULT_TEMPLATE,
    ) -> bool:
        """
        Send a poll invitation rendered from the template variables.

        Args:
            to: Recipient email address
            variables: participantName, pollTitle, pollDescription, pollUrl,
                pollStartDate, pollEndDate
            template: Template chosen for the poll
        """
        subject = render_template(template.subject, variables)
        body = render_template(template.body, variables)
        html_body = render_template(template.html_body, variables) if template.html_body else None
        return await self.send_email(to, subject, body, html_body)


# Singleton instance
email_service = EmailService()
