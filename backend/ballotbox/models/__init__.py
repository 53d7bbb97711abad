"""
SQLAlchemy models for Ballotbox.
"""
from ballotbox.models.user import User, UserRole
from ballotbox.models.user_group import UserGroup
from ballotbox.models.poll import Poll, PollStatus, VotingWindow
from ballotbox.models.participant import Participant, ParticipantStatus
from ballotbox.models.poll_role import PollAuditor, PollEditor
from ballotbox.models.vote import Vote
from ballotbox.models.audit_event import AuditEvent, AuditEventType
from ballotbox.models.mail_template import MailTemplate

__all__ = [
    "User",
    "UserRole",
    "UserGroup",
    "Poll",
    "PollStatus",
    "VotingWindow",
    "Participant",
    "ParticipantStatus",
    "PollAuditor",
    "PollEditor",
    "Vote",
    "AuditEvent",
    "AuditEventType",
    "MailTemplate",
]
