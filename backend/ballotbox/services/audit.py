"""
Audit trail for polls.

Events are only written while the poll is active. Writes run in their own
SAVEPOINT and failures are logged, never raised, unless the caller marks the
event as required (the event itself is the state being recorded).
"""
import logging
from dataclasses import dataclass
from typing import Optional, Any

from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.models.audit_event import AuditEvent, AuditEventType
from ballotbox.models.poll import Poll, PollStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestMeta:
    """Transport metadata passed through opaquely into audit events."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


NO_REQUEST_META = RequestMeta()


def should_audit(poll: Poll) -> bool:
    return poll.status == PollStatus.ACTIVE


async def log_audit_event(
    db: AsyncSession,
    poll: Poll,
    event_type: AuditEventType,
    actor_user_id: Optional[str],
    participant_id: Optional[str] = None,
    meta: Optional[dict[str, Any]] = None,
    request: RequestMeta = NO_REQUEST_META,
    required: bool = False,
) -> Optional[AuditEvent]:
    """
    Append an audit event for an active poll.

    Args:
        poll: Poll in its post-operation state
        actor_user_id: Acting user, None for system-initiated events
        required: Propagate write errors instead of swallowing them

    Returns:
        The event, or None when the poll is not active or the write failed
    """
    if not should_audit(poll):
        return None

    event = AuditEvent(
        event_type=event_type.value,
        actor_user_id=actor_user_id,
        poll_id=poll.id,
        participant_id=participant_id,
        meta=meta,
        ip_address=request.ip_address,
        user_agent=request.user_agent,
    )
    if required:
        db.add(event)
        await db.flush()
        return event

    try:
        async with db.begin_nested():
            db.add(event)
        return event
    except Exception:
        logger.exception(
            "Failed to log audit event %s for poll %s", event_type.value, poll.id
        )
        return None
