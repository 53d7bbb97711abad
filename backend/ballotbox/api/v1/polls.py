"""
Poll management endpoints for admins, sub-admins and account holders.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.clock import now_ms
from ballotbox.core.deps import get_current_user, get_request_meta
from ballotbox.core.permissions import ensure_poll_exists, require_admin, resolve_permissions
from ballotbox.db.base import get_db
from ballotbox.models.participant import Participant
from ballotbox.models.poll import Poll
from ballotbox.models.user import User
from ballotbox.schemas.common import InvitationRunResponse, MessageResponse
from ballotbox.schemas.participant import (
    AuditEventResponse,
    GroupParticipantsCreate,
    GroupParticipantsResult,
    ParticipantCreate,
    ParticipantListResponse,
    ParticipantResponse,
    ParticipantTokenResponse,
    ParticipantUpdate,
)
from ballotbox.schemas.permissions import Capabilities
from ballotbox.schemas.poll import (
    AssignmentsResponse,
    PollCreate,
    PollListResponse,
    PollResponse,
    PollUpdate,
    RoleAssignmentCreate,
    RoleAssignmentResponse,
)
from ballotbox.schemas.results import ResultsView
from ballotbox.services import participants as participant_service
from ballotbox.services import polls as poll_service
from ballotbox.services.audit import RequestMeta
from ballotbox.services.reminders import send_participant_email, send_pending_invitations
from ballotbox.services.results import results_for_user

router = APIRouter()


def poll_to_response(poll: Poll) -> PollResponse:
    """Convert Poll model to PollResponse schema."""
    return PollResponse(
        id=poll.id,
        title=poll.title,
        description=poll.description,
        start_date=poll.start_date,
        end_date=poll.end_date,
        status=poll.status.value,
        voting_window=poll.voting_window(now_ms()).value,
        manager_id=poll.manager_id,
        created_by_id=poll.created_by_id,
        settings=poll.poll_settings,
        ballot=poll.questions,
        will_send_emails=poll.will_send_emails,
        created=poll.created,
        updated=poll.updated,
    )


def participant_to_response(participant: Participant) -> ParticipantResponse:
    """Convert Participant model to ParticipantResponse schema (never the token)."""
    return ParticipantResponse(
        id=participant.id,
        poll_id=participant.poll_id,
        user_id=participant.user_id,
        email=participant.email,
        name=participant.name,
        is_user=participant.is_user,
        token_used=participant.token_used,
        token_viewed=participant.token_viewed,
        token_last_revoked_at=participant.token_last_revoked_at,
        vote_weight=participant.vote_weight,
        status=participant.status.value,
        has_voted=participant.has_voted,
        last_email_sent_at=participant.last_email_sent_at,
        created=participant.created,
        updated=participant.updated,
    )


def assignment_to_response(assignment_id: str, user: User, added_at: datetime) -> RoleAssignmentResponse:
    return RoleAssignmentResponse(
        id=assignment_id,
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=user.role.value,
        added_at=added_at,
    )


# ============================================================================
# POLLS
# ============================================================================

@router.get("", response_model=PollListResponse)
async def list_polls(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List the polls visible to the caller."""
    polls = await poll_service.list_polls_for_user(db, current_user)
    return PollListResponse(items=[poll_to_response(p) for p in polls], total=len(polls))


@router.post("", response_model=PollResponse, status_code=status.HTTP_201_CREATED)
async def create_poll(
    poll_data: PollCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    poll = await poll_service.create_poll(db, current_user, poll_data)
    return poll_to_response(poll)


@router.get("/other", response_model=PollListResponse)
async def list_other_polls(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Polls the caller (a sub-admin) does not manage, audit or edit."""
    polls = await poll_service.list_other_polls(db, current_user)
    return PollListResponse(items=[poll_to_response(p) for p in polls], total=len(polls))


@router.post("/send-invitations", response_model=InvitationRunResponse)
async def run_invitations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Mail pending invitations for every running poll. Admin only."""
    require_admin(current_user)
    run = await send_pending_invitations(db)
    return InvitationRunResponse(
        polls_processed=run.polls_processed,
        emails_sent=run.emails_sent,
        errors=run.errors,
    )


@router.get("/{poll_id}", response_model=PollResponse)
async def get_poll(
    poll_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    poll, _ = await poll_service.get_poll_for_user(db, current_user, poll_id)
    return poll_to_response(poll)


@router.put("/{poll_id}", response_model=PollResponse)
async def update_poll(
    poll_id: str,
    poll_data: PollUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    request_meta: RequestMeta = Depends(get_request_meta)
):
    """Partial update; only fields present in the body are changed."""
    poll = await poll_service.update_poll(db, current_user, poll_id, poll_data, request=request_meta)
    return poll_to_response(poll)


@router.patch("/{poll_id}/toggle-emails", response_model=PollResponse)
async def toggle_emails(
    poll_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    poll = await poll_service.toggle_emails(db, current_user, poll_id)
    return poll_to_response(poll)


@router.delete("/{poll_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_poll(
    poll_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await poll_service.delete_poll(db, current_user, poll_id)


@router.get("/{poll_id}/permissions", response_model=Capabilities)
async def get_permissions(
    poll_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Capability set of the caller on a poll."""
    await ensure_poll_exists(db, poll_id)
    return await resolve_permissions(db, current_user.id, current_user.role, poll_id)


@router.get("/{poll_id}/results", response_model=ResultsView, response_model_exclude_none=True)
async def get_results(
    poll_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await results_for_user(db, current_user, poll_id)


# ============================================================================
# PARTICIPANTS
# ============================================================================

@router.get("/{poll_id}/participants", response_model=ParticipantListResponse)
async def list_participants(
    poll_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    participants = await participant_service.list_participants(db, current_user, poll_id)
    return ParticipantListResponse(
        items=[participant_to_response(p) for p in participants],
        total=len(participants),
    )


@router.post(
    "/{poll_id}/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_participant(
    poll_id: str,
    participant_data: ParticipantCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    request_meta: RequestMeta = Depends(get_request_meta)
):
    participant = await participant_service.add_participant(
        db, current_user, poll_id, participant_data, request=request_meta
    )
    return participant_to_response(participant)


@router.post("/{poll_id}/participants/group", response_model=GroupParticipantsResult)
async def add_group_participants(
    poll_id: str,
    group_data: GroupParticipantsCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    request_meta: RequestMeta = Depends(get_request_meta)
):
    """Enroll every member of a user group."""
    group, total, added, skipped = await participant_service.add_group_participants(
        db, current_user, poll_id, group_data, request=request_meta
    )
    return GroupParticipantsResult(
        group_id=group.id,
        group_name=group.name,
        total=total,
        added=[participant_to_response(p) for p in added],
        skipped=skipped,
    )


@router.put("/{poll_id}/participants/{participant_id}", response_model=ParticipantResponse)
async def update_participant(
    poll_id: str,
    participant_id: str,
    participant_data: ParticipantUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    request_meta: RequestMeta = Depends(get_request_meta)
):
    participant = await participant_service.update_participant(
        db, current_user, poll_id, participant_id, participant_data, request=request_meta
    )
    return participant_to_response(participant)


@router.delete("/{poll_id}/participants/{participant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_participant(
    poll_id: str,
    participant_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    request_meta: RequestMeta = Depends(get_request_meta)
):
    await participant_service.remove_participant(
        db, current_user, poll_id, participant_id, request=request_meta
    )


@router.get("/{poll_id}/participants/{participant_id}/token", response_model=ParticipantTokenResponse)
async def reveal_token(
    poll_id: str,
    participant_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    request_meta: RequestMeta = Depends(get_request_meta)
):
    participant = await participant_service.reveal_participant_token(
        db, current_user, poll_id, participant_id, request=request_meta
    )
    return ParticipantTokenResponse(
        participant_id=participant.id,
        participant_name=participant.name,
        participant_email=participant.email,
        token=participant.token,
    )


@router.post(
    "/{poll_id}/participants/{participant_id}/revoke-token",
    response_model=ParticipantTokenResponse
)
async def revoke_token(
    poll_id: str,
    participant_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    request_meta: RequestMeta = Depends(get_request_meta)
):
    participant = await participant_service.revoke_participant_token(
        db, current_user, poll_id, participant_id, request=request_meta
    )
    return ParticipantTokenResponse(
        participant_id=participant.id,
        participant_name=participant.name,
        participant_email=participant.email,
        token=participant.token,
    )


@router.get(
    "/{poll_id}/participants/{participant_id}/audit-events",
    response_model=list[AuditEventResponse]
)
async def participant_audit_events(
    poll_id: str,
    participant_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await participant_service.participant_audit_events(db, current_user, poll_id, participant_id)


@router.post("/{poll_id}/participants/{participant_id}/mark-voted", response_model=ParticipantResponse)
async def mark_in_person_voted(
    poll_id: str,
    participant_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    request_meta: RequestMeta = Depends(get_request_meta)
):
    """Mark a participant for an in-person ballot cast by the caller."""
    participant = await participant_service.mark_in_person_voted(
        db, current_user, poll_id, participant_id, request=request_meta
    )
    return participant_to_response(participant)


@router.post("/{poll_id}/participants/{participant_id}/send-email", response_model=MessageResponse)
async def send_email(
    poll_id: str,
    participant_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    participant = await send_participant_email(db, current_user, poll_id, participant_id)
    return MessageResponse(message=f"Email sent to {participant.email}")


# ============================================================================
# AUDITORS & EDITORS
# ============================================================================

@router.get("/{poll_id}/assignments", response_model=AssignmentsResponse)
async def list_assignments(
    poll_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    manager, auditors, editors = await poll_service.list_assignments(db, current_user, poll_id)
    return AssignmentsResponse(
        manager={"id": manager.id, "name": manager.name, "email": manager.email} if manager else None,
        auditors=[assignment_to_response(a.id, u, a.created) for a, u in auditors],
        editors=[assignment_to_response(e.id, u, e.created) for e, u in editors],
    )


@router.get("/{poll_id}/available-sub-admins", response_model=list[RoleAssignmentResponse])
async def available_sub_admins(
    poll_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Sub-admins that can still be assigned to the poll."""
    users = await poll_service.available_sub_admins(db, current_user, poll_id)
    return [assignment_to_response(u.id, u, u.created) for u in users]


@router.post(
    "/{poll_id}/auditors",
    response_model=RoleAssignmentResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_auditor(
    poll_id: str,
    assignment_data: RoleAssignmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    assignment, user = await poll_service.add_auditor(db, current_user, poll_id, assignment_data.user_id)
    return assignment_to_response(assignment.id, user, assignment.created)


@router.post(
    "/{poll_id}/editors",
    response_model=RoleAssignmentResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_editor(
    poll_id: str,
    assignment_data: RoleAssignmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    assignment, user = await poll_service.add_editor(db, current_user, poll_id, assignment_data.user_id)
    return assignment_to_response(assignment.id, user, assignment.created)


@router.delete("/{poll_id}/auditors/{auditor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_auditor(
    poll_id: str,
    auditor_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await poll_service.remove_auditor(db, current_user, poll_id, auditor_id)


@router.delete("/{poll_id}/editors/{editor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_editor(
    poll_id: str,
    editor_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await poll_service.remove_editor(db, current_user, poll_id, editor_id)
