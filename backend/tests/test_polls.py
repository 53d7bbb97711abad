"""
Tests for the poll lifecycle service.

Covers:
- Poll creation rules
- Update mutation policy (started polls, editor field limits)
- Status transitions
- POLL_UPDATED audit events
- Deletion, listing and role assignments
"""
import pytest
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.clock import now_ms
from ballotbox.core.exceptions import Conflict, NotFound, PermissionDenied, ValidationFailed
from ballotbox.core.permissions import MANAGER_CAPABILITIES, EDITOR_CAPABILITIES
from ballotbox.models.audit_event import AuditEvent, AuditEventType
from ballotbox.models.participant import Participant
from ballotbox.models.poll import Poll, PollStatus
from ballotbox.models.user import User
from ballotbox.schemas.poll import PollCreate, PollUpdate
from ballotbox.services import polls as poll_service
from ballotbox.services.polls import check_update_allowed

from conftest import BALLOT, HOUR_MS, make_participant


async def _audit_events(db: AsyncSession, poll_id: str, event_type: AuditEventType) -> list[AuditEvent]:
    result = await db.execute(
        select(AuditEvent).where(
            AuditEvent.poll_id == poll_id,
            AuditEvent.event_type == event_type.value,
        )
    )
    return list(result.scalars().all())


class TestMutationPolicy:
    """check_update_allowed on its own."""

    def _poll(self, status: PollStatus, started: bool) -> Poll:
        now = now_ms()
        start = now - HOUR_MS if started else now + HOUR_MS
        return Poll(status=status, start_date=start, end_date=start + 2 * HOUR_MS, manager_id="m")

    def test_editor_may_change_content_fields_before_start(self):
        poll = self._poll(PollStatus.DRAFT, started=False)
        check_update_allowed(poll, {"title", "description", "ballot", "settings"}, EDITOR_CAPABILITIES, now_ms())

    def test_editor_may_not_change_dates(self):
        poll = self._poll(PollStatus.DRAFT, started=False)
        with pytest.raises(ValidationFailed) as exc_info:
            check_update_allowed(poll, {"title", "end_date"}, EDITOR_CAPABILITIES, now_ms())
        assert exc_info.value.details == [{"field": "end_date", "message": "manager only"}]

    def test_started_active_poll_locks_all_but_settings_for_editors(self):
        poll = self._poll(PollStatus.ACTIVE, started=True)
        check_update_allowed(poll, {"settings"}, EDITOR_CAPABILITIES, now_ms())
        with pytest.raises(ValidationFailed):
            check_update_allowed(poll, {"title"}, EDITOR_CAPABILITIES, now_ms())

    def test_manager_may_change_anything_after_start(self):
        poll = self._poll(PollStatus.ACTIVE, started=True)
        check_update_allowed(
            poll, {"title", "ballot", "start_date", "end_date", "status"}, MANAGER_CAPABILITIES, now_ms()
        )

    def test_active_poll_not_yet_started_is_not_locked(self):
        poll = self._poll(PollStatus.ACTIVE, started=False)
        check_update_allowed(poll, {"title", "ballot"}, EDITOR_CAPABILITIES, now_ms())


@pytest.mark.asyncio(loop_scope="function")
class TestCreatePoll:

    async def test_sub_admin_creates_draft_it_manages(self, db_session: AsyncSession, manager_user: User):
        poll = await poll_service.create_poll(
            db_session, manager_user, PollCreate(title="Budget vote", ballot=BALLOT)
        )
        assert poll.status == PollStatus.DRAFT
        assert poll.manager_id == manager_user.id
        assert poll.end_date - poll.start_date == 7 * 24 * HOUR_MS
        assert poll.poll_settings.allow_results_view is True

    async def test_admin_must_name_manager(self, db_session: AsyncSession, admin_user: User):
        with pytest.raises(ValidationFailed):
            await poll_service.create_poll(db_session, admin_user, PollCreate(title="Budget vote"))

    async def test_manager_must_be_sub_admin(self, db_session: AsyncSession, admin_user: User, voter_user: User):
        with pytest.raises(ValidationFailed):
            await poll_service.create_poll(
                db_session, admin_user, PollCreate(title="Budget vote", manager_id=voter_user.id)
            )

    async def test_plain_users_cannot_create(self, db_session: AsyncSession, voter_user: User):
        with pytest.raises(PermissionDenied):
            await poll_service.create_poll(db_session, voter_user, PollCreate(title="Budget vote"))


@pytest.mark.asyncio(loop_scope="function")
class TestUpdatePoll:

    async def test_editor_update_rejected_as_a_whole(
        self, db_session: AsyncSession, poll_roles: Poll, editor_user: User
    ):
        update = PollUpdate(title="New title", end_date=poll_roles.end_date + HOUR_MS)
        with pytest.raises(ValidationFailed):
            await poll_service.update_poll(db_session, editor_user, poll_roles.id, update)
        assert poll_roles.title == "Annual election"

    async def test_editor_settings_update_on_started_poll(
        self, db_session: AsyncSession, poll_roles: Poll, editor_user: User
    ):
        update = PollUpdate(settings={"show_vote_counts": True})
        poll = await poll_service.update_poll(db_session, editor_user, poll_roles.id, update)
        assert poll.poll_settings.show_vote_counts is True

    async def test_auditor_cannot_edit(self, db_session: AsyncSession, poll_roles: Poll, auditor_user: User):
        with pytest.raises(PermissionDenied):
            await poll_service.update_poll(
                db_session, auditor_user, poll_roles.id, PollUpdate(settings={})
            )

    async def test_missing_poll_is_not_found(self, db_session: AsyncSession, manager_user: User):
        with pytest.raises(NotFound):
            await poll_service.update_poll(db_session, manager_user, "missing", PollUpdate(title="x"))

    async def test_manager_update_writes_audit_event(
        self, db_session: AsyncSession, active_poll: Poll, manager_user: User
    ):
        await poll_service.update_poll(
            db_session, manager_user, active_poll.id, PollUpdate(title="Renamed", ballot=BALLOT)
        )
        events = await _audit_events(db_session, active_poll.id, AuditEventType.POLL_UPDATED)
        assert len(events) == 1
        meta = events[0].meta
        assert meta["updated_fields"] == ["ballot", "title"]
        assert meta["old_title"] == "Annual election"
        assert meta["new_title"] == "Renamed"
        assert meta["ballot_changed"] is True
        assert meta["settings_changed"] is False
        assert events[0].actor_user_id == manager_user.id

    async def test_draft_update_is_not_audited(
        self, db_session: AsyncSession, draft_poll: Poll, manager_user: User
    ):
        await poll_service.update_poll(db_session, manager_user, draft_poll.id, PollUpdate(title="Renamed"))
        assert await _audit_events(db_session, draft_poll.id, AuditEventType.POLL_UPDATED) == []

    async def test_status_transitions(self, db_session: AsyncSession, draft_poll: Poll, manager_user: User):
        poll = await poll_service.update_poll(
            db_session, manager_user, draft_poll.id, PollUpdate(status="active")
        )
        assert poll.status == PollStatus.ACTIVE

        with pytest.raises(ValidationFailed):
            await poll_service.update_poll(db_session, manager_user, draft_poll.id, PollUpdate(status="draft"))

        poll = await poll_service.update_poll(
            db_session, manager_user, draft_poll.id, PollUpdate(status="completed")
        )
        assert poll.status == PollStatus.COMPLETED

    async def test_dates_must_stay_ordered(self, db_session: AsyncSession, draft_poll: Poll, manager_user: User):
        with pytest.raises(ValidationFailed):
            await poll_service.update_poll(
                db_session, manager_user, draft_poll.id, PollUpdate(end_date=draft_poll.start_date - 1)
            )


@pytest.mark.asyncio(loop_scope="function")
class TestPollManagement:

    async def test_toggle_emails(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        poll = await poll_service.toggle_emails(db_session, manager_user, active_poll.id)
        assert poll.will_send_emails is True

    async def test_toggle_emails_requires_active(
        self, db_session: AsyncSession, draft_poll: Poll, manager_user: User
    ):
        with pytest.raises(ValidationFailed):
            await poll_service.toggle_emails(db_session, manager_user, draft_poll.id)

    async def test_only_admin_deletes(
        self, db_session: AsyncSession, active_poll: Poll, admin_user: User, manager_user: User
    ):
        await make_participant(db_session, active_poll, "p@example.com", "Pat")
        with pytest.raises(PermissionDenied):
            await poll_service.delete_poll(db_session, manager_user, active_poll.id)

        await poll_service.delete_poll(db_session, admin_user, active_poll.id)
        remaining = await db_session.execute(
            select(func.count()).select_from(Participant).where(Participant.poll_id == active_poll.id)
        )
        assert remaining.scalar() == 0
        with pytest.raises(NotFound):
            await poll_service.get_poll_for_user(db_session, admin_user, active_poll.id)

    async def test_list_polls_per_role(
        self,
        db_session: AsyncSession,
        poll_roles: Poll,
        draft_poll: Poll,
        admin_user: User,
        auditor_user: User,
        outsider_user: User,
        voter_user: User,
    ):
        assert {p.id for p in await poll_service.list_polls_for_user(db_session, admin_user)} == {
            poll_roles.id,
            draft_poll.id,
        }
        assert [p.id for p in await poll_service.list_polls_for_user(db_session, auditor_user)] == [poll_roles.id]
        assert await poll_service.list_polls_for_user(db_session, outsider_user) == []

        await make_participant(db_session, draft_poll, voter_user.email, voter_user.name, user=voter_user)
        assert [p.id for p in await poll_service.list_polls_for_user(db_session, voter_user)] == [draft_poll.id]

    async def test_list_other_polls(
        self,
        db_session: AsyncSession,
        poll_roles: Poll,
        draft_poll: Poll,
        admin_user: User,
        manager_user: User,
        auditor_user: User,
        outsider_user: User,
        voter_user: User,
    ):
        assert {p.id for p in await poll_service.list_other_polls(db_session, outsider_user)} == {
            poll_roles.id,
            draft_poll.id,
        }
        assert [p.id for p in await poll_service.list_other_polls(db_session, auditor_user)] == [draft_poll.id]
        assert await poll_service.list_other_polls(db_session, manager_user) == []
        assert await poll_service.list_other_polls(db_session, admin_user) == []
        assert await poll_service.list_other_polls(db_session, voter_user) == []


@pytest.mark.asyncio(loop_scope="function")
class TestRoleAssignments:

    async def test_add_and_remove_auditor(
        self, db_session: AsyncSession, active_poll: Poll, manager_user: User, auditor_user: User
    ):
        assignment, user = await poll_service.add_auditor(db_session, manager_user, active_poll.id, auditor_user.id)
        assert user.id == auditor_user.id

        with pytest.raises(Conflict):
            await poll_service.add_auditor(db_session, manager_user, active_poll.id, auditor_user.id)

        manager, auditors, editors = await poll_service.list_assignments(db_session, manager_user, active_poll.id)
        assert manager.id == manager_user.id
        assert [u.id for _, u in auditors] == [auditor_user.id]
        assert editors == []

        await poll_service.remove_auditor(db_session, manager_user, active_poll.id, assignment.id)
        with pytest.raises(NotFound):
            await poll_service.remove_auditor(db_session, manager_user, active_poll.id, assignment.id)

    async def test_assignee_must_be_sub_admin(
        self, db_session: AsyncSession, active_poll: Poll, manager_user: User, voter_user: User
    ):
        with pytest.raises(ValidationFailed):
            await poll_service.add_editor(db_session, manager_user, active_poll.id, voter_user.id)
        with pytest.raises(NotFound):
            await poll_service.add_editor(db_session, manager_user, active_poll.id, "missing")

    async def test_editors_cannot_assign(
        self, db_session: AsyncSession, poll_roles: Poll, editor_user: User, outsider_user: User
    ):
        with pytest.raises(PermissionDenied):
            await poll_service.add_auditor(db_session, editor_user, poll_roles.id, outsider_user.id)

    async def test_available_sub_admins(
        self,
        db_session: AsyncSession,
        poll_roles: Poll,
        manager_user: User,
        auditor_user: User,
        editor_user: User,
        outsider_user: User,
    ):
        available = await poll_service.available_sub_admins(db_session, manager_user, poll_roles.id)
        ids = {u.id for u in available}
        assert outsider_user.id in ids
        assert auditor_user.id not in ids
        assert editor_user.id not in ids
        assert all(u.role.value == "sub-admin" for u in available)
