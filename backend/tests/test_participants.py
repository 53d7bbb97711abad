"""
Tests for the participant roster service.

Covers:
- Enrollment of users and token invitees, duplicates, custom tokens
- Group enrollment
- Updates, removal, token reveal / revoke
- In-person marking
- Participant audit trail
"""
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.exceptions import Conflict, NotFound, PermissionDenied, StateError, ValidationFailed
from ballotbox.models.audit_event import AuditEvent, AuditEventType
from ballotbox.models.poll import Poll
from ballotbox.models.user import User
from ballotbox.models.user_group import UserGroup
from ballotbox.models.vote import Vote
from ballotbox.schemas.participant import GroupParticipantsCreate, ParticipantCreate, ParticipantUpdate
from ballotbox.services import participants as participant_service

from conftest import HOUR_MS, make_participant, make_user


async def _event_types(db: AsyncSession, poll_id: str) -> list[str]:
    result = await db.execute(
        select(AuditEvent.event_type).where(AuditEvent.poll_id == poll_id).order_by(AuditEvent.created_at)
    )
    return [row[0] for row in result.all()]


@pytest.mark.asyncio(loop_scope="function")
class TestAddParticipant:

    async def test_token_invitee(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        participant = await participant_service.add_participant(
            db_session,
            manager_user,
            active_poll.id,
            ParticipantCreate(email="Guest@Example.com", vote_weight=2.5),
        )
        assert participant.email == "guest@example.com"
        assert participant.name == "guest@example.com"
        assert participant.is_user is False
        assert participant.token
        assert participant.token_viewed is False
        assert participant.vote_weight == 2.5
        assert participant.status.value == "approved"
        assert await _event_types(db_session, active_poll.id) == ["PARTICIPANT_ADDED"]

    async def test_registered_user_is_detected(
        self, db_session: AsyncSession, active_poll: Poll, manager_user: User, voter_user: User
    ):
        participant = await participant_service.add_participant(
            db_session,
            manager_user,
            active_poll.id,
            ParticipantCreate(email=voter_user.email, name="Ignored"),
        )
        assert participant.is_user is True
        assert participant.user_id == voter_user.id
        assert participant.name == voter_user.name
        assert participant.token is None

    async def test_is_user_without_account(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        with pytest.raises(ValidationFailed):
            await participant_service.add_participant(
                db_session, manager_user, active_poll.id, ParticipantCreate(email="ghost@example.com", is_user=True)
            )

    async def test_duplicate_email(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        data = ParticipantCreate(email="guest@example.com")
        await participant_service.add_participant(db_session, manager_user, active_poll.id, data)
        with pytest.raises(Conflict):
            await participant_service.add_participant(
                db_session, manager_user, active_poll.id, ParticipantCreate(email="GUEST@example.com")
            )

    async def test_custom_token(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        participant = await participant_service.add_participant(
            db_session, manager_user, active_poll.id, ParticipantCreate(email="a@example.com", token="secret-1")
        )
        assert participant.token == "secret-1"
        assert participant.token_viewed is True

        with pytest.raises(Conflict):
            await participant_service.add_participant(
                db_session, manager_user, active_poll.id, ParticipantCreate(email="b@example.com", token="secret-1")
            )

    async def test_draft_poll_is_not_audited(self, db_session: AsyncSession, draft_poll: Poll, manager_user: User):
        await participant_service.add_participant(
            db_session, manager_user, draft_poll.id, ParticipantCreate(email="a@example.com")
        )
        assert await _event_types(db_session, draft_poll.id) == []

    async def test_auditor_cannot_add(
        self, db_session: AsyncSession, poll_roles: Poll, auditor_user: User, editor_user: User
    ):
        with pytest.raises(PermissionDenied):
            await participant_service.add_participant(
                db_session, auditor_user, poll_roles.id, ParticipantCreate(email="a@example.com")
            )
        participant = await participant_service.add_participant(
            db_session, editor_user, poll_roles.id, ParticipantCreate(email="a@example.com")
        )
        assert participant.id


@pytest.mark.asyncio(loop_scope="function")
class TestGroupParticipants:

    async def test_adds_members_and_skips_existing(
        self, db_session: AsyncSession, active_poll: Poll, manager_user: User
    ):
        group = UserGroup(name="Board")
        db_session.add(group)
        await db_session.flush()
        first = await make_user(db_session, "m1@example.com", "Member One", group_ids=[group.id])
        await make_user(db_session, "m2@example.com", "Member Two", group_ids=[group.id])
        await make_user(db_session, "other@example.com", "Not In Group")
        await make_participant(db_session, active_poll, first.email, first.name, user=first)

        found, total, added, skipped = await participant_service.add_group_participants(
            db_session, manager_user, active_poll.id, GroupParticipantsCreate(group_id=group.id, vote_weight=3)
        )
        assert found.id == group.id
        assert total == 2
        assert [p.email for p in added] == ["m2@example.com"]
        assert added[0].vote_weight == 3
        assert added[0].is_user is True
        assert skipped == [{"email": "m1@example.com", "name": "Member One", "reason": "Already a participant"}]
        assert "GROUP_PARTICIPANTS_ADDED" in await _event_types(db_session, active_poll.id)

    async def test_unknown_group(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        with pytest.raises(NotFound):
            await participant_service.add_group_participants(
                db_session, manager_user, active_poll.id, GroupParticipantsCreate(group_id="missing")
            )


@pytest.mark.asyncio(loop_scope="function")
class TestMaintainParticipants:

    async def test_update_weight_and_token(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest")
        other = await make_participant(db_session, active_poll, "o@example.com", "Other", token="taken")

        with pytest.raises(Conflict):
            await participant_service.update_participant(
                db_session, manager_user, active_poll.id, guest.id, ParticipantUpdate(token="taken")
            )

        updated = await participant_service.update_participant(
            db_session, manager_user, active_poll.id, guest.id, ParticipantUpdate(vote_weight=4, token="  ")
        )
        assert updated.vote_weight == 4
        assert updated.token == "token-g@example.com"
        assert other.token == "taken"
        assert await _event_types(db_session, active_poll.id) == ["PARTICIPANT_UPDATED"]

    async def test_remove_deletes_votes(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest", has_voted=True)
        db_session.add(Vote(
            poll_id=active_poll.id, participant_id=guest.id, question_id="q1", selected_options=["o1"]
        ))
        await db_session.flush()

        await participant_service.remove_participant(db_session, manager_user, active_poll.id, guest.id)

        votes = await db_session.execute(select(Vote).where(Vote.participant_id == guest.id))
        assert votes.scalars().all() == []
        with pytest.raises(NotFound):
            await participant_service.get_participant(db_session, active_poll.id, guest.id)
        assert await _event_types(db_session, active_poll.id) == ["PARTICIPANT_REMOVED"]

    async def test_list_participants(
        self, db_session: AsyncSession, poll_roles: Poll, auditor_user: User, voter_user: User
    ):
        await make_participant(db_session, poll_roles, voter_user.email, voter_user.name, user=voter_user)
        participants = await participant_service.list_participants(db_session, auditor_user, poll_roles.id)
        assert [p.email for p in participants] == [voter_user.email]

        with pytest.raises(PermissionDenied):
            await participant_service.list_participants(db_session, voter_user, poll_roles.id)


@pytest.mark.asyncio(loop_scope="function")
class TestTokens:

    async def test_reveal_marks_viewed(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest")
        revealed = await participant_service.reveal_participant_token(
            db_session, manager_user, active_poll.id, guest.id
        )
        assert revealed.token == "token-g@example.com"
        assert revealed.token_viewed is True
        assert await _event_types(db_session, active_poll.id) == ["TOKEN_VIEWED"]

    async def test_user_participants_have_no_token(
        self, db_session: AsyncSession, active_poll: Poll, manager_user: User, voter_user: User
    ):
        member = await make_participant(db_session, active_poll, voter_user.email, voter_user.name, user=voter_user)
        with pytest.raises(ValidationFailed):
            await participant_service.reveal_participant_token(db_session, manager_user, active_poll.id, member.id)

    async def test_revoke_issues_new_token(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest")
        guest.token_used = True
        guest.token_viewed = True
        await db_session.flush()

        revoked = await participant_service.revoke_participant_token(
            db_session, manager_user, active_poll.id, guest.id, now=1234
        )
        assert revoked.token != "token-g@example.com"
        assert revoked.token_used is False
        assert revoked.token_viewed is False
        assert revoked.token_last_revoked_at == 1234
        assert await _event_types(db_session, active_poll.id) == ["TOKEN_REVOKED"]


@pytest.mark.asyncio(loop_scope="function")
class TestInPersonMarking:

    async def test_requires_setting(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest")
        with pytest.raises(ValidationFailed):
            await participant_service.mark_in_person_voted(db_session, manager_user, active_poll.id, guest.id)

    async def test_marker_event(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        active_poll.settings = {"allow_in_person_voting": True}
        await db_session.flush()
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest")

        marked = await participant_service.mark_in_person_voted(db_session, manager_user, active_poll.id, guest.id)
        assert marked.has_voted is False

        result = await db_session.execute(
            select(AuditEvent).where(AuditEvent.event_type == AuditEventType.MARKED_AS_IN_PERSON_VOTED.value)
        )
        event = result.scalar_one()
        assert event.actor_user_id == manager_user.id
        assert event.participant_id == guest.id

        with pytest.raises(Conflict):
            await participant_service.mark_in_person_voted(db_session, manager_user, active_poll.id, guest.id)

    async def test_outside_window(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        active_poll.settings = {"allow_in_person_voting": True}
        await db_session.flush()
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest")
        with pytest.raises(StateError):
            await participant_service.mark_in_person_voted(
                db_session, manager_user, active_poll.id, guest.id, now=active_poll.end_date + HOUR_MS
            )

    async def test_already_voted(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        active_poll.settings = {"allow_in_person_voting": True}
        await db_session.flush()
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest", has_voted=True)
        with pytest.raises(Conflict):
            await participant_service.mark_in_person_voted(db_session, manager_user, active_poll.id, guest.id)


@pytest.mark.asyncio(loop_scope="function")
class TestParticipantAuditTrail:

    async def test_actor_names(
        self,
        db_session: AsyncSession,
        poll_roles: Poll,
        manager_user: User,
        auditor_user: User,
        editor_user: User,
    ):
        guest = await make_participant(db_session, poll_roles, "g@example.com", "Guest")
        await participant_service.reveal_participant_token(db_session, manager_user, poll_roles.id, guest.id)
        db_session.add(AuditEvent(
            event_type=AuditEventType.VOTE_CAST.value,
            actor_user_id=None,
            poll_id=poll_roles.id,
            participant_id=guest.id,
            created_at=9_999_999_999_999,
        ))
        await db_session.flush()

        events = await participant_service.participant_audit_events(
            db_session, auditor_user, poll_roles.id, guest.id
        )
        assert [e.event_type for e in events] == ["TOKEN_VIEWED", "VOTE_CAST"]
        assert events[0].actor_name == "Mona Manager (manager@example.com)"
        assert events[1].actor_name == "System"

        with pytest.raises(PermissionDenied):
            await participant_service.participant_audit_events(db_session, editor_user, poll_roles.id, guest.id)
