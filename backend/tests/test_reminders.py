"""
Tests for invitation emails.
"""
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ballotbox.core.config import settings
from ballotbox.core.exceptions import BallotboxError, PermissionDenied, ValidationFailed
from ballotbox.models.poll import Poll
from ballotbox.models.user import User
from ballotbox.services.email import DEFAULT_BODY, EmailService, render_template
from ballotbox.services import reminders as reminder_service

from conftest import RecordingMailer, make_participant


class TestTemplates:

    def test_render_template(self):
        body = render_template(DEFAULT_BODY, {"participantName": "Pat", "pollUrl": "http://x/poll/1"})
        assert "Hello Pat," in body
        assert "http://x/poll/1" in body
        assert "{{pollTitle}}" in body

    @pytest.mark.asyncio(loop_scope="function")
    async def test_email_is_logged_to_file(self, tmp_path):
        log_path = tmp_path / "emails.log"
        mailer = EmailService(log_path=str(log_path))
        sent = await mailer.send_poll_invitation("pat@example.com", {"pollTitle": "Budget"})
        assert sent is True
        content = log_path.read_text()
        assert "TO: pat@example.com" in content
        assert "You're invited to vote: Budget" in content

    @pytest.mark.asyncio(loop_scope="function")
    async def test_unwritable_log_reports_failure(self, tmp_path):
        mailer = EmailService(log_path=str(tmp_path / "missing" / "emails.log"))
        assert await mailer.send_email("pat@example.com", "s", "b") is False


@pytest.mark.asyncio(loop_scope="function")
class TestSendPendingInvitations:

    async def test_mails_each_pending_participant_once(
        self, db_session: AsyncSession, active_poll: Poll, voter_user: User
    ):
        active_poll.will_send_emails = True
        await db_session.flush()
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest")
        member = await make_participant(db_session, active_poll, voter_user.email, voter_user.name, user=voter_user)
        await make_participant(db_session, active_poll, "done@example.com", "Done", has_voted=True)

        mailer = RecordingMailer()
        run = await reminder_service.send_pending_invitations(db_session, mailer, now=1_000 + active_poll.start_date)

        assert run.polls_processed == 1
        assert run.emails_sent == 2
        assert run.errors == []
        sent = dict(mailer.sent)
        assert set(sent) == {"g@example.com", voter_user.email}
        assert sent["g@example.com"]["pollUrl"] == (
            f"{settings.FRONTEND_URL}/poll/{active_poll.id}?token=token-g@example.com"
        )
        assert sent[voter_user.email]["pollUrl"] == f"{settings.FRONTEND_URL}/poll/{active_poll.id}"
        assert sent["g@example.com"]["participantName"] == "Guest"
        assert guest.last_email_sent_at == 1_000 + active_poll.start_date
        assert member.last_email_sent_at is not None

        second = await reminder_service.send_pending_invitations(db_session, mailer)
        assert second.emails_sent == 0

    async def test_skips_polls_without_emails(self, db_session: AsyncSession, active_poll: Poll):
        await make_participant(db_session, active_poll, "g@example.com", "Guest")
        mailer = RecordingMailer()
        run = await reminder_service.send_pending_invitations(db_session, mailer)
        assert run.polls_processed == 0
        assert mailer.sent == []

    async def test_failures_are_collected(self, db_session: AsyncSession, active_poll: Poll):
        active_poll.will_send_emails = True
        await db_session.flush()
        broken = await make_participant(db_session, active_poll, "broken@example.com", "Broken")

        run = await reminder_service.send_pending_invitations(
            db_session, RecordingMailer(fail_for=("broken@example.com",))
        )
        assert run.emails_sent == 0
        assert run.errors == ["Failed to send email to broken@example.com"]
        assert broken.last_email_sent_at is None


@pytest.mark.asyncio(loop_scope="function")
class TestSendParticipantEmail:

    async def test_manager_resends(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest")
        mailer = RecordingMailer()
        participant = await reminder_service.send_participant_email(
            db_session, manager_user, active_poll.id, guest.id, mailer, now=42
        )
        assert participant.last_email_sent_at == 42
        assert [to for to, _ in mailer.sent] == ["g@example.com"]

    async def test_editor_cannot_send(self, db_session: AsyncSession, poll_roles: Poll, editor_user: User):
        guest = await make_participant(db_session, poll_roles, "g@example.com", "Guest")
        with pytest.raises(PermissionDenied):
            await reminder_service.send_participant_email(
                db_session, editor_user, poll_roles.id, guest.id, RecordingMailer()
            )

    async def test_draft_poll(self, db_session: AsyncSession, draft_poll: Poll, manager_user: User):
        guest = await make_participant(db_session, draft_poll, "g@example.com", "Guest")
        with pytest.raises(ValidationFailed):
            await reminder_service.send_participant_email(
                db_session, manager_user, draft_poll.id, guest.id, RecordingMailer()
            )

    async def test_send_failure(self, db_session: AsyncSession, active_poll: Poll, manager_user: User):
        guest = await make_participant(db_session, active_poll, "g@example.com", "Guest")
        with pytest.raises(BallotboxError):
            await reminder_service.send_participant_email(
                db_session, manager_user, active_poll.id, guest.id, RecordingMailer(fail_for=("g@example.com",))
            )


@pytest.mark.asyncio(loop_scope="function")
class TestInvitationJob:

    async def test_job_reports_failures(self, monkeypatch, db_session: AsyncSession, active_poll: Poll):
        from contextlib import asynccontextmanager
        from ballotbox import jobs

        active_poll.will_send_emails = True
        await db_session.flush()
        await make_participant(db_session, active_poll, "g@example.com", "Guest")

        @asynccontextmanager
        async def test_scope():
            yield db_session

        async def failing_run(db):
            return await reminder_service.send_pending_invitations(
                db, RecordingMailer(fail_for=("g@example.com",))
            )

        monkeypatch.setattr(jobs, "session_scope", test_scope)
        monkeypatch.setattr(jobs, "send_pending_invitations", failing_run)
        assert await jobs.run_invitations() == 1
