"""
Test configuration and fixtures for Ballotbox backend tests.
"""
import os
import pytest_asyncio
from typing import AsyncGenerator, Optional
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from ballotbox.main import app
from ballotbox.db.base import Base, get_db
from ballotbox.core.clock import now_ms
from ballotbox.core.security import get_password_hash, create_access_token
from ballotbox.models.user import User, UserRole
from ballotbox.models.poll import Poll, PollStatus
from ballotbox.models.participant import Participant, ParticipantStatus
from ballotbox.models.poll_role import PollAuditor, PollEditor
from ballotbox.services.email import DEFAULT_TEMPLATE, EmailService, InvitationTemplate


# Use a file-based SQLite DB to avoid :memory: multiple-connection issues
# with SQLAlchemy + aiosqlite (each new connection would see an empty DB).
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

HOUR_MS = 60 * 60 * 1000
PASSWORD = "TestPass123"

BALLOT = [
    {
        "id": "q1",
        "title": "Board chair",
        "min_selection": 1,
        "max_selection": 1,
        "options": [
            {"id": "o1", "title": "Alice"},
            {"id": "o2", "title": "Bob"},
        ],
    },
]


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    # Clean up test database file
    try:
        os.remove("./test.db")
    except OSError:
        pass


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ============================================================================
# FACTORIES
# ============================================================================

async def make_user(
    db: AsyncSession,
    email: str,
    name: str,
    role: UserRole = UserRole.USER,
    group_ids: Optional[list] = None,
) -> User:
    user = User(
        email=email,
        name=name,
        password_hash=get_password_hash(PASSWORD),
        role=role,
        group_ids=group_ids or [],
    )
    db.add(user)
    await db.flush()
    return user


async def make_participant(
    db: AsyncSession,
    poll: Poll,
    email: str,
    name: str,
    vote_weight: float = 1.0,
    user: Optional[User] = None,
    token: Optional[str] = None,
    has_voted: bool = False,
) -> Participant:
    participant = Participant(
        poll_id=poll.id,
        user_id=user.id if user else None,
        email=email,
        name=name,
        is_user=user is not None,
        token=None if user else (token or f"token-{email}"),
        token_used=False,
        token_viewed=False,
        vote_weight=vote_weight,
        status=ParticipantStatus.APPROVED,
        has_voted=has_voted,
    )
    db.add(participant)
    await db.flush()
    return participant


def auth_headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(subject=user.id)}"}


class RecordingMailer(EmailService):
    """Collects invitations instead of writing them out."""

    def __init__(self, fail_for: tuple = ()):
        super().__init__()
        self.sent: list[tuple[str, dict]] = []
        self.templates: list[InvitationTemplate] = []
        self.fail_for = fail_for

    async def send_poll_invitation(
        self, to: str, variables: dict[str, str], template: InvitationTemplate = DEFAULT_TEMPLATE
    ) -> bool:
        if to in self.fail_for:
            return False
        self.sent.append((to, variables))
        self.templates.append(template)
        return True


# ============================================================================
# USERS
# ============================================================================

@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "admin@example.com", "Ada Admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def manager_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "manager@example.com", "Mona Manager", UserRole.SUB_ADMIN)


@pytest_asyncio.fixture
async def auditor_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "auditor@example.com", "Aldo Auditor", UserRole.SUB_ADMIN)


@pytest_asyncio.fixture
async def editor_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "editor@example.com", "Edda Editor", UserRole.SUB_ADMIN)


@pytest_asyncio.fixture
async def outsider_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "outsider@example.com", "Otto Outsider", UserRole.SUB_ADMIN)


@pytest_asyncio.fixture
async def voter_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "voter@example.com", "Vera Voter", UserRole.USER)


# ============================================================================
# POLLS
# ============================================================================

@pytest_asyncio.fixture
async def active_poll(db_session: AsyncSession, manager_user: User, admin_user: User) -> Poll:
    """An active poll whose voting window is open."""
    now = now_ms()
    poll = Poll(
        title="Annual election",
        description="Elect the board chair",
        start_date=now - HOUR_MS,
        end_date=now + HOUR_MS,
        status=PollStatus.ACTIVE,
        manager_id=manager_user.id,
        created_by_id=admin_user.id,
        settings={},
        ballot=BALLOT,
        will_send_emails=False,
    )
    db_session.add(poll)
    await db_session.flush()
    return poll


@pytest_asyncio.fixture
async def draft_poll(db_session: AsyncSession, manager_user: User) -> Poll:
    now = now_ms()
    poll = Poll(
        title="Draft poll",
        description=None,
        start_date=now + HOUR_MS,
        end_date=now + 2 * HOUR_MS,
        status=PollStatus.DRAFT,
        manager_id=manager_user.id,
        created_by_id=manager_user.id,
        settings={},
        ballot=BALLOT,
        will_send_emails=False,
    )
    db_session.add(poll)
    await db_session.flush()
    return poll


@pytest_asyncio.fixture
async def poll_roles(
    db_session: AsyncSession, active_poll: Poll, auditor_user: User, editor_user: User
) -> Poll:
    """Assign the auditor and editor users to the active poll."""
    db_session.add(PollAuditor(poll_id=active_poll.id, user_id=auditor_user.id))
    db_session.add(PollEditor(poll_id=active_poll.id, user_id=editor_user.id))
    await db_session.flush()
    return active_poll
