"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database created from model metadata, emptied after each test
- Accounts, users and boards for viewer/admin scenarios
- A fake Linear gateway and a controllable clock for the caches
- HTTPX AsyncClients with session cookie and CSRF header
"""
import os
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["AUTH_BYPASS"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from portal.core.deps import (
    COOKIE_NAME,
    get_db,
    get_issue_gateway,
    get_ticket_cache,
    get_workflow_state_cache,
)
from portal.core.errors import NotFound
from portal.core.security import create_session_token
from portal.db.base import Base
from portal.db.enums import BoardType, Role
from portal.db.models import Account, Board, User
from portal.db.session import SessionLocal, engine
from portal.main import app
from portal.services.linear_gateway import (
    ActivityIssue,
    ActivityIssuePage,
    Comment,
    IssueDetails,
    IssueFilter,
    IssuePage,
    IssueSnapshot,
    PageInfo,
    WorkflowState,
)
from portal.services.ticket_cache import TicketListCache
from portal.services.workflow_state_cache import WorkflowStateCache


# =============================================================================
# Fake Linear gateway
# =============================================================================


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """In-memory IssueGateway. Counts calls; ``fail_with`` makes every call raise."""

    def __init__(self):
        self.issues: list[IssueSnapshot] = []
        self.activity: dict[str, list[ActivityIssue]] = {}
        self.states: dict[str, list[WorkflowState]] = {}
        self.details: dict[str, IssueDetails] = {}
        self.created_comments: list[tuple[str, str]] = []
        self.created_issues: list[dict] = []
        self.calls: Counter = Counter()
        self.fail_with: Exception | None = None

    def _record(self, name: str) -> None:
        self.calls[name] += 1
        if self.fail_with is not None:
            raise self.fail_with

    def _matches(self, issue: IssueSnapshot, issue_filter: IssueFilter) -> bool:
        if issue.team_id != issue_filter.team_id:
            return False
        return not issue_filter.project_id or issue.project_id == issue_filter.project_id

    async def list_issues(self, issue_filter, *, first, after=None):
        self._record("list_issues")
        nodes = [i for i in self.issues if self._matches(i, issue_filter)]
        return IssuePage(
            nodes=nodes[:first],
            page_info=PageInfo(has_next_page=len(nodes) > first, end_cursor=None),
        )

    async def list_activity_issues(self, issue_filter, *, first, after=None):
        self._record("list_activity_issues")
        nodes = self.activity.get(issue_filter.team_id, [])
        return ActivityIssuePage(nodes=nodes[:first], page_info=PageInfo())

    async def list_workflow_states(self, team_id):
        self._record("list_workflow_states")
        return list(self.states.get(team_id, []))

    async def get_issue(self, issue_id):
        self._record("get_issue")
        return self.details.get(issue_id)

    async def get_issue_state(self, issue_id):
        self._record("get_issue_state")
        details = self.details.get(issue_id)
        if details is None:
            raise NotFound("Issue not found.")
        return details.issue.state

    async def list_comments(self, issue_id):
        self._record("list_comments")
        details = self.details.get(issue_id)
        return list(details.comments) if details else []

    async def create_comment(self, issue_id, body):
        self._record("create_comment")
        self.created_comments.append((issue_id, body))
        return Comment(
            id=f"comment-{len(self.created_comments)}",
            body=body,
            created_at="2026-01-01T12:00:00.000Z",
            user_name="Portal Bot",
        )

    async def create_issue(self, *, team_id, title, description, priority=None,
                           due_date=None, project_id=None):
        self._record("create_issue")
        issue_id = f"issue-new-{len(self.created_issues) + 1}"
        self.created_issues.append(
            {"id": issue_id, "team_id": team_id, "title": title, "project_id": project_id}
        )
        self.issues.append(
            IssueSnapshot(
                id=issue_id,
                identifier=f"SUP-{100 + len(self.created_issues)}",
                title=title,
                description=description,
                priority=priority,
                team_id=team_id,
                project_id=project_id,
            )
        )
        return issue_id

    async def list_teams(self):
        self._record("list_teams")
        return [{"id": "team-1", "name": "Support", "key": "SUP"}]

    async def list_projects(self, team_id=None):
        self._record("list_projects")
        return [{"id": "project-1", "name": "Roadmap", "state": "started"}]

    async def list_labels(self, team_id=None):
        self._record("list_labels")
        return [{"id": "label-1", "name": "bug", "color": "#ff0000"}]

    async def viewer(self):
        self._record("viewer")
        return {"id": "viewer-1", "name": "Support Bot", "email": "bot@example.com"}


def make_issue(n: int, *, team_id: str = "team-1", project_id: str | None = None,
               state: WorkflowState | None = None, priority: int | None = 3) -> IssueSnapshot:
    return IssueSnapshot(
        id=f"issue-{n}",
        identifier=f"SUP-{n}",
        title=f"Ticket {n}",
        priority=priority,
        created_at="2026-01-01T10:00:00.000Z",
        updated_at="2026-01-02T10:00:00.000Z",
        state=state or WorkflowState(id="s-todo", name="Nuevo", type="unstarted", color="#aaa"),
        team_id=team_id,
        project_id=project_id,
    )


# =============================================================================
# Database Fixtures
# =============================================================================

Base.metadata.create_all(bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Session on the shared in-memory database.

    Every table is emptied after the test so app code can commit freely.
    """
    session = SessionLocal()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture(scope="function")
def account(db: Session) -> Account:
    acct = Account(name="Acme Support")
    db.add(acct)
    db.commit()
    return acct


@pytest.fixture(scope="function")
def other_account(db: Session) -> Account:
    acct = Account(name="Globex")
    db.add(acct)
    db.commit()
    return acct


@pytest.fixture(scope="function")
def viewer_user(db: Session, account: Account) -> User:
    user = User(
        email=f"viewer-{uuid.uuid4().hex[:8]}@test.com",
        name="Viewer",
        role=Role.VIEWER.value,
        account_id=account.id,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def admin_user(db: Session) -> User:
    user = User(
        email=f"admin-{uuid.uuid4().hex[:8]}@test.com",
        name="Admin",
        role=Role.ADMIN.value,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def board(db: Session, account: Account) -> Board:
    b = Board(
        name="Support",
        type=BoardType.SUPPORT.value,
        account_id=account.id,
        team_id="team-1",
    )
    db.add(b)
    db.commit()
    return b


@pytest.fixture(scope="function")
def project_board(db: Session, account: Account) -> Board:
    b = Board(
        name="Roadmap",
        type=BoardType.PROJECT.value,
        account_id=account.id,
        team_id="team-2",
        project_id="project-1",
    )
    db.add(b)
    db.commit()
    return b


@pytest.fixture(scope="function")
def other_board(db: Session, other_account: Account) -> Board:
    b = Board(
        name="Globex Support",
        type=BoardType.SUPPORT.value,
        account_id=other_account.id,
        team_id="team-3",
    )
    db.add(b)
    db.commit()
    return b


# =============================================================================
# Linear Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def fake_gateway() -> FakeGateway:
    gateway = FakeGateway()
    gateway.states["team-1"] = [
        WorkflowState(id="s-done", name="Resuelto", type="completed", color="#0f0"),
        WorkflowState(id="s-todo", name="Nuevo", type="unstarted", color="#aaa"),
        WorkflowState(id="s-wip", name="En progreso", type="started", color="#ff0"),
    ]
    return gateway


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def state_cache(fake_gateway: FakeGateway, clock: FakeClock) -> WorkflowStateCache:
    return WorkflowStateCache(fake_gateway, ttl_seconds=60, clock=clock)


@pytest.fixture(scope="function")
def ticket_cache(
    fake_gateway: FakeGateway, state_cache: WorkflowStateCache, clock: FakeClock
) -> TicketListCache:
    return TicketListCache(fake_gateway, state_cache, ttl_seconds=30, clock=clock)


# =============================================================================
# Client Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


def _auth_for(user: User) -> TestAuth:
    token = create_session_token(
        user_id=user.id,
        role=user.role,
        account_id=user.account_id,
        token_version=user.token_version,
    )
    return TestAuth(user=user, token=token)


def _install_overrides(db, fake_gateway, state_cache, ticket_cache) -> None:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_issue_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_workflow_state_cache] = lambda: state_cache
    app.dependency_overrides[get_ticket_cache] = lambda: ticket_cache


@pytest.fixture(scope="function")
async def client(db, fake_gateway, state_cache, ticket_cache) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public endpoints."""
    _install_overrides(db, fake_gateway, state_cache, ticket_cache)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _authed(user, db, fake_gateway, state_cache, ticket_cache):
    _install_overrides(db, fake_gateway, state_cache, ticket_cache)
    auth = _auth_for(user)
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={auth.cookie_name: auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    )


@pytest.fixture(scope="function")
async def viewer_client(
    db, viewer_user, fake_gateway, state_cache, ticket_cache
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient authenticated as a viewer of ``account``."""
    async with await _authed(viewer_user, db, fake_gateway, state_cache, ticket_cache) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def admin_client(
    db, admin_user, fake_gateway, state_cache, ticket_cache
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient authenticated as an admin."""
    async with await _authed(admin_user, db, fake_gateway, state_cache, ticket_cache) as c:
        yield c
    app.dependency_overrides.clear()
