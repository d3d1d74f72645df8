"""
Shared fixtures: in-memory database, a controllable clock, and services wired
against real SQLAlchemy repositories.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("NOTIFICATION_WEBHOOK_URL", "")

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest

from helpdesk.config import Role
from helpdesk.core import RepositoryException
from helpdesk.infrastructure.database import (
    init_database, close_database, create_tables, get_session_maker
)
from helpdesk.tickets.application import (
    TicketService, EscalationService, AuditLogService, DirectoryService, ChatService,
    TemplateService, InboxService, IEventPublisher, IUnitOfWork, TicketCreateRequest,
)
from helpdesk.tickets.domain import Actor
from helpdesk.tickets.infrastructure import (
    SLAConfigManager,
    SQLAlchemyTicketRepository,
    SQLAlchemyAuditLogRepository,
    SQLAlchemyEscalationRepository,
    SQLAlchemyUserRepository,
    SQLAlchemyChatRepository,
    SQLAlchemyTemplateRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemyUnitOfWork,
)

EXAMPLE_POLICY = """
resolution_hours:
  Critical: 4
  High: 24
  Medium: 72
  Low: 168
"""


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingPublisher(IEventPublisher):
    """Collects published events instead of delivering them."""

    def __init__(self):
        self.events: List = []

    async def publish(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List:
        return [e for e in self.events if e.event_type == event_type]


class FailingUnitOfWork(IUnitOfWork):
    """Unit of work whose commit fails like a dropped connection."""

    def __init__(self):
        self.attempts = 0

    async def commit(self) -> None:
        self.attempts += 1
        raise RepositoryException("Commit failed: connection reset by peer")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def sla_config(tmp_path: Path) -> SLAConfigManager:
    path = tmp_path / "sla_config.yaml"
    path.write_text(EXAMPLE_POLICY)
    manager = SLAConfigManager()
    manager.load(path)
    return manager


@pytest.fixture
async def database():
    init_database("sqlite+aiosqlite:///:memory:")
    await create_tables()
    yield
    await close_database()


@pytest.fixture
async def session(database):
    async with get_session_maker()() as session:
        yield session


@pytest.fixture
def directory(session) -> DirectoryService:
    return DirectoryService(SQLAlchemyUserRepository(session), SQLAlchemyUnitOfWork(session))


@pytest.fixture
def make_user(session, directory):
    """Create a directory user with the given role and return the actor."""

    async def _make_user(email: str, role: str = Role.EMPLOYEE, name: str = None) -> Actor:
        if role != Role.EMPLOYEE:
            await SQLAlchemyUserRepository(session).set_permission(email, role)
        return await directory.resolve_actor(email, name or email.split("@")[0].title())

    return _make_user


@pytest.fixture
def ticket_service(session, publisher, sla_config, clock) -> TicketService:
    return TicketService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        user_repository=SQLAlchemyUserRepository(session),
        escalation_repository=SQLAlchemyEscalationRepository(session),
        unit_of_work=SQLAlchemyUnitOfWork(session),
        publisher=publisher,
        sla_config_provider=sla_config,
        clock=clock,
    )


@pytest.fixture
def escalation_service(session, publisher, clock) -> EscalationService:
    return EscalationService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyEscalationRepository(session),
        SQLAlchemyUnitOfWork(session),
        publisher,
        clock=clock,
    )


@pytest.fixture
def audit_service(session, clock) -> AuditLogService:
    return AuditLogService(SQLAlchemyAuditLogRepository(session), clock=clock)


@pytest.fixture
def chat_service(session, publisher, clock) -> ChatService:
    return ChatService(
        SQLAlchemyChatRepository(session),
        SQLAlchemyTicketRepository(session),
        SQLAlchemyUnitOfWork(session),
        publisher,
        clock=clock,
    )


@pytest.fixture
def template_service(session, clock) -> TemplateService:
    return TemplateService(SQLAlchemyTemplateRepository(session), SQLAlchemyUnitOfWork(session), clock=clock)


@pytest.fixture
def inbox_service(session, clock) -> InboxService:
    return InboxService(SQLAlchemyNotificationRepository(session), SQLAlchemyUnitOfWork(session), clock=clock)


@pytest.fixture
async def people(make_user):
    """A small directory: two employees and one owner per role."""
    return {
        "alice": await make_user("alice@example.com"),
        "bob": await make_user("bob@example.com"),
        "it": await make_user("it.owner@example.com", Role.IT_OWNER),
        "hr": await make_user("hr.owner@example.com", Role.HR_OWNER),
        "admin": await make_user("admin.owner@example.com", Role.ADMIN_OWNER),
        "accounts": await make_user("accounts.owner@example.com", Role.ACCOUNTS_OWNER),
        "owner": await make_user("owner@example.com", Role.OWNER),
    }


def draft(**overrides) -> TicketCreateRequest:
    data = {
        "subject": "Laptop will not boot",
        "description": "Black screen after the update last night.",
        "category": "IT Infrastructure",
        "priority": "High",
    }
    data.update(overrides)
    return TicketCreateRequest(**data)
