"""
Ticket API Dependencies
=======================

FastAPI dependency providers: the calling actor and request-scoped services.

Identity comes from the headers set by the upstream auth proxy. Long-lived
collaborators (event bus, SLA policy) live on ``app.state``.
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import settings
from helpdesk.core import AuthenticationException
from helpdesk.infrastructure.database import get_session
from helpdesk.tickets.application import (
    TicketService, EscalationService, AuditLogService, DirectoryService, ChatService,
    TemplateService, InboxService, IEventPublisher, ISLAConfigProvider,
)
from helpdesk.tickets.domain import Actor
from helpdesk.tickets.infrastructure import (
    SQLAlchemyTicketRepository,
    SQLAlchemyAuditLogRepository,
    SQLAlchemyEscalationRepository,
    SQLAlchemyUserRepository,
    SQLAlchemyChatRepository,
    SQLAlchemyTemplateRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemyUnitOfWork,
)


def get_event_publisher(request: Request) -> IEventPublisher:
    return request.app.state.event_bus


def get_sla_config(request: Request) -> ISLAConfigProvider:
    return request.app.state.sla_config


async def get_directory_service(session: AsyncSession = Depends(get_session)) -> DirectoryService:
    return DirectoryService(SQLAlchemyUserRepository(session), SQLAlchemyUnitOfWork(session))


async def get_actor(
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    directory: DirectoryService = Depends(get_directory_service),
) -> Actor:
    """Resolve the calling user. Requests without an identity are rejected."""
    if not x_user_email:
        raise AuthenticationException("Missing X-User-Email header")
    return await directory.resolve_actor(x_user_email, x_user_name)


async def get_ticket_service(
    session: AsyncSession = Depends(get_session),
    publisher: IEventPublisher = Depends(get_event_publisher),
    sla_config: ISLAConfigProvider = Depends(get_sla_config),
) -> TicketService:
    """Get ticket service instance."""
    return TicketService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        user_repository=SQLAlchemyUserRepository(session),
        escalation_repository=SQLAlchemyEscalationRepository(session),
        unit_of_work=SQLAlchemyUnitOfWork(session),
        publisher=publisher,
        sla_config_provider=sla_config,
        escalation_auto_resolve=settings.escalation_auto_resolve,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )


async def get_escalation_service(
    session: AsyncSession = Depends(get_session),
    publisher: IEventPublisher = Depends(get_event_publisher),
) -> EscalationService:
    return EscalationService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyEscalationRepository(session),
        SQLAlchemyUnitOfWork(session),
        publisher,
    )


async def get_audit_service(session: AsyncSession = Depends(get_session)) -> AuditLogService:
    return AuditLogService(SQLAlchemyAuditLogRepository(session))


async def get_chat_service(
    session: AsyncSession = Depends(get_session),
    publisher: IEventPublisher = Depends(get_event_publisher),
) -> ChatService:
    return ChatService(
        SQLAlchemyChatRepository(session),
        SQLAlchemyTicketRepository(session),
        SQLAlchemyUnitOfWork(session),
        publisher,
    )


async def get_template_service(session: AsyncSession = Depends(get_session)) -> TemplateService:
    return TemplateService(SQLAlchemyTemplateRepository(session), SQLAlchemyUnitOfWork(session))


async def get_inbox_service(session: AsyncSession = Depends(get_session)) -> InboxService:
    return InboxService(
        SQLAlchemyNotificationRepository(session),
        SQLAlchemyUnitOfWork(session),
        limit=settings.inbox_limit,
    )
