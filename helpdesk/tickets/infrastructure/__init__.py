"""
Ticket Infrastructure Layer
===========================

Infrastructure implementations for the help-desk:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: Notification webhook and SLA policy watcher
- Handlers: Audit, webhook and in-app notification consumers of ticket events
"""

from helpdesk.tickets.infrastructure.models import (
    TicketModel,
    AuditLogModel,
    EscalationModel,
    UserModel,
    RolePermissionModel,
    ChatMessageModel,
    TicketTemplateModel,
    UserNotificationModel,
)
from helpdesk.tickets.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyAuditLogRepository,
    SQLAlchemyEscalationRepository,
    SQLAlchemyUserRepository,
    SQLAlchemyChatRepository,
    SQLAlchemyTemplateRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemyUnitOfWork,
)
from helpdesk.tickets.infrastructure.external import (
    SLAConfigManager,
    CircuitBreaker,
    WebhookNotifier,
)
from helpdesk.tickets.infrastructure.handlers import (
    AuditEventHandler,
    NotificationEventHandler,
    InboxEventHandler,
    audit_entries_for,
    inbox_entries_for,
)

__all__ = [
    "TicketModel",
    "AuditLogModel",
    "EscalationModel",
    "UserModel",
    "RolePermissionModel",
    "ChatMessageModel",
    "TicketTemplateModel",
    "UserNotificationModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyAuditLogRepository",
    "SQLAlchemyEscalationRepository",
    "SQLAlchemyUserRepository",
    "SQLAlchemyChatRepository",
    "SQLAlchemyTemplateRepository",
    "SQLAlchemyNotificationRepository",
    "SQLAlchemyUnitOfWork",
    "SLAConfigManager",
    "CircuitBreaker",
    "WebhookNotifier",
    "AuditEventHandler",
    "NotificationEventHandler",
    "InboxEventHandler",
    "audit_entries_for",
    "inbox_entries_for",
]
