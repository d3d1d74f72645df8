"""
Ticket Application Layer
========================

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization
- Events: Post-commit ticket events and the bus that delivers them

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.tickets.application.dto import (
    TicketCreateRequest,
    TicketUpdateRequest,
    EscalationRequest,
    ChatMessageRequest,
    RoleUpdateRequest,
    ProfileUpdateRequest,
    TemplateCreateRequest,
    TemplateUpdateRequest,
    TicketListQuery,
    TicketResponse,
    TicketListResponse,
    AuditLogResponse,
    AuditStatsResponse,
    EscalationResponse,
    EscalateResponse,
    ChatMessageResponse,
    UserResponse,
    TemplateResponse,
    NotificationResponse,
    NotificationPayload,
)
from helpdesk.tickets.application.events import (
    EventBus,
    FieldChange,
    TicketEvent,
    TicketEventType,
)
from helpdesk.tickets.application.interfaces import (
    ITicketRepository,
    IAuditLogRepository,
    IEscalationRepository,
    IUserRepository,
    IChatRepository,
    IUnitOfWork,
    ISLAConfigProvider,
    IEventPublisher,
    ITemplateRepository,
    INotificationRepository,
    TicketQuery,
)
from helpdesk.tickets.application.services import (
    TicketService,
    EscalationService,
    EscalationOutcome,
    AuditLogService,
    DirectoryService,
    ChatService,
    TemplateService,
    InboxService,
)

__all__ = [
    # DTOs
    "TicketCreateRequest",
    "TicketUpdateRequest",
    "EscalationRequest",
    "ChatMessageRequest",
    "RoleUpdateRequest",
    "ProfileUpdateRequest",
    "TemplateCreateRequest",
    "TemplateUpdateRequest",
    "TicketListQuery",
    "TicketResponse",
    "TicketListResponse",
    "AuditLogResponse",
    "AuditStatsResponse",
    "EscalationResponse",
    "EscalateResponse",
    "ChatMessageResponse",
    "UserResponse",
    "TemplateResponse",
    "NotificationResponse",
    "NotificationPayload",
    # Events
    "EventBus",
    "FieldChange",
    "TicketEvent",
    "TicketEventType",
    # Services
    "TicketService",
    "EscalationService",
    "EscalationOutcome",
    "AuditLogService",
    "DirectoryService",
    "ChatService",
    "TemplateService",
    "InboxService",
    # Repository Interfaces
    "ITicketRepository",
    "IAuditLogRepository",
    "IEscalationRepository",
    "IUserRepository",
    "IChatRepository",
    "IUnitOfWork",
    "ISLAConfigProvider",
    "IEventPublisher",
    "ITemplateRepository",
    "INotificationRepository",
    "TicketQuery",
]
