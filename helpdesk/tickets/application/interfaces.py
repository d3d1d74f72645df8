"""
Ticket Application Interfaces
=============================

Abstractions the application services depend on (Dependency Inversion).
Concrete SQLAlchemy and HTTP implementations live in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from helpdesk.tickets.domain import (
    Actor, Ticket, AuditLogEntry, Escalation, ChatMessage, SLAPolicy,
    TicketTemplate, UserNotification,
)


@dataclass
class TicketQuery:
    """
    Ticket search criteria.

    Scope fields are OR-ed together and describe what the caller may see
    (all ``None`` means everything). Filter fields are AND-ed on top.
    """

    # Visibility scope
    scope_categories: Optional[List[str]] = None
    scope_employee_email: Optional[str] = None
    scope_assigned_to: Optional[str] = None

    # Filters
    categories: Optional[List[str]] = None
    statuses: Optional[List[str]] = None
    priority: Optional[str] = None
    employee_email: Optional[str] = None
    assigned_to: Optional[str] = None

    @property
    def has_scope(self) -> bool:
        return any(
            value is not None
            for value in (self.scope_categories, self.scope_employee_email, self.scope_assigned_to)
        )


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Create new ticket."""

    @abstractmethod
    async def update(self, ticket: Ticket) -> Ticket:
        """Persist every field of an existing ticket."""

    @abstractmethod
    async def list(
        self,
        query: TicketQuery,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Tuple[List[Ticket], int]:
        """List tickets newest first, with the total matching count."""


class IAuditLogRepository(ABC):
    """Interface for the append-only audit trail."""

    @abstractmethod
    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Insert one entry."""

    @abstractmethod
    async def list_for_ticket(
        self, ticket_id: str, since: Optional[datetime] = None
    ) -> List[AuditLogEntry]:
        """Entries of one ticket, oldest first."""

    @abstractmethod
    async def list_recent(
        self, since: Optional[datetime] = None, limit: int = 100
    ) -> List[AuditLogEntry]:
        """Entries across all tickets, newest first."""


class IEscalationRepository(ABC):
    """Interface for escalation records."""

    @abstractmethod
    async def create(self, escalation: Escalation) -> Escalation:
        """Create new escalation."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        """Escalations of one ticket, oldest first."""

    @abstractmethod
    async def resolve_for_ticket(self, ticket_id: str) -> int:
        """Mark open escalations of a ticket resolved. Returns how many."""


class IUserRepository(ABC):
    """Interface for the user directory and role permissions."""

    @abstractmethod
    async def get(self, email: str) -> Optional[Actor]:
        """Get user by email."""

    @abstractmethod
    async def upsert(self, actor: Actor) -> Actor:
        """Insert or refresh a directory entry."""

    @abstractmethod
    async def list_by_role(self, role: Optional[str] = None) -> List[Actor]:
        """Users with the role (all users when None), oldest first."""

    @abstractmethod
    async def get_permission(self, email: str) -> Optional[str]:
        """Role mapped to an email, if any."""

    @abstractmethod
    async def set_permission(self, email: str, role: str) -> None:
        """Map an email to a role."""


class IChatRepository(ABC):
    """Interface for ticket chat messages."""

    @abstractmethod
    async def add(self, message: ChatMessage) -> ChatMessage:
        """Store one message."""

    @abstractmethod
    async def list_for_ticket(
        self, ticket_id: str, after: Optional[datetime] = None
    ) -> List[ChatMessage]:
        """Messages of one ticket, oldest first, strictly after ``after``."""


class ITemplateRepository(ABC):
    """Interface for ticket templates."""

    @abstractmethod
    async def get_by_id(self, template_id: str) -> Optional[TicketTemplate]:
        """Get template by ID."""

    @abstractmethod
    async def create(self, template: TicketTemplate) -> TicketTemplate:
        """Create new template."""

    @abstractmethod
    async def update(self, template: TicketTemplate) -> TicketTemplate:
        """Persist the editable fields of an existing template."""

    @abstractmethod
    async def delete(self, template_id: str) -> bool:
        """Delete a template. Returns False when it did not exist."""

    @abstractmethod
    async def list(
        self, category: Optional[str] = None, limit: Optional[int] = None, offset: int = 0
    ) -> List[TicketTemplate]:
        """Templates newest first, optionally of one category."""


class INotificationRepository(ABC):
    """Interface for per-user in-app notifications."""

    @abstractmethod
    async def add(self, notification: UserNotification) -> UserNotification:
        """Store one notification."""

    @abstractmethod
    async def get_by_id(self, notification_id: str) -> Optional[UserNotification]:
        """Get notification by ID."""

    @abstractmethod
    async def list_for_user(self, user_email: str, limit: int = 50) -> List[UserNotification]:
        """Notifications of one user, newest first."""

    @abstractmethod
    async def mark_read(self, notification_id: str) -> None:
        """Flag a notification as read."""


class IUnitOfWork(ABC):
    """Commits the primary write of an operation."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit pending changes."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_policy(self) -> SLAPolicy:
        """Get current SLA policy."""


class IEventPublisher(ABC):
    """Hands committed ticket events to their consumers."""

    @abstractmethod
    async def publish(self, event) -> None:
        """Publish one event. Must not raise for consumer failures."""
