"""
Ticket Domain Entities
======================

Pure Python domain entities for the help-desk.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import List, Optional

from helpdesk.config import (
    TicketStatus, Role, ROLE_CATEGORIES, ROLE_MANAGERS, DEFAULT_ROLE
)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps coming back from the store."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Actor:
    """
    An authenticated identity mapped to a directory role.

    The identity itself comes from the upstream OAuth proxy; the role comes
    from the role permission lookup.
    """

    email: str
    name: str
    role: str = DEFAULT_ROLE
    employee_code: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None

    def __post_init__(self):
        self.email = self.email.strip().lower()

    @property
    def allowed_categories(self) -> List[str]:
        """Categories this actor may triage."""
        return list(ROLE_CATEGORIES.get(self.role, []))

    @property
    def is_employee(self) -> bool:
        return self.role == Role.EMPLOYEE

    @property
    def is_role_manager(self) -> bool:
        """Role managers may change roles and read the audit trail."""
        return self.role in ROLE_MANAGERS

    def manages_category(self, category: str) -> bool:
        return category in self.allowed_categories


@dataclass
class Ticket:
    """
    Ticket entity representing a help-desk request.

    Timing fields follow the freezing rules enforced by
    ``SLACalculator.compute_derived_fields``.
    """

    # Core attributes
    id: str
    subject: str
    description: str
    category: str
    priority: str
    status: str

    # Ownership
    employee_email: str
    employee_name: str

    # Timestamps
    created_at: datetime
    updated_at: datetime

    employee_code: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None
    assigned_to: Optional[str] = None

    # SLA tracking
    sla_due_date: Optional[datetime] = None
    response_time: Optional[float] = None
    resolution_time: Optional[float] = None
    sla_violated: bool = False

    # Feedback and escalation
    rating: Optional[int] = None
    escalation_reason: Optional[str] = None
    escalation_date: Optional[datetime] = None

    def __post_init__(self):
        """Validate ticket on initialization."""
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)
        self.sla_due_date = ensure_utc(self.sla_due_date)
        self.escalation_date = ensure_utc(self.escalation_date)

        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

    @property
    def is_closed(self) -> bool:
        return self.status == TicketStatus.CLOSED

    def copy(self, **changes) -> "Ticket":
        """Return a modified copy, leaving this instance untouched."""
        return replace(self, **changes)


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable record of one mutating action on a ticket."""

    id: str
    ticket_id: str
    action: str
    details: str
    performed_by: str
    performed_at: datetime
    old_value: Optional[str] = None
    new_value: Optional[str] = None


@dataclass
class Escalation:
    """One escalation request against a ticket."""

    id: str
    ticket_id: str
    reason: str
    description: str
    timeline: str
    escalated_by: str
    escalated_at: datetime
    resolved: bool = False


@dataclass(frozen=True)
class ChatMessage:
    """A message exchanged on a ticket."""

    id: str
    ticket_id: str
    sender_email: str
    sender_name: str
    sender_role: str
    message: str
    sent_at: datetime


@dataclass(frozen=True)
class DerivedFields:
    """Output of the SLA computation for a ticket at a point in time."""

    response_time: Optional[float]
    resolution_time: Optional[float]
    sla_violated: bool


@dataclass
class TicketPage:
    """A page of tickets plus the total number matching the query."""

    tickets: List[Ticket] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 20


@dataclass
class TicketTemplate:
    """Reusable starting point for a ticket in one category."""

    id: str
    name: str
    category: str
    subject: str
    description: str
    priority: str
    created_by: str
    created_at: datetime

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)


@dataclass
class UserNotification:
    """In-app notification shown to one user."""

    id: str
    user_email: str
    title: str
    message: str
    type: str
    created_at: datetime
    ticket_id: Optional[str] = None
    read: bool = False

    def __post_init__(self):
        self.user_email = self.user_email.strip().lower()
        self.created_at = ensure_utc(self.created_at)
