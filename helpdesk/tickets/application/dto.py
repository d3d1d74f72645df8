"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket API layer.

Request models only shape the payload; business validation (allowed
categories, transitions, rating range) happens in the services so it applies
to every caller, not just HTTP.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from helpdesk.config import Priority
from helpdesk.tickets.domain import (
    Actor, Ticket, AuditLogEntry, Escalation, ChatMessage,
    TicketTemplate, UserNotification,
)


DateFilterStr = Literal["all", "today", "7days", "30days"]


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request model for filing a ticket."""
    subject: str = Field(..., description="Short summary")
    description: str = Field(..., description="Full problem description")
    category: str = Field(..., description="IT Infrastructure, HR, Administration, Accounts or Others")
    priority: str = Field(default=Priority.MEDIUM, description="Low, Medium, High or Critical")
    assigned_to: Optional[str] = Field(None, description="Assignee email; auto-assigned when omitted")
    department: Optional[str] = None
    sub_department: Optional[str] = None


class TicketUpdateRequest(BaseModel):
    """Partial update. Only fields present in the payload are applied."""
    model_config = ConfigDict(extra="forbid")

    subject: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    rating: Optional[int] = None


class EscalationRequest(BaseModel):
    """Request model for escalating a ticket."""
    reason: str = Field(..., description="Why the ticket needs attention")
    description: str = Field(default="", description="Optional detail")
    timeline: str = Field(..., description="Expected resolution timeline, e.g. '2 days'")


class ChatMessageRequest(BaseModel):
    message: str = Field(..., description="Message text")


class RoleUpdateRequest(BaseModel):
    role: str = Field(..., description="New role for the user")


class ProfileUpdateRequest(BaseModel):
    """Directory fields a user keeps up to date. Only fields present are applied."""
    model_config = ConfigDict(extra="forbid")

    employee_code: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None


class TemplateCreateRequest(BaseModel):
    """Request model for a ticket template."""
    name: str = Field(..., description="Label shown when picking a template")
    category: str
    subject: str
    description: str
    priority: str = Field(default=Priority.MEDIUM)


class TemplateUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    category: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None


class TicketListQuery(BaseModel):
    """Query parameters for ticket listings."""
    page: int = Field(default=1, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1)
    status: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    employee_email: Optional[str] = None
    assigned_to: Optional[str] = None


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Ticket as returned by the API, derived fields applied."""
    id: str
    subject: str
    description: str
    category: str
    priority: str
    status: str
    employee_email: str
    employee_name: str
    employee_code: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None
    assigned_to: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    sla_due_date: Optional[datetime] = None
    response_time: Optional[float] = None
    resolution_time: Optional[float] = None
    sla_violated: bool = False
    rating: Optional[int] = None
    escalation_reason: Optional[str] = None
    escalation_date: Optional[datetime] = None

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketResponse":
        return cls(**ticket.__dict__)


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    total_count: int
    page: int
    page_size: int


class AuditLogResponse(BaseModel):
    id: str
    ticket_id: str
    action: str
    details: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_by: str
    performed_at: datetime

    @classmethod
    def from_entity(cls, entry: AuditLogEntry) -> "AuditLogResponse":
        return cls(**entry.__dict__)


class AuditStatsResponse(BaseModel):
    """Audit activity counts for one ticket (or all tickets)."""
    ticket_id: Optional[str] = None
    total: int = 0
    today: int = 0
    last_7_days: int = 0
    last_30_days: int = 0
    by_action: Dict[str, int] = Field(default_factory=dict)


class EscalationResponse(BaseModel):
    id: str
    ticket_id: str
    reason: str
    description: str
    timeline: str
    escalated_by: str
    escalated_at: datetime
    resolved: bool

    @classmethod
    def from_entity(cls, escalation: Escalation) -> "EscalationResponse":
        return cls(**escalation.__dict__)


class EscalateResponse(BaseModel):
    """Outcome of an escalation request."""
    ticket: TicketResponse
    escalation: Optional[EscalationResponse] = None
    already_escalated: bool = False


class ChatMessageResponse(BaseModel):
    id: str
    ticket_id: str
    sender_email: str
    sender_name: str
    sender_role: str
    message: str
    sent_at: datetime

    @classmethod
    def from_entity(cls, message: ChatMessage) -> "ChatMessageResponse":
        return cls(**message.__dict__)


class UserResponse(BaseModel):
    email: str
    name: str
    role: str
    employee_code: Optional[str] = None
    department: Optional[str] = None
    sub_department: Optional[str] = None
    allowed_categories: List[str] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, actor: Actor) -> "UserResponse":
        return cls(**actor.__dict__, allowed_categories=actor.allowed_categories)


class TemplateResponse(BaseModel):
    id: str
    name: str
    category: str
    subject: str
    description: str
    priority: str
    created_by: str
    created_at: datetime

    @classmethod
    def from_entity(cls, template: TicketTemplate) -> "TemplateResponse":
        return cls(**template.__dict__)


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: str
    read: bool
    ticket_id: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_entity(cls, notification: UserNotification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            title=notification.title,
            message=notification.message,
            type=notification.type,
            read=notification.read,
            ticket_id=notification.ticket_id,
            created_at=notification.created_at,
        )


# ========== Outbound ==========

class NotificationPayload(BaseModel):
    """JSON body posted to the notification webhook."""
    ticket_id: str
    subject: str
    status: str
    category: Optional[str] = None
    employee_email: Optional[str] = None
    employee_name: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None
    hr_emails: List[str] = Field(default_factory=list)
    escalation_reason: Optional[str] = None
    message_content: Optional[str] = None
    sender_role: Optional[str] = None
