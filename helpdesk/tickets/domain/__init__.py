"""
Ticket Domain Layer
===================

Contains:
- Entities: Actor, Ticket, AuditLogEntry, Escalation, ChatMessage,
  TicketTemplate, UserNotification
- Value Objects: SLAPolicy, DerivedFields
- Domain Services: SLACalculator, StatusTransitions

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.tickets.domain.entities import (
    Actor,
    Ticket,
    TicketPage,
    AuditLogEntry,
    Escalation,
    ChatMessage,
    DerivedFields,
    TicketTemplate,
    UserNotification,
    ensure_utc,
)
from helpdesk.tickets.domain.value_objects import (
    SLAPolicy,
    SLATarget,
    SLACalculator,
    StatusTransitions,
)

__all__ = [
    # Entities
    "Actor",
    "Ticket",
    "TicketPage",
    "AuditLogEntry",
    "Escalation",
    "ChatMessage",
    "DerivedFields",
    "TicketTemplate",
    "UserNotification",
    "ensure_utc",
    # Value Objects & Services
    "SLAPolicy",
    "SLATarget",
    "SLACalculator",
    "StatusTransitions",
]
