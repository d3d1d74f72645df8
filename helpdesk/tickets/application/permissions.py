"""
Ticket Permissions
==================

Single role-aware authorization layer shared by every service and dashboard:
role -> allowed categories -> allowed actions.
"""

from typing import List, Optional

from helpdesk.config import Role, TicketCategory
from helpdesk.tickets.application.interfaces import TicketQuery
from helpdesk.tickets.domain import Actor, Ticket

# Fields that only triagers may change
MANAGED_FIELDS = ("status", "priority", "category", "assigned_to")
CONTENT_FIELDS = ("subject", "description")

# HR owners treat these buckets as one queue
HR_BUCKETS = [TicketCategory.HR, TicketCategory.OTHERS]


def is_creator(actor: Actor, ticket: Ticket) -> bool:
    return actor.email == ticket.employee_email


def is_assignee(actor: Actor, ticket: Ticket) -> bool:
    return ticket.assigned_to is not None and actor.email == ticket.assigned_to.lower()


def can_manage(actor: Actor, ticket: Ticket) -> bool:
    """
    Whether the actor may triage the ticket (status, priority, category,
    assignment). Employees never can, even on their own tickets.
    """
    if actor.is_employee:
        return False
    if actor.role == Role.OWNER:
        return True
    return is_assignee(actor, ticket) or actor.manages_category(ticket.category)


def can_view(actor: Actor, ticket: Ticket) -> bool:
    """Creator, assignee, and managers of the category can see a ticket."""
    return is_creator(actor, ticket) or is_assignee(actor, ticket) or can_manage(actor, ticket)


def can_escalate(actor: Actor, ticket: Ticket) -> bool:
    return can_view(actor, ticket)


def can_export_extended(actor: Actor) -> bool:
    """Extended exports carry personal data; audit viewers only."""
    return actor.is_role_manager


def expand_categories(actor: Actor, category: str) -> List[str]:
    """
    Categories to query when ``actor`` asks for ``category``.

    An HR owner asking for HR or Others gets both buckets.
    """
    if actor.role == Role.HR_OWNER and category in HR_BUCKETS:
        return list(HR_BUCKETS)
    return [category]


def visibility_scope(actor: Actor, base: Optional[TicketQuery] = None) -> TicketQuery:
    """
    Restrict a query to the tickets the actor can see.

    The owner sees everything. Everyone else sees tickets they filed or are
    assigned to, and category owners also see their categories.
    """
    query = base or TicketQuery()
    if actor.role == Role.OWNER:
        return query

    query.scope_employee_email = actor.email
    query.scope_assigned_to = actor.email
    if not actor.is_employee:
        query.scope_categories = actor.allowed_categories
    return query
