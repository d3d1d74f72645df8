"""
Ticket Event Handlers
=====================

Consumers of committed ticket events. Each handler opens its own session so
its writes are independent of the request that produced the event.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from helpdesk.config import AuditAction, NotificationType
from helpdesk.core import ApplicationException
from helpdesk.shared.infrastructure.error_channel import ErrorChannel
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application.dto import NotificationPayload
from helpdesk.tickets.application.events import TicketEvent, TicketEventType
from helpdesk.tickets.application.services import AuditLogService, DirectoryService, InboxService
from helpdesk.tickets.infrastructure.external import WebhookNotifier
from helpdesk.tickets.infrastructure.repositories import (
    SQLAlchemyAuditLogRepository, SQLAlchemyUserRepository, SQLAlchemyNotificationRepository,
    SQLAlchemyUnitOfWork,
)

logger = get_logger(__name__)

NOTIFICATION_STATUS = "Notification"


def _display(value: Any) -> str:
    return str(value) if value not in (None, "") else "none"


def audit_entries_for(event: TicketEvent) -> List[Dict[str, Any]]:
    """Audit entries describing one event, in the order they happened."""
    ticket = event.ticket

    if event.event_type == TicketEventType.CREATED:
        entries = [{
            "action": AuditAction.CREATED,
            "details": f"Ticket created: {ticket.subject}",
            "new_value": ticket.status,
        }]
        if event.auto_assigned and ticket.assigned_to:
            entries.append({
                "action": AuditAction.ASSIGNED,
                "details": f"Auto-assigned to {ticket.assigned_to}",
                "new_value": ticket.assigned_to,
            })
        return entries

    if event.event_type == TicketEventType.UPDATED:
        return [
            {
                "action": AuditAction.UPDATED,
                "details": f"{change.field} changed from {_display(change.old_value)} to {_display(change.new_value)}",
                "old_value": _display(change.old_value),
                "new_value": _display(change.new_value),
            }
            for change in event.changes
        ]

    if event.event_type == TicketEventType.ESCALATED:
        return [{
            "action": AuditAction.ESCALATED,
            "details": f"Ticket escalated: {event.escalation_reason}",
            "old_value": _display(event.changes[0].old_value) if event.changes else None,
            "new_value": ticket.status,
        }]

    if event.event_type == TicketEventType.MESSAGE:
        return [{
            "action": AuditAction.MESSAGE_ADDED,
            "details": f"Message added by {event.actor_email} ({event.actor_role})",
        }]

    return []


class AuditEventHandler:
    """Writes the audit trail for every ticket event."""

    def __init__(self, session_factory: Callable[[], Any], error_channel: Optional[ErrorChannel] = None):
        self._session_factory = session_factory
        self._error_channel = error_channel or ErrorChannel()

    async def __call__(self, event: TicketEvent) -> None:
        for entry in audit_entries_for(event):
            try:
                async with self._session_factory() as session:
                    service = AuditLogService(SQLAlchemyAuditLogRepository(session))
                    await service.append(
                        ticket_id=event.ticket.id,
                        performed_by=event.actor_email,
                        performed_at=event.occurred_at,
                        **entry,
                    )
            except (ApplicationException, SQLAlchemyError) as e:
                await self._error_channel.record(
                    f"addAuditLog: ticketId={event.ticket.id}, action={entry['action']}",
                    e,
                    ticket_id=event.ticket.id,
                )


class NotificationEventHandler:
    """Turns ticket events into webhook notifications."""

    def __init__(
        self,
        notifier: WebhookNotifier,
        session_factory: Callable[[], Any],
        error_channel: Optional[ErrorChannel] = None,
    ):
        self._notifier = notifier
        self._session_factory = session_factory
        self._error_channel = error_channel or ErrorChannel()

    async def __call__(self, event: TicketEvent) -> None:
        payload = await self.build_payload(event)
        if payload is None:
            return
        await self._notifier.dispatch(payload)

    async def build_payload(self, event: TicketEvent) -> Optional[NotificationPayload]:
        """
        Payload for the event, or None when the event is not notified.

        Updates only notify when the status changed.
        """
        if event.event_type == TicketEventType.UPDATED and not event.status_changed:
            return None

        ticket = event.ticket
        payload = NotificationPayload(
            ticket_id=ticket.id,
            subject=ticket.subject,
            status=ticket.status,
            category=ticket.category,
            employee_email=ticket.employee_email,
            employee_name=ticket.employee_name,
            employee_id=ticket.employee_code,
            department=ticket.department,
        )

        if event.event_type == TicketEventType.ESCALATED:
            payload.hr_emails = await self._hr_emails(ticket.id)
            payload.escalation_reason = event.escalation_reason
        elif event.event_type == TicketEventType.MESSAGE:
            payload.status = NOTIFICATION_STATUS
            payload.message_content = event.message_content
            payload.sender_role = event.actor_role

        return payload

    async def _hr_emails(self, ticket_id: str) -> List[str]:
        """HR owners at dispatch time. A lookup failure sends without them."""
        try:
            async with self._session_factory() as session:
                directory = DirectoryService(SQLAlchemyUserRepository(session), SQLAlchemyUnitOfWork(session))
                return await directory.hr_emails()
        except (ApplicationException, SQLAlchemyError) as e:
            await self._error_channel.record(f"getHrEmails: ticketId={ticket_id}", e, ticket_id=ticket_id)
            return []


def inbox_entries_for(
    event: TicketEvent,
    category_owners: Iterable[str] = (),
    hr_emails: Iterable[str] = (),
) -> List[Dict[str, Any]]:
    """
    In-app notifications for one event, one dict per recipient.

    ``category_owners`` is only consulted for created tickets and
    ``hr_emails`` only for escalations.
    """
    ticket = event.ticket
    entries: List[Dict[str, Any]] = []

    def notify(email: Optional[str], title: str, message: str, type: str = NotificationType.INFO) -> None:
        if email:
            entries.append({"user_email": email, "title": title, "message": message, "type": type})

    if event.event_type == TicketEventType.CREATED:
        assigned = f" and assigned to {ticket.assigned_to}" if ticket.assigned_to else ""
        notify(
            ticket.employee_email,
            "Ticket Created",
            f'Your ticket "{ticket.subject}" has been created{assigned}',
            NotificationType.SUCCESS,
        )
        notify(
            ticket.assigned_to,
            "New Ticket Assigned",
            f'You have been assigned to ticket "{ticket.subject}" in category {ticket.category}',
        )
        for owner in category_owners:
            if owner != ticket.assigned_to:
                notify(owner, "New Ticket in Category", f'New ticket "{ticket.subject}" in category {ticket.category}')

    elif event.event_type == TicketEventType.UPDATED:
        reassigned = None
        for change in event.changes:
            notify(
                ticket.employee_email,
                "Ticket Updated",
                f"Ticket {ticket.id}: {change.field} changed to {_display(change.new_value)}",
            )
            if change.field == "assigned_to":
                reassigned = change
                notify(change.new_value, "Ticket Assigned", f"You have been assigned to ticket {ticket.id}: {ticket.subject}")

        category_changed = any(change.field == "category" for change in event.changes)
        if category_changed and reassigned is not None and reassigned.old_value:
            notify(
                reassigned.old_value,
                "Ticket Reassigned",
                f"Ticket {ticket.id}: {ticket.subject} has been reassigned due to category change to {ticket.category}",
            )

    elif event.event_type == TicketEventType.ESCALATED:
        for email in hr_emails:
            notify(email, "Ticket Escalated", f"Ticket {ticket.id}: {ticket.subject} has been escalated", NotificationType.WARNING)
        notify(
            ticket.employee_email,
            "Ticket Escalated",
            f'Your ticket "{ticket.subject}" has been escalated: {event.escalation_reason}',
            NotificationType.WARNING,
        )

    elif event.event_type == TicketEventType.MESSAGE:
        preview = (event.message_content or "")[:50]
        recipients = []
        for email in (ticket.employee_email, ticket.assigned_to):
            if email and email != event.actor_email and email not in recipients:
                recipients.append(email)
        for email in recipients:
            notify(email, "New Chat Message", f"New message in ticket {ticket.id}: {preview}")

    return entries


class InboxEventHandler:
    """Writes per-user in-app notifications for ticket events."""

    def __init__(self, session_factory: Callable[[], Any], error_channel: Optional[ErrorChannel] = None):
        self._session_factory = session_factory
        self._error_channel = error_channel or ErrorChannel()

    async def __call__(self, event: TicketEvent) -> None:
        category_owners: List[str] = []
        hr_emails: List[str] = []
        if event.event_type == TicketEventType.CREATED:
            category_owners = await self._lookup(event, self._category_owners)
        elif event.event_type == TicketEventType.ESCALATED:
            hr_emails = await self._lookup(event, self._hr_emails)

        for entry in inbox_entries_for(event, category_owners, hr_emails):
            try:
                async with self._session_factory() as session:
                    inbox = InboxService(SQLAlchemyNotificationRepository(session), SQLAlchemyUnitOfWork(session))
                    await inbox.add(ticket_id=event.ticket.id, created_at=event.occurred_at, **entry)
            except (ApplicationException, SQLAlchemyError) as e:
                await self._error_channel.record(
                    f"addNotification: userId={entry['user_email']}, ticketId={event.ticket.id}",
                    e,
                    ticket_id=event.ticket.id,
                )

    @staticmethod
    async def _category_owners(directory: DirectoryService, event: TicketEvent) -> List[str]:
        return await directory.category_owner_emails(event.ticket.category)

    @staticmethod
    async def _hr_emails(directory: DirectoryService, event: TicketEvent) -> List[str]:
        return await directory.hr_emails()

    async def _lookup(self, event: TicketEvent, query) -> List[str]:
        """Run a directory query. A failure notifies without those recipients."""
        try:
            async with self._session_factory() as session:
                directory = DirectoryService(SQLAlchemyUserRepository(session), SQLAlchemyUnitOfWork(session))
                return await query(directory, event)
        except (ApplicationException, SQLAlchemyError) as e:
            await self._error_channel.record(
                f"inbox recipients: ticketId={event.ticket.id}", e, ticket_id=event.ticket.id
            )
            return []
