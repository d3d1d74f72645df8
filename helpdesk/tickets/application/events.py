"""
Ticket Events
=============

Post-commit events and the in-process bus that delivers them.

A service commits its primary write first and only then publishes. The bus
worker hands each event to every registered handler; a failing handler is
reported to the error channel and never affects the others or the caller.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional

from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.shared.infrastructure.error_channel import ErrorChannel
from helpdesk.tickets.application.interfaces import IEventPublisher
from helpdesk.tickets.domain import Ticket

logger = get_logger(__name__)


class TicketEventType(str):
    CREATED = "ticket.created"
    UPDATED = "ticket.updated"
    ESCALATED = "ticket.escalated"
    MESSAGE = "ticket.message"


@dataclass(frozen=True)
class FieldChange:
    """Old and new value of one ticket field."""
    field: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class TicketEvent:
    """
    Something that happened to a ticket, published after commit.

    ``ticket`` is the state right after the mutation.
    """

    event_type: str
    ticket: Ticket
    actor_email: str
    actor_role: str
    changes: List[FieldChange] = field(default_factory=list)
    auto_assigned: bool = False
    escalation_reason: Optional[str] = None
    message_content: Optional[str] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def status_changed(self) -> bool:
        return any(change.field == "status" for change in self.changes)


EventHandler = Callable[[TicketEvent], Awaitable[None]]


class EventBus(IEventPublisher):
    """
    asyncio.Queue backed event bus with a single consumer task.

    Usage:
        bus = EventBus(error_channel)
        bus.subscribe(audit_handler)
        await bus.start()
        await bus.publish(event)
        await bus.stop()
    """

    def __init__(self, error_channel: Optional[ErrorChannel] = None):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._handlers: List[tuple[str, EventHandler]] = []
        self._error_channel = error_channel or ErrorChannel()
        self._worker: Optional[asyncio.Task] = None

    def subscribe(self, handler: EventHandler, name: Optional[str] = None) -> None:
        """Register a handler; handlers run in registration order."""
        self._handlers.append((name or getattr(handler, "__name__", type(handler).__name__), handler))

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the consumer task."""
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._run())
        logger.info("Event bus started", extra={"handlers": [name for name, _ in self._handlers]})

    async def stop(self) -> None:
        """Drain pending events, then stop the consumer."""
        if not self.is_running:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Event bus stopped")

    async def publish(self, event: TicketEvent) -> None:
        """Queue an event for delivery."""
        await self._queue.put(event)
        logger.debug(
            "Event published",
            extra={"event_type": event.event_type, "ticket_id": event.ticket.id},
        )

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: TicketEvent) -> None:
        for name, handler in self._handlers:
            try:
                await handler(event)
            except Exception as e:
                await self._error_channel.record(
                    f"event handler {name}: {event.event_type} ticketId={event.ticket.id}",
                    e,
                    ticket_id=event.ticket.id,
                )
