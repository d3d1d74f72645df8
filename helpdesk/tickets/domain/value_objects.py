"""
Ticket Value Objects
====================

Immutable value objects and stateless domain services:

- SLAPolicy: due-date hours per priority, with per-category overrides
- StatusTransitions: the ticket lifecycle graph
- SLACalculator: every derived SLA field is computed here and nowhere else
"""

from datetime import datetime, timedelta
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from helpdesk.config import (
    TicketStatus, SLAState, VALID_PRIORITIES, VALID_CATEGORIES
)
from helpdesk.core import InvalidStatusTransitionException
from helpdesk.tickets.domain.entities import Ticket, DerivedFields

DEFAULT_RESOLUTION_HOURS = {"Critical": 4, "High": 24, "Medium": 72, "Low": 168}
DEFAULT_RESPONSE_HOURS = {"Critical": 1, "High": 4, "Medium": 8, "Low": 24}


class SLATarget(BaseModel):
    """Response and resolution hours for one category/priority pair."""
    response: float = Field(gt=0)
    resolution: float = Field(gt=0)


class SLAPolicy(BaseModel):
    """
    SLA policy loaded from YAML.

    Resolution hours drive the ticket's due date. A category override, when
    present for the ticket's priority, wins over the priority default.
    """
    resolution_hours: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_RESOLUTION_HOURS),
        description="Hours until the SLA due date, by priority"
    )
    response_hours: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_RESPONSE_HOURS),
        description="Target hours to first response, by priority"
    )
    category_overrides: Dict[str, Dict[str, SLATarget]] = Field(
        default_factory=dict,
        description="Per-category targets keyed by priority"
    )

    @field_validator("resolution_hours")
    @classmethod
    def fill_resolution_hours(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Every priority must have a resolution target."""
        for priority in VALID_PRIORITIES:
            v.setdefault(priority, DEFAULT_RESOLUTION_HOURS[priority])
        for priority, hours in v.items():
            if hours <= 0:
                raise ValueError(f"resolution hours for {priority} must be positive")
        return v

    @field_validator("response_hours")
    @classmethod
    def fill_response_hours(cls, v: Dict[str, float]) -> Dict[str, float]:
        for priority in VALID_PRIORITIES:
            v.setdefault(priority, DEFAULT_RESPONSE_HOURS[priority])
        return v

    @field_validator("category_overrides")
    @classmethod
    def validate_overrides(
        cls, v: Dict[str, Dict[str, SLATarget]]
    ) -> Dict[str, Dict[str, SLATarget]]:
        for category, targets in v.items():
            if category not in VALID_CATEGORIES:
                raise ValueError(f"unknown category in SLA overrides: {category}")
            for priority in targets:
                if priority not in VALID_PRIORITIES:
                    raise ValueError(f"unknown priority in SLA overrides: {priority}")
        return v

    def get_resolution_hours(self, category: str, priority: str) -> float:
        """
        Hours from creation to the SLA due date.

        Example:
            Default policy, priority "Critical" = 4 hours for every category
        """
        override = self.category_overrides.get(category, {}).get(priority)
        if override is not None:
            return override.resolution
        return self.resolution_hours[priority]

    def get_response_hours(self, category: str, priority: str) -> float:
        override = self.category_overrides.get(category, {}).get(priority)
        if override is not None:
            return override.response
        return self.response_hours[priority]


class StatusTransitions:
    """Ticket lifecycle graph. Closed is terminal."""

    ALLOWED: Dict[str, frozenset] = {
        TicketStatus.OPEN: frozenset({
            TicketStatus.IN_PROGRESS, TicketStatus.ESCALATED, TicketStatus.CLOSED
        }),
        TicketStatus.IN_PROGRESS: frozenset({
            TicketStatus.ESCALATED, TicketStatus.CLOSED
        }),
        TicketStatus.ESCALATED: frozenset({
            TicketStatus.IN_PROGRESS, TicketStatus.CLOSED
        }),
        TicketStatus.CLOSED: frozenset(),
    }

    @classmethod
    def is_allowed(cls, current: str, requested: str) -> bool:
        """Staying in the current status counts as allowed (no-op)."""
        if current == requested:
            return True
        return requested in cls.ALLOWED.get(current, frozenset())

    @classmethod
    def ensure_allowed(cls, current: str, requested: str) -> None:
        if not cls.is_allowed(current, requested):
            raise InvalidStatusTransitionException(current, requested)


class SLACalculator:
    """
    Pure functions for SLA calculations.

    All derived SLA fields are computed here so the freezing rules live in
    one place.
    """

    @staticmethod
    def calculate_due_date(created_at: datetime, hours: float) -> datetime:
        """SLA due date for a ticket created at ``created_at``."""
        return created_at + timedelta(hours=hours)

    @staticmethod
    def elapsed_hours(start: datetime, end: datetime) -> float:
        """Whole elapsed time in hours, rounded to two decimals."""
        seconds = max(0.0, (end - start).total_seconds())
        return round(seconds / 3600, 2)

    @staticmethod
    def compute_derived_fields(ticket: Ticket, now: datetime) -> DerivedFields:
        """
        Derive response time, resolution time and SLA violation.

        ``ticket`` carries the status being stored (after a mutation) or the
        stored status (on read). Rules:
        - response_time is set once, on the first status other than Open
        - resolution_time is set once, when the status becomes Closed
        - sla_violated is live for open tickets and frozen at close
        """
        response_time = ticket.response_time
        if response_time is None and ticket.status != TicketStatus.OPEN:
            response_time = SLACalculator.elapsed_hours(ticket.created_at, now)

        resolution_time = ticket.resolution_time
        already_closed = resolution_time is not None
        if resolution_time is None and ticket.status == TicketStatus.CLOSED:
            resolution_time = SLACalculator.elapsed_hours(ticket.created_at, now)

        if ticket.status == TicketStatus.CLOSED and already_closed:
            sla_violated = ticket.sla_violated
        elif ticket.sla_due_date is None:
            sla_violated = False
        else:
            sla_violated = now > ticket.sla_due_date

        return DerivedFields(
            response_time=response_time,
            resolution_time=resolution_time,
            sla_violated=sla_violated,
        )

    @staticmethod
    def with_derived_fields(ticket: Ticket, now: datetime) -> Ticket:
        """Copy of ``ticket`` with derived fields applied."""
        derived = SLACalculator.compute_derived_fields(ticket, now)
        return ticket.copy(
            response_time=derived.response_time,
            resolution_time=derived.resolution_time,
            sla_violated=derived.sla_violated,
        )

    @staticmethod
    def hours_remaining(ticket: Ticket, now: datetime) -> Optional[float]:
        """Hours left before the due date (negative when overdue)."""
        if ticket.sla_due_date is None:
            return None
        return (ticket.sla_due_date - now).total_seconds() / 3600

    @staticmethod
    def calculate_state(ticket: Ticket, now: datetime, at_risk_hours: float = 2.0) -> SLAState:
        """
        SLA tracker state for a ticket.

        Closed tickets are met unless they closed past their due date. Open
        tickets are violated past the due date and at risk within
        ``at_risk_hours`` of it.
        """
        derived = SLACalculator.compute_derived_fields(ticket, now)

        if ticket.status == TicketStatus.CLOSED:
            return SLAState.VIOLATED if derived.sla_violated else SLAState.MET

        if derived.sla_violated:
            return SLAState.VIOLATED

        remaining = SLACalculator.hours_remaining(ticket, now)
        if remaining is not None and remaining <= at_risk_hours:
            return SLAState.AT_RISK
        return SLAState.ON_TRACK

    @staticmethod
    def progress_percentage(ticket: Ticket, now: datetime) -> float:
        """Share of the SLA window already used, clamped to 0..100."""
        if ticket.sla_due_date is None or ticket.status == TicketStatus.CLOSED:
            return 100.0
        total = (ticket.sla_due_date - ticket.created_at).total_seconds()
        if total <= 0:
            return 100.0
        elapsed = (now - ticket.created_at).total_seconds()
        return round(max(0.0, min(100.0, elapsed / total * 100)), 1)
