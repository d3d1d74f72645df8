"""
Reporting Analytics
===================

Pure aggregations over a list of tickets. Every dashboard role uses the same
functions; only the ticket list they are given differs.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from helpdesk.config import TicketStatus, SLAState, VALID_CATEGORIES, VALID_STATUSES
from helpdesk.tickets.domain import Ticket, SLACalculator


@dataclass
class TicketAnalytics:
    """Headline numbers for a set of tickets."""
    total: int = 0
    by_category: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)
    open_or_escalated: int = 0
    sla_compliant: int = 0
    sla_violated: int = 0
    sla_compliance_rate: float = 0.0
    csat_average: Optional[float] = None
    csat_percentage: Optional[float] = None
    rated: int = 0
    assigned: int = 0
    unassigned: int = 0
    avg_response_time: Optional[float] = None
    avg_resolution_time: Optional[float] = None


@dataclass
class SLATrackerItem:
    ticket: Ticket
    state: str
    hours_remaining: Optional[float]
    progress: float


@dataclass
class SLASummary:
    met: int = 0
    violated: int = 0
    at_risk: int = 0
    on_track: int = 0

    @property
    def total(self) -> int:
        return self.met + self.violated + self.at_risk + self.on_track


def _average(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def compute_analytics(tickets: List[Ticket]) -> TicketAnalytics:
    """
    Aggregate tickets whose derived fields are already evaluated.

    CSAT percentage is the share of rated tickets scored 4 or 5.
    """
    by_category = {category: 0 for category in VALID_CATEGORIES}
    by_category.update(Counter(t.category for t in tickets))
    by_status = {status: 0 for status in VALID_STATUSES}
    by_status.update(Counter(t.status for t in tickets))

    violated = sum(1 for t in tickets if t.sla_violated)
    ratings = [t.rating for t in tickets if t.rating is not None]
    assigned = sum(1 for t in tickets if t.assigned_to)

    return TicketAnalytics(
        total=len(tickets),
        by_category=by_category,
        by_status=by_status,
        by_priority=dict(Counter(t.priority for t in tickets)),
        open_or_escalated=by_status[TicketStatus.OPEN] + by_status[TicketStatus.ESCALATED],
        sla_compliant=len(tickets) - violated,
        sla_violated=violated,
        sla_compliance_rate=round((len(tickets) - violated) / len(tickets) * 100, 1) if tickets else 0.0,
        csat_average=_average(ratings),
        csat_percentage=round(sum(1 for r in ratings if r >= 4) / len(ratings) * 100, 1) if ratings else None,
        rated=len(ratings),
        assigned=assigned,
        unassigned=len(tickets) - assigned,
        avg_response_time=_average([t.response_time for t in tickets if t.response_time is not None]),
        avg_resolution_time=_average([t.resolution_time for t in tickets if t.resolution_time is not None]),
    )


def track_sla(
    tickets: List[Ticket], now: datetime, at_risk_hours: float
) -> tuple[List[SLATrackerItem], SLASummary]:
    """SLA state of each ticket, most urgent first, plus the state counts."""
    items = []
    summary = SLASummary()
    for ticket in tickets:
        state = SLACalculator.calculate_state(ticket, now, at_risk_hours)
        remaining = SLACalculator.hours_remaining(ticket, now)
        items.append(SLATrackerItem(
            ticket=ticket,
            state=state,
            hours_remaining=round(remaining, 2) if remaining is not None else None,
            progress=SLACalculator.progress_percentage(ticket, now),
        ))
        setattr(summary, state, getattr(summary, state) + 1)

    urgency = {SLAState.VIOLATED: 0, SLAState.AT_RISK: 1, SLAState.ON_TRACK: 2, SLAState.MET: 3}
    items.sort(key=lambda i: (urgency[i.state], i.hours_remaining if i.hours_remaining is not None else 0))
    return items, summary


def group_by_status(tickets: List[Ticket]) -> Dict[str, List[Ticket]]:
    """Board columns in lifecycle order; empty columns are kept."""
    columns: Dict[str, List[Ticket]] = {status: [] for status in VALID_STATUSES}
    for ticket in tickets:
        columns.setdefault(ticket.status, []).append(ticket)
    return columns
