"""Pure ticket aggregations used by every dashboard."""

from helpdesk.reporting.domain.analytics import (
    TicketAnalytics,
    SLASummary,
    SLATrackerItem,
    compute_analytics,
    track_sla,
    group_by_status,
)

__all__ = [
    "TicketAnalytics",
    "SLASummary",
    "SLATrackerItem",
    "compute_analytics",
    "track_sla",
    "group_by_status",
]
