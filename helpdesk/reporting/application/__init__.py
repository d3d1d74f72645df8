"""
Reporting Application Layer
===========================

Reporting service and its response DTOs.
"""

from helpdesk.reporting.application.dto import (
    AnalyticsResponse,
    SLASummaryResponse,
    SLATrackerItemResponse,
    SLATrackerResponse,
    PermissionsResponse,
    DashboardResponse,
    BoardResponse,
)
from helpdesk.reporting.application.services import ReportingService

__all__ = [
    "AnalyticsResponse",
    "SLASummaryResponse",
    "SLATrackerItemResponse",
    "SLATrackerResponse",
    "PermissionsResponse",
    "DashboardResponse",
    "BoardResponse",
    "ReportingService",
]
