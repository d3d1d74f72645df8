"""
Reporting DTOs
==============

Response models for dashboards, the SLA tracker, the status board and exports.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from helpdesk.tickets.application.dto import TicketResponse, TicketListResponse

ExportFormatStr = Literal["csv", "xlsx"]
SLAStateStr = Literal["on_track", "at_risk", "violated", "met"]


class AnalyticsResponse(BaseModel):
    total: int
    by_category: Dict[str, int]
    by_status: Dict[str, int]
    by_priority: Dict[str, int]
    open_or_escalated: int
    sla_compliant: int
    sla_violated: int
    sla_compliance_rate: float = Field(..., description="Percentage of tickets within SLA")
    csat_average: Optional[float] = Field(None, description="Average rating, 1-5")
    csat_percentage: Optional[float] = Field(None, description="Share of ratings of 4 or 5")
    rated: int
    assigned: int
    unassigned: int
    avg_response_time: Optional[float] = Field(None, description="Hours")
    avg_resolution_time: Optional[float] = Field(None, description="Hours")


class SLASummaryResponse(BaseModel):
    total: int
    met: int
    violated: int
    at_risk: int
    on_track: int


class SLATrackerItemResponse(BaseModel):
    ticket: TicketResponse
    state: SLAStateStr
    hours_remaining: Optional[float] = None
    progress: float


class SLATrackerResponse(BaseModel):
    summary: SLASummaryResponse
    items: List[SLATrackerItemResponse]


class PermissionsResponse(BaseModel):
    """What the caller's dashboard should offer."""
    role: str
    allowed_categories: List[str]
    can_manage_tickets: bool
    can_view_audit_log: bool
    can_manage_roles: bool
    can_export_extended: bool


class DashboardResponse(BaseModel):
    permissions: PermissionsResponse
    tickets: TicketListResponse
    analytics: AnalyticsResponse
    sla: SLASummaryResponse


class BoardResponse(BaseModel):
    columns: Dict[str, List[TicketResponse]]
