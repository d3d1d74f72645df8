"""
Reporting Controllers (API Routes)
==================================

Dashboard endpoints. Every route is scoped to the calling actor.
"""

import io
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from helpdesk.config import settings
from helpdesk.reporting.application import (
    ReportingService, DashboardResponse, AnalyticsResponse, SLATrackerResponse, BoardResponse,
)
from helpdesk.reporting.application.dto import ExportFormatStr, SLAStateStr
from helpdesk.tickets.application import TicketService, TicketListQuery
from helpdesk.tickets.domain import Actor
from helpdesk.tickets.interfaces.dependencies import get_actor, get_ticket_service

reports_router = APIRouter(prefix="/reports", tags=["Reports"])


async def get_reporting_service(
    ticket_service: TicketService = Depends(get_ticket_service),
) -> ReportingService:
    return ReportingService(ticket_service, at_risk_hours=settings.at_risk_hours)


@reports_router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Role-scoped dashboard",
    description="""
    Tickets, analytics and SLA summary for the caller's role:
    employees see their own tickets, category owners their categories,
    the owner everything.
    """,
)
async def dashboard(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor),
    service: ReportingService = Depends(get_reporting_service),
) -> DashboardResponse:
    params = TicketListQuery(
        page=page, page_size=page_size, status=status_filter, priority=priority, category=category
    )
    return await service.dashboard(actor, params)


@reports_router.get("/analytics", response_model=AnalyticsResponse, summary="Ticket analytics")
async def analytics(
    category: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor),
    service: ReportingService = Depends(get_reporting_service),
) -> AnalyticsResponse:
    return await service.analytics(actor, TicketListQuery(category=category))


@reports_router.get(
    "/sla",
    response_model=SLATrackerResponse,
    summary="SLA tracker",
    description=f"""
    SLA state of each visible ticket, most urgent first.

    **States**: `violated`, `at_risk` (due within {settings.at_risk_hours:g}h), `on_track`, `met`
    """,
)
async def sla_tracker(
    state: Optional[SLAStateStr] = Query(None),
    actor: Actor = Depends(get_actor),
    service: ReportingService = Depends(get_reporting_service),
) -> SLATrackerResponse:
    return await service.sla_tracker(actor, state)


@reports_router.get("/board", response_model=BoardResponse, summary="Tickets grouped by status")
async def board(
    actor: Actor = Depends(get_actor),
    service: ReportingService = Depends(get_reporting_service),
) -> BoardResponse:
    return await service.board(actor)


@reports_router.get(
    "/export",
    summary="Export tickets",
    description="CSV or XLSX. `extended=true` adds requester and SLA columns (audit viewers only).",
    response_class=StreamingResponse,
)
async def export(
    export_format: ExportFormatStr = Query("csv", alias="format"),
    extended: bool = Query(False),
    category: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor),
    service: ReportingService = Depends(get_reporting_service),
) -> StreamingResponse:
    content, media_type, filename = await service.export(
        actor, export_format, extended, TicketListQuery(category=category)
    )
    return StreamingResponse(
        io.BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
