"""
Reporting Application Service
=============================

One authorization-aware query layer for every role's dashboard. The actor's
role decides which tickets are loaded; the aggregations are the same for all.
"""

import io
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional, Tuple

import pandas as pd

from helpdesk.core import AuthorizationException, ValidationException
from helpdesk.reporting.application.dto import (
    AnalyticsResponse, SLASummaryResponse, SLATrackerItemResponse,
    SLATrackerResponse, PermissionsResponse, DashboardResponse, BoardResponse,
)
from helpdesk.reporting.domain.analytics import compute_analytics, track_sla, group_by_status
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application import TicketService, TicketListQuery, TicketListResponse, TicketResponse
from helpdesk.tickets.application.permissions import can_export_extended
from helpdesk.tickets.application.services import Clock, utcnow
from helpdesk.tickets.domain import Actor, Ticket

logger = get_logger(__name__)

BASIC_COLUMNS = {
    "id": "id",
    "subject": "subject",
    "status": "status",
    "priority": "priority",
    "category": "category",
    "employee_name": "employeeName",
    "assigned_to": "assignedTo",
}

EXTENDED_COLUMNS = {
    **BASIC_COLUMNS,
    "employee_email": "employeeEmail",
    "employee_code": "employeeCode",
    "department": "department",
    "sub_department": "subDepartment",
    "created_at": "createdAt",
    "sla_due_date": "slaDueDate",
    "sla_violated": "slaViolated",
    "rating": "rating",
    "response_time": "responseTime",
    "resolution_time": "resolutionTime",
}

MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class ReportingService:
    """Dashboards, analytics, SLA tracker, status board and exports."""

    def __init__(
        self,
        ticket_service: TicketService,
        at_risk_hours: float = 2.0,
        clock: Optional[Clock] = None,
    ):
        self._tickets = ticket_service
        self._at_risk_hours = at_risk_hours
        self._clock = clock or utcnow

    @staticmethod
    def permissions(actor: Actor) -> PermissionsResponse:
        return PermissionsResponse(
            role=actor.role,
            allowed_categories=actor.allowed_categories,
            can_manage_tickets=not actor.is_employee,
            can_view_audit_log=actor.is_role_manager,
            can_manage_roles=actor.is_role_manager,
            can_export_extended=can_export_extended(actor),
        )

    async def dashboard(self, actor: Actor, params: Optional[TicketListQuery] = None) -> DashboardResponse:
        """Everything one dashboard screen needs, scoped to the actor."""
        params = params or TicketListQuery()
        page = await self._tickets.list_for_actor(actor, params)
        visible = await self._tickets.list_all_for_actor(actor, params)
        _, summary = track_sla(visible, self._clock(), self._at_risk_hours)

        return DashboardResponse(
            permissions=self.permissions(actor),
            tickets=TicketListResponse(
                tickets=[TicketResponse.from_entity(t) for t in page.tickets],
                total_count=page.total_count,
                page=page.page,
                page_size=page.page_size,
            ),
            analytics=AnalyticsResponse(**asdict(compute_analytics(visible))),
            sla=SLASummaryResponse(total=summary.total, **asdict(summary)),
        )

    async def analytics(self, actor: Actor, params: Optional[TicketListQuery] = None) -> AnalyticsResponse:
        visible = await self._tickets.list_all_for_actor(actor, params)
        return AnalyticsResponse(**asdict(compute_analytics(visible)))

    async def sla_tracker(self, actor: Actor, state: Optional[str] = None) -> SLATrackerResponse:
        """SLA state per visible ticket, most urgent first."""
        visible = await self._tickets.list_all_for_actor(actor)
        items, summary = track_sla(visible, self._clock(), self._at_risk_hours)
        if state is not None:
            items = [item for item in items if item.state == state]

        return SLATrackerResponse(
            summary=SLASummaryResponse(total=summary.total, **asdict(summary)),
            items=[
                SLATrackerItemResponse(
                    ticket=TicketResponse.from_entity(item.ticket),
                    state=item.state,
                    hours_remaining=item.hours_remaining,
                    progress=item.progress,
                )
                for item in items
            ],
        )

    async def board(self, actor: Actor) -> BoardResponse:
        visible = await self._tickets.list_all_for_actor(actor)
        return BoardResponse(columns={
            status: [TicketResponse.from_entity(t) for t in tickets]
            for status, tickets in group_by_status(visible).items()
        })

    async def export(
        self,
        actor: Actor,
        fmt: str = "csv",
        extended: bool = False,
        params: Optional[TicketListQuery] = None,
    ) -> Tuple[bytes, str, str]:
        """
        Export visible tickets.

        Returns:
            (content, media type, file name)

        Raises:
            AuthorizationException: Extended export requested by a non audit viewer
        """
        if fmt not in MEDIA_TYPES:
            raise ValidationException(f"Invalid export format: {fmt}", details={"allowed": list(MEDIA_TYPES)})
        if extended and not can_export_extended(actor):
            raise AuthorizationException("Not allowed to export extended ticket data", actor=actor.email)

        visible = await self._tickets.list_all_for_actor(actor, params)
        df = self.to_dataframe(visible, EXTENDED_COLUMNS if extended else BASIC_COLUMNS)

        if fmt == "csv":
            content = df.to_csv(index=False).encode("utf-8")
        else:
            buffer = io.BytesIO()
            df.to_excel(buffer, index=False, sheet_name="Tickets", engine="openpyxl")
            content = buffer.getvalue()

        stamp = self._clock().strftime("%Y%m%d")
        logger.info(
            "Tickets exported",
            extra={"user": actor.email, "format": fmt, "extended": extended, "rows": len(df)},
        )
        return content, MEDIA_TYPES[fmt], f"tickets-{stamp}.{fmt}"

    @staticmethod
    def to_dataframe(tickets: List[Ticket], columns: dict) -> pd.DataFrame:
        rows = []
        for ticket in tickets:
            row = {}
            for attr, header in columns.items():
                value = getattr(ticket, attr)
                if isinstance(value, datetime):
                    # Excel cannot store timezone-aware datetimes
                    value = value.isoformat()
                row[header] = value
            rows.append(row)
        return pd.DataFrame(rows, columns=list(columns.values()))
