"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for tickets, the audit trail, the user directory, ticket
templates and in-app notifications.

Controllers are thin - they delegate to application services.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from helpdesk.tickets.application import (
    TicketService, EscalationService, AuditLogService, DirectoryService, ChatService,
    TicketCreateRequest, TicketUpdateRequest, EscalationRequest, ChatMessageRequest,
    RoleUpdateRequest, ProfileUpdateRequest, TicketListQuery, TicketResponse, TicketListResponse,
    AuditLogResponse, AuditStatsResponse, EscalationResponse, EscalateResponse,
    ChatMessageResponse, UserResponse, TemplateService, InboxService,
    TemplateCreateRequest, TemplateUpdateRequest, TemplateResponse, NotificationResponse,
)
from helpdesk.tickets.application.dto import DateFilterStr
from helpdesk.tickets.domain import Actor, TicketPage
from helpdesk.tickets.interfaces.dependencies import (
    get_actor, get_ticket_service, get_escalation_service, get_audit_service,
    get_directory_service, get_chat_service, get_template_service, get_inbox_service,
)
from helpdesk.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

tickets_router = APIRouter(prefix="/tickets", tags=["Tickets"])
audit_router = APIRouter(prefix="/audit-logs", tags=["Audit Log"])
users_router = APIRouter(prefix="/users", tags=["Users"])
templates_router = APIRouter(prefix="/templates", tags=["Templates"])
notifications_router = APIRouter(prefix="/notifications", tags=["Notifications"])


# ========== Example payloads for Swagger ==========

TICKET_CREATE_EXAMPLE = {
    "subject": "VPN drops every few minutes",
    "description": "Since this morning the VPN disconnects roughly every five minutes.",
    "category": "IT Infrastructure",
    "priority": "High",
}

TICKET_UPDATE_EXAMPLE = {
    "status": "In Progress",
    "assigned_to": "it.owner@example.com",
}

ESCALATION_EXAMPLE = {
    "reason": "Urgent",
    "description": "Payroll run is blocked",
    "timeline": "2 days",
}


def _page_response(page: TicketPage) -> TicketListResponse:
    return TicketListResponse(
        tickets=[TicketResponse.from_entity(t) for t in page.tickets],
        total_count=page.total_count,
        page=page.page,
        page_size=page.page_size,
    )


# ========== Tickets ==========

@tickets_router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="File a ticket",
    description="""
    Create a ticket for the calling user.

    The SLA due date is fixed at creation from the priority (and category
    overrides) in `sla_config.yaml`. Without `assigned_to`, the first owner
    of the category is assigned.
    """,
    openapi_extra={"requestBody": {"content": {"application/json": {"example": TICKET_CREATE_EXAMPLE}}}},
)
async def create_ticket(
    request: TicketCreateRequest,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
) -> TicketResponse:
    with log_latency(logger, "create_ticket", user=actor.email):
        ticket = await service.create_ticket(request, actor)
    return TicketResponse.from_entity(ticket)


@tickets_router.get(
    "",
    response_model=TicketListResponse,
    summary="List visible tickets",
    description="Tickets the caller may see, newest first. Filters narrow the role-based view.",
)
async def list_tickets(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    employee_email: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
) -> TicketListResponse:
    params = TicketListQuery(
        page=page,
        page_size=page_size,
        status=status_filter,
        priority=priority,
        category=category,
        employee_email=employee_email,
        assigned_to=assigned_to,
    )
    return _page_response(await service.list_for_actor(actor, params))


@tickets_router.get("/all", response_model=TicketListResponse, summary="List every ticket (owner)")
async def list_all_tickets(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
) -> TicketListResponse:
    return _page_response(await service.get_all_tickets(actor, page, page_size))


@tickets_router.get("/employee/{employee_email}", response_model=TicketListResponse, summary="Tickets filed by a user")
async def list_employee_tickets(
    employee_email: str,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
) -> TicketListResponse:
    return _page_response(await service.get_tickets_by_employee(employee_email, actor, page, page_size))


@tickets_router.get(
    "/category/{category}",
    response_model=TicketListResponse,
    summary="Tickets in a category",
    description="HR owners asking for `HR` or `Others` get both buckets.",
)
async def list_category_tickets(
    category: str,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
) -> TicketListResponse:
    return _page_response(await service.get_tickets_by_category(category, actor, page, page_size))


@tickets_router.get("/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
) -> TicketResponse:
    return TicketResponse.from_entity(await service.get_ticket(ticket_id, actor))


@tickets_router.patch(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Update a ticket",
    description="""
    Partial update. Status, priority, category and assignment need a
    triager of the ticket's category; rating is for the requester once the
    ticket is Closed. Escalate through `POST /tickets/{id}/escalate`.
    """,
    openapi_extra={"requestBody": {"content": {"application/json": {"example": TICKET_UPDATE_EXAMPLE}}}},
)
async def update_ticket(
    ticket_id: str,
    request: TicketUpdateRequest,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
) -> TicketResponse:
    with log_latency(logger, "update_ticket", ticket_id=ticket_id, user=actor.email):
        await service.update_ticket(ticket_id, request, actor)
    # The update may have moved the ticket out of the caller's view
    return TicketResponse.from_entity(await service.refresh(ticket_id))


@tickets_router.post(
    "/{ticket_id}/escalate",
    response_model=EscalateResponse,
    summary="Escalate a ticket",
    description="Escalating a ticket that is already Escalated changes nothing and returns `already_escalated: true`.",
    openapi_extra={"requestBody": {"content": {"application/json": {"example": ESCALATION_EXAMPLE}}}},
)
async def escalate_ticket(
    ticket_id: str,
    request: EscalationRequest,
    actor: Actor = Depends(get_actor),
    service: EscalationService = Depends(get_escalation_service),
) -> EscalateResponse:
    outcome = await service.escalate(ticket_id, request, actor)
    return EscalateResponse(
        ticket=TicketResponse.from_entity(outcome.ticket),
        escalation=EscalationResponse.from_entity(outcome.escalation) if outcome.escalation else None,
        already_escalated=outcome.already_escalated,
    )


@tickets_router.get("/{ticket_id}/escalations", response_model=List[EscalationResponse], summary="Escalation history")
async def list_escalations(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: EscalationService = Depends(get_escalation_service),
) -> List[EscalationResponse]:
    return [EscalationResponse.from_entity(e) for e in await service.list_escalations(ticket_id, actor)]


@tickets_router.post(
    "/{ticket_id}/messages",
    response_model=ChatMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a chat message",
)
async def post_message(
    ticket_id: str,
    request: ChatMessageRequest,
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
) -> ChatMessageResponse:
    return ChatMessageResponse.from_entity(await service.post_message(ticket_id, request.message, actor))


@tickets_router.get(
    "/{ticket_id}/messages",
    response_model=List[ChatMessageResponse],
    summary="List chat messages",
    description="Oldest first. Poll with `after` set to the last `sent_at` seen.",
)
async def list_messages(
    ticket_id: str,
    after: Optional[datetime] = Query(None),
    actor: Actor = Depends(get_actor),
    service: ChatService = Depends(get_chat_service),
) -> List[ChatMessageResponse]:
    messages = await service.list_messages(ticket_id, actor, after)
    return [ChatMessageResponse.from_entity(m) for m in messages]


# ========== Audit Log ==========

@audit_router.get(
    "",
    response_model=List[AuditLogResponse],
    summary="Read the audit trail",
    description="""
    With `ticket_id`: that ticket's entries, oldest first. Without: the most
    recent entries across all tickets, newest first.

    **Date filters**: `all`, `today`, `7days`, `30days`
    """,
)
async def list_audit_logs(
    ticket_id: Optional[str] = Query(None),
    date_filter: DateFilterStr = Query("all"),
    limit: int = Query(100, ge=1, le=1000),
    actor: Actor = Depends(get_actor),
    service: AuditLogService = Depends(get_audit_service),
) -> List[AuditLogResponse]:
    entries = await service.query(actor, ticket_id=ticket_id, date_filter=date_filter, limit=limit)
    return [AuditLogResponse.from_entity(e) for e in entries]


@audit_router.get("/stats/{ticket_id}", response_model=AuditStatsResponse, summary="Audit activity counts")
async def audit_stats(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: AuditLogService = Depends(get_audit_service),
) -> AuditStatsResponse:
    return AuditStatsResponse(**await service.stats(actor, ticket_id))


# ========== Users ==========

@users_router.get("/me", response_model=UserResponse, summary="The calling user")
async def get_me(actor: Actor = Depends(get_actor)) -> UserResponse:
    return UserResponse.from_entity(actor)


@users_router.get("", response_model=List[UserResponse], summary="List users")
async def list_users(
    role: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor),
    service: DirectoryService = Depends(get_directory_service),
) -> List[UserResponse]:
    return [UserResponse.from_entity(u) for u in await service.list_users(actor, role)]


@users_router.get("/category/{category}", response_model=List[UserResponse], summary="Assignment candidates")
async def list_category_users(
    category: str,
    actor: Actor = Depends(get_actor),
    service: DirectoryService = Depends(get_directory_service),
) -> List[UserResponse]:
    return [UserResponse.from_entity(u) for u in await service.users_for_category(actor, category)]


@users_router.put("/{email}/role", response_model=UserResponse, summary="Change a user's role")
async def update_role(
    email: str,
    request: RoleUpdateRequest,
    actor: Actor = Depends(get_actor),
    service: DirectoryService = Depends(get_directory_service),
) -> UserResponse:
    return UserResponse.from_entity(await service.update_role(actor, email, request.role))


@users_router.patch(
    "/{email}/profile",
    response_model=UserResponse,
    summary="Update a user's profile",
    description="Employee code and department fields. Users edit their own; role managers edit anyone's.",
)
async def update_profile(
    email: str,
    request: ProfileUpdateRequest,
    actor: Actor = Depends(get_actor),
    service: DirectoryService = Depends(get_directory_service),
) -> UserResponse:
    return UserResponse.from_entity(await service.update_profile(actor, email, request))


# ========== Templates ==========

@templates_router.post(
    "",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket template (role managers)",
)
async def create_template(
    request: TemplateCreateRequest,
    actor: Actor = Depends(get_actor),
    service: TemplateService = Depends(get_template_service),
) -> TemplateResponse:
    return TemplateResponse.from_entity(await service.create_template(request, actor))


@templates_router.get("", response_model=List[TemplateResponse], summary="List templates")
async def list_templates(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    service: TemplateService = Depends(get_template_service),
) -> List[TemplateResponse]:
    return [TemplateResponse.from_entity(t) for t in await service.list_templates(page, page_size)]


@templates_router.get("/category/{category}", response_model=List[TemplateResponse], summary="Templates of a category")
async def list_category_templates(
    category: str,
    actor: Actor = Depends(get_actor),
    service: TemplateService = Depends(get_template_service),
) -> List[TemplateResponse]:
    return [TemplateResponse.from_entity(t) for t in await service.templates_by_category(category)]


@templates_router.get("/{template_id}", response_model=TemplateResponse, summary="Get a template")
async def get_template(
    template_id: str,
    actor: Actor = Depends(get_actor),
    service: TemplateService = Depends(get_template_service),
) -> TemplateResponse:
    return TemplateResponse.from_entity(await service.get_template(template_id))


@templates_router.patch("/{template_id}", response_model=TemplateResponse, summary="Edit a template (role managers)")
async def update_template(
    template_id: str,
    request: TemplateUpdateRequest,
    actor: Actor = Depends(get_actor),
    service: TemplateService = Depends(get_template_service),
) -> TemplateResponse:
    return TemplateResponse.from_entity(await service.update_template(template_id, request, actor))


@templates_router.delete(
    "/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a template (role managers)",
)
async def delete_template(
    template_id: str,
    actor: Actor = Depends(get_actor),
    service: TemplateService = Depends(get_template_service),
) -> None:
    await service.delete_template(template_id, actor)


# ========== In-app notifications ==========

@notifications_router.get(
    "",
    response_model=List[NotificationResponse],
    summary="The caller's notifications",
    description="Newest first, capped at `INBOX_LIMIT`.",
)
async def list_notifications(
    actor: Actor = Depends(get_actor),
    service: InboxService = Depends(get_inbox_service),
) -> List[NotificationResponse]:
    return [NotificationResponse.from_entity(n) for n in await service.list_for_user(actor)]


@notifications_router.post("/{notification_id}/read", response_model=NotificationResponse, summary="Mark as read")
async def mark_notification_read(
    notification_id: str,
    actor: Actor = Depends(get_actor),
    service: InboxService = Depends(get_inbox_service),
) -> NotificationResponse:
    return NotificationResponse.from_entity(await service.mark_read(notification_id, actor))
