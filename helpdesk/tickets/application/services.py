"""
Ticket Application Services
===========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Every mutating operation follows the same shape: authorize, validate,
compute derived fields, write, commit, then publish a ``TicketEvent``. Audit
entries and notifications are produced by the event handlers, never inline.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from uuid import uuid4

from helpdesk.config import (
    TicketStatus, Role, DateFilter, SYSTEM_USER_EMAIL, DEFAULT_ROLE,
    ROLE_CATEGORIES, ROLE_DEPARTMENTS, VALID_CATEGORIES, VALID_PRIORITIES,
    VALID_STATUSES, VALID_ROLES, VALID_AUDIT_ACTIONS, VALID_DATE_FILTERS,
    VALID_NOTIFICATION_TYPES, NotificationType,
)
from helpdesk.core import (
    ValidationException, AuthenticationException, AuthorizationException,
    ResourceNotFoundException,
)
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application.dto import (
    TicketCreateRequest, TicketUpdateRequest, EscalationRequest, TicketListQuery,
    ProfileUpdateRequest, TemplateCreateRequest, TemplateUpdateRequest,
)
from helpdesk.tickets.application.events import TicketEvent, TicketEventType, FieldChange
from helpdesk.tickets.application.interfaces import (
    ITicketRepository, IAuditLogRepository, IEscalationRepository,
    IUserRepository, IChatRepository, IUnitOfWork, ISLAConfigProvider,
    IEventPublisher, ITemplateRepository, INotificationRepository, TicketQuery,
)
from helpdesk.tickets.application.permissions import (
    MANAGED_FIELDS, CONTENT_FIELDS, is_creator, can_manage, can_view,
    can_escalate, expand_categories, visibility_scope,
)
from helpdesk.tickets.domain import (
    Actor, Ticket, TicketPage, AuditLogEntry, Escalation, ChatMessage,
    TicketTemplate, UserNotification, SLACalculator, StatusTransitions,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]

# Roles that receive auto-assigned tickets, checked in this order
CATEGORY_OWNER_ROLES = [Role.IT_OWNER, Role.HR_OWNER, Role.ADMIN_OWNER, Role.ACCOUNTS_OWNER]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationException(f"{field_name} is required", details={"field": field_name})
    return value


def _require_choice(value: Optional[str], choices: List[str], field_name: str) -> str:
    if value not in choices:
        raise ValidationException(
            f"Invalid {field_name}: {value}",
            details={"field": field_name, "allowed": list(choices)},
        )
    return value


def _normalize_email(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip().lower()


# ========== Ticket Store ==========

class TicketService:
    """
    Service for ticket lifecycle operations and role-aware queries.

    Owns creation, updates, assignment and every ticket listing.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        user_repository: IUserRepository,
        escalation_repository: IEscalationRepository,
        unit_of_work: IUnitOfWork,
        publisher: IEventPublisher,
        sla_config_provider: ISLAConfigProvider,
        clock: Optional[Clock] = None,
        escalation_auto_resolve: bool = True,
        default_page_size: int = 20,
        max_page_size: int = 100,
    ):
        self._ticket_repo = ticket_repository
        self._user_repo = user_repository
        self._escalation_repo = escalation_repository
        self._uow = unit_of_work
        self._publisher = publisher
        self._sla_config = sla_config_provider
        self._clock = clock or utcnow
        self._auto_resolve = escalation_auto_resolve
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    async def create_ticket(self, request: TicketCreateRequest, actor: Actor) -> Ticket:
        """
        File a new ticket for the actor.

        Status starts at Open and the SLA due date is fixed from the policy.
        When no assignee is given, the first owner of the category gets it.

        Raises:
            ValidationException: Missing text or unknown category/priority
            AuthenticationException: Actor is not in the directory
        """
        _require_text(request.subject, "subject")
        _require_text(request.description, "description")
        _require_choice(request.category, VALID_CATEGORIES, "category")
        _require_choice(request.priority, VALID_PRIORITIES, "priority")

        requester = await self._user_repo.get(actor.email)
        if requester is None:
            raise AuthenticationException(f"Unknown user: {actor.email}")

        now = self._clock()
        hours = self._sla_config.get_policy().get_resolution_hours(request.category, request.priority)

        assigned_to = _normalize_email(request.assigned_to)
        auto_assigned = False
        if assigned_to is None:
            assigned_to = await self._auto_assignee(request.category)
            auto_assigned = assigned_to is not None

        ticket = Ticket(
            id=str(uuid4()),
            subject=request.subject,
            description=request.description,
            category=request.category,
            priority=request.priority,
            status=TicketStatus.OPEN,
            employee_email=requester.email,
            employee_name=requester.name,
            employee_code=requester.employee_code,
            department=request.department or requester.department,
            sub_department=request.sub_department or requester.sub_department,
            assigned_to=assigned_to,
            created_at=now,
            updated_at=now,
            sla_due_date=SLACalculator.calculate_due_date(now, hours),
        )
        ticket = SLACalculator.with_derived_fields(ticket, now)

        saved = await self._ticket_repo.create(ticket)
        await self._uow.commit()

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": saved.id,
                "category": saved.category,
                "priority": saved.priority,
                "assigned_to": saved.assigned_to,
                "sla_due_date": saved.sla_due_date.isoformat(),
            },
        )

        await self._publisher.publish(TicketEvent(
            event_type=TicketEventType.CREATED,
            ticket=saved,
            actor_email=actor.email,
            actor_role=actor.role,
            auto_assigned=auto_assigned,
            occurred_at=now,
        ))
        return saved

    async def update_ticket(
        self, ticket_id: str, request: TicketUpdateRequest, actor: Actor
    ) -> None:
        """
        Apply a partial update.

        Only fields present in ``request`` are touched. Re-applying the same
        values is allowed and leaves the stored fields as they were.

        Raises:
            ResourceNotFoundException: Unknown ticket
            AuthorizationException: Actor may not change one of the fields
            ValidationException: Bad value, or a status change the lifecycle forbids
        """
        ticket = await self._get_or_404(ticket_id)
        fields = request.model_dump(exclude_unset=True)

        self._authorize_update(ticket, fields, actor)
        self._validate_update(ticket, fields)

        if "assigned_to" in fields:
            fields["assigned_to"] = _normalize_email(fields["assigned_to"])
        elif "category" in fields and fields["category"] != ticket.category:
            fields["assigned_to"] = await self._auto_assignee(fields["category"])

        now = self._clock()
        updated = SLACalculator.with_derived_fields(ticket.copy(**fields, updated_at=now), now)
        changes = [
            FieldChange(name, getattr(ticket, name), value)
            for name, value in fields.items()
            if getattr(ticket, name) != value
        ]

        await self._ticket_repo.update(updated)
        if self._auto_resolve and updated.is_closed and not ticket.is_closed:
            resolved = await self._escalation_repo.resolve_for_ticket(ticket.id)
            if resolved:
                logger.info("Escalations resolved on close", extra={"ticket_id": ticket.id, "count": resolved})
        await self._uow.commit()

        logger.info(
            "Ticket updated",
            extra={
                "ticket_id": ticket.id,
                "fields": [change.field for change in changes],
                "performed_by": actor.email,
            },
        )

        await self._publisher.publish(TicketEvent(
            event_type=TicketEventType.UPDATED,
            ticket=updated,
            actor_email=actor.email,
            actor_role=actor.role,
            changes=changes,
            occurred_at=now,
        ))

    async def refresh(self, ticket_id: str) -> Ticket:
        """
        Stored state of a ticket, derived fields evaluated now.

        No visibility check: answers the caller of a write that already
        committed, even when that write moved the ticket out of their view.
        """
        ticket = await self._get_or_404(ticket_id)
        return SLACalculator.with_derived_fields(ticket, self._clock())

    async def get_ticket(self, ticket_id: str, actor: Actor) -> Ticket:
        """Get a ticket the actor can see, derived fields evaluated now."""
        ticket = await self._get_or_404(ticket_id)
        if not can_view(actor, ticket):
            raise AuthorizationException("Not allowed to view this ticket", actor=actor.email)
        return SLACalculator.with_derived_fields(ticket, self._clock())

    async def list_for_actor(self, actor: Actor, params: Optional[TicketListQuery] = None) -> TicketPage:
        """Role-aware listing that backs every dashboard."""
        params = params or TicketListQuery()
        query = visibility_scope(actor, self._build_filters(actor, params))
        return await self._page(query, params.page, params.page_size)

    async def list_all_for_actor(self, actor: Actor, params: Optional[TicketListQuery] = None) -> List[Ticket]:
        """Unpaginated variant used by reports and exports."""
        params = params or TicketListQuery()
        query = visibility_scope(actor, self._build_filters(actor, params))
        tickets, _ = await self._ticket_repo.list(query)
        now = self._clock()
        return [SLACalculator.with_derived_fields(t, now) for t in tickets]

    async def get_tickets_by_employee(
        self, employee_email: str, actor: Actor, page: int = 1, page_size: Optional[int] = None
    ) -> TicketPage:
        email = _normalize_email(employee_email)
        if actor.is_employee and email != actor.email:
            raise AuthorizationException("Employees can only list their own tickets", actor=actor.email)
        query = visibility_scope(actor, TicketQuery(employee_email=email))
        return await self._page(query, page, page_size)

    async def get_tickets_by_category(
        self, category: str, actor: Actor, page: int = 1, page_size: Optional[int] = None
    ) -> TicketPage:
        """Tickets of one category. HR owners get HR and Others together."""
        _require_choice(category, VALID_CATEGORIES, "category")
        query = visibility_scope(actor, TicketQuery(categories=expand_categories(actor, category)))
        return await self._page(query, page, page_size)

    async def get_all_tickets(
        self, actor: Actor, page: int = 1, page_size: Optional[int] = None
    ) -> TicketPage:
        """Global listing, owner only."""
        if actor.role != Role.OWNER:
            raise AuthorizationException("Only the owner can list all tickets", actor=actor.email)
        return await self._page(TicketQuery(), page, page_size)

    # ----- helpers -----

    async def _get_or_404(self, ticket_id: str) -> Ticket:
        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def _auto_assignee(self, category: str) -> Optional[str]:
        for role in CATEGORY_OWNER_ROLES:
            if category in ROLE_CATEGORIES[role]:
                users = await self._user_repo.list_by_role(role)
                if users:
                    return users[0].email
        return None

    @staticmethod
    def _authorize_update(ticket: Ticket, fields: dict, actor: Actor) -> None:
        managed = [name for name in MANAGED_FIELDS if name in fields]
        if managed and not can_manage(actor, ticket):
            raise AuthorizationException(
                f"Not allowed to change {', '.join(managed)} on this ticket",
                actor=actor.email,
                details={"fields": managed},
            )

        if "rating" in fields and not (is_creator(actor, ticket) and ticket.is_closed):
            raise AuthorizationException(
                "Only the requester can rate a ticket, and only after it is closed",
                actor=actor.email,
            )

        content = [name for name in CONTENT_FIELDS if name in fields]
        if content and not (is_creator(actor, ticket) or can_manage(actor, ticket)):
            raise AuthorizationException(
                f"Not allowed to edit {', '.join(content)} on this ticket",
                actor=actor.email,
            )

    @staticmethod
    def _validate_update(ticket: Ticket, fields: dict) -> None:
        for name in CONTENT_FIELDS:
            if name in fields:
                _require_text(fields[name], name)
        if "category" in fields:
            _require_choice(fields["category"], VALID_CATEGORIES, "category")
        if "priority" in fields:
            _require_choice(fields["priority"], VALID_PRIORITIES, "priority")

        if "status" in fields:
            status = _require_choice(fields["status"], VALID_STATUSES, "status")
            if status == TicketStatus.ESCALATED and ticket.status != TicketStatus.ESCALATED:
                raise ValidationException(
                    "Tickets are escalated through the escalation endpoint",
                    details={"field": "status"},
                )
            StatusTransitions.ensure_allowed(ticket.status, status)

        if "rating" in fields:
            rating = fields["rating"]
            if not isinstance(rating, int) or not 1 <= rating <= 5:
                raise ValidationException("rating must be between 1 and 5", details={"field": "rating"})

    def _build_filters(self, actor: Actor, params: TicketListQuery) -> TicketQuery:
        query = TicketQuery()
        if params.category:
            _require_choice(params.category, VALID_CATEGORIES, "category")
            query.categories = expand_categories(actor, params.category)
        if params.status:
            query.statuses = [_require_choice(params.status, VALID_STATUSES, "status")]
        if params.priority:
            query.priority = _require_choice(params.priority, VALID_PRIORITIES, "priority")
        query.employee_email = _normalize_email(params.employee_email)
        query.assigned_to = _normalize_email(params.assigned_to)
        return query

    async def _page(self, query: TicketQuery, page: int, page_size: Optional[int]) -> TicketPage:
        page = max(1, page)
        size = min(page_size or self._default_page_size, self._max_page_size)
        tickets, total = await self._ticket_repo.list(query, limit=size, offset=(page - 1) * size)
        now = self._clock()
        return TicketPage(
            tickets=[SLACalculator.with_derived_fields(t, now) for t in tickets],
            total_count=total,
            page=page,
            page_size=size,
        )


# ========== Escalation Workflow ==========

@dataclass
class EscalationOutcome:
    """Result of an escalation request."""
    ticket: Ticket
    escalation: Optional[Escalation] = None
    already_escalated: bool = False


class EscalationService:
    """Escalation requests and their records."""

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        escalation_repository: IEscalationRepository,
        unit_of_work: IUnitOfWork,
        publisher: IEventPublisher,
        clock: Optional[Clock] = None,
    ):
        self._ticket_repo = ticket_repository
        self._escalation_repo = escalation_repository
        self._uow = unit_of_work
        self._publisher = publisher
        self._clock = clock or utcnow

    async def escalate(
        self, ticket_id: str, request: EscalationRequest, actor: Actor
    ) -> EscalationOutcome:
        """
        Escalate a ticket.

        A ticket that is already Escalated is left as it is: no new record,
        no events, and the outcome is flagged ``already_escalated``.

        Raises:
            ValidationException: Missing reason/timeline, or ticket is Closed
            ResourceNotFoundException: Unknown ticket
            AuthorizationException: Actor is not the creator, assignee or a manager
        """
        _require_text(request.reason, "reason")
        _require_text(request.timeline, "timeline")

        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        if ticket.is_closed:
            raise ValidationException("Closed tickets cannot be escalated", details={"status": ticket.status})
        if not can_escalate(actor, ticket):
            raise AuthorizationException("Not allowed to escalate this ticket", actor=actor.email)

        now = self._clock()
        if ticket.status == TicketStatus.ESCALATED:
            logger.warning(
                "Ticket already escalated, ignoring request",
                extra={"ticket_id": ticket.id, "performed_by": actor.email},
            )
            return EscalationOutcome(
                ticket=SLACalculator.with_derived_fields(ticket, now),
                already_escalated=True,
            )

        escalation = Escalation(
            id=str(uuid4()),
            ticket_id=ticket.id,
            reason=request.reason,
            description=request.description or "",
            timeline=request.timeline,
            escalated_by=actor.email,
            escalated_at=now,
            resolved=False,
        )
        updated = SLACalculator.with_derived_fields(
            ticket.copy(
                status=TicketStatus.ESCALATED,
                escalation_reason=request.reason,
                escalation_date=now,
                updated_at=now,
            ),
            now,
        )

        await self._ticket_repo.update(updated)
        escalation = await self._escalation_repo.create(escalation)
        await self._uow.commit()

        logger.info(
            "Ticket escalated",
            extra={"ticket_id": ticket.id, "reason": request.reason, "performed_by": actor.email},
        )

        await self._publisher.publish(TicketEvent(
            event_type=TicketEventType.ESCALATED,
            ticket=updated,
            actor_email=actor.email,
            actor_role=actor.role,
            changes=[FieldChange("status", ticket.status, TicketStatus.ESCALATED)],
            escalation_reason=request.reason,
            occurred_at=now,
        ))
        return EscalationOutcome(ticket=updated, escalation=escalation)

    async def list_escalations(self, ticket_id: str, actor: Actor) -> List[Escalation]:
        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        if not can_view(actor, ticket):
            raise AuthorizationException("Not allowed to view this ticket", actor=actor.email)
        return await self._escalation_repo.list_for_ticket(ticket_id)


# ========== Audit Log ==========

class AuditLogService:
    """Append-only audit trail: writes from event handlers, reads for managers."""

    def __init__(self, audit_repository: IAuditLogRepository, clock: Optional[Clock] = None):
        self._audit_repo = audit_repository
        self._clock = clock or utcnow

    async def append(
        self,
        ticket_id: str,
        action: str,
        details: str = "",
        performed_by: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        performed_at: Optional[datetime] = None,
    ) -> AuditLogEntry:
        """
        Append one entry.

        Raises:
            ValidationException: ticket_id or action missing/unknown
            RepositoryException: The store rejected the write
        """
        if not ticket_id:
            raise ValidationException("ticket_id is required", details={"field": "ticket_id"})
        if not action:
            raise ValidationException("action is required", details={"field": "action"})
        _require_choice(action, VALID_AUDIT_ACTIONS, "action")

        entry = AuditLogEntry(
            id=str(uuid4()),
            ticket_id=ticket_id,
            action=action,
            details=details or "",
            performed_by=performed_by or SYSTEM_USER_EMAIL,
            performed_at=performed_at or self._clock(),
            old_value=old_value,
            new_value=new_value,
        )
        return await self._audit_repo.append(entry)

    async def query(
        self,
        actor: Actor,
        ticket_id: Optional[str] = None,
        date_filter: str = DateFilter.ALL,
        limit: int = 100,
    ) -> List[AuditLogEntry]:
        """
        Read the trail.

        One ticket comes back oldest first; across all tickets, newest first
        capped at ``limit``.
        """
        self._ensure_viewer(actor)
        since = self._since(date_filter)
        if ticket_id:
            return await self._audit_repo.list_for_ticket(ticket_id, since)
        return await self._audit_repo.list_recent(since, limit)

    async def stats(self, actor: Actor, ticket_id: str) -> dict:
        """Activity counts for one ticket."""
        self._ensure_viewer(actor)
        entries = await self._audit_repo.list_for_ticket(ticket_id)

        today = self._since(DateFilter.TODAY)
        week = self._since(DateFilter.LAST_7_DAYS)
        month = self._since(DateFilter.LAST_30_DAYS)

        by_action: dict = {}
        for entry in entries:
            by_action[entry.action] = by_action.get(entry.action, 0) + 1

        return {
            "ticket_id": ticket_id,
            "total": len(entries),
            "today": sum(1 for e in entries if e.performed_at >= today),
            "last_7_days": sum(1 for e in entries if e.performed_at >= week),
            "last_30_days": sum(1 for e in entries if e.performed_at >= month),
            "by_action": by_action,
        }

    @staticmethod
    def _ensure_viewer(actor: Actor) -> None:
        if not actor.is_role_manager:
            raise AuthorizationException("Not allowed to read the audit log", actor=actor.email)

    def _since(self, date_filter: str) -> Optional[datetime]:
        _require_choice(date_filter, VALID_DATE_FILTERS, "date_filter")
        now = self._clock()
        if date_filter == DateFilter.TODAY:
            return now.replace(hour=0, minute=0, second=0, microsecond=0)
        if date_filter == DateFilter.LAST_7_DAYS:
            return now - timedelta(days=7)
        if date_filter == DateFilter.LAST_30_DAYS:
            return now - timedelta(days=30)
        return None


# ========== Directory ==========

class DirectoryService:
    """User directory: sign-in resolution, role lookups and role changes."""

    def __init__(self, user_repository: IUserRepository, unit_of_work: IUnitOfWork):
        self._user_repo = user_repository
        self._uow = unit_of_work

    async def resolve_actor(self, email: Optional[str], name: Optional[str] = None) -> Actor:
        """
        Map an authenticated identity to a directory actor.

        The role comes from the role permission table, ``employee`` when the
        email is not mapped. The user row is created or refreshed.
        """
        email = _normalize_email(email)
        if email is None:
            raise AuthenticationException("Missing user identity")

        role = await self._user_repo.get_permission(email) or DEFAULT_ROLE
        existing = await self._user_repo.get(email)

        actor = Actor(
            email=email,
            name=(name or "").strip() or (existing.name if existing else email.split("@")[0]),
            role=role,
            employee_code=existing.employee_code if existing else None,
            department=(existing.department if existing else None) or ROLE_DEPARTMENTS.get(role),
            sub_department=existing.sub_department if existing else None,
        )
        if existing != actor:
            actor = await self._user_repo.upsert(actor)
            await self._uow.commit()
        return actor

    async def list_users(self, actor: Actor, role: Optional[str] = None) -> List[Actor]:
        if actor.is_employee:
            raise AuthorizationException("Not allowed to list users", actor=actor.email)
        if role is not None:
            _require_choice(role, VALID_ROLES, "role")
        return await self._user_repo.list_by_role(role)

    async def users_for_category(self, actor: Actor, category: str) -> List[Actor]:
        """Users whose role owns ``category`` (assignment candidates)."""
        _require_choice(category, VALID_CATEGORIES, "category")
        users = await self.list_users(actor)
        return [user for user in users if user.manages_category(category)]

    async def update_role(self, actor: Actor, email: str, role: str) -> Actor:
        """
        Change a user's role. Role managers only.

        The mapping applies on the user's next sign-in as well.
        """
        if not actor.is_role_manager:
            raise AuthorizationException("Not allowed to change roles", actor=actor.email)
        _require_choice(role, VALID_ROLES, "role")
        target_email = _normalize_email(email)
        if target_email is None:
            raise ValidationException("email is required", details={"field": "email"})

        await self._user_repo.set_permission(target_email, role)
        existing = await self._user_repo.get(target_email)
        if existing is not None:
            existing.role = role
            updated = await self._user_repo.upsert(existing)
        else:
            updated = Actor(email=target_email, name=target_email.split("@")[0], role=role)
        await self._uow.commit()

        logger.info(
            "Role updated",
            extra={"email": target_email, "role": role, "performed_by": actor.email},
        )
        return updated

    async def update_profile(self, actor: Actor, email: str, request: ProfileUpdateRequest) -> Actor:
        """
        Update a user's employee code and department fields.

        Users edit their own profile; role managers can edit anyone's.

        Raises:
            AuthorizationException: Someone else's profile, without a managing role
            ResourceNotFoundException: No directory entry for ``email``
        """
        target_email = _normalize_email(email)
        if target_email is None:
            raise ValidationException("email is required", details={"field": "email"})
        if target_email != actor.email and not actor.is_role_manager:
            raise AuthorizationException("Not allowed to edit this profile", actor=actor.email)

        existing = await self._user_repo.get(target_email)
        if existing is None:
            raise ResourceNotFoundException("User", target_email)

        fields = {
            name: (value.strip() or None) if isinstance(value, str) else value
            for name, value in request.model_dump(exclude_unset=True).items()
        }
        updated = await self._user_repo.upsert(replace(existing, **fields))
        await self._uow.commit()

        logger.info(
            "Profile updated",
            extra={"email": target_email, "fields": sorted(fields), "performed_by": actor.email},
        )
        return updated

    async def hr_emails(self) -> List[str]:
        """Everyone notified about escalations."""
        return [user.email for user in await self._user_repo.list_by_role(Role.HR_OWNER)]

    async def category_owner_emails(self, category: str) -> List[str]:
        """Everyone whose role owns ``category``, for new-ticket notices."""
        users = await self._user_repo.list_by_role()
        return [user.email for user in users if user.manages_category(category)]


# ========== Chat ==========

class ChatService:
    """Per-ticket conversation between the requester and the triagers."""

    def __init__(
        self,
        chat_repository: IChatRepository,
        ticket_repository: ITicketRepository,
        unit_of_work: IUnitOfWork,
        publisher: IEventPublisher,
        clock: Optional[Clock] = None,
    ):
        self._chat_repo = chat_repository
        self._ticket_repo = ticket_repository
        self._uow = unit_of_work
        self._publisher = publisher
        self._clock = clock or utcnow

    async def post_message(self, ticket_id: str, text: str, actor: Actor) -> ChatMessage:
        _require_text(text, "message")
        ticket = await self._get_visible(ticket_id, actor)

        message = ChatMessage(
            id=str(uuid4()),
            ticket_id=ticket.id,
            sender_email=actor.email,
            sender_name=actor.name,
            sender_role=actor.role,
            message=text.strip(),
            sent_at=self._clock(),
        )
        message = await self._chat_repo.add(message)
        await self._uow.commit()

        await self._publisher.publish(TicketEvent(
            event_type=TicketEventType.MESSAGE,
            ticket=ticket,
            actor_email=actor.email,
            actor_role=actor.role,
            message_content=message.message,
            occurred_at=message.sent_at,
        ))
        return message

    async def list_messages(
        self, ticket_id: str, actor: Actor, after: Optional[datetime] = None
    ) -> List[ChatMessage]:
        """Messages oldest first. Pass the last seen ``sent_at`` as ``after`` to poll."""
        ticket = await self._get_visible(ticket_id, actor)
        if after is not None and after.tzinfo is None:
            after = after.replace(tzinfo=timezone.utc)
        return await self._chat_repo.list_for_ticket(ticket.id, after)

    async def _get_visible(self, ticket_id: str, actor: Actor) -> Ticket:
        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        if not can_view(actor, ticket):
            raise AuthorizationException("Not allowed to access this ticket", actor=actor.email)
        return ticket


# ========== Templates ==========

class TemplateService:
    """Ticket templates: managed by role managers, readable by everyone."""

    def __init__(
        self,
        template_repository: ITemplateRepository,
        unit_of_work: IUnitOfWork,
        clock: Optional[Clock] = None,
    ):
        self._template_repo = template_repository
        self._uow = unit_of_work
        self._clock = clock or utcnow

    async def create_template(self, request: TemplateCreateRequest, actor: Actor) -> TicketTemplate:
        """
        Store a new template.

        Raises:
            AuthorizationException: Actor is not a role manager
            ValidationException: Missing text or unknown category/priority
        """
        self._ensure_manager(actor)
        for name in ("name", "subject", "description"):
            _require_text(getattr(request, name), name)
        _require_choice(request.category, VALID_CATEGORIES, "category")
        _require_choice(request.priority, VALID_PRIORITIES, "priority")

        template = TicketTemplate(
            id=str(uuid4()),
            name=request.name.strip(),
            category=request.category,
            subject=request.subject,
            description=request.description,
            priority=request.priority,
            created_by=actor.email,
            created_at=self._clock(),
        )
        template = await self._template_repo.create(template)
        await self._uow.commit()

        logger.info(
            "Template created",
            extra={"template_id": template.id, "category": template.category, "performed_by": actor.email},
        )
        return template

    async def update_template(
        self, template_id: str, request: TemplateUpdateRequest, actor: Actor
    ) -> TicketTemplate:
        self._ensure_manager(actor)
        template = await self._get_or_404(template_id)
        fields = request.model_dump(exclude_unset=True)

        for name in ("name", "subject", "description"):
            if name in fields:
                _require_text(fields[name], name)
        if "category" in fields:
            _require_choice(fields["category"], VALID_CATEGORIES, "category")
        if "priority" in fields:
            _require_choice(fields["priority"], VALID_PRIORITIES, "priority")

        updated = await self._template_repo.update(replace(template, **fields))
        await self._uow.commit()
        return updated

    async def delete_template(self, template_id: str, actor: Actor) -> None:
        self._ensure_manager(actor)
        if not await self._template_repo.delete(template_id):
            raise ResourceNotFoundException("Template", template_id)
        await self._uow.commit()
        logger.info("Template deleted", extra={"template_id": template_id, "performed_by": actor.email})

    async def get_template(self, template_id: str) -> TicketTemplate:
        return await self._get_or_404(template_id)

    async def list_templates(self, page: int = 1, page_size: int = 20) -> List[TicketTemplate]:
        """Templates newest first, one page at a time."""
        page = max(1, page)
        page_size = max(1, page_size)
        return await self._template_repo.list(limit=page_size, offset=(page - 1) * page_size)

    async def templates_by_category(self, category: str) -> List[TicketTemplate]:
        _require_choice(category, VALID_CATEGORIES, "category")
        return await self._template_repo.list(category=category)

    async def _get_or_404(self, template_id: str) -> TicketTemplate:
        template = await self._template_repo.get_by_id(template_id)
        if template is None:
            raise ResourceNotFoundException("Template", template_id)
        return template

    @staticmethod
    def _ensure_manager(actor: Actor) -> None:
        if not actor.is_role_manager:
            raise AuthorizationException("Not allowed to manage templates", actor=actor.email)


# ========== In-app notifications ==========

class InboxService:
    """Per-user notifications written by the inbox event handler."""

    def __init__(
        self,
        notification_repository: INotificationRepository,
        unit_of_work: IUnitOfWork,
        clock: Optional[Clock] = None,
        limit: int = 50,
    ):
        self._notification_repo = notification_repository
        self._uow = unit_of_work
        self._clock = clock or utcnow
        self._limit = limit

    async def add(
        self,
        user_email: str,
        title: str,
        message: str,
        type: str = NotificationType.INFO,
        ticket_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> UserNotification:
        """
        Store one notification for a user.

        Raises:
            ValidationException: Missing recipient/title/message or unknown type
        """
        email = _normalize_email(user_email)
        if email is None:
            raise ValidationException("user_email is required", details={"field": "user_email"})
        _require_text(title, "title")
        _require_text(message, "message")
        _require_choice(type, VALID_NOTIFICATION_TYPES, "type")

        notification = UserNotification(
            id=str(uuid4()),
            user_email=email,
            title=title,
            message=message,
            type=type,
            ticket_id=ticket_id,
            created_at=created_at or self._clock(),
        )
        notification = await self._notification_repo.add(notification)
        await self._uow.commit()
        return notification

    async def list_for_user(self, actor: Actor) -> List[UserNotification]:
        """The actor's own notifications, newest first."""
        return await self._notification_repo.list_for_user(actor.email, self._limit)

    async def mark_read(self, notification_id: str, actor: Actor) -> UserNotification:
        """
        Flag one of the actor's notifications as read.

        Raises:
            ResourceNotFoundException: Unknown notification
            AuthorizationException: The notification belongs to someone else
        """
        notification = await self._notification_repo.get_by_id(notification_id)
        if notification is None:
            raise ResourceNotFoundException("Notification", notification_id)
        if notification.user_email != actor.email:
            raise AuthorizationException("Not allowed to change this notification", actor=actor.email)

        if not notification.read:
            await self._notification_repo.mark_read(notification_id)
            await self._uow.commit()
        return replace(notification, read=True)
