"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Driver errors surface as RepositoryException.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, and_, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core import RepositoryException
from helpdesk.tickets.application.interfaces import (
    ITicketRepository, IAuditLogRepository, IEscalationRepository,
    IUserRepository, IChatRepository, ITemplateRepository, INotificationRepository,
    IUnitOfWork, TicketQuery,
)
from helpdesk.tickets.domain import (
    Actor, Ticket, AuditLogEntry, Escalation, ChatMessage, TicketTemplate,
    UserNotification, ensure_utc,
)
from helpdesk.tickets.infrastructure.models import (
    TicketModel, AuditLogModel, EscalationModel, UserModel,
    RolePermissionModel, ChatMessageModel, TicketTemplateModel, UserNotificationModel,
)


def _to_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _ticket_from_model(model: TicketModel) -> Ticket:
    return Ticket(
        id=str(model.id),
        subject=model.subject,
        description=model.description,
        category=model.category,
        priority=model.priority,
        status=model.status,
        employee_email=model.employee_email,
        employee_name=model.employee_name,
        employee_code=model.employee_code,
        department=model.department,
        sub_department=model.sub_department,
        assigned_to=model.assigned_to,
        created_at=model.created_at,
        updated_at=model.updated_at,
        sla_due_date=model.sla_due_date,
        response_time=model.response_time,
        resolution_time=model.resolution_time,
        sla_violated=model.sla_violated,
        rating=model.rating,
        escalation_reason=model.escalation_reason,
        escalation_date=model.escalation_date,
    )


def _apply_ticket(model: TicketModel, ticket: Ticket) -> None:
    """Copy mutable ticket fields onto the row. created_at and sla_due_date are set once."""
    model.subject = ticket.subject
    model.description = ticket.description
    model.category = ticket.category
    model.priority = ticket.priority
    model.status = ticket.status
    model.employee_name = ticket.employee_name
    model.employee_code = ticket.employee_code
    model.department = ticket.department
    model.sub_department = ticket.sub_department
    model.assigned_to = ticket.assigned_to
    model.updated_at = ticket.updated_at
    model.response_time = ticket.response_time
    model.resolution_time = ticket.resolution_time
    model.sla_violated = ticket.sla_violated
    model.rating = ticket.rating
    model.escalation_reason = ticket.escalation_reason
    model.escalation_date = ticket.escalation_date


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, ticket_id: str) -> Optional[TicketModel]:
        ticket_uuid = _to_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        stmt = select(TicketModel).where(TicketModel.id == ticket_uuid)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""
        try:
            model = await self._get_model(ticket_id)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load ticket {ticket_id}: {e}") from e
        return _ticket_from_model(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        """Create new ticket."""
        model = TicketModel(
            id=UUID(ticket.id),
            employee_email=ticket.employee_email,
            created_at=ticket.created_at,
            sla_due_date=ticket.sla_due_date,
        )
        _apply_ticket(model, ticket)

        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create ticket: {e}") from e

        return _ticket_from_model(model)

    async def update(self, ticket: Ticket) -> Ticket:
        """Update existing ticket."""
        try:
            model = await self._get_model(ticket.id)
            if not model:
                raise RepositoryException(f"Ticket {ticket.id} not found")
            _apply_ticket(model, ticket)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update ticket {ticket.id}: {e}") from e

        return _ticket_from_model(model)

    async def list(
        self,
        query: TicketQuery,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Tuple[List[Ticket], int]:
        """List tickets with filters, newest first."""
        conditions = []

        if query.has_scope:
            scope = []
            if query.scope_categories:
                scope.append(TicketModel.category.in_(query.scope_categories))
            if query.scope_employee_email:
                scope.append(TicketModel.employee_email == query.scope_employee_email)
            if query.scope_assigned_to:
                scope.append(TicketModel.assigned_to == query.scope_assigned_to)
            conditions.append(or_(*scope))

        if query.categories:
            conditions.append(TicketModel.category.in_(query.categories))
        if query.statuses:
            conditions.append(TicketModel.status.in_(query.statuses))
        if query.priority:
            conditions.append(TicketModel.priority == query.priority)
        if query.employee_email:
            conditions.append(TicketModel.employee_email == query.employee_email)
        if query.assigned_to:
            conditions.append(TicketModel.assigned_to == query.assigned_to)

        stmt = select(TicketModel)
        count_stmt = select(func.count()).select_from(TicketModel)
        if conditions:
            stmt = stmt.where(and_(*conditions))
            count_stmt = count_stmt.where(and_(*conditions))

        # Order by created_at descending
        stmt = stmt.order_by(TicketModel.created_at.desc(), TicketModel.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        try:
            total = (await self._session.execute(count_stmt)).scalar_one()
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list tickets: {e}") from e

        return [_ticket_from_model(m) for m in result.scalars().all()], total


def _audit_from_model(model: AuditLogModel) -> AuditLogEntry:
    return AuditLogEntry(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        action=model.action,
        details=model.details,
        performed_by=model.performed_by,
        performed_at=ensure_utc(model.performed_at),
        old_value=model.old_value,
        new_value=model.new_value,
    )


class SQLAlchemyAuditLogRepository(IAuditLogRepository):
    """Insert-only audit storage."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        ticket_uuid = _to_uuid(entry.ticket_id)
        if ticket_uuid is None:
            raise RepositoryException(f"Invalid ticket ID: {entry.ticket_id}")

        model = AuditLogModel(
            id=UUID(entry.id),
            ticket_id=ticket_uuid,
            action=entry.action,
            details=entry.details,
            old_value=entry.old_value,
            new_value=entry.new_value,
            performed_by=entry.performed_by,
            performed_at=entry.performed_at,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to append audit entry: {e}") from e
        return entry

    async def list_for_ticket(
        self, ticket_id: str, since: Optional[datetime] = None
    ) -> List[AuditLogEntry]:
        ticket_uuid = _to_uuid(ticket_id)
        if ticket_uuid is None:
            return []

        stmt = select(AuditLogModel).where(AuditLogModel.ticket_id == ticket_uuid)
        if since is not None:
            stmt = stmt.where(AuditLogModel.performed_at >= since)
        stmt = stmt.order_by(AuditLogModel.performed_at.asc())
        return await self._fetch(stmt)

    async def list_recent(
        self, since: Optional[datetime] = None, limit: int = 100
    ) -> List[AuditLogEntry]:
        stmt = select(AuditLogModel)
        if since is not None:
            stmt = stmt.where(AuditLogModel.performed_at >= since)
        stmt = stmt.order_by(AuditLogModel.performed_at.desc()).limit(limit)
        return await self._fetch(stmt)

    async def _fetch(self, stmt) -> List[AuditLogEntry]:
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to read audit log: {e}") from e
        return [_audit_from_model(m) for m in result.scalars().all()]


class SQLAlchemyEscalationRepository(IEscalationRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, escalation: Escalation) -> Escalation:
        model = EscalationModel(
            id=UUID(escalation.id),
            ticket_id=UUID(escalation.ticket_id),
            reason=escalation.reason,
            description=escalation.description,
            timeline=escalation.timeline,
            escalated_by=escalation.escalated_by,
            escalated_at=escalation.escalated_at,
            resolved=escalation.resolved,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to add escalation: {e}") from e
        return escalation

    async def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        ticket_uuid = _to_uuid(ticket_id)
        if ticket_uuid is None:
            return []

        stmt = (
            select(EscalationModel)
            .where(EscalationModel.ticket_id == ticket_uuid)
            .order_by(EscalationModel.escalated_at.asc())
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list escalations of {ticket_id}: {e}") from e
        return [
            Escalation(
                id=str(m.id),
                ticket_id=str(m.ticket_id),
                reason=m.reason,
                description=m.description,
                timeline=m.timeline,
                escalated_by=m.escalated_by,
                escalated_at=ensure_utc(m.escalated_at),
                resolved=m.resolved,
            )
            for m in result.scalars().all()
        ]

    async def resolve_for_ticket(self, ticket_id: str) -> int:
        stmt = (
            update(EscalationModel)
            .where(and_(
                EscalationModel.ticket_id == UUID(ticket_id),
                EscalationModel.resolved == False,  # noqa: E712
            ))
            .values(resolved=True)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to resolve escalations: {e}") from e
        return result.rowcount or 0


def _actor_from_model(model: UserModel) -> Actor:
    return Actor(
        email=model.email,
        name=model.name,
        role=model.role,
        employee_code=model.employee_code,
        department=model.department,
        sub_department=model.sub_department,
    )


class SQLAlchemyUserRepository(IUserRepository):
    """Users and role permissions."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, email: str) -> Optional[UserModel]:
        result = await self._session.execute(select(UserModel).where(UserModel.email == email.lower()))
        return result.scalar_one_or_none()

    async def get(self, email: str) -> Optional[Actor]:
        try:
            model = await self._get_model(email)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load user {email}: {e}") from e
        return _actor_from_model(model) if model else None

    async def upsert(self, actor: Actor) -> Actor:
        try:
            model = await self._get_model(actor.email)
            if model is None:
                model = UserModel(email=actor.email)
                self._session.add(model)
            model.name = actor.name
            model.role = actor.role
            model.employee_code = actor.employee_code
            model.department = actor.department
            model.sub_department = actor.sub_department
            model.updated_at = datetime.now(timezone.utc)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save user {actor.email}: {e}") from e
        return _actor_from_model(model)

    async def list_by_role(self, role: Optional[str] = None) -> List[Actor]:
        stmt = select(UserModel)
        if role is not None:
            stmt = stmt.where(UserModel.role == role)
        stmt = stmt.order_by(UserModel.created_at.asc(), UserModel.email)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list users: {e}") from e
        return [_actor_from_model(m) for m in result.scalars().all()]

    async def get_permission(self, email: str) -> Optional[str]:
        stmt = select(RolePermissionModel.role).where(RolePermissionModel.email == email.lower())
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to look up role for {email}: {e}") from e
        return result.scalar_one_or_none()

    async def set_permission(self, email: str, role: str) -> None:
        try:
            result = await self._session.execute(
                select(RolePermissionModel).where(RolePermissionModel.email == email.lower())
            )
            model = result.scalar_one_or_none()
            if model is None:
                model = RolePermissionModel(email=email.lower(), role=role)
                self._session.add(model)
            model.role = role
            model.updated_at = datetime.now(timezone.utc)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to set role for {email}: {e}") from e


class SQLAlchemyChatRepository(IChatRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, message: ChatMessage) -> ChatMessage:
        model = ChatMessageModel(
            id=UUID(message.id),
            ticket_id=UUID(message.ticket_id),
            sender_email=message.sender_email,
            sender_name=message.sender_name,
            sender_role=message.sender_role,
            message=message.message,
            sent_at=message.sent_at,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store message: {e}") from e
        return message

    async def list_for_ticket(
        self, ticket_id: str, after: Optional[datetime] = None
    ) -> List[ChatMessage]:
        ticket_uuid = _to_uuid(ticket_id)
        if ticket_uuid is None:
            return []

        stmt = select(ChatMessageModel).where(ChatMessageModel.ticket_id == ticket_uuid)
        if after is not None:
            stmt = stmt.where(ChatMessageModel.sent_at > after)
        stmt = stmt.order_by(ChatMessageModel.sent_at.asc())
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to read messages of {ticket_id}: {e}") from e
        return [
            ChatMessage(
                id=str(m.id),
                ticket_id=str(m.ticket_id),
                sender_email=m.sender_email,
                sender_name=m.sender_name,
                sender_role=m.sender_role,
                message=m.message,
                sent_at=ensure_utc(m.sent_at),
            )
            for m in result.scalars().all()
        ]


def _template_from_model(model: TicketTemplateModel) -> TicketTemplate:
    return TicketTemplate(
        id=str(model.id),
        name=model.name,
        category=model.category,
        subject=model.subject,
        description=model.description,
        priority=model.priority,
        created_by=model.created_by,
        created_at=model.created_at,
    )


class SQLAlchemyTemplateRepository(ITemplateRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, template_id: str) -> Optional[TicketTemplateModel]:
        template_uuid = _to_uuid(template_id)
        if template_uuid is None:
            return None
        result = await self._session.execute(
            select(TicketTemplateModel).where(TicketTemplateModel.id == template_uuid)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, template_id: str) -> Optional[TicketTemplate]:
        try:
            model = await self._get_model(template_id)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load template {template_id}: {e}") from e
        return _template_from_model(model) if model else None

    async def create(self, template: TicketTemplate) -> TicketTemplate:
        model = TicketTemplateModel(
            id=UUID(template.id),
            name=template.name,
            category=template.category,
            subject=template.subject,
            description=template.description,
            priority=template.priority,
            created_by=template.created_by,
            created_at=template.created_at,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create template: {e}") from e
        return _template_from_model(model)

    async def update(self, template: TicketTemplate) -> TicketTemplate:
        try:
            model = await self._get_model(template.id)
            if not model:
                raise RepositoryException(f"Template {template.id} not found")
            model.name = template.name
            model.category = template.category
            model.subject = template.subject
            model.description = template.description
            model.priority = template.priority
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update template {template.id}: {e}") from e
        return _template_from_model(model)

    async def delete(self, template_id: str) -> bool:
        try:
            model = await self._get_model(template_id)
            if model is None:
                return False
            await self._session.delete(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to delete template {template_id}: {e}") from e
        return True

    async def list(
        self, category: Optional[str] = None, limit: Optional[int] = None, offset: int = 0
    ) -> List[TicketTemplate]:
        stmt = select(TicketTemplateModel)
        if category is not None:
            stmt = stmt.where(TicketTemplateModel.category == category)
        stmt = stmt.order_by(TicketTemplateModel.created_at.desc(), TicketTemplateModel.name)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list templates: {e}") from e
        return [_template_from_model(m) for m in result.scalars().all()]


def _notification_from_model(model: UserNotificationModel) -> UserNotification:
    return UserNotification(
        id=str(model.id),
        user_email=model.user_email,
        title=model.title,
        message=model.message,
        type=model.type,
        ticket_id=str(model.ticket_id) if model.ticket_id else None,
        read=model.read,
        created_at=model.created_at,
    )


class SQLAlchemyNotificationRepository(INotificationRepository):
    """In-app notifications, one row per recipient."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, notification: UserNotification) -> UserNotification:
        model = UserNotificationModel(
            id=UUID(notification.id),
            user_email=notification.user_email,
            title=notification.title,
            message=notification.message,
            type=notification.type,
            ticket_id=_to_uuid(notification.ticket_id) if notification.ticket_id else None,
            read=notification.read,
            created_at=notification.created_at,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store notification: {e}") from e
        return notification

    async def get_by_id(self, notification_id: str) -> Optional[UserNotification]:
        notification_uuid = _to_uuid(notification_id)
        if notification_uuid is None:
            return None
        stmt = select(UserNotificationModel).where(UserNotificationModel.id == notification_uuid)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load notification {notification_id}: {e}") from e
        model = result.scalar_one_or_none()
        return _notification_from_model(model) if model else None

    async def list_for_user(self, user_email: str, limit: int = 50) -> List[UserNotification]:
        stmt = (
            select(UserNotificationModel)
            .where(UserNotificationModel.user_email == user_email.lower())
            .order_by(UserNotificationModel.created_at.desc())
            .limit(limit)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to read notifications of {user_email}: {e}") from e
        return [_notification_from_model(m) for m in result.scalars().all()]

    async def mark_read(self, notification_id: str) -> None:
        stmt = (
            update(UserNotificationModel)
            .where(UserNotificationModel.id == UUID(notification_id))
            .values(read=True)
        )
        try:
            await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to mark notification {notification_id} read: {e}") from e


class SQLAlchemyUnitOfWork(IUnitOfWork):
    """Commits the request session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryException(f"Commit failed: {e}") from e
