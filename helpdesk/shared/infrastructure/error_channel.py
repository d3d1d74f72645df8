"""
Error Channel
=============

Side channel for failures that must not fail the caller: audit appends,
notification dispatch, and the detail record behind every user-facing error.

Each record goes to the ``helpdesk.errors`` logger and, best-effort, to the
``error_logs`` table.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Text, Uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.infrastructure.database import Base
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger("helpdesk.errors")


class ErrorLogModel(Base):
    """Persisted error channel record. Maps to the 'error_logs' table."""
    __tablename__ = "error_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )


class ErrorChannel:
    """
    Records failures without raising.

    Args:
        session_factory: Optional callable returning an async context manager
            that yields an AsyncSession (e.g. ``get_session_context``). When
            omitted, records are only logged.
    """

    def __init__(self, session_factory: Optional[Callable[[], Any]] = None):
        self._session_factory = session_factory

    async def record(self, context: str, error: BaseException | str, **extra: Any) -> None:
        """Log the failure and try to persist it."""
        message = str(error)
        logger.error(
            "Error recorded",
            extra={
                "context": context,
                "error": message,
                "error_type": type(error).__name__ if isinstance(error, BaseException) else "message",
                **extra,
            },
        )

        if self._session_factory is None:
            return

        try:
            async with self._session_factory() as session:
                await self._persist(session, message, context)
        except Exception as e:
            # The store is likely the thing that failed; the log line above stands
            logger.warning(
                "Could not persist error record",
                extra={"context": context, "error": str(e)},
            )

    @staticmethod
    async def _persist(session: AsyncSession, message: str, context: str) -> None:
        session.add(ErrorLogModel(id=uuid4(), error_message=message, context=context))
        await session.flush()
