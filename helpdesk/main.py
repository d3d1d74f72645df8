"""
Help-Desk Service - Main Application
====================================

Internal help-desk ticketing with role-based triage.

Modules:
- Tickets: lifecycle, SLA, escalation, audit trail, notifications, chat,
  templates, in-app notifications
- Reporting: role-scoped dashboards, SLA tracker, board, exports

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services, DTOs and events
- Domain: Entities and value objects
- Infrastructure: Database, webhook, policy file watcher
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

# Configuration and Core
from helpdesk.config import settings
from helpdesk.core import ApplicationException

# Infrastructure
from helpdesk.infrastructure.database import (
    init_database, close_database, create_tables, get_engine, get_session_context
)
from helpdesk.shared.infrastructure.error_channel import ErrorChannel
from helpdesk.shared.infrastructure.logging import setup_logging, get_logger

# Tickets module
from helpdesk.tickets.application import EventBus
from helpdesk.tickets.infrastructure import (
    SLAConfigManager, WebhookNotifier, AuditEventHandler, NotificationEventHandler,
    InboxEventHandler,
)

# Module Routers
from helpdesk.tickets.interfaces import (
    tickets_router, audit_router, users_router, templates_router, notifications_router,
)
from helpdesk.reporting.interfaces import reports_router

from helpdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA policy and watch the file
    4. Start the event bus with the audit, webhook and inbox handlers

    SHUTDOWN:
    1. Drain and stop the event bus
    2. Stop the policy watcher
    3. Close the webhook client
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Help-Desk Service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use migrations in production)
    logger.info("Creating database tables")
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    error_channel = ErrorChannel(get_session_context)

    logger.info("Loading SLA policy")
    sla_config = SLAConfigManager()
    sla_config.load(settings.sla_config_path)
    sla_config.start_watching()

    notifier = WebhookNotifier(error_channel=error_channel)

    event_bus = EventBus(error_channel)
    event_bus.subscribe(AuditEventHandler(get_session_context, error_channel), name="audit")
    event_bus.subscribe(NotificationEventHandler(notifier, get_session_context, error_channel), name="notification")
    event_bus.subscribe(InboxEventHandler(get_session_context, error_channel), name="inbox")
    await event_bus.start()

    # Store services in app state for dependency injection
    app.state.settings = settings
    app.state.error_channel = error_channel
    app.state.sla_config = sla_config
    app.state.event_bus = event_bus

    logger.info("Help-Desk Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Help-Desk Service")

    await event_bus.stop()
    sla_config.stop_watching()
    await notifier.close()
    await close_database()

    logger.info("Help-Desk Service shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="Help-Desk API",
        description="""
        ## Internal Help-Desk Ticketing

        Employees file tickets; category owners triage them under an SLA.

        ### Roles

        | Role | Categories |
        |------|-----------|
        | employee | own tickets only |
        | it_owner | IT Infrastructure |
        | hr_owner | HR, Others |
        | admin_owner | Administration |
        | accounts_owner | Accounts |
        | owner | all |

        ### Ticket lifecycle

        `Open` → `In Progress` | `Escalated` | `Closed`;
        `In Progress` → `Escalated` | `Closed`;
        `Escalated` → `In Progress` | `Closed`. `Closed` is final.

        ### Identity

        Every request carries `X-User-Email` (and optionally `X-User-Name`)
        set by the authenticating proxy.
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(tickets_router)
    app.include_router(audit_router)
    app.include_router(users_router)
    app.include_router(templates_router)
    app.include_router(notifications_router)
    app.include_router(reports_router)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/", root, methods=["GET"], tags=["Root"])
    return app


async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports database connectivity, SLA policy and event bus state.
    """
    checks = {"database": "connected", "sla_config": "not_loaded", "event_bus": "stopped"}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = f"error: {e}"

    sla_config = getattr(request.app.state, "sla_config", None)
    if sla_config is not None:
        checks["sla_config"] = "loaded"

    event_bus = getattr(request.app.state, "event_bus", None)
    if event_bus is not None and event_bus.is_running:
        checks["event_bus"] = "running"

    healthy = checks["database"] == "connected"
    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "tickets": {"prefix": "/tickets"},
            "audit": {"prefix": "/audit-logs"},
            "users": {"prefix": "/users"},
            "templates": {"prefix": "/templates"},
            "notifications": {"prefix": "/notifications"},
            "reports": {"prefix": "/reports"},
        }
    }


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "helpdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
