"""
Ticket Interfaces Layer
=======================

Interface adapters (controllers) for the tickets module.

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from helpdesk.tickets.interfaces.controllers import (
    tickets_router, audit_router, users_router, templates_router, notifications_router,
)

__all__ = ["tickets_router", "audit_router", "users_router", "templates_router", "notifications_router"]
