"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="Relational store connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA policy YAML file"
    )
    at_risk_hours: float = Field(
        default=2.0,
        description="Open tickets with this many hours or less before the due date are at risk",
        ge=0
    )

    # ========== Escalation ==========
    escalation_auto_resolve: bool = Field(
        default=True,
        description="Mark a ticket's escalation records resolved when the ticket is closed"
    )

    # ========== Notification Webhook ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Endpoint receiving ticket notification payloads"
    )
    notification_webhook_token: Optional[str] = Field(
        default=None,
        description="Bearer token sent to the notification endpoint"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification webhook calls",
        ge=0.1,
        le=30
    )

    # ========== Pagination ==========
    default_page_size: int = Field(default=20, ge=1, le=100)
    max_page_size: int = Field(default=100, ge=1, le=1000)

    # ========== In-app notifications ==========
    inbox_limit: int = Field(default=50, description="Notifications returned per user", ge=1, le=500)

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketCategory(str):
    """Department buckets a ticket can be filed under."""
    IT_INFRASTRUCTURE = "IT Infrastructure"
    HR = "HR"
    ADMINISTRATION = "Administration"
    ACCOUNTS = "Accounts"
    OTHERS = "Others"


class Priority(str):
    """Ticket priority levels."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    ESCALATED = "Escalated"
    CLOSED = "Closed"


class Role(str):
    """Directory roles."""
    EMPLOYEE = "employee"
    IT_OWNER = "it_owner"
    HR_OWNER = "hr_owner"
    ADMIN_OWNER = "admin_owner"
    ACCOUNTS_OWNER = "accounts_owner"
    OWNER = "owner"


class AuditAction(str):
    """Kinds of audit log entries."""
    CREATED = "created"
    UPDATED = "updated"
    ASSIGNED = "assigned"
    ESCALATED = "escalated"
    # Accepted for manual appends; closing through an update is logged as "updated"
    CLOSED = "closed"
    MESSAGE_ADDED = "message_added"


class NotificationType(str):
    """Severity of an in-app notification."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class DateFilter(str):
    """Audit log date windows."""
    ALL = "all"
    TODAY = "today"
    LAST_7_DAYS = "7days"
    LAST_30_DAYS = "30days"


class SLAState(str):
    """SLA tracker states."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    VIOLATED = "violated"
    MET = "met"


# ========== Lists for validation ==========

VALID_CATEGORIES = [
    TicketCategory.IT_INFRASTRUCTURE, TicketCategory.HR,
    TicketCategory.ADMINISTRATION, TicketCategory.ACCOUNTS,
    TicketCategory.OTHERS
]
VALID_PRIORITIES = [
    Priority.LOW, Priority.MEDIUM,
    Priority.HIGH, Priority.CRITICAL
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.ESCALATED, TicketStatus.CLOSED
]
VALID_ROLES = [
    Role.EMPLOYEE, Role.IT_OWNER, Role.HR_OWNER,
    Role.ADMIN_OWNER, Role.ACCOUNTS_OWNER, Role.OWNER
]
VALID_AUDIT_ACTIONS = [
    AuditAction.CREATED, AuditAction.UPDATED, AuditAction.ASSIGNED,
    AuditAction.ESCALATED, AuditAction.CLOSED, AuditAction.MESSAGE_ADDED
]
VALID_DATE_FILTERS = [
    DateFilter.ALL, DateFilter.TODAY,
    DateFilter.LAST_7_DAYS, DateFilter.LAST_30_DAYS
]
VALID_NOTIFICATION_TYPES = [
    NotificationType.INFO, NotificationType.SUCCESS,
    NotificationType.WARNING, NotificationType.ERROR
]

DEFAULT_ROLE = Role.EMPLOYEE

# Roles allowed to change other users' roles and to read the audit trail
ROLE_MANAGERS = [Role.HR_OWNER, Role.OWNER, Role.ADMIN_OWNER]

ROLE_CATEGORIES: Dict[str, List[str]] = {
    Role.EMPLOYEE: [],
    Role.IT_OWNER: [TicketCategory.IT_INFRASTRUCTURE],
    Role.HR_OWNER: [TicketCategory.HR, TicketCategory.OTHERS],
    Role.ADMIN_OWNER: [TicketCategory.ADMINISTRATION],
    Role.ACCOUNTS_OWNER: [TicketCategory.ACCOUNTS],
    Role.OWNER: list(VALID_CATEGORIES),
}

ROLE_DEPARTMENTS: Dict[str, str] = {
    Role.EMPLOYEE: "General",
    Role.IT_OWNER: "IT",
    Role.HR_OWNER: "HR",
    Role.ADMIN_OWNER: "Administration",
    Role.ACCOUNTS_OWNER: "Accounts",
    Role.OWNER: "Management",
}

SYSTEM_USER_EMAIL = "system@helpdesk.local"
