"""
Core Exceptions
================

Custom exceptions for the help-desk service.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class InvalidStatusTransitionException(ValidationException):
    """Raised when a status change does not follow the lifecycle graph."""

    def __init__(self, current: str, requested: str, details: Optional[dict] = None):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move ticket from '{current}' to '{requested}'",
            details or {"current": current, "requested": requested}
        )


class AuthenticationException(ApplicationException):
    """Raised when a request carries no usable identity."""


class AuthorizationException(ApplicationException):
    """Raised when the actor lacks permission for the requested action."""

    def __init__(
        self,
        message: str,
        actor: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.actor = actor
        super().__init__(message, details)


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationException(ExternalServiceException):
    """Exception for notification webhook failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notification Webhook", message, details)
