"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from helpdesk.core.exceptions import (
    ApplicationException,
    RepositoryException,
    ValidationException,
    InvalidStatusTransitionException,
    AuthenticationException,
    AuthorizationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    NotificationException,
)

__all__ = [
    "ApplicationException",
    "RepositoryException",
    "ValidationException",
    "InvalidStatusTransitionException",
    "AuthenticationException",
    "AuthorizationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "NotificationException",
]
