"""
Shared Kernel Module
====================

Shared infrastructure used across the bounded contexts (tickets and
reporting).

Architecture Pattern: Modular Monolith
- Each module (tickets, reporting) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add ticket or reporting business logic to the shared kernel.
"""
