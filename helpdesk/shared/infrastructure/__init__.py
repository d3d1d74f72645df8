"""
Shared Infrastructure
=====================

Low-level technical concerns:
- Structured logging
- Error channel
"""
