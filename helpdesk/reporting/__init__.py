"""
Reporting Module
================

Role-scoped dashboards over the ticket store: analytics, SLA tracker,
status board and CSV/XLSX exports.
"""
