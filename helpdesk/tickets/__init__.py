"""
Tickets Module
==============

Bounded Context for the help-desk ticket lifecycle.

Responsibilities:
- File, update, assign and close tickets under a role-aware permission model
- Derive SLA due dates and timing fields from the YAML policy
- Escalate tickets and keep their escalation records
- Keep an append-only audit trail of every mutation
- Notify downstream channels through the webhook
- Per-ticket chat and the user directory
"""
