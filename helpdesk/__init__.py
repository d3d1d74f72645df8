"""
Help-Desk Service
=================

Internal ticketing for employees and the teams that triage their requests.
"""

__version__ = "1.0.0"
