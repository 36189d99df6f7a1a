"""
Helpdesk AI
===========

AI-assisted ticket responses and notification delivery for a multi-tenant
help desk.
"""

__version__ = "1.0.0"
