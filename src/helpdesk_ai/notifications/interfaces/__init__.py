"""
Notifications Interfaces Layer
==============================

Contains:
- Controllers: FastAPI route handlers
"""

from helpdesk_ai.notifications.interfaces.controllers import (
    router as notifications_router,
    build_dispatcher,
)

__all__ = ["notifications_router", "build_dispatcher"]
