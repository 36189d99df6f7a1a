"""
Responder Interfaces Layer
==========================

Contains:
- Controllers: FastAPI route handlers
"""

from helpdesk_ai.responder.interfaces.controllers import router as responder_router

__all__ = ["responder_router"]
