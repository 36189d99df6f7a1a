"""
Responder Infrastructure Layer
==============================

Infrastructure implementations for the response pipeline.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Data access implementations
- External: KB indexing, notification queue and telemetry adapters
"""

from helpdesk_ai.responder.infrastructure.models import (
    OrganizationModel,
    UserModel,
    TicketModel,
    TicketEventModel,
    KBArticleModel,
)
from helpdesk_ai.responder.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyTicketEventRepository,
    SQLAlchemyKnowledgeBaseRepository,
)
from helpdesk_ai.responder.infrastructure.external import (
    KBIndexer,
    NotificationQueueAdapter,
    GrafanaEvaluationTelemetry,
)

__all__ = [
    "OrganizationModel",
    "UserModel",
    "TicketModel",
    "TicketEventModel",
    "KBArticleModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyTicketEventRepository",
    "SQLAlchemyKnowledgeBaseRepository",
    "KBIndexer",
    "NotificationQueueAdapter",
    "GrafanaEvaluationTelemetry",
]
