"""
Notifications Infrastructure Layer
==================================

Contains:
- Models: SQLAlchemy ORM model for the queue
- Repositories: queue data access with per-row claims
- External: SendGrid client and the batch scheduler
"""

from helpdesk_ai.notifications.infrastructure.models import NotificationQueueModel
from helpdesk_ai.notifications.infrastructure.repositories import (
    SQLAlchemyNotificationQueueRepository,
)
from helpdesk_ai.notifications.infrastructure.external import (
    SendGridEmailClient,
    NotificationScheduler,
)

__all__ = [
    "NotificationQueueModel",
    "SQLAlchemyNotificationQueueRepository",
    "SendGridEmailClient",
    "NotificationScheduler",
]
