"""
Notifications Domain Layer
==========================

Contains:
- Entities: NotificationQueueEntry, DeliveryContext, EmailMessage, BatchSummary
- Composer: email rendering per event type
"""

from helpdesk_ai.notifications.domain.entities import (
    NotificationQueueEntry,
    DeliveryContext,
    EmailMessage,
    BatchSummary,
)
from helpdesk_ai.notifications.domain.composer import NotificationComposer

__all__ = [
    "NotificationQueueEntry",
    "DeliveryContext",
    "EmailMessage",
    "BatchSummary",
    "NotificationComposer",
]
