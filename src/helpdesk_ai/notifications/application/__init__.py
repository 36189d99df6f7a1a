"""
Notifications Application Layer
===============================

Contains:
- Services: NotificationDispatcher
- DTOs: batch summary response
"""

from helpdesk_ai.notifications.application.dto import BatchSummaryResponse
from helpdesk_ai.notifications.application.services import (
    NotificationDispatcher,
    INotificationQueueRepository,
    IEmailSender,
)

__all__ = [
    "BatchSummaryResponse",
    "NotificationDispatcher",
    "INotificationQueueRepository",
    "IEmailSender",
]
