"""
Notification Domain Entities
============================

Queue entries and the data needed to turn one into an email.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from helpdesk_ai.config import NotificationStatus


@dataclass
class NotificationQueueEntry:
    """
    Pending email notification about a ticket event.

    retry_count never decreases. An entry with retry_count at the retry
    limit is exhausted and never selected again.
    """
    id: str
    user_id: str
    ticket_id: str
    event_id: int
    created_at: datetime
    status: str = NotificationStatus.PENDING
    retry_count: int = 0
    error: Optional[str] = None


@dataclass
class DeliveryContext:
    """Everything needed to render the email for one queue entry."""
    recipient_email: str
    recipient_name: Optional[str]
    ticket_id: str
    ticket_title: str
    organization_slug: str
    event_type: str
    actor_name: Optional[str] = None
    comment_text: Optional[str] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    new_assignee_name: Optional[str] = None


@dataclass
class EmailMessage:
    """Rendered email."""
    to: str
    subject: str
    html: str


@dataclass
class BatchSummary:
    """Counts for one dispatcher batch."""
    processed: int = 0
    success_count: int = 0
    failure_count: int = 0

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
        }
