"""
Notification Application Services
=================================

Retry-bounded, at-least-once delivery loop over the notification queue.
"""

import uuid
from typing import Awaitable, List, Optional
from abc import ABC, abstractmethod

from helpdesk_ai.config import settings
from helpdesk_ai.notifications.domain import (
    NotificationQueueEntry,
    DeliveryContext,
    EmailMessage,
    BatchSummary,
    NotificationComposer,
)
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class INotificationQueueRepository(ABC):
    """Interface for notification queue data access."""

    @abstractmethod
    async def enqueue(self, user_id: str, ticket_id: str, event_id: int) -> NotificationQueueEntry:
        """Add a pending entry. Left uncommitted, to share the caller's transaction."""

    @abstractmethod
    async def claim_batch(
        self,
        claim_token: str,
        limit: int,
        max_retries: int,
        claim_ttl_seconds: int
    ) -> List[NotificationQueueEntry]:
        """
        Claim up to limit eligible entries, oldest first.

        An entry claimed by another unexpired claim is never returned.
        """

    @abstractmethod
    async def load_delivery_context(self, entry: NotificationQueueEntry) -> DeliveryContext:
        """Resolve recipient, ticket and event details for an entry."""

    @abstractmethod
    async def refresh_claim(self, entry_id: str, claim_token: str) -> bool:
        """Restart the claim's TTL. False if the entry is no longer held by claim_token."""

    @abstractmethod
    async def mark_sent(self, entry_id: str, claim_token: str) -> bool:
        """Terminal success. False if the claim was lost."""

    @abstractmethod
    async def mark_failed(self, entry_id: str, claim_token: str, error: str) -> bool:
        """Record a failed attempt, incrementing retry_count. False if the claim was lost."""


class IEmailSender(ABC):
    """Interface for the email delivery provider."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        """
        Deliver one email.

        Raises:
            DeliveryException: If the provider rejects or cannot be reached
        """


# ========== Dispatcher ==========

class NotificationDispatcher:
    """
    Processes one batch of the notification queue.

    Every claimed entry is attempted exactly once per batch, and a failing
    entry never stops the batch. Entries stay eligible until retry_count
    reaches max_retries.

    Each claim is refreshed right before its email is sent, so an entry
    taken over by another batch after its claim expired is skipped here.
    """

    def __init__(
        self,
        queue: INotificationQueueRepository,
        email_sender: IEmailSender,
        composer: Optional[NotificationComposer] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        claim_ttl_seconds: Optional[int] = None
    ):
        self._queue = queue
        self._email_sender = email_sender
        self._composer = composer or NotificationComposer()
        self._batch_size = batch_size or settings.notification_batch_size
        self._max_retries = max_retries or settings.notification_max_retries
        self._claim_ttl = claim_ttl_seconds or settings.notification_claim_ttl_seconds

    async def process_batch(self) -> BatchSummary:
        """
        Run one batch.

        Returns:
            BatchSummary with processed, success and failure counts
        """
        claim_token = uuid.uuid4().hex
        entries = await self._queue.claim_batch(
            claim_token, self._batch_size, self._max_retries, self._claim_ttl
        )
        summary = BatchSummary()

        for entry in entries:
            delivered = await self._deliver(entry, claim_token)
            if delivered is None:
                continue
            summary.processed += 1
            if delivered:
                summary.success_count += 1
            else:
                summary.failure_count += 1

        logger.info(
            "Notification batch processed",
            extra={
                "processed": summary.processed,
                "success_count": summary.success_count,
                "failure_count": summary.failure_count,
            }
        )
        return summary

    async def _deliver(self, entry: NotificationQueueEntry, claim_token: str) -> Optional[bool]:
        """
        Attempt one entry.

        Returns:
            True if sent, False if the attempt failed, None if the claim
            was lost to another batch and nothing was attempted
        """
        try:
            context = await self._queue.load_delivery_context(entry)
            message = self._composer.compose(context)
            # The claim may have expired while earlier entries were sent
            if not await self._queue.refresh_claim(entry.id, claim_token):
                logger.warning(
                    "Notification claim lost to another batch, skipping",
                    extra={"notification_id": entry.id, "ticket_id": entry.ticket_id}
                )
                return None
            await self._email_sender.send(message)
        except Exception as e:
            attempt = entry.retry_count + 1
            log = logger.error if attempt >= self._max_retries else logger.warning
            log(
                "Notification delivery failed",
                extra={
                    "notification_id": entry.id,
                    "ticket_id": entry.ticket_id,
                    "attempt": attempt,
                    "exhausted": attempt >= self._max_retries,
                    "error": str(e),
                }
            )
            await self._record_outcome(
                self._queue.mark_failed(entry.id, claim_token, str(e) or type(e).__name__), entry
            )
            return False

        await self._record_outcome(self._queue.mark_sent(entry.id, claim_token), entry)
        logger.info(
            "Notification sent",
            extra={"notification_id": entry.id, "ticket_id": entry.ticket_id}
        )
        return True

    async def _record_outcome(self, write: Awaitable[bool], entry: NotificationQueueEntry) -> None:
        """Await an outcome write; a failed write never stops the batch."""
        try:
            recorded = await write
        except Exception as e:
            logger.error(
                "Failed to record notification outcome",
                extra={"notification_id": entry.id, "ticket_id": entry.ticket_id, "error": str(e)}
            )
            return
        if not recorded:
            logger.warning(
                "Notification claim lost before its outcome was recorded",
                extra={"notification_id": entry.id, "ticket_id": entry.ticket_id}
            )
