"""
Notification Infrastructure Repositories
========================================

SQLAlchemy implementation of the notification queue.

Claims and delivery outcomes are committed as soon as they are written, so
a crash mid-batch loses at most the in-flight entry's outcome and the
entry is retried once its claim expires.
"""

from datetime import datetime, timedelta, timezone
from typing import List

from sqlalchemy import select, update, or_, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk_ai.config import NotificationStatus, EventType
from helpdesk_ai.core import RepositoryException, ResourceNotFoundException
from helpdesk_ai.notifications.application import INotificationQueueRepository
from helpdesk_ai.notifications.domain import NotificationQueueEntry, DeliveryContext
from helpdesk_ai.notifications.infrastructure.models import NotificationQueueModel
from helpdesk_ai.responder.infrastructure.models import (
    OrganizationModel,
    UserModel,
    TicketModel,
    TicketEventModel,
)

# Stored error messages are capped at this many characters
MAX_ERROR_LENGTH = 2000


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_entry(model: NotificationQueueModel) -> NotificationQueueEntry:
    return NotificationQueueEntry(
        id=model.id,
        user_id=model.user_id,
        ticket_id=model.ticket_id,
        event_id=model.event_id,
        created_at=model.created_at,
        status=model.status,
        retry_count=model.retry_count,
        error=model.error,
    )


class SQLAlchemyNotificationQueueRepository(INotificationQueueRepository):
    """SQLAlchemy implementation for the notification queue."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def enqueue(self, user_id: str, ticket_id: str, event_id: int) -> NotificationQueueEntry:
        model = NotificationQueueModel(
            user_id=user_id,
            ticket_id=ticket_id,
            event_id=event_id,
            status=NotificationStatus.PENDING,
            retry_count=0,
            created_at=_now(),
        )
        self._session.add(model)
        await self._session.flush()
        return _to_entry(model)

    def _claimable(self, max_retries: int, claim_ttl_seconds: int, now: datetime):
        return and_(
            NotificationQueueModel.status.in_([NotificationStatus.PENDING, NotificationStatus.FAILED]),
            NotificationQueueModel.retry_count < max_retries,
            or_(
                NotificationQueueModel.claim_token.is_(None),
                NotificationQueueModel.claimed_at < now - timedelta(seconds=claim_ttl_seconds),
            ),
        )

    async def claim_batch(
        self,
        claim_token: str,
        limit: int,
        max_retries: int,
        claim_ttl_seconds: int
    ) -> List[NotificationQueueEntry]:
        now = _now()
        claimable = self._claimable(max_retries, claim_ttl_seconds, now)

        stmt = (
            select(NotificationQueueModel.id)
            .where(claimable)
            .order_by(NotificationQueueModel.created_at, NotificationQueueModel.id)
            .limit(limit)
        )
        candidates = (await self._session.execute(stmt)).scalars().all()

        # Per-row compare-and-set: a concurrent batch that claimed the row
        # first makes this update match nothing.
        claimed = 0
        for entry_id in candidates:
            result = await self._session.execute(
                update(NotificationQueueModel)
                .where(NotificationQueueModel.id == entry_id, claimable)
                .values(claim_token=claim_token, claimed_at=now)
                .execution_options(synchronize_session=False)
            )
            claimed += result.rowcount
        await self._session.commit()

        if not claimed:
            return []

        stmt = (
            select(NotificationQueueModel)
            .where(NotificationQueueModel.claim_token == claim_token)
            .order_by(NotificationQueueModel.created_at, NotificationQueueModel.id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [_to_entry(m) for m in result.scalars().all()]

    async def load_delivery_context(self, entry: NotificationQueueEntry) -> DeliveryContext:
        try:
            recipient = await self._session.get(UserModel, entry.user_id)
            if recipient is None:
                raise ResourceNotFoundException("User", entry.user_id)

            row = (await self._session.execute(
                select(TicketModel.title, OrganizationModel.slug)
                .join(OrganizationModel, OrganizationModel.id == TicketModel.organization_id)
                .where(TicketModel.id == entry.ticket_id)
            )).one_or_none()
            if row is None:
                raise ResourceNotFoundException("Ticket", entry.ticket_id)
            ticket_title, org_slug = row

            event = await self._session.get(TicketEventModel, entry.event_id)
            if event is None:
                raise ResourceNotFoundException("TicketEvent", str(entry.event_id))

            actor = await self._session.get(UserModel, event.created_by)
            new_assignee_name = None
            if event.event_type == EventType.ASSIGNMENT_CHANGE and event.new_assignee:
                assignee = await self._session.get(UserModel, event.new_assignee)
                new_assignee_name = assignee.full_name if assignee else None
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryException(f"Failed to load notification context: {e}")

        return DeliveryContext(
            recipient_email=recipient.email,
            recipient_name=recipient.full_name,
            ticket_id=entry.ticket_id,
            ticket_title=ticket_title,
            organization_slug=org_slug,
            event_type=event.event_type,
            actor_name=actor.full_name if actor else None,
            comment_text=event.comment_text,
            old_status=event.old_status,
            new_status=event.new_status,
            new_assignee_name=new_assignee_name,
        )

    async def refresh_claim(self, entry_id: str, claim_token: str) -> bool:
        """
        Restart the claim's TTL if claim_token still holds the entry.

        False means another batch took the entry over after the claim expired.
        """
        result = await self._write(
            update(NotificationQueueModel)
            .where(
                NotificationQueueModel.id == entry_id,
                NotificationQueueModel.claim_token == claim_token,
            )
            .values(claimed_at=_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_sent(self, entry_id: str, claim_token: str) -> bool:
        result = await self._write(
            update(NotificationQueueModel)
            .where(
                NotificationQueueModel.id == entry_id,
                NotificationQueueModel.claim_token == claim_token,
            )
            .values(
                status=NotificationStatus.SENT,
                error=None,
                claim_token=None,
                processed_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_failed(self, entry_id: str, claim_token: str, error: str) -> bool:
        result = await self._write(
            update(NotificationQueueModel)
            .where(
                NotificationQueueModel.id == entry_id,
                NotificationQueueModel.claim_token == claim_token,
            )
            .values(
                status=NotificationStatus.FAILED,
                retry_count=NotificationQueueModel.retry_count + 1,
                error=error[:MAX_ERROR_LENGTH],
                claim_token=None,
                processed_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _write(self, stmt):
        """Execute and commit one claim-guarded update."""
        try:
            result = await self._session.execute(stmt)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryException(f"Failed to update notification queue: {e}")
        return result
