"""
Responder Infrastructure Repositories
=====================================

SQLAlchemy implementations of responder repositories.

State changes made by a pipeline run (reply event, handoff) stay pending
in the session until release_pipeline_lease commits them together with
the lease release.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from sqlalchemy import select, update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk_ai.config import ArticleStatus, EventType
from helpdesk_ai.core import RepositoryException
from helpdesk_ai.responder.application import (
    ITicketRepository,
    ITicketEventRepository,
    IKnowledgeBaseRepository,
)
from helpdesk_ai.responder.domain import Ticket, TicketEvent, KBArticle
from helpdesk_ai.responder.infrastructure.models import (
    OrganizationModel,
    TicketModel,
    TicketEventModel,
    KBArticleModel,
)
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_ticket(model: TicketModel) -> Ticket:
    return Ticket(
        id=model.id,
        organization_id=model.organization_id,
        title=model.title,
        description=model.description,
        created_by=model.created_by,
        status=model.status,
        priority=model.priority,
        tag=model.tag,
        assigned_to=model.assigned_to,
        ai_enabled=model.ai_enabled,
        last_handoff_reason=model.last_handoff_reason,
    )


def _to_event(model: TicketEventModel) -> TicketEvent:
    return TicketEvent(
        id=model.id,
        ticket_id=model.ticket_id,
        event_type=model.event_type,
        created_by=model.created_by,
        created_at=model.created_at,
        comment_text=model.comment_text,
        old_status=model.old_status,
        new_status=model.new_status,
        old_priority=model.old_priority,
        new_priority=model.new_priority,
        old_assignee=model.old_assignee,
        new_assignee=model.new_assignee,
        old_tag=model.old_tag,
        new_tag=model.new_tag,
        rating_value=model.rating_value,
        rating_comment=model.rating_comment,
    )


def _to_article(model: KBArticleModel) -> KBArticle:
    return KBArticle(
        id=model.id,
        organization_id=model.organization_id,
        title=model.title,
        content=model.content,
        status=model.status,
        vectorized=model.vectorized,
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """SQLAlchemy implementation for tickets."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID, bypassing the session's identity map."""
        stmt = (
            select(TicketModel)
            .where(TicketModel.id == ticket_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_ticket(model) if model else None

    async def acquire_pipeline_lease(self, ticket_id: str, token: str, ttl_seconds: int) -> bool:
        """
        Compare-and-set the lease columns.

        Succeeds only when no lease is held or the held one has expired.
        The update is committed at once so other sessions see it.
        """
        now = _now()
        stmt = (
            update(TicketModel)
            .where(
                TicketModel.id == ticket_id,
                or_(
                    TicketModel.pipeline_lease_token.is_(None),
                    TicketModel.pipeline_lease_expires_at < now,
                ),
            )
            .values(
                pipeline_lease_token=token,
                pipeline_lease_expires_at=now + timedelta(seconds=ttl_seconds),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount == 1

    async def release_pipeline_lease(
        self,
        ticket_id: str,
        token: str,
        commit_changes: bool = True
    ) -> None:
        if not commit_changes:
            await self._session.rollback()

        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket_id, TicketModel.pipeline_lease_token == token)
            .values(pipeline_lease_token=None, pipeline_lease_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()

        if result.rowcount != 1:
            logger.warning(
                "Pipeline lease was lost before release",
                extra={"ticket_id": ticket_id}
            )

    async def disable_ai(self, ticket_id: str, handoff_reason: dict) -> bool:
        """Hand off the ticket. Returns False if AI was already disabled."""
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket_id, TicketModel.ai_enabled.is_(True))
            .values(ai_enabled=False, last_handoff_reason=handoff_reason, updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


class SQLAlchemyTicketEventRepository(ITicketEventRepository):
    """SQLAlchemy implementation for the ticket event log."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, event_id: int) -> Optional[TicketEvent]:
        model = await self._session.get(TicketEventModel, event_id)
        return _to_event(model) if model else None

    async def list_for_ticket(self, ticket_id: str) -> List[TicketEvent]:
        stmt = (
            select(TicketEventModel)
            .where(TicketEventModel.ticket_id == ticket_id)
            .order_by(TicketEventModel.created_at, TicketEventModel.id)
        )
        result = await self._session.execute(stmt)
        return [_to_event(m) for m in result.scalars().all()]

    async def append_comment(self, ticket_id: str, author_id: str, text: str) -> TicketEvent:
        model = TicketEventModel(
            ticket_id=ticket_id,
            event_type=EventType.COMMENT,
            created_by=author_id,
            created_at=_now(),
            comment_text=text,
        )
        self._session.add(model)
        await self._session.flush()
        return _to_event(model)


class SQLAlchemyKnowledgeBaseRepository(IKnowledgeBaseRepository):
    """SQLAlchemy implementation for KB articles."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_published(self, article_ids: Sequence[str], organization_id: str) -> List[KBArticle]:
        if not article_ids:
            return []

        stmt = select(KBArticleModel).where(
            KBArticleModel.id.in_(list(article_ids)),
            KBArticleModel.organization_id == organization_id,
            KBArticleModel.status == ArticleStatus.PUBLISHED,
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load KB articles: {e}")
        return [_to_article(m) for m in result.scalars().all()]

    async def get_organization_slug(self, organization_id: str) -> Optional[str]:
        stmt = select(OrganizationModel.slug).where(OrganizationModel.id == organization_id)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load organization: {e}")
        return result.scalar_one_or_none()

    async def list_unindexed(self, limit: int = 100) -> List[KBArticle]:
        stmt = (
            select(KBArticleModel)
            .where(
                KBArticleModel.status == ArticleStatus.PUBLISHED,
                KBArticleModel.vectorized.is_(False),
            )
            .order_by(KBArticleModel.created_at, KBArticleModel.id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_to_article(m) for m in result.scalars().all()]

    async def mark_vectorized(self, article_id: str) -> None:
        stmt = (
            update(KBArticleModel)
            .where(KBArticleModel.id == article_id)
            .values(vectorized=True, updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def reset_vectorized(self) -> int:
        stmt = (
            update(KBArticleModel)
            .where(KBArticleModel.vectorized.is_(True))
            .values(vectorized=False)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount
