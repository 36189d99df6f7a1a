"""
Responder External Service Adapters
===================================

Adapters connecting the responder to the vector index, the notification
queue and Grafana.
"""

import asyncio
from typing import Optional

from helpdesk_ai.config import settings
from helpdesk_ai.core import ExternalServiceException, LLMException
from helpdesk_ai.infrastructure.llm import ILLMClient, EmbeddingResult
from helpdesk_ai.infrastructure.vectorstore import IVectorStore, Document
from helpdesk_ai.notifications.application import INotificationQueueRepository
from helpdesk_ai.responder.application import (
    IKnowledgeBaseRepository,
    INotificationEnqueuer,
    IEvaluationTelemetry,
)
from helpdesk_ai.responder.domain import Ticket, KBArticle, EvaluationResult
from helpdesk_ai.shared.infrastructure.grafana import GrafanaOTLPExporter, get_grafana_exporter
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class KBIndexer:
    """
    Embeds published KB articles and stores them in the vector index.

    Each article is embedded as "title\\n\\ncontent". A rate-limited
    embedding call is retried after a fixed delay; any other failure counts
    the article as failed and moves on to the next one.
    """

    def __init__(
        self,
        llm_client: ILLMClient,
        vector_store: IVectorStore,
        articles: IKnowledgeBaseRepository,
        max_retries: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None
    ):
        self._llm = llm_client
        self._vector_store = vector_store
        self._articles = articles
        self._max_retries = max_retries or settings.kb_index_max_retries
        self._retry_delay = (
            settings.kb_index_retry_delay_seconds if retry_delay_seconds is None else retry_delay_seconds
        )

    async def index_pending(self, limit: int = 100) -> dict:
        """
        Index published articles that have no stored embedding yet.

        Returns:
            {"processed": n, "successCount": n, "failureCount": n}
        """
        pending = await self._articles.list_unindexed(limit)
        success_count = 0
        failure_count = 0

        for article in pending:
            try:
                await self.index_article(article)
                success_count += 1
            except ExternalServiceException as e:
                failure_count += 1
                logger.error(
                    "Failed to index KB article",
                    extra={"article_id": article.id, "error": str(e)}
                )

        logger.info(
            "KB indexing finished",
            extra={
                "processed": len(pending),
                "success_count": success_count,
                "failure_count": failure_count,
            }
        )
        return {
            "processed": len(pending),
            "successCount": success_count,
            "failureCount": failure_count,
        }

    async def rebuild(self, page_size: int = 100) -> dict:
        """
        Re-embed every published article.

        Used when the vector index does not survive a restart. Pages through
        the unindexed articles until a page comes back short or makes no
        progress, so articles that keep failing do not loop forever.
        """
        reset = await self._articles.reset_vectorized()
        logger.info("Rebuilding KB vector index", extra={"articles_reset": reset})

        totals = {"processed": 0, "successCount": 0, "failureCount": 0}
        while True:
            page = await self.index_pending(page_size)
            for key in totals:
                totals[key] += page[key]
            if page["processed"] < page_size or page["successCount"] == 0:
                return totals

    async def index_article(self, article: KBArticle) -> None:
        embedding = await self._embed(f"{article.title}\n\n{article.content}")
        await self._vector_store.upsert_documents([
            Document(
                id=article.id,
                embedding=embedding.embedding,
                organization_id=article.organization_id,
                status=article.status,
                title=article.title,
            )
        ])
        await self._articles.mark_vectorized(article.id)

    async def _embed(self, text: str) -> EmbeddingResult:
        attempt = 1
        while True:
            try:
                return await self._llm.generate_embedding(text)
            except LLMException as e:
                if not e.is_rate_limited or attempt >= self._max_retries:
                    raise
                logger.warning(
                    "Embedding rate limited, retrying",
                    extra={"attempt": attempt, "delay_seconds": self._retry_delay}
                )
                attempt += 1
                await asyncio.sleep(self._retry_delay)


class NotificationQueueAdapter(INotificationEnqueuer):
    """Queues responder notifications through the notifications module."""

    def __init__(self, queue: INotificationQueueRepository):
        self._queue = queue

    async def enqueue(self, user_id: str, ticket_id: str, event_id: int) -> None:
        await self._queue.enqueue(user_id=user_id, ticket_id=ticket_id, event_id=event_id)


class GrafanaEvaluationTelemetry(IEvaluationTelemetry):
    """Pushes evaluation verdicts to Grafana Cloud."""

    def __init__(self, exporter: Optional[GrafanaOTLPExporter] = None):
        self._exporter = exporter or get_grafana_exporter()

    async def record(self, ticket: Ticket, evaluation: EvaluationResult) -> None:
        if not self._exporter or not self._exporter.is_enabled():
            return
        await self._exporter.export_evaluation_metrics(
            organization_id=ticket.organization_id,
            confidence=evaluation.confidence,
            needs_handoff=evaluation.needs_handoff,
            kb_gap_count=len(evaluation.kb_gaps),
            analysis_failure=evaluation.analysis_failure,
        )
