"""
Responder Application Services
==============================

Application services for the AI-assisted ticket response pipeline.

A customer comment flows through:
    TimelineReconstructor -> KnowledgeRetriever -> ResponseGenerator
    -> ResponseEvaluator -> HandoffGate
under a per-ticket lease held by ResponsePipeline.
"""

import asyncio
import time
import uuid
from typing import List, Optional, Sequence
from abc import ABC, abstractmethod

from pydantic import ValidationError

from helpdesk_ai.config import settings, ArticleStatus
from helpdesk_ai.core import (
    LLMException, ResourceNotFoundException, ValidationException,
    ExternalServiceException, RepositoryException
)
from helpdesk_ai.infrastructure.llm import ILLMClient
from helpdesk_ai.infrastructure.vectorstore import IVectorStore
from helpdesk_ai.responder.domain import (
    Ticket, TicketEvent, KBArticle, KBArticleMatch, PipelineOutcome, PipelineResult,
    ConversationTurn, TimelineReconstructor, EvaluationResult,
    ResponsePromptBuilder, EvaluationPromptBuilder
)
from helpdesk_ai.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

# Vector hits fetched per requested match; stale or unpublished hits are
# dropped by the database re-check
SEARCH_OVERFETCH_FACTOR = 2


# ========== Repository Interfaces ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get a ticket, always reading current state."""

    @abstractmethod
    async def acquire_pipeline_lease(self, ticket_id: str, token: str, ttl_seconds: int) -> bool:
        """Take the ticket's pipeline lease if it is free or expired. Commits immediately."""

    @abstractmethod
    async def release_pipeline_lease(
        self,
        ticket_id: str,
        token: str,
        commit_changes: bool = True
    ) -> None:
        """Release the lease, committing (or discarding) the run's pending changes with it."""

    @abstractmethod
    async def disable_ai(self, ticket_id: str, handoff_reason: dict) -> bool:
        """Switch ai_enabled off and store the handoff record. Never switches it back on."""


class ITicketEventRepository(ABC):
    """Interface for the append-only ticket event log."""

    @abstractmethod
    async def get_by_id(self, event_id: int) -> Optional[TicketEvent]:
        """Get one event."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[TicketEvent]:
        """All events of a ticket ordered by created_at, then insertion order."""

    @abstractmethod
    async def append_comment(self, ticket_id: str, author_id: str, text: str) -> TicketEvent:
        """Append a comment event."""


class IKnowledgeBaseRepository(ABC):
    """Interface for KB article data access."""

    @abstractmethod
    async def get_published(self, article_ids: Sequence[str], organization_id: str) -> List[KBArticle]:
        """Published articles among article_ids that belong to organization_id."""

    @abstractmethod
    async def get_organization_slug(self, organization_id: str) -> Optional[str]:
        """URL slug of an organization."""

    @abstractmethod
    async def list_unindexed(self, limit: int = 100) -> List[KBArticle]:
        """Published articles without a stored embedding, oldest first."""

    @abstractmethod
    async def mark_vectorized(self, article_id: str) -> None:
        """Record that an article's embedding has been stored."""

    @abstractmethod
    async def reset_vectorized(self) -> int:
        """Mark every article as having no stored embedding. Returns the number reset."""


class INotificationEnqueuer(ABC):
    """Queues an email notification about a ticket event."""

    @abstractmethod
    async def enqueue(self, user_id: str, ticket_id: str, event_id: int) -> None:
        """Queue a notification for user_id."""


class IEvaluationTelemetry(ABC):
    """Receives every evaluation verdict for monitoring."""

    @abstractmethod
    async def record(self, ticket: Ticket, evaluation: EvaluationResult) -> None:
        """Record an evaluation. Must not raise."""


# ========== Pipeline Stages ==========

class KnowledgeRetriever:
    """
    Semantic search over one organization's published KB articles.

    KB context is optional for generation: any provider or storage failure
    yields an empty list instead of an error.
    """

    def __init__(
        self,
        llm_client: ILLMClient,
        vector_store: IVectorStore,
        articles: IKnowledgeBaseRepository,
        app_url: Optional[str] = None,
        top_k: Optional[int] = None
    ):
        self._llm = llm_client
        self._vector_store = vector_store
        self._articles = articles
        self._app_url = (app_url or settings.app_url).rstrip("/")
        self._top_k = top_k or settings.kb_top_k

    async def retrieve(
        self,
        query_text: str,
        organization_id: str,
        k: Optional[int] = None
    ) -> List[KBArticleMatch]:
        """
        Find the articles most similar to query_text.

        Args:
            query_text: Text to embed (usually the customer's message)
            organization_id: Tenant whose articles may be returned
            k: Maximum number of articles, defaults to settings.kb_top_k

        Returns:
            Matches ordered by descending similarity, ties by article id
        """
        limit = k or self._top_k
        if not query_text or not query_text.strip():
            return []

        try:
            with log_latency(logger, "kb_retrieval", organization_id=organization_id):
                embedding = await self._llm.generate_embedding(query_text)
                results = await self._vector_store.search(
                    embedding.embedding, organization_id, limit * SEARCH_OVERFETCH_FACTOR
                )
                scores = {
                    r.id: r.score for r in results
                    if r.metadata.get("organization_id", organization_id) == organization_id
                }
                articles = await self._articles.get_published(list(scores), organization_id)
                slug = await self._articles.get_organization_slug(organization_id)
        except (ExternalServiceException, RepositoryException) as e:
            logger.warning(
                "KB retrieval failed, continuing without KB context",
                extra={"organization_id": organization_id, "error": str(e)}
            )
            return []

        matches = [
            KBArticleMatch(
                article_id=article.id,
                title=article.title,
                content=article.content,
                url=self._article_url(slug or organization_id, article.id),
                similarity=scores[article.id],
            )
            for article in articles
            if article.organization_id == organization_id
            and article.status == ArticleStatus.PUBLISHED
            and article.id in scores
        ]
        matches.sort(key=lambda m: (-m.similarity, m.article_id))
        return matches[:limit]

    def _article_url(self, org_slug: str, article_id: str) -> str:
        return f"{self._app_url}/org/{org_slug}/kb/{article_id}"


class ResponseGenerator:
    """Produces a candidate reply from the conversation and KB context."""

    def __init__(
        self,
        llm_client: ILLMClient,
        excerpt_length: Optional[int] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ):
        self._llm = llm_client
        self._excerpt_length = excerpt_length or settings.kb_excerpt_length
        self._temperature = settings.generation_temperature if temperature is None else temperature
        self._max_tokens = max_tokens or settings.llm_max_tokens

    def build_messages(
        self,
        turns: Sequence[ConversationTurn],
        articles: Sequence[KBArticleMatch]
    ) -> List[dict]:
        return ResponsePromptBuilder.build_messages(turns, articles, self._excerpt_length)

    async def generate(
        self,
        turns: Sequence[ConversationTurn],
        articles: Sequence[KBArticleMatch]
    ) -> str:
        """
        Generate the candidate reply text.

        Raises:
            LLMException: On provider failure or an empty completion
        """
        response = await self._llm.chat_completion(
            messages=self.build_messages(turns, articles),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            operation="generation"
        )
        if not response.content or not response.content.strip():
            raise LLMException("generation returned an empty reply")
        return response.content


class ResponseEvaluator:
    """
    Second, independent model call that judges a candidate reply.

    Output that does not validate against EvaluationResult becomes the
    fail-safe verdict (hand off, confidence 0). Provider failures are not
    caught here.
    """

    def __init__(
        self,
        llm_client: ILLMClient,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ):
        self._llm = llm_client
        self._temperature = settings.evaluation_temperature if temperature is None else temperature
        self._max_tokens = max_tokens or settings.llm_max_tokens

    async def evaluate(
        self,
        history: Sequence[ConversationTurn],
        latest_customer_message: str,
        candidate_reply: str,
        articles: Sequence[KBArticleMatch]
    ) -> EvaluationResult:
        messages = EvaluationPromptBuilder.build_messages(
            history, latest_customer_message, candidate_reply, articles
        )
        response = await self._llm.chat_completion(
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            operation="evaluation"
        )
        return self.parse(response.content)

    @staticmethod
    def _extract_json(raw: str) -> str:
        text = raw.strip()
        if "```json" in text:
            text = text.split("```json", 1)[1].split("```", 1)[0]
        elif text.startswith("```"):
            text = text.split("```", 2)[1]
        return text.strip()

    @classmethod
    def parse(cls, raw: Optional[str]) -> EvaluationResult:
        """Validate raw evaluator output, falling back to the fail-safe verdict."""
        if not isinstance(raw, str):
            logger.warning("Evaluator returned no text, forcing handoff")
            return EvaluationResult.fail_safe()

        try:
            return EvaluationResult.model_validate_json(cls._extract_json(raw))
        except ValidationError as e:
            logger.warning(
                "Evaluator output failed validation, forcing handoff",
                extra={"error_count": e.error_count(), "raw_output": raw[:500]}
            )
            return EvaluationResult.fail_safe()


# ========== Handoff Gate ==========

class HandoffGate:
    """
    Decides what a customer comment triggers and commits the verdict.

    States: AI_ACTIVE (ai_enabled) and HANDED_OFF (not ai_enabled, terminal
    here). Only a customer comment on an AI_ACTIVE ticket runs the pipeline.
    """

    def __init__(
        self,
        tickets: ITicketRepository,
        events: ITicketEventRepository,
        notifier: Optional[INotificationEnqueuer] = None,
        telemetry: Optional[IEvaluationTelemetry] = None,
        fallback_author_id: Optional[str] = None
    ):
        self._tickets = tickets
        self._events = events
        self._notifier = notifier
        self._telemetry = telemetry
        self._fallback_author_id = fallback_author_id or settings.ai_fallback_author_id

    def reply_author(self, ticket: Ticket) -> Optional[str]:
        """Identity AI replies are posted as."""
        return ticket.assigned_to or self._fallback_author_id

    def skip_reason(self, ticket: Ticket, event: TicketEvent) -> Optional[str]:
        """Why this event must not run the pipeline, or None if it should."""
        if not event.is_comment:
            return f"event type '{event.event_type}' does not trigger responses"
        if event.created_by != ticket.created_by:
            return "comment not authored by the ticket's customer"
        if not ticket.is_ai_active:
            return "AI responses disabled on ticket"
        if not event.comment_text or not event.comment_text.strip():
            return "comment has no text"
        if self.reply_author(ticket) is None:
            return "no agent identity to reply as"
        return None

    async def apply(
        self,
        ticket: Ticket,
        trigger: TicketEvent,
        candidate_reply: str,
        evaluation: EvaluationResult
    ) -> PipelineResult:
        """Post the reply or hand the ticket off, according to evaluation."""
        await self._record(ticket, evaluation)

        if not evaluation.needs_handoff:
            reply = await self._events.append_comment(
                ticket.id, self.reply_author(ticket), candidate_reply
            )
            if self._notifier:
                await self._notifier.enqueue(ticket.created_by, ticket.id, reply.id)
            return PipelineResult(
                outcome=PipelineOutcome.REPLIED,
                ticket_id=ticket.id,
                event_id=trigger.id,
                reply_event_id=reply.id,
                evaluation=evaluation.to_record(),
            )

        await self._tickets.disable_ai(ticket.id, evaluation.to_record())
        if self._notifier and ticket.assigned_to:
            await self._notifier.enqueue(ticket.assigned_to, ticket.id, trigger.id)
        return PipelineResult(
            outcome=PipelineOutcome.HANDED_OFF,
            ticket_id=ticket.id,
            event_id=trigger.id,
            reason=evaluation.reason,
            evaluation=evaluation.to_record(),
        )

    async def _record(self, ticket: Ticket, evaluation: EvaluationResult) -> None:
        logger.info(
            "Reply evaluated",
            extra={
                "ticket_id": ticket.id,
                "needs_handoff": evaluation.needs_handoff,
                "confidence": evaluation.confidence,
                "kb_gaps": evaluation.kb_gaps,
                "analysis_failure": evaluation.analysis_failure,
            }
        )
        if self._telemetry:
            await self._telemetry.record(ticket, evaluation)


# ========== Pipeline ==========

class ResponsePipeline:
    """
    Entry point for "a comment event was created".

    Runs the stages under an exclusive per-ticket lease so two quick
    customer messages never produce two concurrent runs. A run that cannot
    get the lease within the wait budget is abandoned.
    Once it holds the lease a run re-reads the ticket and its event log, and
    skips a comment that was answered or superseded while it waited.
    """

    def __init__(
        self,
        tickets: ITicketRepository,
        events: ITicketEventRepository,
        retriever: KnowledgeRetriever,
        generator: ResponseGenerator,
        evaluator: ResponseEvaluator,
        gate: HandoffGate,
        lease_ttl_seconds: Optional[int] = None,
        lease_wait_seconds: Optional[float] = None,
        lease_poll_seconds: Optional[float] = None
    ):
        self._tickets = tickets
        self._events = events
        self._retriever = retriever
        self._generator = generator
        self._evaluator = evaluator
        self._gate = gate
        self._lease_ttl = lease_ttl_seconds or settings.pipeline_lease_ttl_seconds
        self._lease_wait = (
            settings.pipeline_lease_wait_seconds if lease_wait_seconds is None else lease_wait_seconds
        )
        self._lease_poll = lease_poll_seconds or settings.pipeline_lease_poll_seconds

    async def handle_comment_created(
        self,
        event_id: int,
        ticket_id: Optional[str] = None
    ) -> PipelineResult:
        """
        Run the pipeline for one newly persisted event.

        Raises:
            ResourceNotFoundException: Unknown event or ticket
            ValidationException: event does not belong to ticket_id
            LLMException: Generation or evaluation failed; nothing was changed
        """
        event = await self._events.get_by_id(event_id)
        if event is None:
            raise ResourceNotFoundException("TicketEvent", str(event_id))
        if ticket_id is not None and event.ticket_id != ticket_id:
            raise ValidationException(
                f"Event {event_id} does not belong to ticket {ticket_id}"
            )

        ticket = await self._tickets.get_by_id(event.ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", event.ticket_id)

        reason = self._gate.skip_reason(ticket, event)
        if reason:
            return self._skipped(ticket.id, event, reason)

        token = uuid.uuid4().hex
        if not await self._acquire_lease(ticket.id, token):
            logger.warning(
                "Pipeline lease held by another run, abandoning",
                extra={"ticket_id": ticket.id, "event_id": event.id}
            )
            return PipelineResult(
                outcome=PipelineOutcome.BUSY,
                ticket_id=ticket.id,
                event_id=event.id,
                reason="another pipeline run holds the ticket lease",
            )

        try:
            ticket = await self._tickets.get_by_id(ticket.id)
            reason = self._gate.skip_reason(ticket, event) if ticket else "ticket no longer exists"
            if reason:
                result = self._skipped(event.ticket_id, event, reason)
            else:
                result = await self._run(ticket, event)
        except Exception:
            logger.exception(
                "Pipeline run failed, ticket left unchanged",
                extra={"ticket_id": event.ticket_id, "event_id": event.id}
            )
            await self._tickets.release_pipeline_lease(event.ticket_id, token, commit_changes=False)
            raise

        await self._tickets.release_pipeline_lease(event.ticket_id, token)
        logger.info(
            "Pipeline run finished",
            extra={
                "ticket_id": result.ticket_id,
                "event_id": result.event_id,
                "outcome": result.outcome,
                "kb_articles_found": result.kb_articles_found,
            }
        )
        return result

    async def _acquire_lease(self, ticket_id: str, token: str) -> bool:
        deadline = time.monotonic() + self._lease_wait
        while True:
            if await self._tickets.acquire_pipeline_lease(ticket_id, token, self._lease_ttl):
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self._lease_poll)

    async def _run(self, ticket: Ticket, trigger: TicketEvent) -> PipelineResult:
        events = await self._events.list_for_ticket(ticket.id)
        reason = self._answered_reason(events, trigger, ticket.created_by)
        if reason:
            return self._skipped(ticket.id, trigger, reason)

        turns = TimelineReconstructor.reconstruct(events, ticket.created_by)
        history = TimelineReconstructor.reconstruct(
            self._events_before(events, trigger), ticket.created_by
        )

        articles = await self._retriever.retrieve(trigger.comment_text, ticket.organization_id)

        with log_latency(logger, "reply_generation", ticket_id=ticket.id):
            reply = await self._generator.generate(turns, articles)

        with log_latency(logger, "reply_evaluation", ticket_id=ticket.id):
            evaluation = await self._evaluator.evaluate(
                history, trigger.comment_text, reply, articles
            )

        # A comment may have landed while the models were running
        reason = self._answered_reason(
            await self._events.list_for_ticket(ticket.id), trigger, ticket.created_by
        )
        if reason:
            return self._skipped(ticket.id, trigger, reason)

        result = await self._gate.apply(ticket, trigger, reply, evaluation)
        result.kb_articles_found = len(articles)
        result.metadata["conversation_length"] = len(turns)
        return result

    @staticmethod
    def _answered_reason(
        events: List[TicketEvent],
        trigger: TicketEvent,
        customer_id: str
    ) -> Optional[str]:
        """
        Why a comment logged after the trigger makes this run redundant.

        A newer customer comment has its own run, which sees both messages.
        Any other later comment is a reply already posted to the customer.
        """
        ids = [event.id for event in events]
        if trigger.id not in ids:
            return None
        for event in events[ids.index(trigger.id) + 1:]:
            if not event.is_comment:
                continue
            if event.created_by == customer_id:
                return "superseded by a newer customer comment"
            return "comment already answered"
        return None

    @staticmethod
    def _events_before(events: List[TicketEvent], trigger: TicketEvent) -> List[TicketEvent]:
        for index, event in enumerate(events):
            if event.id == trigger.id:
                return events[:index]
        return list(events)

    @staticmethod
    def _skipped(ticket_id: str, event: TicketEvent, reason: str) -> PipelineResult:
        logger.info(
            "Pipeline skipped",
            extra={"ticket_id": ticket_id, "event_id": event.id, "reason": reason}
        )
        return PipelineResult(
            outcome=PipelineOutcome.SKIPPED,
            ticket_id=ticket_id,
            event_id=event.id,
            reason=reason,
        )
