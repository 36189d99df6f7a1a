"""
Responder Controllers (API Routes)
==================================

FastAPI routes that trigger the AI response pipeline and KB indexing.

Controllers delegate to application services.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk_ai.infrastructure.database import get_session, get_session_context
from helpdesk_ai.infrastructure.llm import ILLMClient
from helpdesk_ai.infrastructure.vectorstore import IVectorStore
from helpdesk_ai.notifications.infrastructure import SQLAlchemyNotificationQueueRepository
from helpdesk_ai.responder.application import (
    KnowledgeRetriever, ResponseGenerator, ResponseEvaluator, HandoffGate, ResponsePipeline,
    CommentCreatedRequest, EventAcceptedResponse, PipelineResultResponse,
    IndexKnowledgeBaseRequest, IndexKnowledgeBaseResponse
)
from helpdesk_ai.responder.infrastructure import (
    SQLAlchemyTicketRepository,
    SQLAlchemyTicketEventRepository,
    SQLAlchemyKnowledgeBaseRepository,
    KBIndexer,
    NotificationQueueAdapter,
    GrafanaEvaluationTelemetry
)
from helpdesk_ai.shared.infrastructure.logging import get_logger, get_context_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/responder", tags=["AI Responder"])


# ========== Example payloads for Swagger ==========

PIPELINE_RESULT_EXAMPLE = {
    "outcome": "handed_off",
    "ticket_id": "6f1c1f8e-4a8e-4c55-9a53-3cbb1a9d2f10",
    "event_id": 42,
    "reason": "The knowledge base does not cover SSO configuration",
    "reply_event_id": None,
    "evaluation": {
        "needsHandoff": True,
        "reason": "The knowledge base does not cover SSO configuration",
        "analysisFailure": "technicalAccuracy",
        "confidence": 0.35,
        "kbGaps": ["SSO configuration"],
        "analysis": {
            "technicalAccuracy": "Reply describes SSO steps not present in the articles.",
            "conversationFlow": "Fits the conversation.",
            "customerSentiment": "Neutral.",
            "responseQuality": "Actionable.",
            "kbUtilization": "No relevant article available."
        }
    },
    "kb_articles_found": 2,
    "metadata": {"conversation_length": 3}
}


# ========== Dependencies ==========

def get_llm_client(request: Request) -> ILLMClient:
    """Get LLM client from app state."""
    llm_client = getattr(request.app.state, "llm_client", None)
    if llm_client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="LLM client not configured"
        )
    return llm_client


def get_vector_store(request: Request) -> IVectorStore:
    """Get vector store from app state."""
    vector_store = getattr(request.app.state, "vector_store", None)
    if vector_store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Vector store not initialized"
        )
    return vector_store


def build_response_pipeline(
    session: AsyncSession,
    llm_client: ILLMClient,
    vector_store: IVectorStore
) -> ResponsePipeline:
    """Wire the pipeline stages to repositories bound to session."""
    tickets = SQLAlchemyTicketRepository(session)
    events = SQLAlchemyTicketEventRepository(session)
    articles = SQLAlchemyKnowledgeBaseRepository(session)
    notifier = NotificationQueueAdapter(SQLAlchemyNotificationQueueRepository(session))

    return ResponsePipeline(
        tickets=tickets,
        events=events,
        retriever=KnowledgeRetriever(llm_client, vector_store, articles),
        generator=ResponseGenerator(llm_client),
        evaluator=ResponseEvaluator(llm_client),
        gate=HandoffGate(tickets, events, notifier, GrafanaEvaluationTelemetry()),
    )


async def run_pipeline_in_background(
    event_id: int,
    ticket_id: Optional[str],
    llm_client: ILLMClient,
    vector_store: IVectorStore,
    correlation_id: Optional[str] = None
) -> None:
    """Background task body. Runs with its own session; failures end up in the log."""
    task_logger = get_context_logger(__name__, correlation_id)
    try:
        async with get_session_context() as session:
            pipeline = build_response_pipeline(session, llm_client, vector_store)
            await pipeline.handle_comment_created(event_id, ticket_id)
    except Exception:
        task_logger.exception(
            "Background pipeline run failed",
            extra={"event_id": event_id, "ticket_id": ticket_id}
        )


# ========== Route Handlers ==========

@router.post(
    "/events/comment-created",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a pipeline run for a new ticket event"
)
async def comment_created(
    body: CommentCreatedRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    llm_client: ILLMClient = Depends(get_llm_client),
    vector_store: IVectorStore = Depends(get_vector_store)
) -> EventAcceptedResponse:
    """
    Accept a "comment created" event and run the pipeline after responding.

    Events that do not qualify (agent comments, tickets already handed off)
    are skipped by the pipeline itself.
    """
    background_tasks.add_task(
        run_pipeline_in_background,
        body.event_id,
        body.ticket_id,
        llm_client,
        vector_store,
        getattr(request.state, "correlation_id", None)
    )
    return EventAcceptedResponse(event_id=body.event_id)


@router.post(
    "/events/comment-created/sync",
    response_model=PipelineResultResponse,
    summary="Run the pipeline inline",
    responses={
        200: {"content": {"application/json": {"example": PIPELINE_RESULT_EXAMPLE}}},
        404: {"description": "Event or ticket not found"},
        502: {"description": "Generation or evaluation provider failed"}
    }
)
async def comment_created_sync(
    body: CommentCreatedRequest,
    session: AsyncSession = Depends(get_session),
    llm_client: ILLMClient = Depends(get_llm_client),
    vector_store: IVectorStore = Depends(get_vector_store)
) -> PipelineResultResponse:
    """Run the pipeline for one event and return its outcome."""
    pipeline = build_response_pipeline(session, llm_client, vector_store)
    result = await pipeline.handle_comment_created(body.event_id, body.ticket_id)
    return PipelineResultResponse.from_result(result)


@router.post(
    "/kb/index",
    response_model=IndexKnowledgeBaseResponse,
    summary="Embed published KB articles not yet in the vector index"
)
async def index_knowledge_base(
    body: Optional[IndexKnowledgeBaseRequest] = None,
    session: AsyncSession = Depends(get_session),
    llm_client: ILLMClient = Depends(get_llm_client),
    vector_store: IVectorStore = Depends(get_vector_store)
) -> IndexKnowledgeBaseResponse:
    """Index pending KB articles and report how many succeeded."""
    body = body or IndexKnowledgeBaseRequest()
    indexer = KBIndexer(llm_client, vector_store, SQLAlchemyKnowledgeBaseRepository(session))
    summary = await indexer.index_pending(limit=body.limit)
    return IndexKnowledgeBaseResponse(**summary)
