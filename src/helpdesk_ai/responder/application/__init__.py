"""
Responder Application Layer
===========================

Application layer for the AI response pipeline.

Contains:
- Services: pipeline stages and orchestration
- DTOs: Data transfer objects for API serialization
"""

from helpdesk_ai.responder.application.dto import (
    CommentCreatedRequest,
    IndexKnowledgeBaseRequest,
    EventAcceptedResponse,
    PipelineResultResponse,
    IndexKnowledgeBaseResponse,
)
from helpdesk_ai.responder.application.services import (
    KnowledgeRetriever,
    ResponseGenerator,
    ResponseEvaluator,
    HandoffGate,
    ResponsePipeline,
    ITicketRepository,
    ITicketEventRepository,
    IKnowledgeBaseRepository,
    INotificationEnqueuer,
    IEvaluationTelemetry,
)

__all__ = [
    # DTOs
    "CommentCreatedRequest",
    "IndexKnowledgeBaseRequest",
    "EventAcceptedResponse",
    "PipelineResultResponse",
    "IndexKnowledgeBaseResponse",
    # Services
    "KnowledgeRetriever",
    "ResponseGenerator",
    "ResponseEvaluator",
    "HandoffGate",
    "ResponsePipeline",
    # Repository Interfaces
    "ITicketRepository",
    "ITicketEventRepository",
    "IKnowledgeBaseRepository",
    "INotificationEnqueuer",
    "IEvaluationTelemetry",
]
