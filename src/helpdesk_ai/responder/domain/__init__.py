"""
Responder Domain Layer
======================

Contains:
- Entities: Ticket, TicketEvent, KBArticle, KBArticleMatch, PipelineResult
- Timeline: event log to conversation mapping
- Value Objects: EvaluationResult
- Prompts: generation and evaluation prompt builders

This layer is framework-agnostic apart from pydantic schema validation.
"""

from helpdesk_ai.responder.domain.entities import (
    Ticket,
    TicketEvent,
    KBArticle,
    KBArticleMatch,
    PipelineOutcome,
    PipelineResult,
)
from helpdesk_ai.responder.domain.timeline import (
    ConversationTurn,
    TimelineReconstructor,
    TurnRole,
)
from helpdesk_ai.responder.domain.value_objects import (
    EvaluationAnalysis,
    EvaluationResult,
    FAILED_TO_EVALUATE,
    INVALID_EVALUATION_REASON,
)
from helpdesk_ai.responder.domain.prompts import (
    ResponsePromptBuilder,
    EvaluationPromptBuilder,
)

__all__ = [
    "Ticket",
    "TicketEvent",
    "KBArticle",
    "KBArticleMatch",
    "PipelineOutcome",
    "PipelineResult",
    "ConversationTurn",
    "TimelineReconstructor",
    "TurnRole",
    "EvaluationAnalysis",
    "EvaluationResult",
    "FAILED_TO_EVALUATE",
    "INVALID_EVALUATION_REASON",
    "ResponsePromptBuilder",
    "EvaluationPromptBuilder",
]
