"""
Responder Application DTOs
==========================

Pydantic models for the responder API layer.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from helpdesk_ai.responder.domain import PipelineResult


PipelineOutcomeStr = Literal["skipped", "busy", "replied", "handed_off"]


# ========== Request DTOs ==========

class CommentCreatedRequest(BaseModel):
    """Notification that a ticket event was persisted."""
    event_id: int = Field(..., ge=1, description="ID of the new ticket event")
    ticket_id: Optional[str] = Field(None, description="Ticket the event belongs to, checked when given")


class IndexKnowledgeBaseRequest(BaseModel):
    """Request model for a KB indexing run."""
    limit: int = Field(default=100, ge=1, le=1000, description="Maximum articles to index")


# ========== Response DTOs ==========

class EventAcceptedResponse(BaseModel):
    """Response for an event queued for background processing."""
    accepted: bool = True
    event_id: int


class PipelineResultResponse(BaseModel):
    """Outcome of a synchronous pipeline run."""
    outcome: PipelineOutcomeStr
    ticket_id: Optional[str] = None
    event_id: int
    reason: Optional[str] = None
    reply_event_id: Optional[int] = None
    evaluation: Optional[Dict[str, Any]] = None
    kb_articles_found: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: PipelineResult) -> "PipelineResultResponse":
        return cls(
            outcome=result.outcome,
            ticket_id=result.ticket_id,
            event_id=result.event_id,
            reason=result.reason,
            reply_event_id=result.reply_event_id,
            evaluation=result.evaluation,
            kb_articles_found=result.kb_articles_found,
            metadata=result.metadata,
        )


class IndexKnowledgeBaseResponse(BaseModel):
    """Summary of a KB indexing run."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    processed: int
    success_count: int = Field(..., alias="successCount")
    failure_count: int = Field(..., alias="failureCount")
