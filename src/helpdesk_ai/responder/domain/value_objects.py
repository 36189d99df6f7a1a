"""
Responder Value Objects
=======================

The structured verdict produced by the response evaluator.

EvaluationResult is also the exact record persisted as a ticket's
last_handoff_reason, so field names on the wire are camelCase.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from helpdesk_ai.config import RubricCategory


RubricCategoryName = Literal[
    "technicalAccuracy",
    "conversationFlow",
    "customerSentiment",
    "responseQuality",
    "kbUtilization",
]

INVALID_EVALUATION_REASON = "invalid evaluation response"
FAILED_TO_EVALUATE = "failed to evaluate"


class EvaluationAnalysis(BaseModel):
    """Free-text assessment for each rubric category."""

    model_config = ConfigDict(populate_by_name=True, strict=True, frozen=True)

    technical_accuracy: str = Field(..., alias="technicalAccuracy")
    conversation_flow: str = Field(..., alias="conversationFlow")
    customer_sentiment: str = Field(..., alias="customerSentiment")
    response_quality: str = Field(..., alias="responseQuality")
    kb_utilization: str = Field(..., alias="kbUtilization")


class EvaluationResult(BaseModel):
    """
    Verdict on a candidate reply.

    A handoff verdict must name the failing rubric category and give a
    human-readable reason.
    """

    model_config = ConfigDict(populate_by_name=True, strict=True, frozen=True)

    needs_handoff: bool = Field(..., alias="needsHandoff")
    reason: Optional[str] = None
    analysis_failure: Optional[RubricCategoryName] = Field(None, alias="analysisFailure")
    confidence: float = Field(..., ge=0.0, le=1.0)
    kb_gaps: List[str] = Field(default_factory=list, alias="kbGaps")
    analysis: EvaluationAnalysis

    @model_validator(mode="after")
    def require_handoff_details(self) -> "EvaluationResult":
        if self.needs_handoff:
            if not self.reason or not self.reason.strip():
                raise ValueError("reason is required when needsHandoff is true")
            if self.analysis_failure is None:
                raise ValueError("analysisFailure is required when needsHandoff is true")
        return self

    @classmethod
    def fail_safe(cls) -> "EvaluationResult":
        """Verdict used when the evaluator output cannot be validated."""
        return cls(
            needs_handoff=True,
            reason=INVALID_EVALUATION_REASON,
            analysis_failure=RubricCategory.TECHNICAL_ACCURACY,
            confidence=0.0,
            kb_gaps=[],
            analysis=EvaluationAnalysis(
                technical_accuracy=FAILED_TO_EVALUATE,
                conversation_flow=FAILED_TO_EVALUATE,
                customer_sentiment=FAILED_TO_EVALUATE,
                response_quality=FAILED_TO_EVALUATE,
                kb_utilization=FAILED_TO_EVALUATE,
            ),
        )

    def to_record(self) -> dict:
        """Serialized form stored in Ticket.last_handoff_reason."""
        return self.model_dump(by_alias=True, mode="json")
