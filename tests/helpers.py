"""Test data builders shared across test modules."""

import json
from datetime import datetime, timedelta, timezone

from helpdesk_ai.infrastructure.llm import ChatCompletionResult


BASE_TIME = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Timestamp `minutes` after the fixed test epoch."""
    return BASE_TIME + timedelta(minutes=minutes)


def completion(content: str) -> ChatCompletionResult:
    return ChatCompletionResult(
        content=content, model="test-model", prompt_tokens=10, completion_tokens=5, latency_ms=3
    )


ANALYSIS = {
    "technicalAccuracy": "Supported by the password reset article.",
    "conversationFlow": "Answers the latest question.",
    "customerSentiment": "Neutral.",
    "responseQuality": "Clear numbered steps.",
    "kbUtilization": "Links the relevant article.",
}


def approving_evaluation(confidence: float = 0.92, kb_gaps=None) -> str:
    return json.dumps({
        "needsHandoff": False,
        "confidence": confidence,
        "kbGaps": kb_gaps or [],
        "analysis": ANALYSIS,
    })


def handoff_evaluation(reason: str = "Customer asks for a refund, which needs a human") -> str:
    return json.dumps({
        "needsHandoff": True,
        "reason": reason,
        "analysisFailure": "customerSentiment",
        "confidence": 0.3,
        "kbGaps": ["refund policy"],
        "analysis": ANALYSIS,
    })
