"""
Responder Domain Entities
=========================

Pure Python business objects for the AI response pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from helpdesk_ai.config import TicketStatus, Priority, EventType


@dataclass
class Ticket:
    """
    Support ticket as seen by the response pipeline.

    ai_enabled only ever moves from True to False inside this package.
    """
    id: str
    organization_id: str
    title: str
    description: str
    created_by: str
    status: str = TicketStatus.OPEN
    priority: str = Priority.MEDIUM
    tag: Optional[str] = None
    assigned_to: Optional[str] = None
    ai_enabled: bool = True
    last_handoff_reason: Optional[dict] = None

    @property
    def is_ai_active(self) -> bool:
        return self.ai_enabled


@dataclass
class TicketEvent:
    """
    Immutable entry of a ticket's timeline.

    Only the payload fields relevant to event_type are populated.
    """
    id: int
    ticket_id: str
    event_type: str
    created_by: str
    created_at: datetime
    comment_text: Optional[str] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    old_priority: Optional[str] = None
    new_priority: Optional[str] = None
    old_assignee: Optional[str] = None
    new_assignee: Optional[str] = None
    old_tag: Optional[str] = None
    new_tag: Optional[str] = None
    rating_value: Optional[int] = None
    rating_comment: Optional[str] = None

    @property
    def is_comment(self) -> bool:
        return self.event_type == EventType.COMMENT


@dataclass
class KBArticle:
    """Knowledge base article."""
    id: str
    organization_id: str
    title: str
    content: str
    status: str
    vectorized: bool = False


@dataclass
class KBArticleMatch:
    """Article returned by the knowledge retriever."""
    article_id: str
    title: str
    content: str
    url: str
    similarity: float


class PipelineOutcome(str):
    """How a pipeline run for one comment event ended."""
    SKIPPED = "skipped"
    BUSY = "busy"
    REPLIED = "replied"
    HANDED_OFF = "handed_off"


@dataclass
class PipelineResult:
    """Summary of one pipeline run."""
    outcome: str
    ticket_id: Optional[str]
    event_id: int
    reason: Optional[str] = None
    reply_event_id: Optional[int] = None
    evaluation: Optional[dict] = None
    kb_articles_found: int = 0
    metadata: dict = field(default_factory=dict)
