"""
Timeline Reconstruction
=======================

Turns a ticket's event log into the role-tagged conversation used for
prompting.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from helpdesk_ai.config import EventType
from helpdesk_ai.responder.domain.entities import TicketEvent


class TurnRole(str):
    """Speaker of a conversation turn."""
    CUSTOMER = "customer"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# Chat API role for each turn role
_MESSAGE_ROLES = {
    TurnRole.CUSTOMER: "user",
    TurnRole.ASSISTANT: "assistant",
    TurnRole.SYSTEM: "system",
}


@dataclass(frozen=True)
class ConversationTurn:
    """One turn of the reconstructed conversation."""
    role: str
    text: str

    def to_message(self) -> dict:
        return {"role": _MESSAGE_ROLES[self.role], "content": self.text}


class TimelineReconstructor:
    """
    Pure mapping from ticket events to conversation turns.

    Comments become customer or assistant turns depending on their author,
    status, assignment and priority changes become short system notes, and
    every other event type (including ones this code does not know) is
    dropped. The output depends only on the events passed in.
    """

    @classmethod
    def reconstruct(
        cls,
        events: Iterable[TicketEvent],
        customer_id: str
    ) -> List[ConversationTurn]:
        # sorted() is stable, so events sharing created_at keep log order
        ordered = sorted(events, key=lambda e: e.created_at)

        turns = []
        for event in ordered:
            turn = cls._to_turn(event, customer_id)
            if turn is not None:
                turns.append(turn)
        return turns

    @staticmethod
    def _to_turn(event: TicketEvent, customer_id: str) -> Optional[ConversationTurn]:
        event_type = getattr(event, "event_type", None)

        if event_type == EventType.COMMENT:
            if not event.comment_text:
                return None
            role = TurnRole.CUSTOMER if event.created_by == customer_id else TurnRole.ASSISTANT
            return ConversationTurn(role=role, text=event.comment_text)

        if event_type == EventType.STATUS_CHANGE and event.new_status:
            return ConversationTurn(TurnRole.SYSTEM, f"status changed to {event.new_status}")

        if event_type == EventType.ASSIGNMENT_CHANGE and event.new_assignee:
            return ConversationTurn(TurnRole.SYSTEM, f"assigned to {event.new_assignee}")

        if event_type == EventType.PRIORITY_CHANGE and event.new_priority:
            return ConversationTurn(TurnRole.SYSTEM, f"priority set to {event.new_priority}")

        return None
