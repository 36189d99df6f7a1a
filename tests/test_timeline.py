"""Tests for conversation reconstruction from the ticket event log."""

from helpdesk_ai.responder.domain import TicketEvent, TimelineReconstructor, ConversationTurn, TurnRole

from tests.helpers import at


CUSTOMER = "u-customer"
AGENT = "u-agent"


def event(event_id, event_type, created_by=CUSTOMER, minutes=0, **payload):
    return TicketEvent(
        id=event_id,
        ticket_id="t-1",
        event_type=event_type,
        created_by=created_by,
        created_at=at(minutes),
        **payload,
    )


class TestTimelineReconstructor:
    """Tests for TimelineReconstructor.reconstruct."""

    def test_comments_are_tagged_by_author(self):
        """Test customer comments become customer turns and others assistant turns."""
        events = [
            event(1, "comment", CUSTOMER, 1, comment_text="My export is empty"),
            event(2, "comment", AGENT, 2, comment_text="Which format did you pick?"),
            event(3, "comment", CUSTOMER, 3, comment_text="CSV"),
        ]

        turns = TimelineReconstructor.reconstruct(events, CUSTOMER)

        assert turns == [
            ConversationTurn(TurnRole.CUSTOMER, "My export is empty"),
            ConversationTurn(TurnRole.ASSISTANT, "Which format did you pick?"),
            ConversationTurn(TurnRole.CUSTOMER, "CSV"),
        ]

    def test_state_changes_become_system_notes(self):
        """Test status, assignment and priority events map to short system turns."""
        events = [
            event(1, "status_change", AGENT, 1, old_status="open", new_status="in_progress"),
            event(2, "assignment_change", AGENT, 2, new_assignee="Alex Agent"),
            event(3, "priority_change", AGENT, 3, old_priority="low", new_priority="high"),
        ]

        turns = TimelineReconstructor.reconstruct(events, CUSTOMER)

        assert [t.role for t in turns] == [TurnRole.SYSTEM] * 3
        assert [t.text for t in turns] == [
            "status changed to in_progress",
            "assigned to Alex Agent",
            "priority set to high",
        ]

    def test_other_event_types_are_dropped(self):
        """Test tag, note, rating and unknown events produce no turns."""
        events = [
            event(1, "tag_change", AGENT, 1, new_tag="billing"),
            event(2, "note", AGENT, 2, comment_text="internal note"),
            event(3, "rating", CUSTOMER, 3, rating_value=5),
            event(4, "escalation_v2", AGENT, 4),
        ]

        assert TimelineReconstructor.reconstruct(events, CUSTOMER) == []

    def test_empty_comment_is_dropped(self):
        """Test a comment without text yields no turn."""
        events = [event(1, "comment", CUSTOMER, 1, comment_text=None)]

        assert TimelineReconstructor.reconstruct(events, CUSTOMER) == []

    def test_sorted_by_created_at(self):
        """Test out-of-order input is sorted chronologically."""
        events = [
            event(2, "comment", AGENT, 5, comment_text="second"),
            event(1, "comment", CUSTOMER, 1, comment_text="first"),
        ]

        turns = TimelineReconstructor.reconstruct(events, CUSTOMER)

        assert [t.text for t in turns] == ["first", "second"]

    def test_equal_timestamps_keep_log_order(self):
        """Test events sharing created_at keep their input order."""
        events = [
            event(1, "comment", CUSTOMER, 1, comment_text="a"),
            event(2, "comment", AGENT, 1, comment_text="b"),
            event(3, "comment", CUSTOMER, 1, comment_text="c"),
        ]

        turns = TimelineReconstructor.reconstruct(events, CUSTOMER)

        assert [t.text for t in turns] == ["a", "b", "c"]

    def test_is_pure(self):
        """Test repeated calls on the same input give identical output."""
        events = [
            event(1, "comment", CUSTOMER, 1, comment_text="hello"),
            event(2, "status_change", AGENT, 2, new_status="closed"),
        ]

        first = TimelineReconstructor.reconstruct(events, CUSTOMER)
        second = TimelineReconstructor.reconstruct(list(events), CUSTOMER)

        assert first == second
        assert [e.id for e in events] == [1, 2]


class TestConversationTurn:
    """Tests for ConversationTurn.to_message."""

    def test_maps_roles_to_chat_roles(self):
        """Test customer turns become user messages."""
        assert ConversationTurn(TurnRole.CUSTOMER, "hi").to_message() == {"role": "user", "content": "hi"}
        assert ConversationTurn(TurnRole.ASSISTANT, "yo").to_message() == {"role": "assistant", "content": "yo"}
        assert ConversationTurn(TurnRole.SYSTEM, "x").to_message() == {"role": "system", "content": "x"}
