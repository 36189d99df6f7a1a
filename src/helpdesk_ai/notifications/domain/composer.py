"""
Notification Email Composition
==============================

Renders the HTML email for a ticket event.
"""

from html import escape
from typing import Optional

from helpdesk_ai.config import settings, EventType
from helpdesk_ai.core import DomainException
from helpdesk_ai.notifications.domain.entities import DeliveryContext, EmailMessage


class NotificationComposer:
    """
    Builds the email for comment, status change and assignment events.

    Any other event type is rejected, which the dispatcher records as a
    delivery failure.
    """

    SUBJECT_TEMPLATE = "[Ticket Update] {title}"

    def __init__(self, app_url: Optional[str] = None):
        self._app_url = (app_url or settings.app_url).rstrip("/")

    def ticket_url(self, context: DeliveryContext) -> str:
        return f"{self._app_url}/org/{context.organization_slug}/tickets/{context.ticket_id}"

    def compose(self, context: DeliveryContext) -> EmailMessage:
        """
        Raises:
            DomainException: If the event type has no email template
        """
        if context.event_type == EventType.COMMENT:
            body = self._comment_body(context)
        elif context.event_type == EventType.STATUS_CHANGE:
            body = self._status_body(context)
        elif context.event_type == EventType.ASSIGNMENT_CHANGE:
            body = self._assignment_body(context)
        else:
            raise DomainException(
                f"Unsupported event type: {context.event_type}",
                {"ticket_id": context.ticket_id}
            )

        link = f'<p><a href="{escape(self.ticket_url(context))}">View Ticket</a></p>'
        return EmailMessage(
            to=context.recipient_email,
            subject=self.SUBJECT_TEMPLATE.format(title=context.ticket_title),
            html=f"<div>\n{body}\n{link}\n</div>",
        )

    @staticmethod
    def _comment_body(context: DeliveryContext) -> str:
        title = escape(context.ticket_title)
        actor = escape(context.actor_name or "a support agent")
        text = escape(context.comment_text or "")
        return (
            f"<h2>New Comment on Ticket: {title}</h2>\n"
            f"<p>A new comment has been added to your ticket by {actor}:</p>\n"
            f'<blockquote style="border-left: 4px solid #e5e7eb; padding-left: 1rem; margin: 1rem 0;">'
            f"{text}</blockquote>"
        )

    @staticmethod
    def _status_body(context: DeliveryContext) -> str:
        title = escape(context.ticket_title)
        actor = escape(context.actor_name or "A support agent")
        return (
            f"<h2>Status Update for Ticket: {title}</h2>\n"
            f"<p>{actor} has updated the status of your ticket:</p>\n"
            f"<p>Status changed from <strong>{escape(context.old_status or '')}</strong> "
            f"to <strong>{escape(context.new_status or '')}</strong></p>"
        )

    @staticmethod
    def _assignment_body(context: DeliveryContext) -> str:
        title = escape(context.ticket_title)
        assignee = escape(context.new_assignee_name or "a new agent")
        return (
            f"<h2>Assignment Update for Ticket: {title}</h2>\n"
            f"<p>Your ticket has been assigned to {assignee}</p>"
        )
