"""
Responder Prompts
=================

Prompt builders for reply generation and reply evaluation.

All prompt text lives here so the services only decide what goes in,
not how it is worded.
"""

from typing import List, Sequence

from helpdesk_ai.responder.domain.entities import KBArticleMatch
from helpdesk_ai.responder.domain.timeline import ConversationTurn


class ResponsePromptBuilder:
    """
    Builds the message list for reply generation.

    Order: role instructions, KB context (when any), conversation turns,
    formatting rules. Formatting rules go last because they are the
    instruction most easily lost to recency.
    """

    ROLE_PROMPT = """You are a customer support agent for this help desk, replying on a support ticket.

Your goals:
1. Answer clearly and directly, addressing the customer's actual question
2. Ground your answer in the knowledge base articles provided to you; do not invent product facts
3. Match the customer's tone and level of technical detail
4. Acknowledge frustration or urgency with empathy, without over-apologizing
5. Be concise: give the customer the next action they need, nothing more"""

    KB_CITATION_RULE = (
        "Refer the customer to these articles by their URL instead of "
        "reproducing their full content."
    )

    FORMAT_PROMPT = """Formatting rules for your reply:
- Plain text only. Do not use markdown (no asterisks, headings, bold, or code blocks)
- Write URLs out literally, e.g. https://example.com/page, never as [text](url)
- For steps, use a simple numbered list: 1. 2. 3.
- Do not sign the message with a name or placeholder"""

    @classmethod
    def build_kb_context(cls, articles: Sequence[KBArticleMatch], excerpt_length: int) -> str:
        parts = ["Relevant knowledge base articles:"]
        for i, article in enumerate(articles, 1):
            excerpt = article.content[:excerpt_length]
            if len(article.content) > excerpt_length:
                excerpt += "..."
            parts.append(f"{i}. {article.title}\nURL: {article.url}\nExcerpt: {excerpt}")
        parts.append(cls.KB_CITATION_RULE)
        return "\n\n".join(parts)

    @classmethod
    def build_messages(
        cls,
        turns: Sequence[ConversationTurn],
        articles: Sequence[KBArticleMatch],
        excerpt_length: int = 200
    ) -> List[dict]:
        messages = [{"role": "system", "content": cls.ROLE_PROMPT}]
        if articles:
            messages.append({
                "role": "system",
                "content": cls.build_kb_context(articles, excerpt_length)
            })
        messages.extend(turn.to_message() for turn in turns)
        messages.append({"role": "system", "content": cls.FORMAT_PROMPT})
        return messages


class EvaluationPromptBuilder:
    """Builds the message list for the independent reply evaluation."""

    SYSTEM_PROMPT = """You are a strict quality reviewer for AI-written customer support replies.
You did not write the reply. Decide whether it can be sent to the customer as is, or whether the ticket must be handed to a human agent.

Score the reply against these five categories:
- technicalAccuracy: every factual or procedural claim must be supported by the knowledge base content provided. A claim that the knowledge base does not cover is a failure, not a gap to overlook.
- conversationFlow: the reply fits the conversation so far, does not repeat earlier answers, and does not ask for information already given.
- customerSentiment: detect frustration, anger, or requests for a human. Escalating sentiment is a failure.
- responseQuality: the reply is actionable and pitched at the customer's technical level.
- kbUtilization: the relevant articles were used and linked. If the question needs knowledge the articles do not contain, list the missing topics in kbGaps.

Respond ONLY with a JSON object of this shape:
{
    "needsHandoff": false,
    "reason": "required when needsHandoff is true",
    "analysisFailure": "one of technicalAccuracy, conversationFlow, customerSentiment, responseQuality, kbUtilization; required when needsHandoff is true",
    "confidence": 0.0,
    "kbGaps": ["missing topic"],
    "analysis": {
        "technicalAccuracy": "assessment",
        "conversationFlow": "assessment",
        "customerSentiment": "assessment",
        "responseQuality": "assessment",
        "kbUtilization": "assessment"
    }
}
confidence is your confidence, between 0 and 1, that the reply is safe to send. When in doubt, set needsHandoff to true."""

    ROLE_LABELS = {"customer": "Customer", "assistant": "Agent", "system": "System"}

    @classmethod
    def build_user_prompt(
        cls,
        history: Sequence[ConversationTurn],
        latest_customer_message: str,
        candidate_reply: str,
        articles: Sequence[KBArticleMatch]
    ) -> str:
        if history:
            history_text = "\n".join(
                f"{cls.ROLE_LABELS.get(turn.role, turn.role)}: {turn.text}" for turn in history
            )
        else:
            history_text = "(no earlier messages)"

        if articles:
            kb_text = "\n\n".join(
                f"[{i}] {a.title} ({a.url})\n{a.content}" for i, a in enumerate(articles, 1)
            )
        else:
            kb_text = "(no knowledge base articles were found)"

        return f"""Conversation history:
{history_text}

Latest customer message:
{latest_customer_message}

Knowledge base articles available to the writer:
{kb_text}

Proposed reply:
{candidate_reply}

Evaluate the proposed reply (respond with JSON only):"""

    @classmethod
    def build_messages(
        cls,
        history: Sequence[ConversationTurn],
        latest_customer_message: str,
        candidate_reply: str,
        articles: Sequence[KBArticleMatch]
    ) -> List[dict]:
        return [
            {"role": "system", "content": cls.SYSTEM_PROMPT},
            {"role": "user", "content": cls.build_user_prompt(
                history, latest_customer_message, candidate_reply, articles
            )},
        ]
