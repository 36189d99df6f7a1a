"""Tests for reply generation and its prompt."""

import pytest

from helpdesk_ai.core import LLMException
from helpdesk_ai.responder.application import ResponseGenerator
from helpdesk_ai.responder.domain import (
    ConversationTurn,
    KBArticleMatch,
    ResponsePromptBuilder,
    TurnRole,
)

from tests.helpers import completion


TURNS = [
    ConversationTurn(TurnRole.CUSTOMER, "How do I export data?"),
    ConversationTurn(TurnRole.ASSISTANT, "Which format?"),
    ConversationTurn(TurnRole.CUSTOMER, "CSV please"),
]

ARTICLE = KBArticleMatch(
    article_id="kb-export",
    title="Exporting data",
    content="x" * 250,
    url="https://help.test/org/acme/kb/kb-export",
    similarity=0.83,
)


class TestResponsePromptBuilder:
    """Tests for generation prompt assembly."""

    def test_message_order_with_articles(self):
        """Test role, KB context, turns, then formatting rules."""
        messages = ResponsePromptBuilder.build_messages(TURNS, [ARTICLE])

        assert messages[0] == {"role": "system", "content": ResponsePromptBuilder.ROLE_PROMPT}
        assert messages[1]["role"] == "system"
        assert "Exporting data" in messages[1]["content"]
        assert [m["role"] for m in messages[2:5]] == ["user", "assistant", "user"]
        assert messages[-1] == {"role": "system", "content": ResponsePromptBuilder.FORMAT_PROMPT}
        assert len(messages) == 6

    def test_no_kb_message_without_articles(self):
        """Test the KB system message is omitted when nothing was retrieved."""
        messages = ResponsePromptBuilder.build_messages(TURNS, [])

        assert len(messages) == 5
        assert messages[1] == {"role": "user", "content": "How do I export data?"}

    def test_excerpt_is_truncated(self):
        """Test article content is cut to the excerpt length with an ellipsis."""
        context = ResponsePromptBuilder.build_kb_context([ARTICLE], excerpt_length=200)

        assert "x" * 200 + "..." in context
        assert "x" * 201 not in context
        assert ARTICLE.url in context
        assert ResponsePromptBuilder.KB_CITATION_RULE in context

    def test_short_content_not_marked_truncated(self):
        """Test content shorter than the excerpt length has no ellipsis."""
        short = KBArticleMatch("kb-1", "Short", "Brief answer.", "https://help.test/kb-1", 0.5)

        context = ResponsePromptBuilder.build_kb_context([short], excerpt_length=200)

        assert "Excerpt: Brief answer.\n\n" in context
        assert "Brief answer...." not in context


class TestResponseGenerator:
    """Tests for ResponseGenerator.generate."""

    @pytest.mark.asyncio
    async def test_returns_completion_verbatim(self, mock_llm_client):
        """Test the model output is returned unchanged."""
        mock_llm_client.chat_completion.return_value = completion("1. Open Settings\n2. Click Export\n")
        generator = ResponseGenerator(mock_llm_client)

        reply = await generator.generate(TURNS, [ARTICLE])

        assert reply == "1. Open Settings\n2. Click Export\n"

    @pytest.mark.asyncio
    async def test_uses_generation_settings(self, mock_llm_client):
        """Test temperature, token limit and operation name are passed through."""
        mock_llm_client.chat_completion.return_value = completion("ok")
        generator = ResponseGenerator(mock_llm_client, temperature=0.3, max_tokens=1000)

        await generator.generate(TURNS, [])

        kwargs = mock_llm_client.chat_completion.await_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1000
        assert kwargs["operation"] == "generation"
        assert kwargs["messages"] == ResponsePromptBuilder.build_messages(TURNS, [])

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self, mock_llm_client):
        """Test LLMException is not swallowed."""
        mock_llm_client.chat_completion.side_effect = LLMException("generation timed out")
        generator = ResponseGenerator(mock_llm_client)

        with pytest.raises(LLMException):
            await generator.generate(TURNS, [])

    @pytest.mark.asyncio
    async def test_empty_reply_is_an_error(self, mock_llm_client):
        """Test a blank completion raises instead of posting an empty comment."""
        mock_llm_client.chat_completion.return_value = completion("   ")
        generator = ResponseGenerator(mock_llm_client)

        with pytest.raises(LLMException):
            await generator.generate(TURNS, [])
