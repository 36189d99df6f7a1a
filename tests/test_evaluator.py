"""Tests for reply evaluation, schema validation and the fail-safe verdict."""

import json

import pytest

from helpdesk_ai.core import LLMException
from helpdesk_ai.responder.application import ResponseEvaluator
from helpdesk_ai.responder.domain import (
    ConversationTurn,
    EvaluationPromptBuilder,
    EvaluationResult,
    FAILED_TO_EVALUATE,
    INVALID_EVALUATION_REASON,
    KBArticleMatch,
    TurnRole,
)

from tests.helpers import ANALYSIS, approving_evaluation, completion, handoff_evaluation


ARTICLE = KBArticleMatch(
    article_id="kb-reset",
    title="Resetting your password",
    content="Open Settings, choose Security, then Reset password. " * 10,
    url="https://help.test/org/acme/kb/kb-reset",
    similarity=0.9,
)


def assert_fail_safe(result: EvaluationResult):
    assert result.needs_handoff is True
    assert result.confidence == 0.0
    assert result.reason == INVALID_EVALUATION_REASON
    assert result.analysis_failure == "technicalAccuracy"
    assert result.kb_gaps == []
    assert result.analysis.conversation_flow == FAILED_TO_EVALUATE


class TestEvaluationParsing:
    """Tests for ResponseEvaluator.parse."""

    def test_valid_approval(self):
        """Test a well-formed approval is accepted as is."""
        result = ResponseEvaluator.parse(approving_evaluation(confidence=0.87, kb_gaps=["SSO"]))

        assert result.needs_handoff is False
        assert result.confidence == 0.87
        assert result.kb_gaps == ["SSO"]
        assert result.analysis_failure is None

    def test_valid_handoff(self):
        """Test a well-formed handoff keeps its reason and category."""
        result = ResponseEvaluator.parse(handoff_evaluation("Refund request"))

        assert result.needs_handoff is True
        assert result.reason == "Refund request"
        assert result.analysis_failure == "customerSentiment"

    def test_markdown_fence_is_stripped(self):
        """Test JSON wrapped in a ```json fence is still parsed."""
        raw = "```json\n" + approving_evaluation() + "\n```"

        assert ResponseEvaluator.parse(raw).needs_handoff is False

    @pytest.mark.parametrize("raw", [
        "not json at all",
        "",
        "{\"needsHandoff\": false}",
        "[]",
    ])
    def test_unparseable_output_fails_safe(self, raw):
        """Test malformed or incomplete output becomes the fail-safe verdict."""
        assert_fail_safe(ResponseEvaluator.parse(raw))

    def test_none_fails_safe(self):
        """Test missing output becomes the fail-safe verdict."""
        assert_fail_safe(ResponseEvaluator.parse(None))

    def test_handoff_without_category_fails_safe(self):
        """Test needsHandoff without analysisFailure is rejected."""
        payload = json.loads(handoff_evaluation())
        del payload["analysisFailure"]

        assert_fail_safe(ResponseEvaluator.parse(json.dumps(payload)))

    def test_handoff_without_reason_fails_safe(self):
        """Test needsHandoff without a reason is rejected."""
        payload = json.loads(handoff_evaluation())
        payload["reason"] = "  "

        assert_fail_safe(ResponseEvaluator.parse(json.dumps(payload)))

    def test_unknown_category_fails_safe(self):
        """Test analysisFailure outside the five rubric categories is rejected."""
        payload = json.loads(handoff_evaluation())
        payload["analysisFailure"] = "tone"

        assert_fail_safe(ResponseEvaluator.parse(json.dumps(payload)))

    @pytest.mark.parametrize("confidence", [1.2, -0.1, "0.9"])
    def test_bad_confidence_fails_safe(self, confidence):
        """Test confidence outside [0, 1] or of the wrong type is rejected."""
        payload = json.loads(approving_evaluation())
        payload["confidence"] = confidence

        assert_fail_safe(ResponseEvaluator.parse(json.dumps(payload)))

    def test_string_boolean_fails_safe(self):
        """Test needsHandoff must be a real boolean."""
        payload = json.loads(approving_evaluation())
        payload["needsHandoff"] = "false"

        assert_fail_safe(ResponseEvaluator.parse(json.dumps(payload)))

    def test_missing_analysis_field_fails_safe(self):
        """Test every rubric category needs an assessment."""
        payload = json.loads(approving_evaluation())
        payload["analysis"] = {k: v for k, v in ANALYSIS.items() if k != "kbUtilization"}

        assert_fail_safe(ResponseEvaluator.parse(json.dumps(payload)))


class TestEvaluationRecord:
    """Tests for the persisted handoff record."""

    def test_record_uses_camel_case(self):
        """Test to_record produces the wire field names."""
        record = ResponseEvaluator.parse(handoff_evaluation("Refund request")).to_record()

        assert record["needsHandoff"] is True
        assert record["analysisFailure"] == "customerSentiment"
        assert record["kbGaps"] == ["refund policy"]
        assert set(record["analysis"]) == set(ANALYSIS)

    def test_fail_safe_record(self):
        """Test the fail-safe verdict serializes with every analysis field set."""
        record = EvaluationResult.fail_safe().to_record()

        assert record["reason"] == INVALID_EVALUATION_REASON
        assert all(v == FAILED_TO_EVALUATE for v in record["analysis"].values())


class TestEvaluationPrompt:
    """Tests for evaluator prompt content."""

    def test_includes_history_latest_message_reply_and_full_articles(self):
        """Test the evaluator sees the full KB content, not an excerpt."""
        history = [ConversationTurn(TurnRole.CUSTOMER, "Hi"), ConversationTurn(TurnRole.ASSISTANT, "Hello!")]

        prompt = EvaluationPromptBuilder.build_user_prompt(
            history, "Reset link never arrives", "Try the steps in the article", [ARTICLE]
        )

        assert "Customer: Hi" in prompt
        assert "Agent: Hello!" in prompt
        assert "Reset link never arrives" in prompt
        assert "Try the steps in the article" in prompt
        assert ARTICLE.content in prompt

    def test_states_when_nothing_was_retrieved(self):
        """Test an empty article list is stated explicitly."""
        prompt = EvaluationPromptBuilder.build_user_prompt([], "msg", "reply", [])

        assert "(no knowledge base articles were found)" in prompt
        assert "(no earlier messages)" in prompt


class TestResponseEvaluator:
    """Tests for ResponseEvaluator.evaluate."""

    @pytest.mark.asyncio
    async def test_uses_evaluation_settings(self, mock_llm_client):
        """Test the evaluator call is separate, low temperature and labelled."""
        mock_llm_client.chat_completion.return_value = completion(approving_evaluation())
        evaluator = ResponseEvaluator(mock_llm_client, temperature=0.1)

        result = await evaluator.evaluate([], "msg", "reply", [ARTICLE])

        assert result.needs_handoff is False
        kwargs = mock_llm_client.chat_completion.await_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert kwargs["operation"] == "evaluation"
        assert kwargs["messages"][0]["content"] == EvaluationPromptBuilder.SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_invalid_output_forces_handoff(self, mock_llm_client):
        """Test schema-invalid model output yields the fail-safe verdict."""
        mock_llm_client.chat_completion.return_value = completion("Looks good to me!")
        evaluator = ResponseEvaluator(mock_llm_client)

        assert_fail_safe(await evaluator.evaluate([], "msg", "reply", []))

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self, mock_llm_client):
        """Test a transport failure is not turned into a verdict."""
        mock_llm_client.chat_completion.side_effect = LLMException("evaluation timed out")
        evaluator = ResponseEvaluator(mock_llm_client)

        with pytest.raises(LLMException):
            await evaluator.evaluate([], "msg", "reply", [])
