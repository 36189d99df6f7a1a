"""Tests for Grafana metric export and evaluation telemetry."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from helpdesk_ai.responder.domain import EvaluationResult, Ticket
from helpdesk_ai.responder.infrastructure import GrafanaEvaluationTelemetry
from helpdesk_ai.shared.infrastructure.grafana import GrafanaOTLPExporter

from tests.helpers import handoff_evaluation


TICKET = Ticket(
    id="t-1", organization_id="org-acme", title="Cannot reset password", description="",
    created_by="u-customer", assigned_to="u-agent",
)


class TestGrafanaOTLPExporter:
    """Tests for GrafanaOTLPExporter."""

    def test_disabled_without_credentials(self):
        """Test an unconfigured exporter is disabled."""
        exporter = GrafanaOTLPExporter(host="", api_key="", instance_id="")

        assert not exporter.is_enabled()

    @pytest.mark.asyncio
    async def test_disabled_export_is_noop(self):
        """Test disabled exports report False without a request."""
        exporter = GrafanaOTLPExporter(host="", api_key="", instance_id="")

        assert await exporter.export_evaluation_metrics("org-acme", 0.5, True, 2) is False

    def test_payload_types(self):
        """Test float gauges use asDouble and integer gauges asInt."""
        exporter = GrafanaOTLPExporter(host="https://otlp.test", api_key="k", instance_id="1")

        payload = exporter.build_payload(
            {"evaluation_confidence": (0.75, "1"), "evaluation_kb_gaps": (2, "1")},
            {"organization_id": "org-acme"},
        )

        metrics = payload["resourceMetrics"][0]["scopeMetrics"][0]["metrics"]
        points = {m["name"]: m["gauge"]["dataPoints"][0] for m in metrics}
        assert points["evaluation_confidence"]["asDouble"] == 0.75
        assert points["evaluation_kb_gaps"]["asInt"] == 2
        assert {"key": "organization_id", "value": {"stringValue": "org-acme"}} in (
            points["evaluation_kb_gaps"]["attributes"]
        )


class TestGrafanaEvaluationTelemetry:
    """Tests for GrafanaEvaluationTelemetry.record."""

    @pytest.mark.asyncio
    async def test_exports_verdict(self):
        """Test the verdict fields are forwarded to the exporter."""
        exporter = MagicMock()
        exporter.is_enabled.return_value = True
        exporter.export_evaluation_metrics = AsyncMock(return_value=True)
        evaluation = EvaluationResult.model_validate_json(handoff_evaluation())

        await GrafanaEvaluationTelemetry(exporter).record(TICKET, evaluation)

        exporter.export_evaluation_metrics.assert_awaited_once_with(
            organization_id="org-acme",
            confidence=0.3,
            needs_handoff=True,
            kb_gap_count=1,
            analysis_failure="customerSentiment",
        )

    @pytest.mark.asyncio
    async def test_skips_disabled_exporter(self):
        """Test nothing is exported when Grafana is not configured."""
        exporter = MagicMock()
        exporter.is_enabled.return_value = False
        exporter.export_evaluation_metrics = AsyncMock()

        await GrafanaEvaluationTelemetry(exporter).record(TICKET, EvaluationResult.fail_safe())

        exporter.export_evaluation_metrics.assert_not_awaited()
