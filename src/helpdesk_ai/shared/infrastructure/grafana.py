"""
Grafana OTLP Metrics Exporter
==============================

Pushes pipeline metrics to Grafana Cloud via OTLP/HTTP (JSON encoding).

Metrics exported:
- llm_tokens_total, llm_prompt_tokens, llm_completion_tokens, llm_latency_ms
- evaluation_confidence, evaluation_handoff, evaluation_kb_gaps
"""

import base64
import time
from typing import Optional, Dict, Any, List

import httpx

from helpdesk_ai.config import settings
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _attributes(values: Dict[str, Any]) -> List[dict]:
    return [
        {"key": key, "value": {"stringValue": str(value)}}
        for key, value in values.items()
    ]


class GrafanaOTLPExporter:
    """
    Export gauges to Grafana Cloud via the OTLP HTTP endpoint.

    Export is best effort: failures are logged and reported as False,
    never raised.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        timeout: float = 10.0
    ):
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._timeout = timeout
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    def build_payload(
        self,
        gauges: Dict[str, tuple],
        attributes: Dict[str, Any]
    ) -> dict:
        """
        Build an OTLP metrics payload.

        Args:
            gauges: metric name -> (value, unit)
            attributes: data point attributes shared by every gauge
        """
        timestamp_ns = int(time.time() * 1_000_000_000)
        point_attributes = _attributes({"service": settings.app_name, **attributes})

        metrics = []
        for name, (value, unit) in gauges.items():
            point = {"timeUnixNano": timestamp_ns, "attributes": point_attributes}
            if isinstance(value, float):
                point["asDouble"] = value
            else:
                point["asInt"] = int(value)
            metrics.append({"name": name, "unit": unit, "gauge": {"dataPoints": [point]}})

        return {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": _attributes({
                            "service.name": settings.app_name,
                            "service.version": settings.app_version,
                            "deployment.environment": settings.environment,
                        })
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }

    async def _post(self, payload: dict) -> bool:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error exporting metrics to Grafana", extra={"error": str(e)})
            return False

        if response.status_code in (200, 202):
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={"status_code": response.status_code, "response": response.text[:500]}
        )
        return False

    async def export_llm_metrics(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        operation: str = "chat_completion"
    ) -> bool:
        """Export token usage and latency of one LLM call."""
        if not self._enabled:
            return False

        payload = self.build_payload(
            {
                "llm_tokens_total": (prompt_tokens + completion_tokens, "1"),
                "llm_prompt_tokens": (prompt_tokens, "1"),
                "llm_completion_tokens": (completion_tokens, "1"),
                "llm_latency_ms": (latency_ms, "ms"),
            },
            {"model": model, "operation": operation}
        )
        return await self._post(payload)

    async def export_evaluation_metrics(
        self,
        organization_id: str,
        confidence: float,
        needs_handoff: bool,
        kb_gap_count: int,
        analysis_failure: Optional[str] = None
    ) -> bool:
        """Export the outcome of one reply evaluation."""
        if not self._enabled:
            return False

        payload = self.build_payload(
            {
                "evaluation_confidence": (float(confidence), "1"),
                "evaluation_handoff": (1 if needs_handoff else 0, "1"),
                "evaluation_kb_gaps": (kb_gap_count, "1"),
            },
            {
                "organization_id": organization_id,
                "analysis_failure": analysis_failure or "none",
            }
        )
        return await self._post(payload)


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> Optional[GrafanaOTLPExporter]:
    """Get or create global Grafana exporter instance."""
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter


def init_grafana_exporter(
    host: str,
    api_key: str,
    instance_id: str
) -> GrafanaOTLPExporter:
    """Initialize Grafana exporter with credentials."""
    global _grafana_exporter
    _grafana_exporter = GrafanaOTLPExporter(
        host=host,
        api_key=api_key,
        instance_id=instance_id
    )
    return _grafana_exporter
