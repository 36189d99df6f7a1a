"""Tests for the HTTP routes, with the database and providers overridden."""

import httpx
import pytest
import pytest_asyncio

from helpdesk_ai.config import settings
from helpdesk_ai.core import LLMException
from helpdesk_ai.infrastructure.database import get_session
from helpdesk_ai.infrastructure.vectorstore import Document, InMemoryVectorStore
from helpdesk_ai.main import app
from helpdesk_ai.notifications.application import IEmailSender
from helpdesk_ai.responder.interfaces import controllers

from tests.helpers import approving_evaluation, completion


class FakeEmailSender(IEmailSender):
    def __init__(self):
        self.sent = []

    async def send(self, message):
        self.sent.append(message)


@pytest_asyncio.fixture
async def client(seeded, db_session, mock_llm_client):
    async def override_session():
        yield db_session

    store = InMemoryVectorStore()
    await store.upsert_documents([
        Document("kb-reset", [1.0, 0.0, 0.0], "org-acme", "published", "Resetting your password"),
    ])
    app.dependency_overrides[get_session] = override_session
    app.state.llm_client = mock_llm_client
    app.state.vector_store = store
    app.state.email_client = FakeEmailSender()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()
    for name in ("llm_client", "vector_store", "email_client"):
        setattr(app.state, name, None)


class TestResponderRoutes:
    """Tests for /responder routes."""

    @pytest.mark.asyncio
    async def test_sync_run_replies(self, client, mock_llm_client):
        """Test the inline endpoint returns the pipeline outcome."""
        async def respond(messages, temperature=0.3, max_tokens=1000, operation="chat_completion"):
            return completion("Use the reset link" if operation == "generation" else approving_evaluation())

        mock_llm_client.chat_completion.side_effect = respond

        response = await client.post(
            "/responder/events/comment-created/sync", json={"event_id": 1, "ticket_id": "t-1"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "replied"
        assert body["kb_articles_found"] == 1
        assert body["reply_event_id"] is not None
        assert response.headers["X-Correlation-ID"]

    @pytest.mark.asyncio
    async def test_unknown_event_is_404(self, client):
        """Test a missing event maps to 404."""
        response = await client.post("/responder/events/comment-created/sync", json={"event_id": 999})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_provider_failure_is_502(self, client, mock_llm_client):
        """Test an LLM failure maps to 502."""
        mock_llm_client.chat_completion.side_effect = LLMException("timed out")

        response = await client.post("/responder/events/comment-created/sync", json={"event_id": 1})

        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_invalid_event_id_is_422(self, client):
        """Test request validation."""
        response = await client.post("/responder/events/comment-created", json={"event_id": 0})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_async_trigger_schedules_run(self, client, monkeypatch):
        """Test the 202 endpoint hands the event to a background task."""
        calls = []

        async def background(*args):
            calls.append(args)

        monkeypatch.setattr(controllers, "run_pipeline_in_background", background)

        response = await client.post(
            "/responder/events/comment-created",
            json={"event_id": 1},
            headers={"X-Correlation-ID": "corr-42"},
        )

        assert response.status_code == 202
        assert response.json()["event_id"] == 1
        assert len(calls) == 1
        assert calls[0][0] == 1
        assert calls[0][-1] == "corr-42"

    @pytest.mark.asyncio
    async def test_missing_llm_client_is_503(self, client):
        """Test routes needing the LLM report it as unavailable."""
        app.state.llm_client = None

        response = await client.post("/responder/events/comment-created/sync", json={"event_id": 1})

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_kb_index(self, client):
        """Test the indexing endpoint reports per-article counts."""
        response = await client.post("/responder/kb/index", json={"limit": 10})

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": 2, "successCount": 2, "failureCount": 0}


class TestNotificationRoutes:
    """Tests for /notifications routes."""

    @pytest.mark.asyncio
    async def test_process_batch(self, client, monkeypatch):
        """Test an open endpoint processes the queue."""
        monkeypatch.setattr(settings, "cron_secret", None)

        response = await client.post("/notifications/process")

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": 0, "successCount": 0, "failureCount": 0}

    @pytest.mark.asyncio
    async def test_requires_cron_secret(self, client, monkeypatch):
        """Test a configured secret must be presented as a bearer token."""
        monkeypatch.setattr(settings, "cron_secret", "s3cret")

        denied = await client.post("/notifications/process", headers={"Authorization": "Bearer nope"})
        allowed = await client.post("/notifications/process", headers={"Authorization": "Bearer s3cret"})

        assert denied.status_code == 401
        assert allowed.status_code == 200


class TestHealth:
    """Tests for the health endpoint."""

    @pytest.mark.asyncio
    async def test_reports_components(self, client):
        """Test component checks reflect app state."""
        response = await client.get("/health")

        checks = response.json()["checks"]
        assert checks["llm_client"] == "available"
        assert checks["vector_store"] == "available (1 documents)"
        assert checks["notification_scheduler"] == "stopped"
