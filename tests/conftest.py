"""Shared fixtures: a file-backed SQLite database, seed data and LLM fakes."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from helpdesk_ai.infrastructure.database import Base
from helpdesk_ai.infrastructure.llm import EmbeddingResult
from helpdesk_ai.responder.infrastructure.models import (
    OrganizationModel,
    UserModel,
    TicketModel,
    TicketEventModel,
    KBArticleModel,
)
import helpdesk_ai.notifications.infrastructure.models  # noqa: F401

from tests.helpers import at


@pytest.fixture
def mock_llm_client():
    """LLM client fake: embeddings succeed, completions are set per test."""
    client = MagicMock()
    client.generate_embedding = AsyncMock(
        return_value=EmbeddingResult(embedding=[1.0, 0.0, 0.0], model="test-embedding")
    )
    client.chat_completion = AsyncMock()
    return client


@pytest.fixture
def db_engine(tmp_path):
    """File-backed SQLite engine, so separate sessions use separate connections."""
    return create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}", echo=False)


@pytest_asyncio.fixture
async def session_factory(db_engine):
    """Create tables and provide a session factory."""
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await db_engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A single session on the test database."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded(db_session):
    """
    Two organizations; in "acme" a customer, an agent, a ticket assigned to
    the agent with one customer comment, and a published and a draft article.
    """
    db_session.add_all([
        OrganizationModel(id="org-acme", name="Acme", slug="acme"),
        OrganizationModel(id="org-globex", name="Globex", slug="globex"),
    ])
    await db_session.flush()

    db_session.add_all([
        UserModel(id="u-customer", organization_id="org-acme", email="carol@customer.test",
                  full_name="Carol Customer", role="customer"),
        UserModel(id="u-agent", organization_id="org-acme", email="alex@acme.test",
                  full_name="Alex Agent", role="agent"),
        UserModel(id="u-agent2", organization_id="org-acme", email="bo@acme.test",
                  full_name="Bo Backup", role="agent"),
    ])
    await db_session.flush()

    db_session.add(TicketModel(
        id="t-1", organization_id="org-acme", title="Cannot reset password",
        description="The reset email never arrives", created_by="u-customer",
        assigned_to="u-agent", created_at=at(0),
    ))
    await db_session.flush()

    db_session.add(TicketEventModel(
        id=1, ticket_id="t-1", event_type="comment", created_by="u-customer",
        created_at=at(1), comment_text="I still cannot reset my password",
    ))
    db_session.add_all([
        KBArticleModel(id="kb-reset", organization_id="org-acme", title="Resetting your password",
                       content="Open Settings, choose Security, then Reset password.",
                       status="published", created_at=at(0)),
        KBArticleModel(id="kb-draft", organization_id="org-acme", title="Draft: SSO",
                       content="Unfinished.", status="draft", created_at=at(0)),
        KBArticleModel(id="kb-globex", organization_id="org-globex", title="Globex billing",
                       content="Globex only.", status="published", created_at=at(0)),
    ])
    await db_session.commit()

    return {
        "organization_id": "org-acme",
        "ticket_id": "t-1",
        "customer_id": "u-customer",
        "agent_id": "u-agent",
        "trigger_event_id": 1,
    }
