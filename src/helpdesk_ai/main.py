"""
Helpdesk AI - Main Application
==============================

AI-assisted responses and notification delivery for a multi-tenant help desk.

Modules:
- Responder: AI replies to customer comments with human handoff
- Notifications: Queued, retry-bounded email delivery

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, prompts
- Infrastructure: Database, LLM, vector store, email
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from helpdesk_ai.config import settings
from helpdesk_ai.core import ApplicationException

# Infrastructure
from helpdesk_ai.infrastructure.database import (
    init_database, close_database, create_tables, get_session_context
)
from helpdesk_ai.infrastructure.llm import OpenAILLMClient, MockLLMClient
from helpdesk_ai.infrastructure.vectorstore import MilvusVectorStore, InMemoryVectorStore

# Notifications
from helpdesk_ai.notifications.infrastructure import SendGridEmailClient, NotificationScheduler

# Module Routers
from helpdesk_ai.responder.interfaces import responder_router
from helpdesk_ai.responder.infrastructure import KBIndexer, SQLAlchemyKnowledgeBaseRepository
from helpdesk_ai.notifications.interfaces import notifications_router, build_dispatcher

# Middleware and Logging
from helpdesk_ai.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler
)
from helpdesk_ai.shared.infrastructure.logging import setup_logging, get_logger
from helpdesk_ai.shared.infrastructure.grafana import init_grafana_exporter

logger = get_logger(__name__)


async def rebuild_in_process_index(llm_client, vector_store) -> None:
    """
    Refill an empty in-process index from the database.

    The vectorized flags outlive the process but the index does not, so
    every published article is re-embedded at startup.
    """
    if llm_client is None:
        logger.warning("LLM client not available - in-process KB index left empty")
        return

    try:
        async with get_session_context() as session:
            indexer = KBIndexer(llm_client, vector_store, SQLAlchemyKnowledgeBaseRepository(session))
            summary = await indexer.rebuild()
        logger.info("In-process KB index rebuilt", extra=summary)
    except Exception as e:
        logger.warning(f"KB index rebuild failed - retrieval will return no articles: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Initialize LLM client
    4. Initialize vector store
    5. Initialize email client and Grafana exporter
    6. Start notification scheduler

    SHUTDOWN:
    1. Stop notification scheduler
    2. Close email client
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Helpdesk AI", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Note: If database is not available, the server will start but
    # database-dependent endpoints will fail
    logger.info("Creating database tables")
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    # Initialize LLM client
    logger.info("Initializing LLM client")
    if settings.mock_llm:
        app.state.llm_client = MockLLMClient()
        logger.info("Using mock LLM client")
    else:
        try:
            app.state.llm_client = OpenAILLMClient()
        except ApplicationException as e:
            logger.warning(f"LLM client initialization failed: {e}")
            app.state.llm_client = None

    # Initialize vector store (Milvus when configured, in-process otherwise)
    logger.info("Initializing vector store")
    if settings.zilliz_uri:
        try:
            vector_store = MilvusVectorStore()
            await vector_store.initialize()
            app.state.vector_store = vector_store
        except ApplicationException as e:
            logger.warning(f"Vector store not available: {e}")
            app.state.vector_store = None
    else:
        app.state.vector_store = InMemoryVectorStore()
        logger.info("Milvus not configured - using in-process vector index")
        await rebuild_in_process_index(app.state.llm_client, app.state.vector_store)

    email_client = SendGridEmailClient()
    app.state.email_client = email_client
    if not settings.sendgrid_api_key:
        logger.warning("SendGrid API key not configured - notifications will fail and be retried")

    # Initialize Grafana OTLP metrics exporter
    if settings.grafana_host and settings.grafana_api_key and settings.grafana_instance_id:
        init_grafana_exporter(
            host=settings.grafana_host,
            api_key=settings.grafana_api_key,
            instance_id=settings.grafana_instance_id
        )
        logger.info("Grafana OTLP exporter initialized")
    else:
        logger.info("Grafana OTLP exporter not configured - metrics will not be exported")

    async def notification_dispatch_job():
        """Background notification batch."""
        try:
            async with get_session_context() as session:
                await build_dispatcher(session, email_client).process_batch()
        except Exception:
            logger.exception("Scheduled notification batch failed")

    notification_scheduler = NotificationScheduler()
    await notification_scheduler.start(notification_dispatch_job)
    app.state.notification_scheduler = notification_scheduler

    logger.info("Helpdesk AI started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Helpdesk AI")

    await notification_scheduler.stop()
    await email_client.close()
    await close_database()

    logger.info("Helpdesk AI shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Helpdesk AI API",
    description="""
    ## AI-Assisted Help Desk Responses

    ### AI Responder
    - `POST /responder/events/comment-created` - Queue a pipeline run for a new comment
    - `POST /responder/events/comment-created/sync` - Run the pipeline inline
    - `POST /responder/kb/index` - Embed pending KB articles

    A customer comment is answered by the AI when an independent evaluation
    approves the reply; otherwise the ticket is handed off to its agent and
    AI replies stop for that ticket.

    ### Notifications
    - `POST /notifications/process` - Deliver one batch of queued emails
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Added last so it runs first and LoggingMiddleware sees the correlation id
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(responder_router)
app.include_router(notifications_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports LLM client, vector store and scheduler state.
    """
    scheduler = getattr(request.app.state, "notification_scheduler", None)
    checks = {
        "llm_client": "available" if getattr(request.app.state, "llm_client", None) else "not_configured",
        "vector_store": "not_configured",
        "notification_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
    }

    vector_store = getattr(request.app.state, "vector_store", None)
    if vector_store is not None:
        try:
            count = await vector_store.get_document_count()
            checks["vector_store"] = f"available ({count} documents)"
        except ApplicationException as e:
            checks["vector_store"] = f"error: {e}"

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Helpdesk AI",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "responder": {
                "prefix": "/responder",
                "endpoints": [
                    "POST /responder/events/comment-created - Queue pipeline run",
                    "POST /responder/events/comment-created/sync - Run pipeline inline",
                    "POST /responder/kb/index - Index KB articles"
                ]
            },
            "notifications": {
                "prefix": "/notifications",
                "endpoints": [
                    "POST /notifications/process - Process one notification batch"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "helpdesk_ai.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
