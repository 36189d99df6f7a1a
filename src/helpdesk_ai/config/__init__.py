"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-ai", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")
    app_url: str = Field(
        default="http://localhost:3000",
        description="Public URL of the help desk, used for KB and ticket links"
    )

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== LLM Provider ==========
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key for generation and embeddings"
    )
    mock_llm: bool = Field(
        default=False,
        description="Use mock LLM responses for testing (no API calls)"
    )
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="Chat model for reply generation and evaluation"
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model for KB search"
    )
    embedding_dimension: int = Field(
        default=1536,
        description="Embedding vector dimension",
        ge=2
    )
    generation_temperature: float = Field(
        default=0.3,
        description="Temperature for reply generation",
        ge=0.0,
        le=1.0
    )
    evaluation_temperature: float = Field(
        default=0.1,
        description="Temperature for reply evaluation",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=1000,
        description="Max tokens per completion",
        ge=1,
        le=8000
    )
    llm_timeout_seconds: float = Field(
        default=45.0,
        description="Timeout for a single LLM call",
        ge=1.0,
        le=300.0
    )

    # ========== Zilliz Cloud (Managed Milvus) ==========
    zilliz_uri: str = Field(
        default="",
        description="Zilliz Cloud / Milvus URI; empty uses the in-process index"
    )
    zilliz_api_key: str = Field(default="", description="Zilliz Cloud API key")
    milvus_collection_name: str = Field(
        default="kb_articles",
        description="Milvus collection holding KB article vectors"
    )
    vector_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for a single vector search",
        ge=1.0,
        le=300.0
    )

    # ========== Knowledge Retrieval ==========
    kb_top_k: int = Field(
        default=3,
        description="Number of KB articles to retrieve per query",
        ge=1,
        le=20
    )
    kb_excerpt_length: int = Field(
        default=200,
        description="Characters of article content included in the prompt",
        ge=20
    )
    kb_index_max_retries: int = Field(
        default=3,
        description="Embedding attempts per article when rate limited",
        ge=1
    )
    kb_index_retry_delay_seconds: float = Field(
        default=20.0,
        description="Wait after a rate-limited embedding call",
        ge=0.0
    )

    # ========== Response Pipeline ==========
    ai_fallback_author_id: Optional[str] = Field(
        default=None,
        description="User id that authors AI replies on tickets without an assignee"
    )
    pipeline_lease_ttl_seconds: int = Field(
        default=300,
        description="Expiry of a per-ticket pipeline lease",
        ge=10
    )
    pipeline_lease_wait_seconds: float = Field(
        default=30.0,
        description="How long a trigger waits for a held lease before abandoning",
        ge=0.0
    )
    pipeline_lease_poll_seconds: float = Field(
        default=1.0,
        description="Polling interval while waiting for a lease",
        gt=0.0
    )

    # ========== Notifications ==========
    notification_batch_size: int = Field(
        default=50,
        description="Queue entries processed per batch",
        ge=1,
        le=500
    )
    notification_max_retries: int = Field(
        default=3,
        description="Delivery attempts before an entry is exhausted",
        ge=1
    )
    notification_claim_ttl_seconds: int = Field(
        default=600,
        description="Seconds after which an unreleased claim may be taken over",
        ge=10
    )
    notification_interval_seconds: int = Field(
        default=300,
        description="Seconds between scheduled batches (0 disables the scheduler)",
        ge=0
    )
    cron_secret: Optional[str] = Field(
        default=None,
        description="Bearer secret required by the batch trigger endpoint"
    )

    # ========== SendGrid ==========
    sendgrid_api_key: Optional[str] = Field(default=None, description="SendGrid API key")
    sendgrid_from_email: str = Field(
        default="support@example.com",
        description="Sender address for notification emails"
    )
    email_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for email API calls",
        ge=0.1,
        le=120
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-eu-west-2.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("app_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_claim_ttl(self) -> "Settings":
        """A claim refreshed before a send must outlive that send."""
        if self.notification_claim_ttl_seconds <= self.email_timeout_seconds:
            raise ValueError(
                "notification_claim_ttl_seconds must exceed email_timeout_seconds"
            )
        return self


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class Priority(str):
    """Ticket priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EventType(str):
    """Ticket timeline event types."""
    COMMENT = "comment"
    STATUS_CHANGE = "status_change"
    PRIORITY_CHANGE = "priority_change"
    ASSIGNMENT_CHANGE = "assignment_change"
    TAG_CHANGE = "tag_change"
    NOTE = "note"
    RATING = "rating"


class ArticleStatus(str):
    """Knowledge base article statuses."""
    DRAFT = "draft"
    PUBLISHED = "published"


class NotificationStatus(str):
    """Notification queue entry statuses."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class UserRole(str):
    """Roles of help desk users."""
    CUSTOMER = "customer"
    AGENT = "agent"
    ADMIN = "admin"


class RubricCategory(str):
    """Dimensions the response evaluator scores a reply against."""
    TECHNICAL_ACCURACY = "technicalAccuracy"
    CONVERSATION_FLOW = "conversationFlow"
    CUSTOMER_SENTIMENT = "customerSentiment"
    RESPONSE_QUALITY = "responseQuality"
    KB_UTILIZATION = "kbUtilization"


# ========== Lists for validation ==========

VALID_STATUSES = [TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.CLOSED]
VALID_PRIORITIES = [Priority.LOW, Priority.MEDIUM, Priority.HIGH]
VALID_EVENT_TYPES = [
    EventType.COMMENT, EventType.STATUS_CHANGE, EventType.PRIORITY_CHANGE,
    EventType.ASSIGNMENT_CHANGE, EventType.TAG_CHANGE, EventType.NOTE,
    EventType.RATING
]
VALID_ARTICLE_STATUSES = [ArticleStatus.DRAFT, ArticleStatus.PUBLISHED]
VALID_NOTIFICATION_STATUSES = [
    NotificationStatus.PENDING, NotificationStatus.SENT, NotificationStatus.FAILED
]
RUBRIC_CATEGORIES = [
    RubricCategory.TECHNICAL_ACCURACY, RubricCategory.CONVERSATION_FLOW,
    RubricCategory.CUSTOMER_SENTIMENT, RubricCategory.RESPONSE_QUALITY,
    RubricCategory.KB_UTILIZATION
]
