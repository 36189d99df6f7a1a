"""
Responder Infrastructure Models
===============================

SQLAlchemy ORM models for organizations, users, tickets, the ticket event
log and knowledge base articles.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, DateTime, Integer, Text, Boolean, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk_ai.infrastructure.database import Base
from helpdesk_ai.config import TicketStatus, Priority, ArticleStatus, UserRole


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrganizationModel(Base):
    """Tenant. Every ticket and article belongs to exactly one."""
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class UserModel(Base):
    """Customer, agent or admin of an organization."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.CUSTOMER)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    pipeline_lease_* hold the per-ticket lease taken by a response
    pipeline run.
    """
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Content
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # People
    created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)

    # State
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketStatus.OPEN)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.MEDIUM)
    tag: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # AI handoff
    ai_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_handoff_reason: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Pipeline lease
    pipeline_lease_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    pipeline_lease_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class TicketEventModel(Base):
    """
    Database model for TicketEvent entity.

    Append-only. The integer id gives a total order for events sharing a
    created_at.
    """
    __tablename__ = "ticket_events"
    __table_args__ = (
        Index("ix_ticket_events_ticket_created", "ticket_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    # Payload, populated per event_type
    comment_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    old_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    new_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    old_priority: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    new_priority: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    old_assignee: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    new_assignee: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    old_tag: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    new_tag: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    rating_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class KBArticleModel(Base):
    """Database model for KBArticle entity."""
    __tablename__ = "kb_articles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ArticleStatus.DRAFT)

    # Set once the article's embedding is stored in the vector index
    vectorized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
