"""
Notification Controllers (API Routes)
=====================================

Trigger endpoint for one notification batch, for external cron callers.
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk_ai.config import settings
from helpdesk_ai.infrastructure.database import get_session
from helpdesk_ai.notifications.application import (
    NotificationDispatcher,
    BatchSummaryResponse,
    IEmailSender,
)
from helpdesk_ai.notifications.infrastructure import SQLAlchemyNotificationQueueRepository
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/notifications", tags=["Notifications"])


# ========== Dependencies ==========

def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Require "Authorization: Bearer <cron_secret>" when a secret is configured."""
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        logger.warning("Rejected notification batch trigger: bad credentials")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_email_sender(request: Request) -> IEmailSender:
    """Get email client from app state."""
    email_client = getattr(request.app.state, "email_client", None)
    if email_client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Email client not initialized"
        )
    return email_client


def build_dispatcher(session: AsyncSession, email_sender: IEmailSender) -> NotificationDispatcher:
    return NotificationDispatcher(SQLAlchemyNotificationQueueRepository(session), email_sender)


# ========== Route Handlers ==========

@router.post(
    "/process",
    response_model=BatchSummaryResponse,
    dependencies=[Depends(verify_cron_secret)],
    summary="Process one batch of queued notifications",
    responses={
        200: {
            "content": {
                "application/json": {
                    "example": {"success": True, "processed": 3, "successCount": 2, "failureCount": 1}
                }
            }
        },
        401: {"description": "Missing or wrong bearer secret"}
    }
)
async def process_notifications(
    session: AsyncSession = Depends(get_session),
    email_sender: IEmailSender = Depends(get_email_sender)
) -> BatchSummaryResponse:
    """Deliver up to one batch of pending or retryable notifications."""
    summary = await build_dispatcher(session, email_sender).process_batch()
    return BatchSummaryResponse.from_summary(summary)
