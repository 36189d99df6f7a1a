"""
Notification External Services
==============================

External service integrations for notification delivery:
- SendGrid v3 HTTP API for email
- APScheduler for periodic batch processing
"""

from typing import Any, Dict, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from helpdesk_ai.config import settings
from helpdesk_ai.core import DeliveryException
from helpdesk_ai.notifications.application import IEmailSender
from helpdesk_ai.notifications.domain import EmailMessage
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridEmailClient(IEmailSender):
    """
    SendGrid email client.

    A single attempt per call; retrying is the queue's job via
    retry_count.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._api_key = api_key or settings.sendgrid_api_key
        self._from_email = from_email or settings.sendgrid_from_email
        self._timeout = timeout or settings.email_timeout_seconds
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _build_payload(self, message: EmailMessage) -> Dict[str, Any]:
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": self._from_email},
            "subject": message.subject,
            "content": [{"type": "text/html", "value": message.html}],
        }

    async def send(self, message: EmailMessage) -> None:
        """
        Send one email.

        Raises:
            DeliveryException: Missing API key, transport error or non-2xx reply
        """
        if not self._api_key:
            raise DeliveryException("SendGrid API key not configured")

        client = await self._get_client()
        try:
            response = await client.post(
                SENDGRID_SEND_URL,
                json=self._build_payload(message),
                headers={"Authorization": f"Bearer {self._api_key}"}
            )
        except httpx.TimeoutException:
            raise DeliveryException("SendGrid request timed out", {"timeout": self._timeout})
        except httpx.HTTPError as e:
            raise DeliveryException(f"SendGrid request failed: {e}")

        if response.status_code not in (200, 202):
            raise DeliveryException(
                f"SendGrid returned {response.status_code}: {response.text[:200]}",
                {"status_code": response.status_code}
            )

        logger.debug("Email accepted by SendGrid", extra={"subject": message.subject})

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class NotificationScheduler:
    """
    Wrapper for APScheduler running the dispatcher on an interval.

    max_instances=1 keeps this process from overlapping its own batches;
    row claims cover overlap with other processes.
    """

    def __init__(self, interval_seconds: Optional[int] = None):
        self.interval_seconds = (
            settings.notification_interval_seconds if interval_seconds is None else interval_seconds
        )
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("Notification scheduler already running")
            return

        if self.interval_seconds <= 0:
            logger.info("Notification scheduler disabled")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="notification_dispatch",
            name="Notification Dispatch Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Notification scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Notification scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
