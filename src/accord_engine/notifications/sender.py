"""Contract notifications: composition and webhook delivery."""

import asyncio
import hashlib
import hmac
import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field

from accord_engine.common.config import AccordSettings
from accord_engine.common.models import utcnow

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    CONTRACT_SENT = "contract_sent"
    CONTRACT_SIGNED = "contract_signed"
    CONTRACT_COMPLETED = "contract_completed"
    CONTRACT_EXPIRED = "contract_expired"
    CONTRACT_TERMINATED = "contract_terminated"
    CONTRACT_RENEWED = "contract_renewed"
    SIGNATURE_REMINDER = "signature_reminder"


# Default (subject, message) per kind; formatted with title and recipient name
_DEFAULT_TEXT: dict[NotificationType, tuple[str, str]] = {
    NotificationType.CONTRACT_SENT: (
        "Contract for signature: {title}",
        "Hello {name}, please review and sign the contract.",
    ),
    NotificationType.CONTRACT_SIGNED: (
        "Contract signed: {title}",
        "Thank you for signing the contract, {name}.",
    ),
    NotificationType.CONTRACT_COMPLETED: (
        "Contract fully signed: {title}",
        "All required parties have signed. The final copy is available for download.",
    ),
    NotificationType.CONTRACT_EXPIRED: (
        "Contract expired: {title}",
        "The contract expired before every required party signed.",
    ),
    NotificationType.CONTRACT_TERMINATED: (
        "Contract terminated: {title}",
        "The contract has been terminated.",
    ),
    NotificationType.CONTRACT_RENEWED: (
        "Contract renewed: {title}",
        "The contract term has been extended.",
    ),
    NotificationType.SIGNATURE_REMINDER: (
        "Reminder: contract awaiting your signature: {title}",
        "Hello {name}, the contract is still waiting for your signature.",
    ),
}

_missing = set(NotificationType) - set(_DEFAULT_TEXT)
if _missing:
    raise RuntimeError(
        f"No default notification text for: {sorted(t.value for t in _missing)}"
    )


class ContractNotification(BaseModel):
    type: NotificationType
    contract_id: str
    recipient_email: str
    recipient_name: str = ""
    subject: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


def compose_notification(
    kind: NotificationType,
    contract_id: str,
    title: str,
    recipient_email: str,
    recipient_name: str = "",
    subject: Optional[str] = None,
    message: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> ContractNotification:
    """Build a notification, falling back to the default text for its kind."""
    default_subject, default_message = _DEFAULT_TEXT[NotificationType(kind)]
    name = recipient_name or recipient_email
    return ContractNotification(
        type=kind,
        contract_id=contract_id,
        recipient_email=recipient_email,
        recipient_name=recipient_name,
        subject=subject or default_subject.format(title=title, name=name),
        message=message or default_message.format(title=title, name=name),
        metadata=metadata or {},
    )


class NotificationSender(Protocol):
    async def notify(self, notification: ContractNotification) -> None: ...


def sign_payload(payload_json: str, secret: str) -> str:
    """Compute HMAC-SHA256 hex digest for a JSON payload."""
    return hmac.new(
        secret.encode("utf-8"),
        payload_json.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class LoggingNotificationSender:
    """Sender used when no delivery endpoint is configured."""

    async def notify(self, notification: ContractNotification) -> None:
        logger.info(
            "Notification %s for contract %s to %s: %s",
            notification.type.value, notification.contract_id,
            notification.recipient_email, notification.subject,
        )


class WebhookNotificationSender:
    """POSTs notifications to a webhook with an HMAC signature header.

    ``notify`` returns immediately; delivery runs as a background task with
    exponential-backoff retries.
    """

    def __init__(self, settings: AccordSettings):
        self.settings = settings
        self.url = settings.notify_webhook_url
        self.secret = settings.notify_webhook_secret or settings.secret_key
        self.max_retries = settings.notify_max_retries
        self.timeout = settings.notify_timeout
        self._http_client = None
        self._tasks: set[asyncio.Task] = set()

    def _get_http_client(self):
        """Lazy-init httpx.AsyncClient."""
        if self._http_client is None:
            import httpx
            self._http_client = httpx.AsyncClient()
        return self._http_client

    async def notify(self, notification: ContractNotification) -> None:
        payload = notification.model_dump(mode="json")
        task = asyncio.create_task(self.deliver(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def deliver(self, payload: dict[str, Any]) -> bool:
        """Send HTTP POST with HMAC signature and retry on failure."""
        import httpx

        payload_json = json.dumps(payload, default=str)
        headers = {
            "Content-Type": "application/json",
            "X-Accord-Signature": sign_payload(payload_json, self.secret),
            "X-Accord-Event": payload.get("type", ""),
        }

        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                client = self._get_http_client()
                resp = await client.post(
                    self.url,
                    content=payload_json,
                    headers=headers,
                    timeout=self.timeout,
                )
                if 200 <= resp.status_code < 300:
                    return True
                last_error = f"HTTP {resp.status_code}"
            except httpx.TimeoutException:
                last_error = "timeout"
            except httpx.HTTPError as e:
                last_error = str(e)

            if attempt < self.max_retries:
                await asyncio.sleep(2 ** attempt)

        logger.warning(
            "Notification %s for contract %s not delivered after %d attempts: %s",
            payload.get("type"), payload.get("contract_id"), self.max_retries + 1, last_error,
        )
        return False

    async def drain(self) -> None:
        """Wait for in-flight deliveries."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
