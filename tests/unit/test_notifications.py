"""Tests for notification composition and webhook delivery."""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from accord_engine.notifications.sender import (
    LoggingNotificationSender,
    NotificationType,
    WebhookNotificationSender,
    compose_notification,
    sign_payload,
)

from tests.conftest import make_settings

WEBHOOK_URL = "https://hooks.example/accord"


def notification(**overrides):
    fields = {
        "contract_id": "c-1",
        "title": "Sponsored post agreement",
        "recipient_email": "creator@studio.example",
        "recipient_name": "Studio Creator",
    }
    fields.update(overrides)
    return compose_notification(NotificationType.CONTRACT_SENT, **fields)


def mock_response(status_code: int) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    return resp


@pytest.fixture
def sender():
    return WebhookNotificationSender(make_settings(
        notify_webhook_url=WEBHOOK_URL,
        notify_webhook_secret="hook-secret",
        notify_max_retries=2,
    ))


class TestCompose:
    def test_default_text(self):
        note = notification()
        assert note.subject == "Contract for signature: Sponsored post agreement"
        assert "Studio Creator" in note.message
        assert note.metadata == {}

    def test_overrides(self):
        note = notification(subject="Please sign", message="Custom body", metadata={"attachments": ["a.pdf"]})
        assert note.subject == "Please sign"
        assert note.message == "Custom body"
        assert note.metadata == {"attachments": ["a.pdf"]}

    def test_falls_back_to_email_for_name(self):
        note = compose_notification(
            NotificationType.SIGNATURE_REMINDER, "c-1", "Deal", "someone@x.example",
        )
        assert "someone@x.example" in note.message

    def test_every_kind_composes(self):
        for kind in NotificationType:
            note = compose_notification(kind, "c-1", "Deal", "a@b.example")
            assert note.type == kind
            assert note.subject


class TestSignPayload:
    def test_matches_manual_hmac(self):
        payload = '{"type":"contract_sent"}'
        expected = hmac.new(b"hook-secret", payload.encode(), hashlib.sha256).hexdigest()
        assert sign_payload(payload, "hook-secret") == expected


class TestLoggingSender:
    async def test_notify_does_not_raise(self):
        await LoggingNotificationSender().notify(notification())


class TestWebhookSender:
    async def test_success_with_signature_headers(self, sender):
        client = MagicMock()
        client.post = AsyncMock(return_value=mock_response(200))
        payload = notification().model_dump(mode="json")

        with patch.object(sender, "_get_http_client", return_value=client):
            assert await sender.deliver(payload) is True

        kwargs = client.post.call_args.kwargs
        body = kwargs["content"]
        assert json.loads(body)["contract_id"] == "c-1"
        assert kwargs["headers"]["X-Accord-Event"] == "contract_sent"
        assert kwargs["headers"]["X-Accord-Signature"] == sign_payload(body, "hook-secret")

    async def test_retries_then_gives_up(self, sender):
        client = MagicMock()
        client.post = AsyncMock(return_value=mock_response(503))
        sleep = AsyncMock()

        with patch.object(sender, "_get_http_client", return_value=client), \
                patch("accord_engine.notifications.sender.asyncio.sleep", sleep):
            assert await sender.deliver(notification().model_dump(mode="json")) is False

        assert client.post.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1, 2]

    async def test_recovers_after_transport_error(self, sender):
        client = MagicMock()
        client.post = AsyncMock(side_effect=[
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            mock_response(204),
        ])

        with patch.object(sender, "_get_http_client", return_value=client), \
                patch("accord_engine.notifications.sender.asyncio.sleep", AsyncMock()):
            assert await sender.deliver(notification().model_dump(mode="json")) is True
        assert client.post.await_count == 3

    async def test_notify_runs_in_background(self, sender):
        deliver = AsyncMock(return_value=True)
        with patch.object(sender, "deliver", deliver):
            await sender.notify(notification())
            await sender.drain()
        deliver.assert_awaited_once()
        assert deliver.await_args.args[0]["type"] == "contract_sent"

    def test_secret_falls_back_to_secret_key(self):
        sender = WebhookNotificationSender(make_settings(
            notify_webhook_url=WEBHOOK_URL, secret_key="app-secret",
        ))
        assert sender.secret == "app-secret"
