"""Outbound delivery of collaboration events to workflow triggers and webhooks."""

from __future__ import annotations

import hashlib
import hmac
import json
from abc import ABC, abstractmethod
from typing import Any

import httpx
from loguru import logger

from agentflow.config.schema import OutboundConfig, WebhookTargetConfig
from agentflow.utils.exceptions import sanitize_error_message
from agentflow.utils.helpers import utc_now


def sign_payload(secret: str, body: bytes) -> str:
    """HMAC-SHA256 hex digest of the raw request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str).encode("utf-8")


class OutboundEventSink(ABC):
    """Best-effort delivery of domain events. Implementations never raise."""

    @abstractmethod
    async def notify(
        self,
        event: str,
        correlation_id: str,
        payload: dict[str, Any],
        owner_user_id: str,
    ) -> None:
        pass

    async def close(self) -> None:
        return None


class WebhookNotifier(ABC):
    """Owner-level webhook fan-out (e.g. approval.requested)."""

    @abstractmethod
    async def trigger(self, owner_user_id: str, event: str, payload: dict[str, Any]) -> int:
        """Send to every subscribed target; returns the number of successful deliveries."""

    async def close(self) -> None:
        return None


class NullEventSink(OutboundEventSink):
    async def notify(self, event: str, correlation_id: str, payload: dict[str, Any], owner_user_id: str) -> None:
        logger.debug(f"Outbound disabled, skipping collaboration.{event}")


class NullWebhookNotifier(WebhookNotifier):
    async def trigger(self, owner_user_id: str, event: str, payload: dict[str, Any]) -> int:
        return 0


class _HttpClientMixin:
    def __init__(self, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


class HttpEventSink(_HttpClientMixin, OutboundEventSink):
    """
    Posts collaboration events to per-event workflow trigger URLs.

    Body: {event: "collaboration.<name>", data, timestamp, sessionId, userId}.
    Events without a configured URL are skipped. One attempt, no retry.
    """

    def __init__(
        self,
        event_urls: dict[str, str],
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.event_urls = dict(event_urls)

    async def notify(self, event: str, correlation_id: str, payload: dict[str, Any], owner_user_id: str) -> None:
        url = self.event_urls.get(event)
        if not url:
            return
        body = {
            "event": f"collaboration.{event}",
            "data": payload,
            "timestamp": utc_now().isoformat(),
            "sessionId": correlation_id,
            "userId": owner_user_id,
        }
        try:
            client = await self._get_client()
            resp = await client.post(
                url,
                content=_encode(body),
                headers={"Content-Type": "application/json"},
            )
            resp.raise_for_status()
            logger.debug(f"Outbound collaboration.{event} delivered ({resp.status_code})")
        except httpx.HTTPError as e:
            logger.warning(f"Outbound collaboration.{event} failed: {sanitize_error_message(str(e))}")


class HttpWebhookNotifier(_HttpClientMixin, WebhookNotifier):
    """Signed webhook delivery to configured targets."""

    def __init__(
        self,
        targets: list[WebhookTargetConfig],
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.targets = list(targets)

    def _subscribed(self, event: str) -> list[WebhookTargetConfig]:
        return [
            t for t in self.targets
            if t.enabled and t.url and (not t.events or event in t.events)
        ]

    async def send(self, target: WebhookTargetConfig, payload: dict[str, Any]) -> bool:
        body = {**payload, "webhook_id": target.id, "timestamp": utc_now().isoformat()}
        raw = _encode(body)
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-ID": target.id,
            "X-Webhook-Signature": sign_payload(target.secret, raw),
            **target.headers,
        }
        try:
            client = await self._get_client()
            resp = await client.post(target.url, content=raw, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Webhook {target.id or target.url} failed: {sanitize_error_message(str(e))}")
            return False
        if not resp.is_success:
            logger.warning(f"Webhook {target.id or target.url} returned {resp.status_code}")
            return False
        return True

    async def trigger(self, owner_user_id: str, event: str, payload: dict[str, Any]) -> int:
        delivered = 0
        for target in self._subscribed(event):
            body = {"event": event, "userId": owner_user_id, "data": payload}
            if await self.send(target, body):
                delivered += 1
        return delivered


def build_outbound(config: OutboundConfig) -> tuple[OutboundEventSink, WebhookNotifier]:
    """Sink and notifier for the given config; null implementations when disabled."""
    if not config.enabled:
        return NullEventSink(), NullWebhookNotifier()
    return (
        HttpEventSink(config.event_urls, timeout=config.timeout_seconds),
        HttpWebhookNotifier(config.webhooks, timeout=config.timeout_seconds),
    )
