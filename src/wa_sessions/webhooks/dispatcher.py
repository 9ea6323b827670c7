"""
Webhook Dispatcher

Best-effort relay of inbound messages to the configured webhook.

dispatch() only enqueues; background workers post with httpx. A slow or
failing endpoint fills the bounded queue and further deliveries are
dropped and logged, never blocking transport event processing.
"""

import asyncio
import contextlib
import logging
from typing import Any

import httpx

from wa_sessions.contracts.events import MessageReceived
from wa_sessions.errors import WebhookDeliveryError
from wa_sessions.webhooks.normalize import build_webhook_payload

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """
    Fire-and-forget webhook delivery.

    Deliveries are not retried; failures are logged and swallowed.
    """

    def __init__(
        self,
        url: str | None,
        token: str | None = None,
        timeout: float = 10.0,
        queue_size: int = 1000,
        workers: int = 2,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize dispatcher.

        Args:
            url: Webhook endpoint; dispatch is a no-op when None
            token: Sent as X-Webhook-Token when set
            timeout: HTTP timeout per delivery
            queue_size: Pending deliveries kept before dropping
            workers: Concurrent delivery tasks
            http_client: Preconfigured client (tests inject a MockTransport here)
        """
        self.url = url
        self.token = token
        self.timeout = timeout
        self.workers = max(1, workers)
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._client = http_client
        self._tasks: list[asyncio.Task] = []
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def start(self) -> None:
        """Start the delivery workers."""
        if not self.enabled or self._tasks:
            return
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        self._tasks = [
            asyncio.create_task(self._worker(), name=f"webhook-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Webhook dispatcher started", extra={"url": self.url, "workers": self.workers})

    async def close(self, drain_timeout: float = 5.0) -> None:
        """Give pending deliveries a moment, then stop the workers."""
        if self._tasks:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            for task in self._tasks:
                task.cancel()
            for task in self._tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            self._tasks = []

        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def dispatch(
        self,
        tenant_id: str,
        event: MessageReceived,
        connected_phone: str | None = None,
    ) -> bool:
        """
        Queue an inbound message for delivery.

        Returns:
            True if a delivery was queued
        """
        if not self.enabled:
            return False

        payload = build_webhook_payload(tenant_id, event, connected_phone)
        if payload is None:
            logger.debug(
                f"Inbound message not relayed",
                extra={"tenant_id": tenant_id, "message_id": event.message_id},
            )
            return False

        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Webhook queue full, dropping message",
                extra={"tenant_id": tenant_id, "message_id": event.message_id},
            )
            return False

        return True

    async def join(self) -> None:
        """Wait until every queued delivery was attempted."""
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self._deliver(payload)
                self.delivered += 1
            except WebhookDeliveryError as e:
                self.failed += 1
                logger.error(
                    f"Webhook delivery failed: {e}",
                    extra={
                        "tenant_id": payload.get("instanceId"),
                        "message_id": payload.get("messageId"),
                        "code": e.code,
                    },
                )
            except Exception:
                self.failed += 1
                logger.exception(
                    "Unexpected webhook delivery error",
                    extra={"tenant_id": payload.get("instanceId")},
                )
            finally:
                self._queue.task_done()

    async def _deliver(self, payload: dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["X-Webhook-Token"] = self.token

        logger.info(
            f"Sending webhook",
            extra={"tenant_id": payload.get("instanceId"), "message_id": payload.get("messageId")},
        )

        try:
            response = await self._client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(f"HTTP request failed: {e}", code="HTTP_ERROR") from e

        if response.status_code >= 400:
            raise WebhookDeliveryError(
                f"Webhook answered {response.status_code}",
                code=str(response.status_code),
            )
