"""
steward.services.notifier — Fire-and-forget Notification Dispatcher
====================================================================

Delivers platform events (level-ups, badges, flagged or reported content,
sanctions) to in-process subscribers and, optionally, to an outbound webhook.

:meth:`NotificationDispatcher.emit` never blocks and never raises: delivery
runs as an ``asyncio`` task owned by the dispatcher, and every failure is
logged and dropped.  Nothing is retried inline.

Webhook contract::

    POST {webhook_url}/{event}
    X-API-Key: <STEWARD_WEBHOOK_API_KEY>
    Content-Type: application/json

    {...payload...}
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from steward.config import NotificationSettings

logger = logging.getLogger(__name__)

CONTENT_FLAGGED = "content_flagged"
LEVEL_UP = "level_up"
BADGE_EARNED = "badge_earned"
CONTENT_REVIEWED = "content_reviewed"
USER_SANCTIONED = "user_sanctioned"
REWARD_CLAIMED = "reward_claimed"
CONTENT_REPORTED = "content_reported"
REPORT_HANDLED = "report_handled"

EVENTS: frozenset[str] = frozenset({
    CONTENT_FLAGGED,
    LEVEL_UP,
    BADGE_EARNED,
    CONTENT_REVIEWED,
    USER_SANCTIONED,
    REWARD_CLAIMED,
    CONTENT_REPORTED,
    REPORT_HANDLED,
})

Subscriber = Callable[[str, dict[str, Any]], Awaitable[None] | None]


class NotificationDispatcher:
    """Schedules event delivery without awaiting it.

    Parameters
    ----------
    webhook_url : Base URL; ``None`` disables webhook delivery.
    api_key : Sent as ``X-API-Key`` when set.
    timeout : Webhook request timeout in seconds.
    transport : Optional httpx transport (tests inject ``httpx.MockTransport``).
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 5.0,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.webhook_url = webhook_url.rstrip("/") if webhook_url else None
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._subscribers: list[Subscriber] = []
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls, settings: NotificationSettings, **kwargs: Any,
    ) -> NotificationDispatcher:
        return cls(
            settings.webhook_url, settings.api_key, settings.timeout_seconds, **kwargs,
        )

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------
    def subscribe(self, callback: Subscriber) -> None:
        """Register an in-process listener ``callback(event, payload)``.

        Sync and async callables are both accepted.
        """
        self._subscribers.append(callback)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------
    def emit(self, event: str, payload: dict[str, Any]) -> None:
        """Schedule delivery of *event*.  Returns immediately.

        Must be called on the event loop thread; anywhere else the event is
        dropped with a warning.
        """
        if event not in EVENTS:
            logger.warning("Dropping unknown notification event %r", event)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; %s notification dropped", event)
            return

        task = loop.create_task(self._deliver(event, dict(payload)), name=f"notify-{event}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every in-flight delivery (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    async def _deliver(self, event: str, payload: dict[str, Any]) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(event, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Notification subscriber failed for %s", event)

        if self.webhook_url:
            await self._post(event, payload)

    async def _post(self, event: str, payload: dict[str, Any]) -> None:
        url = f"{self.webhook_url}/{event}"
        headers = {"X-API-Key": self.api_key} if self.api_key else {}
        transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=transport) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError:
            logger.warning("Webhook delivery failed for %s", event, exc_info=True)
            return

        if not resp.is_success:
            logger.warning(
                "Webhook for %s answered HTTP %d", event, resp.status_code,
            )
