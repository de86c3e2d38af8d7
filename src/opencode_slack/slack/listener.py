"""Socket Mode listener — optional low-latency inbound path for DM mode.

Uses slack_bolt's ``AsyncApp`` over Socket Mode; bolt acknowledges every
event envelope before our handler runs.  Applies the same author/subtype
filtering as the poller plus a check that the event belongs to the resolved
DM, then hands the text to the router.  There is no watermark here and no
deduplication against the poller.

``connect()`` raises when the first connection fails.  After that the
socket client reconnects on its own; if it stays disconnected past
``lost_after`` seconds the listener closes itself and calls ``on_lost`` so
the app can switch to polling.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

from opencode_slack.logger import logger
from opencode_slack.utils import create_background_task

from ._ui import is_bot_message
from .poller import MessageRouter
from .resolver import EndpointResolver

CHECK_INTERVAL = 10.0
LOST_AFTER = 60.0


class SocketModeListener:
    def __init__(
        self,
        client: Any,
        app_token: str,
        resolver: EndpointResolver,
        router: MessageRouter,
        *,
        source_user: str | None = None,
        on_lost: Callable[[], None] | None = None,
        check_interval: float = CHECK_INTERVAL,
        lost_after: float = LOST_AFTER,
    ) -> None:
        self._client = client
        self._app_token = app_token
        self._resolver = resolver
        self._router = router
        self._source_user = source_user
        self._on_lost = on_lost
        self._check_interval = check_interval
        self._lost_after = lost_after
        self._connected = False
        self._shutting_down = False

        # Lazy-initialised in connect()
        self._app: Any = None
        self._handler: Any = None
        self._watch_task: asyncio.Task[None] | None = None

    async def connect(self) -> None:
        """Open the Socket Mode connection; raises if Slack refuses it."""
        from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
        from slack_bolt.async_app import AsyncApp

        self._app = AsyncApp(client=self._client)

        @self._app.event("message")
        async def _handle_message(event: dict[str, Any]) -> None:
            await self.handle_event(event)

        self._handler = AsyncSocketModeHandler(self._app, self._app_token)
        try:
            await self._handler.connect_async()
        except Exception:
            with contextlib.suppress(Exception):
                await self._handler.close_async()
            self._handler = None
            raise

        self._connected = True
        self._watch_task = asyncio.create_task(
            self._watch_connection(), name="slack-socket-mode-watch"
        )
        self._watch_task.add_done_callback(self._on_watch_done)
        logger.info("Slack Socket Mode listener connected")

    def is_connected(self) -> bool:
        return self._connected and self._watch_task is not None and not self._watch_task.done()

    async def disconnect(self) -> None:
        self._shutting_down = True
        self._connected = False
        if self._watch_task and not self._watch_task.done():
            self._watch_task.cancel()
        await self._close_handler()
        logger.info("Slack Socket Mode listener disconnected")

    async def _close_handler(self) -> None:
        handler, self._handler = self._handler, None
        if handler is not None:
            with contextlib.suppress(Exception):
                await handler.close_async()

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def handle_event(self, event: dict[str, Any]) -> None:
        """Filter one ``message`` event and route it."""
        if event.get("subtype"):
            return
        if is_bot_message(event, await self._resolver.bot_user_id()):
            return

        channel_id = await self._resolver.resolve()
        if channel_id is None or event.get("channel") != channel_id:
            return

        if self._source_user:
            try:
                source_user_id = await self._resolver.find_user_id(self._source_user)
            except Exception as exc:
                logger.warning("Slack source user lookup failed", err=str(exc))
                return
            if event.get("user") != source_user_id:
                return

        text = (event.get("text") or "").strip()
        if not text:
            return

        logger.info("Slack realtime message", ts=event.get("ts"), text_len=len(text))
        try:
            await self._router.handle(text)
        except Exception:
            logger.exception("Failed to route Slack realtime message", ts=event.get("ts"))

    # ------------------------------------------------------------------
    # Connection loss
    # ------------------------------------------------------------------

    async def _watch_connection(self) -> None:
        """Return once the socket has been down for ``lost_after`` seconds."""
        down_for = 0.0
        while True:
            await asyncio.sleep(self._check_interval)
            try:
                up = await self._handler.client.is_connected()
            except Exception as exc:
                logger.debug("Socket Mode status check failed", err=str(exc))
                up = False
            down_for = 0.0 if up else down_for + self._check_interval
            if down_for >= self._lost_after:
                return

    def _on_watch_done(self, task: asyncio.Task[None]) -> None:
        if self._shutting_down or task.cancelled():
            return
        exc = task.exception()
        logger.warning(
            "Slack Socket Mode connection lost — handing over to polling",
            exc=str(exc) if exc else None,
        )
        self._connected = False
        create_background_task(self._close_handler(), name="slack-socket-mode-close")
        if self._on_lost is not None:
            self._on_lost()
