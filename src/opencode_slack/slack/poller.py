"""Watermark poller — the primary inbound path from Slack.

Each cycle fetches a bounded page of ``conversations.history`` newer than the
watermark, drops everything that isn't a fresh human message from the
configured author, and hands the survivors to the router one at a time in
ascending ``ts`` order.

The watermark moves *before* each dispatch, so a message whose handling blows
up is never fetched again (at-most-once).  Nothing here raises: fetch errors
end the cycle, router errors are logged per message, and the loop keeps
running for the life of the process.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Protocol

from opencode_slack.config import PollConfig
from opencode_slack.logger import logger
from opencode_slack.state import BridgeState, ts_key
from opencode_slack.types import InboundMessage

from ._ui import is_bot_message
from .resolver import EndpointResolver


class MessageRouter(Protocol):
    async def handle(self, text: str) -> None: ...


class WatermarkPoller:
    def __init__(
        self,
        client: Any,
        resolver: EndpointResolver,
        router: MessageRouter,
        state: BridgeState,
        poll: PollConfig,
        *,
        source_user: str | None = None,
    ) -> None:
        self._client = client
        self._resolver = resolver
        self._router = router
        self._state = state
        self._poll = poll
        self._source_user = source_user
        self._wake = asyncio.Event()

    # ------------------------------------------------------------------
    # Watermark initialization
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Seed the watermark from the newest existing message.

        Existing history is never replayed.  Returns False (and leaves the
        watermark not-ready) when the endpoint or the history call fails.
        """
        channel_id = await self._resolver.resolve()
        if channel_id is None:
            return False
        try:
            resp = await self._client.conversations_history(channel=channel_id, limit=1)
        except Exception as exc:
            logger.warning("Failed to initialize Slack watermark", err=str(exc))
            return False

        messages = resp.get("messages") or []
        if messages and messages[0].get("ts"):
            self._state.advance_watermark(messages[0]["ts"])
        self._state.watermark_ready = True
        logger.info("Slack watermark initialized", watermark=self._state.watermark)
        return True

    # ------------------------------------------------------------------
    # One poll cycle
    # ------------------------------------------------------------------

    async def poll_once(self) -> int:
        """Run one fetch → filter → dispatch cycle. Returns messages dispatched."""
        channel_id = await self._resolver.resolve()
        if channel_id is None:
            return 0
        if not self._state.watermark_ready:
            # Never dispatch before the watermark exists — that would replay backlog.
            await self.initialize()
            return 0

        bot_user_id = await self._resolver.bot_user_id()
        source_user_id: str | None = None
        if self._source_user:
            try:
                source_user_id = await self._resolver.find_user_id(self._source_user)
            except Exception as exc:
                logger.warning("Slack source user lookup failed", err=str(exc))
                return 0
            if source_user_id is None:
                logger.debug("Slack source user not found; skipping poll", user=self._source_user)
                return 0

        kwargs: dict[str, Any] = {"channel": channel_id, "limit": self._poll.page_size}
        if self._state.watermark:
            kwargs["oldest"] = self._state.watermark
        try:
            resp = await self._client.conversations_history(**kwargs)
        except Exception as exc:
            logger.warning("Slack history fetch failed", channel=channel_id, err=str(exc))
            return 0

        messages = self.filter_messages(
            resp.get("messages") or [],
            channel_id=channel_id,
            bot_user_id=bot_user_id,
            source_user_id=source_user_id,
        )
        for msg in messages:
            self._state.advance_watermark(msg.ts)
            self._state.touch()
            logger.info("Slack inbound message", ts=msg.ts, user=msg.user, text_len=len(msg.text))
            try:
                await self._router.handle(msg.text)
            except Exception:
                logger.exception("Failed to route Slack message", ts=msg.ts)
        return len(messages)

    def filter_messages(
        self,
        raw: list[dict],
        *,
        channel_id: str,
        bot_user_id: str | None,
        source_user_id: str | None,
    ) -> list[InboundMessage]:
        """Keep fresh human messages from the accepted author, oldest first."""
        results: list[InboundMessage] = []
        for event in raw:
            if is_bot_message(event, bot_user_id) or event.get("subtype"):
                continue
            user = event.get("user")
            ts = event.get("ts")
            text = event.get("text")
            if not user or not ts or not text:
                continue
            if source_user_id is not None and user != source_user_id:
                continue
            if self._state.is_seen(ts):
                continue
            results.append(InboundMessage(ts=ts, user=user, text=text, channel=channel_id))
        results.sort(key=lambda m: ts_key(m.ts))
        return results

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def next_delay(self) -> float:
        """Fast cadence while the conversation is active, slow once it goes quiet."""
        if self._state.idle_for() >= self._poll.idle_after:
            return self._poll.slow_interval
        return self._poll.fast_interval

    def wake(self) -> None:
        """Run the next cycle now instead of waiting out the current delay."""
        self._wake.set()

    async def run(self) -> None:
        """Poll forever. Cycles never overlap; the delay is recomputed each time."""
        logger.info("Slack poller started")
        while True:
            delay = self.next_delay()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=delay)
            self._wake.clear()
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Slack poll cycle failed")
