"""Event stream consumer — keeps a subscription to opencode's ``/event`` open."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from opencode_slack.logger import logger

from .client import OpenCodeClient

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]

RECONNECT_DELAY = 2.0


async def consume_events(
    client: OpenCodeClient,
    handler: EventHandler,
    *,
    reconnect_delay: float = RECONNECT_DELAY,
) -> None:
    """Feed every event to ``handler`` forever, reconnecting when the stream drops.

    Handler failures are logged per event and never end the subscription.
    """
    while True:
        try:
            async for event in client.events():
                try:
                    await handler(event)
                except Exception:
                    logger.exception("opencode event handler failed", event_type=event.get("type"))
            logger.info("opencode event stream ended; reconnecting")
        except (aiohttp.ClientError, TimeoutError) as exc:
            logger.warning("opencode event stream error", err=str(exc))
        await asyncio.sleep(reconnect_delay)
