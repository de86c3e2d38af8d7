"""Outbound notifier — the only path that posts visible text to Slack."""

from __future__ import annotations

from typing import Any

from opencode_slack.logger import logger

from ._ui import MAX_MESSAGE_LEN, split_text
from .resolver import EndpointResolver


class SlackNotifier:
    def __init__(self, client: Any, resolver: EndpointResolver) -> None:
        self._client = client
        self._resolver = resolver

    async def send(self, text: str) -> bool:
        """Post ``text`` to the resolved conversation.

        Returns False (without raising) when the endpoint is unresolved, the
        text is blank, or Slack rejects the post.
        """
        if not text or not text.strip():
            return False
        channel_id = await self._resolver.resolve()
        if channel_id is None:
            return False
        try:
            for chunk in split_text(text, max_len=MAX_MESSAGE_LEN):
                await self._client.chat_postMessage(channel=channel_id, text=chunk)
        except Exception as exc:
            logger.warning("Slack send failed", channel=channel_id, err=str(exc))
            return False
        return True
