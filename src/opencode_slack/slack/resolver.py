"""Endpoint resolution — maps the configured target to a Slack conversation id.

A target is either ``#channel`` (channel mode) or a Slack user name (DM
mode).  Successful lookups are cached for the lifetime of the process.  A
lookup that completes but finds no match is cached too: the bridge stays
silent for the rest of the run instead of hammering ``users.list``.
Transport errors are *not* cached — the next send or poll tries again.
"""

from __future__ import annotations

from typing import Any

from opencode_slack.logger import logger

from ._ui import normalize_chat_name

_PAGE_LIMIT = 200

# Sentinel distinguishing "looked up, not found" from "not looked up yet".
_NOT_FOUND = ""


class EndpointResolver:
    """Resolve and cache the conversation id for one configured target."""

    def __init__(self, client: Any, target: str) -> None:
        self._client = client
        self._target = target.strip()
        self._channel_id: str | None = None
        self._user_ids: dict[str, str] = {}
        self._bot_user_id: str | None = None

    @property
    def channel_mode(self) -> bool:
        return self._target.startswith("#")

    async def resolve(self) -> str | None:
        """Return the conversation id, or None when unresolved."""
        if self._channel_id is not None:
            return self._channel_id or None
        try:
            if self.channel_mode:
                channel_id = await self._find_channel_by_name(self._target)
            else:
                channel_id = await self._open_dm(self._target)
        except Exception as exc:
            logger.warning("Slack endpoint lookup failed", target=self._target, err=str(exc))
            return None

        if channel_id is None:
            logger.warning("Slack target not found; bridge will stay silent", target=self._target)
            self._channel_id = _NOT_FOUND
            return None

        self._channel_id = channel_id
        logger.info("Slack endpoint resolved", target=self._target, channel_id=channel_id)
        return channel_id

    async def find_user_id(self, username: str) -> str | None:
        """Look up a user id by name, display name, or normalized display name.

        First match wins.  Raises on transport errors.
        """
        cached = self._user_ids.get(username)
        if cached is not None:
            return cached or None

        user_id = await self._find_user_by_name(username)
        self._user_ids[username] = user_id or _NOT_FOUND
        return user_id

    async def bot_user_id(self) -> str | None:
        """Our own bot user id (from ``auth.test``), cached once known."""
        if self._bot_user_id:
            return self._bot_user_id
        try:
            auth = await self._client.auth_test()
            self._bot_user_id = auth.get("user_id") or None
        except Exception as exc:
            logger.warning("Failed to resolve bot user ID", err=str(exc))
            return None
        return self._bot_user_id

    # ------------------------------------------------------------------
    # Directory lookups
    # ------------------------------------------------------------------

    async def _find_user_by_name(self, username: str) -> str | None:
        cursor = None
        while True:
            kwargs: dict[str, Any] = {"limit": _PAGE_LIMIT}
            if cursor:
                kwargs["cursor"] = cursor
            resp = await self._client.users_list(**kwargs)
            for member in resp.get("members", []):
                profile = member.get("profile", {})
                if username in (
                    member.get("name"),
                    profile.get("display_name"),
                    profile.get("display_name_normalized"),
                ):
                    return member["id"]
            cursor = resp.get("response_metadata", {}).get("next_cursor")
            if not cursor:
                return None

    async def _find_channel_by_name(self, name: str) -> str | None:
        """Find a public or private channel by exact name, returning its ID or None."""
        wanted = normalize_chat_name(name)
        cursor = None
        while True:
            kwargs: dict[str, Any] = {"types": "public_channel,private_channel", "limit": _PAGE_LIMIT}
            if cursor:
                kwargs["cursor"] = cursor
            resp = await self._client.conversations_list(**kwargs)
            for ch in resp.get("channels", []):
                if ch.get("name") == wanted:
                    return ch["id"]
            cursor = resp.get("response_metadata", {}).get("next_cursor")
            if not cursor:
                return None

    async def _open_dm(self, username: str) -> str | None:
        user_id = await self.find_user_id(username)
        if user_id is None:
            return None
        # conversations.open is idempotent: it returns the existing DM if any.
        resp = await self._client.conversations_open(users=user_id)
        return resp.get("channel", {}).get("id") or None
