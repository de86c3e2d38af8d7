"""HTTP client for a running opencode server.

Thin wrapper over the server's REST + server-sent-events API.  Every call
raises on non-2xx (``aiohttp.ClientResponseError``) or transport failure;
callers decide what a failure means for them.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from opencode_slack.types import PermissionReply


class OpenCodeClient:
    def __init__(self, base_url: str, session: aiohttp.ClientSession) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, *, data: Any = None) -> Any:
        async with self._session.request(
            method, f"{self._base_url}{path}", json=data
        ) as resp:
            resp.raise_for_status()
            if resp.content_type != "application/json":
                return None
            return await resp.json()

    async def _get(self, path: str) -> Any:
        return await self._request("GET", path)

    async def _post(self, path: str, data: Any = None) -> Any:
        return await self._request("POST", path, data=data if data is not None else {})

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded events from ``GET /event`` until the stream ends."""
        async with self._session.get(
            f"{self._base_url}/event",
            headers={"Accept": "text/event-stream"},
            timeout=aiohttp.ClientTimeout(total=None, sock_read=None),
        ) as resp:
            resp.raise_for_status()
            async for line in resp.content:
                event = parse_sse_line(line)
                if event is not None:
                    yield event

    # ------------------------------------------------------------------
    # Prompt input
    # ------------------------------------------------------------------

    async def append_prompt(self, text: str) -> None:
        await self._post("/tui/append-prompt", {"text": text})

    async def submit_prompt(self) -> None:
        await self._post("/tui/submit-prompt")

    # ------------------------------------------------------------------
    # Interactive replies
    # ------------------------------------------------------------------

    async def reply_question(self, request_id: str, answers: list[list[str]]) -> None:
        """Answer a pending question; ``answers`` has one label list per question."""
        await self._post(f"/question/{request_id}/reply", {"answers": answers})

    async def reply_permission(
        self, session_id: str, request_id: str, response: PermissionReply
    ) -> None:
        await self._post(
            f"/session/{session_id}/permissions/{request_id}", {"response": response}
        )

    # ------------------------------------------------------------------
    # Sessions and models
    # ------------------------------------------------------------------

    async def list_sessions(self) -> list[dict[str, Any]]:
        return await self._get("/session") or []

    async def session_messages(self, session_id: str) -> list[dict[str, Any]]:
        return await self._get(f"/session/{session_id}/message") or []

    async def providers(self) -> dict[str, Any]:
        """Provider catalog: ``{"providers": [...], "default": {provider: model}}``."""
        return await self._get("/config/providers") or {}

    async def get_config(self) -> dict[str, Any]:
        return await self._get("/config") or {}

    async def set_model(self, model: str) -> None:
        """Switch the default model, as ``provider/model``."""
        await self._request("PATCH", "/config", data={"model": model})


def parse_sse_line(line: bytes) -> dict[str, Any] | None:
    """Decode one ``data: {...}`` SSE line; anything else yields None."""
    decoded = line.decode("utf-8", errors="replace").strip()
    if not decoded.startswith("data:"):
        return None
    try:
        event = json.loads(decoded[5:].strip())
    except json.JSONDecodeError:
        return None
    if not isinstance(event, dict) or "type" not in event:
        return None
    return event
