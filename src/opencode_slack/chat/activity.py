"""Session activity tracker — turns opencode's event stream into Slack posts.

Streamed text is buffered per session and flushed as one transcript message
when the session goes idle.  Sessions that report a parent are sub-sessions
(task agents spawned by the main session); their chatter is discarded rather
than posted.  Question and permission requests become numbered prompts and
are installed as the single pending interaction the router answers against.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from opencode_slack.logger import logger
from opencode_slack.state import BridgeState
from opencode_slack.utils import truncate

from .commands import Notifier
from .interactions import (
    format_permission_prompt,
    format_question_prompt,
    parse_permission_event,
    parse_question_event,
)


class SessionActivityTracker:
    def __init__(
        self,
        state: BridgeState,
        notifier: Notifier,
        *,
        instance_id: int,
        max_chars: int = 3000,
        on_main_idle: Callable[[], None] | None = None,
    ) -> None:
        self._state = state
        self._notifier = notifier
        self._instance_id = instance_id
        self._max_chars = max_chars
        self._on_main_idle = on_main_idle

    async def handle_event(self, event: dict[str, Any]) -> None:
        props = event.get("properties") or {}
        match event.get("type"):
            case "message.part.updated":
                self._on_part_updated(props)
            case "session.created" | "session.updated":
                self._on_session_info(props.get("info") or {})
            case "session.idle":
                await self._on_session_idle(props.get("sessionID", ""))
            case "question.asked":
                await self._on_question(props)
            case "permission.asked" | "permission.updated":
                await self._on_permission(props)
            case "question.replied" | "question.rejected":
                self._on_answered_elsewhere(props.get("requestID") or props.get("id"))
            case "permission.replied":
                self._on_answered_elsewhere(
                    props.get("requestID") or props.get("permissionID") or props.get("id")
                )

    # ------------------------------------------------------------------
    # Streamed output
    # ------------------------------------------------------------------

    def _on_part_updated(self, props: dict[str, Any]) -> None:
        part = props.get("part") or {}
        if part.get("type") != "text":
            return
        session_id = part.get("sessionID")
        if not session_id:
            return

        if self._state.main_session is None and session_id not in self._state.sub_sessions:
            self._state.main_session = session_id
            logger.debug("Main session established", session_id=session_id)

        delta = props.get("delta")
        if delta:
            self._state.buffers[session_id] = self._state.buffers.get(session_id, "") + delta
        else:
            self._state.buffers[session_id] = part.get("text", "")

    def _on_session_info(self, info: dict[str, Any]) -> None:
        session_id = info.get("id")
        parent_id = info.get("parentID")
        if not session_id or not parent_id or not self._state.add_sub_session(session_id):
            return
        logger.debug("Sub-session registered", session_id=session_id, parent_id=parent_id)
        if parent_id == self._state.main_session:
            # The parent's partial text led up to spawning the sub-session; drop it.
            self._state.buffers.pop(parent_id, None)

    async def _on_session_idle(self, session_id: str) -> None:
        if not session_id:
            return
        text = self._state.buffers.pop(session_id, "")
        if session_id in self._state.sub_sessions:
            return

        if text.strip():
            transcript = truncate(text, self._max_chars)
            await self._notifier.send(f"_opencode session [{self._instance_id}]_\n{transcript}")
            logger.info("Session transcript flushed", session_id=session_id, chars=len(text))

        if session_id == self._state.main_session:
            self._state.main_session = None
            if self._on_main_idle is not None:
                self._on_main_idle()

    # ------------------------------------------------------------------
    # Interactive requests
    # ------------------------------------------------------------------

    async def _on_question(self, props: dict[str, Any]) -> None:
        question = parse_question_event(props)
        if question is None:
            logger.warning("Ignoring malformed question event")
            return
        self._state.set_pending(question)
        logger.info("Question pending", request_id=question.request_id)
        await self._notifier.send(format_question_prompt(question))

    async def _on_permission(self, props: dict[str, Any]) -> None:
        permission = parse_permission_event(props)
        if permission is None:
            logger.warning("Ignoring malformed permission event")
            return
        self._state.set_pending(permission)
        logger.info("Permission pending", request_id=permission.request_id)
        await self._notifier.send(format_permission_prompt(permission))

    def _on_answered_elsewhere(self, request_id: str | None) -> None:
        if request_id and self._state.clear_pending(request_id):
            logger.info("Pending interaction answered outside chat", request_id=request_id)
