"""Interactive router — decides what an inbound chat message means.

Dispatch order (first match wins):

1. ``/command``            → control commands
2. pending permission      → once / always / reject
3. pending question, digits → pick an option (or ask for custom text)
4. pending question, text  → custom answer
5. ``!command``            → shell gate (only when enabled)
6. anything else           → typed into the agent's prompt and submitted

Answering a question or permission clears the pending interaction *before*
the reply is sent, so a failed reply never leaves a stale prompt behind; the
failure is reported to chat and not retried.
"""

from __future__ import annotations

from opencode_slack.logger import logger
from opencode_slack.opencode import OpenCodeClient
from opencode_slack.state import BridgeState
from opencode_slack.types import PendingPermission, PendingQuestion

from .commands import COMMAND_MARKER, ControlCommands, Notifier
from .interactions import (
    NUMERIC_RE,
    PERMISSION_OPTIONS_TEXT,
    PERMISSION_OUTCOMES,
    is_custom_choice,
    match_option,
    parse_permission_reply,
    valid_range_text,
)
from .shell_gate import ShellGate


class InteractiveRouter:
    def __init__(
        self,
        state: BridgeState,
        opencode: OpenCodeClient,
        notifier: Notifier,
        shell: ShellGate,
        commands: ControlCommands,
    ) -> None:
        self._state = state
        self._opencode = opencode
        self._notifier = notifier
        self._shell = shell
        self._commands = commands

    async def handle(self, text: str) -> None:
        text = text.strip()
        if not text:
            return

        if text.startswith(COMMAND_MARKER):
            await self._commands.handle(text)
            return

        pending = self._state.pending
        if isinstance(pending, PendingPermission):
            await self._handle_permission_reply(pending, text)
            return
        if isinstance(pending, PendingQuestion):
            await self._handle_question_reply(pending, text)
            return

        command = self._shell.command_for(text)
        if command is not None:
            await self._notifier.send(await self._shell.execute(command))
            return

        await self._opencode.append_prompt(text)
        await self._opencode.submit_prompt()
        logger.info("Forwarded chat message to agent", text_len=len(text))

    # ------------------------------------------------------------------
    # Permission
    # ------------------------------------------------------------------

    async def _handle_permission_reply(self, pending: PendingPermission, text: str) -> None:
        response = parse_permission_reply(text)
        if response is None:
            await self._notifier.send(f"Please reply with one of:\n{PERMISSION_OPTIONS_TEXT}")
            return

        self._state.clear_pending(pending.request_id)
        try:
            await self._opencode.reply_permission(pending.session_id, pending.request_id, response)
        except Exception as exc:
            logger.warning("Permission reply failed", request_id=pending.request_id, err=str(exc))
            await self._notifier.send(f"Failed to send permission reply: {exc}")
            return
        logger.info(
            "Permission answered from chat", request_id=pending.request_id, response=response
        )
        await self._notifier.send(f"{PERMISSION_OUTCOMES[response]}: {pending.title}")

    # ------------------------------------------------------------------
    # Question
    # ------------------------------------------------------------------

    async def _handle_question_reply(self, pending: PendingQuestion, text: str) -> None:
        if pending.awaiting_custom or not pending.options:
            await self._answer_question(pending, text)
            return

        if NUMERIC_RE.match(text):
            number = int(text)
            label = match_option(pending, number)
            if label is not None:
                await self._answer_question(pending, label)
            elif is_custom_choice(pending, number):
                pending.awaiting_custom = True
                await self._notifier.send("Type your answer:")
            else:
                await self._notifier.send(valid_range_text(pending))
            return

        if pending.allow_custom:
            await self._answer_question(pending, text)
        else:
            await self._notifier.send(valid_range_text(pending))

    async def _answer_question(self, pending: PendingQuestion, answer: str) -> None:
        self._state.clear_pending(pending.request_id)
        try:
            await self._opencode.reply_question(pending.request_id, [[answer]])
        except Exception as exc:
            logger.warning("Question reply failed", request_id=pending.request_id, err=str(exc))
            await self._notifier.send(f"Failed to send answer: {exc}")
            return
        logger.info("Question answered from chat", request_id=pending.request_id)
        await self._notifier.send(f"Answered: *{answer}*")
