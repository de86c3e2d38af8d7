"""Tests for InteractiveRouter dispatch: commands, pending replies, shell, prompt."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import sent_texts

from opencode_slack.chat.router import InteractiveRouter
from opencode_slack.chat.shell_gate import ShellGate
from opencode_slack.slack.notifier import SlackNotifier
from opencode_slack.slack.resolver import EndpointResolver
from opencode_slack.types import PendingPermission, PendingQuestion, QuestionOption


def _question(*, options=("JWT", "Sessions", "OAuth"), allow_custom=True) -> PendingQuestion:
    return PendingQuestion(
        request_id="que_1",
        session_id="ses_1",
        text="Which auth strategy?",
        options=[QuestionOption(label=label) for label in options],
        allow_custom=allow_custom,
    )


def _permission() -> PendingPermission:
    return PendingPermission(request_id="per_1", session_id="ses_1", title="bash: rm -rf build")


@pytest.fixture
def commands():
    c = MagicMock()
    c.handle = AsyncMock()
    return c


@pytest.fixture
def router(state, opencode, notifier, commands):
    return InteractiveRouter(state, opencode, notifier, ShellGate(enabled=False), commands)


class TestPlainInput:
    @pytest.mark.asyncio
    async def test_text_is_appended_then_submitted(self, router, opencode):
        calls: list[str] = []
        opencode.append_prompt = AsyncMock(side_effect=lambda t: calls.append(f"append:{t}"))
        opencode.submit_prompt = AsyncMock(side_effect=lambda: calls.append("submit"))

        await router.handle("  fix the failing test  ")

        assert calls == ["append:fix the failing test", "submit"]

    @pytest.mark.asyncio
    async def test_blank_text_is_ignored(self, router, opencode, notifier):
        await router.handle("   ")

        opencode.append_prompt.assert_not_awaited()
        notifier.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_shell_marker_is_plain_input_when_disabled(self, router, opencode):
        await router.handle("!ls")

        opencode.append_prompt.assert_awaited_once_with("!ls")
        opencode.submit_prompt.assert_awaited_once()


class TestCommands:
    @pytest.mark.asyncio
    async def test_slash_goes_to_commands(self, router, commands, opencode):
        await router.handle("/models")

        commands.handle.assert_awaited_once_with("/models")
        opencode.append_prompt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_commands_win_over_pending_question(self, router, state, commands):
        state.set_pending(_question())

        await router.handle("/model")

        commands.handle.assert_awaited_once_with("/model")
        assert state.pending is not None


class TestQuestionReplies:
    @pytest.mark.asyncio
    async def test_number_picks_option_label(self, router, state, opencode, notifier):
        state.set_pending(_question())

        await router.handle("2")

        opencode.reply_question.assert_awaited_once_with("que_1", [["Sessions"]])
        assert state.pending is None
        assert sent_texts(notifier) == ["Answered: *Sessions*"]

    @pytest.mark.asyncio
    async def test_custom_entry_then_free_text(self, router, state, opencode, notifier):
        state.set_pending(_question())

        await router.handle("4")

        opencode.reply_question.assert_not_awaited()
        assert state.pending is not None and state.pending.awaiting_custom
        assert sent_texts(notifier) == ["Type your answer:"]

        await router.handle("Magic links")

        opencode.reply_question.assert_awaited_once_with("que_1", [["Magic links"]])
        assert state.pending is None

    @pytest.mark.asyncio
    async def test_digits_after_custom_choice_are_the_answer(self, router, state, opencode):
        state.set_pending(_question())

        await router.handle("4")
        await router.handle("42")

        opencode.reply_question.assert_awaited_once_with("que_1", [["42"]])

    @pytest.mark.asyncio
    async def test_out_of_range_reports_range_and_stays_pending(
        self, router, state, opencode, notifier
    ):
        state.set_pending(_question())

        await router.handle("9")

        opencode.reply_question.assert_not_awaited()
        assert state.pending is not None
        assert sent_texts(notifier) == ["Please reply with a number between 1 and 4."]

    @pytest.mark.asyncio
    async def test_zero_is_out_of_range(self, router, state, opencode):
        state.set_pending(_question())

        await router.handle("0")

        opencode.reply_question.assert_not_awaited()
        assert state.pending is not None

    @pytest.mark.asyncio
    async def test_free_text_answers_directly_when_custom_allowed(self, router, state, opencode):
        state.set_pending(_question())

        await router.handle("Passkeys please")

        opencode.reply_question.assert_awaited_once_with("que_1", [["Passkeys please"]])

    @pytest.mark.asyncio
    async def test_custom_disallowed_rejects_free_text(self, router, state, opencode, notifier):
        state.set_pending(_question(allow_custom=False))

        await router.handle("Passkeys")
        await router.handle("4")

        opencode.reply_question.assert_not_awaited()
        assert sent_texts(notifier) == [
            "Please reply with a number between 1 and 3.",
            "Please reply with a number between 1 and 3.",
        ]

    @pytest.mark.asyncio
    async def test_question_without_options_takes_any_text(self, router, state, opencode):
        state.set_pending(_question(options=()))

        await router.handle("3")

        opencode.reply_question.assert_awaited_once_with("que_1", [["3"]])

    @pytest.mark.asyncio
    async def test_reply_failure_is_reported_and_pending_cleared(
        self, router, state, opencode, notifier
    ):
        state.set_pending(_question())
        opencode.reply_question = AsyncMock(side_effect=RuntimeError("503"))

        await router.handle("1")

        assert state.pending is None
        assert sent_texts(notifier) == ["Failed to send answer: 503"]

    @pytest.mark.asyncio
    async def test_pending_question_blocks_prompt_forwarding(self, router, state, opencode):
        state.set_pending(_question())

        await router.handle("1")

        opencode.append_prompt.assert_not_awaited()


class TestPermissionReplies:
    @pytest.mark.parametrize(
        ("reply", "response", "outcome"),
        [
            ("y", "once", "Allowed once"),
            ("1", "once", "Allowed once"),
            ("always", "always", "Always allowed"),
            ("A", "always", "Always allowed"),
            ("no", "reject", "Rejected"),
            ("3", "reject", "Rejected"),
        ],
    )
    @pytest.mark.asyncio
    async def test_reply_tokens(self, router, state, opencode, notifier, reply, response, outcome):
        state.set_pending(_permission())

        await router.handle(reply)

        opencode.reply_permission.assert_awaited_once_with("ses_1", "per_1", response)
        assert state.pending is None
        assert sent_texts(notifier) == [f"{outcome}: bash: rm -rf build"]

    @pytest.mark.asyncio
    async def test_unrecognized_reply_keeps_pending(self, router, state, opencode, notifier):
        state.set_pending(_permission())

        await router.handle("maybe")

        opencode.reply_permission.assert_not_awaited()
        assert state.pending is not None
        assert sent_texts(notifier)[0].startswith("Please reply with one of:")

    @pytest.mark.asyncio
    async def test_reply_failure_is_reported_and_pending_cleared(
        self, router, state, opencode, notifier
    ):
        state.set_pending(_permission())
        opencode.reply_permission = AsyncMock(side_effect=RuntimeError("gone"))

        await router.handle("y")

        assert state.pending is None
        assert sent_texts(notifier) == ["Failed to send permission reply: gone"]


class TestShell:
    @pytest.mark.asyncio
    async def test_enabled_shell_runs_command_and_posts_output(
        self, state, opencode, notifier, commands, tmp_path
    ):
        router = InteractiveRouter(
            state, opencode, notifier, ShellGate(enabled=True, cwd=str(tmp_path)), commands
        )

        await router.handle("!echo hello")

        opencode.append_prompt.assert_not_awaited()
        assert sent_texts(notifier) == ["```\nhello\n```"]

    @pytest.mark.asyncio
    async def test_pending_question_wins_over_shell(self, state, opencode, notifier, commands):
        router = InteractiveRouter(state, opencode, notifier, ShellGate(enabled=True), commands)
        state.set_pending(_question())

        await router.handle("!ls")

        opencode.reply_question.assert_awaited_once_with("que_1", [["!ls"]])

    @pytest.mark.asyncio
    async def test_capped_shell_output_keeps_fence_in_one_post(
        self, state, opencode, commands, slack_client
    ):
        notifier = SlackNotifier(slack_client, EndpointResolver(slack_client, "#dev"))
        router = InteractiveRouter(
            state, opencode, notifier, ShellGate(enabled=True, max_output=3000), commands
        )

        await router.handle("!head -c 5000 /dev/zero | tr '\\0' y")

        slack_client.chat_postMessage.assert_awaited_once()
        text = slack_client.chat_postMessage.await_args.kwargs["text"]
        assert text.startswith("```\n")
        assert text.endswith("...(truncated)\n```")
