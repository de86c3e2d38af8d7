"""Shared test fixtures for opencode-slack."""

from __future__ import annotations

import contextlib
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from opencode_slack.state import BridgeState

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures — importable by test files)
# ---------------------------------------------------------------------------

# Cached property names that must be set via __dict__ (not model_construct).
_CACHED_PROPERTY_NAMES = frozenset({"channel_mode", "target_name", "source_user", "working_dir"})


def make_settings(**overrides):
    """Create a Settings object with sensible defaults for testing.

    Accepts both model fields (slack, poll, etc.) and cached property
    overrides (working_dir, ...).

    Usage::

        s = make_settings(slack=SlackConfig(target="#dev"))
        s = make_settings(shell=ShellConfig(enabled=True), working_dir=tmp_path)
    """
    from opencode_slack.config import (
        LoggingConfig,
        OpenCodeConfig,
        PollConfig,
        Settings,
        ShellConfig,
        SlackConfig,
        TranscriptConfig,
    )

    cached = {k: overrides.pop(k) for k in list(overrides) if k in _CACHED_PROPERTY_NAMES}

    defaults = {
        "slack": SlackConfig(),
        "opencode": OpenCodeConfig(),
        "poll": PollConfig(),
        "shell": ShellConfig(),
        "transcript": TranscriptConfig(),
        "logging": LoggingConfig(),
    }
    defaults.update(overrides)
    s = Settings.model_construct(**defaults)

    for key, value in cached.items():
        s.__dict__[key] = value

    return s


def make_slack_client(
    *,
    members: list[dict] | None = None,
    channels: list[dict] | None = None,
    history: list[dict] | None = None,
    dm_channel: str = "D123",
    bot_user_id: str = "UBOT",
) -> MagicMock:
    """A stand-in for slack_sdk's AsyncWebClient with canned directory data."""
    client = MagicMock()
    client.auth_test = AsyncMock(return_value={"user_id": bot_user_id})
    client.users_list = AsyncMock(
        return_value={
            "members": members
            if members is not None
            else [
                {"id": "UALICE", "name": "alice", "profile": {"display_name": "Alice"}},
                {"id": "UBOB", "name": "bob", "profile": {"display_name": "Bobby"}},
            ]
        }
    )
    client.conversations_list = AsyncMock(
        return_value={
            "channels": channels
            if channels is not None
            else [{"id": "C111", "name": "general"}, {"id": "C123", "name": "dev"}]
        }
    )
    client.conversations_open = AsyncMock(return_value={"channel": {"id": dm_channel}})
    client.conversations_history = AsyncMock(return_value={"messages": history or []})
    client.chat_postMessage = AsyncMock(return_value={"ok": True, "ts": "1700000000.000001"})
    return client


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Ensure each test starts with a clean Settings singleton.

    Uses ``make_settings()`` to build from pure defaults — no config.toml,
    no .env, no file I/O.
    """
    monkeypatch.setattr("opencode_slack.config._settings", make_settings())


# ---------------------------------------------------------------------------
# Reusable fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def state() -> BridgeState:
    return BridgeState()


@pytest.fixture
def slack_client() -> MagicMock:
    return make_slack_client()


@pytest.fixture
def notifier() -> MagicMock:
    """Records every outbound post in ``notifier.send.await_args_list``."""
    n = MagicMock()
    n.send = AsyncMock(return_value=True)
    return n


@pytest.fixture
def opencode() -> MagicMock:
    """OpenCodeClient double with every endpoint as an AsyncMock."""
    client = MagicMock()
    client.append_prompt = AsyncMock()
    client.submit_prompt = AsyncMock()
    client.reply_question = AsyncMock()
    client.reply_permission = AsyncMock()
    client.list_sessions = AsyncMock(return_value=[])
    client.session_messages = AsyncMock(return_value=[])
    client.providers = AsyncMock(return_value={"providers": [], "default": {}})
    client.get_config = AsyncMock(return_value={})
    client.set_model = AsyncMock()
    return client


def sent_texts(notifier: MagicMock) -> list[str]:
    """All texts passed to ``notifier.send`` so far."""
    return [c.args[0] for c in notifier.send.await_args_list]


@contextlib.contextmanager
def patch_socket_mode(*, connect_error: Exception | None = None):
    """Replace bolt's AsyncSocketModeHandler with a stub; yields the stub handler."""
    handler = MagicMock()
    handler.connect_async = AsyncMock(side_effect=connect_error)
    handler.close_async = AsyncMock()
    handler.client.is_connected = AsyncMock(return_value=True)
    with (
        patch("slack_bolt.async_app.AsyncApp"),
        patch(
            "slack_bolt.adapter.socket_mode.async_handler.AsyncSocketModeHandler",
            return_value=handler,
        ),
    ):
        yield handler
