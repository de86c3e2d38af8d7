"""Centralized configuration — Pydantic BaseSettings with TOML + dotenv sources.

Non-secret settings live in config.toml. Secrets (Slack tokens) live in .env.
Environment variables override both using ``__`` as the nested delimiter
(e.g. ``SLACK__BOT_TOKEN``, ``SHELL__ENABLED``). Tokens use SecretStr for
masking in logs.

Priority (highest wins): init args > env vars > .env > config.toml

Usage::

    from opencode_slack.config import get_settings

    s = get_settings()
    print(s.slack.target)
    print(s.poll.fast_interval)
"""

from __future__ import annotations

import os
from functools import cached_property
from pathlib import Path

from pydantic import BaseModel, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in config.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models — reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class SlackConfig(_StrictModel):
    bot_token: SecretStr | None = None
    app_token: SecretStr | None = None  # Socket Mode; only used in DM mode
    target: str | None = None  # "#channel" or a Slack user name
    source_user: str | None = None  # only accept messages from this user

    @field_validator("target", "source_user")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class OpenCodeConfig(_StrictModel):
    base_url: str = "http://127.0.0.1:4096"
    directory: str | None = None  # shown in the startup banner; defaults to cwd

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class PollConfig(_StrictModel):
    fast_interval: float = 3.0  # seconds
    slow_interval: float = 60.0
    idle_after: float = 120.0  # switch to slow_interval after this long without input
    page_size: int = 10

    @field_validator("page_size")
    @classmethod
    def clamp_page_size(cls, v: int) -> int:
        return max(1, min(v, 1000))


class ShellConfig(_StrictModel):
    enabled: bool = False
    timeout: float = 30.0  # seconds
    max_output: int = 3000  # characters sent back to chat


class TranscriptConfig(_StrictModel):
    max_chars: int = 3000


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="config.toml",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    slack: SlackConfig = SlackConfig()
    opencode: OpenCodeConfig = OpenCodeConfig()
    poll: PollConfig = PollConfig()
    shell: ShellConfig = ShellConfig()
    transcript: TranscriptConfig = TranscriptConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > config.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # --- Computed properties ---

    @cached_property
    def channel_mode(self) -> bool:
        """True when the target names a channel (``#name``) rather than a user."""
        return bool(self.slack.target and self.slack.target.startswith("#"))

    @cached_property
    def target_name(self) -> str:
        return (self.slack.target or "").removeprefix("#")

    @cached_property
    def source_user(self) -> str | None:
        """The only author whose messages are routed to the agent.

        In DM mode this is the target user; in channel mode it is the optional
        ``slack.source_user`` (None means any human author is accepted).
        """
        if self.channel_mode:
            return self.slack.source_user
        return self.slack.source_user or self.slack.target

    @cached_property
    def working_dir(self) -> Path:
        return Path(self.opencode.directory or os.getcwd())


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
