"""Slack text utilities.

Standalone helpers with no dependency on client state.
"""

from __future__ import annotations

# chat.postMessage truncates text past this many characters.
MAX_MESSAGE_LEN = 40_000


def normalize_chat_name(name: str) -> str:
    """Strip a leading ``#`` and surrounding whitespace from a channel name."""
    cleaned = name.strip()
    if cleaned.startswith("#"):
        cleaned = cleaned[1:]
    return cleaned


def split_text(text: str, *, max_len: int = MAX_MESSAGE_LEN) -> list[str]:
    """Split text into chunks of at most ``max_len`` characters.

    Tries to break on newlines when possible.
    """
    if len(text) <= max_len:
        return [text]

    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_len:
            chunks.append(remaining)
            break
        # Try to find a newline break point
        split_at = remaining.rfind("\n", 0, max_len)
        if split_at <= 0:
            split_at = max_len
        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:].lstrip("\n")
    return chunks


def is_bot_message(event: dict, bot_user_id: str | None) -> bool:
    """True for messages posted by any bot, or by our own bot user."""
    if event.get("bot_id"):
        return True
    return bool(bot_user_id) and event.get("user") == bot_user_id
