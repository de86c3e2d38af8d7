"""Question and permission prompts: event parsing, chat formatting, reply parsing.

Pure functions with no I/O, shared by the activity tracker (which installs
and posts prompts) and the router (which interprets replies).

A question prompt enumerates its options, plus one extra "type your own
answer" entry when custom answers are allowed::

    *Which auth strategy?*
    1. JWT tokens — stateless
    2. Session cookies
    3. Type your own answer
    _Reply with a number_
"""

from __future__ import annotations

import re
from typing import Any

from opencode_slack.types import (
    PendingPermission,
    PendingQuestion,
    PermissionReply,
    QuestionOption,
)

NUMERIC_RE = re.compile(r"^\d+$")

PERMISSION_TOKENS: dict[str, PermissionReply] = {
    "1": "once",
    "y": "once",
    "yes": "once",
    "once": "once",
    "allow": "once",
    "2": "always",
    "a": "always",
    "always": "always",
    "3": "reject",
    "n": "reject",
    "no": "reject",
    "reject": "reject",
    "deny": "reject",
}

PERMISSION_OUTCOMES: dict[PermissionReply, str] = {
    "once": "Allowed once",
    "always": "Always allowed",
    "reject": "Rejected",
}

PERMISSION_OPTIONS_TEXT = "1. Allow once (`y`)\n2. Always allow (`a`)\n3. Reject (`n`)"


# -- Event parsing --------------------------------------------------------------


def parse_question_event(props: dict[str, Any]) -> PendingQuestion | None:
    """Build a PendingQuestion from ``question.asked`` properties.

    Only the first question of a multi-question request is presented.
    """
    request_id = props.get("id")
    questions = props.get("questions") or []
    if not request_id or not questions:
        return None
    first = questions[0]
    options = [
        QuestionOption(
            label=str(opt.get("label", "")),
            description=str(opt.get("description") or ""),
        )
        for opt in first.get("options") or []
        if isinstance(opt, dict) and opt.get("label")
    ]
    return PendingQuestion(
        request_id=request_id,
        session_id=props.get("sessionID", ""),
        text=str(first.get("question", "")),
        header=str(first.get("header") or ""),
        options=options,
        allow_custom=first.get("custom", True) is not False or not options,
    )


def parse_permission_event(props: dict[str, Any]) -> PendingPermission | None:
    """Build a PendingPermission from ``permission.asked`` / ``permission.updated``."""
    request_id = props.get("id")
    if not request_id:
        return None
    title = props.get("title")
    if not title:
        permission = props.get("permission") or props.get("type") or "permission"
        patterns = props.get("patterns") or props.get("pattern") or []
        if isinstance(patterns, str):
            patterns = [patterns]
        title = f"{permission}: {', '.join(patterns)}" if patterns else str(permission)
    return PendingPermission(
        request_id=request_id,
        session_id=props.get("sessionID", ""),
        title=str(title),
    )


# -- Prompt formatting ----------------------------------------------------------


def format_question_prompt(question: PendingQuestion) -> str:
    lines: list[str] = []
    if question.header:
        lines.append(f"_{question.header}_")
    lines.append(f"*{question.text}*" if question.text else "*The agent has a question*")
    for i, opt in enumerate(question.options, 1):
        if opt.description:
            lines.append(f"{i}. {opt.label} — {opt.description}")
        else:
            lines.append(f"{i}. {opt.label}")
    if question.allow_custom and question.options:
        lines.append(f"{len(question.options) + 1}. Type your own answer")
    lines.append("_Reply with a number_" if question.options else "_Reply with your answer_")
    return "\n".join(lines)


def format_permission_prompt(permission: PendingPermission) -> str:
    return f"*Permission requested:* {permission.title}\n{PERMISSION_OPTIONS_TEXT}"


def valid_range_text(question: PendingQuestion) -> str:
    upper = len(question.options) + (1 if question.allow_custom else 0)
    if upper == 0:
        return "Reply with your answer."
    return f"Please reply with a number between 1 and {upper}."


# -- Reply parsing --------------------------------------------------------------


def parse_permission_reply(text: str) -> PermissionReply | None:
    return PERMISSION_TOKENS.get(text.strip().lower())


def match_option(question: PendingQuestion, number: int) -> str | None:
    """Return the label for a 1-based option number, or None if out of range."""
    if 1 <= number <= len(question.options):
        return question.options[number - 1].label
    return None


def is_custom_choice(question: PendingQuestion, number: int) -> bool:
    return question.allow_custom and bool(question.options) and number == len(question.options) + 1
