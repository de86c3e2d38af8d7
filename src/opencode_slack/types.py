"""Data models for the bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

PermissionReply = Literal["once", "always", "reject"]


@dataclass
class InboundMessage:
    """A Slack message that survived author/subtype/watermark filtering."""

    ts: str  # Slack message timestamp, e.g. "1712345678.000100"
    user: str
    text: str
    channel: str


@dataclass
class QuestionOption:
    label: str
    description: str = ""


@dataclass
class PendingQuestion:
    """A multiple-choice question the agent is blocked on."""

    request_id: str
    session_id: str
    text: str
    options: list[QuestionOption] = field(default_factory=list)
    header: str = ""
    allow_custom: bool = True
    awaiting_custom: bool = False  # user picked "type your own answer"


@dataclass
class PendingPermission:
    """A tool permission request the agent is blocked on."""

    request_id: str
    session_id: str
    title: str


type PendingInteraction = PendingQuestion | PendingPermission
