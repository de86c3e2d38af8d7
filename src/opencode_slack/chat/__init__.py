"""Chat-facing logic: routing inbound text and turning agent activity into posts."""

from .activity import SessionActivityTracker
from .commands import ControlCommands
from .router import InteractiveRouter
from .shell_gate import ShellGate

__all__ = [
    "ControlCommands",
    "InteractiveRouter",
    "SessionActivityTracker",
    "ShellGate",
]
