"""Client side of the opencode server API."""

from .client import OpenCodeClient
from .events import consume_events

__all__ = ["OpenCodeClient", "consume_events"]
