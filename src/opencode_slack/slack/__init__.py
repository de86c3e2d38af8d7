"""Slack side of the bridge: endpoint resolution, outbound posts, inbound polling."""

from .listener import SocketModeListener
from .notifier import SlackNotifier
from .poller import WatermarkPoller
from .resolver import EndpointResolver

__all__ = [
    "EndpointResolver",
    "SlackNotifier",
    "SocketModeListener",
    "WatermarkPoller",
]
