"""Bridge between a Slack conversation and an opencode agent server."""

__version__ = "0.3.0"
