"""Entry point for `python -m opencode_slack` / `opencode-slack`.

Subcommands:
    opencode-slack              Run the bridge (default)
    opencode-slack check        Resolve the Slack target and exit
"""

from __future__ import annotations

import argparse
import asyncio
import sys


def _run() -> None:
    from opencode_slack.app import BridgeApp

    app = BridgeApp()
    asyncio.run(app.run())


async def _check() -> int:
    from slack_sdk.web.async_client import AsyncWebClient

    from opencode_slack.config import get_settings
    from opencode_slack.slack import EndpointResolver

    s = get_settings()
    if not s.slack.bot_token or not s.slack.target:
        print("Error: slack.bot_token and slack.target must be set", file=sys.stderr)
        return 1
    client = AsyncWebClient(token=s.slack.bot_token.get_secret_value())
    channel_id = await EndpointResolver(client, s.slack.target).resolve()
    if channel_id is None:
        print(f"Error: could not resolve {s.slack.target}", file=sys.stderr)
        return 1
    print(f"{s.slack.target} -> {channel_id}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="opencode-slack",
        description="Drive an opencode session from Slack",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("check", help="Resolve the configured Slack target and exit")

    args = parser.parse_args()

    match args.command:
        case "check":
            sys.exit(asyncio.run(_check()))
        case _:
            _run()


if __name__ == "__main__":
    main()
