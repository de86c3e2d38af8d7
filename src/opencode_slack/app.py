"""BridgeApp — wires Slack and opencode together and runs until signalled."""

from __future__ import annotations

import asyncio
import random
import signal
import socket
from typing import Any

import aiohttp

from opencode_slack.chat import (
    ControlCommands,
    InteractiveRouter,
    SessionActivityTracker,
    ShellGate,
)
from opencode_slack.config import Settings, get_settings
from opencode_slack.logger import configure_logging, logger
from opencode_slack.opencode import OpenCodeClient, consume_events
from opencode_slack.slack import (
    EndpointResolver,
    SlackNotifier,
    SocketModeListener,
    WatermarkPoller,
)
from opencode_slack.state import BridgeState
from opencode_slack.utils import create_background_task


class BridgeApp:
    def __init__(self, settings: Settings | None = None, slack_client: Any = None) -> None:
        self.settings = settings or get_settings()
        self.state = BridgeState()
        self.instance_id = random.randint(1000, 9999)
        self._slack_client = slack_client
        self._tasks: list[asyncio.Task[Any]] = []
        self._stop = asyncio.Event()

        self.resolver: EndpointResolver | None = None
        self.notifier: SlackNotifier | None = None
        self.router: InteractiveRouter | None = None
        self.tracker: SessionActivityTracker | None = None
        self.poller: WatermarkPoller | None = None
        self.listener: SocketModeListener | None = None
        self._opencode: OpenCodeClient | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def is_configured(self) -> bool:
        s = self.settings
        if not s.slack.bot_token or not s.slack.target:
            logger.warning(
                "Slack bridge disabled — set slack.bot_token and slack.target",
                has_token=bool(s.slack.bot_token),
                target=s.slack.target,
            )
            return False
        return True

    def build(self, http: aiohttp.ClientSession) -> None:
        """Create every component around one shared BridgeState."""
        s = self.settings
        if self._slack_client is None:
            from slack_sdk.web.async_client import AsyncWebClient

            assert s.slack.bot_token is not None
            self._slack_client = AsyncWebClient(token=s.slack.bot_token.get_secret_value())
        client = self._slack_client

        opencode = OpenCodeClient(s.opencode.base_url, http)
        self.resolver = EndpointResolver(client, s.slack.target or "")
        self.notifier = SlackNotifier(client, self.resolver)
        shell = ShellGate(
            enabled=s.shell.enabled,
            timeout=s.shell.timeout,
            max_output=s.shell.max_output,
            cwd=str(s.working_dir),
        )
        commands = ControlCommands(opencode, self.notifier, self.state)
        self.router = InteractiveRouter(self.state, opencode, self.notifier, shell, commands)
        self.tracker = SessionActivityTracker(
            self.state,
            self.notifier,
            instance_id=self.instance_id,
            max_chars=s.transcript.max_chars,
            on_main_idle=self._on_main_idle,
        )
        self.poller = WatermarkPoller(
            client,
            self.resolver,
            self.router,
            self.state,
            s.poll,
            source_user=s.source_user,
        )
        if not s.channel_mode and s.slack.app_token:
            self.listener = SocketModeListener(
                client,
                s.slack.app_token.get_secret_value(),
                self.resolver,
                self.router,
                source_user=s.source_user,
                on_lost=self._on_listener_lost,
            )
        self._opencode = opencode
        if shell.enabled:
            logger.warning("Shell execution from chat is ENABLED", marker="!")

    def _on_main_idle(self) -> None:
        """The agent is ready for input: poll now and return to the fast cadence."""
        if not self.settings.channel_mode or self.poller is None:
            return
        self.state.touch()
        self.poller.wake()

    def _on_listener_lost(self) -> None:
        """Socket Mode gave up after startup: polling takes over for the rest of the run."""
        self.listener = None
        if self._stop.is_set():
            return
        # Re-seed from the newest message so texts already routed in realtime aren't replayed.
        self.state.watermark_ready = False
        self._start_poller()

    def _start_poller(self) -> None:
        assert self.poller is not None
        self._tasks.append(create_background_task(self.poller.run(), name="slack-poller"))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        assert self.notifier is not None and self.poller is not None
        assert self.tracker is not None and self._opencode is not None

        banner = (
            f"*###opencode instance ({self.instance_id}) from "
            f"{socket.gethostname()}:{self.settings.working_dir} started.###*"
        )
        await self.notifier.send(banner)
        await self.poller.initialize()

        self._tasks.append(
            create_background_task(
                consume_events(self._opencode, self.tracker.handle_event), name="opencode-events"
            )
        )
        if self.listener is not None:
            try:
                await self.listener.connect()
            except Exception as exc:
                logger.warning("Socket Mode unavailable, falling back to polling", err=str(exc))
                self.listener = None
        if self.listener is None:
            self._start_poller()

        logger.info(
            "Slack bridge running",
            instance_id=self.instance_id,
            target=self.settings.slack.target,
            mode="channel" if self.settings.channel_mode else "dm",
            inbound="socket-mode" if self.listener else "polling",
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        if self.listener is not None:
            await self.listener.disconnect()
        logger.info("Slack bridge stopped", instance_id=self.instance_id)

    def request_stop(self, sig_name: str = "") -> None:
        logger.info("Shutdown signal received", signal=sig_name)
        self._stop.set()

    async def run(self) -> None:
        """Main entry point — runs until SIGINT/SIGTERM."""
        configure_logging(self.settings.logging.level)
        if not self.is_configured():
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self.request_stop(s.name))

        async with aiohttp.ClientSession() as http:
            self.build(http)
            await self.start()
            await self._stop.wait()
            await self.stop()
