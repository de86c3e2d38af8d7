"""Mutable bridge state — one instance per running bridge.

Every component receives the same ``BridgeState`` rather than reaching for
module globals, so tests can run several independent bridges side by side.
Each field has exactly one writer:

* ``watermark`` — the poller
* ``pending`` — the activity tracker (install) and the router (resolve)
* ``buffers`` / ``sub_sessions`` / ``main_session`` — the activity tracker
* ``last_activity`` — the poller and the tracker's main-idle hook
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field

from opencode_slack.logger import logger
from opencode_slack.types import PendingInteraction


# Oldest sub-session ids are forgotten past this many.
MAX_SUB_SESSIONS = 500


def ts_key(ts: str) -> float:
    """Sort/compare key for Slack ``ts`` strings."""
    try:
        return float(ts)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class BridgeState:
    # Watermark: ts of the last inbound message handed to the router.
    watermark: str | None = None
    watermark_ready: bool = False

    # At most one outstanding interaction; a newer one overwrites it.
    pending: PendingInteraction | None = None

    # Per-session streamed text, keyed by opencode session id.
    buffers: dict[str, str] = field(default_factory=dict)
    sub_sessions: set[str] = field(default_factory=set)
    _sub_order: deque[str] = field(default_factory=deque, init=False, repr=False, compare=False)
    main_session: str | None = None

    # Monotonic time of the last observed inbound activity.
    last_activity: float = field(default_factory=time.monotonic)

    # -- watermark --------------------------------------------------------

    def is_seen(self, ts: str) -> bool:
        return self.watermark is not None and ts_key(ts) <= ts_key(self.watermark)

    def advance_watermark(self, ts: str) -> None:
        """Move the watermark forward to ``ts``; never moves backwards."""
        if self.is_seen(ts):
            return
        self.watermark = ts

    # -- sessions ---------------------------------------------------------

    def add_sub_session(self, session_id: str) -> bool:
        """Record ``session_id`` as a sub-session. Returns False if already known."""
        if session_id in self.sub_sessions:
            return False
        self.sub_sessions.add(session_id)
        self._sub_order.append(session_id)
        while len(self._sub_order) > MAX_SUB_SESSIONS:
            self.sub_sessions.discard(self._sub_order.popleft())
        return True

    # -- activity clock ---------------------------------------------------

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def idle_for(self) -> float:
        return time.monotonic() - self.last_activity

    # -- pending interaction ----------------------------------------------

    def set_pending(self, interaction: PendingInteraction) -> None:
        if self.pending is not None:
            logger.info(
                "Replacing unanswered interaction",
                old_request_id=self.pending.request_id,
                new_request_id=interaction.request_id,
            )
        self.pending = interaction

    def clear_pending(self, request_id: str | None = None) -> bool:
        """Clear the pending interaction.

        With ``request_id``, only clears when it matches the pending one, so a
        late notification about an older request can't wipe a newer prompt.
        """
        if self.pending is None:
            return False
        if request_id is not None and self.pending.request_id != request_id:
            return False
        self.pending = None
        return True
