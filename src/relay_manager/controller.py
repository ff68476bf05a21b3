"""
Relay pulse controller.

Sends the ON and/or OFF batch for a relay selection over a
:class:`~relay_manager.transport.SerialChannel`, timing the gap between
them in pulse mode.

Two modes, chosen by :class:`~relay_manager.config.RunConfig`:

* **Timed pulse** (``duration_ms > 0``): ON batch, wait, OFF batch,
  repeated ``impulses`` times.
* **Direct state-set**: the batch for the requested state, sent once.

Every phase opens the channel, sends, and closes it again.  Any failure
stops the whole run; nothing already sent is undone.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import NoReturn

from .config import RunConfig
from .constants import WAIT_SLICE_S
from .exceptions import RunAbortedError
from .protocol import RelayState, encode_batch, format_frames
from .transport import SerialChannel

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """Steps of a pulse cycle, in order."""

    IDLE = "idle"
    OPENING = "opening"
    SENDING = "sending"
    CLOSING = "closing"
    WAITING = "waiting"
    DONE = "done"


class PulseController:
    """Drives relay batches through a serial channel.

    Args:
        channel: A located :class:`SerialChannel` (not held open).
        config: The run to perform.
        clock: Monotonic clock in seconds.
        sleep: Sleep function used while waiting out a pulse.
    """

    def __init__(
        self,
        channel: SerialChannel,
        config: RunConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.channel = channel
        self.config = config
        self._clock = clock
        self._sleep = sleep

        self.on_batch = self._build_batch(RelayState.ON) if config.sends_on else None
        self.off_batch = self._build_batch(RelayState.OFF) if config.sends_off else None

        self.remaining = config.impulses if config.timed else 1
        self.completed_cycles = 0
        self.phase_log: list[tuple[Phase, RelayState | None]] = [(Phase.IDLE, None)]

    # -- Public API ---------------------------------------------------------

    def run(self) -> int:
        """Perform every cycle and return how many completed.

        Raises:
            RunAbortedError: If an open, send, or close fails.
        """
        try:
            while self.remaining > 0:
                self._cycle()
                self.remaining -= 1
                self.completed_cycles += 1
                logger.info(
                    "Cycle %d done, %d remaining", self.completed_cycles, self.remaining
                )
        finally:
            # An aborted send leaves the port open
            if self.channel.is_open:
                self.channel.close()
        self._enter(Phase.DONE)
        return self.completed_cycles

    # -- Internal -----------------------------------------------------------

    def _build_batch(self, state: RelayState) -> bytes:
        batch = encode_batch(self.config.relays, state)
        logger.info("%s relays message: [ %s ]", state.name, format_frames(batch))
        return batch

    def _cycle(self) -> None:
        sent_at = None
        if self.on_batch is not None:
            sent_at = self._transmit(self.on_batch, RelayState.ON)

        if self.config.timed and sent_at is not None:
            self._enter(Phase.WAITING)
            self._wait_since(sent_at, self.config.duration_ms)

        if self.off_batch is not None:
            self._transmit(self.off_batch, RelayState.OFF)

    def _transmit(self, batch: bytes, state: RelayState) -> float:
        """Open, send *batch*, close.  Raises on the first failing step.

        Returns the clock reading taken as soon as the batch was written.
        """
        self._enter(Phase.OPENING, state)
        if not self.channel.try_open(self.config.open_tries):
            self._abort(f"Could not open port before sending {state.name} message", Phase.OPENING)

        self._enter(Phase.SENDING, state)
        if not self.channel.send(batch):
            self._abort(f"Could not send {state.name} message", Phase.SENDING)
        sent_at = self._clock()

        self._enter(Phase.CLOSING, state)
        if not self.channel.try_close(self.config.close_tries):
            self._abort(f"Could not close port after sending {state.name} message", Phase.CLOSING)
        return sent_at

    def _wait_since(self, start: float, duration_ms: int) -> None:
        """Block until *duration_ms* milliseconds have passed since *start*.

        Sleeps in short slices between clock checks.
        """
        duration_s = duration_ms / 1000
        while self._clock() - start < duration_s:
            self._sleep(WAIT_SLICE_S)

    def _enter(self, phase: Phase, state: RelayState | None = None) -> None:
        self.phase_log.append((phase, state))

    def _abort(self, message: str, phase: Phase) -> NoReturn:
        logger.error("%s on %s", message, self.channel.name)
        raise RunAbortedError(message, phase.value, self.completed_cycles)
