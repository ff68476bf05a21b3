"""Shared pytest fixtures for relay manager tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import NamedTuple
from unittest.mock import patch

import pytest
import serial

from relay_manager.transport import SerialChannel, SerialConnectionConfig


class Event(NamedTuple):
    kind: str  # "open", "write" or "close"
    data: bytes
    at: float


class FakeClock:
    """Monotonic clock that only moves when :meth:`sleep` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeSerial:
    """Lightweight stand-in for an open ``serial.Serial``.

    Implements the subset of the pyserial API used by
    :class:`~relay_manager.transport.SerialChannel`: ``write``, ``flush``,
    ``close``, ``is_open`` and a settable ``write_timeout``.  Every call is
    reported to the owning :class:`FakePort`.
    """

    def __init__(self, port: FakePort, settings: dict) -> None:
        self.port = port
        self.settings = settings
        self.is_open: bool = True
        self._write_timeout = settings.get("write_timeout")
        self.flushed = 0

    @property
    def write_timeout(self) -> float | None:
        return self._write_timeout

    @write_timeout.setter
    def write_timeout(self, value: float | None) -> None:
        if self.port.reconfigure_fails:
            raise serial.SerialException("reconfigure failed: device disconnected")
        self._write_timeout = value

    def write(self, data: bytes) -> int:
        return self.port.write(data)

    def flush(self) -> None:
        self.flushed += 1

    def close(self) -> None:
        self.port.close()
        self.is_open = False


class FakePort:
    """Replaces the ``serial.Serial`` constructor for a whole test.

    Knobs:

    * ``open_failures``: how many of the next opens raise ``SerialException``
      (``float("inf")`` for always).
    * ``close_failures``: same for closes.
    * ``max_chunk``: cap on bytes accepted per ``write`` (partial writes).
    * ``failing_writes``: 1-based write call numbers that raise.
    * ``reconfigure_fails``: setting ``write_timeout`` on an open port raises.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self.clock = clock
        self.events: list[Event] = []
        self.open_failures: float = 0
        self.close_failures: float = 0
        self.max_chunk: int | None = None
        self.failing_writes: set[int] = set()
        self.reconfigure_fails = False
        self.open_attempts = 0
        self.write_calls = 0
        self.instances: list[FakeSerial] = []

    # -- Views for assertions ----------------------------------------------

    @property
    def wire(self) -> bytes:
        """Every byte that made it onto the wire, in order."""
        return b"".join(e.data for e in self.events if e.kind == "write")

    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]

    # -- Behaviour ---------------------------------------------------------

    def __call__(self, **settings) -> FakeSerial:
        self.open_attempts += 1
        if self.open_failures > 0:
            self.open_failures -= 1
            raise serial.SerialException("could not open port: Access is denied")
        self._record("open")
        ser = FakeSerial(self, settings)
        self.instances.append(ser)
        return ser

    def write(self, data: bytes) -> int:
        self.write_calls += 1
        if self.write_calls in self.failing_writes:
            raise serial.SerialException("write failed: device disconnected")
        chunk = bytes(data if self.max_chunk is None else data[: self.max_chunk])
        self._record("write", chunk)
        return len(chunk)

    def close(self) -> None:
        if self.close_failures > 0:
            self.close_failures -= 1
            raise serial.SerialException("close failed")
        self._record("close")

    def _record(self, kind: str, data: bytes = b"") -> None:
        self.events.append(Event(kind, data, self.clock() if self.clock else 0.0))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    """Return a fresh ``FakeClock``."""
    return FakeClock()


@pytest.fixture()
def fake_port(clock: FakeClock):
    """Patch ``serial.Serial`` with a ``FakePort`` for the whole test."""
    port = FakePort(clock)
    with patch("relay_manager.transport.serial.Serial", port):
        yield port


@pytest.fixture()
def channel(fake_port: FakePort, clock: FakeClock) -> SerialChannel:
    """Return a closed ``SerialChannel`` on a fake device.

    Retry backoff goes through the fake clock, so ``clock.sleeps`` records it.
    """
    return SerialChannel(SerialConnectionConfig(device="/dev/fake"), sleep=clock.sleep)
