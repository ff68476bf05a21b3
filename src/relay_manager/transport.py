"""
Serial transport layer for the relay chain.

Handles the physical serial connection: locating the device, bounded
retries on open/close, and writing a frame batch to completion.  Knows
nothing about what the bytes mean; that is :mod:`protocol`'s job.

The port is not held open between phases.  Each phase of
a run opens the channel, writes one batch, and closes it again::

    channel = SerialChannel.locate(7)
    if channel.try_open(50):
        channel.send(batch)
        channel.try_close(50)
"""

from __future__ import annotations

import logging
import os
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass

import serial

from .constants import (
    DEFAULT_BAUD,
    MAX_TRIES_TO_LOCATE,
    READ_INTERVAL_TIMEOUT_MS,
    READ_TOTAL_TIMEOUT_CONSTANT_MS,
    READ_TOTAL_TIMEOUT_MULTIPLIER_MS,
    RETRY_BACKOFF_S,
    WRITE_TOTAL_TIMEOUT_CONSTANT_MS,
    WRITE_TOTAL_TIMEOUT_MULTIPLIER_MS,
)
from .exceptions import ConnectionError, DeviceNotFoundError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Retry helper
# ---------------------------------------------------------------------------


def with_retry(
    operation: Callable[[], bool],
    max_attempts: int,
    backoff: float = RETRY_BACKOFF_S,
    *,
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call *operation* until it returns ``True`` or *max_attempts* run out.

    Sleeps *backoff* seconds between attempts, never after the last one.

    Returns:
        ``True`` as soon as one attempt succeeds, ``False`` otherwise.
    """
    for attempt in range(1, max_attempts + 1):
        if operation():
            return True
        logger.error("Try %d/%d: unable to %s", attempt, max_attempts, label)
        if attempt < max_attempts:
            sleep(backoff)
    return False


# ---------------------------------------------------------------------------
# Connection config
# ---------------------------------------------------------------------------


def device_name(port_number: int, platform: str = sys.platform) -> str:
    """Map a COM port number to the platform's device path."""
    if platform.startswith("win"):
        return f"COM{port_number}"
    return f"/dev/ttyUSB{port_number}"


@dataclass(frozen=True)
class SerialConnectionConfig:
    """Line settings and timeouts for one serial device.

    Timeouts are in milliseconds.  pyserial has no per-byte read multiplier,
    so the read side maps to ``timeout`` (constant) and
    ``inter_byte_timeout`` (interval); the write side is computed per call
    by :meth:`write_timeout`.
    """

    device: str
    baudrate: int = DEFAULT_BAUD
    bytesize: int = serial.EIGHTBITS
    stopbits: float = serial.STOPBITS_ONE
    parity: str = serial.PARITY_NONE
    read_interval_ms: int = READ_INTERVAL_TIMEOUT_MS
    read_constant_ms: int = READ_TOTAL_TIMEOUT_CONSTANT_MS
    read_multiplier_ms: int = READ_TOTAL_TIMEOUT_MULTIPLIER_MS
    write_constant_ms: int = WRITE_TOTAL_TIMEOUT_CONSTANT_MS
    write_multiplier_ms: int = WRITE_TOTAL_TIMEOUT_MULTIPLIER_MS

    @classmethod
    def for_port(cls, port_number: int, baudrate: int = DEFAULT_BAUD) -> SerialConnectionConfig:
        return cls(device=device_name(port_number), baudrate=baudrate)

    def write_timeout(self, length: int) -> float:
        """Seconds allowed to write *length* bytes."""
        return (self.write_constant_ms + self.write_multiplier_ms * length) / 1000


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------


class SerialChannel:
    """Owns the serial connection to the relay chain.

    Args:
        config: Device name, line settings and timeouts.
        backoff: Seconds to sleep between retry attempts.
        sleep: Sleep function used for backoff (injectable for tests).
    """

    def __init__(
        self,
        config: SerialConnectionConfig,
        backoff: float = RETRY_BACKOFF_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.backoff = backoff
        self._sleep = sleep
        self._ser: serial.Serial | None = None

    @property
    def name(self) -> str:
        return self.config.device

    # -- Lifecycle ----------------------------------------------------------

    @classmethod
    def locate(
        cls,
        port_number: int,
        max_tries: int = MAX_TRIES_TO_LOCATE,
        baudrate: int = DEFAULT_BAUD,
        *,
        backoff: float = RETRY_BACKOFF_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> SerialChannel:
        """Find the device for *port_number* and check it accepts our settings.

        The port is opened with the full line configuration and released
        straight away; nothing is held open on return.

        Raises:
            DeviceNotFoundError: If every one of *max_tries* opens failed, or
                the port could not be released afterwards.
        """
        channel = cls(SerialConnectionConfig.for_port(port_number, baudrate), backoff, sleep)
        found = with_retry(
            channel.open,
            max_tries,
            backoff,
            label=f"open serial port {channel.name}",
            sleep=sleep,
        )
        if not found:
            raise DeviceNotFoundError(
                f"Impossible to locate a serial device on {channel.name} after {max_tries} tries"
            )
        if not channel.try_close(max_tries):
            raise DeviceNotFoundError(
                f"Serial device on {channel.name} could not be released after {max_tries} tries"
            )
        logger.info("Serial device located on %s at %d baud", channel.name, baudrate)
        return channel

    def open(self) -> bool:
        """Open the port for exclusive use.

        Returns:
            ``False`` if the device is missing or held by someone else.
            An already open channel is left as it is.
        """
        if self.is_open:
            return True
        cfg = self.config
        kwargs = {}
        if os.name == "posix":
            kwargs["exclusive"] = True
        try:
            self._ser = serial.Serial(
                port=cfg.device,
                baudrate=cfg.baudrate,
                bytesize=cfg.bytesize,
                parity=cfg.parity,
                stopbits=cfg.stopbits,
                timeout=cfg.read_constant_ms / 1000,
                inter_byte_timeout=cfg.read_interval_ms / 1000,
                write_timeout=cfg.write_timeout(0),
                **kwargs,
            )
        except (serial.SerialException, OSError) as exc:
            logger.debug("Cannot open %s: %s", cfg.device, exc)
            return False
        logger.debug("Opened %s", cfg.device)
        return True

    def close(self) -> bool:
        """Flush pending output and close the port (safe to call when closed).

        Returns:
            ``False`` if the OS refused to release the port.  The handle is
            kept so a later close can try again.
        """
        if not self.is_open:
            return True
        assert self._ser is not None  # for type-checker
        try:
            self._ser.flush()
            self._ser.close()
        except (serial.SerialException, OSError) as exc:
            logger.debug("Cannot close %s: %s", self.name, exc)
            return False
        logger.debug("Closed %s", self.name)
        return True

    def try_open(self, max_tries: int) -> bool:
        """Retry :meth:`open` up to *max_tries* times."""
        return with_retry(
            self.open, max_tries, self.backoff, label=f"open port {self.name}", sleep=self._sleep
        )

    def try_close(self, max_tries: int) -> bool:
        """Retry :meth:`close` up to *max_tries* times."""
        return with_retry(
            self.close, max_tries, self.backoff, label=f"close port {self.name}", sleep=self._sleep
        )

    @property
    def is_open(self) -> bool:
        """Return ``True`` if the serial port is currently open."""
        return self._ser is not None and self._ser.is_open

    # -- I/O ----------------------------------------------------------------

    def send(self, data: bytes) -> bool:
        """Write all of *data*, looping over partial writes.

        Stops early on a write timeout, a serial error, or a write that
        moves no bytes.

        Returns:
            ``True`` if every byte was written.

        Raises:
            ConnectionError: If the port is not open.
        """
        ser = self._require_open()
        logger.debug("TX: %s", data.hex(" "))
        try:
            ser.write_timeout = self.config.write_timeout(len(data))
        except (serial.SerialException, OSError) as exc:
            logger.error("Cannot set write timeout on %s: %s", self.name, exc)
            return False

        written = 0
        while written < len(data):
            try:
                count = ser.write(data[written:])
            except serial.SerialTimeoutException:
                logger.error("Write timeout on %s", self.name)
                break
            except (serial.SerialException, OSError) as exc:
                logger.error("Error writing to %s: %s", self.name, exc)
                break
            if not count:
                logger.error("Write to %s made no progress", self.name)
                break
            written += count

        if written != len(data):
            logger.error("Incomplete message written: %d of %d bytes", written, len(data))
            return False
        return True

    # -- Internal -----------------------------------------------------------

    def _require_open(self) -> serial.Serial:
        """Return the open serial port or raise."""
        if not self.is_open:
            raise ConnectionError(f"Serial port {self.name} not open, call open() first.")
        assert self._ser is not None  # for type-checker
        return self._ser
