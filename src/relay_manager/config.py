"""
Run configuration: relay selections, run settings, and YAML defaults.

Everything here validates input so the controller never has to::

    defaults = load_defaults("relay_manager.yaml")
    config = build_run_config(parse_relays("2:8"), duration_ms=500, defaults=defaults)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import yaml

from .constants import (
    DEFAULT_BAUD,
    DEFAULT_COM_PORT,
    DEFAULT_IMPULSES,
    MAX_CLOSE_TRIES,
    MAX_OPEN_TRIES,
    MAX_RELAYS_IN_RS485_CHAIN,
    MAX_TRIES_TO_LOCATE,
    MIN_RELAY_NUMBER,
)
from .exceptions import ValidationError
from .protocol import RelayState

logger = logging.getLogger(__name__)

_SELECTION_CHARS = re.compile(r"^[0-9:,]+$")

# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Defaults:
    """Connection and retry settings, optionally read from a YAML file."""

    port_number: int = DEFAULT_COM_PORT
    baudrate: int = DEFAULT_BAUD
    open_tries: int = MAX_OPEN_TRIES
    close_tries: int = MAX_CLOSE_TRIES
    locate_tries: int = MAX_TRIES_TO_LOCATE


@dataclass(frozen=True)
class RunConfig:
    """Everything one run needs.  Built once, never mutated.

    ``duration_ms == 0`` means the run is a direct state-set rather than a
    timed pulse; *state* then says which batch to send.
    """

    relays: tuple[int, ...]
    state: RelayState | None = None
    duration_ms: int = 0
    impulses: int = DEFAULT_IMPULSES
    port_number: int = DEFAULT_COM_PORT
    baudrate: int = DEFAULT_BAUD
    open_tries: int = MAX_OPEN_TRIES
    close_tries: int = MAX_CLOSE_TRIES
    locate_tries: int = MAX_TRIES_TO_LOCATE

    @property
    def timed(self) -> bool:
        return self.duration_ms > 0

    @property
    def sends_on(self) -> bool:
        return self.timed or self.state is RelayState.ON

    @property
    def sends_off(self) -> bool:
        return self.timed or self.state is RelayState.OFF


# ---------------------------------------------------------------------------
# Relay selection
# ---------------------------------------------------------------------------


def parse_relays(text: str) -> tuple[int, ...]:
    """Parse a relay selection.

    Accepted forms::

        4        single relay
        2:8      inclusive range (end must be above start)
        2,6,8    group, in the given order

    Raises:
        ValidationError: On malformed text or an index outside 1-120.
    """
    text = text.strip()
    if not text or not _SELECTION_CHARS.match(text):
        raise ValidationError(f"Relay selection may only contain digits, ':' and ',', got {text!r}")

    if ":" in text:
        if "," in text:
            raise ValidationError("A range of relays can not be mixed with a group of relays")
        parts = text.split(":")
        if len(parts) != 2:
            raise ValidationError("A range of relays can only be composed of two numbers begin and end")
        begin, end = (_parse_index(part) for part in parts)
        if end <= begin:
            raise ValidationError(
                f"Wrong range order, final relay number ({end}) must be higher than "
                f"beginning relay ({begin})"
            )
        return tuple(range(begin, end + 1))

    return tuple(_parse_index(part) for part in text.split(","))


def _parse_index(part: str) -> int:
    if not part:
        raise ValidationError("Empty relay number in selection")
    index = int(part)
    if not (MIN_RELAY_NUMBER <= index <= MAX_RELAYS_IN_RS485_CHAIN):
        raise ValidationError(
            f"Valid relay numbers must be between {MIN_RELAY_NUMBER} and "
            f"{MAX_RELAYS_IN_RS485_CHAIN} both included, got {index}"
        )
    return index


# ---------------------------------------------------------------------------
# Run config
# ---------------------------------------------------------------------------


def build_run_config(
    relays: tuple[int, ...],
    *,
    state: RelayState | None = None,
    duration_ms: int | None = None,
    impulses: int | None = None,
    port_number: int | None = None,
    baudrate: int | None = None,
    defaults: Defaults | None = None,
) -> RunConfig:
    """Check the mode flags and merge explicit values over *defaults*.

    Exactly one of *state* and *duration_ms* must be given; *impulses*
    only makes sense alongside a duration.
    """
    defaults = defaults or Defaults()

    if not relays:
        raise ValidationError("At least one relay must be selected")
    if state is not None and duration_ms is not None:
        raise ValidationError("Can't use an open time and a state at the same time")
    if state is None and duration_ms is None:
        raise ValidationError("Either an open time or a state is required")
    if duration_ms is not None and duration_ms <= 0:
        raise ValidationError(f"Open time must be a positive number of milliseconds, got {duration_ms}")
    if impulses is not None:
        if duration_ms is None:
            raise ValidationError("Impulses only work with an open time")
        if impulses < 0:
            raise ValidationError(f"Not accepted a negative number of impulses, got {impulses}")

    port_number = defaults.port_number if port_number is None else port_number
    baudrate = defaults.baudrate if baudrate is None else baudrate
    if port_number < 0:
        raise ValidationError(f"COM port number must be >= 0, got {port_number}")
    if baudrate <= 0:
        raise ValidationError(f"Baud rate must be positive, got {baudrate}")

    return RunConfig(
        relays=tuple(relays),
        state=state,
        duration_ms=duration_ms or 0,
        impulses=DEFAULT_IMPULSES if impulses is None else impulses,
        port_number=port_number,
        baudrate=baudrate,
        open_tries=defaults.open_tries,
        close_tries=defaults.close_tries,
        locate_tries=defaults.locate_tries,
    )


# ---------------------------------------------------------------------------
# YAML defaults
# ---------------------------------------------------------------------------


def load_defaults(path: str | Path) -> Defaults:
    """Load connection defaults from a YAML file.

    Every key is optional::

        port_number: 3
        baudrate: 19200
        open_tries: 20

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValidationError: If the file is not a mapping or holds bad values.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    unknown = set(raw) - set(Defaults.__dataclass_fields__)
    if unknown:
        raise ValidationError(f"Unknown config keys: {sorted(unknown)}")

    base = Defaults()
    defaults = Defaults(
        port_number=_optional_int(raw, "port_number", base.port_number, minimum=0),
        baudrate=_optional_int(raw, "baudrate", base.baudrate, minimum=1),
        open_tries=_optional_int(raw, "open_tries", base.open_tries, minimum=1),
        close_tries=_optional_int(raw, "close_tries", base.close_tries, minimum=1),
        locate_tries=_optional_int(raw, "locate_tries", base.locate_tries, minimum=1),
    )
    logger.debug("Loaded defaults from %s: %s", path, defaults)
    return defaults


def _optional_int(data: dict, key: str, default: int, minimum: int) -> int:
    if key not in data:
        return default
    val = data[key]
    if isinstance(val, bool) or not isinstance(val, int) or val < minimum:
        raise ValidationError(f"'{key}' must be an integer >= {minimum}, got {val!r}")
    return val
