"""
Relay board wire protocol: frame and batch encoding.

Every command is a fixed 3-byte frame::

    [0xFF, relay_index, state]

where *state* is ``0x01`` (energize) or ``0x00`` (de-energize).  A batch
is the frames for a whole relay selection concatenated with no separator,
in selection order.

Encoding is pure.  Index range checks belong to
:mod:`~relay_manager.config`, which validates a selection before it ever
reaches this module.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntEnum

from .constants import FRAME_RELAY_OFF, FRAME_RELAY_ON, FRAME_SOH
from .exceptions import ValidationError

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RelayState(IntEnum):
    """Target relay state; the value is the frame's state byte."""

    OFF = FRAME_RELAY_OFF
    ON = FRAME_RELAY_ON

    @classmethod
    def parse(cls, text: str) -> RelayState:
        """Return the state for ``"on"`` or ``"off"``."""
        try:
            return cls[text.strip().upper()]
        except KeyError as err:
            raise ValidationError(f"State must be 'on' or 'off', got {text!r}") from err


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode(relay_index: int, state: RelayState) -> bytes:
    """Build the 3-byte frame addressing *relay_index*."""
    return bytes((FRAME_SOH, relay_index, int(state)))


def encode_batch(selection: Iterable[int], state: RelayState) -> bytes:
    """Concatenate one frame per relay in *selection*, preserving order."""
    return b"".join(encode(index, state) for index in selection)


def format_frames(batch: bytes) -> str:
    """Hex dump of *batch*, e.g. ``0xff 0x02 0x01``."""
    return " ".join(f"0x{b:02x}" for b in batch)
