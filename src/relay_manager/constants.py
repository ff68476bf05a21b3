"""Shared runtime constants for the relay manager.

This is the canonical source of truth for protocol limits and run
defaults.  Other modules should import from here rather than defining
their own copies.
"""

# ---------------------------------------------------------------------------
# Relay chain limits
# ---------------------------------------------------------------------------

MAX_RELAYS_PER_BOARD = 8
MAX_BOARDS_IN_RS485_CHAIN = 15
MAX_RELAYS_IN_RS485_CHAIN = MAX_RELAYS_PER_BOARD * MAX_BOARDS_IN_RS485_CHAIN
MIN_RELAY_NUMBER = 1

# ---------------------------------------------------------------------------
# Wire frame
# ---------------------------------------------------------------------------

FRAME_SOH = 0xFF  # Start-of-frame marker
FRAME_RELAY_ON = 0x01
FRAME_RELAY_OFF = 0x00
FRAME_LENGTH = 3

# ---------------------------------------------------------------------------
# Serial connection defaults
# ---------------------------------------------------------------------------

DEFAULT_COM_PORT = 7
DEFAULT_BAUD = 9600

# Timeouts in milliseconds (read interval/constant/multiplier, write constant/multiplier)
READ_INTERVAL_TIMEOUT_MS = 50
READ_TOTAL_TIMEOUT_CONSTANT_MS = 50
READ_TOTAL_TIMEOUT_MULTIPLIER_MS = 10
WRITE_TOTAL_TIMEOUT_CONSTANT_MS = 50
WRITE_TOTAL_TIMEOUT_MULTIPLIER_MS = 10

# ---------------------------------------------------------------------------
# Retry / timing
# ---------------------------------------------------------------------------

MAX_TRIES_TO_LOCATE = 50
MAX_OPEN_TRIES = 50
MAX_CLOSE_TRIES = 50
RETRY_BACKOFF_S = 0.05
WAIT_SLICE_S = 0.005  # Yield interval while waiting out a pulse

DEFAULT_IMPULSES = 1
