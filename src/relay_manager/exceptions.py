"""
Exception hierarchy for the relay manager.

All exceptions inherit from :class:`RelayError` so callers can catch
broadly (``except RelayError``) or narrowly (``except RunAbortedError``).
"""


class RelayError(Exception):
    """Base exception for all relay manager errors."""


class ConnectionError(RelayError):  # noqa: A001 – intentional shadow of builtin
    """Raised when the serial channel is used while it is not open."""


class DeviceNotFoundError(ConnectionError):
    """Raised when the serial device cannot be located after every try.

    This is the one unrecoverable condition: no relay work is attempted.
    """


class RunAbortedError(RelayError):
    """Raised when an open, send, or close fails part-way through a run.

    Relays keep whatever state the completed phases left them in.
    """

    def __init__(self, message: str, phase: str, completed_cycles: int) -> None:
        super().__init__(message)
        self.phase = phase
        self.completed_cycles = completed_cycles


class ValidationError(RelayError):
    """Raised when a run argument or config value fails validation."""
