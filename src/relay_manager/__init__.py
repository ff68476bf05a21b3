"""KMTronic RS-485 relay chain manager"""

from .config import Defaults, RunConfig, build_run_config, load_defaults, parse_relays
from .constants import MAX_RELAYS_IN_RS485_CHAIN, MIN_RELAY_NUMBER
from .controller import Phase, PulseController
from .exceptions import (
    ConnectionError,
    DeviceNotFoundError,
    RelayError,
    RunAbortedError,
    ValidationError,
)
from .protocol import RelayState, encode, encode_batch
from .transport import SerialChannel, SerialConnectionConfig, with_retry

__all__ = [
    "ConnectionError",
    "Defaults",
    "DeviceNotFoundError",
    "MAX_RELAYS_IN_RS485_CHAIN",
    "MIN_RELAY_NUMBER",
    "Phase",
    "PulseController",
    "RelayError",
    "RelayState",
    "RunAbortedError",
    "RunConfig",
    "SerialChannel",
    "SerialConnectionConfig",
    "ValidationError",
    "build_run_config",
    "encode",
    "encode_batch",
    "load_defaults",
    "parse_relays",
    "with_retry",
]
__version__ = "0.1.0"
