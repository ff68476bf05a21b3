"""
Relay Manager CLI: switch or pulse relays on an RS-485 relay chain.

Usage:
    relay-manager --relay 4 --state on
    relay-manager --relay 2:8 --open-time 500 --impulses 3
    relay-manager --relay 2,7,11 --state off --com-port 3 --baud-rate 19200
    relay-manager --relay 4 --open-time 250 --config relay_manager.yaml

Exit codes:
    0  success
    2  bad arguments or config
    3  serial device not found
    4  run aborted part-way (relays may be left as the completed phases set them)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import Defaults, build_run_config, load_defaults, parse_relays
from .constants import DEFAULT_BAUD, DEFAULT_COM_PORT, MAX_RELAYS_IN_RS485_CHAIN
from .controller import PulseController
from .exceptions import DeviceNotFoundError, RunAbortedError, ValidationError
from .protocol import RelayState
from .transport import SerialChannel

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_DEVICE_NOT_FOUND = 3
EXIT_RUN_ABORTED = 4


# ═══════════════════════════════════════
#  Terminal helpers
# ═══════════════════════════════════════


class C:
    """ANSI color codes (no-op on non-TTY)."""

    if sys.stdout.isatty():
        BOLD = "\033[1m"
        GREEN = "\033[32m"
        RED = "\033[31m"
        RESET = "\033[0m"
    else:
        BOLD = GREEN = RED = RESET = ""


def banner(text: str) -> None:
    print(f"{C.BOLD}{'─' * 54}")
    print(f"| {text:<50} |")
    print(f"{'─' * 54}{C.RESET}")


def info(text: str) -> None:
    print(f"  {C.GREEN}✓{C.RESET} {text}")


def error(text: str) -> None:
    print(f"  {C.RED}✗{C.RESET} {text}", file=sys.stderr)


# ═══════════════════════════════════════
#  CLI entry point
# ═══════════════════════════════════════


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relay-manager",
        description="Switch or pulse relays on a KMTronic RS-485 relay chain over a serial port.",
    )
    parser.add_argument(
        "-r",
        "--relay",
        required=True,
        help=(
            "Relays to drive: single (4), range (4:10) or group (2,7,11); "
            f"numbers 1-{MAX_RELAYS_IN_RS485_CHAIN}"
        ),
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "-t",
        "--open-time",
        type=int,
        metavar="MS",
        help="Pulse the relays: keep them on for MS milliseconds, then switch off",
    )
    mode.add_argument(
        "-s",
        "--state",
        choices=["on", "off"],
        help="Set the relays to this state once",
    )
    parser.add_argument(
        "-n",
        "--impulses",
        type=int,
        help="Number of pulses to give (only with --open-time, default 1)",
    )
    parser.add_argument(
        "-b",
        "--baud-rate",
        type=int,
        help=f"Baud rate for the serial connection (default {DEFAULT_BAUD})",
    )
    parser.add_argument(
        "-p",
        "--com-port",
        type=int,
        help=f"COM port number of the RS-485 adapter (default {DEFAULT_COM_PORT})",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML file with connection and retry defaults",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every frame and port open/close",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)-7s %(name)s: %(message)s",
    )

    banner("RELAY MANAGER")

    try:
        defaults = load_defaults(args.config) if args.config else Defaults()
        config = build_run_config(
            parse_relays(args.relay),
            state=RelayState.parse(args.state) if args.state else None,
            duration_ms=args.open_time,
            impulses=args.impulses,
            port_number=args.com_port,
            baudrate=args.baud_rate,
            defaults=defaults,
        )
    except (FileNotFoundError, ValidationError) as exc:
        error(f"Argument error: {exc}")
        return EXIT_USAGE

    try:
        channel = SerialChannel.locate(config.port_number, config.locate_tries, config.baudrate)
    except DeviceNotFoundError as exc:
        error(f"{exc}. Ending program...")
        return EXIT_DEVICE_NOT_FOUND
    info(f"Serial device ready on {channel.name} at {config.baudrate} baud")

    controller = PulseController(channel, config)
    try:
        cycles = controller.run()
    except RunAbortedError as exc:
        error(f"Run aborted while {exc.phase} after {exc.completed_cycles} cycle(s): {exc}")
        return EXIT_RUN_ABORTED

    if config.timed:
        info(f"{cycles} pulse(s) of {config.duration_ms} ms given to relays {list(config.relays)}")
    else:
        info(f"Relays {list(config.relays)} set {config.state.name}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
