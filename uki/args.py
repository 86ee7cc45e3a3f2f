"""Command-line arguments of the forwarder."""

from __future__ import annotations

import argparse
import ipaddress
import logging
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from uki.cipher import Cipher, parse_cipher

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_LEVELS = {
    "error": logging.ERROR, "1": logging.ERROR,
    "warn": logging.WARNING, "2": logging.WARNING,
    "info": logging.INFO, "3": logging.INFO,
    "debug": logging.DEBUG, "4": logging.DEBUG,
    "trace": TRACE, "5": TRACE,
}


class Command(str, Enum):
    """Which side of the tunnel this instance runs."""

    CLIENT = "client"
    SERVER = "server"


class Protocol(str, Enum):
    """Transport to forward; ``uot`` is UDP carried over TCP."""

    UDP = "udp"
    TCP = "tcp"
    UOT = "uot"


@dataclass(frozen=True)
class CustomHandshake:
    """Request and response bytes exchanged before relaying starts."""

    request: bytes
    response: bytes


@dataclass(frozen=True)
class Args:
    """Parsed command-line configuration."""

    listen: tuple[str, int]
    remote: tuple[str, int]
    protocol: Protocol
    command: Command
    deadline: int | None = None
    timeout: int = 20
    encryption: Cipher = Cipher()
    custom_handshake: CustomHandshake | None = None
    daemonize: bool = False
    log_level: int = logging.ERROR
    log_path: Path | None = None
    mtu: int = 4096


def parse_socket_addr(value: str) -> tuple[str, int]:
    """Parse ``'a.b.c.d:port'`` or ``'[v6]:port'`` into ``(host, port)``."""
    if value.startswith("["):
        host, sep, port = value[1:].partition("]:")
        make: Callable[[str], Any] = ipaddress.IPv6Address
    else:
        host, sep, port = value.rpartition(":")
        make = ipaddress.IPv4Address
    try:
        if not sep or not (port.isascii() and port.isdigit()) or int(port) > 0xFFFF:
            raise ValueError
        return str(make(host)), int(port)
    except ValueError:
        raise ValueError(f"invalid socket address syntax: {value!r}") from None


def parse_encryption(value: str) -> Cipher:
    """Parse the ``--encryption`` option."""
    return parse_cipher(value)


def parse_handshake(value: str) -> CustomHandshake:
    """Read request and response files named by ``'<request-path>,<response-path>'``."""
    paths = value.split(",")
    if len(paths) < 2:
        raise ValueError("you should provide both request and response file paths")
    try:
        return CustomHandshake(Path(paths[0]).read_bytes(), Path(paths[1]).read_bytes())
    except OSError as err:
        raise ValueError(str(err)) from err


def parse_log_level(value: str) -> int:
    """Map a level name (trace, debug, info, warn, error) or 1-5 to a logging level."""
    text = value.strip()
    level = _LEVELS.get(text.lower())
    if level is None:
        raise ValueError(
            'error parsing level: expected one of "error", "warn", '
            '"info", "debug", "trace", or a number 1-5'
        )
    return level


def _non_negative(value: str) -> int:
    number = int(value)
    if number < 0:
        raise ValueError(f"{value} is not a non-negative integer")
    return number


def _option(func: Callable[[str], Any]) -> Callable[[str], Any]:
    def convert(value: str) -> Any:
        try:
            return func(value)
        except ValueError as err:
            raise argparse.ArgumentTypeError(str(err)) from err

    convert.__name__ = func.__name__
    return convert


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="uki", description="A fast, simple UDP and TCP packet forwarder and encryptor."
    )
    add = parser.add_argument
    add("--version", action="version", version="%(prog)s 0.3.2")
    add("-l", "--listen", required=True, type=_option(parse_socket_addr),
        help="Listen address, e.g. '0.0.0.0:8080' or '[::]:8080'.")
    add("-r", "--remote", required=True, type=_option(parse_socket_addr),
        help="Remote address, IPv4 or IPv6.")
    add("--protocol", required=True, choices=[p.value for p in Protocol],
        help="Protocol of choice (uot: udp over tcp).")
    add("--deadline", type=_option(_non_negative), default=None,
        help="Close an open connection after this many seconds.")
    add("--timeout", type=_option(_non_negative), default=20,
        help="Close udp flows idle for this many seconds.")
    add("--encryption", type=_option(parse_encryption), default=Cipher(),
        help="Encryption as '<method>:<arg>'; only xor is supported.")
    add("--custom-handshake", type=_option(parse_handshake), default=None,
        help="Handshake files as '<request-file-path>,<response-file-path>'.")
    add("--daemonize", action="store_true", help="Run the app as a daemon.")
    add("--log-level", type=_option(parse_log_level), default=logging.ERROR,
        help="Log level: trace, debug, info, warn, error.")
    add("--log-path", type=Path, default=None, help="Path of the log file.")
    add("--mtu", type=_option(_non_negative), default=4096, help="Maximum datagram size.")
    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")
    for command in Command:
        commands.add_parser(command.value, help=f"Run as {command.value}.")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> Args:
    """Parse ``argv`` (default: the process arguments) into :class:`Args`."""
    ns = vars(build_parser().parse_args(sys.argv[1:] if argv is None else list(argv)))
    ns["protocol"] = Protocol(ns["protocol"])
    ns["command"] = Command(ns["command"])
    return Args(**ns)