"""Command-line configuration of the scheduler."""

from __future__ import annotations

import argparse
import ipaddress
from dataclasses import dataclass
from typing import List, Optional, Tuple

Endpoint = Tuple[str, int]


class ConfigError(Exception):
    """An endpoint given on the command line is not a valid IPv4 socket address."""

    def __init__(self, endpoint: str, value: str) -> None:
        super().__init__(f"invalid {endpoint} endpoint: {value!r}")
        self.endpoint = endpoint
        self.value = value


@dataclass(frozen=True)
class Config:
    workers_endpoint: Endpoint
    controller_endpoint: Endpoint
    verbosity_level: str


def verbosity_level(occurrences: int) -> str:
    """Log level for the number of -v flags."""
    if occurrences == 0:
        return "info"
    if occurrences == 1:
        return "debug"
    return "trace"


def _parse_endpoint(value: str, endpoint: str) -> Endpoint:
    host, separator, port = value.rpartition(":")
    if not separator or not port.isascii() or not port.isdigit():
        raise ConfigError(endpoint, value)
    try:
        address = ipaddress.IPv4Address(host)
    except ValueError:
        raise ConfigError(endpoint, value) from None
    number = int(port)
    if number > 65535:
        raise ConfigError(endpoint, value)
    return str(address), number


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="RIK scheduler")
    parser.add_argument("--version", action="version", version="%(prog)s 1.0")
    parser.add_argument(
        "-w",
        "--workersip",
        dest="workers_ip",
        metavar="WORKERS_IP",
        default="0.0.0.0:4995",
        help="Workers endpoint IPv4",
    )
    parser.add_argument(
        "-c",
        "--ctrlip",
        dest="controllers_ip",
        metavar="CONTROLLERS_IP",
        default="0.0.0.0:4996",
        help="Controllers endpoint IPv4",
    )
    parser.add_argument(
        "-v", dest="verbose", action="count", default=0, help="Sets the level of verbosity"
    )
    return parser


def parse_config(argv: Optional[List[str]] = None) -> Config:
    """Parse command-line arguments into a Config."""
    args = _parser().parse_args(argv)
    return Config(
        workers_endpoint=_parse_endpoint(args.workers_ip, "workers"),
        controller_endpoint=_parse_endpoint(args.controllers_ip, "controllers"),
        verbosity_level=verbosity_level(args.verbose),
    )