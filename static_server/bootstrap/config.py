"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value is not None else default


DEFAULT_ADDR = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_DIRECTORY = "."
DEFAULT_SOCKET_TIMEOUT = _env_float("STATIC_SERVER_SOCKET_TIMEOUT", 60)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_float(
    "STATIC_SERVER_SHUTDOWN_GRACE_SECONDS", 30
)

LOG_FORMATS = ("text", "json")


class InvalidDirectory(Exception):
    """Raised when the directory to serve is missing or not a directory."""

    def __init__(self, directory: Path) -> None:
        super().__init__(f"Directory does not exist: {directory}")
        self.directory = directory


@dataclass
class ServerConfig:
    """Validated settings handed to the lifecycle controller."""

    host: str
    port: int
    directory: Path
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from exc
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(
        description="Serve static files from a directory over HTTP"
    )
    parser.add_argument(
        "--addr", "-addr", default=DEFAULT_ADDR, help="IP address to bind to"
    )
    parser.add_argument(
        "--port", "-port", type=_port, default=DEFAULT_PORT, help="Port to bind to"
    )
    parser.add_argument(
        "--dir", "-dir", default=DEFAULT_DIRECTORY, help="Directory to serve files from"
    )
    default_log_level = os.getenv("STATIC_SERVER_LOG_LEVEL", "INFO").upper()
    default_log_format = os.getenv("STATIC_SERVER_LOG_FORMAT", "text").lower()
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-format",
        default=default_log_format,
        choices=LOG_FORMATS,
        type=str.lower,
        help="Plain text lines or one JSON object per line",
    )
    parser.add_argument(
        "--socket-timeout",
        type=float,
        default=DEFAULT_SOCKET_TIMEOUT,
        help="Socket timeout in seconds for reading a request",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=float,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Deadline in seconds for in-flight requests during shutdown",
    )
    return parser.parse_args(argv)


def resolve_directory(directory: str) -> Path:
    """Return the absolute path of the directory to serve."""
    resolved = Path(directory).expanduser().resolve()
    if not resolved.is_dir():
        raise InvalidDirectory(resolved)
    return resolved


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Validate parsed arguments and collect them into a ServerConfig."""
    return ServerConfig(
        host=args.addr,
        port=args.port,
        directory=resolve_directory(args.dir),
        socket_timeout=args.socket_timeout,
        shutdown_grace_seconds=args.shutdown_grace_seconds,
    )
