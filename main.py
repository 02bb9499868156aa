"""Serve static files from a directory over HTTP until interrupted."""

import logging
import sys
from typing import Optional

from static_server.bootstrap.config import (
    InvalidDirectory,
    build_config,
    parse_cli_args,
)
from static_server.bootstrap.logging_setup import configure_logging
from static_server.domain.correlation_id import CorrelationLoggerAdapter
from static_server.lifecycle.controller import ServerController

MAIN_LOGGER = CorrelationLoggerAdapter(logging.getLogger("static_server.main"), {})


def main(argv: Optional[list[str]] = None) -> int:
    """Parse arguments, validate the directory and run the server."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, use_json=args.log_format == "json")

    try:
        config = build_config(args)
    except InvalidDirectory as error:
        MAIN_LOGGER.critical(
            str(error),
            extra={"event": "invalid_directory", "directory": str(error.directory)},
        )
        return 1

    return ServerController(config).run()


if __name__ == "__main__":
    sys.exit(main())
