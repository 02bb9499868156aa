"""GET-only static file handler with one access log line per request."""

import logging
import urllib.parse
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler

from static_server.domain.correlation_id import (
    REQUEST_ID_HEADER,
    CorrelationLoggerAdapter,
    correlation_scope,
    get_correlation_id,
)
from static_server.handlers.status_capture import StatusCapturingMixin

ACCESS_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.handlers.access"), {}
)
FILES_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.handlers.files"), {}
)

ALLOWED_METHOD = "GET"
METHOD_NOT_ALLOWED_BODY = b"Method Not Allowed\n"
MAX_DISCARD_BYTES = 256 * 1024


def request_path(target: str) -> str:
    """Return the decoded URL path of a request target, without the query."""
    return urllib.parse.unquote(urllib.parse.urlsplit(target).path)


class StaticFileHandler(StatusCapturingMixin, SimpleHTTPRequestHandler):
    """Serve files from ``directory`` for GET and answer 405 to anything else.

    The server is told when the connection opens, when its request line has
    arrived and when it closes, so shutdown can end connections that never
    started a request.
    """

    server_version = "StaticFileServer/1.0"

    def setup(self) -> None:
        self.timeout = getattr(self.server, "socket_timeout", None)
        super().setup()
        self.server.connection_opened(self.connection)

    def finish(self) -> None:
        try:
            super().finish()
        finally:
            self.server.connection_closed(self.connection)

    def parse_request(self) -> bool:
        self.server.request_started(self.connection)
        if not super().parse_request():
            return False
        self.reset_status()
        if self.command == ALLOWED_METHOD:
            return True
        with correlation_scope(self.headers.get(REQUEST_ID_HEADER)):
            self._respond(self._reject_method)
        return False

    def do_GET(self) -> None:
        with correlation_scope(self.headers.get(REQUEST_ID_HEADER)):
            self._respond(super().do_GET)

    def end_headers(self) -> None:
        correlation_id = get_correlation_id()
        if correlation_id:
            self.send_header(REQUEST_ID_HEADER, correlation_id)
        super().end_headers()

    def log_message(self, format, *args) -> None:  # pylint: disable=redefined-builtin
        if FILES_LOGGER.logger.isEnabledFor(logging.DEBUG):
            FILES_LOGGER.debug(
                format % args,
                extra={"event": "server_message", "client": self._client()},
            )

    def _client(self) -> str:
        return f"{self.client_address[0]}:{self.client_address[1]}"

    def _respond(self, produce_response) -> None:
        completed = False
        try:
            produce_response()
            completed = True
        finally:
            if completed or self.status_sent:
                self._log_access()
            else:
                self._log_aborted()

    def _reject_method(self) -> None:
        self.send_response(HTTPStatus.METHOD_NOT_ALLOWED)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("X-Content-Type-Options", "nosniff")
        self.send_header("Allow", ALLOWED_METHOD)
        self.send_header("Content-Length", str(len(METHOD_NOT_ALLOWED_BODY)))
        self.end_headers()
        self.close_connection = True
        if self.command != "HEAD":
            self.wfile.write(METHOD_NOT_ALLOWED_BODY)
        self._discard_request_body()

    def _discard_request_body(self) -> None:
        # Unread bytes left in the socket turn the close into a reset.
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            return
        if 0 < length <= MAX_DISCARD_BYTES:
            self.rfile.read(length)

    def _log_access(self) -> None:
        path = request_path(self.path)
        ACCESS_LOGGER.info(
            "%s %s %d",
            self.command,
            path,
            self.status_code,
            extra={
                "event": "request_complete",
                "client": self._client(),
                "method": self.command,
                "route": path,
                "status_code": self.status_code,
            },
        )

    def _log_aborted(self) -> None:
        """No status reached the client; the listener logs the traceback."""
        path = request_path(self.path)
        ACCESS_LOGGER.warning(
            "%s %s aborted before a response was sent",
            self.command,
            path,
            extra={
                "event": "request_aborted",
                "client": self._client(),
                "method": self.command,
                "route": path,
            },
        )
