"""Status code capture for ``BaseHTTPRequestHandler`` subclasses."""

from http import HTTPStatus
from typing import Optional


class StatusCapturingMixin:
    """Record the status code passed to ``send_response`` before delegating.

    Mix in ahead of a request handler class. Every other response operation
    (headers, body writes, ``send_error``) is inherited unchanged, and
    ``send_error`` reaches this override through ``send_response`` too.
    """

    status_code: int = HTTPStatus.OK
    status_sent: bool = False

    def reset_status(self, default: int = HTTPStatus.OK) -> None:
        """Start a new capture for the next response."""
        self.status_code = int(default)
        self.status_sent = False

    def send_response(self, code: int, message: Optional[str] = None) -> None:
        self.status_code = int(code)
        self.status_sent = True
        super().send_response(code, message)  # type: ignore[misc]
