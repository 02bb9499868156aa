"""Per-request correlation IDs carried through logs and ``X-Request-ID``."""

import contextlib
import contextvars
import logging
import re
import uuid
from typing import Any, Iterator, MutableMapping, Optional

LOGGER_PREFIX = "static_server."
REQUEST_ID_HEADER = "X-Request-ID"

# Client IDs outside this shape are replaced with a generated one.
_ACCEPTED_ID = re.compile(r"[A-Za-z0-9][A-Za-z0-9._:-]{0,127}")

_correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def generate_correlation_id() -> str:
    """Generate a new correlation ID using UUID4."""
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """Retrieve the current correlation ID from context."""
    return _correlation_id_var.get()


def accept_correlation_id(candidate: Optional[str]) -> str:
    """Return the client's ID when it is well formed, else a fresh one."""
    if candidate:
        candidate = candidate.strip()
        if _ACCEPTED_ID.fullmatch(candidate):
            return candidate
    return generate_correlation_id()


@contextlib.contextmanager
def correlation_scope(candidate: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of one request.

    ``candidate`` is usually the incoming ``X-Request-ID`` header. The
    previous value is restored on exit, even when the request raises.
    """
    token = _correlation_id_var.set(accept_correlation_id(candidate))
    try:
        yield _correlation_id_var.get()
    finally:
        _correlation_id_var.reset(token)


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Adds ``correlation_id`` and ``component`` to every record."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["correlation_id"] = get_correlation_id() or "-"
        logger_name = self.logger.name
        extra["component"] = (
            logger_name[len(LOGGER_PREFIX) :]
            if logger_name.startswith(LOGGER_PREFIX)
            else logger_name
        )
        kwargs["extra"] = extra
        return msg, kwargs
