"""Request-scoped correlation IDs.

The ID lives in a context variable so that log events emitted by breakers deep
inside a request handler carry the same ID as the access log and the error body.
"""

import contextvars
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Request, Response

CORRELATION_HEADER = "X-Correlation-ID"

_current_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def get_correlation_id() -> str | None:
    return _current_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Bind ``correlation_id`` for the rest of the current context."""
    _current_id.set(correlation_id)


def new_correlation_id() -> str:
    return uuid.uuid4().hex


class CorrelationIDProcessor:
    """structlog processor copying the bound ID into each event."""

    def __init__(self, key: str = "correlation_id"):
        self.key = key

    def __call__(
        self, logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        current = _current_id.get()
        if current is not None:
            event_dict.setdefault(self.key, current)
        return event_dict


class CorrelationIDMiddleware:
    """Reuse the caller's ID header or mint one, and echo it in the response."""

    def __init__(self, header: str = CORRELATION_HEADER):
        self.header = header

    async def __call__(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = request.headers.get(self.header) or new_correlation_id()
        # Error handlers read it from request.state after the context is gone.
        request.state.correlation_id = correlation_id

        with CorrelationContext(correlation_id):
            response = await call_next(request)

        response.headers[self.header] = correlation_id
        return response


class CorrelationContext:
    """Bind a correlation ID for the duration of a ``with`` block.

    Nested contexts restore the outer ID on exit.
    """

    def __init__(self, correlation_id: str | None = None):
        self.correlation_id = correlation_id or new_correlation_id()
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> "CorrelationContext":
        self._token = _current_id.set(self.correlation_id)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _current_id.reset(self._token)
            self._token = None
