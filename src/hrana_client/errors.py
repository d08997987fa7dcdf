"""Error taxonomy for the Hrana client.

Errors fall into two groups:
- Request-scoped: ResponseError, NoRowsError, TooManyColumnsError. They settle
  a single operation and leave the stream open.
- Stream-fatal: WebSocketError, HttpServerError, ProtocolError raised by a
  transport. They are captured in the stream state, so every pending and
  future operation on the stream observes the same error instance.
"""

from __future__ import annotations


class ClientError(Exception):
    """Base class for all errors raised by the client."""


class ProtocolError(ClientError):
    """The server sent something that does not follow the protocol."""


class ProtocolVersionError(ClientError):
    """A feature needs a newer protocol version than the server supports."""

    def __init__(self, feature: str, min_version: int, message: str | None = None):
        self.feature = feature
        self.min_version = min_version
        super().__init__(
            message
            or f"{feature} is supported only on protocol version {min_version} and higher"
        )


class ResponseError(ClientError):
    """The server returned an error for one request."""

    def __init__(self, message: str, code: str | None = None):
        self.code = code
        super().__init__(message)

    @classmethod
    def from_proto(cls, error: object) -> ResponseError:
        message = getattr(error, "message", None) or "Unknown server error"
        return cls(message, getattr(error, "code", None))


class ClosedError(ClientError):
    """The stream or client is closed."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class WebSocketError(ClientError):
    """The WebSocket connection failed."""


class HttpServerError(ClientError):
    """An HTTP exchange with the server failed."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class InternalError(ClientError):
    """Unexpected failure inside the client or its transport."""


class MisuseError(ClientError):
    """The client API was used incorrectly."""


class NoRowsError(ClientError):
    """A statement expected to return a row returned none."""


class TooManyColumnsError(ClientError):
    """A statement expected to return a single value returned several columns."""
