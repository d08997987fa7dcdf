"""Client base: version discovery, stream registry and request dispatch.

Architecture:
- Client is the abstract base shared by every transport
- Transports implement `_fetch_version()` and `_send_stream_request()`
- Stream is the typed facade; it only talks to the client through `_request()`

Every request is represented by an asyncio Future owned by the stream state.
The transport settles it exactly once: with the decoded response, with a
request-scoped error, or (for stream-fatal failures) through `_close_stream()`,
which rejects it together with every other pending request on that stream.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from .errors import ClosedError, ProtocolError, ProtocolVersionError

if TYPE_CHECKING:
    from pydantic import BaseModel

    from .stream import Stream

logger = logging.getLogger(__name__)

ProtocolVersion = int
SUPPORTED_VERSIONS: tuple[ProtocolVersion, ...] = (1, 2)

R = TypeVar("R")


def resolve(future: asyncio.Future[Any], value: Any) -> None:
    """Resolve a future unless it was already settled."""
    if not future.done():
        future.set_result(value)


def reject(future: asyncio.Future[Any], error: BaseException) -> None:
    """Reject a future unless it was already settled."""
    if not future.done():
        future.set_exception(error)


@dataclass(eq=False)
class StreamState:
    """Client-owned state of one stream."""

    stream_id: int
    closed: BaseException | None = None
    pending: set[asyncio.Future[Any]] = field(default_factory=set)
    close_callbacks: list[Callable[[StreamState], None]] = field(default_factory=list)


class Client(ABC):
    """Base class for Hrana clients.

    Subclasses provide the transport:
    - `_fetch_version()`: ask the transport which protocol version is spoken
    - `_send_stream_request()`: deliver one request and settle its future
    - `_close_transport()`: release network resources on `close()`
    """

    def __init__(self) -> None:
        self._version: ProtocolVersion | None = None
        self._closed = False
        self._stream_states: dict[int, StreamState] = {}
        self._stream_ids = itertools.count(1)
        self._sql_ids = itertools.count(1)

    # -------------------------------------------------------------------------
    # Version
    # -------------------------------------------------------------------------

    async def get_version(self) -> ProtocolVersion:
        """Get the protocol version supported by the server.

        The version is fetched once and cached.

        Raises:
            ProtocolError: The server speaks an unsupported version
        """
        if self._version is None:
            version = await self._fetch_version()
            if version not in SUPPORTED_VERSIONS:
                raise ProtocolError(f"Unsupported protocol version {version}")
            self._version = version
        return self._version

    def ensure_version(self, min_version: ProtocolVersion, feature: str) -> None:
        """Raise ProtocolVersionError unless the server supports `min_version`.

        The version must already be known (see `get_version()`).
        """
        if self._version is None:
            raise ProtocolVersionError(
                feature,
                min_version,
                f"{feature} is supported only on protocol version {min_version} and higher, "
                "but the server version is not yet known. "
                "Await Client.get_version() before using this feature.",
            )
        if self._version < min_version:
            raise ProtocolVersionError(
                feature,
                min_version,
                f"{feature} is supported only on protocol version {min_version} and higher, "
                f"but the server only supports version {self._version}",
            )

    @abstractmethod
    async def _fetch_version(self) -> ProtocolVersion:
        """Transport-specific version discovery."""
        ...

    # -------------------------------------------------------------------------
    # Streams
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        """True if the client is closed."""
        return self._closed

    def open_stream(self) -> Stream:
        """Open a stream for executing SQL statements.

        Raises:
            ClosedError: The client is closed
        """
        from .stream import Stream

        if self._closed:
            raise ClosedError("Client is closed")
        state = self._register_stream()
        return Stream(self, state)

    def _register_stream(self) -> StreamState:
        state = self._new_stream_state(next(self._stream_ids))
        self._stream_states[state.stream_id] = state
        self._stream_opened(state)
        logger.debug(f"Opened stream {state.stream_id}")
        return state

    def _new_stream_state(self, stream_id: int) -> StreamState:
        return StreamState(stream_id=stream_id)

    def _stream_opened(self, state: StreamState) -> None:
        """Hook for transports that announce streams to the server."""

    def _next_sql_id(self) -> int:
        return next(self._sql_ids)

    def _close_stream(self, state: StreamState, error: BaseException) -> None:
        """Close a stream with `error`. Idempotent.

        Pending requests on the stream are rejected with the same error
        instance, and later requests raise it as well.
        """
        if state.closed is not None:
            return
        state.closed = error
        self._stream_states.pop(state.stream_id, None)
        for future in list(state.pending):
            reject(future, error)
        for callback in list(state.close_callbacks):
            callback(state)
        logger.debug(f"Closed stream {state.stream_id}: {error}")

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def _request(self, state: StreamState, request: BaseModel, response_type: type[R]) -> R:
        """Send a stream request and wait for its response.

        Raises:
            The captured closing error if the stream is closed
            ProtocolError: The response kind does not match the request
        """
        if state.closed is not None:
            raise state.closed

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        state.pending.add(future)
        future.add_done_callback(state.pending.discard)
        self._send_stream_request(state, request, future)

        response = await future
        if not isinstance(response, response_type):
            raise ProtocolError(
                f"Unexpected response of type {getattr(response, 'type', type(response).__name__)}"
                f" to a {getattr(request, 'type', 'unknown')} request"
            )
        return response

    @abstractmethod
    def _send_stream_request(
        self, state: StreamState, request: BaseModel, future: asyncio.Future[Any]
    ) -> None:
        """Deliver `request` and settle `future` exactly once.

        Resolve it with the parsed response, reject it with a request-scoped
        error, or call `_close_stream(state, error)` for stream-fatal failures.
        """
        ...

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the client and all its streams. Idempotent."""
        if self._closed:
            return
        self._closed = True
        error = ClosedError("Client was closed")
        for state in list(self._stream_states.values()):
            self._close_stream(state, error)
        await self._close_transport()
        logger.debug(f"{self.__class__.__name__} closed")

    async def _close_transport(self) -> None:
        """Release transport resources."""

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
