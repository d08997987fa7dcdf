"""Hrana over WebSocket.

One WebSocket connection carries every stream of the client. The protocol
version is negotiated through the WebSocket subprotocol: the client offers
`hrana2` and `hrana1`, and the server picks one (no subprotocol means 1).

Wire format (JSON text frames):
- Client -> Server: {"type": "hello", "jwt": ...}
                    {"type": "request", "request_id": 1, "request": {...}}
- Server -> Client: {"type": "hello_ok"} | {"type": "hello_error", "error": {...}}
                    {"type": "response_ok", "request_id": 1, "response": {...}}
                    {"type": "response_error", "request_id": 1, "error": {...}}

Outgoing frames go through a single FIFO queue drained by one writer task,
so requests reach the server (and are answered) in call order.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from functools import partial
from typing import Any

import websockets
from pydantic import BaseModel, ValidationError
from websockets.exceptions import WebSocketException

from ..client import Client, ProtocolVersion, StreamState, reject, resolve
from ..errors import (
    ClientError,
    ClosedError,
    InternalError,
    ProtocolError,
    ResponseError,
    WebSocketError,
)
from ..protocol.wire import (
    CloseStreamReq,
    ErrorProto,
    OpenStreamReq,
    parse_response,
    request_to_wire,
)
from ..stream import Stream

logger = logging.getLogger(__name__)

DEFAULT_SUBPROTOCOLS = ("hrana2", "hrana1")

_SUBPROTOCOL_RE = re.compile(r"^hrana(\d+)$")

ConnectFn = Callable[..., Awaitable[Any]]


class WsMessageType(str, Enum):
    """WebSocket message types for the Hrana protocol."""

    # Client -> Server
    HELLO = "hello"
    REQUEST = "request"

    # Server -> Client
    HELLO_OK = "hello_ok"
    HELLO_ERROR = "hello_error"
    RESPONSE_OK = "response_ok"
    RESPONSE_ERROR = "response_error"


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


def version_from_subprotocol(subprotocol: str | None) -> ProtocolVersion:
    """Map the negotiated subprotocol to a protocol version."""
    if subprotocol is None:
        return 1
    match = _SUBPROTOCOL_RE.match(subprotocol)
    if match is None:
        raise ProtocolError(f"Server selected unknown subprotocol {subprotocol!r}")
    return int(match.group(1))


class WsClient(Client):
    """A client for the Hrana protocol over WebSocket.

    The connection is opened lazily by the first operation that needs it.
    `open_stream()` must be called from a running event loop.

    Args:
        url: Server URL, e.g. "wss://db.example.com"
        auth_token: Optional JWT sent in the hello message
        connect: Coroutine function opening the socket; defaults to
            `websockets.connect`
        subprotocols: Subprotocols offered to the server, preferred first
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        *,
        connect: ConnectFn | None = None,
        subprotocols: Sequence[str] = DEFAULT_SUBPROTOCOLS,
    ):
        super().__init__()
        self._url = url
        self._auth_token = auth_token
        self._connect = connect or websockets.connect
        self._subprotocols = list(subprotocols)

        self._state = TransportState.DISCONNECTED
        self._socket: Any = None
        self._socket_version: ProtocolVersion | None = None
        self._ready = asyncio.Event()
        self._error: BaseException | None = None

        self._outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._request_ids = itertools.count(1)
        self._run_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        return self._state

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def _start(self) -> None:
        if self._state == TransportState.DISCONNECTED:
            self._state = TransportState.CONNECTING
            self._run_task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        """Connect, then read frames until the socket closes."""
        try:
            self._socket = await self._connect(
                self._url, subprotocols=self._subprotocols, max_size=None
            )
        except (OSError, WebSocketException) as e:
            self._fail(WebSocketError(f"Could not connect to {self._url}: {e}"))
            return

        writer: asyncio.Task[None] | None = None
        try:
            self._socket_version = version_from_subprotocol(self._socket.subprotocol)
            self._state = TransportState.CONNECTED
            self._ready.set()
            logger.info(f"WebSocket connected to {self._url}, protocol {self._socket_version}")

            writer = asyncio.get_running_loop().create_task(self._write_loop())
            async for data in self._socket:
                self._handle_message(data)
            self._fail(WebSocketError("WebSocket was closed by the server"))
        except ClientError as e:
            self._fail(e)
        except (OSError, WebSocketException) as e:
            self._fail(WebSocketError(f"WebSocket connection failed: {e}"))
        except Exception as e:
            logger.exception("Unexpected error in the WebSocket reader")
            self._fail(InternalError(f"Unexpected error in the WebSocket reader: {e!r}"))
        finally:
            if writer is not None:
                writer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await writer
            with contextlib.suppress(OSError, WebSocketException):
                await self._socket.close()

    async def _write_loop(self) -> None:
        try:
            await self._socket.send(
                json.dumps({"type": WsMessageType.HELLO.value, "jwt": self._auth_token})
            )
            while True:
                message = await self._outbox.get()
                await self._socket.send(json.dumps(message))
        except (OSError, WebSocketException) as e:
            self._fail(WebSocketError(f"Could not send to the WebSocket: {e}"))
        except Exception as e:
            logger.exception("Unexpected error in the WebSocket writer")
            self._fail(InternalError(f"Unexpected error in the WebSocket writer: {e!r}"))

    def _handle_message(self, data: str | bytes) -> None:
        try:
            msg = json.loads(data)
        except ValueError as e:
            raise ProtocolError(f"Received invalid JSON: {e}") from e
        if not isinstance(msg, dict):
            raise ProtocolError("Received a message that is not an object")

        msg_type = msg.get("type")
        try:
            if msg_type == WsMessageType.HELLO_OK:
                logger.debug("Server accepted hello")
            elif msg_type == WsMessageType.HELLO_ERROR:
                raise ResponseError.from_proto(ErrorProto.model_validate(msg.get("error")))
            elif msg_type in (WsMessageType.RESPONSE_OK, WsMessageType.RESPONSE_ERROR):
                request_id = msg.get("request_id")
                if not isinstance(request_id, int) or isinstance(request_id, bool):
                    raise ProtocolError(
                        f"Received {msg_type} with invalid request id {request_id!r}"
                    )
                future = self._pending.pop(request_id, None)
                if future is None:
                    raise ProtocolError(f"Received response for unknown request id {request_id}")
                if msg_type == WsMessageType.RESPONSE_OK:
                    resolve(future, parse_response(msg.get("response")))
                else:
                    error = ErrorProto.model_validate(msg.get("error"))
                    reject(future, ResponseError.from_proto(error))
            else:
                raise ProtocolError(f"Received unexpected message type {msg_type!r}")
        except ValidationError as e:
            raise ProtocolError(f"Received invalid {msg_type} message: {e}") from e

    def _fail(self, error: BaseException) -> None:
        """Close the client and all its streams after a transport failure."""
        if self._error is not None or self._state == TransportState.CLOSED:
            return
        logger.warning(f"WebSocket client for {self._url} failed: {error}")
        self._error = error
        self._state = TransportState.CLOSED
        self._closed = True
        for state in list(self._stream_states.values()):
            self._close_stream(state, error)
        self._reject_pending(error)
        self._ready.set()

    def _reject_pending(self, error: BaseException) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            reject(future, error)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def _fetch_version(self) -> ProtocolVersion:
        self._start()
        await self._ready.wait()
        if self._socket_version is None:
            raise ClosedError("Client is closed", self._error)
        return self._socket_version

    def _send_request(self, request: BaseModel, future: asyncio.Future[Any]) -> None:
        if self._closed:
            reject(future, ClosedError("Client is closed", self._error))
            return
        request_id = next(self._request_ids)
        self._pending[request_id] = future
        self._outbox.put_nowait(
            {
                "type": WsMessageType.REQUEST.value,
                "request_id": request_id,
                "request": request_to_wire(request),
            }
        )
        self._start()

    def _send_stream_request(
        self, state: StreamState, request: BaseModel, future: asyncio.Future[Any]
    ) -> None:
        self._send_request(request, future)

    def open_stream(self) -> Stream:
        if self._error is not None:
            raise ClosedError("Client is closed", self._error)
        return super().open_stream()

    def _stream_opened(self, state: StreamState) -> None:
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(partial(self._open_stream_done, state))
        self._send_request(OpenStreamReq(stream_id=state.stream_id), future)
        state.close_callbacks.append(self._stream_closed)

    def _open_stream_done(self, state: StreamState, future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self._close_stream(state, error)

    def _stream_closed(self, state: StreamState) -> None:
        if self._closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, stream {state.stream_id} not closed on the server")
            return
        future = loop.create_future()
        future.add_done_callback(partial(_log_close_failure, state.stream_id))
        self._send_request(CloseStreamReq(stream_id=state.stream_id), future)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the client and all its streams. Idempotent."""
        await super().close()
        if self._run_task is not None:
            # a transport failure already closed the client, reap the reader
            await self._close_transport()

    async def _close_transport(self) -> None:
        self._state = TransportState.CLOSED
        self._reject_pending(ClosedError("Client was closed"))
        self._ready.set()
        if self._run_task is not None:
            self._run_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._run_task
            self._run_task = None
        logger.info(f"WebSocket client for {self._url} closed")


def _log_close_failure(stream_id: int, future: asyncio.Future[Any]) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.debug(f"Failed to close stream {stream_id} on the server: {future.exception()}")
