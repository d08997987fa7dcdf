"""Hrana over HTTP (protocol version 2 pipeline).

Every stream request is one exchange:
    POST {base_url}/v2/pipeline
    {"baton": <str | null>, "requests": [<request>]}
    -> {"baton": <str | null>, "base_url": <str | null>, "results": [<result>]}

The baton returned by the server identifies the stream for the next request,
so requests on one stream are sent one at a time, in call order. Requests on
different streams run concurrently.

Result entries:
- {"type": "ok", "response": {...}}: resolves the request
- {"type": "error", "error": {"message", "code"}}: request-scoped ResponseError

HTTP status errors, network failures and malformed bodies close the stream.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..client import Client, ProtocolVersion, StreamState, reject, resolve
from ..errors import ClosedError, HttpServerError, InternalError, ProtocolError, ResponseError
from ..protocol.wire import CloseReq, ErrorProto, parse_response, request_to_wire
from ..stream import Stream

logger = logging.getLogger(__name__)

PIPELINE_PATH = "/v2/pipeline"


class PipelineOk(BaseModel):
    type: Literal["ok"] = "ok"
    response: dict[str, Any]


class PipelineError(BaseModel):
    type: Literal["error"] = "error"
    error: ErrorProto


class PipelineRespBody(BaseModel):
    baton: str | None = None
    base_url: str | None = None
    results: list[Annotated[PipelineOk | PipelineError, Field(discriminator="type")]] = Field(
        default_factory=list
    )


@dataclass(eq=False)
class HttpStreamState(StreamState):
    """Stream state plus the pipeline position on the server."""

    base_url: str = ""
    baton: str | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class HttpStream(Stream):
    """A stream on an HttpClient."""

    def __init__(self, client: HttpClient, state: HttpStreamState):
        super().__init__(client, state)
        self._http_client = client
        state.close_callbacks.append(self._on_closed)

    def _on_closed(self, state: StreamState) -> None:
        self._http_client._stream_closed(self)

    def _close_from_client(self) -> None:
        self._http_client._close_stream(self._state, ClosedError("Client was closed"))


class HttpClient(Client):
    """A client for the Hrana protocol over HTTP.

    Args:
        url: Server URL, e.g. "https://db.example.com"
        auth_token: Optional JWT sent as a bearer token
        http_client: Optional httpx.AsyncClient to send requests with; it is
            not closed by `close()`
        timeout: Request timeout for the client created when none is given
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        super().__init__()
        self._url = url.rstrip("/")
        self._auth_token = auth_token
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._streams: set[HttpStream] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._close_tasks: set[asyncio.Task[None]] = set()

    @property
    def url(self) -> str:
        return self._url

    async def _fetch_version(self) -> ProtocolVersion:
        # this transport speaks exactly version 2, no negotiation
        return 2

    def _new_stream_state(self, stream_id: int) -> StreamState:
        return HttpStreamState(stream_id=stream_id, base_url=self._url)

    def open_stream(self) -> HttpStream:
        """Open an HttpStream.

        Raises:
            ClosedError: The client is closed
        """
        if self._closed:
            raise ClosedError("Client is closed")
        state = self._register_stream()
        assert isinstance(state, HttpStreamState)
        stream = HttpStream(self, state)
        self._streams.add(stream)
        return stream

    def _stream_closed(self, stream: HttpStream) -> None:
        self._streams.discard(stream)
        state = stream._state
        assert isinstance(state, HttpStreamState)
        if state.baton is not None:
            self._spawn_close(state)

    # -------------------------------------------------------------------------
    # Exchanges
    # -------------------------------------------------------------------------

    def _spawn(
        self, coro: Coroutine[Any, Any, None], tasks: set[asyncio.Task[None]] | None = None
    ) -> None:
        tasks = self._tasks if tasks is None else tasks
        task = asyncio.get_running_loop().create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    def _spawn_close(self, state: HttpStreamState) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, stream {state.stream_id} not closed on the server")
            return
        self._spawn(self._send_close(state), self._close_tasks)

    def _headers(self) -> dict[str, str]:
        if self._auth_token is None:
            return {}
        return {"Authorization": f"Bearer {self._auth_token}"}

    async def _post_pipeline(
        self, base_url: str, baton: str | None, request: BaseModel
    ) -> PipelineRespBody:
        body = {
            "baton": baton,
            "requests": [request_to_wire(request, with_stream_id=False)],
        }
        try:
            response = await self._http.post(
                f"{base_url}{PIPELINE_PATH}", json=body, headers=self._headers()
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise HttpServerError(f"HTTP request failed: {e}") from e

        if response.status_code != 200:
            raise HttpServerError(_error_message(response), status=response.status_code)

        try:
            return PipelineRespBody.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProtocolError(f"Invalid pipeline response: {e}") from e

    def _send_stream_request(
        self, state: StreamState, request: BaseModel, future: asyncio.Future[Any]
    ) -> None:
        assert isinstance(state, HttpStreamState)
        self._spawn(self._exchange(state, request, future))

    async def _exchange(
        self, state: HttpStreamState, request: BaseModel, future: asyncio.Future[Any]
    ) -> None:
        async with state.lock:
            if state.closed is not None:
                reject(future, state.closed)
                return
            try:
                body = await self._post_pipeline(state.base_url, state.baton, request)
                if len(body.results) != 1:
                    raise ProtocolError(
                        f"Pipeline returned {len(body.results)} results for 1 request"
                    )
                result = body.results[0]
                response = parse_response(result.response) if result.type == "ok" else None
            except (HttpServerError, ProtocolError) as e:
                logger.warning(f"Stream {state.stream_id} failed: {e}")
                self._close_stream(state, e)
                return
            except ValidationError as e:
                error = ProtocolError(f"Invalid response: {e}")
                self._close_stream(state, error)
                return
            except Exception as e:
                logger.exception(f"Unexpected error on stream {state.stream_id}")
                error = InternalError(f"Unexpected error in HTTP exchange: {e!r}")
                self._close_stream(state, error)
                return

            state.baton = body.baton
            if body.base_url is not None:
                state.base_url = body.base_url

            if state.closed is not None:
                # closed while the request was in flight
                if body.baton is not None and not self._closed:
                    self._spawn_close(state)
                return

            if isinstance(result, PipelineError):
                reject(future, ResponseError.from_proto(result.error))
            else:
                resolve(future, response)

            if body.baton is None:
                self._close_stream(state, ClosedError("Stream was closed by the server"))

    async def _send_close(self, state: HttpStreamState) -> None:
        async with state.lock:
            baton, state.baton = state.baton, None
            if baton is None:
                return
            try:
                await self._post_pipeline(state.base_url, baton, CloseReq())
            except (HttpServerError, ProtocolError) as e:
                logger.debug(f"Failed to close stream {state.stream_id} on the server: {e}")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the client and all its streams. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for stream in list(self._streams):
            stream._close_from_client()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        # release server-side streams before the connection pool goes away
        await asyncio.gather(*list(self._close_tasks), return_exceptions=True)

        if self._owns_http:
            await self._http.aclose()
        logger.debug(f"HttpClient for {self._url} closed")


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return f"Server returned HTTP status {response.status_code}: {data['message']}"
    return f"Server returned HTTP status {response.status_code}"
