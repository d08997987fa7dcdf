"""Mock client for testing.

Answers requests in memory and records them. No actual I/O.

Usage:
    client = MockClient(version=2)
    client.set_response("execute", ExecuteResp(result=StmtResultProto(...)))

    stream = client.open_stream()
    await stream.query("SELECT 1")

    assert client.recorded_requests[0].type == "execute"

A response may also be a ClientError, or a callable taking the request.
A ResponseError (raised or canned) fails only that request; raising any
other ClientError closes the stream, like a transport failure would.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from ..client import Client, ProtocolVersion, StreamState, reject, resolve
from ..errors import ClientError, ResponseError
from ..protocol.wire import (
    BatchResp,
    BatchResultProto,
    CloseSqlResp,
    DescribeResp,
    DescribeResultProto,
    ExecuteResp,
    SequenceResp,
    StmtResultProto,
    StoreSqlResp,
)

MockResponse = BaseModel | ClientError | Callable[[Any], BaseModel]


def _default_response(request: Any) -> BaseModel:
    if request.type == "execute":
        return ExecuteResp(result=StmtResultProto())
    if request.type == "batch":
        count = len(request.batch.steps)
        return BatchResp(
            result=BatchResultProto(
                step_results=[StmtResultProto() for _ in range(count)],
                step_errors=[None] * count,
            )
        )
    if request.type == "describe":
        return DescribeResp(result=DescribeResultProto())
    if request.type == "sequence":
        return SequenceResp()
    if request.type == "store_sql":
        return StoreSqlResp()
    if request.type == "close_sql":
        return CloseSqlResp()
    raise ResponseError(f"Mock has no response for {request.type}")


class MockClient(Client):
    """Client answering requests from canned responses."""

    def __init__(self, version: ProtocolVersion = 2) -> None:
        super().__init__()
        self._mock_version = version
        self._responses: dict[str, MockResponse] = {}
        self._recorded_requests: list[Any] = []
        self._paused = False
        self._held: list[tuple[StreamState, Any, asyncio.Future[Any]]] = []
        self.version_fetches = 0

    @property
    def recorded_requests(self) -> list[Any]:
        """Get all requests sent through this client."""
        return self._recorded_requests.copy()

    def set_response(self, request_type: str, response: MockResponse) -> None:
        """Set the canned response for a request type (e.g. "execute")."""
        self._responses[request_type] = response

    def pause(self) -> None:
        """Hold back answers until resume() is called."""
        self._paused = True

    def resume(self) -> None:
        """Answer every held request, in order."""
        self._paused = False
        held, self._held = self._held, []
        for item in held:
            asyncio.get_running_loop().call_soon(self._deliver, *item)

    def clear(self) -> None:
        """Clear recorded requests and responses."""
        self._recorded_requests.clear()
        self._responses.clear()

    async def _fetch_version(self) -> ProtocolVersion:
        self.version_fetches += 1
        return self._mock_version

    def _send_stream_request(
        self, state: StreamState, request: BaseModel, future: asyncio.Future[Any]
    ) -> None:
        self._recorded_requests.append(request)
        if self._paused:
            self._held.append((state, request, future))
            return
        asyncio.get_running_loop().call_soon(self._deliver, state, request, future)

    def _deliver(self, state: StreamState, request: Any, future: asyncio.Future[Any]) -> None:
        if state.closed is not None:
            reject(future, state.closed)
            return
        response = self._responses.get(request.type, _default_response)
        try:
            if isinstance(response, ClientError):
                raise response
            if callable(response) and not isinstance(response, BaseModel):
                response = response(request)
        except ResponseError as e:
            reject(future, e)
            return
        except ClientError as e:
            self._close_stream(state, e)
            return
        resolve(future, response)
