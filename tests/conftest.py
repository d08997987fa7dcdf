"""Pytest configuration and shared fixtures.

Provides a fake Hrana gateway backed by an in-memory SQLite database. It
serves both transports:
- HTTP: as an `httpx.MockTransport` handler for the v2 pipeline endpoint
- WebSocket: through FakeSocket, passed to WsClient as its `connect` function
"""

from __future__ import annotations

import asyncio
import base64
import json
import re
import sqlite3
import uuid
from typing import Any

import httpx
import pytest

from hrana_client import HttpClient, WsClient


class GatewayError(Exception):
    def __init__(self, message: str, code: str = "SQLITE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


def _decode_value(value: dict[str, Any]) -> Any:
    kind = value["type"]
    if kind == "null":
        return None
    if kind == "integer":
        return int(value["value"])
    if kind == "blob":
        return base64.b64decode(value["base64"])
    return value["value"]


def _encode_value(value: Any) -> dict[str, Any]:
    if value is None:
        return {"type": "null"}
    if isinstance(value, int):
        return {"type": "integer", "value": str(value)}
    if isinstance(value, float):
        return {"type": "float", "value": value}
    if isinstance(value, bytes):
        return {"type": "blob", "base64": base64.b64encode(value).decode()}
    return {"type": "text", "value": value}


class FakeGateway:
    """Minimal Hrana server semantics on top of sqlite3."""

    def __init__(self, auth_token: str | None = None):
        self.auth_token = auth_token
        self.sqls: dict[int, str] = {}
        self.http_bodies: list[dict[str, Any]] = []
        self.http_status: int | None = None  # force an HTTP error status
        self._batons: dict[str, sqlite3.Connection] = {}
        self._ws_streams: dict[int, sqlite3.Connection] = {}

    @staticmethod
    def _connect() -> sqlite3.Connection:
        return sqlite3.connect(":memory:", isolation_level=None)

    def _sql(self, data: dict[str, Any]) -> str:
        if data.get("sql") is not None:
            return data["sql"]
        sql_id = data.get("sql_id")
        if sql_id not in self.sqls:
            raise GatewayError(f"SQL text {sql_id} not found", "SQL_NOT_FOUND")
        return self.sqls[sql_id]

    def execute(self, conn: sqlite3.Connection, stmt: dict[str, Any]) -> dict[str, Any]:
        sql = self._sql(stmt)
        params: Any = [_decode_value(v) for v in stmt.get("args", [])]
        if stmt.get("named_args"):
            params = {a["name"].lstrip(":@$"): _decode_value(a["value"]) for a in stmt["named_args"]}
        try:
            cursor = conn.execute(sql, params)
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise GatewayError(str(e)) from e
        cols = [{"name": d[0], "decltype": None} for d in cursor.description or []]
        return {
            "cols": cols if stmt.get("want_rows", True) else [],
            "rows": [[_encode_value(v) for v in row] for row in rows]
            if stmt.get("want_rows", True)
            else [],
            "affected_row_count": max(cursor.rowcount, 0),
            "last_insert_rowid": str(cursor.lastrowid) if cursor.lastrowid else None,
        }

    def _eval_cond(self, cond: dict[str, Any], results: list, errors: list) -> bool:
        kind = cond["type"]
        if kind == "ok":
            return results[cond["step"]] is not None
        if kind == "error":
            return errors[cond["step"]] is not None
        if kind == "not":
            return not self._eval_cond(cond["cond"], results, errors)
        if kind == "and":
            return all(self._eval_cond(c, results, errors) for c in cond["conds"])
        if kind == "or":
            return any(self._eval_cond(c, results, errors) for c in cond["conds"])
        raise GatewayError(f"Unknown condition {kind}", "PROTO")

    def handle(self, conn: sqlite3.Connection, request: dict[str, Any]) -> dict[str, Any]:
        """Answer one request; raise GatewayError for a request-scoped error."""
        kind = request["type"]
        if kind == "execute":
            return {"type": "execute", "result": self.execute(conn, request["stmt"])}
        if kind == "batch":
            steps = request["batch"]["steps"]
            results: list[Any] = [None] * len(steps)
            errors: list[Any] = [None] * len(steps)
            for i, step in enumerate(steps):
                cond = step.get("condition")
                if cond is not None and not self._eval_cond(cond, results, errors):
                    continue
                try:
                    results[i] = self.execute(conn, step["stmt"])
                except GatewayError as e:
                    errors[i] = {"message": e.message, "code": e.code}
            return {"type": "batch", "result": {"step_results": results, "step_errors": errors}}
        if kind == "describe":
            sql = self._sql(request)
            params = re.findall(r"\?|[:@$]\w+", sql)
            readonly = sql.lstrip().upper().startswith("SELECT")
            cols = []
            if readonly:
                bound: Any = [None] * len(params)
                if params and all(p != "?" for p in params):
                    bound = {p[1:]: None for p in params}
                cursor = conn.execute(sql, bound)
                cols = [{"name": d[0], "decltype": None} for d in cursor.description or []]
            return {
                "type": "describe",
                "result": {
                    "params": [{"name": None if p == "?" else p} for p in params],
                    "cols": cols,
                    "is_explain": sql.lstrip().upper().startswith("EXPLAIN"),
                    "is_readonly": readonly,
                },
            }
        if kind == "sequence":
            try:
                conn.executescript(self._sql(request))
            except sqlite3.Error as e:
                raise GatewayError(str(e)) from e
            return {"type": "sequence"}
        if kind == "store_sql":
            self.sqls[request["sql_id"]] = request["sql"]
            return {"type": "store_sql"}
        if kind == "close_sql":
            self.sqls.pop(request["sql_id"], None)
            return {"type": "close_sql"}
        raise GatewayError(f"Unknown request {kind}", "PROTO")

    # -------------------------------------------------------------------------
    # HTTP pipeline
    # -------------------------------------------------------------------------

    def http_handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.http_bodies.append(body)
        if self.http_status is not None:
            return httpx.Response(self.http_status, json={"message": "Injected failure"})
        if self.auth_token and request.headers.get("authorization") != f"Bearer {self.auth_token}":
            return httpx.Response(401, json={"message": "Unauthorized"})
        if request.url.path != "/v2/pipeline":
            return httpx.Response(404, text="Not found")

        baton = body["baton"]
        if baton is None:
            conn = self._connect()
        elif baton in self._batons:
            conn = self._batons.pop(baton)
        else:
            return httpx.Response(400, json={"message": "Unknown baton"})

        results = []
        closed = False
        for req in body["requests"]:
            if req["type"] == "close":
                closed = True
                results.append({"type": "ok", "response": {"type": "close"}})
                continue
            try:
                results.append({"type": "ok", "response": self.handle(conn, req)})
            except GatewayError as e:
                results.append({"type": "error", "error": {"message": e.message, "code": e.code}})

        new_baton = None
        if closed:
            conn.close()
        else:
            new_baton = uuid.uuid4().hex
            self._batons[new_baton] = conn
        return httpx.Response(200, json={"baton": new_baton, "base_url": None, "results": results})

    @property
    def open_batons(self) -> int:
        return len(self._batons)

    # -------------------------------------------------------------------------
    # WebSocket
    # -------------------------------------------------------------------------

    def handle_ws(self, msg: dict[str, Any]) -> list[dict[str, Any]]:
        if msg["type"] == "hello":
            if self.auth_token and msg.get("jwt") != self.auth_token:
                return [{"type": "hello_error", "error": {"message": "Invalid token"}}]
            return [{"type": "hello_ok"}]

        request_id = msg["request_id"]
        request = msg["request"]
        kind = request["type"]
        try:
            if kind == "open_stream":
                self._ws_streams[request["stream_id"]] = self._connect()
                response: dict[str, Any] = {"type": "open_stream"}
            elif kind == "close_stream":
                conn = self._ws_streams.pop(request["stream_id"], None)
                if conn is not None:
                    conn.close()
                response = {"type": "close_stream"}
            elif kind in ("store_sql", "close_sql"):
                response = self.handle(None, request)  # type: ignore[arg-type]
            else:
                conn = self._ws_streams.get(request.get("stream_id"))
                if conn is None:
                    raise GatewayError("Stream not found", "STREAM_NOT_FOUND")
                response = self.handle(conn, request)
        except GatewayError as e:
            return [
                {
                    "type": "response_error",
                    "request_id": request_id,
                    "error": {"message": e.message, "code": e.code},
                }
            ]
        return [{"type": "response_ok", "request_id": request_id, "response": response}]

    @property
    def open_ws_streams(self) -> int:
        return len(self._ws_streams)


class FakeSocket:
    """Stands in for a websockets connection talking to a FakeGateway."""

    def __init__(self, gateway: FakeGateway, subprotocol: str | None = "hrana2"):
        self.gateway = gateway
        self.subprotocol = subprotocol
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.paused = False
        self._held: list[str] = []
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, data: str) -> None:
        msg = json.loads(data)
        self.sent.append(msg)
        for reply in self.gateway.handle_ws(msg):
            self.push(json.dumps(reply))

    def push(self, data: str) -> None:
        """Deliver a raw frame to the client (held back while paused)."""
        if self.paused:
            self._held.append(data)
        else:
            self._incoming.put_nowait(data)

    def inject(self, data: str) -> None:
        """Deliver a raw frame immediately, even while paused."""
        self._incoming.put_nowait(data)

    def release(self) -> None:
        self.paused = False
        for data in self._held:
            self._incoming.put_nowait(data)
        self._held.clear()

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self._incoming.put_nowait(None)

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> str:
        data = await self._incoming.get()
        if data is None:
            raise StopAsyncIteration
        return data

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(None)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_http_client(gateway: FakeGateway):
    """Factory for HttpClients wired to the fake gateway."""

    def make(auth_token: str | None = None, handler: Any = None) -> HttpClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler or gateway.http_handler))
        return HttpClient("http://gateway.test", auth_token, http_client=http)

    return make


@pytest.fixture
def make_ws_client(gateway: FakeGateway):
    """Factory returning (WsClient, FakeSocket, connect calls)."""

    def make(
        subprotocol: str | None = "hrana2", auth_token: str | None = None
    ) -> tuple[WsClient, FakeSocket, list[tuple[str, dict[str, Any]]]]:
        socket = FakeSocket(gateway, subprotocol)
        calls: list[tuple[str, dict[str, Any]]] = []

        async def connect(url: str, **kwargs: Any) -> FakeSocket:
            calls.append((url, kwargs))
            return socket

        return WsClient("ws://gateway.test", auth_token, connect=connect), socket, calls

    return make
