"""Stream: a logical database connection on a Client."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from .batch import Batch
from .describe import DescribeResult, describe_result_from_proto
from .errors import ClosedError
from .protocol.wire import (
    DescribeReq,
    DescribeResp,
    ExecuteReq,
    ExecuteResp,
    SequenceReq,
    SequenceResp,
    StmtProto,
    StmtResultProto,
    StoreSqlReq,
    StoreSqlResp,
)
from .result import (
    RowResult,
    RowsResult,
    StmtResult,
    ValueResult,
    row_result_from_proto,
    rows_result_from_proto,
    stmt_result_from_proto,
    value_result_from_proto,
)
from .sql import InSql, Sql, sql_to_proto
from .stmt import InStmt, stmt_to_proto

if TYPE_CHECKING:
    from .client import Client, StreamState

T = TypeVar("T")


class Stream:
    """A stream for executing SQL statements (a "database connection").

    Streams are created with `Client.open_stream()`. Calls are not serialized
    here; ordering of concurrent calls is up to the transport.

    Usage:
        async with client.open_stream() as stream:
            await stream.run("CREATE TABLE t (x)")
            await stream.run(("INSERT INTO t VALUES (?)", [1]))
            result = await stream.query_value("SELECT x FROM t")
            assert result.value == 1
    """

    def __init__(self, client: Client, state: StreamState):
        self._client = client
        self._state = state

    @property
    def client(self) -> Client:
        return self._client

    @property
    def closed(self) -> bool:
        """True if the stream is closed, whatever the cause."""
        return self._state.closed is not None

    def _ensure_open(self) -> None:
        if self._state.closed is not None:
            raise self._state.closed

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def query(self, stmt: InStmt) -> RowsResult:
        """Execute a statement and return rows."""
        return await self._execute(stmt, True, rows_result_from_proto)

    async def query_row(self, stmt: InStmt) -> RowResult:
        """Execute a statement and return its first row.

        Raises:
            NoRowsError: The statement returned no rows
        """
        return await self._execute(stmt, True, row_result_from_proto)

    async def query_value(self, stmt: InStmt) -> ValueResult:
        """Execute a statement and return the single value of its first row.

        Raises:
            NoRowsError: The statement returned no rows
            TooManyColumnsError: The statement returned more than one column
        """
        return await self._execute(stmt, True, value_result_from_proto)

    async def run(self, stmt: InStmt) -> StmtResult:
        """Execute a statement without returning rows."""
        return await self._execute(stmt, False, stmt_result_from_proto)

    async def _execute(
        self,
        in_stmt: InStmt,
        want_rows: bool,
        from_proto: Callable[[StmtResultProto], T],
    ) -> T:
        self._ensure_open()
        stmt: StmtProto = stmt_to_proto(in_stmt, want_rows, self._client)
        request = ExecuteReq(stream_id=self._state.stream_id, stmt=stmt)
        response = await self._client._request(self._state, request, ExecuteResp)
        return from_proto(response.result)

    def batch(self) -> Batch:
        """Return a builder for creating and executing a batch."""
        return Batch(self._client, self._state)

    # -------------------------------------------------------------------------
    # Version 2 features
    # -------------------------------------------------------------------------

    async def _ensure_feature(self, feature: str) -> None:
        self._ensure_open()
        await self._client.get_version()
        self._client.ensure_version(2, feature)

    async def describe(self, in_sql: InSql) -> DescribeResult:
        """Parse and analyze a statement. Requires protocol version 2."""
        await self._ensure_feature("describe()")
        sql, sql_id = sql_to_proto(in_sql, self._client)
        request = DescribeReq(stream_id=self._state.stream_id, sql=sql, sql_id=sql_id)
        response = await self._client._request(self._state, request, DescribeResp)
        return describe_result_from_proto(response.result)

    async def sequence(self, in_sql: InSql) -> None:
        """Execute statements separated by semicolons. Requires protocol version 2."""
        await self._ensure_feature("sequence()")
        sql, sql_id = sql_to_proto(in_sql, self._client)
        request = SequenceReq(stream_id=self._state.stream_id, sql=sql, sql_id=sql_id)
        await self._client._request(self._state, request, SequenceResp)

    async def store_sql(self, sql: str) -> Sql:
        """Store SQL text on the server and return a handle to it.

        Requires protocol version 2.
        """
        await self._ensure_feature("store_sql()")
        sql_id = self._client._next_sql_id()
        await self._client._request(self._state, StoreSqlReq(sql_id=sql_id, sql=sql), StoreSqlResp)
        return Sql(self._client, self._state, sql_id)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the stream. Does not wait for the server."""
        self._client._close_stream(self._state, ClosedError("Stream was manually closed"))

    async def __aenter__(self) -> Stream:
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()
