"""SQL text handles.

A `Sql` is SQL text stored on the server under a numeric id (protocol
version 2), so that repeated statements do not resend the text. Handles are
created with `Stream.store_sql()` and can be used wherever SQL text is
accepted by the same client.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import ClosedError, MisuseError
from .protocol.wire import CloseSqlReq, CloseSqlResp

if TYPE_CHECKING:
    from .client import Client, StreamState

logger = logging.getLogger(__name__)


class Sql:
    """SQL text stored on the server."""

    def __init__(self, client: Client, state: StreamState, sql_id: int):
        self._client = client
        self._state = state
        self._sql_id = sql_id
        self._closed: ClosedError | None = None

    @property
    def sql_id(self) -> int:
        return self._sql_id

    @property
    def closed(self) -> bool:
        return self._closed is not None

    def _get_sql_id(self, client: Client) -> int:
        if self._client is not client:
            raise MisuseError("Attempted to use SQL text opened with a different client")
        if self._closed is not None:
            raise self._closed
        return self._sql_id

    async def close(self) -> None:
        """Remove the SQL text from the server. Does nothing if already closed."""
        if self._closed is not None:
            return
        self._closed = ClosedError("SQL text was closed")
        if self._state.closed is not None:
            # the server drops SQL texts together with the stream
            return
        await self._client._request(self._state, CloseSqlReq(sql_id=self._sql_id), CloseSqlResp)
        logger.debug(f"Closed SQL text {self._sql_id}")


InSql = str | Sql


def sql_to_proto(in_sql: InSql, client: Client) -> tuple[str | None, int | None]:
    """Split SQL input into the `(sql, sql_id)` pair carried by requests."""
    if isinstance(in_sql, Sql):
        return None, in_sql._get_sql_id(client)
    if isinstance(in_sql, str):
        return in_sql, None
    raise TypeError(f"Expected SQL text or Sql, got {type(in_sql).__name__}")
