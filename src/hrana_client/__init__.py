"""Hrana client - execute SQL on a remote database gateway.

Provides multiple transport modes:
- http: Hrana v2 HTTP pipeline, one exchange per request
- websocket: persistent duplex connection with version negotiation
- mock: For testing without real I/O

Usage:
    async with open_client("https://db.example.com", auth_token=token) as client:
        stream = client.open_stream()
        await stream.run("CREATE TABLE t (x)")
        value = await stream.query_value("SELECT count(*) FROM t")
"""

from .batch import Batch, BatchCond, BatchResult, BatchStep, StepOutcome, StepStatus
from .client import SUPPORTED_VERSIONS, Client, ProtocolVersion, StreamState
from .config import ClientConfig
from .describe import DescribeColumn, DescribeParam, DescribeResult
from .errors import (
    ClientError,
    ClosedError,
    HttpServerError,
    InternalError,
    MisuseError,
    NoRowsError,
    ProtocolError,
    ProtocolVersionError,
    ResponseError,
    TooManyColumnsError,
    WebSocketError,
)
from .result import Row, RowResult, RowsResult, StmtResult, ValueResult
from .sql import InSql, Sql
from .stmt import InStmt, Stmt
from .stream import Stream
from .transport import (
    HttpClient,
    HttpStream,
    MockClient,
    WsClient,
    open_client,
    open_http,
    open_ws,
)

__all__ = [
    # Clients
    "Client",
    "HttpClient",
    "WsClient",
    "MockClient",
    "open_client",
    "open_http",
    "open_ws",
    "ClientConfig",
    "ProtocolVersion",
    "SUPPORTED_VERSIONS",
    # Streams
    "Stream",
    "HttpStream",
    "StreamState",
    # Statements
    "Stmt",
    "InStmt",
    "Sql",
    "InSql",
    # Batches
    "Batch",
    "BatchStep",
    "BatchCond",
    "BatchResult",
    "StepOutcome",
    "StepStatus",
    # Results
    "Row",
    "StmtResult",
    "RowsResult",
    "RowResult",
    "ValueResult",
    "DescribeResult",
    "DescribeParam",
    "DescribeColumn",
    # Errors
    "ClientError",
    "ClosedError",
    "ProtocolError",
    "ProtocolVersionError",
    "ResponseError",
    "WebSocketError",
    "HttpServerError",
    "InternalError",
    "MisuseError",
    "NoRowsError",
    "TooManyColumnsError",
]
