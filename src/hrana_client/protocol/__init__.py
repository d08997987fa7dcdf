"""Hrana wire protocol layer.

Defines the request and response shapes that are identical across
transports (HTTP pipeline and WebSocket). Transports add their own framing
around them:
- HTTP: `{baton, requests: [...]}` -> `{baton, base_url, results: [...]}`
- WebSocket: `{type: "request", request_id, request}` -> `{type: "response_ok", ...}`
"""

from .wire import (
    BatchReq,
    BatchResp,
    CloseReq,
    CloseSqlReq,
    CloseStreamReq,
    DescribeReq,
    DescribeResp,
    ErrorProto,
    ExecuteReq,
    ExecuteResp,
    OpenStreamReq,
    Request,
    Response,
    SequenceReq,
    SequenceResp,
    StmtProto,
    StmtResultProto,
    StoreSqlReq,
    Value,
    parse_response,
    request_to_wire,
)

__all__ = [
    "Request",
    "Response",
    "Value",
    "StmtProto",
    "StmtResultProto",
    "ErrorProto",
    "OpenStreamReq",
    "CloseStreamReq",
    "ExecuteReq",
    "ExecuteResp",
    "BatchReq",
    "BatchResp",
    "DescribeReq",
    "DescribeResp",
    "SequenceReq",
    "SequenceResp",
    "StoreSqlReq",
    "CloseSqlReq",
    "CloseReq",
    "parse_response",
    "request_to_wire",
]
