"""Wire message shapes of the Hrana protocol.

Requests are built by the Stream and serialized by the transport. Responses
are parsed by the transport into the models below and handed back to the
Stream, which checks that the response kind matches the request.

Example (execute request over WebSocket):
    {
        "type": "execute",
        "stream_id": 1,
        "stmt": {"sql": "SELECT 1", "args": [], "named_args": [], "want_rows": true}
    }

Over HTTP the same request is placed in a pipeline body without `stream_id`.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

# =============================================================================
# Values
# =============================================================================


class NullValue(BaseModel):
    type: Literal["null"] = "null"


class IntegerValue(BaseModel):
    type: Literal["integer"] = "integer"
    value: str  # decimal string, keeps full 64-bit precision in JSON


class FloatValue(BaseModel):
    type: Literal["float"] = "float"
    value: float


class TextValue(BaseModel):
    type: Literal["text"] = "text"
    value: str


class BlobValue(BaseModel):
    type: Literal["blob"] = "blob"
    base64: str


Value = Annotated[
    NullValue | IntegerValue | FloatValue | TextValue | BlobValue,
    Field(discriminator="type"),
]


# =============================================================================
# Statements and results
# =============================================================================


class NamedArg(BaseModel):
    name: str
    value: Value


class StmtProto(BaseModel):
    """A statement: SQL text (or a stored SQL id) plus arguments."""

    sql: str | None = None
    sql_id: int | None = None
    args: list[Value] = Field(default_factory=list)
    named_args: list[NamedArg] = Field(default_factory=list)
    want_rows: bool = True


class ColProto(BaseModel):
    name: str | None = None
    decltype: str | None = None


class StmtResultProto(BaseModel):
    cols: list[ColProto] = Field(default_factory=list)
    rows: list[list[Value]] = Field(default_factory=list)
    affected_row_count: int = 0
    last_insert_rowid: str | None = None


class ErrorProto(BaseModel):
    message: str
    code: str | None = None


class BatchStepProto(BaseModel):
    condition: dict[str, Any] | None = None
    stmt: StmtProto


class BatchProto(BaseModel):
    steps: list[BatchStepProto] = Field(default_factory=list)


class BatchResultProto(BaseModel):
    step_results: list[StmtResultProto | None] = Field(default_factory=list)
    step_errors: list[ErrorProto | None] = Field(default_factory=list)


class DescribeParamProto(BaseModel):
    name: str | None = None


class DescribeColProto(BaseModel):
    name: str
    decltype: str | None = None


class DescribeResultProto(BaseModel):
    params: list[DescribeParamProto] = Field(default_factory=list)
    cols: list[DescribeColProto] = Field(default_factory=list)
    is_explain: bool = False
    is_readonly: bool = False


# =============================================================================
# Requests
# =============================================================================


class OpenStreamReq(BaseModel):
    type: Literal["open_stream"] = "open_stream"
    stream_id: int


class CloseStreamReq(BaseModel):
    type: Literal["close_stream"] = "close_stream"
    stream_id: int


class ExecuteReq(BaseModel):
    type: Literal["execute"] = "execute"
    stream_id: int | None = None
    stmt: StmtProto


class BatchReq(BaseModel):
    type: Literal["batch"] = "batch"
    stream_id: int | None = None
    batch: BatchProto


class DescribeReq(BaseModel):
    type: Literal["describe"] = "describe"
    stream_id: int | None = None
    sql: str | None = None
    sql_id: int | None = None


class SequenceReq(BaseModel):
    type: Literal["sequence"] = "sequence"
    stream_id: int | None = None
    sql: str | None = None
    sql_id: int | None = None


class StoreSqlReq(BaseModel):
    type: Literal["store_sql"] = "store_sql"
    sql_id: int
    sql: str


class CloseSqlReq(BaseModel):
    type: Literal["close_sql"] = "close_sql"
    sql_id: int


class CloseReq(BaseModel):
    """HTTP pipeline only: ends the stream identified by the baton."""

    type: Literal["close"] = "close"


Request = (
    OpenStreamReq
    | CloseStreamReq
    | ExecuteReq
    | BatchReq
    | DescribeReq
    | SequenceReq
    | StoreSqlReq
    | CloseSqlReq
    | CloseReq
)


# =============================================================================
# Responses
# =============================================================================


class OpenStreamResp(BaseModel):
    type: Literal["open_stream"] = "open_stream"


class CloseStreamResp(BaseModel):
    type: Literal["close_stream"] = "close_stream"


class ExecuteResp(BaseModel):
    type: Literal["execute"] = "execute"
    result: StmtResultProto


class BatchResp(BaseModel):
    type: Literal["batch"] = "batch"
    result: BatchResultProto


class DescribeResp(BaseModel):
    type: Literal["describe"] = "describe"
    result: DescribeResultProto


class SequenceResp(BaseModel):
    type: Literal["sequence"] = "sequence"


class StoreSqlResp(BaseModel):
    type: Literal["store_sql"] = "store_sql"


class CloseSqlResp(BaseModel):
    type: Literal["close_sql"] = "close_sql"


class CloseResp(BaseModel):
    type: Literal["close"] = "close"


Response = Annotated[
    OpenStreamResp
    | CloseStreamResp
    | ExecuteResp
    | BatchResp
    | DescribeResp
    | SequenceResp
    | StoreSqlResp
    | CloseSqlResp
    | CloseResp,
    Field(discriminator="type"),
]

response_adapter: TypeAdapter[Any] = TypeAdapter(Response)


def parse_response(data: Any) -> Any:
    """Validate a decoded JSON response into its Response model."""
    return response_adapter.validate_python(data)


def request_to_wire(request: BaseModel, *, with_stream_id: bool = True) -> dict[str, Any]:
    """Serialize a request model into its JSON-compatible wire form."""
    exclude = None if with_stream_id else {"stream_id"}
    return request.model_dump(mode="json", exclude_none=True, exclude=exclude)
