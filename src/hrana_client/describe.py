"""Results of `Stream.describe()`."""

from __future__ import annotations

from dataclasses import dataclass, field

from .protocol.wire import DescribeResultProto


@dataclass
class DescribeParam:
    name: str | None


@dataclass
class DescribeColumn:
    name: str
    decltype: str | None


@dataclass
class DescribeResult:
    """Parameters and result columns of a statement, as analyzed by the server."""

    params: list[DescribeParam] = field(default_factory=list)
    columns: list[DescribeColumn] = field(default_factory=list)
    is_explain: bool = False
    is_readonly: bool = False


def describe_result_from_proto(result: DescribeResultProto) -> DescribeResult:
    return DescribeResult(
        params=[DescribeParam(name=p.name) for p in result.params],
        columns=[DescribeColumn(name=c.name, decltype=c.decltype) for c in result.cols],
        is_explain=result.is_explain,
        is_readonly=result.is_readonly,
    )
