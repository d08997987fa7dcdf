"""Typed statement results decoded from wire payloads."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from .errors import NoRowsError, ProtocolError, TooManyColumnsError
from .protocol.wire import StmtResultProto
from .values import SqlValue, value_from_proto


class Row(Sequence[SqlValue]):
    """A result row, indexable by position or by column name."""

    __slots__ = ("_values", "_columns")

    def __init__(self, values: Sequence[SqlValue], columns: Sequence[str | None]):
        self._values = tuple(values)
        self._columns = tuple(columns)

    def __getitem__(self, key: Any) -> Any:
        if isinstance(key, str):
            try:
                return self._values[self._columns.index(key)]
            except ValueError:
                raise KeyError(key) from None
        return self._values[key]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[SqlValue]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._values == other._values
        if isinstance(other, tuple | list):
            return self._values == tuple(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._values)

    def __repr__(self) -> str:
        return f"Row{self._values!r}"

    def as_dict(self) -> dict[str, SqlValue]:
        """Map column names to values; unnamed columns are skipped."""
        return {
            name: value for name, value in zip(self._columns, self._values) if name is not None
        }


@dataclass
class StmtResult:
    """Metadata common to every statement result."""

    affected_row_count: int
    last_insert_rowid: int | None
    columns: list[str | None] = field(default_factory=list)
    column_types: list[str | None] = field(default_factory=list)


@dataclass
class RowsResult(StmtResult):
    rows: list[Row] = field(default_factory=list)


@dataclass
class RowResult(StmtResult):
    row: Row | None = None


@dataclass
class ValueResult(StmtResult):
    value: SqlValue = None


def _meta(result: StmtResultProto) -> dict[str, Any]:
    return {
        "affected_row_count": result.affected_row_count,
        "last_insert_rowid": (
            int(result.last_insert_rowid) if result.last_insert_rowid is not None else None
        ),
        "columns": [col.name for col in result.cols],
        "column_types": [col.decltype for col in result.cols],
    }


def _rows(result: StmtResultProto) -> list[Row]:
    columns = [col.name for col in result.cols]
    rows = []
    for raw in result.rows:
        if len(raw) != len(columns):
            raise ProtocolError(
                f"Row has {len(raw)} values but the result has {len(columns)} columns"
            )
        rows.append(Row([value_from_proto(v) for v in raw], columns))
    return rows


def stmt_result_from_proto(result: StmtResultProto) -> StmtResult:
    return StmtResult(**_meta(result))


def rows_result_from_proto(result: StmtResultProto) -> RowsResult:
    return RowsResult(**_meta(result), rows=_rows(result))


def row_result_from_proto(result: StmtResultProto) -> RowResult:
    """Decode the first row. Zero rows raise NoRowsError."""
    rows = _rows(result)
    if not rows:
        raise NoRowsError("Statement returned no rows")
    return RowResult(**_meta(result), row=rows[0])


def value_result_from_proto(result: StmtResultProto) -> ValueResult:
    """Decode the single value of the first row.

    Raises:
        NoRowsError: The statement returned no rows
        TooManyColumnsError: The row has more than one column
    """
    rows = _rows(result)
    if not rows:
        raise NoRowsError("Statement returned no rows")
    row = rows[0]
    if len(row) > 1:
        raise TooManyColumnsError(f"Statement returned {len(row)} columns, expected one")
    if len(row) == 0:
        raise ProtocolError("Statement returned a row without columns")
    return ValueResult(**_meta(result), value=row[0])
