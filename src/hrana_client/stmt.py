"""Statements and their wire encoding.

A statement can be given in several forms:
- SQL text or a `Sql` handle: `"SELECT 1"`
- a `(sql, args)` tuple, where args is a sequence (positional) or a mapping (named)
- a `Stmt` object, built up with `bind()` / `bind_named()`
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from .protocol.wire import NamedArg, StmtProto
from .sql import InSql, Sql, sql_to_proto
from .values import value_to_proto

if TYPE_CHECKING:
    from .client import Client


class Stmt:
    """A SQL statement with positional and named arguments."""

    def __init__(
        self,
        sql: InSql,
        args: Iterable[Any] | None = None,
        named_args: Mapping[str, Any] | None = None,
    ):
        self.sql = sql
        self.args: list[Any] = list(args or [])
        self.named_args: dict[str, Any] = dict(named_args or {})

    def bind(self, *values: Any) -> Stmt:
        """Append positional arguments."""
        self.args.extend(values)
        return self

    def bind_named(self, **values: Any) -> Stmt:
        """Set named arguments. Names may include the `:`, `@` or `$` prefix."""
        self.named_args.update(values)
        return self

    def __repr__(self) -> str:
        return f"Stmt({self.sql!r}, args={self.args!r}, named_args={self.named_args!r})"


InStmt = str | Sql | Stmt | tuple[InSql, Sequence[Any] | Mapping[str, Any]]


def _to_stmt(in_stmt: InStmt) -> Stmt:
    if isinstance(in_stmt, Stmt):
        return in_stmt
    if isinstance(in_stmt, str | Sql):
        return Stmt(in_stmt)
    if isinstance(in_stmt, tuple) and len(in_stmt) == 2:
        sql, args = in_stmt
        if isinstance(args, Mapping):
            return Stmt(sql, named_args=args)
        return Stmt(sql, args=args)
    raise TypeError(f"Cannot build a statement from {type(in_stmt).__name__}")


def stmt_to_proto(in_stmt: InStmt, want_rows: bool, client: Client) -> StmtProto:
    """Encode a statement for an execute or batch request."""
    stmt = _to_stmt(in_stmt)
    sql, sql_id = sql_to_proto(stmt.sql, client)
    return StmtProto(
        sql=sql,
        sql_id=sql_id,
        args=[value_to_proto(v) for v in stmt.args],
        named_args=[
            NamedArg(name=name, value=value_to_proto(v)) for name, v in stmt.named_args.items()
        ],
        want_rows=want_rows,
    )
