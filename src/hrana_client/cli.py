"""Hrana command-line client.

Usage:
    hrana --url https://db.example.com query "SELECT * FROM t"
    hrana run "INSERT INTO t VALUES (1)"          # URL from HRANA_URL
    hrana --format json query "SELECT 1 AS one"
    hrana describe "SELECT * FROM t WHERE x = ?"
    hrana sequence "CREATE TABLE a (x); CREATE TABLE b (y)"
    hrana version
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import click

from .client import Client
from .config import ENV_AUTH_TOKEN, ENV_URL, ClientConfig
from .errors import ClientError
from .result import Row
from .stream import Stream
from .transport import open_client

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"


def format_value(value: Any) -> str:
    """Format a column value for table display."""
    if value is None:
        return "NULL"
    if isinstance(value, bytes):
        return f"x'{value.hex()}'"
    return str(value)


def json_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    return value


def print_rows(columns: list[str | None], rows: list[Row], output_format: str) -> None:
    names = [name if name is not None else f"column{i}" for i, name in enumerate(columns)]
    if output_format == FORMAT_JSON:
        data = [{n: json_value(v) for n, v in zip(names, row)} for row in rows]
        click.echo(json.dumps(data, indent=2))
        return

    cells = [[format_value(v) for v in row] for row in rows]
    widths = [len(n) for n in names]
    for line in cells:
        widths = [max(w, len(c)) for w, c in zip(widths, line)]
    click.echo("  ".join(n.ljust(w) for n, w in zip(names, widths)))
    click.echo("  ".join("-" * w for w in widths))
    for line in cells:
        click.echo("  ".join(c.ljust(w) for c, w in zip(line, widths)))
    click.echo(f"({len(rows)} row{'s' if len(rows) != 1 else ''})")


def _run_with_stream(ctx: click.Context, fn: Callable[[Stream], Awaitable[None]]) -> None:
    """Open a client and stream, run `fn`, and report client errors."""
    config: ClientConfig = ctx.obj["config"]

    async def main() -> None:
        client: Client = open_client(config)
        async with client:
            stream = client.open_stream()
            async with stream:
                await fn(stream)

    try:
        asyncio.run(main())
    except (ClientError, ValueError) as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("--url", envvar=ENV_URL, required=True, help=f"Server URL (or ${ENV_URL})")
@click.option(
    "--auth-token", envvar=ENV_AUTH_TOKEN, default=None, help=f"JWT (or ${ENV_AUTH_TOKEN})"
)
@click.option("--timeout", default=30.0, show_default=True, help="HTTP request timeout")
@click.option(
    "--format",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    show_default=True,
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(
    ctx: click.Context,
    url: str,
    auth_token: str | None,
    timeout: float,
    output_format: str,
    verbose: bool,
) -> None:
    """Hrana client - execute SQL on a remote database."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    ctx.ensure_object(dict)
    ctx.obj["config"] = ClientConfig(url=url, auth_token=auth_token, timeout=timeout)
    ctx.obj["format"] = output_format


@main.command()
@click.argument("sql")
@click.pass_context
def query(ctx: click.Context, sql: str) -> None:
    """Execute a statement and print the returned rows."""

    async def do(stream: Stream) -> None:
        result = await stream.query(sql)
        print_rows(result.columns, result.rows, ctx.obj["format"])

    _run_with_stream(ctx, do)


@main.command()
@click.argument("sql")
@click.pass_context
def run(ctx: click.Context, sql: str) -> None:
    """Execute a statement and print the affected row count."""

    async def do(stream: Stream) -> None:
        result = await stream.run(sql)
        if ctx.obj["format"] == FORMAT_JSON:
            click.echo(
                json.dumps(
                    {
                        "affected_row_count": result.affected_row_count,
                        "last_insert_rowid": result.last_insert_rowid,
                    }
                )
            )
        else:
            click.echo(f"Affected rows: {result.affected_row_count}")
            if result.last_insert_rowid is not None:
                click.echo(f"Last insert rowid: {result.last_insert_rowid}")

    _run_with_stream(ctx, do)


@main.command()
@click.argument("sql")
@click.pass_context
def describe(ctx: click.Context, sql: str) -> None:
    """Show the parameters and columns of a statement."""

    async def do(stream: Stream) -> None:
        result = await stream.describe(sql)
        if ctx.obj["format"] == FORMAT_JSON:
            click.echo(
                json.dumps(
                    {
                        "params": [p.name for p in result.params],
                        "columns": [{"name": c.name, "decltype": c.decltype} for c in result.columns],
                        "is_explain": result.is_explain,
                        "is_readonly": result.is_readonly,
                    },
                    indent=2,
                )
            )
            return
        click.echo(f"Parameters: {len(result.params)}")
        for i, param in enumerate(result.params, 1):
            click.echo(f"  {i}: {param.name or '?'}")
        click.echo(f"Columns: {len(result.columns)}")
        for col in result.columns:
            click.echo(f"  {col.name} {col.decltype or ''}".rstrip())
        click.echo(f"Read-only: {'yes' if result.is_readonly else 'no'}")

    _run_with_stream(ctx, do)


@main.command()
@click.argument("sql")
@click.pass_context
def sequence(ctx: click.Context, sql: str) -> None:
    """Execute several statements separated by semicolons."""

    async def do(stream: Stream) -> None:
        await stream.sequence(sql)
        click.echo("OK")

    _run_with_stream(ctx, do)


@main.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Print the protocol version spoken by the server."""
    config: ClientConfig = ctx.obj["config"]

    async def get_version() -> int:
        async with open_client(config) as client:
            return await client.get_version()

    try:
        click.echo(str(asyncio.run(get_version())))
    except (ClientError, ValueError) as e:
        raise click.ClickException(str(e)) from e


if __name__ == "__main__":
    main()
