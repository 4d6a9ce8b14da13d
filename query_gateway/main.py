from __future__ import annotations

import json
import sys
from typing import Any, NoReturn, Optional

import typer

from query_gateway.config import get_settings
from query_gateway.domain.errors import GatewayError
from query_gateway.gateway import QueryGateway
from query_gateway.utils.logging import configure_logging

app = typer.Typer(help="Read-only query gateway CLI.")


def _gateway() -> QueryGateway:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return QueryGateway.from_settings(settings)


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _fail(exc: GatewayError) -> NoReturn:
    typer.echo(f"{type(exc).__name__}: {exc.message}", err=True)
    raise typer.Exit(code=1)


@app.command()
def info() -> None:
    """
    Show effective limits, the default server/database and configured servers.
    """
    settings = get_settings()
    try:
        with _gateway() as gateway:
            defaults = gateway.default_configuration()
            servers = gateway.list_resources()
    except GatewayError as exc:
        _fail(exc)
    _emit(
        {
            "limits": {
                "query_timeout_ms": settings.query_timeout_ms,
                "connection_timeout_ms": settings.connection_timeout_ms,
                "max_result_rows": settings.max_result_rows,
                "max_response_bytes": settings.max_response_bytes,
                "pool_min": settings.pool_min,
                "pool_max": settings.pool_max,
                "ssl_mode": settings.ssl_mode,
                "read_only_sessions": settings.read_only_sessions,
            },
            "defaults": defaults.model_dump(),
            "servers": [server.model_dump() for server in servers],
        }
    )


@app.command()
def servers() -> None:
    """
    List configured servers.
    """
    try:
        with _gateway() as gateway:
            _emit([server.model_dump() for server in gateway.list_resources()])
    except GatewayError as exc:
        _fail(exc)


@app.command()
def databases(server_id: str = typer.Argument(..., help="Server id.")) -> None:
    """
    List databases on a server (live catalog in discovery mode).
    """
    try:
        with _gateway() as gateway:
            _emit([db.model_dump() for db in gateway.list_databases(server_id)])
    except GatewayError as exc:
        _fail(exc)


@app.command("test-connection")
def test_connection(
    server_id: str = typer.Argument(..., help="Server id."),
    database: str = typer.Argument(..., help="Database name."),
) -> None:
    """
    Check that a server/database is reachable. Exits 1 when it is not.
    """
    try:
        with _gateway() as gateway:
            result = gateway.test_connection(server_id, database)
    except GatewayError as exc:
        _fail(exc)
    _emit(result.model_dump())
    if not result.connected:
        raise typer.Exit(code=1)


@app.command()
def query(
    sql: str = typer.Argument(..., help="A single SELECT statement."),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", help="Server id (defaults to the first active server)."
    ),
    database: Optional[str] = typer.Option(
        None, "--database", "-d", help="Database name (defaults to the first active one)."
    ),
) -> None:
    """
    Run a read-only SELECT and print columns, rows and the truncation flag.
    """
    try:
        with _gateway() as gateway:
            result = gateway.run_select(sql, server, database)
    except GatewayError as exc:
        _fail(exc)
    _emit(result.model_dump())


@app.command()
def schema(
    schema_name: str = typer.Argument(..., metavar="SCHEMA", help="Schema name, e.g. public."),
    table: str = typer.Argument(..., help="Table name."),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", help="Server id (defaults to the first active server)."
    ),
    database: Optional[str] = typer.Option(
        None, "--database", "-d", help="Database name (defaults to the first active one)."
    ),
) -> None:
    """
    Describe a table's columns, indexes and foreign keys.
    """
    try:
        with _gateway() as gateway:
            result = gateway.get_table_schema(server, database, schema_name, table)
    except GatewayError as exc:
        _fail(exc)
    _emit(result.model_dump())


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
