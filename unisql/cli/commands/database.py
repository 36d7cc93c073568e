"""Statement execution and data source CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from unisql.cli.utils import console, format_value, print_exception
from unisql.config import FetchMode, get_config
from unisql.db import Cursor, DataSourceManager
from unisql.exceptions import ConfigurationError, DatabaseError


def _get_manager(ctx: click.Context) -> DataSourceManager:
    config = get_config(ctx.obj.get('config'), reload=True)
    return DataSourceManager(config)


@click.command(name="exec")
@click.argument("sql")
@click.option("--data-source", "-d", help="Data source to run against (default: default data source)")
@click.option("--names", is_flag=True, help="Print each row as column = value lines")
@click.pass_context
def exec_command(ctx: click.Context, sql: str, data_source: Optional[str], names: bool) -> None:
    """Execute one SQL statement and print its rows or affected-row count."""
    try:
        manager = _get_manager(ctx)
        with manager.connect(data_source) as connection:
            result = connection.execute(sql)
            if isinstance(result, int):
                console.print(f"[green]{result} row(s) affected[/green]")
                return
            with result as cursor:
                if names:
                    _print_records(cursor)
                else:
                    _print_table(cursor)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc
    except DatabaseError as exc:
        print_exception("Statement failed", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc


@click.command(name="ping")
@click.option("--data-source", "-d", help="Specific data source to test (default: all)")
@click.pass_context
def ping_command(ctx: click.Context, data_source: Optional[str]) -> None:
    """Test data source connections."""
    try:
        manager = _get_manager(ctx)

        console.print("[bold blue]Testing Data Source Connections[/bold blue]\n")

        if data_source:
            results = {data_source: manager.test_connection(data_source)}
        else:
            results = manager.test_all_connections()
        for result in results.values():
            _show_connection_result(result)
            console.print()
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc

    if any(result['status'] != 'success' for result in results.values()):
        raise SystemExit(1)


@click.command(name="sources")
@click.pass_context
def sources_command(ctx: click.Context) -> None:
    """List configured data sources."""
    try:
        manager = _get_manager(ctx)

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Data Source", style="cyan")
        table.add_column("Driver", style="green")
        table.add_column("Source", style="yellow")
        table.add_column("Host")
        table.add_column("Default", style="blue")

        for name in manager.list_data_sources():
            info = manager.get_data_source_info(name)
            host = f"{info['host']}:{info['port']}" if info['port'] else (info['host'] or "")
            table.add_row(
                escape(name),
                info['driver_type'],
                escape(info['source']),
                escape(host),
                "✓" if info['default'] else "",
            )

        console.print(table)
        console.print(f"\nTotal: {len(manager.list_data_sources())} data source(s)")
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc


def _print_table(cursor: Cursor) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    for name, declared_type in zip(cursor.get_column_names(), cursor.get_column_types()):
        header = escape(name)
        if declared_type:
            header += f"\n[dim]{escape(declared_type)}[/dim]"
        table.add_column(header)

    row_total = 0
    for row in cursor:
        table.add_row(*[format_value(value) for value in row])
        row_total += 1

    console.print(table)
    console.print(f"\n[dim]{row_total} row(s)[/dim]")


def _print_records(cursor: Cursor) -> None:
    cursor.fetch_mode = FetchMode.NAME
    row_total = 0
    while True:
        record = cursor.fetch({})
        if record is None:
            break
        row_total += 1
        console.print(f"[bold]-- row {row_total} --[/bold]")
        for name, value in record.items():
            console.print(f"[cyan]{escape(name)}[/cyan] = {format_value(value)}")

    console.print(f"\n[dim]{row_total} row(s)[/dim]")


def _show_connection_result(result: dict) -> None:
    status_color = "green" if result['status'] == 'success' else "red"
    console.print(f"Data Source: [cyan]{escape(str(result['data_source']))}[/cyan]")
    console.print(f"Status: [{status_color}]{result['status'].upper()}[/{status_color}]")
    console.print(f"Message: {escape(result.get('message', 'No message provided'))}")
    console.print(f"Response Time: {result.get('response_time', 0)} ms")
    if 'driver' in result:
        console.print(f"Driver: {result['driver']}")
