"""Configuration management CLI commands."""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape

from unisql.cli.utils import console
from unisql.config import create_sample_config, get_config
from unisql.exceptions import ConfigurationError


@click.group(name="config")
def config_group() -> None:
    """Configuration management."""
    pass


@config_group.command(name="validate")
@click.argument("config_file", type=click.Path(exists=True))
def validate_command(config_file: str) -> None:
    """Validate configuration file."""
    try:
        config = get_config(config_file, reload=True)
        console.print(f"[green]✅ Configuration file '{escape(config_file)}' is valid[/green]")
        console.print(
            f"Found {len(config.data_sources)} data source(s): "
            f"{escape(', '.join(config.data_sources.keys()))}"
        )
        console.print(f"Default data source: [cyan]{escape(str(config.default_data_source))}[/cyan]")
    except ConfigurationError as exc:
        console.print(f"[red]❌ Configuration validation failed: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc


@config_group.command(name="sample")
@click.argument("output_file", type=click.Path())
def sample_command(output_file: str) -> None:
    """Create sample configuration file."""
    output_path = Path(output_file)
    if output_path.exists():
        click.confirm(f"File '{output_file}' exists. Overwrite?", abort=True)

    try:
        create_sample_config(output_path)
    except OSError as exc:
        console.print(f"[red]Error creating sample configuration: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc

    console.print(f"[green]✅ Sample configuration created: {escape(output_file)}[/green]")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Edit the data sources to match your databases")
    console.print("2. Set required environment variables (e.g., REPORT_DB_PASSWORD)")
    console.print(f"3. Validate: [cyan]unisql config validate {escape(output_file)}[/cyan]")
