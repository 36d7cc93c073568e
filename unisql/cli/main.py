"""Main CLI entry point for unisql."""

from __future__ import annotations

import logging

import click

from unisql import __version__
from unisql.cli.commands import register_commands
from unisql.cli.commands.configuration import config_group
from unisql.cli.commands.database import exec_command, ping_command, sources_command
from unisql.cli.utils import console
from unisql.config import EnvironmentSettings


def configure_logging(verbose: bool) -> None:
    """Configure root logging from ``--verbose`` and the UNISQL_* environment."""
    settings = EnvironmentSettings()
    if verbose or settings.debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, version: bool, config: str, verbose: bool) -> None:
    """unisql - one environment/connection/cursor API over SQLite, MySQL and PostgreSQL."""
    ctx.ensure_object(dict)
    ctx.obj.update({"config": config, "verbose": verbose})

    configure_logging(verbose)

    if version:
        console.print(f"unisql v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


COMMAND_REGISTRY = [
    exec_command,
    ping_command,
    sources_command,
    config_group,
]

register_commands(cli, COMMAND_REGISTRY)


if __name__ == "__main__":
    cli()
