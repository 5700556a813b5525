#!/usr/bin/env python
"""
Main CLI entry point for landprep.
"""

import sys
from collections import deque
from pathlib import Path

import click
from loguru import logger
from rich import print as rprint

from landprep import __version__
from landprep.cli.fetch_cmd import fetch
from landprep.cli.process_cmd import boundary, process, rules
from landprep.cli.utils import get_app_config
from landprep.config import ConfigurationError, config_sources, load_config
from landprep.utils.logging import landprep_logger, setup_logging

env_map = {
    "prod": "production",
    "production": "production",
    "dev": "development",
    "development": "development",
    "test": "test",
}


@click.group(context_settings={"show_default": True})
@click.version_option(version=__version__, prog_name="landprep")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option(
    "--env",
    "-e",
    type=click.Choice(list(env_map.keys())),
    default="development",
    envvar="LANDPREP_ENVIRONMENT",
    help="Environment (dev/prod/test), or LANDPREP_ENVIRONMENT",
)
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output and debug logging"
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Custom log file path (default: from configuration)",
)
@click.pass_context
def cli(ctx, config, env, verbose, log_file):
    """landprep - data preparation for the land-development model"""
    ctx.ensure_object(dict)
    environment = env_map[env.lower()]

    try:
        app_config = load_config(config_path=config, environment=environment)
    except ConfigurationError as e:
        rprint(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    ctx.obj["app_config"] = app_config
    ctx.obj["config_path"] = config
    ctx.obj["environment"] = environment
    ctx.obj["verbose"] = verbose

    if verbose:
        rprint(f"[cyan]Environment: {environment}[/cyan]")
        rprint(f"[cyan]Log Level: {app_config.global_.log_level}[/cyan]")
        rprint(f"[cyan]Common CRS: {app_config.global_.common_crs}[/cyan]")
        rprint(f"[cyan]Clean dir: {app_config.paths.clean_dir}[/cyan]")

    setup_logging(app_config, verbose=verbose, log_file=log_file, environment=environment)
    logger.debug(f"landprep CLI started (environment: {environment}, config: {config})")


@cli.command()
@click.pass_context
def info(ctx) -> None:
    """Display information about the landprep installation."""
    app_config = get_app_config(ctx)
    click.echo(f"landprep version: {__version__}")
    click.echo(f"Python version: {sys.version.split()[0]}")
    click.echo(f"Environment: {ctx.obj.get('environment', 'development')}")
    click.echo(f"Common CRS: {app_config.global_.common_crs}")
    click.echo(f"Pixel size: {app_config.raster.pixel_size}")
    click.echo(f"Config sources: {', '.join(config_sources()) or 'built-in defaults'}")

    click.echo("\nDirectories:")
    click.echo(f"  raw:      {app_config.paths.raw_dir}")
    click.echo(f"  unzipped: {app_config.paths.unzipped_dir}")
    click.echo(f"  clean:    {app_config.paths.clean_dir}")

    click.echo("\nDatasets:")
    if not app_config.datasets:
        click.echo("  (none configured)")
    for dataset in app_config.datasets:
        themes = ", ".join(dataset.themes)
        click.echo(f"  {dataset.name}: {len(dataset.resolved_urls())} URLs -> {themes}")


@cli.group()
def logs():
    """Inspect the log configuration and the current log file."""


@logs.command("show")
def show_logs():
    """Print the active sinks, level and log file."""
    landprep_logger.show_log_info()


@logs.command("tail")
@click.option("--lines", "-n", default=50, help="Lines to print from the end of the log")
def tail_logs(lines):
    """Print the last lines of the current log file."""
    log_file = landprep_logger.get_log_file_path()
    if log_file is None or not log_file.exists():
        raise click.ClickException("file logging is disabled or nothing was logged yet")

    with open(log_file, "r", encoding="utf-8") as f:
        last = deque(f, maxlen=lines)

    rprint(f"[bold]{log_file}[/bold] ({len(last)} lines)")
    for line in last:
        click.echo(line.rstrip())


cli.add_command(fetch)
cli.add_command(boundary)
cli.add_command(rules)
cli.add_command(process)


def main() -> None:
    """Console script entry point."""
    try:
        cli()
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
