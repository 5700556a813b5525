"""
Download and unzip commands.
"""

import click
from rich.console import Console

from landprep.cli.utils import get_app_config, run_and_report, select_datasets
from landprep.pipeline.runner import download_sources, unzip_sources

console = Console()


@click.group()
@click.pass_context
def fetch(ctx):
    """Download and extract source archives."""
    ctx.ensure_object(dict)


@fetch.command("download")
@click.argument("datasets", nargs=-1)
@click.option("--all", "all_datasets", is_flag=True, help="Download every dataset")
@click.option("--elevation", is_flag=True, help="Also download the elevation tiles")
@click.pass_context
def download(ctx, datasets, all_datasets, elevation):
    """Download the archives of DATASETS into the raw directory."""
    app_config = get_app_config(ctx)
    if not datasets and not all_datasets and not elevation:
        raise click.UsageError("Name at least one dataset, or use --all / --elevation")
    if all_datasets:
        selected = select_datasets(app_config, ())
    else:
        selected = select_datasets(app_config, datasets) if datasets else []
    names = [d.name for d in selected]

    console.print(f"[bold blue]⬇️  Downloading {', '.join(names) or 'elevation'}[/bold blue]")
    run_and_report(download_sources, app_config, names, elevation=elevation)


@fetch.command("unzip")
@click.argument("datasets", nargs=-1)
@click.option("--elevation", is_flag=True, help="Also extract the elevation tiles")
@click.pass_context
def unzip(ctx, datasets, elevation):
    """Extract downloaded archives of DATASETS (all when none given)."""
    app_config = get_app_config(ctx)
    selected = select_datasets(app_config, datasets)
    subdirs = [d.download_subdir for d in selected]
    if elevation or not datasets:
        subdirs.append(app_config.elevation.subdir)

    console.print(f"[bold blue]📦 Extracting {', '.join(subdirs)}[/bold blue]")
    run_and_report(unzip_sources, app_config, subdirs)
