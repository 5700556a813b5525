"""
Boundary, rule-check and processing commands.
"""

import sys

import click
from rich.console import Console
from rich.table import Table

from landprep.cli.utils import get_app_config, run_and_report, select_datasets
from landprep.core.classifier import RuleSet, check_rule_overlap
from landprep.core.exceptions import LandprepError
from landprep.core.zones import rank_zones
from landprep.pipeline.runner import (
    prepare_boundaries,
    read_zones,
    run_all,
    run_dataset,
    run_elevation,
)

console = Console()


@click.group()
def boundary():
    """Study boundary commands."""
    pass


@boundary.command("build")
@click.pass_context
def build_boundary(ctx):
    """Build and export zones, regional / local boundaries and the covering layer."""
    app_config = get_app_config(ctx)
    run_and_report(lambda cfg: prepare_boundaries(cfg, export=True)[1], app_config)


@boundary.command("rank")
@click.option("--column", required=True, help="Numeric zone column to rank by")
@click.option("-n", "count", default=10, help="Number of zones at each end")
@click.pass_context
def rank(ctx, column, count):
    """Show the top and bottom zones by COLUMN."""
    app_config = get_app_config(ctx)
    try:
        zones = read_zones(app_config)
    except LandprepError as e:
        raise click.ClickException(str(e))
    try:
        top, bottom = rank_zones(zones, column, count)
    except KeyError as e:
        raise click.BadParameter(str(e), param_hint="--column")

    id_column = app_config.boundary.zone_id_column
    for title, frame in (("Top", top), ("Bottom", bottom)):
        table = Table(title=f"{title} {count} zones by {column}", header_style="bold magenta")
        table.add_column(id_column, style="cyan")
        table.add_column(column, justify="right", style="green")
        for _, row in frame.iterrows():
            table.add_row(str(row.get(id_column, "")), f"{row[column]:,.2f}")
        console.print(table)


@click.group()
def rules():
    """Category rule commands."""
    pass


@rules.command("check")
@click.argument("datasets", nargs=-1)
@click.pass_context
def check(ctx, datasets):
    """Check that the category rules of DATASETS cannot overlap (all when none given)."""
    app_config = get_app_config(ctx)
    selected = select_datasets(app_config, datasets)

    table = Table(title="Rule overlaps", header_style="bold magenta")
    table.add_column("Dataset", style="cyan")
    table.add_column("Themes")
    table.add_column("Reason", style="yellow")

    found = 0
    for dataset in selected:
        for first, second, reason in check_rule_overlap(RuleSet.from_config(dataset)):
            table.add_row(dataset.name, f"{first} / {second}", reason)
            found += 1

    if not found:
        console.print(f"[green]✅ No overlapping rules in {len(selected)} datasets[/green]")
        return

    console.print(table)
    sys.exit(1)


@click.group()
def process():
    """Processing commands."""
    pass


@process.command("dataset")
@click.argument("name")
@click.pass_context
def process_dataset(ctx, name):
    """Process one dataset family into R<theme>.gpkg and L<theme>.gpkg outputs."""
    app_config = get_app_config(ctx)
    try:
        app_config.get_dataset(name)
    except KeyError as e:
        raise click.BadParameter(str(e), param_hint="NAME")
    run_and_report(run_dataset, app_config, name)


@process.command("elevation")
@click.pass_context
def process_elevation(ctx):
    """Merge elevation tiles and export the slope raster."""
    run_and_report(run_elevation, get_app_config(ctx))


@process.command("all")
@click.pass_context
def process_all(ctx):
    """Build boundaries, process every dataset and the elevation theme."""
    run_and_report(run_all, get_app_config(ctx))
