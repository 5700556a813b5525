"""Helpers shared by the CLI command modules."""

import sys
from typing import List, Sequence

import click
from rich import print as rprint

from landprep.config import AppConfig, DatasetConfig, load_config
from landprep.core.exceptions import LandprepError, WriteError
from landprep.pipeline.runner import PipelineReport


def get_app_config(ctx) -> AppConfig:
    """Configuration loaded by the root command, or loaded now with defaults."""
    ctx.ensure_object(dict)
    if "app_config" not in ctx.obj:
        ctx.obj["app_config"] = load_config(
            config_path=ctx.obj.get("config_path"),
            environment=ctx.obj.get("environment", "development"),
        )
    return ctx.obj["app_config"]


def select_datasets(app_config: AppConfig, names: Sequence[str]) -> List[DatasetConfig]:
    """Datasets named on the command line, or every dataset when none are named."""
    if not names:
        return list(app_config.datasets)
    known = {d.name for d in app_config.datasets}
    unknown = [n for n in names if n not in known]
    if unknown:
        raise click.BadParameter(f"Unknown dataset(s): {', '.join(unknown)}")
    return [app_config.get_dataset(n) for n in names]


def run_and_report(func, *args, **kwargs) -> PipelineReport:
    """
    Run a pipeline step and render its report.

    A WriteError aborts with exit code 1, as do failures when nothing was
    written at all.
    """
    try:
        report = func(*args, **kwargs)
    except WriteError as e:
        rprint(f"[red]❌ Write failed: {e}[/red]")
        sys.exit(1)
    except LandprepError as e:
        rprint(f"[red]❌ {type(e).__name__}: {e}[/red]")
        sys.exit(1)

    report.render()
    if report.failures and not report.outputs:
        sys.exit(1)
    return report
