# src/landprep/pipeline/runner.py
"""
Orchestration of the preparation pipeline.

Per dataset: discover tiles, classify and harmonize each tile in a bounded
process pool, reduce per theme, clip to both boundaries and export. A failed
tile is logged and left out of the reduction; a WriteError stops the run.
"""

from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import geopandas as gpd
from loguru import logger
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from shapely.geometry.base import BaseGeometry

from landprep.config import LOCAL_PREFIX, REGIONAL_PREFIX, AppConfig
from landprep.core.boundary import StudyBoundary, build_study_boundary, select_zones
from landprep.core.classifier import (
    RuleSet,
    check_rule_overlap,
    classify_all,
    find_ambiguous_features,
)
from landprep.core.clip import clip_both
from landprep.core.exceptions import FormatError, LandprepError, WriteError
from landprep.core.export import (
    check_within_grid,
    covering_geometry,
    write_raster,
    write_vector,
)
from landprep.core.fetch import FetchReport, Fetcher, unzip_all
from landprep.core.geometry import (
    CRSLike,
    MergedFeature,
    as_crs,
    geometry_summary,
    harmonize,
    merge_features,
)
from landprep.core.raster import process_elevation
from landprep.core.reader import discover_files, read_layer
from landprep.core.zones import compute_zone_statistics
from landprep.utils.console import console as status_console

console = Console()


@dataclass
class TileResult:
    """Per-theme features of one source file."""

    path: Path
    features: Dict[str, MergedFeature]
    total: int
    ambiguous: int = 0


@dataclass
class PipelineReport:
    """Outputs written and items that failed during a run"""

    outputs: List[Path] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    rows: List[Tuple[str, str, int, float]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def add_failure(self, item: str, reason: str) -> None:
        logger.warning(f"{item}: {reason}")
        self.failures[item] = reason

    def extend(self, other: "PipelineReport") -> None:
        self.outputs.extend(other.outputs)
        self.failures.update(other.failures)
        self.rows.extend(other.rows)

    def add_fetch_report(self, fetch_report: FetchReport) -> None:
        self.outputs.extend(fetch_report.downloaded)
        self.failures.update(fetch_report.failed)

    def render(self, console: Console = console) -> None:
        if self.rows:
            table = Table(title="Outputs", show_header=True, header_style="bold magenta")
            table.add_column("Theme", style="cyan")
            table.add_column("Scope")
            table.add_column("Parts", justify="right")
            table.add_column("Area (km²)", justify="right", style="green")
            for theme, scope, parts, area in self.rows:
                table.add_row(theme, scope, str(parts), f"{area / 1_000_000:,.2f}")
            console.print(table)

        if self.failures:
            table = Table(title="Failures", show_header=True, header_style="bold red")
            table.add_column("Item", style="yellow", overflow="fold")
            table.add_column("Reason", style="red")
            for item, reason in self.failures.items():
                table.add_row(item, reason)
            console.print(table)

        status = "[green]✅" if self.ok else "[yellow]⚠️ "
        console.print(
            f"{status} {len(self.outputs)} files written, {len(self.failures)} failures"
        )


@dataclass(frozen=True)
class PipelineContext:
    """Read-only state shared by every dataset run."""

    config: AppConfig
    boundary: StudyBoundary
    covering: BaseGeometry

    @property
    def clean_dir(self) -> Path:
        return self.config.paths.clean_dir


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=status_console,
        transient=True,
    )


# --- download ---------------------------------------------------------------


def _fetcher(config: AppConfig, subdir: str) -> Fetcher:
    fetch = config.fetch
    return Fetcher(
        config.paths.raw_dir / subdir,
        timeout=fetch.timeout,
        max_retries=fetch.max_retries,
        backoff_factor=fetch.backoff_factor,
        max_workers=fetch.max_workers,
        overwrite=fetch.overwrite,
    )


def download_sources(
    config: AppConfig,
    dataset_names: Sequence[str] = (),
    elevation: bool = False,
) -> PipelineReport:
    """Download the archives of the named datasets and, optionally, the elevation tiles."""
    report = PipelineReport()
    for name in dataset_names:
        dataset = config.get_dataset(name)
        urls = dataset.resolved_urls()
        if not urls:
            logger.warning(f"Dataset '{name}' has no URLs")
            continue
        report.add_fetch_report(_fetcher(config, dataset.download_subdir).download_all(urls))

    if elevation:
        urls = config.elevation.resolved_urls()
        report.add_fetch_report(_fetcher(config, config.elevation.subdir).download_all(urls))

    return report


def unzip_sources(config: AppConfig, subdirs: Iterable[str]) -> PipelineReport:
    """Extract downloaded archives into the unzipped directory."""
    report = PipelineReport()
    for subdir in subdirs:
        raw = config.paths.raw_dir / subdir
        if not raw.exists():
            report.add_failure(str(raw), "no downloaded archives")
            continue
        report.add_fetch_report(unzip_all(raw, config.paths.unzipped_dir / subdir))
    return report


# --- boundaries -------------------------------------------------------------


def read_zones(config: AppConfig) -> gpd.GeoDataFrame:
    """The zone collection, in the common CRS."""
    bcfg = config.boundary
    if bcfg.zones_path is None:
        raise LandprepError("boundary.zones_path is not configured")
    layer = read_layer(bcfg.zones_path, layer=bcfg.zones_layer)
    if layer.crs is None:
        raise LandprepError(f"Zones file {bcfg.zones_path} has no CRS")
    return layer.gdf.to_crs(config.global_.common_crs)


def prepare_boundaries(
    config: AppConfig, export: bool = True
) -> Tuple[PipelineContext, PipelineReport]:
    """
    Build the study boundaries and the covering layer.

    With ``export``, zones, local zones, both boundaries, zone statistics and
    the covering rectangle are written to the clean directory.
    """
    bcfg = config.boundary
    report = PipelineReport()
    zones = read_zones(config)

    boundary = build_study_boundary(
        zones,
        bcfg.local_zone_ids,
        id_column=bcfg.zone_id_column,
        hole_threshold_km2=bcfg.hole_area_threshold_km2,
        crs=config.global_.common_crs,
    )
    covering = covering_geometry(boundary.regional, config.raster.pixel_size)
    context = PipelineContext(config=config, boundary=boundary, covering=covering)

    if not export:
        return context, report

    clean = config.paths.clean_dir
    report.outputs.append(write_vector(zones, clean / "zones.gpkg"))
    if bcfg.local_zone_ids:
        local_zones = select_zones(zones, bcfg.zone_id_column, bcfg.local_zone_ids)
        report.outputs.append(write_vector(local_zones, clean / "zones_local.gpkg"))
    for scope in ("regional", "local"):
        report.outputs.append(
            write_vector(boundary.to_geodataframe(scope), clean / f"boundary_{scope}.gpkg")
        )
    report.outputs.append(
        write_vector(
            gpd.GeoDataFrame(geometry=[covering], crs=boundary.crs), clean / "covering.gpkg"
        )
    )

    if bcfg.population_start_column or bcfg.population_end_column:
        stats = compute_zone_statistics(
            zones,
            bcfg.zone_id_column,
            bcfg.population_start_column,
            bcfg.population_end_column,
        )
        report.outputs.append(write_vector(stats, clean / "zone_stats.gpkg"))

    return context, report


# --- vector themes ----------------------------------------------------------


def process_tile(
    path: Path,
    layer: Optional[str],
    rules: RuleSet,
    target_crs: CRSLike,
) -> TileResult:
    """
    Classify and harmonize one source file.

    Module-level so that it can run in a worker process.
    """
    columns = [rules.column] if rules.column else None
    source = read_layer(path, layer=layer, columns=columns)
    if source.crs is None:
        raise FormatError(f"{path} has no CRS")
    subsets = classify_all(source.gdf, rules)

    ambiguous = find_ambiguous_features(source.gdf, rules)
    if len(ambiguous):
        values = sorted(source.gdf.loc[ambiguous.index, rules.column].astype(str).unique())
        logger.warning(
            f"{path.name}: {len(ambiguous)} features match several themes: {values[:5]}"
        )

    target = as_crs(target_crs)
    features = {}
    for theme, subset in subsets.items():
        geom = harmonize([subset], target)
        # a tile degraded to empty contributes no features to the merge
        count = 0 if geom.is_empty else len(subset)
        features[theme] = MergedFeature.from_geometry(theme, geom, target, feature_count=count)

    return TileResult(path=path, features=features, total=len(source), ambiguous=len(ambiguous))


def _guarded(report: "PipelineReport", path: Path, func, *args) -> Optional[TileResult]:
    """
    Call ``func``; a failure other than WriteError is recorded against ``path``.

    Library errors (pyproj, GEOS, a broken worker pool) are recorded as well,
    so one bad tile never takes the rest of the dataset down with it.
    """
    try:
        return func(*args)
    except WriteError:
        raise
    except LandprepError as e:
        report.add_failure(str(path), str(e))
    except Exception as e:
        logger.opt(exception=e).debug(f"Unexpected failure while processing {path}")
        report.add_failure(str(path), f"{type(e).__name__}: {e}")
    return None


def map_tiles(
    paths: Sequence[Path],
    layer: Optional[str],
    rules: RuleSet,
    target_crs: CRSLike,
    max_workers: int = 1,
    report: Optional[PipelineReport] = None,
) -> List[TileResult]:
    """
    Run :func:`process_tile` over every file.

    With ``max_workers`` above 1 the files go to a process pool. A file that
    fails for any reason but a WriteError is recorded in ``report`` and
    skipped; when the pool breaks, every unfinished file is recorded.
    """
    report = report if report is not None else PipelineReport()
    results = []

    with _progress() as progress:
        task = progress.add_task(f"Processing {rules.dataset}", total=len(paths))

        if max_workers <= 1:
            for path in paths:
                result = _guarded(report, path, process_tile, path, layer, rules, target_crs)
                if result is not None:
                    results.append(result)
                progress.advance(task)
        else:
            with ProcessPoolExecutor(max_workers=max_workers) as executor:
                futures = {
                    executor.submit(process_tile, path, layer, rules, target_crs): path
                    for path in paths
                }
                for future in as_completed(futures):
                    path = futures[future]
                    result = _guarded(report, path, future.result)
                    if result is not None:
                        results.append(result)
                    progress.advance(task)

    # completion order depends on the pool; keep the reduction input stable
    results.sort(key=lambda r: str(r.path))
    return results


def reduce_tiles(
    results: Sequence[TileResult], rules: RuleSet, target_crs: CRSLike
) -> Dict[str, MergedFeature]:
    """Merge the per-tile features of each theme."""
    merged = {}
    for rule in rules.rules:
        merged[rule.theme] = merge_features(
            (r.features[rule.theme] for r in results if rule.theme in r.features),
            rule.theme,
            target_crs,
            dissolve_result=rule.dissolve,
        )
        logger.info(
            f"{rule.theme}: {merged[rule.theme].feature_count} features, "
            f"{geometry_summary(merged[rule.theme].geometry)}"
        )
    return merged


def export_theme(
    feature: MergedFeature, context: PipelineContext, report: PipelineReport
) -> None:
    """Clip one theme to both boundaries and write R<theme>.gpkg and L<theme>.gpkg."""
    prefixes = {"regional": REGIONAL_PREFIX, "local": LOCAL_PREFIX}
    for scope, clipped in clip_both(feature, context.boundary).items():
        if not check_within_grid(clipped, context.covering):
            logger.warning(f"{feature.theme} ({scope}) extends beyond the covering grid")
        path = context.clean_dir / f"{prefixes[scope]}{feature.theme}.gpkg"
        report.outputs.append(write_vector(clipped, path))
        report.rows.append((feature.theme, scope, len(clipped.parts), clipped.area))


def run_dataset(
    config: AppConfig,
    name: str,
    context: Optional[PipelineContext] = None,
) -> PipelineReport:
    """Process every tile of one dataset family and export its themes."""
    dataset = config.get_dataset(name)
    rules = RuleSet.from_config(dataset)
    report = PipelineReport()

    for first, second, reason in check_rule_overlap(rules):
        logger.warning(f"{name}: themes '{first}' and '{second}' may overlap ({reason})")

    if context is None:
        context, _ = prepare_boundaries(config, export=False)

    paths = discover_files(config.paths.unzipped_dir, dataset.pattern)
    if not paths:
        report.add_failure(name, f"no files match '{dataset.pattern}' in {config.paths.unzipped_dir}")
        return report

    logger.info(f"{name}: {len(paths)} source files, themes {rules.themes}")
    target = config.global_.common_crs
    results = map_tiles(
        paths, dataset.layer, rules, target, config.global_.max_workers, report
    )
    if not results:
        report.add_failure(name, "every source file failed")
        return report

    ambiguous = sum(r.ambiguous for r in results)
    if ambiguous:
        logger.warning(f"{name}: {ambiguous} features were assigned to more than one theme")

    for feature in reduce_tiles(results, rules, target).values():
        export_theme(feature, context, report)

    return report


# --- elevation --------------------------------------------------------------


def run_elevation(
    config: AppConfig, context: Optional[PipelineContext] = None
) -> PipelineReport:
    """Merge the elevation tiles and export the slope raster over the covering extent."""
    report = PipelineReport()
    if context is None:
        context, _ = prepare_boundaries(config, export=False)

    ecfg = config.elevation
    paths = discover_files(config.paths.unzipped_dir, ecfg.tile_pattern)
    if not paths:
        report.add_failure(
            "elevation", f"no tiles match '{ecfg.tile_pattern}' in {config.paths.unzipped_dir}"
        )
        return report

    try:
        slope = process_elevation(
            paths,
            config.global_.common_crs,
            bounds=context.covering.bounds,
            resolution=ecfg.resolution or config.raster.pixel_size,
            nodata=config.raster.nodata,
            mask_geom=context.boundary.regional if ecfg.mask_to_boundary else None,
        )
    except LandprepError as e:
        report.add_failure("elevation", str(e))
        return report

    report.outputs.append(write_raster(slope, context.clean_dir / ecfg.output))
    return report


def run_all(config: AppConfig) -> PipelineReport:
    """Boundaries, then every dataset, then the elevation theme."""
    context, report = prepare_boundaries(config, export=True)
    for dataset in config.datasets:
        logger.info(f"Processing dataset '{dataset.name}'")
        report.extend(run_dataset(config, dataset.name, context))
    report.extend(run_elevation(config, context))
    return report
