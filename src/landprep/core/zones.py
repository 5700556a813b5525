# src/landprep/core/zones.py
"""Zone statistics and ranking, used to choose the local study zones."""

from typing import Optional, Tuple

import geopandas as gpd
import pandas as pd
from loguru import logger


def compute_zone_statistics(
    zones: gpd.GeoDataFrame,
    id_column: str,
    start_column: Optional[str] = None,
    end_column: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """
    Area, population change and density per zone.

    Zones must be in a projected CRS with metre units. Density is people per
    km2 for each population column; change is end minus start.
    """
    if zones.crs is None or not zones.crs.is_projected:
        raise ValueError("Zone statistics need a projected CRS")

    columns = [id_column] + [c for c in (start_column, end_column) if c]
    missing = [c for c in columns if c not in zones.columns]
    if missing:
        raise KeyError(f"Missing zone column(s) {missing}. Available: {list(zones.columns)}")

    stats = zones[columns + [zones.geometry.name]].copy()
    stats["area_m2"] = stats.geometry.area
    area_km2 = stats["area_m2"] / 1_000_000

    for column in (start_column, end_column):
        if column:
            values = pd.to_numeric(stats[column], errors="coerce")
            stats[f"density_{column}"] = values / area_km2.where(area_km2 > 0)

    if start_column and end_column:
        start = pd.to_numeric(stats[start_column], errors="coerce")
        end = pd.to_numeric(stats[end_column], errors="coerce")
        stats["pop_change"] = end - start

    logger.info(f"Computed statistics for {len(stats)} zones")
    return stats


def rank_zones(
    zones: pd.DataFrame, column: str, n: int = 10
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Top ``n`` and bottom ``n`` zones by a numeric column (missing values last)."""
    if column not in zones.columns:
        raise KeyError(f"Column '{column}' not found. Available: {list(zones.columns)}")
    if n < 1:
        raise ValueError("n must be at least 1")

    values = pd.to_numeric(zones[column], errors="coerce")
    ranked = zones.assign(**{column: values}).dropna(subset=[column])
    top = ranked.sort_values(column, ascending=False, kind="stable").head(n)
    bottom = ranked.sort_values(column, ascending=True, kind="stable").head(n)
    return top, bottom
