# src/landprep/core/boundary.py
"""
Regional and local study boundaries built from a zone collection.
"""

from dataclasses import dataclass
from typing import Any, Iterable

import geopandas as gpd
from loguru import logger
from pyproj import CRS
from shapely.geometry.base import BaseGeometry

from landprep.core.exceptions import GeometryError
from landprep.core.geometry import (
    CRSLike,
    as_crs,
    dissolve,
    fill_holes,
    geometry_summary,
    repair_geometry,
)

# Tolerance (map units) when checking that the local boundary nests in the regional one
NESTING_TOLERANCE = 1e-3


@dataclass(frozen=True)
class StudyBoundary:
    """Regional and local analysis extents. Built once, never mutated."""

    regional: BaseGeometry
    local: BaseGeometry
    crs: CRS

    def for_scope(self, scope: str) -> BaseGeometry:
        if scope == "regional":
            return self.regional
        if scope == "local":
            return self.local
        raise ValueError(f"Unknown boundary scope '{scope}'")

    def to_geodataframe(self, scope: str) -> gpd.GeoDataFrame:
        return gpd.GeoDataFrame(
            {"scope": [scope]}, geometry=[self.for_scope(scope)], crs=self.crs
        )


def select_zones(
    zones: gpd.GeoDataFrame, id_column: str, zone_ids: Iterable[Any]
) -> gpd.GeoDataFrame:
    """
    Zones whose id is in ``zone_ids``.

    Ids are compared as strings so that YAML integers match text columns.

    Raises:
        KeyError: if the id column is missing
        ValueError: if an id matches no zone
    """
    if id_column not in zones.columns:
        raise KeyError(
            f"Zone id column '{id_column}' not found. Available: {list(zones.columns)}"
        )
    wanted = {str(z) for z in zone_ids}
    keys = zones[id_column].astype(str)
    missing = wanted - set(keys)
    if missing:
        raise ValueError(f"Zone ids not found in '{id_column}': {sorted(missing)}")
    return zones[keys.isin(wanted)]


def boundary_from_zones(zones: gpd.GeoDataFrame, hole_threshold_m2: float) -> BaseGeometry:
    """Dissolve zones and fill holes smaller than the threshold."""
    merged = repair_geometry(dissolve(zones.geometry))
    return fill_holes(merged, hole_threshold_m2)


def build_study_boundary(
    zones: gpd.GeoDataFrame,
    local_zone_ids: Iterable[Any],
    id_column: str = "NO",
    hole_threshold_km2: float = 1000.0,
    crs: CRSLike = "EPSG:32632",
) -> StudyBoundary:
    """
    Build both boundaries from the full zone collection.

    The regional boundary dissolves every zone, the local one only the
    selected zones. If no local ids are given, the local boundary equals
    the regional one.

    Raises:
        GeometryError: if the zones are empty or the local boundary is not
            inside the regional one
    """
    target = as_crs(crs)
    if zones.empty:
        raise GeometryError("Zone collection is empty")
    if zones.crs is None:
        raise GeometryError("Zone collection has no CRS")

    zones = zones.to_crs(target)
    threshold_m2 = hole_threshold_km2 * 1_000_000

    regional = boundary_from_zones(zones, threshold_m2)

    local_zone_ids = list(local_zone_ids)
    if local_zone_ids:
        local = boundary_from_zones(
            select_zones(zones, id_column, local_zone_ids), threshold_m2
        )
    else:
        local = regional

    if not local.difference(regional.buffer(NESTING_TOLERANCE)).is_empty:
        raise GeometryError("Local boundary is not contained in the regional boundary")

    logger.info(f"Regional boundary: {geometry_summary(regional)}")
    logger.info(f"Local boundary: {geometry_summary(local)} ({len(local_zone_ids)} zones)")
    return StudyBoundary(regional=regional, local=local, crs=target)
