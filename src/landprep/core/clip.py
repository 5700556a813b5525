# src/landprep/core/clip.py
"""
Clipping of merged themes against the study boundaries.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

import geopandas as gpd
import shapely
from loguru import logger
from pyproj import CRS
from shapely.errors import GEOSException
from shapely.geometry import GeometryCollection
from shapely.geometry.base import BaseGeometry

from landprep.core.boundary import StudyBoundary
from landprep.core.exceptions import GeometryError
from landprep.core.geometry import EMPTY, MergedFeature, extract_dimension, flatten

SCOPES = ("regional", "local")


@dataclass(frozen=True)
class ClippedOutput:
    """A theme restricted to one boundary scope. Ends its life on export."""

    theme: str
    scope: str
    parts: Tuple[BaseGeometry, ...]
    crs: CRS

    @property
    def is_empty(self) -> bool:
        return not self.parts

    @property
    def geometry(self) -> BaseGeometry:
        if not self.parts:
            return EMPTY
        if len(self.parts) == 1:
            return self.parts[0]
        return GeometryCollection(list(self.parts))

    @property
    def area(self) -> float:
        return sum(p.area for p in self.parts)

    def to_geodataframe(self) -> gpd.GeoDataFrame:
        return gpd.GeoDataFrame(
            {"theme": [self.theme] * len(self.parts), "scope": [self.scope] * len(self.parts)},
            geometry=list(self.parts),
            crs=self.crs,
        )


def clip_geometry(geom: BaseGeometry, boundary: BaseGeometry) -> BaseGeometry:
    """
    Intersection of ``geom`` with ``boundary``, keeping the dimension of ``geom``.

    No overlap gives an empty geometry.
    """
    if geom.is_empty or boundary.is_empty:
        return EMPTY
    dimension = max(shapely.get_dimensions(p) for p in flatten(geom))
    try:
        clipped = geom.intersection(boundary)
    except GEOSException as e:
        raise GeometryError(f"Intersection failed: {e}") from e
    return extract_dimension(clipped, dimension)


def clip_feature(
    feature: MergedFeature, boundary: BaseGeometry, scope: str
) -> ClippedOutput:
    """Clip every part of a merged feature against one boundary."""
    parts = []
    for part in feature.parts:
        try:
            clipped = clip_geometry(part, boundary)
        except GeometryError as e:
            logger.warning(f"Clipping a part of '{feature.theme}' ({scope}) failed: {e}")
            continue
        if not clipped.is_empty:
            parts.append(clipped)

    output = ClippedOutput(feature.theme, scope, tuple(parts), feature.crs)
    if output.is_empty:
        logger.info(f"'{feature.theme}' has no features inside the {scope} boundary")
    return output


def clip_both(feature: MergedFeature, boundary: StudyBoundary) -> Dict[str, ClippedOutput]:
    """
    Regional and local outputs of one theme.

    Both are clipped from the merged feature itself, never one from the other.
    """
    if feature.crs != boundary.crs:
        raise GeometryError(
            f"'{feature.theme}' is in {feature.crs}, boundary is in {boundary.crs}"
        )
    return {
        scope: clip_feature(feature, boundary.for_scope(scope), scope) for scope in SCOPES
    }
