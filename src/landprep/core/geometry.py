# src/landprep/core/geometry.py
"""
Geometry harmonization: dissolve, reprojection to the common CRS and repair.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import geopandas as gpd
import shapely
from loguru import logger
from pyproj import CRS
from pyproj.exceptions import ProjError
from shapely import make_valid
from shapely.errors import GEOSException
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.validation import explain_validity

from landprep.core.exceptions import GeometryError

CRSLike = Union[str, int, CRS]

EMPTY = GeometryCollection()


def as_crs(crs: Optional[CRSLike]) -> Optional[CRS]:
    return None if crs is None else CRS.from_user_input(crs)


def flatten(geom: Optional[BaseGeometry]) -> List[BaseGeometry]:
    """Single-part, non-empty components of a geometry."""
    if geom is None or geom.is_empty:
        return []
    if hasattr(geom, "geoms"):
        parts = []
        for part in geom.geoms:
            parts.extend(flatten(part))
        return parts
    return [geom]


def extract_dimension(geom: BaseGeometry, dimension: int) -> BaseGeometry:
    """
    Keep only the parts of ``geom`` with the given topological dimension.

    Repair and intersection can return mixed collections (a polygon plus a
    shared edge); downstream layers must stay homogeneous.
    """
    parts = [p for p in flatten(geom) if shapely.get_dimensions(p) == dimension]
    if not parts:
        return EMPTY
    if len(parts) == 1:
        return parts[0]
    try:
        return shapely.union_all(parts)
    except GEOSException as e:
        raise GeometryError(f"Union of {len(parts)} parts failed: {e}") from e


def dissolve(geometries: Iterable[Optional[BaseGeometry]]) -> BaseGeometry:
    """
    Union geometries into a single, possibly multi-part, geometry.

    Invalid inputs that make GEOS fail are repaired once and retried.

    Raises:
        GeometryError: if the union still fails after repair
    """
    geoms = [g for g in geometries if g is not None and not g.is_empty]
    if not geoms:
        return EMPTY
    try:
        return shapely.union_all(geoms)
    except GEOSException as e:
        logger.debug(f"Union failed ({e}), repairing {len(geoms)} inputs")
        try:
            return shapely.union_all([make_valid(g) for g in geoms])
        except GEOSException as e2:
            raise GeometryError(f"Union failed after repair: {e2}") from e2


def reproject_geometry(
    geom: BaseGeometry, src_crs: CRSLike, dst_crs: CRSLike
) -> BaseGeometry:
    """
    Transform one geometry between coordinate reference systems.

    Raises:
        GeometryError: if no transformation exists between the two CRS
    """
    src, dst = as_crs(src_crs), as_crs(dst_crs)
    if geom.is_empty or src == dst:
        return geom
    try:
        return gpd.GeoSeries([geom], crs=src).to_crs(dst).iloc[0]
    except (ProjError, GEOSException) as e:
        raise GeometryError(f"Cannot reproject from {src.name} to {dst.name}: {e}") from e


def geometry_dimension(geoms: Iterable[Optional[BaseGeometry]]) -> Optional[int]:
    """Highest topological dimension among non-empty geometries, None if all are empty."""
    dims = [shapely.get_dimensions(p) for g in geoms for p in flatten(g)]
    return max(dims) if dims else None


def repair_geometry(geom: BaseGeometry, dimension: Optional[int] = None) -> BaseGeometry:
    """
    Make a geometry valid, keeping only parts of the given dimension.

    Without ``dimension`` the geometry's own highest dimension is kept.

    Raises:
        GeometryError: if no valid geometry of that dimension remains, or a
            polygonal result has no area
    """
    if geom.is_empty:
        return geom

    if dimension is None:
        dimension = geometry_dimension([geom])
    if (
        geom.is_valid
        and geom.geom_type != "GeometryCollection"
        and geometry_dimension([geom]) == dimension
    ):
        return geom

    try:
        reason = explain_validity(geom)
        repaired = extract_dimension(make_valid(geom), dimension)
    except GEOSException as e:
        raise GeometryError(f"Repair failed: {e}") from e
    if repaired.is_empty or not repaired.is_valid:
        raise GeometryError(f"Repair produced no valid geometry ({reason})")
    if dimension == 2 and repaired.area == 0:
        raise GeometryError(f"Repair produced a zero-area geometry ({reason})")

    logger.debug(f"Repaired geometry: {reason}")
    return repaired


def harmonize(
    collections: Sequence[Union[gpd.GeoSeries, gpd.GeoDataFrame]],
    target_crs: CRSLike,
) -> BaseGeometry:
    """
    Dissolve, reproject then repair one or more geometry collections.

    Each collection is dissolved in its own CRS and reprojected; the results
    are unioned in the target CRS and repaired to the dimension of the input
    features. A failure at any step yields an empty geometry, since an empty
    theme is a valid outcome.
    """
    target = as_crs(target_crs)
    try:
        reprojected = []
        dimension = None
        for collection in collections:
            geoms = collection.geometry if isinstance(collection, gpd.GeoDataFrame) else collection
            if geoms.crs is None:
                raise GeometryError("Input collection has no CRS")
            dims = [d for d in (dimension, geometry_dimension(geoms)) if d is not None]
            dimension = max(dims) if dims else None
            reprojected.append(reproject_geometry(dissolve(geoms), geoms.crs, target))
        if dimension is None:
            return EMPTY
        return repair_geometry(dissolve(reprojected), dimension)
    except GeometryError as e:
        logger.warning(f"Harmonization degraded to an empty geometry: {e}")
        return EMPTY


@dataclass(frozen=True)
class MergedFeature:
    """Union of the features of one theme, in the common CRS."""

    theme: str
    parts: Tuple[BaseGeometry, ...]
    crs: CRS
    feature_count: int = 0
    dissolved: bool = True

    @classmethod
    def from_geometry(
        cls,
        theme: str,
        geom: BaseGeometry,
        crs: CRSLike,
        feature_count: int = 0,
        dissolved: bool = True,
    ) -> "MergedFeature":
        parts = () if geom.is_empty else (geom,)
        return cls(theme, parts, as_crs(crs), feature_count, dissolved)

    @property
    def is_empty(self) -> bool:
        return not self.parts

    @property
    def geometry(self) -> BaseGeometry:
        """All parts as one geometry (a collection when not dissolved)."""
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
            {"theme": [self.theme] * len(self.parts)},
            geometry=list(self.parts),
            crs=self.crs,
        )


def merge_features(
    features: Iterable[MergedFeature],
    theme: str,
    crs: CRSLike,
    dissolve_result: bool = True,
) -> MergedFeature:
    """
    Reduce per-tile features of one theme into the final feature.

    With ``dissolve_result`` the parts are unioned and repaired; otherwise
    each tile's part is kept as it is.
    """
    target = as_crs(crs)
    features = list(features)
    for feature in features:
        if feature.crs != target:
            raise GeometryError(
                f"Feature '{feature.theme}' is in {feature.crs}, expected {target}"
            )

    parts = [p for f in features for p in f.parts]
    count = sum(f.feature_count for f in features)

    if not dissolve_result:
        return MergedFeature(theme, tuple(parts), target, count, dissolved=False)

    try:
        merged = repair_geometry(dissolve(parts))
    except GeometryError as e:
        logger.warning(f"Merging '{theme}' degraded to an empty geometry: {e}")
        merged = EMPTY
    return MergedFeature.from_geometry(theme, merged, target, count)


def fill_holes(geom: BaseGeometry, threshold_m2: float) -> BaseGeometry:
    """Remove interior rings enclosing less than ``threshold_m2``."""
    if geom.is_empty:
        return geom

    def fill(polygon: Polygon) -> Polygon:
        kept = [r for r in polygon.interiors if Polygon(r).area >= threshold_m2]
        return Polygon(polygon.exterior, kept)

    if isinstance(geom, Polygon):
        return fill(geom)
    if isinstance(geom, MultiPolygon):
        # a filled hole may now cover another part (an island), so union again
        return dissolve(fill(p) for p in geom.geoms)
    raise GeometryError(f"Cannot fill holes of a {geom.geom_type}")


def geometry_summary(geom: BaseGeometry) -> str:
    """Short human-readable description for log messages."""
    if geom.is_empty:
        return "empty"
    return f"{geom.geom_type} with {len(flatten(geom))} part(s), area {geom.area:,.0f}"
