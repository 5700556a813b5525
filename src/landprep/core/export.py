# src/landprep/core/export.py
"""
Writers for vector (GeoPackage) and raster (GeoTIFF) outputs.

Every write replaces the target file. Any failure is a WriteError, which
callers never retry.
"""

from pathlib import Path
from typing import Optional, Union

import geopandas as gpd
import numpy as np
import rasterio
from loguru import logger
from rasterio.errors import RasterioError
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from landprep.core.clip import ClippedOutput
from landprep.core.exceptions import WriteError
from landprep.core.geometry import MergedFeature
from landprep.core.raster import Bounds, ElevationMosaic, snap_bounds

VectorLike = Union[gpd.GeoDataFrame, ClippedOutput, MergedFeature]

# Tolerance (map units) when checking outputs against the covering grid
GRID_TOLERANCE = 1e-6


def _to_geodataframe(obj: VectorLike) -> gpd.GeoDataFrame:
    if isinstance(obj, gpd.GeoDataFrame):
        return obj
    return obj.to_geodataframe()


def write_vector(
    obj: VectorLike, output_path: Union[str, Path], layer: Optional[str] = None
) -> Path:
    """
    Write features to a GeoPackage, replacing any existing file.

    Args:
        obj: GeoDataFrame, clipped output or merged feature
        output_path: Target ``.gpkg`` path
        layer: Layer name; the file stem when omitted

    Raises:
        WriteError: on a missing CRS or any filesystem / driver failure
    """
    output_path = Path(output_path)
    gdf = _to_geodataframe(obj)
    if gdf.crs is None:
        raise WriteError(f"Refusing to write {output_path.name} without a CRS")

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if output_path.exists():
            output_path.unlink()
        gdf.to_file(
            output_path, layer=layer or output_path.stem, driver="GPKG", engine="pyogrio"
        )
    except (OSError, ValueError, RuntimeError) as e:
        raise WriteError(f"Cannot write {output_path}: {type(e).__name__}: {e}") from e

    if gdf.empty:
        logger.warning(f"Wrote empty layer {output_path.name}")
    else:
        logger.success(f"Wrote {len(gdf)} features to {output_path}")
    return output_path


def write_raster(mosaic: ElevationMosaic, output_path: Union[str, Path]) -> Path:
    """
    Write a single-band float32 GeoTIFF with the no-data sentinel in its metadata.

    NaN pixels are written as the sentinel.

    Raises:
        WriteError: on a missing CRS or any filesystem / driver failure
    """
    output_path = Path(output_path)
    if mosaic.crs is None:
        raise WriteError(f"Refusing to write {output_path.name} without a CRS")

    data = np.where(np.isfinite(mosaic.data), mosaic.data, mosaic.nodata).astype("float32")
    profile = {
        "driver": "GTiff",
        "height": mosaic.height,
        "width": mosaic.width,
        "count": 1,
        "dtype": "float32",
        "crs": mosaic.crs,
        "transform": mosaic.transform,
        "nodata": mosaic.nodata,
        "compress": "lzw",
    }

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if output_path.exists():
            output_path.unlink()
        with rasterio.open(output_path, "w", **profile) as dst:
            dst.write(data, 1)
    except (OSError, RasterioError) as e:
        raise WriteError(f"Cannot write {output_path}: {type(e).__name__}: {e}") from e

    logger.success(f"Wrote {mosaic.width}x{mosaic.height} raster to {output_path}")
    return output_path


def covering_geometry(boundary: BaseGeometry, pixel_size: float) -> BaseGeometry:
    """Rectangle around ``boundary`` with corners on multiples of ``pixel_size``."""
    if boundary.is_empty:
        raise ValueError("Cannot build a covering rectangle for an empty boundary")
    return box(*snap_bounds(boundary.bounds, pixel_size))


def is_grid_aligned(bounds: Bounds, pixel_size: float) -> bool:
    return all(
        abs(v / pixel_size - round(v / pixel_size)) < GRID_TOLERANCE for v in bounds
    )


def check_within_grid(obj: VectorLike, covering: BaseGeometry) -> bool:
    """
    True if every feature lies inside the covering rectangle.

    Vector outputs outside it would force the rasterization step to extend
    or resample the common grid.
    """
    gdf = _to_geodataframe(obj)
    if gdf.empty:
        return True
    minx, miny, maxx, maxy = gdf.total_bounds
    cminx, cminy, cmaxx, cmaxy = covering.bounds
    return (
        minx >= cminx - GRID_TOLERANCE
        and miny >= cminy - GRID_TOLERANCE
        and maxx <= cmaxx + GRID_TOLERANCE
        and maxy <= cmaxy + GRID_TOLERANCE
    )
