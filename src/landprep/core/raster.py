# src/landprep/core/raster.py
"""
Elevation tiles: mosaic, reprojection, slope and crop.

No-data pixels carry the sentinel value through every step; they are never
replaced by 0.
"""

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import rasterio
from loguru import logger
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.errors import RasterioIOError
from rasterio.features import geometry_mask
from rasterio.merge import merge
from rasterio.transform import Affine, array_bounds, from_origin
from rasterio.warp import aligned_target, calculate_default_transform, reproject
from shapely.geometry.base import BaseGeometry

from landprep.core.exceptions import FormatError

Bounds = Tuple[float, float, float, float]


@dataclass
class ElevationMosaic:
    """A single-band raster held in memory."""

    data: np.ndarray
    transform: Affine
    crs: CRS
    nodata: float = -9999.0

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def resolution(self) -> Tuple[float, float]:
        return (self.transform.a, -self.transform.e)

    @property
    def bounds(self) -> Bounds:
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return (west, south, east, north)

    @property
    def valid_mask(self) -> np.ndarray:
        return np.isfinite(self.data) & (self.data != self.nodata)


def snap_bounds(bounds: Bounds, pixel_size: float) -> Bounds:
    """Expand bounds outward so every corner is a multiple of ``pixel_size``."""
    minx, miny, maxx, maxy = bounds
    return (
        math.floor(minx / pixel_size) * pixel_size,
        math.floor(miny / pixel_size) * pixel_size,
        math.ceil(maxx / pixel_size) * pixel_size,
        math.ceil(maxy / pixel_size) * pixel_size,
    )


def merge_tiles(
    paths: Sequence[Union[str, Path]], nodata: float = -9999.0
) -> ElevationMosaic:
    """
    Merge adjoining tiles into one float32 raster over their union extent.

    Pixels covered by no tile are set to ``nodata``. Unreadable tiles are
    logged and left out.

    Raises:
        FormatError: if no tile can be read, or the tiles disagree on CRS
    """
    datasets = []
    for path in paths:
        try:
            datasets.append(rasterio.open(path))
        except RasterioIOError as e:
            logger.warning(f"Skipping unreadable tile {path}: {e}")

    if not datasets:
        raise FormatError("No readable elevation tiles")

    try:
        crs_set = {ds.crs.to_string() if ds.crs else None for ds in datasets}
        if len(crs_set) > 1:
            raise FormatError(f"CRS mismatch in tiles: {crs_set}")
        if None in crs_set:
            raise FormatError("Elevation tiles have no CRS")

        mosaic, transform = merge(
            datasets, nodata=nodata, dtype="float32", method="first"
        )
        crs = datasets[0].crs
    finally:
        for ds in datasets:
            ds.close()

    logger.info(f"Merged {len(datasets)} tiles into {mosaic.shape[2]}x{mosaic.shape[1]} mosaic")
    return ElevationMosaic(mosaic[0], transform, crs, nodata)


def reproject_raster(
    mosaic: ElevationMosaic,
    dst_crs: Union[str, CRS],
    resolution: Optional[float] = None,
) -> ElevationMosaic:
    """
    Reproject onto a grid aligned to multiples of the target resolution.

    Without ``resolution`` the native pixel size is kept.
    """
    dst_crs = CRS.from_user_input(dst_crs)
    transform, width, height = calculate_default_transform(
        mosaic.crs,
        dst_crs,
        mosaic.width,
        mosaic.height,
        *mosaic.bounds,
        resolution=resolution,
    )
    res = resolution or transform.a
    transform, width, height = aligned_target(transform, width, height, res)

    destination = np.full((height, width), mosaic.nodata, dtype="float32")
    reproject(
        source=mosaic.data,
        destination=destination,
        src_transform=mosaic.transform,
        src_crs=mosaic.crs,
        src_nodata=mosaic.nodata,
        dst_transform=transform,
        dst_crs=dst_crs,
        dst_nodata=mosaic.nodata,
        resampling=Resampling.bilinear,
    )
    logger.debug(f"Reprojected mosaic to {dst_crs} at {res} m ({width}x{height})")
    return ElevationMosaic(destination, transform, dst_crs, mosaic.nodata)


def compute_slope(mosaic: ElevationMosaic) -> ElevationMosaic:
    """
    Slope in degrees with Horn's 3x3 method.

    A pixel is no-data when any cell of its window is no-data, and along the
    raster edge where the window is incomplete.
    """
    z = mosaic.data.astype("float64")
    valid = mosaic.valid_mask
    xres, yres = mosaic.resolution
    slope = np.full(z.shape, mosaic.nodata, dtype="float32")

    if z.shape[0] < 3 or z.shape[1] < 3:
        return ElevationMosaic(slope, mosaic.transform, mosaic.crs, mosaic.nodata)

    def window(a, dr, dc):
        rows, cols = a.shape
        return a[1 + dr : rows - 1 + dr, 1 + dc : cols - 1 + dc]

    # a b c / d e f / g h i around each interior cell
    a, b, c = window(z, -1, -1), window(z, -1, 0), window(z, -1, 1)
    d, f = window(z, 0, -1), window(z, 0, 1)
    g, h, i = window(z, 1, -1), window(z, 1, 0), window(z, 1, 1)

    dzdx = ((c + 2 * f + i) - (a + 2 * d + g)) / (8 * xres)
    dzdy = ((g + 2 * h + i) - (a + 2 * b + c)) / (8 * yres)
    interior = np.degrees(np.arctan(np.hypot(dzdx, dzdy)))

    window_valid = np.ones(interior.shape, dtype=bool)
    for dr in (-1, 0, 1):
        for dc in (-1, 0, 1):
            window_valid &= window(valid, dr, dc)

    slope[1:-1, 1:-1] = np.where(window_valid, interior, mosaic.nodata)
    return ElevationMosaic(slope, mosaic.transform, mosaic.crs, mosaic.nodata)


def crop_to_bounds(
    mosaic: ElevationMosaic,
    bounds: Bounds,
    mask_geom: Optional[BaseGeometry] = None,
) -> ElevationMosaic:
    """
    Crop to ``bounds`` snapped outward to the mosaic's pixel grid.

    Parts of the bounds outside the mosaic are filled with no-data. With
    ``mask_geom``, pixels whose centre lies outside it are set to no-data.
    """
    xres, yres = mosaic.resolution
    x0, y0 = mosaic.transform.c, mosaic.transform.f
    minx, miny, maxx, maxy = bounds

    # grid indices relative to the mosaic origin
    col_start = math.floor((minx - x0) / xres + 1e-9)
    col_stop = math.ceil((maxx - x0) / xres - 1e-9)
    row_start = math.floor((y0 - maxy) / yres + 1e-9)
    row_stop = math.ceil((y0 - miny) / yres - 1e-9)
    if col_stop <= col_start or row_stop <= row_start:
        raise ValueError(f"Bounds {bounds} are empty")

    out = np.full((row_stop - row_start, col_stop - col_start), mosaic.nodata, dtype="float32")
    src_rows = slice(max(row_start, 0), min(row_stop, mosaic.height))
    src_cols = slice(max(col_start, 0), min(col_stop, mosaic.width))
    if src_rows.start < src_rows.stop and src_cols.start < src_cols.stop:
        out[
            src_rows.start - row_start : src_rows.stop - row_start,
            src_cols.start - col_start : src_cols.stop - col_start,
        ] = mosaic.data[src_rows, src_cols]

    transform = from_origin(x0 + col_start * xres, y0 - row_start * yres, xres, yres)

    if mask_geom is not None and not mask_geom.is_empty:
        outside = geometry_mask([mask_geom], out_shape=out.shape, transform=transform)
        out[outside] = mosaic.nodata

    return ElevationMosaic(out, transform, mosaic.crs, mosaic.nodata)


def process_elevation(
    paths: Sequence[Union[str, Path]],
    dst_crs: Union[str, CRS],
    bounds: Bounds,
    resolution: Optional[float] = None,
    nodata: float = -9999.0,
    mask_geom: Optional[BaseGeometry] = None,
) -> ElevationMosaic:
    """Merge, reproject, derive slope and crop, in that order."""
    mosaic = merge_tiles(paths, nodata=nodata)
    mosaic = reproject_raster(mosaic, dst_crs, resolution=resolution)
    slope = compute_slope(mosaic)
    cropped = crop_to_bounds(slope, bounds, mask_geom=mask_geom)

    valid = cropped.valid_mask
    logger.info(
        f"Slope raster {cropped.width}x{cropped.height}, "
        f"{valid.mean():.1%} valid pixels"
    )
    return cropped
