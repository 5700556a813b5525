"""Pytest configuration and fixtures."""

import io
import os
import sys
from pathlib import Path

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from loguru import logger
from rasterio.transform import from_origin
from shapely.geometry import box

# Add src to Python path for testing
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

CRS = "EPSG:32632"

# A 10 km x 10 km area in UTM 32N, corners on the 10 m grid
ORIGIN_X = 390_000.0
ORIGIN_Y = 4_990_000.0


def pytest_configure(config):
    """Run every CLI invocation in the test environment unless --env says otherwise"""
    os.environ["LANDPREP_ENVIRONMENT"] = "test"


@pytest.fixture(autouse=True)
def loguru_capture():
    stream = io.StringIO()
    logger.remove()
    logger.add(stream, level="INFO")
    yield stream
    logger.remove()


def square(x, y, size):
    return box(x, y, x + size, y + size)


@pytest.fixture
def zones_gdf():
    """Four 5 km zones forming a 10 km square; zone 2 is the local study area."""
    size = 5_000
    geoms = [
        square(ORIGIN_X, ORIGIN_Y, size),
        square(ORIGIN_X + size, ORIGIN_Y, size),
        square(ORIGIN_X, ORIGIN_Y + size, size),
        square(ORIGIN_X + size, ORIGIN_Y + size, size),
    ]
    return gpd.GeoDataFrame(
        {
            "NO": [1, 2, 3, 4],
            "pop_start": [1000.0, 2500.0, 400.0, 0.0],
            "pop_end": [1200.0, 2400.0, 500.0, 50.0],
        },
        geometry=geoms,
        crs=CRS,
    )


@pytest.fixture
def land_use_gdf():
    """Land-use polygons tagged with plan categories, in WGS 84 like many sources."""
    gdf = gpd.GeoDataFrame(
        {
            "DECODIFICA": ["Produttivo", "Parchi", "Cimiteri", "Residenziale"],
        },
        geometry=[
            square(ORIGIN_X + 1_000, ORIGIN_Y + 1_000, 500),
            square(ORIGIN_X + 6_000, ORIGIN_Y + 1_000, 800),
            square(ORIGIN_X + 2_000, ORIGIN_Y + 7_000, 300),
            square(ORIGIN_X + 8_000, ORIGIN_Y + 8_000, 400),
        ],
        crs=CRS,
    )
    return gdf.to_crs("EPSG:4326")


@pytest.fixture
def land_use_rules():
    return {
        "industrial": ["Produttivo"],
        "green": ["Parchi", "orti urbani"],
        "cemetery": ["Cimiteri", "cimiteriali"],
    }


def write_tile(path, data, x0, y0, pixel_size=10.0, nodata=-9999.0, crs=CRS):
    """Write a single-band float32 GeoTIFF with its top-left corner at (x0, y0)."""
    profile = {
        "driver": "GTiff",
        "height": data.shape[0],
        "width": data.shape[1],
        "count": 1,
        "dtype": "float32",
        "crs": crs,
        "transform": from_origin(x0, y0, pixel_size, pixel_size),
        "nodata": nodata,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data.astype("float32"), 1)
    return path


@pytest.fixture
def adjoining_tiles(tmp_path):
    """
    Two 100x100 tiles side by side along x.

    Tile A rises from 100 m to 150 m west to east, tile B continues from
    150 m to 200 m, so the mosaic is one continuous ramp.
    """
    cols = np.arange(200, dtype="float32")
    ramp = 100.0 + cols * 0.5
    grid = np.tile(ramp, (100, 1))
    x0, y0 = ORIGIN_X, ORIGIN_Y + 1_000
    a = write_tile(tmp_path / "tile_a.tif", grid[:, :100], x0, y0)
    b = write_tile(tmp_path / "tile_b.tif", grid[:, 100:], x0 + 1_000, y0)
    return [a, b]
