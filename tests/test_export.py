"""GeoPackage and GeoTIFF writers, and the covering grid."""

import fiona
import geopandas as gpd
import numpy as np
import pytest
import rasterio
from pyproj import CRS as ProjCRS
from rasterio.transform import from_origin
from shapely.geometry import box

from landprep.core.clip import ClippedOutput
from landprep.core.exceptions import WriteError
from landprep.core.export import (
    check_within_grid,
    covering_geometry,
    is_grid_aligned,
    write_raster,
    write_vector,
)
from landprep.core.raster import ElevationMosaic

from conftest import CRS, ORIGIN_X, ORIGIN_Y, square

UTM = ProjCRS.from_user_input(CRS)


def clipped(*geoms, theme="prg_ind", scope="regional"):
    return ClippedOutput(theme, scope, tuple(geoms), UTM)


def test_vector_round_trip(tmp_path):
    output = clipped(square(ORIGIN_X, ORIGIN_Y, 100), square(ORIGIN_X + 500, ORIGIN_Y, 50))

    path = write_vector(output, tmp_path / "Rprg_ind.gpkg")

    back = gpd.read_file(path)
    assert back.crs == UTM
    assert len(back) == 2
    assert set(back["theme"]) == {"prg_ind"}
    assert back.geometry.area.sum() == pytest.approx(12_500)


def test_layer_named_after_file(tmp_path):
    path = write_vector(clipped(square(ORIGIN_X, ORIGIN_Y, 10)), tmp_path / "Lprg_ind.gpkg")
    assert fiona.listlayers(path) == ["Lprg_ind"]


def test_existing_file_replaced(tmp_path):
    path = tmp_path / "Rprg_ind.gpkg"
    write_vector(clipped(square(ORIGIN_X, ORIGIN_Y, 10), square(ORIGIN_X + 20, ORIGIN_Y, 10)), path)
    write_vector(clipped(square(ORIGIN_X, ORIGIN_Y, 10)), path)

    assert len(gpd.read_file(path)) == 1


def test_empty_output_still_written(tmp_path, loguru_capture):
    path = write_vector(clipped(), tmp_path / "Lprg_cem.gpkg")

    assert path.exists()
    assert "empty layer" in loguru_capture.getvalue()


def test_missing_crs_refused(tmp_path):
    gdf = gpd.GeoDataFrame({"theme": ["x"]}, geometry=[box(0, 0, 1, 1)])
    with pytest.raises(WriteError, match="CRS"):
        write_vector(gdf, tmp_path / "x.gpkg")


def test_unwritable_path(tmp_path):
    blocker = tmp_path / "clean"
    blocker.write_text("a file where a directory should be")

    with pytest.raises(WriteError):
        write_vector(clipped(square(ORIGIN_X, ORIGIN_Y, 10)), blocker / "Rprg_ind.gpkg")


class TestRaster:
    def mosaic(self, data):
        return ElevationMosaic(
            data.astype("float32"), from_origin(ORIGIN_X, ORIGIN_Y, 10, 10), UTM, -9999.0
        )

    def test_nodata_in_metadata(self, tmp_path):
        data = np.array([[1.0, -9999.0], [np.nan, 4.0]])

        path = write_raster(self.mosaic(data), tmp_path / "dem_slp.tif")

        with rasterio.open(path) as src:
            assert src.nodata == -9999.0
            assert src.dtypes == ("float32",)
            assert src.crs.to_epsg() == 32632
            band = src.read(1)
        assert band.tolist() == [[1.0, -9999.0], [-9999.0, 4.0]]

    def test_overwrite(self, tmp_path):
        path = tmp_path / "dem_slp.tif"
        write_raster(self.mosaic(np.zeros((4, 4))), path)
        write_raster(self.mosaic(np.ones((2, 2))), path)

        with rasterio.open(path) as src:
            assert src.shape == (2, 2)

    def test_missing_crs_refused(self, tmp_path):
        mosaic = ElevationMosaic(np.zeros((2, 2), dtype="float32"), from_origin(0, 2, 1, 1), None)
        with pytest.raises(WriteError):
            write_raster(mosaic, tmp_path / "dem_slp.tif")


class TestCovering:
    def test_corners_on_pixel_grid(self):
        boundary = box(ORIGIN_X + 3.7, ORIGIN_Y + 12.1, ORIGIN_X + 995.2, ORIGIN_Y + 1_000)

        covering = covering_geometry(boundary, 10)

        assert is_grid_aligned(covering.bounds, 10)
        assert covering.bounds == (ORIGIN_X, ORIGIN_Y + 10, ORIGIN_X + 1_000, ORIGIN_Y + 1_000)
        assert covering.contains(boundary)

    def test_empty_boundary(self):
        with pytest.raises(ValueError):
            covering_geometry(box(0, 0, 1, 1).intersection(box(5, 5, 6, 6)), 10)

    def test_not_aligned(self):
        assert not is_grid_aligned((0.0, 0.0, 15.0, 10.0), 10)

    def test_outputs_inside_grid(self):
        covering = box(ORIGIN_X, ORIGIN_Y, ORIGIN_X + 1_000, ORIGIN_Y + 1_000)

        assert check_within_grid(clipped(square(ORIGIN_X, ORIGIN_Y, 1_000)), covering)
        assert check_within_grid(clipped(), covering)
        assert not check_within_grid(clipped(square(ORIGIN_X - 5, ORIGIN_Y, 10)), covering)
