"""Clipping merged themes to the regional and local boundaries."""

import pytest
from pyproj import CRS as ProjCRS
from shapely.geometry import LineString, box

from landprep.core.boundary import build_study_boundary
from landprep.core.clip import SCOPES, clip_both, clip_feature, clip_geometry
from landprep.core.exceptions import GeometryError
from landprep.core.geometry import MergedFeature

from conftest import CRS, ORIGIN_X, ORIGIN_Y, square


@pytest.fixture
def boundary(zones_gdf):
    return build_study_boundary(zones_gdf, [2], hole_threshold_km2=1)


UTM = ProjCRS.from_user_input(CRS)


def feature(*geoms, theme="green", dissolved=True):
    return MergedFeature(theme, tuple(geoms), UTM, len(geoms), dissolved)


def test_clip_is_idempotent(boundary):
    # straddles zones 1 and 2 and sticks out of the region
    geom = box(ORIGIN_X + 4_000, ORIGIN_Y - 1_000, ORIGIN_X + 6_000, ORIGIN_Y + 1_000)

    once = clip_geometry(geom, boundary.regional)
    twice = clip_geometry(once, boundary.regional)

    assert once.area == pytest.approx(2_000_000)
    assert once.symmetric_difference(twice).area == pytest.approx(0)


def test_local_never_larger_than_regional(boundary):
    geom = box(ORIGIN_X + 4_000, ORIGIN_Y - 1_000, ORIGIN_X + 6_000, ORIGIN_Y + 1_000)

    outputs = clip_both(feature(geom), boundary)

    assert set(outputs) == set(SCOPES)
    assert outputs["local"].area == pytest.approx(1_000_000)
    assert outputs["local"].area <= outputs["regional"].area
    assert outputs["local"].geometry.difference(outputs["regional"].geometry).area == pytest.approx(0)


def test_no_overlap_gives_empty_output(boundary):
    far_away = square(ORIGIN_X + 50_000, ORIGIN_Y, 1_000)

    output = clip_feature(feature(far_away), boundary.local, "local")

    assert output.is_empty
    assert output.to_geodataframe().empty


def test_empty_feature_is_not_an_error(boundary):
    outputs = clip_both(MergedFeature("green", (), UTM), boundary)
    assert all(o.is_empty for o in outputs.values())


def test_clip_keeps_polygon_dimension(boundary):
    # touches the region only along its western edge
    touching = box(ORIGIN_X - 1_000, ORIGIN_Y, ORIGIN_X, ORIGIN_Y + 1_000)
    assert clip_geometry(touching, boundary.regional).is_empty


def test_clip_lines(boundary):
    road = LineString([(ORIGIN_X - 1_000, ORIGIN_Y + 2_500), (ORIGIN_X + 2_000, ORIGIN_Y + 2_500)])

    clipped = clip_geometry(road, boundary.regional)

    assert clipped.geom_type == "LineString"
    assert clipped.length == pytest.approx(2_000)


def test_parts_clipped_separately(boundary):
    parts = (
        square(ORIGIN_X + 5_500, ORIGIN_Y + 500, 1_000),
        square(ORIGIN_X + 500, ORIGIN_Y + 500, 1_000),
    )

    output = clip_feature(feature(*parts, dissolved=False), boundary.local, "local")

    assert len(output.parts) == 1
    gdf = output.to_geodataframe()
    assert list(gdf["scope"]) == ["local"]
    assert list(gdf["theme"]) == ["green"]
    assert gdf.crs == boundary.crs


def test_crs_mismatch(boundary):
    wgs = MergedFeature.from_geometry("green", box(7, 45, 8, 46), "EPSG:4326")
    with pytest.raises(GeometryError):
        clip_both(wgs, boundary)

