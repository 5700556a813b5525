# src/landprep/core/reader.py
"""
Layer reading from shapefile, GeoPackage and GML containers.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

import fiona
import geopandas as gpd
from fiona.errors import DriverError, FionaValueError
from loguru import logger
from pyproj import CRS

from landprep.core.exceptions import FormatError, LayerNotFoundError


@dataclass(frozen=True)
class SourceLayer:
    """Features and attributes of one file or sub-layer, as read."""

    name: str
    path: Path
    gdf: gpd.GeoDataFrame
    crs: Optional[CRS]

    def __len__(self) -> int:
        return len(self.gdf)

    @property
    def is_empty(self) -> bool:
        return self.gdf.empty


def list_layers(path: Union[str, Path]) -> List[str]:
    """
    List the sub-layers of a container.

    Raises:
        FormatError: if the container cannot be opened
    """
    try:
        return list(fiona.listlayers(str(path)))
    except (DriverError, FionaValueError, OSError) as e:
        raise FormatError(f"Cannot open {path}: {e}") from e


def read_layer(
    path: Union[str, Path],
    layer: Optional[str] = None,
    columns: Optional[Sequence[str]] = None,
) -> SourceLayer:
    """
    Read one geometry layer with the requested attribute columns.

    Args:
        path: Container file
        layer: Sub-layer name; the first layer when omitted
        columns: Attribute columns to keep besides the geometry

    Raises:
        LayerNotFoundError: if ``layer`` is not in the container
        FormatError: if the container has no readable geometry layer
    """
    path = Path(path)
    if not path.exists():
        raise FormatError(f"File not found: {path}")

    available = list_layers(path)
    if not available:
        raise FormatError(f"No layers found in {path}")
    if layer is not None and layer not in available:
        raise LayerNotFoundError(path, layer, available)

    try:
        gdf = gpd.read_file(path, layer=layer or available[0])
    except Exception as e:
        raise FormatError(f"Cannot read {path}: {type(e).__name__}: {e}") from e

    if not isinstance(gdf, gpd.GeoDataFrame):
        raise FormatError(f"{path} has no geometry column")

    if columns:
        missing = [c for c in columns if c not in gdf.columns]
        if missing:
            raise FormatError(
                f"{path} is missing column(s) {missing}. Available: {list(gdf.columns)}"
            )
        gdf = gdf[list(columns) + [gdf.geometry.name]]

    name = layer or (available[0] if len(available) > 1 else path.stem)
    logger.debug(f"Read {len(gdf)} features from {path.name} ({name})")

    return SourceLayer(name=name, path=path, gdf=gdf, crs=gdf.crs)


def discover_files(root: Union[str, Path], pattern: str) -> List[Path]:
    """Files under ``root`` matching a glob pattern, in stable order."""
    root = Path(root)
    return sorted(p for p in root.glob(pattern) if p.is_file())
