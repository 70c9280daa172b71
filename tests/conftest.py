"""Shared fixtures: small GeoTIFFs written with rasterio, viewports and surfaces."""

import warnings
from pathlib import Path
from typing import Callable, Optional, Sequence

import numpy as np
import pytest
import rasterio
from rasterio.errors import NotGeoreferencedWarning
from rasterio.transform import Affine

from geotiff_overlay.geotiff_utils import Geotransform
from geotiff_overlay.render_surface import InMemorySurface
from geotiff_overlay.viewport import WebMercatorViewport

# North-up WGS84 raster near Valencia: 20x10 pixels of 0.0001 degrees
WGS84_GT: Geotransform = (-0.2310, 0.0001, 0.0, 39.6410, 0.0, -0.0001)

# Same area in WGS 84 / UTM 30N: 40x30 one-meter pixels
UTM_CRS = "EPSG:32630"
UTM_GT: Geotransform = (725140.0, 1.0, 0.0, 4391600.0, 0.0, -1.0)

# Viewport looking at the WGS84 raster
VIEW_LAT = 39.6405
VIEW_LON = -0.2300
VIEW_ZOOM = 17.0
VIEW_SIZE = (800, 600)

GeoTiffFactory = Callable[..., str]


@pytest.fixture
def make_geotiff(tmp_path: Path) -> GeoTiffFactory:
    """Return a factory writing a uint8 GeoTIFF and returning its path.

    Args of the factory:
        bands: (count, height, width) array, or None for a gradient
        geotransform: GDAL geotransform, or None to write no georeferencing
        crs: CRS string, or None to write no projection
        name: file name inside tmp_path
    """

    def _make(
        bands: Optional[np.ndarray] = None,
        geotransform: Optional[Sequence[float]] = WGS84_GT,
        crs: Optional[str] = "EPSG:4326",
        name: str = "raster.tif",
        count: int = 3,
        width: int = 20,
        height: int = 10,
    ) -> str:
        if bands is None:
            gradient = (np.arange(width * height, dtype=np.uint16) % 256).astype(np.uint8)
            bands = np.stack([gradient.reshape(height, width)] * count)
        bands = np.asarray(bands, dtype=np.uint8)
        count, height, width = bands.shape

        profile = {
            "driver": "GTiff",
            "width": width,
            "height": height,
            "count": count,
            "dtype": "uint8",
        }
        if crs is not None:
            profile["crs"] = crs
        if geotransform is not None:
            profile["transform"] = Affine.from_gdal(*geotransform)

        path = tmp_path / name
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with rasterio.open(path, "w", **profile) as dst:
                dst.write(bands)
        return str(path)

    return _make


@pytest.fixture
def rgb_geotiff(make_geotiff: GeoTiffFactory) -> str:
    return make_geotiff(name="rgb.tif")


@pytest.fixture
def utm_geotiff(make_geotiff: GeoTiffFactory) -> str:
    return make_geotiff(geotransform=UTM_GT, crs=UTM_CRS, name="utm.tif", width=40, height=30)


@pytest.fixture
def viewport() -> WebMercatorViewport:
    return WebMercatorViewport(VIEW_LAT, VIEW_LON, VIEW_ZOOM, *VIEW_SIZE)


@pytest.fixture
def surface() -> InMemorySurface:
    return InMemorySurface()
