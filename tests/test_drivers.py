"""Tests for process-wide raster driver initialization."""

import logging

import pytest
import rasterio

from geotiff_overlay.drivers import (
    driver_options,
    drivers_initialized,
    initialize_drivers,
    shutdown_drivers,
)
from geotiff_overlay.overlay_config import OverlayConfig
from geotiff_overlay.overlay_engine import OverlayEngine
from geotiff_overlay.raster_source import RasterSource
from geotiff_overlay.render_surface import InMemorySurface


@pytest.fixture
def fresh_drivers():
    shutdown_drivers()
    yield
    shutdown_drivers()
    initialize_drivers()


def test_first_call_initializes(fresh_drivers):
    assert not drivers_initialized()

    assert initialize_drivers() is True
    assert drivers_initialized()
    assert rasterio.env.hasenv()


def test_later_calls_are_noops(fresh_drivers):
    initialize_drivers()

    assert initialize_drivers() is False
    assert initialize_drivers({"CPL_DEBUG": "ON"}) is False


def test_open_initializes_on_demand(fresh_drivers, rgb_geotiff):
    with RasterSource.open(rgb_geotiff):
        assert drivers_initialized()


def test_shutdown_is_idempotent(fresh_drivers):
    initialize_drivers()

    shutdown_drivers()
    shutdown_drivers()

    assert not drivers_initialized()


def test_pam_side_files_are_not_written(rgb_geotiff, tmp_path):
    with RasterSource.open(rgb_geotiff) as source:
        source.decode()
        source.crs()

    assert not list(tmp_path.glob("*.aux.xml"))


def test_engine_applies_configured_gdal_options(fresh_drivers):
    engine = OverlayEngine(InMemorySurface(), OverlayConfig(gdal_options={"CPL_DEBUG": "OFF"}))
    try:
        options = driver_options()
        assert options["CPL_DEBUG"] == "OFF"
        assert options["GDAL_PAM_ENABLED"] == "NO"
    finally:
        engine.close()


def test_mismatched_options_after_init_warn(fresh_drivers, caplog):
    initialize_drivers({"CPL_DEBUG": "OFF"})

    with caplog.at_level(logging.WARNING, logger="geotiff_overlay.drivers"):
        initialize_drivers({"CPL_DEBUG": "OFF"})
        assert "already initialized" not in caplog.text

        assert initialize_drivers({"CPL_DEBUG": "ON"}) is False

    assert "already initialized" in caplog.text
    assert driver_options()["CPL_DEBUG"] == "OFF"
