"""CLI module for the GeoTIFF overlay.

Provides the `geotiff-overlay` command-line interface for rendering an
overlay over a web-mercator viewport and inspecting raster footprints.
"""

from geotiff_overlay.cli.main import app

__all__ = ["app"]
