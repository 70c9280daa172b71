"""
Unit type annotations for type-safe numeric parameters.

These NewType aliases document which coordinate space a number lives in.
Mixing screen pixels with raster pixels, or degrees with projected meters,
is the most common source of misplaced overlays, so signatures across the
geotiff_overlay package spell the unit out.

Usage Example:
    >>> from geotiff_overlay.types import Degrees, PixelsFloat
    >>>
    >>> def from_coordinate(lat: Degrees, lon: Degrees) -> tuple[PixelsFloat, PixelsFloat]:
    ...     pass
"""

from typing import NewType

# Angular units
Degrees = NewType('Degrees', float)
"""Angle in degrees (latitude, longitude)"""

# Raster / screen units
Pixels = NewType('Pixels', int)
"""Integer dimensions in pixels (raster width/height, buffer size, viewport size)"""

PixelsFloat = NewType('PixelsFloat', float)
"""Floating-point screen coordinates in pixels (projected corner positions)"""

# Map units
ZoomLevel = NewType('ZoomLevel', float)
"""Slippy-map zoom level; the world is tile_size * 2**zoom pixels wide"""
