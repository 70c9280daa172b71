"""
Viewport projection interface consumed by the overlay engine.

The hosting map owns its viewport; the overlay only observes it. Observers
are held weakly, so subscribing never keeps an overlay alive, and an overlay
unsubscribes through the Subscription handle on teardown.

Coordinate Systems:
    - Geographic: (lat, lon) in decimal degrees, WGS84
    - Screen: (x, y) in pixels, origin at the top-left of the viewport

WebMercatorViewport is a self-contained slippy-map viewport (the projection
used by OSM/Leaflet tiles) for hosts without their own map widget, the CLI,
and tests.
"""

from __future__ import annotations

import logging
import math
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Flag, auto
from typing import Callable, List, Optional, Tuple

from pyproj import Transformer

from geotiff_overlay.types import Degrees, Pixels, PixelsFloat, ZoomLevel

logger = logging.getLogger(__name__)

# Half the circumference of the EPSG:3857 world in meters
WEB_MERCATOR_HALF_WORLD_M = 20037508.342789244

# Latitude limit of the square web-mercator world
WEB_MERCATOR_MAX_LAT = 85.05112878

DEFAULT_TILE_SIZE = 256


class ViewportChange(Flag):
    """What changed in a viewport-changed notification."""

    REGION = auto()
    """Visible region moved (pan), also set alongside ZOOM and SIZE."""

    ZOOM = auto()
    """Zoom level changed: the raster-to-screen scale is different."""

    SIZE = auto()
    """Viewport was resized."""


ViewportListener = Callable[[ViewportChange], None]


@dataclass(frozen=True)
class GeoRectangle:
    """Geographic bounding rectangle in degrees."""

    north: Degrees
    west: Degrees
    south: Degrees
    east: Degrees

    @property
    def top_left(self) -> Tuple[Degrees, Degrees]:
        return self.north, self.west

    @property
    def bottom_right(self) -> Tuple[Degrees, Degrees]:
        return self.south, self.east


class Subscription:
    """Handle returned by ViewportProjector.subscribe().

    Holds the listener weakly when it is a bound method, so the viewport
    does not own the subscriber.
    """

    def __init__(self, viewport: ViewportProjector, listener: ViewportListener):
        self._viewport_ref = weakref.ref(viewport)
        if hasattr(listener, "__self__") and hasattr(listener, "__func__"):
            self._listener_ref: Callable[[], Optional[ViewportListener]] = weakref.WeakMethod(listener)
        else:
            self._listener_ref = lambda: listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active and self._listener_ref() is not None

    def deliver(self, change: ViewportChange) -> bool:
        """Call the listener; returns False once the listener is gone."""
        listener = self._listener_ref() if self._active else None
        if listener is None:
            return False
        listener(change)
        return True

    def cancel(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        viewport = self._viewport_ref()
        if viewport is not None:
            viewport._remove_subscription(self)


class ViewportProjector(ABC):
    """Interface of the host map viewport.

    Implementers provide the projection and call _notify() whenever the
    visible region, zoom level or size changes.
    """

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    @abstractmethod
    def size(self) -> Tuple[Pixels, Pixels]:
        """Viewport size in screen pixels (width, height)."""

    @abstractmethod
    def visible_region(self) -> GeoRectangle:
        """Geographic rectangle currently visible."""

    @abstractmethod
    def from_coordinate(self, lat: Degrees, lon: Degrees) -> Tuple[PixelsFloat, PixelsFloat]:
        """Project a geographic coordinate to screen pixels."""

    @abstractmethod
    def zoom_level(self) -> ZoomLevel:
        """Current zoom level."""

    def subscribe(self, listener: ViewportListener) -> Subscription:
        """Register a callback for viewport, zoom and size changes."""
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        return subscription

    @property
    def subscriber_count(self) -> int:
        return sum(1 for s in self._subscriptions if s.active)

    def _remove_subscription(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _notify(self, change: ViewportChange) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.deliver(change):
                self._remove_subscription(subscription)


class WebMercatorViewport(ViewportProjector):
    """Slippy-map viewport in the EPSG:3857 projection.

    The world is tile_size * 2**zoom pixels wide; the center coordinate is
    drawn at the middle of the viewport.
    """

    def __init__(
        self,
        center_lat: float,
        center_lon: float,
        zoom: float,
        width: int,
        height: int,
        tile_size: int = DEFAULT_TILE_SIZE,
    ):
        super().__init__()
        if width <= 0 or height <= 0:
            raise ValueError(f"viewport size must be positive, got {width}x{height}")
        if tile_size <= 0:
            raise ValueError(f"tile_size must be positive, got {tile_size}")

        self._to_mercator = Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)
        self._to_wgs84 = Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)
        self._center = (float(center_lat), float(center_lon))
        self._zoom = float(zoom)
        self._width = int(width)
        self._height = int(height)
        self._tile_size = tile_size

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def _world_size(self) -> float:
        return self._tile_size * math.pow(2.0, self._zoom)

    def _world_pixel(self, lat: float, lon: float) -> Tuple[float, float]:
        lat = max(-WEB_MERCATOR_MAX_LAT, min(WEB_MERCATOR_MAX_LAT, lat))
        mx, my = self._to_mercator.transform(lon, lat)
        world = self._world_size()
        span = 2.0 * WEB_MERCATOR_HALF_WORLD_M
        return (
            (mx + WEB_MERCATOR_HALF_WORLD_M) / span * world,
            (WEB_MERCATOR_HALF_WORLD_M - my) / span * world,
        )

    def _world_to_coordinate(self, wx: float, wy: float) -> Tuple[Degrees, Degrees]:
        world = self._world_size()
        span = 2.0 * WEB_MERCATOR_HALF_WORLD_M
        mx = wx / world * span - WEB_MERCATOR_HALF_WORLD_M
        my = WEB_MERCATOR_HALF_WORLD_M - wy / world * span
        lon, lat = self._to_wgs84.transform(mx, my)
        return Degrees(lat), Degrees(lon)

    def _center_world(self) -> Tuple[float, float]:
        return self._world_pixel(*self._center)

    def from_coordinate(self, lat: Degrees, lon: Degrees) -> Tuple[PixelsFloat, PixelsFloat]:
        wx, wy = self._world_pixel(lat, lon)
        cx, cy = self._center_world()
        return PixelsFloat(wx - cx + self._width / 2.0), PixelsFloat(wy - cy + self._height / 2.0)

    def to_coordinate(self, x: float, y: float) -> Tuple[Degrees, Degrees]:
        """Inverse of from_coordinate: screen pixels to (lat, lon)."""
        cx, cy = self._center_world()
        return self._world_to_coordinate(x - self._width / 2.0 + cx, y - self._height / 2.0 + cy)

    # ------------------------------------------------------------------
    # ViewportProjector
    # ------------------------------------------------------------------

    def size(self) -> Tuple[Pixels, Pixels]:
        return Pixels(self._width), Pixels(self._height)

    def visible_region(self) -> GeoRectangle:
        north, west = self.to_coordinate(0, 0)
        south, east = self.to_coordinate(self._width, self._height)
        return GeoRectangle(north=north, west=west, south=south, east=east)

    def zoom_level(self) -> ZoomLevel:
        return ZoomLevel(self._zoom)

    @property
    def center(self) -> Tuple[Degrees, Degrees]:
        return Degrees(self._center[0]), Degrees(self._center[1])

    # ------------------------------------------------------------------
    # Mutation (emits change notifications)
    # ------------------------------------------------------------------

    def set_center(self, lat: float, lon: float) -> None:
        center = (float(lat), float(lon))
        if center == self._center:
            return
        self._center = center
        self._notify(ViewportChange.REGION)

    def pan_by(self, dx: float, dy: float) -> None:
        """Move the view by (dx, dy) screen pixels."""
        if dx == 0 and dy == 0:
            return
        lat, lon = self.to_coordinate(self._width / 2.0 + dx, self._height / 2.0 + dy)
        self.set_center(lat, lon)

    def set_zoom(self, zoom: float) -> None:
        zoom = float(zoom)
        if zoom == self._zoom:
            return
        self._zoom = zoom
        self._notify(ViewportChange.ZOOM | ViewportChange.REGION)

    def resize(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"viewport size must be positive, got {width}x{height}")
        if (width, height) == (self._width, self._height):
            return
        self._width = int(width)
        self._height = int(height)
        self._notify(ViewportChange.SIZE | ViewportChange.REGION)

    def __repr__(self) -> str:
        lat, lon = self._center
        return (
            f"WebMercatorViewport(center=({lat:.6f}, {lon:.6f}), zoom={self._zoom}, "
            f"size={self._width}x{self._height})"
        )
