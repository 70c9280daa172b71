"""
Geographic footprint of a raster and its screen-space rectangle.

The footprint is the raster's pixel rectangle mapped through the affine
geotransform and, when available, reprojected into the display CRS. Its
bounding box is the axis-aligned min/max of the four corners. Rotation and
skew are discarded by that approximation: a skewed raster is placed by its
bounding rectangle, not by its true quad.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from geotiff_overlay.geotiff_utils import is_skewed, raster_corners
from geotiff_overlay.types import Pixels, PixelsFloat

if TYPE_CHECKING:
    from geotiff_overlay.reprojector import GeoReprojector
    from geotiff_overlay.viewport import ViewportProjector

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


@dataclass(frozen=True)
class Footprint:
    """Four corners of a raster and their axis-aligned bounds.

    Attributes:
        corners: top-left, top-right, bottom-right, bottom-left (pixel order),
            as (x, y) = (lon, lat) when projected to a geographic display CRS
        min_x, min_y, max_x, max_y: axis-aligned bounds of the corners
        projected: True if the corners went through a reprojector
        skewed: True if the geotransform has rotation terms
    """

    corners: Tuple[Point, Point, Point, Point]
    min_x: float
    min_y: float
    max_x: float
    max_y: float
    projected: bool = False
    skewed: bool = False

    @classmethod
    def from_corners(cls, corners: Sequence[Point], projected: bool = False, skewed: bool = False) -> Footprint:
        if len(corners) != 4:
            raise ValueError(f"footprint needs exactly 4 corners, got {len(corners)}")
        xs = [c[0] for c in corners]
        ys = [c[1] for c in corners]
        return cls(
            corners=tuple((float(x), float(y)) for x, y in corners),  # type: ignore[arg-type]
            min_x=min(xs),
            min_y=min(ys),
            max_x=max(xs),
            max_y=max(ys),
            projected=projected,
            skewed=skewed,
        )

    @property
    def top_left(self) -> Point:
        """North-west corner of the bounding box as (x, y)."""
        return self.min_x, self.max_y

    @property
    def bottom_right(self) -> Point:
        """South-east corner of the bounding box as (x, y)."""
        return self.max_x, self.min_y


def compute_footprint(
    geotransform: Sequence[float],
    width: int,
    height: int,
    reprojector: Optional[GeoReprojector] = None,
) -> Footprint:
    """
    Compute a raster footprint.

    Args:
        geotransform: GDAL 6-parameter geotransform
        width: Raster width in pixels
        height: Raster height in pixels
        reprojector: Transform into the display CRS; None keeps source coordinates

    Raises:
        TransformFailed: If reprojection of the corners fails
    """
    skewed = is_skewed(geotransform)
    if skewed:
        logger.warning(
            "Geotransform has rotation terms; the overlay is placed by its "
            "axis-aligned bounding box and pixel content is drawn north-up"
        )

    corners = raster_corners(width, height, geotransform)
    if reprojector is None:
        return Footprint.from_corners(corners, projected=False, skewed=skewed)

    return Footprint.from_corners(reprojector.transform_points(corners), projected=True, skewed=skewed)


@dataclass(frozen=True)
class ScreenRect:
    """Axis-aligned rectangle in viewport pixels (origin top-left, y down)."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_points(cls, p1: Tuple[PixelsFloat, PixelsFloat], p2: Tuple[PixelsFloat, PixelsFloat]) -> ScreenRect:
        left, right = sorted((p1[0], p2[0]))
        top, bottom = sorted((p1[1], p2[1]))
        return cls(left, top, right - left, bottom - top)

    @property
    def left(self) -> float:
        return self.x

    @property
    def top(self) -> float:
        return self.y

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def pixel_size(self) -> Tuple[Pixels, Pixels]:
        """Buffer size for this rectangle, rounded and at least 1x1."""
        return Pixels(max(1, int(round(self.width)))), Pixels(max(1, int(round(self.height))))

    def same_size(self, other: Optional[ScreenRect]) -> bool:
        return other is not None and self.pixel_size() == other.pixel_size()

    def intersects_viewport(self, viewport_width: float, viewport_height: float) -> bool:
        """False if the rectangle lies fully outside [0, w] x [0, h] or is empty."""
        if self.is_empty:
            return False
        return not (
            self.right <= 0
            or self.bottom <= 0
            or self.left >= viewport_width
            or self.top >= viewport_height
        )

    def translated(self, dx: float, dy: float) -> ScreenRect:
        return ScreenRect(self.x + dx, self.y + dy, self.width, self.height)


def screen_rect_for_footprint(footprint: Footprint, viewport: ViewportProjector) -> ScreenRect:
    """Project the footprint bounds to screen pixels through the viewport."""
    top_left = viewport.from_coordinate(footprint.max_y, footprint.min_x)
    bottom_right = viewport.from_coordinate(footprint.min_y, footprint.max_x)
    return ScreenRect.from_points(top_left, bottom_right)
