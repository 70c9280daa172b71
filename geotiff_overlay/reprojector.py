"""
CRS reprojection of point sets into the map's display CRS.

All pyproj transformers are created with always_xy=True, so points are
(x, y) = (easting, northing) or (longitude, latitude) regardless of the
axis order declared by the CRS.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from geotiff_overlay.errors import TransformBuildFailed, TransformFailed

logger = logging.getLogger(__name__)

# Display CRS used by slippy maps for geographic coordinates
DEFAULT_TARGET_CRS = "EPSG:4326"


class GeoReprojector:
    """Immutable transform from a raster's CRS to the display CRS.

    Build with GeoReprojector.build(); a None result means degraded mode
    (coordinates are used unmodified).
    """

    def __init__(self, source_crs: CRS, target_crs: CRS, transformer: Transformer):
        self._source_crs = source_crs
        self._target_crs = target_crs
        self._transformer = transformer

    @classmethod
    def create(cls, source_crs: str, target_crs: str = DEFAULT_TARGET_CRS) -> GeoReprojector:
        """
        Build a reprojector, raising on failure.

        Raises:
            TransformBuildFailed: If either CRS cannot be parsed or no
                transformation exists between them
        """
        if not source_crs or not source_crs.strip():
            raise TransformBuildFailed(source_crs, target_crs, "source CRS is empty")
        try:
            src = CRS.from_user_input(source_crs)
            dst = CRS.from_user_input(target_crs)
            transformer = Transformer.from_crs(src, dst, always_xy=True)
        except (CRSError, ProjError) as e:
            raise TransformBuildFailed(source_crs, target_crs, str(e)) from e
        return cls(src, dst, transformer)

    @classmethod
    def build(cls, source_crs: Optional[str], target_crs: str = DEFAULT_TARGET_CRS) -> Optional[GeoReprojector]:
        """
        Build a reprojector, or return None for degraded mode.

        None is returned when source_crs is empty or unparseable, or when
        the transformation cannot be constructed; the reason is logged.
        """
        if not source_crs:
            logger.warning("GeoTIFF has no projection information; using unprojected coordinates")
            return None
        try:
            return cls.create(source_crs, target_crs)
        except TransformBuildFailed as e:
            logger.warning(f"{e}; using unprojected coordinates")
            return None

    @property
    def source_crs(self) -> CRS:
        return self._source_crs

    @property
    def target_crs(self) -> CRS:
        return self._target_crs

    @property
    def is_identity(self) -> bool:
        return self._source_crs == self._target_crs

    def transform_points(self, points: Sequence[Tuple[float, float]]) -> List[Tuple[float, float]]:
        """
        Transform a batch of (x, y) points.

        Raises:
            TransformFailed: If pyproj fails or any output is not finite. No
                partial result is returned.
        """
        if not points:
            return []

        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        try:
            out_x, out_y = self._transformer.transform(xs, ys, errcheck=True)
        except ProjError as e:
            raise TransformFailed(f"Coordinate transformation failed: {e}") from e

        result = [(float(x), float(y)) for x, y in zip(out_x, out_y)]
        if not all(math.isfinite(x) and math.isfinite(y) for x, y in result):
            raise TransformFailed("Coordinate transformation produced non-finite coordinates")
        return result

    def __repr__(self) -> str:
        return f"GeoReprojector({self._source_crs.name!r} -> {self._target_crs.name!r})"
