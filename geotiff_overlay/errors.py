"""
Error kinds raised by the overlay engine and its collaborators.

Fatal to a source:
    - OpenFailed: the file is unreadable or not a supported raster
    - NoGeoTransform: the raster cannot be placed on the map
    - RecompositionFailed: the resampled buffer could not be allocated

Non-fatal (the engine logs a warning and degrades):
    - TransformBuildFailed: no CRS transform could be built, geometry stays unprojected
    - TransformFailed: a reprojection failed, the previous footprint is kept
    - BandReadFailed: a single band could not be read, its channel is zero-filled
"""

from typing import Optional, Tuple


class OverlayError(Exception):
    """Base class for all georeferenced overlay errors."""


class OpenFailed(OverlayError):
    """Raised when a raster path cannot be opened as a supported raster."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        message = f"Failed to open GeoTIFF file: {path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class NoGeoTransform(OverlayError):
    """Raised when a raster carries no usable affine geotransform."""

    def __init__(self, path: str, reason: str = "no geotransform"):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to get geotransform from {path}: {reason}")


class BandReadFailed(OverlayError):
    """Raised when reading one raster band fails."""

    def __init__(self, band_index: int, reason: str = ""):
        self.band_index = band_index
        self.reason = reason
        super().__init__(f"Failed to read band {band_index}: {reason}")


class TransformBuildFailed(OverlayError):
    """Raised when a coordinate transformation cannot be constructed."""

    def __init__(self, source_crs: Optional[str], target_crs: str, reason: str = ""):
        self.source_crs = source_crs
        self.target_crs = target_crs
        self.reason = reason
        super().__init__(f"Failed to create coordinate transformation to {target_crs}: {reason}")


class TransformFailed(OverlayError):
    """Raised when transforming a point set between CRSs fails."""


class RecompositionFailed(OverlayError):
    """Raised when a raster cannot be resampled to its on-screen size."""

    def __init__(self, size: Tuple[int, int], reason: str = ""):
        self.size = size
        self.reason = reason
        super().__init__(f"Failed to recompose overlay at {size[0]}x{size[1]}: {reason}")
