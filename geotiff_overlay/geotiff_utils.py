#!/usr/bin/env python3
"""
Utility functions for GeoTIFF affine geotransforms.

Implements GDAL's standard 6-parameter affine GeoTransform for converting
between raster pixel coordinates and geographic/projected coordinates, plus
its inverse.

References:
    - GDAL GeoTransform: https://gdal.org/tutorials/geotransforms_tut.html
"""

from typing import List, Sequence, Tuple

# Type alias for the 6-parameter GDAL geotransform
Geotransform = Tuple[float, float, float, float, float, float]

# Determinant below which a geotransform is treated as non-invertible
DEGENERATE_EPSILON = 1e-15


def validate_geotransform(gt: Sequence[float]) -> Geotransform:
    """
    Check that a geotransform can place a raster and return it as a tuple.

    Args:
        gt: GeoTransform sequence [GT0, GT1, GT2, GT3, GT4, GT5]

    Returns:
        The geotransform as a 6-tuple of floats.

    Raises:
        ValueError: If gt does not have exactly 6 elements, or pixel width
            (GT[1]) or pixel height (GT[5]) is zero.
    """
    if len(gt) != 6:
        raise ValueError(f"geotransform must have exactly 6 elements, got {len(gt)}")
    if gt[1] == 0 or gt[5] == 0:
        raise ValueError(
            f"geotransform pixel size must be nonzero, got width={gt[1]} height={gt[5]}"
        )
    return tuple(float(v) for v in gt)  # type: ignore[return-value]


def apply_geotransform(px: float, py: float, gt: Sequence[float]) -> Tuple[float, float]:
    """
    Apply GDAL 6-parameter affine geotransform to convert pixel to geographic coordinates.

    Implements the GDAL GeoTransform formula:
        Xgeo = GT[0] + P*GT[1] + L*GT[2]
        Ygeo = GT[3] + P*GT[4] + L*GT[5]

    Where:
        GT[0]: X-coordinate of upper-left corner (origin easting/longitude)
        GT[1]: Pixel width
        GT[2]: Row rotation (0 for north-up images)
        GT[3]: Y-coordinate of upper-left corner (origin northing/latitude)
        GT[4]: Column rotation (0 for north-up images)
        GT[5]: Pixel height (typically negative)

    Pixel Origin Convention:
        GDAL GeoTransform references the UPPER-LEFT CORNER of a pixel, so
        (0, 0) maps to the raster origin and (width, height) to the far corner.

    Args:
        px: Pixel X coordinate (column), 0-indexed from left
        py: Pixel Y coordinate (row), 0-indexed from top
        gt: GeoTransform array [GT0, GT1, GT2, GT3, GT4, GT5]

    Returns:
        Tuple of (x, y) in the coordinate reference system of the GeoTIFF.

    Examples:
        >>> gt = [737575.05, 0.15, 0, 4391595.45, 0, -0.15]
        >>> easting, northing = apply_geotransform(10, 20, gt)
        >>> print(f"({easting:.2f}, {northing:.2f})")
        (737576.55, 4391592.45)
    """
    if len(gt) != 6:
        raise ValueError(f"geotransform must have exactly 6 elements, got {len(gt)}")

    x = gt[0] + px * gt[1] + py * gt[2]
    y = gt[3] + px * gt[4] + py * gt[5]
    return x, y


def invert_geotransform(gt: Sequence[float]) -> Geotransform:
    """
    Compute the inverse of a geotransform (geographic -> pixel).

    Equivalent to GDALInvGeoTransform: the returned coefficients can be fed
    back into apply_geotransform() with geographic (x, y) to obtain (col, row).

    Args:
        gt: GeoTransform array [GT0, GT1, GT2, GT3, GT4, GT5]

    Returns:
        Inverse geotransform as a 6-tuple.

    Raises:
        ValueError: If the affine part is singular.
    """
    if len(gt) != 6:
        raise ValueError(f"geotransform must have exactly 6 elements, got {len(gt)}")

    det = gt[1] * gt[5] - gt[2] * gt[4]
    if abs(det) < DEGENERATE_EPSILON:
        raise ValueError(f"geotransform is not invertible (determinant {det})")

    inv_det = 1.0 / det
    a = gt[5] * inv_det
    b = -gt[2] * inv_det
    d = -gt[4] * inv_det
    e = gt[1] * inv_det
    return (
        -gt[0] * a - gt[3] * b,
        a,
        b,
        -gt[0] * d - gt[3] * e,
        d,
        e,
    )


def geo_to_pixel(x: float, y: float, gt: Sequence[float]) -> Tuple[float, float]:
    """Convert geographic (x, y) to fractional pixel (col, row)."""
    return apply_geotransform(x, y, invert_geotransform(gt))


def raster_corners(width: int, height: int, gt: Sequence[float]) -> List[Tuple[float, float]]:
    """
    Return the geographic coordinates of the four raster corners.

    Order follows the pixel rectangle: top-left, top-right, bottom-right,
    bottom-left (pixel coordinates (0, 0), (w, 0), (w, h), (0, h)).
    """
    return [
        apply_geotransform(0, 0, gt),
        apply_geotransform(width, 0, gt),
        apply_geotransform(width, height, gt),
        apply_geotransform(0, height, gt),
    ]


def is_skewed(gt: Sequence[float]) -> bool:
    """True if the geotransform has rotation/skew terms (not north-up)."""
    return gt[2] != 0 or gt[4] != 0
