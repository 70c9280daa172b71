"""
Read-only access to a georeferenced raster file.

RasterSource wraps a rasterio dataset handle and exposes exactly what the
overlay engine needs: pixel size, band count, the GDAL-ordered affine
geotransform, the CRS as WKT, and per-band 8-bit reads.

Band count -> pixel format policy:

    | bands | format     | channels            |
    |-------|------------|---------------------|
    | 1     | GRAYSCALE8 | band1 -> gray       |
    | 2     | GRAYSCALE8 | band1 -> gray       |
    | 3     | RGB888     | bands 1,2,3 -> RGB  |
    | >= 4  | RGBA8888   | bands 1-4 -> RGBA   |
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import unquote, urlparse

import numpy as np
import rasterio
from rasterio.errors import NotGeoreferencedWarning, RasterioError
from rasterio.transform import Affine

from geotiff_overlay.drivers import initialize_drivers
from geotiff_overlay.errors import BandReadFailed, NoGeoTransform, OpenFailed
from geotiff_overlay.geotiff_utils import Geotransform, validate_geotransform

logger = logging.getLogger(__name__)


class PixelFormat(Enum):
    """Output pixel layout of a decoded raster."""

    GRAYSCALE8 = 1
    RGB888 = 3
    RGBA8888 = 4

    @property
    def channels(self) -> int:
        return self.value

    @property
    def has_alpha(self) -> bool:
        return self is PixelFormat.RGBA8888


def pixel_format_for_band_count(band_count: int) -> PixelFormat:
    """Map a raster band count to its output pixel format."""
    if band_count < 1:
        raise ValueError(f"band count must be >= 1, got {band_count}")
    if band_count >= 4:
        return PixelFormat.RGBA8888
    if band_count == 3:
        return PixelFormat.RGB888
    return PixelFormat.GRAYSCALE8


def bands_for_format(pixel_format: PixelFormat) -> Tuple[int, ...]:
    """1-based band indexes feeding each output channel, in channel order."""
    return tuple(range(1, pixel_format.channels + 1))


@dataclass(frozen=True)
class DecodedImage:
    """Raster pixels at native resolution, one uint8 channel per output channel.

    Attributes:
        pixels: (height, width) for grayscale, (height, width, channels) otherwise
        pixel_format: Output format chosen from the band count
        failed_bands: 1-based indexes of bands that could not be read and
            were left zero-filled
    """

    pixels: np.ndarray
    pixel_format: PixelFormat
    failed_bands: Tuple[int, ...] = ()

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]


def resolve_path(path_or_uri: str) -> str:
    """Turn a file:// URI into a local path; plain paths pass through."""
    parsed = urlparse(path_or_uri)
    if parsed.scheme == "file":
        return unquote(parsed.path)
    return path_or_uri


class RasterSource:
    """An open, read-only raster dataset.

    Use RasterSource.open() rather than the constructor. The handle is
    released by close() or when leaving a ``with`` block.
    """

    def __init__(self, path: str, dataset: rasterio.io.DatasetReader):
        self._path = path
        self._dataset = dataset

    @classmethod
    def open(cls, path: str, require_geotransform: bool = False) -> RasterSource:
        """
        Open a raster read-only.

        Args:
            path: Local path or file:// URI
            require_geotransform: Validate the geotransform immediately and
                fail with NoGeoTransform (closing the handle) when it is missing

        Raises:
            OpenFailed: If the path does not exist or is not a supported raster
            NoGeoTransform: If require_geotransform is set and the raster
                cannot be georeferenced
        """
        initialize_drivers()
        local_path = resolve_path(path)

        if not Path(local_path).exists():
            raise OpenFailed(local_path, "file does not exist")

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", NotGeoreferencedWarning)
                dataset = rasterio.open(local_path, "r")
        except RasterioError as e:
            raise OpenFailed(local_path, str(e)) from e

        source = cls(local_path, dataset)
        logger.info(
            f"Opened {Path(local_path).name}: {source.width}x{source.height}, "
            f"{source.band_count} band(s)"
        )

        if require_geotransform:
            try:
                source.geotransform()
            except NoGeoTransform:
                source.close()
                raise
        return source

    @property
    def path(self) -> str:
        return self._path

    @property
    def width(self) -> int:
        return self._dataset.width

    @property
    def height(self) -> int:
        return self._dataset.height

    @property
    def band_count(self) -> int:
        return self._dataset.count

    @property
    def closed(self) -> bool:
        return self._dataset.closed

    @property
    def pixel_format(self) -> PixelFormat:
        return pixel_format_for_band_count(self.band_count)

    def geotransform(self) -> Geotransform:
        """
        Return the affine geotransform in GDAL coefficient order.

        Raises:
            NoGeoTransform: If the dataset is not georeferenced or its pixel
                size is zero
        """
        transform = self._dataset.transform
        if transform == Affine.identity():
            # rasterio reports an identity transform for rasters without georeferencing
            raise NoGeoTransform(self._path)
        try:
            return validate_geotransform(transform.to_gdal())
        except ValueError as e:
            raise NoGeoTransform(self._path, str(e)) from e

    def crs(self) -> Optional[str]:
        """Return the CRS as WKT, or None when the raster has no projection."""
        crs = self._dataset.crs
        if not crs:
            return None
        return crs.to_wkt()

    def read_band(self, index: int, as_bytes: bool = True) -> np.ndarray:
        """
        Read one band at native resolution.

        Args:
            index: 1-based band index
            as_bytes: Cast samples to uint8 on read (8-bit per channel output)

        Returns:
            (height, width) array

        Raises:
            BandReadFailed: If the band does not exist or cannot be read
        """
        if self.closed:
            raise BandReadFailed(index, "dataset is closed")
        if not 1 <= index <= self.band_count:
            raise BandReadFailed(index, f"band index out of range 1..{self.band_count}")
        try:
            if as_bytes:
                return self._dataset.read(index, out_dtype="uint8")
            return self._dataset.read(index)
        except (RasterioError, IndexError, ValueError) as e:
            raise BandReadFailed(index, str(e)) from e

    def decode(self) -> DecodedImage:
        """
        Decode the relevant bands into one channel buffer.

        A band that fails to read is logged and left zero-filled; the
        remaining bands are still read so the image stays displayable.
        """
        pixel_format = self.pixel_format
        band_indexes = bands_for_format(pixel_format)
        channels = np.zeros((self.height, self.width, len(band_indexes)), dtype=np.uint8)

        failed = []
        for channel, band_index in enumerate(band_indexes):
            try:
                channels[:, :, channel] = self.read_band(band_index)
            except BandReadFailed as e:
                logger.warning(f"{e}; channel left zero-filled")
                failed.append(band_index)

        if pixel_format is PixelFormat.GRAYSCALE8:
            pixels = np.ascontiguousarray(channels[:, :, 0])
        else:
            pixels = channels

        return DecodedImage(pixels=pixels, pixel_format=pixel_format, failed_bands=tuple(failed))

    def close(self) -> None:
        """Release the dataset handle. Safe to call more than once."""
        if not self._dataset.closed:
            self._dataset.close()
            logger.debug(f"Closed {self._path}")

    def __enter__(self) -> RasterSource:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"RasterSource({self._path!r}, {self.width}x{self.height}, bands={self.band_count})"
