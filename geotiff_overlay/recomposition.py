"""
Recomposition: decode a raster and resample it to its on-screen size.

This is the expensive path of the overlay. It runs only when the composited
buffer is stale (source loaded or zoom changed), never on a plain pan.

Resampling is an axis-aligned scale:
    scale_x = target_width / native_width
    scale_y = target_height / native_height
No rotation is applied; pixel content is always drawn north-up.

Schedulers decide where recomposition runs:
    - InlineScheduler: synchronously inside the event handler
    - BackgroundScheduler: on a worker thread; results are handed back to the
      owning thread by poll(), and a newer submission makes older ones stale
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from geotiff_overlay.errors import RecompositionFailed
from geotiff_overlay.footprint import ScreenRect
from geotiff_overlay.raster_source import DecodedImage, PixelFormat, RasterSource

logger = logging.getLogger(__name__)


class ResamplingMethod(str, Enum):
    """Interpolation used when scaling the native raster."""

    NEAREST = "nearest"
    BILINEAR = "bilinear"

    @property
    def cv2_flag(self) -> int:
        if self is ResamplingMethod.NEAREST:
            return cv2.INTER_NEAREST
        return cv2.INTER_LINEAR


@dataclass(frozen=True)
class CompositedImage:
    """Screen-aligned pixel buffer ready for upload.

    The pixels array is read-only; a new CompositedImage replaces the whole
    buffer instead of patching it.
    """

    pixels: np.ndarray
    pixel_format: PixelFormat
    rect: ScreenRect

    @property
    def has_alpha(self) -> bool:
        return self.pixel_format.has_alpha

    @property
    def size(self) -> Tuple[int, int]:
        return self.pixels.shape[1], self.pixels.shape[0]


def resample(
    pixels: np.ndarray,
    target_size: Tuple[int, int],
    method: ResamplingMethod = ResamplingMethod.BILINEAR,
) -> np.ndarray:
    """
    Scale a native-resolution buffer to target_size (width, height).

    Args:
        pixels: (h, w) or (h, w, channels) uint8 array
        target_size: Output (width, height), both >= 1
        method: Interpolation

    Returns:
        (target_h, target_w[, channels]) uint8 array
    """
    target_w, target_h = target_size
    if target_w < 1 or target_h < 1:
        raise ValueError(f"target size must be at least 1x1, got {target_w}x{target_h}")

    native_h, native_w = pixels.shape[:2]
    if (native_w, native_h) == (target_w, target_h):
        return pixels.copy()

    scaled = cv2.resize(
        np.ascontiguousarray(pixels),
        (int(target_w), int(target_h)),
        interpolation=ResamplingMethod(method).cv2_flag,
    )
    # cv2 drops a trailing singleton channel axis; keep the input layout
    if pixels.ndim == 3 and scaled.ndim == 2:
        scaled = scaled[:, :, np.newaxis]
    return scaled


def compose(
    decoded: DecodedImage,
    rect: ScreenRect,
    method: ResamplingMethod = ResamplingMethod.BILINEAR,
) -> CompositedImage:
    """Resample an already decoded raster into a read-only buffer for rect."""
    pixels = resample(decoded.pixels, rect.pixel_size(), method)
    pixels.setflags(write=False)
    return CompositedImage(pixels=pixels, pixel_format=decoded.pixel_format, rect=rect)


def recompose(
    source: RasterSource,
    rect: ScreenRect,
    method: ResamplingMethod = ResamplingMethod.BILINEAR,
) -> CompositedImage:
    """Decode all relevant bands and resample them to the rectangle's size.

    Raises:
        RecompositionFailed: the scaled buffer could not be allocated, which
            happens at extreme zoom levels
    """
    decoded = source.decode()
    if decoded.failed_bands:
        logger.warning(f"Recomposed with zero-filled band(s) {list(decoded.failed_bands)}")
    try:
        composited = compose(decoded, rect, method)
    except (MemoryError, cv2.error) as e:
        raise RecompositionFailed(rect.pixel_size(), str(e) or type(e).__name__) from e
    logger.debug(
        f"Recomposed {decoded.width}x{decoded.height} -> "
        f"{composited.size[0]}x{composited.size[1]} ({ResamplingMethod(method).value})"
    )
    return composited


def recompose_file(
    path: str,
    rect: ScreenRect,
    method: ResamplingMethod = ResamplingMethod.BILINEAR,
) -> CompositedImage:
    """Recompose from a private handle; used off the owning thread."""
    with RasterSource.open(path) as source:
        return recompose(source, rect, method)


RecompositionResult = Tuple[int, Optional[CompositedImage], Optional[BaseException]]
RecompositionDone = Callable[[int, Optional[CompositedImage], Optional[BaseException]], None]


class RecompositionScheduler(ABC):
    """Where and when recomposition jobs run.

    Every submission gets a generation number. Only the newest generation's
    result is ever delivered to on_done.
    """

    def __init__(self):
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def cancel(self) -> None:
        """Make every submitted job stale."""
        self._next_generation()

    @abstractmethod
    def submit(self, job: Callable[[], CompositedImage], on_done: RecompositionDone) -> int:
        """Schedule job; returns its generation."""

    def poll(self) -> int:
        """Deliver finished results on the calling thread; returns how many."""
        return 0

    def shutdown(self) -> None:
        self.cancel()


class InlineScheduler(RecompositionScheduler):
    """Runs recomposition synchronously on the calling thread."""

    def submit(self, job: Callable[[], CompositedImage], on_done: RecompositionDone) -> int:
        generation = self._next_generation()
        try:
            result = job()
        except Exception as e:  # delivered to the engine, which decides what is fatal
            on_done(generation, None, e)
        else:
            on_done(generation, result, None)
        return generation


class BackgroundScheduler(RecompositionScheduler):
    """Runs recomposition on a single worker thread.

    A new submission cancels the pending one if it has not started; a job
    already running finishes but its result is dropped as stale. Results
    are only handed to on_done from poll(), on the owning thread.
    """

    def __init__(self):
        super().__init__()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="recompose")
        self._lock = threading.Lock()
        self._pending: Optional[Future] = None
        self._finished: List[Tuple[int, RecompositionDone, RecompositionResult]] = []

    def submit(self, job: Callable[[], CompositedImage], on_done: RecompositionDone) -> int:
        generation = self._next_generation()
        if self._pending is not None and self._pending.cancel():
            logger.debug("Cancelled pending recomposition before it started")

        def run() -> None:
            try:
                result: RecompositionResult = (generation, job(), None)
            except Exception as e:  # handed back to the owning thread
                result = (generation, None, e)
            with self._lock:
                self._finished.append((generation, on_done, result))

        self._pending = self._executor.submit(run)
        return generation

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the latest submitted job has finished."""
        pending = self._pending
        if pending is not None and not pending.cancelled():
            pending.result(timeout=timeout)

    def poll(self) -> int:
        with self._lock:
            finished, self._finished = self._finished, []

        delivered = 0
        for generation, on_done, (_, image, error) in finished:
            if generation != self._generation:
                logger.debug(f"Discarding stale recomposition (generation {generation})")
                continue
            on_done(generation, image, error)
            delivered += 1
        return delivered

    def shutdown(self) -> None:
        super().shutdown()
        self._executor.shutdown(wait=True, cancel_futures=True)
