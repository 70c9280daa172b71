"""
Render surface adapter.

The overlay engine never draws. It hands finished pixel buffers to a
RenderSurface, which turns them into texture handles, and keeps exactly one
Publication (image + screen rectangle + handle) current at a time.

Publication rules:
    - a publication is replaced whole, never patched
    - the previous texture handle is released after the new one is uploaded
    - published pixel arrays are read-only; surfaces may read but not write them
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from geotiff_overlay.footprint import ScreenRect
from geotiff_overlay.raster_source import PixelFormat
from geotiff_overlay.recomposition import CompositedImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextureHandle:
    """Opaque handle to an uploaded texture."""

    id: int
    size: Tuple[int, int]


@dataclass(frozen=True)
class Publication:
    """What the surface currently shows: one image at one screen rectangle."""

    image: CompositedImage
    rect: ScreenRect
    handle: TextureHandle


class RenderSurface(ABC):
    """GPU-style surface consumed by the overlay."""

    @abstractmethod
    def upload(self, pixels: np.ndarray, has_alpha: bool, rect: ScreenRect) -> TextureHandle:
        """Upload a pixel buffer to be drawn at rect; returns its handle."""

    @abstractmethod
    def release(self, handle: TextureHandle) -> None:
        """Free a texture previously returned by upload()."""

    def move(self, handle: TextureHandle, rect: ScreenRect) -> None:
        """Draw an already uploaded texture at a new rectangle."""

    @abstractmethod
    def request_redraw(self) -> None:
        """Ask the host to repaint."""


class SurfaceAdapter:
    """Owns the current publication on a RenderSurface."""

    def __init__(self, surface: RenderSurface):
        self._surface = surface
        self._publication: Optional[Publication] = None

    @property
    def surface(self) -> RenderSurface:
        return self._surface

    @property
    def publication(self) -> Optional[Publication]:
        return self._publication

    def publish(self, image: CompositedImage) -> Publication:
        """Upload image, make it current, and release the previous texture."""
        if image.pixels.flags.writeable:
            image.pixels.setflags(write=False)

        handle = self._surface.upload(image.pixels, image.has_alpha, image.rect)
        previous = self._publication
        self._publication = Publication(image=image, rect=image.rect, handle=handle)
        if previous is not None:
            self._surface.release(previous.handle)

        self._surface.request_redraw()
        logger.debug(f"Published texture {handle.id} at {image.rect}")
        return self._publication

    def reposition(self, rect: ScreenRect) -> bool:
        """Move the current texture without re-uploading. False if nothing is published."""
        if self._publication is None:
            return False
        if rect == self._publication.rect:
            return True
        self._publication = replace(self._publication, rect=rect)
        self._surface.move(self._publication.handle, rect)
        self._surface.request_redraw()
        return True

    def clear(self, redraw: bool = True) -> None:
        """Drop the current publication and release its texture."""
        if self._publication is None:
            return
        handle = self._publication.handle
        self._publication = None
        self._surface.release(handle)
        if redraw:
            self._surface.request_redraw()


class InMemorySurface(RenderSurface):
    """Surface that keeps uploaded textures in memory.

    Useful for hosts that draw the buffer themselves, and for tests.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self.textures: Dict[int, Tuple[np.ndarray, bool, ScreenRect]] = {}
        self.upload_count = 0
        self.release_count = 0
        self.redraw_count = 0

    def upload(self, pixels: np.ndarray, has_alpha: bool, rect: ScreenRect) -> TextureHandle:
        if pixels.flags.writeable:
            raise ValueError("published pixel buffers must be read-only")
        handle = TextureHandle(id=next(self._ids), size=(pixels.shape[1], pixels.shape[0]))
        self.textures[handle.id] = (pixels, has_alpha, rect)
        self.upload_count += 1
        return handle

    def release(self, handle: TextureHandle) -> None:
        if self.textures.pop(handle.id, None) is None:
            logger.warning(f"Release of unknown texture {handle.id}")
            return
        self.release_count += 1

    def move(self, handle: TextureHandle, rect: ScreenRect) -> None:
        pixels, has_alpha, _ = self.textures[handle.id]
        self.textures[handle.id] = (pixels, has_alpha, rect)

    def request_redraw(self) -> None:
        self.redraw_count += 1


def to_rgba(pixels: np.ndarray, pixel_format: PixelFormat) -> np.ndarray:
    """Expand a grayscale/RGB/RGBA buffer to RGBA (opaque where no alpha)."""
    if pixel_format is PixelFormat.GRAYSCALE8:
        gray = pixels if pixels.ndim == 2 else pixels[:, :, 0]
        return cv2.cvtColor(np.ascontiguousarray(gray), cv2.COLOR_GRAY2RGBA)
    if pixel_format is PixelFormat.RGB888:
        return cv2.cvtColor(np.ascontiguousarray(pixels), cv2.COLOR_RGB2RGBA)
    return np.array(pixels, copy=True)


def blit(canvas: np.ndarray, rgba: np.ndarray, rect: ScreenRect) -> None:
    """Alpha-blend rgba onto an RGBA canvas at rect's top-left, clipped to the canvas."""
    canvas_h, canvas_w = canvas.shape[:2]
    x0 = int(round(rect.x))
    y0 = int(round(rect.y))
    src_h, src_w = rgba.shape[:2]

    left, top = max(x0, 0), max(y0, 0)
    right, bottom = min(x0 + src_w, canvas_w), min(y0 + src_h, canvas_h)
    if right <= left or bottom <= top:
        return

    src = rgba[top - y0:bottom - y0, left - x0:right - x0].astype(np.float32)
    dst = canvas[top:bottom, left:right].astype(np.float32)
    alpha = src[:, :, 3:4] / 255.0
    out_rgb = src[:, :, :3] * alpha + dst[:, :, :3] * (1.0 - alpha)
    out_a = src[:, :, 3:4] + dst[:, :, 3:4] * (1.0 - alpha)
    canvas[top:bottom, left:right] = np.clip(np.concatenate([out_rgb, out_a], axis=2), 0, 255).astype(np.uint8)


class ImageFileSurface(RenderSurface):
    """Surface that paints the current texture onto a transparent
    viewport-sized canvas and writes it as a PNG on every redraw.
    """

    def __init__(self, output_path: str, viewport_size: Tuple[int, int]):
        self._output_path = Path(output_path)
        self._viewport_size = viewport_size
        self._ids = itertools.count(1)
        self._textures: Dict[int, Tuple[np.ndarray, ScreenRect]] = {}
        self._current: Optional[int] = None

    @property
    def output_path(self) -> Path:
        return self._output_path

    def resize(self, viewport_size: Tuple[int, int]) -> None:
        self._viewport_size = viewport_size

    def upload(self, pixels: np.ndarray, has_alpha: bool, rect: ScreenRect) -> TextureHandle:
        if pixels.ndim == 2:
            pixel_format = PixelFormat.GRAYSCALE8
        elif has_alpha:
            pixel_format = PixelFormat.RGBA8888
        else:
            pixel_format = PixelFormat.RGB888
        handle = TextureHandle(id=next(self._ids), size=(pixels.shape[1], pixels.shape[0]))
        self._textures[handle.id] = (to_rgba(pixels, pixel_format), rect)
        self._current = handle.id
        return handle

    def release(self, handle: TextureHandle) -> None:
        self._textures.pop(handle.id, None)
        if self._current == handle.id:
            self._current = None

    def move(self, handle: TextureHandle, rect: ScreenRect) -> None:
        rgba, _ = self._textures[handle.id]
        self._textures[handle.id] = (rgba, rect)

    def render(self) -> np.ndarray:
        """Return the RGBA canvas with the current texture drawn on it."""
        width, height = self._viewport_size
        canvas = np.zeros((height, width, 4), dtype=np.uint8)
        if self._current is not None:
            rgba, rect = self._textures[self._current]
            blit(canvas, rgba, rect)
        return canvas

    def request_redraw(self) -> None:
        canvas = self.render()
        self._output_path.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(self._output_path), cv2.cvtColor(canvas, cv2.COLOR_RGBA2BGRA)):
            raise OSError(f"Failed to write overlay image: {self._output_path}")
        logger.debug(f"Wrote {canvas.shape[1]}x{canvas.shape[0]} overlay to {self._output_path}")
