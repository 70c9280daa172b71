"""
Georeferenced overlay engine.

Keeps a GeoTIFF aligned with a pannable/zoomable map viewport. The engine is
a small state machine:

    EMPTY --set_source--> LOADING --ok--> READY
                             |              |
                             +--fail--> ERROR <--non-recoverable error--+

In READY, every viewport change recomputes the screen rectangle (cheap).
The composited buffer is regenerated only when it is dirty (expensive):

    - dirty is set on source load, on viewport attach, and on zoom change
    - a pure pan never sets dirty; the existing texture is just moved
    - a rectangle fully outside the viewport skips recomposition; dirty
      stays set until the raster comes back on screen, and the published
      texture follows the rectangle offscreen (or is dropped if stale)

All state is owned by the engine and mutated only on the thread that
delivers viewport events.
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, replace
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional

from geotiff_overlay.drivers import initialize_drivers
from geotiff_overlay.errors import NoGeoTransform, OpenFailed, OverlayError, TransformFailed
from geotiff_overlay.footprint import Footprint, ScreenRect, compute_footprint, screen_rect_for_footprint
from geotiff_overlay.geotiff_utils import Geotransform
from geotiff_overlay.overlay_config import OverlayConfig, get_default_config
from geotiff_overlay.raster_source import RasterSource
from geotiff_overlay.recomposition import (
    BackgroundScheduler,
    CompositedImage,
    InlineScheduler,
    RecompositionScheduler,
    recompose,
    recompose_file,
)
from geotiff_overlay.render_surface import Publication, RenderSurface, SurfaceAdapter
from geotiff_overlay.reprojector import GeoReprojector
from geotiff_overlay.viewport import Subscription, ViewportChange, ViewportProjector

logger = logging.getLogger(__name__)

StatusListener = Callable[[str], None]


class OverlayStatus(Enum):
    """Lifecycle state of the overlay."""

    EMPTY = "empty"
    """No source set; nothing is rendered."""

    LOADING = "loading"
    """A source is being opened."""

    READY = "ready"
    """Source open and placed; responds to viewport changes."""

    ERROR = "error"
    """Source failed; nothing is rendered until set_source() is called again."""


@dataclass
class OverlayState:
    """Mutable state owned by one OverlayEngine.

    Attributes:
        status: Current lifecycle state
        dirty: The composited buffer is stale relative to the current screen scale
        footprint: Last good footprint of the current source
        screen_rect: Last computed screen rectangle of the footprint
        last_zoom: Zoom level the screen rectangle was computed at
        error: The error that moved the engine to ERROR
    """

    status: OverlayStatus = OverlayStatus.EMPTY
    dirty: bool = False
    footprint: Optional[Footprint] = None
    screen_rect: Optional[ScreenRect] = None
    last_zoom: Optional[float] = None
    error: Optional[OverlayError] = None


class OverlayEngine:
    """Places a georeferenced raster on a viewport and publishes its image.

    Typical usage:
        >>> surface = InMemorySurface()
        >>> engine = OverlayEngine(surface)
        >>> engine.attach_viewport(viewport)
        >>> engine.set_source("ortho.tif")
        >>> engine.publication.rect   # where the image is drawn
    """

    def __init__(
        self,
        surface: RenderSurface,
        config: Optional[OverlayConfig] = None,
        scheduler: Optional[RecompositionScheduler] = None,
    ):
        self._config = config or get_default_config()
        initialize_drivers(self._config.gdal_options)
        self._adapter = SurfaceAdapter(surface)
        if scheduler is None:
            scheduler = BackgroundScheduler() if self._config.background_recomposition else InlineScheduler()
        self._scheduler = scheduler

        self._state = OverlayState()
        self._display_crs = self._config.display_crs
        self._source_path: Optional[str] = None
        self._source: Optional[RasterSource] = None
        self._geotransform: Optional[Geotransform] = None
        self._reprojector: Optional[GeoReprojector] = None

        self._viewport_ref: Optional[weakref.ReferenceType] = None
        self._subscription: Optional[Subscription] = None

        self._status_message = "No source"
        self._status_listeners: List[StatusListener] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> OverlayState:
        return self._state

    @property
    def status(self) -> OverlayStatus:
        return self._state.status

    @property
    def dirty(self) -> bool:
        return self._state.dirty

    @property
    def footprint(self) -> Optional[Footprint]:
        return self._state.footprint

    @property
    def screen_rect(self) -> Optional[ScreenRect]:
        return self._state.screen_rect

    @property
    def error(self) -> Optional[OverlayError]:
        return self._state.error

    @property
    def publication(self) -> Optional[Publication]:
        return self._adapter.publication

    @property
    def image(self) -> Optional[CompositedImage]:
        publication = self._adapter.publication
        return publication.image if publication is not None else None

    @property
    def source_path(self) -> Optional[str]:
        return self._source_path

    @property
    def reprojector(self) -> Optional[GeoReprojector]:
        return self._reprojector

    @property
    def display_crs(self) -> str:
        return self._display_crs

    @property
    def viewport(self) -> Optional[ViewportProjector]:
        return self._viewport_ref() if self._viewport_ref is not None else None

    # ------------------------------------------------------------------
    # Status signal
    # ------------------------------------------------------------------

    @property
    def status_message(self) -> str:
        return self._status_message

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        if listener in self._status_listeners:
            self._status_listeners.remove(listener)

    def _set_status_message(self, message: str) -> None:
        self._status_message = message
        for listener in list(self._status_listeners):
            listener(message)

    # ------------------------------------------------------------------
    # Source lifecycle
    # ------------------------------------------------------------------

    def set_source(self, path: Optional[str]) -> None:
        """
        Load a new raster. Re-supplying the current path does nothing.

        Failures never raise: the engine moves to ERROR, logs the error and
        updates the status message. None or "" returns to EMPTY.
        """
        path = path or None
        if path == self._source_path:
            return
        self._source_path = path
        self._load()

    def reload(self) -> None:
        """Reopen the current path, e.g. after the file was fixed on disk."""
        self._load()

    def _load(self) -> None:
        self._unload()

        if self._source_path is None:
            self._set_status_message("No source")
            return

        name = Path(self._source_path).name
        self._state.status = OverlayStatus.LOADING
        self._set_status_message(f"Loading {name}...")

        try:
            source = RasterSource.open(self._source_path, require_geotransform=True)
        except (OpenFailed, NoGeoTransform) as e:
            self._fail(e)
            return

        self._source = source
        self._geotransform = source.geotransform()
        self._reprojector = GeoReprojector.build(source.crs(), self._display_crs)
        self._state.footprint = self._initial_footprint()
        self._state.dirty = True
        self._state.status = OverlayStatus.READY
        self._set_status_message(f"GeoTIFF {name} loaded")
        logger.info(
            f"Footprint of {name}: x=[{self._state.footprint.min_x:.6f}, {self._state.footprint.max_x:.6f}] "
            f"y=[{self._state.footprint.min_y:.6f}, {self._state.footprint.max_y:.6f}]"
            f"{'' if self._reprojector else ' (unprojected)'}"
        )
        self._update()

    def _initial_footprint(self) -> Footprint:
        try:
            return compute_footprint(self._geotransform, self._source.width, self._source.height, self._reprojector)
        except TransformFailed as e:
            logger.warning(f"{e}; placing the overlay with unprojected coordinates")
            return compute_footprint(self._geotransform, self._source.width, self._source.height, None)

    def _unload(self) -> None:
        """Drop everything belonging to the previous source."""
        self._scheduler.cancel()
        self._adapter.clear()
        if self._source is not None:
            self._source.close()
        self._source = None
        self._geotransform = None
        self._reprojector = None
        self._state = OverlayState()

    def _fail(self, error: OverlayError) -> None:
        logger.error(str(error))
        self._scheduler.cancel()
        self._adapter.clear()
        if self._source is not None:
            self._source.close()
            self._source = None
        self._state.status = OverlayStatus.ERROR
        self._state.error = error
        self._state.dirty = False
        self._set_status_message(str(error))

    # ------------------------------------------------------------------
    # Reprojection
    # ------------------------------------------------------------------

    def refresh_footprint(self) -> bool:
        """
        Recompute the footprint with the current reprojector.

        Returns:
            False if not READY or if reprojection failed, in which case the
            previous footprint and screen rectangle are kept unchanged.
        """
        return self._replace_footprint(self._reprojector)

    def set_display_crs(self, crs: str) -> bool:
        """Switch the CRS coordinates are reprojected into before projection to screen."""
        self._display_crs = crs
        if self._state.status is not OverlayStatus.READY:
            return False
        return self._replace_footprint(GeoReprojector.build(self._source.crs(), crs))

    def _replace_footprint(self, reprojector: Optional[GeoReprojector]) -> bool:
        if self._state.status is not OverlayStatus.READY:
            return False
        try:
            footprint = compute_footprint(
                self._geotransform, self._source.width, self._source.height, reprojector
            )
        except TransformFailed as e:
            logger.warning(f"{e}; keeping the previous footprint")
            return False

        self._reprojector = reprojector
        if footprint != self._state.footprint:
            self._state.footprint = footprint
            self._state.dirty = True
        self._update()
        return True

    # ------------------------------------------------------------------
    # Viewport association
    # ------------------------------------------------------------------

    def attach_viewport(self, viewport: ViewportProjector) -> None:
        """Observe viewport without owning it."""
        if self.viewport is viewport:
            return
        self.detach_viewport()
        self._viewport_ref = weakref.ref(viewport)
        self._subscription = viewport.subscribe(self.on_viewport_changed)
        if self._state.status is OverlayStatus.READY:
            self._state.dirty = True
            self._update()

    def detach_viewport(self) -> None:
        """Unsubscribe from the viewport and drop the published image."""
        if self._subscription is not None:
            self._subscription.cancel()
        self._subscription = None
        self._viewport_ref = None
        self._scheduler.cancel()
        self._adapter.clear()
        self._state.screen_rect = None
        self._state.last_zoom = None
        if self._state.status is OverlayStatus.READY:
            self._state.dirty = True

    def on_viewport_changed(self, change: ViewportChange = ViewportChange.REGION) -> None:
        """Handle a viewport notification (pan, resize or zoom)."""
        if self._state.status is not OverlayStatus.READY:
            return
        viewport = self.viewport
        if viewport is None:
            return

        if ViewportChange.ZOOM in change or (
            self._state.last_zoom is not None and viewport.zoom_level() != self._state.last_zoom
        ):
            self._state.dirty = True
        self._update()

    # ------------------------------------------------------------------
    # Update / recomposition
    # ------------------------------------------------------------------

    def _update(self) -> None:
        viewport = self.viewport
        if viewport is None or self._state.footprint is None:
            return
        if self._state.status is not OverlayStatus.READY:
            return

        rect = screen_rect_for_footprint(self._state.footprint, viewport)
        self._state.screen_rect = rect
        self._state.last_zoom = viewport.zoom_level()

        width, height = viewport.size()
        if not rect.intersects_viewport(width, height):
            logger.debug(f"Overlay rectangle {rect} is outside the {width}x{height} viewport; skipping")
            self._hide_offscreen(rect)
            return

        if self._state.dirty:
            self._start_recomposition(rect)
        else:
            self._adapter.reposition(rect)

    def _hide_offscreen(self, rect: ScreenRect) -> None:
        """Keep the published texture out of view while the rectangle is culled.

        A texture at the current scale follows the rectangle offscreen, so
        panning back needs no recomposition. A stale-scale texture is dropped;
        dirty is already set and the next onscreen update recomposes.
        """
        if self._state.dirty:
            # A pending background job was sized for the previous scale
            self._scheduler.cancel()
        publication = self._adapter.publication
        if publication is None:
            return
        if self._state.dirty or not publication.rect.same_size(rect):
            self._adapter.clear()
        else:
            self._adapter.reposition(rect)

    def _start_recomposition(self, rect: ScreenRect) -> None:
        self._state.dirty = False
        if isinstance(self._scheduler, InlineScheduler):
            job = partial(recompose, self._source, rect, self._config.resampling)
        else:
            job = partial(recompose_file, self._source.path, rect, self._config.resampling)
        self._scheduler.submit(job, self._on_recomposed)

    def _on_recomposed(
        self,
        generation: int,
        image: Optional[CompositedImage],
        error: Optional[BaseException],
    ) -> None:
        if error is not None:
            if isinstance(error, OverlayError):
                self._fail(error)
                return
            raise error
        if self._state.status is not OverlayStatus.READY or image is None:
            return

        # Finished off-thread while the map panned: same scale, newer position
        current = self._state.screen_rect
        if current is not None and current != image.rect and current.same_size(image.rect):
            image = replace(image, rect=current)

        first = self._adapter.publication is None
        self._adapter.publish(image)
        if first:
            logger.info(f"Overlay published at {image.rect} ({image.size[0]}x{image.size[1]})")

    def poll(self) -> int:
        """Deliver finished background recompositions; returns how many were published."""
        return self._scheduler.poll()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Detach, stop background work and release the source and texture.

        No redraw is requested: the host is tearing the overlay down.
        """
        self._adapter.clear(redraw=False)
        self.detach_viewport()
        self._unload()
        self._scheduler.shutdown()
        self._source_path = None
        self._set_status_message("No source")

    def __enter__(self) -> OverlayEngine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
