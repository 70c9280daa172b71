"""
GeoTIFF Overlay Package.

Overlays a georeferenced raster (GeoTIFF) on a pannable/zoomable map
viewport and keeps its screen position, size and pixel content aligned as
the viewport changes.

Pipeline:
    RasterSource -> GeoReprojector -> Footprint -> ViewportProjector -> ScreenRect
    RasterSource.decode() -> resample to ScreenRect size -> RenderSurface

Example Usage:
    >>> from geotiff_overlay import OverlayEngine, InMemorySurface, WebMercatorViewport
    >>>
    >>> viewport = WebMercatorViewport(center_lat=39.64, center_lon=-0.23, zoom=17,
    ...                                width=1280, height=720)
    >>> engine = OverlayEngine(InMemorySurface())
    >>> engine.attach_viewport(viewport)
    >>> engine.set_source("ortho.tif")
    >>> viewport.pan_by(100, 0)      # cheap: texture moves, no recomposition
    >>> viewport.set_zoom(18)        # expensive: image is recomposed at the new scale

Available Classes:
    Engine:
        - OverlayEngine, OverlayStatus, OverlayState
    Raster access and geometry:
        - RasterSource, PixelFormat, DecodedImage
        - GeoReprojector
        - Footprint, ScreenRect
    Host interfaces:
        - ViewportProjector, ViewportChange, WebMercatorViewport
        - RenderSurface, SurfaceAdapter, InMemorySurface, ImageFileSurface
    Configuration:
        - OverlayConfig, get_default_config
"""

from geotiff_overlay.drivers import initialize_drivers
from geotiff_overlay.errors import (
    BandReadFailed,
    NoGeoTransform,
    OpenFailed,
    OverlayError,
    RecompositionFailed,
    TransformBuildFailed,
    TransformFailed,
)
from geotiff_overlay.footprint import Footprint, ScreenRect, compute_footprint
from geotiff_overlay.overlay_config import OverlayConfig, get_default_config
from geotiff_overlay.overlay_engine import OverlayEngine, OverlayState, OverlayStatus
from geotiff_overlay.raster_source import DecodedImage, PixelFormat, RasterSource
from geotiff_overlay.recomposition import (
    BackgroundScheduler,
    CompositedImage,
    InlineScheduler,
    ResamplingMethod,
)
from geotiff_overlay.render_surface import (
    ImageFileSurface,
    InMemorySurface,
    Publication,
    RenderSurface,
    SurfaceAdapter,
    TextureHandle,
)
from geotiff_overlay.reprojector import GeoReprojector
from geotiff_overlay.viewport import (
    GeoRectangle,
    ViewportChange,
    ViewportProjector,
    WebMercatorViewport,
)

__all__ = [
    # Engine
    'OverlayEngine',
    'OverlayState',
    'OverlayStatus',

    # Raster access and geometry
    'RasterSource',
    'PixelFormat',
    'DecodedImage',
    'GeoReprojector',
    'Footprint',
    'ScreenRect',
    'compute_footprint',
    'initialize_drivers',

    # Recomposition
    'CompositedImage',
    'ResamplingMethod',
    'InlineScheduler',
    'BackgroundScheduler',

    # Host interfaces
    'ViewportProjector',
    'ViewportChange',
    'GeoRectangle',
    'WebMercatorViewport',
    'RenderSurface',
    'SurfaceAdapter',
    'InMemorySurface',
    'ImageFileSurface',
    'Publication',
    'TextureHandle',

    # Configuration
    'OverlayConfig',
    'get_default_config',

    # Errors
    'OverlayError',
    'OpenFailed',
    'NoGeoTransform',
    'BandReadFailed',
    'RecompositionFailed',
    'TransformBuildFailed',
    'TransformFailed',
]

# Package metadata
__version__ = '0.1.0'
__description__ = 'Georeferenced raster overlay engine for map viewports'
