"""
Process-wide raster driver initialization.

GDAL drivers must be registered once per process before any dataset is
opened. Instead of registering from every constructor, initialize_drivers()
enters a single long-lived rasterio environment the first time it is called
and is a no-op afterwards.
"""

import logging
import threading
from typing import Dict, Optional

import rasterio

logger = logging.getLogger(__name__)

# Keep GDAL from writing .aux.xml side files next to the opened rasters
DEFAULT_GDAL_OPTIONS: Dict[str, str] = {"GDAL_PAM_ENABLED": "NO"}

_lock = threading.Lock()
_env: Optional[rasterio.Env] = None
_options: Dict[str, str] = {}


def initialize_drivers(options: Optional[Dict[str, str]] = None) -> bool:
    """
    Register raster drivers for this process.

    Args:
        options: GDAL configuration options for the process-wide environment.
            Only honored by the call that performs the initialization; a
            later call with different options logs a warning.

    Returns:
        True if this call initialized the drivers, False if they already were.
    """
    global _env, _options
    gdal_options = dict(DEFAULT_GDAL_OPTIONS)
    if options:
        gdal_options.update({str(k): str(v) for k, v in options.items()})

    with _lock:
        if _env is not None:
            if options is not None and gdal_options != _options:
                logger.warning(
                    f"Raster drivers already initialized with {_options}; ignoring GDAL options {gdal_options}"
                )
            return False

        env = rasterio.Env(**gdal_options)
        env.__enter__()
        _env = env
        _options = gdal_options
        logger.info(f"Raster drivers registered (GDAL {rasterio.__gdal_version__})")
        return True


def drivers_initialized() -> bool:
    """Return True once initialize_drivers() has run."""
    return _env is not None


def driver_options() -> Dict[str, str]:
    """GDAL options of the active environment; empty before initialization."""
    return dict(_options)


def shutdown_drivers() -> None:
    """Leave the process-wide environment; the next open re-initializes."""
    global _env, _options
    with _lock:
        if _env is None:
            return
        _env.__exit__(None, None, None)
        _env = None
        _options = {}
        logger.debug("Raster driver environment closed")
