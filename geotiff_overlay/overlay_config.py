"""
Configuration for the GeoTIFF overlay.

Loaded from YAML (an ``overlay:`` section), from a dict, or from defaults.

Example YAML:
    overlay:
      display_crs: EPSG:4326
      resampling: bilinear
      background_recomposition: false
      log_level: INFO
      gdal_options:
        GDAL_PAM_ENABLED: "NO"
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from geotiff_overlay.drivers import DEFAULT_GDAL_OPTIONS
from geotiff_overlay.recomposition import ResamplingMethod
from geotiff_overlay.reprojector import DEFAULT_TARGET_CRS

logger = logging.getLogger(__name__)

# Environment variable naming a default configuration file
CONFIG_ENV_VAR = "GEOTIFF_OVERLAY_CONFIG"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class OverlayConfig:
    """Overlay engine configuration.

    Attributes:
        display_crs: CRS of the coordinates passed to the viewport's
            from_coordinate(); geographic WGS84 for slippy maps
        resampling: Interpolation used when scaling to screen size
        background_recomposition: Run recomposition on a worker thread
            instead of inside the viewport event handler
        gdal_options: GDAL configuration options applied at driver initialization
        log_level: Logging level name used by the CLI
    """
    display_crs: str = DEFAULT_TARGET_CRS
    resampling: ResamplingMethod = ResamplingMethod.BILINEAR
    background_recomposition: bool = False
    gdal_options: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_GDAL_OPTIONS))
    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, path: str) -> 'OverlayConfig':
        """Load configuration from YAML file.

        Raises:
            FileNotFoundError: If configuration file does not exist
            ValueError: If the file is empty, malformed, lacks an 'overlay'
                section, or contains invalid values
        """
        config_path = Path(path)

        if not config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {path}\n"
                f"Please create a configuration file or use get_default_config()"
            )

        try:
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse YAML configuration file: {e}") from e

        if not data:
            raise ValueError(f"Configuration file is empty: {path}")

        if 'overlay' not in data:
            raise ValueError(
                f"Configuration file missing 'overlay' section: {path}\n"
                f"Expected structure: overlay:\n  resampling: ...\n  ..."
            )

        return cls.from_dict(data['overlay'] or {})

    @staticmethod
    def _parse_resampling(value: str) -> ResamplingMethod:
        try:
            return ResamplingMethod(value)
        except ValueError:
            valid = [m.value for m in ResamplingMethod]
            raise ValueError(
                f"Invalid resampling '{value}'. Must be one of: {', '.join(valid)}"
            ) from None

    @staticmethod
    def _parse_log_level(value: str) -> str:
        level = str(value).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level '{value}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )
        return level

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'OverlayConfig':
        """Create configuration from a dictionary; unknown keys are rejected."""
        known = {'display_crs', 'resampling', 'background_recomposition', 'gdal_options', 'log_level'}
        unknown = set(config) - known
        if unknown:
            raise ValueError(
                f"Unknown overlay configuration key(s): {', '.join(sorted(unknown))}"
            )

        result = cls()
        if 'display_crs' in config:
            display_crs = config['display_crs']
            if not isinstance(display_crs, str) or not display_crs.strip():
                raise ValueError(f"display_crs must be a non-empty string, got {display_crs!r}")
            result.display_crs = display_crs
        if 'resampling' in config:
            result.resampling = cls._parse_resampling(config['resampling'])
        if 'background_recomposition' in config:
            value = config['background_recomposition']
            if not isinstance(value, bool):
                raise ValueError(f"background_recomposition must be a boolean, got {value!r}")
            result.background_recomposition = value
        if 'gdal_options' in config:
            options = config['gdal_options'] or {}
            if not isinstance(options, dict):
                raise ValueError(f"gdal_options must be a mapping, got {type(options).__name__}")
            result.gdal_options = {str(k): str(v) for k, v in options.items()}
        if 'log_level' in config:
            result.log_level = cls._parse_log_level(config['log_level'])
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            'display_crs': self.display_crs,
            'resampling': self.resampling.value,
            'background_recomposition': self.background_recomposition,
            'gdal_options': dict(self.gdal_options),
            'log_level': self.log_level,
        }


def get_default_config() -> OverlayConfig:
    """Return the default overlay configuration."""
    return OverlayConfig()


def load_config(path: Optional[str] = None) -> OverlayConfig:
    """Load config from path, else from $GEOTIFF_OVERLAY_CONFIG, else defaults."""
    path = path or os.getenv(CONFIG_ENV_VAR)
    if not path:
        return get_default_config()
    logger.info(f"Loading overlay configuration from {path}")
    return OverlayConfig.from_yaml(path)
