"""Tests for OverlayConfig loading and validation."""

import pytest

from geotiff_overlay.overlay_config import (
    CONFIG_ENV_VAR,
    OverlayConfig,
    get_default_config,
    load_config,
)
from geotiff_overlay.recomposition import ResamplingMethod


class TestDefaults:
    def test_default_values(self):
        config = get_default_config()

        assert config.display_crs == "EPSG:4326"
        assert config.resampling is ResamplingMethod.BILINEAR
        assert config.background_recomposition is False
        assert config.gdal_options == {"GDAL_PAM_ENABLED": "NO"}
        assert config.log_level == "INFO"

    def test_defaults_do_not_share_gdal_options(self):
        first = get_default_config()
        first.gdal_options["CPL_DEBUG"] = "ON"

        assert "CPL_DEBUG" not in get_default_config().gdal_options


class TestFromDict:
    def test_all_fields(self):
        config = OverlayConfig.from_dict({
            'display_crs': 'EPSG:4258',
            'resampling': 'nearest',
            'background_recomposition': True,
            'gdal_options': {'GDAL_CACHEMAX': 256},
            'log_level': 'debug',
        })

        assert config.display_crs == 'EPSG:4258'
        assert config.resampling is ResamplingMethod.NEAREST
        assert config.background_recomposition is True
        assert config.gdal_options == {'GDAL_CACHEMAX': '256'}
        assert config.log_level == 'DEBUG'

    def test_round_trip_through_dict(self):
        config = OverlayConfig(resampling=ResamplingMethod.NEAREST, log_level='WARNING')

        assert OverlayConfig.from_dict(config.to_dict()) == config

    def test_invalid_resampling_lists_valid_options(self):
        with pytest.raises(ValueError, match="nearest, bilinear"):
            OverlayConfig.from_dict({'resampling': 'bicubic'})

    def test_invalid_log_level(self):
        with pytest.raises(ValueError, match="Invalid log_level"):
            OverlayConfig.from_dict({'log_level': 'chatty'})

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown overlay configuration key"):
            OverlayConfig.from_dict({'zoom': 3})

    @pytest.mark.parametrize(
        "key,value",
        [
            ('display_crs', ''),
            ('display_crs', 4326),
            ('background_recomposition', 'yes'),
            ('gdal_options', ['GDAL_PAM_ENABLED']),
        ],
        ids=["empty-crs", "numeric-crs", "string-bool", "list-options"],
    )
    def test_invalid_types(self, key, value):
        with pytest.raises(ValueError):
            OverlayConfig.from_dict({key: value})


class TestFromYaml:
    def test_load(self, tmp_path):
        path = tmp_path / "overlay.yaml"
        path.write_text(
            "overlay:\n"
            "  resampling: nearest\n"
            "  background_recomposition: true\n"
            "  gdal_options:\n"
            "    GDAL_PAM_ENABLED: 'NO'\n"
        )

        config = OverlayConfig.from_yaml(str(path))

        assert config.resampling is ResamplingMethod.NEAREST
        assert config.background_recomposition is True
        assert config.gdal_options == {'GDAL_PAM_ENABLED': 'NO'}

    def test_empty_section_gives_defaults(self, tmp_path):
        path = tmp_path / "overlay.yaml"
        path.write_text("overlay:\n")

        assert OverlayConfig.from_yaml(str(path)) == get_default_config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Configuration file not found"):
            OverlayConfig.from_yaml(str(tmp_path / "nope.yaml"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "overlay.yaml"
        path.write_text("")

        with pytest.raises(ValueError, match="empty"):
            OverlayConfig.from_yaml(str(path))

    def test_missing_section(self, tmp_path):
        path = tmp_path / "overlay.yaml"
        path.write_text("camera:\n  name: x\n")

        with pytest.raises(ValueError, match="missing 'overlay' section"):
            OverlayConfig.from_yaml(str(path))

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "overlay.yaml"
        path.write_text("overlay: [unclosed\n")

        with pytest.raises(ValueError, match="Failed to parse YAML"):
            OverlayConfig.from_yaml(str(path))


class TestLoadConfig:
    def test_defaults_without_path_or_env(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        assert load_config() == get_default_config()

    def test_env_var_names_config_file(self, tmp_path, monkeypatch):
        path = tmp_path / "overlay.yaml"
        path.write_text("overlay:\n  log_level: error\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert load_config().log_level == "ERROR"

    def test_explicit_path_wins_over_env(self, tmp_path, monkeypatch):
        explicit = tmp_path / "explicit.yaml"
        explicit.write_text("overlay:\n  resampling: nearest\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "missing.yaml"))

        assert load_config(str(explicit)).resampling is ResamplingMethod.NEAREST
