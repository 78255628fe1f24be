"""
Tests for core/mastering/_preset_loader.py — bundled YAML mastering presets.
"""

from __future__ import annotations

import pytest

from core.mastering import ProcessingSettings, available_presets, load_preset
from core.mastering._preset_loader import _CACHE, _parse


class TestLoadPreset:
    def test_available_presets(self) -> None:
        assert available_presets() == ["club", "default", "gentle", "streaming", "transparent", "wide"]

    def test_every_preset_loads(self) -> None:
        for name in available_presets():
            assert isinstance(load_preset(name), ProcessingSettings)

    def test_default_preset_matches_default_settings(self) -> None:
        assert load_preset("default") == ProcessingSettings()

    def test_streaming_preset(self) -> None:
        settings = load_preset("streaming")
        assert settings.output_level_db == -1.0
        assert settings.compression_ratio == 1.5
        assert settings.eq_intensity == 0.4

    def test_transparent_preset_disables_processing(self) -> None:
        settings = load_preset("transparent")
        assert settings.compression_ratio == 1.0
        assert settings.eq_intensity == 0.0
        assert not settings.psychoacoustic_processing
        assert not settings.enable_limiting

    def test_name_is_normalised(self) -> None:
        assert load_preset("  Club ") == load_preset("club")

    def test_result_is_cached(self) -> None:
        first = load_preset("wide")
        assert "wide" in _CACHE
        assert load_preset("wide") is first

    def test_unknown_preset_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown preset"):
            load_preset("lofi")


class TestParse:
    def test_non_mapping_raises(self) -> None:
        with pytest.raises(ValueError, match="must be a YAML mapping"):
            _parse("broken", ["not", "a", "mapping"])

    def test_settings_must_be_mapping(self) -> None:
        with pytest.raises(ValueError, match="'settings' must be a mapping"):
            _parse("broken", {"settings": 3})

    def test_unknown_setting_raises(self) -> None:
        with pytest.raises(ValueError, match="unknown settings"):
            _parse("broken", {"settings": {"loudness_war": True}})

    def test_invalid_value_raises(self) -> None:
        with pytest.raises(ValueError, match="eq_intensity"):
            _parse("broken", {"settings": {"eq_intensity": 3.0}})

    def test_missing_settings_uses_defaults(self) -> None:
        assert _parse("empty", {"description": "nothing"}) == ProcessingSettings()
