"""
core/mastering/_preset_loader.py — Load named ProcessingSettings presets.

Uses importlib.resources (stdlib) to read YAML files bundled in the
core/mastering/presets/ package. Parsed presets are cached in a module-level
dict so each YAML file is read only once per process.
"""

from __future__ import annotations

import importlib.resources
from dataclasses import fields
from typing import Any

import yaml  # PyYAML

from core.mastering.types import ProcessingSettings

# ---------------------------------------------------------------------------
# Preset name → YAML filename mapping
# ---------------------------------------------------------------------------

_PRESET_FILE_MAP: dict[str, str] = {
    "default": "default.yaml",
    "streaming": "streaming.yaml",
    "club": "club.yaml",
    "gentle": "gentle.yaml",
    "wide": "wide.yaml",
    "transparent": "transparent.yaml",
}

_SETTING_NAMES = frozenset(f.name for f in fields(ProcessingSettings))

_CACHE: dict[str, ProcessingSettings] = {}


def _parse(name: str, data: Any) -> ProcessingSettings:
    if not isinstance(data, dict):
        raise ValueError(f"Preset {name!r} must be a YAML mapping")
    settings = data.get("settings", {})
    if not isinstance(settings, dict):
        raise ValueError(f"Preset {name!r}: 'settings' must be a mapping")
    unknown = sorted(set(settings) - _SETTING_NAMES)
    if unknown:
        raise ValueError(f"Preset {name!r} has unknown settings: {unknown}")
    return ProcessingSettings(**settings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_preset(name: str) -> ProcessingSettings:
    """Return the ProcessingSettings stored under a preset name.

    Names are case-insensitive and normalised (lower + strip).

    Raises:
        ValueError: If the preset is unknown or its values are invalid.
    """
    key = name.lower().strip()
    if key in _CACHE:
        return _CACHE[key]

    filename = _PRESET_FILE_MAP.get(key)
    if filename is None:
        raise ValueError(f"Unknown preset {name!r}. Available: {available_presets()}")

    pkg = importlib.resources.files("core.mastering.presets")
    text = (pkg / filename).read_text(encoding="utf-8")
    settings = _parse(key, yaml.safe_load(text))
    _CACHE[key] = settings
    return settings


def available_presets() -> list[str]:
    """Return sorted list of all preset names."""
    return sorted(_PRESET_FILE_MAP.keys())
