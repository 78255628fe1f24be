"""
core/mastering — Reference-matching mastering engine.

Masters a source SampleBuffer toward a reference buffer, or toward an
"intelligent" target synthesized from the source when no reference is given.

All functions are pure: buffers and settings in → new buffer out. The
source and reference buffers are never modified.

Architecture note:
    scipy.signal provides the biquad filtering (lfilter); everything else is
    numpy. Presets are YAML files bundled in core/mastering/presets/.

Public API:
    Entry point: master
    Types:       ReferenceProfile, ProcessingSettings, DEFAULT_SETTINGS
    Profiling:   measure_profile, intelligent_target
    Presets:     load_preset, available_presets
"""

from core.mastering._preset_loader import available_presets, load_preset
from core.mastering.engine import master
from core.mastering.profile import intelligent_target, measure_profile
from core.mastering.types import (
    DEFAULT_SETTINGS,
    EQ_BAND_FREQS,
    PSYCHOACOUSTIC_FREQS,
    ProcessingSettings,
    ReferenceProfile,
)

__all__ = [
    "master",
    "ReferenceProfile",
    "ProcessingSettings",
    "DEFAULT_SETTINGS",
    "EQ_BAND_FREQS",
    "PSYCHOACOUSTIC_FREQS",
    "measure_profile",
    "intelligent_target",
    "load_preset",
    "available_presets",
]
