"""
core/audio — Pure audio analysis module.

Estimates tempo, musical key, chroma, mood scores and secondary descriptors
from a decoded SampleBuffer. All functions are pure numpy/scipy: no file I/O,
no global state. Caching, metrics and fallback policy live in engine/.

Public API:
    Entry points:  analyze, analyze_basic
    Types:         AnalysisResult, TempoCandidate, KeyCandidate, Mode,
                   SpectralFrame
    Building blocks:
        transform, visualization_spectrum        (spectral.py)
        estimate_tempo_novelty, TempoMethod      (tempo.py)
        compute_chroma, match_to_all_keys,
        pearson, ChromaMethod                    (key.py)
"""

from core.audio.analysis import analyze, analyze_basic
from core.audio.key import ChromaMethod, compute_chroma, match_to_all_keys, pearson
from core.audio.spectral import transform, visualization_spectrum
from core.audio.tempo import TempoMethod, estimate_tempo_novelty
from core.audio.types import (
    NOTE_NAMES,
    AnalysisResult,
    ChromaVector,
    KeyCandidate,
    Mode,
    SpectralFrame,
    TempoCandidate,
)

__all__ = [
    # Entry points
    "analyze",
    "analyze_basic",
    # Types
    "AnalysisResult",
    "ChromaVector",
    "TempoCandidate",
    "KeyCandidate",
    "Mode",
    "SpectralFrame",
    "NOTE_NAMES",
    # Building blocks
    "transform",
    "visualization_spectrum",
    "TempoMethod",
    "estimate_tempo_novelty",
    "ChromaMethod",
    "compute_chroma",
    "match_to_all_keys",
    "pearson",
]
