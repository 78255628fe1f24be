"""
core/audio/types.py — Frozen data types for audio analysis results.

All types are frozen dataclasses — immutable value objects that can be
safely passed between layers and cached.

Design principles:
    - No I/O, no state, no side effects.
    - Invariants are documented but NOT enforced at construction time —
      validation happens at creation sites (tempo.py, key.py, mood.py).
    - `KeyCandidate.name` is a computed property to avoid duplicate storage.
    - Sequences are tuples (immutable) so results stay hashable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

# Chromatic note names (sharps notation), index = pitch class
NOTE_NAMES: tuple[str, ...] = (
    "C",
    "C#",
    "D",
    "D#",
    "E",
    "F",
    "F#",
    "G",
    "G#",
    "A",
    "A#",
    "B",
)

# 12 pitch-class weights, index 0 = C. Sums to 1, or all zero for silence.
ChromaVector = tuple[float, ...]


class Mode(Enum):
    """Tonal mode of a key."""

    MAJOR = "Major"
    MINOR = "Minor"


@dataclass(frozen=True, eq=False)
class SpectralFrame:
    """Magnitude spectrum of one analysis window.

    Invariants:
        len(magnitudes) == window_size // 2
        all magnitudes >= 0
    """

    magnitudes: np.ndarray
    """Bin magnitudes for bins 0 .. window_size/2 - 1."""

    @property
    def num_bins(self) -> int:
        return int(self.magnitudes.shape[0])


@dataclass(frozen=True)
class TempoCandidate:
    """A tempo hypothesis from one estimator or one ensemble group.

    Invariants:
        bpm > 0
        confidence >= 0.0  (summed group confidences may exceed 1.0)
    """

    bpm: float
    """Tempo in beats per minute."""

    confidence: float
    """Estimator confidence, or summed weighted confidence for a group."""


@dataclass(frozen=True)
class KeyCandidate:
    """Musical key hypothesis from template matching.

    Invariants:
        0 <= tonic <= 11
        confidence >= 0.0
    """

    tonic: int
    """Pitch class of the tonic, 0 = C … 11 = B."""

    mode: Mode
    """Major or minor."""

    confidence: float
    """Blended template correlation, negatives clipped to 0."""

    @property
    def name(self) -> str:
        """Human-readable key label, e.g. 'C Major', 'F# Minor'."""
        return f"{NOTE_NAMES[self.tonic]} {self.mode.value}"


DEFAULT_KEY = KeyCandidate(tonic=0, mode=Mode.MAJOR, confidence=0.0)
"""C Major — reported when no tonal content was measured."""

ZERO_CHROMA: tuple[float, ...] = (0.0,) * 12
"""Chroma reported when no energy was measured."""


@dataclass(frozen=True)
class AnalysisResult:
    """Complete analysis result for one buffer.

    Created fresh per ``analyze()`` call; immutable once returned.

    Invariants:
        bpm > 0  (120.0 when nothing could be estimated)
        0.0 <= energy, danceability, valence <= 1.0
        len(chroma) == 12
        len(spectrum) == 256, values in [0, 255]
    """

    bpm: float
    """Primary tempo estimate."""

    bpm_confidence: float
    """Confidence of the primary tempo (genre bonus included), in [0, 1]."""

    bpm_candidates: tuple[TempoCandidate, ...]
    """Top ranked tempo groups, best first."""

    key: KeyCandidate
    """Best matching key."""

    key_candidates: tuple[KeyCandidate, ...]
    """Top ranked keys, best first."""

    chroma: ChromaVector
    """Combined 12-bin pitch class distribution (sums to 1, or all zero)."""

    energy: float
    """Loudness relative to the buffer's own dynamic range, 0–1."""

    danceability: float
    """Beat regularity blended with tempo suitability, 0–1."""

    valence: float
    """Major vs minor tendency, 0 (minor) – 1 (major)."""

    duration_sec: float
    """Buffer length in seconds."""

    sample_rate: int
    """Sample rate in Hz."""

    spectrum: tuple[float, ...] = field(default_factory=tuple)
    """256-bin visualization spectrum scaled to 0–255."""

    confidence: float = 0.0
    """Overall confidence: 0.6 × bpm_confidence + 0.4 × key_confidence."""

    tempo_stability: float = 0.5
    """How constant the tempo is across 10 s windows, 0–1."""

    rhythm_complexity: float = 0.2
    """Onset density and irregularity, 0–1."""

    harmonic_complexity: float = 0.5
    """Spectral centroid/rolloff/flatness blend, 0–1."""

    analysis_method: str = "ensemble"
    """'ensemble', 'novelty' (single-path fallback) or 'default' (silent input)."""

    @property
    def key_confidence(self) -> float:
        return self.key.confidence

    @property
    def key_name(self) -> str:
        return self.key.name
