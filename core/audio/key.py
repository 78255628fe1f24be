"""
core/audio/key.py — Key detection from a three-variant chroma ensemble.

Three chroma vectors are folded from Hann-windowed spectra (hop = window / 4,
bins strictly between 80 Hz and 4 kHz):

    stft  window 4096, raw magnitudes
    cens  window 4096, each frame median-smoothed across 5 bins first
    cqt   window 8192, magnitudes scaled by sqrt(f / 50)

"cens" and "cqt" are lightweight approximations of the CENS and constant-Q
chromagrams, not the textbook transforms; the blend weights were tuned
against these approximations.

Each vector is L1-normalized, then blended 0.40 cqt / 0.35 cens / 0.25 stft.
The blend is matched against all 24 keys with two template families:

    Krumhansl-Schmuckler (1990) — probe-tone salience profiles
    Temperley (1999)            — corpus-derived profiles

score(t, mode) = 0.6·r(KS rotated to t) + 0.4·r(Temperley rotated to t),
negative scores clipped to 0. Rotation uses np.roll(profile, t) so the tonic
weight lands on pitch class t.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum

import numpy as np
from scipy.ndimage import median_filter

from core.audio.spectral import bin_frequencies, frame_magnitudes
from core.audio.types import KeyCandidate, Mode
from core.config import KeyConfig

# ---------------------------------------------------------------------------
# Key profiles, starting from C
# ---------------------------------------------------------------------------

KS_MAJOR: tuple[float, ...] = (6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88)
KS_MINOR: tuple[float, ...] = (6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17)
TEMPERLEY_MAJOR: tuple[float, ...] = (5.0, 2.0, 3.5, 2.0, 4.5, 4.0, 2.0, 4.5, 2.0, 3.5, 1.5, 4.0)
TEMPERLEY_MINOR: tuple[float, ...] = (5.0, 2.0, 3.5, 4.5, 2.0, 4.0, 2.0, 4.5, 3.5, 2.0, 1.5, 4.0)

_MIN_FREQ = 80.0
_MAX_FREQ = 4000.0
_CENS_TAPS = 5
_CQT_REFERENCE_HZ = 50.0
_RELATIVE_VARIANCE_FLOOR = 1e-12  # fraction of nΣx² that counts as zero variance


class ChromaMethod(Enum):
    """Chroma variants of the ensemble."""

    CQT = "cqt"
    CENS = "cens"
    STFT = "stft"


_WINDOW_SIZES: Mapping[ChromaMethod, int] = {
    ChromaMethod.CQT: 8192,
    ChromaMethod.CENS: 4096,
    ChromaMethod.STFT: 4096,
}


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------


def pearson(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Pearson correlation via the n-sum formula.

    r = (nΣab - ΣaΣb) / sqrt((nΣa² - (Σa)²)(nΣb² - (Σb)²))

    Returns 0.0 when either input has zero variance or lengths differ.
    """
    x = np.asarray(a, dtype=np.float64)
    y = np.asarray(b, dtype=np.float64)
    if x.shape != y.shape or x.size == 0:
        return 0.0
    n = float(x.size)
    sum_x, sum_y = float(np.sum(x)), float(np.sum(y))
    sq_x, sq_y = n * float(np.dot(x, x)), n * float(np.dot(y, y))
    var_x, var_y = sq_x - sum_x**2, sq_y - sum_y**2
    # Relative floor: a constant vector leaves only cancellation noise behind
    if var_x <= _RELATIVE_VARIANCE_FLOOR * sq_x or var_y <= _RELATIVE_VARIANCE_FLOOR * sq_y:
        return 0.0
    numerator = n * float(np.dot(x, y)) - sum_x * sum_y
    return float(numerator / np.sqrt(var_x * var_y))


# ---------------------------------------------------------------------------
# Chroma
# ---------------------------------------------------------------------------


def frequency_to_pitch_class(freqs: np.ndarray) -> np.ndarray:
    """MIDI pitch round(69 + 12·log2(f / 440)) folded into 0..11."""
    midi = 69.0 + 12.0 * np.log2(freqs / 440.0)
    return np.floor(midi + 0.5).astype(np.int64) % 12


def compute_chroma(samples: np.ndarray, sample_rate: int, method: ChromaMethod = ChromaMethod.STFT) -> np.ndarray:
    """Fold every frame's spectrum into a 12-bin pitch class distribution.

    Args:
        samples:     Mono signal.
        sample_rate: Sample rate in Hz.
        method:      Chroma variant.

    Returns:
        np.ndarray of shape (12,), L1-normalized, or all zeros when no frame
        fits or no energy falls inside the 80 Hz – 4 kHz band.
    """
    window = _WINDOW_SIZES[method]
    freqs = bin_frequencies(window, sample_rate)
    in_band = (freqs > _MIN_FREQ) & (freqs < _MAX_FREQ)
    pitch_classes = frequency_to_pitch_class(freqs[in_band])

    scale = None
    if method is ChromaMethod.CQT:
        scale = np.sqrt(np.where(freqs > 0.0, freqs / _CQT_REFERENCE_HZ, 1.0))

    bin_totals = np.zeros(window // 2, dtype=np.float64)
    for block in frame_magnitudes(samples, window, window // 4):
        if method is ChromaMethod.CENS:
            block = median_filter(block, size=(1, _CENS_TAPS), mode="nearest")
        elif scale is not None:
            block = block * scale
        bin_totals += np.sum(block, axis=0)

    chroma = np.bincount(pitch_classes, weights=bin_totals[in_band], minlength=12)
    total = float(np.sum(chroma))
    if total > 0.0:
        chroma = chroma / total
    return chroma


def combine_chroma(
    chroma_by_method: Mapping[ChromaMethod, np.ndarray], config: KeyConfig | None = None
) -> np.ndarray:
    """Weighted blend of the chroma variants divided by the total weight."""
    config = config or KeyConfig()
    weights = {
        ChromaMethod.CQT: config.cqt_weight,
        ChromaMethod.CENS: config.cens_weight,
        ChromaMethod.STFT: config.stft_weight,
    }
    combined = np.zeros(12, dtype=np.float64)
    total_weight = 0.0
    for method in ChromaMethod:
        chroma = chroma_by_method.get(method)
        if chroma is None:
            continue
        combined += np.asarray(chroma, dtype=np.float64) * weights[method]
        total_weight += weights[method]
    if total_weight > 0.0:
        combined /= total_weight
    return combined


# ---------------------------------------------------------------------------
# Template matching
# ---------------------------------------------------------------------------


def match_to_all_keys(chroma: Sequence[float] | np.ndarray, config: KeyConfig | None = None) -> list[KeyCandidate]:
    """Score all 24 keys against a chroma vector.

    Returns:
        24 KeyCandidates sorted by confidence, highest first. The sort is
        stable over the generation order C major, C minor, C# major, …, so
        ties (e.g. a silent all-zero chroma) resolve to C Major.
    """
    config = config or KeyConfig()
    ks_major, ks_minor = np.array(KS_MAJOR), np.array(KS_MINOR)
    t_major, t_minor = np.array(TEMPERLEY_MAJOR), np.array(TEMPERLEY_MINOR)

    candidates: list[KeyCandidate] = []
    for tonic in range(12):
        major = config.krumhansl_weight * pearson(chroma, np.roll(ks_major, tonic)) + (
            config.temperley_weight * pearson(chroma, np.roll(t_major, tonic))
        )
        minor = config.krumhansl_weight * pearson(chroma, np.roll(ks_minor, tonic)) + (
            config.temperley_weight * pearson(chroma, np.roll(t_minor, tonic))
        )
        candidates.append(KeyCandidate(tonic=tonic, mode=Mode.MAJOR, confidence=max(0.0, major)))
        candidates.append(KeyCandidate(tonic=tonic, mode=Mode.MINOR, confidence=max(0.0, minor)))

    return sorted(candidates, key=lambda c: c.confidence, reverse=True)


def major_minor_tendency(chroma: Sequence[float] | np.ndarray) -> tuple[float, float]:
    """Best Krumhansl-Schmuckler correlation over all tonics, per mode."""
    ks_major, ks_minor = np.array(KS_MAJOR), np.array(KS_MINOR)
    best_major = max(pearson(chroma, np.roll(ks_major, t)) for t in range(12))
    best_minor = max(pearson(chroma, np.roll(ks_minor, t)) for t in range(12))
    return best_major, best_minor
