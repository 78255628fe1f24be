"""
core/audio/mood.py — Mood features: energy, danceability, valence.

All three scores are in [0, 1] and computed from the mono signal only.

    energy        mean 2048-sample window RMS placed within the buffer's own
                  RMS range (+0.1 lift). Relative, not absolute loudness:
                  a uniformly loud track and a uniformly quiet one both land
                  near the middle.
    danceability  beat regularity (1 - coefficient of variation of beat
                  intervals) blended 0.6 / 0.4 with a step-wise tempo
                  suitability around 100–140 BPM.
    valence       major vs minor tendency of the plain chroma against the
                  Krumhansl-Schmuckler templates.
"""

from __future__ import annotations

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from core.audio.key import ChromaMethod, compute_chroma, major_minor_tendency

_ENERGY_WINDOW = 2048
_ENERGY_LIFT = 0.1
_BEAT_WINDOW = 1024
_BEAT_HOP = 512
_BEAT_RATIO = 1.5
_MIN_BEATS = 4
_LOW_DANCEABILITY = 0.2
_NEUTRAL = 0.5

# (low, high, suitability) checked in order; first containing band wins
_TEMPO_SUITABILITY: tuple[tuple[float, float, float], ...] = (
    (100.0, 140.0, 1.0),
    (80.0, 160.0, 0.7),
    (60.0, 180.0, 0.4),
)
_UNSUITABLE_TEMPO = 0.1


def _clamp01(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def frame_energies(samples: np.ndarray, size: int, hop: int) -> np.ndarray:
    """Sum of squares of each full frame starting at 0, hop, … < N - size."""
    n_frames = len(range(0, max(0, samples.shape[0] - size), hop))
    if n_frames == 0:
        return np.zeros(0)
    frames = sliding_window_view(samples, size)[::hop][:n_frames]
    return np.einsum("ij,ij->i", frames, frames)


def energy_onsets(samples: np.ndarray, sample_rate: int, ratio: float) -> np.ndarray:
    """Times (s) of frames whose energy exceeds `ratio` × the previous frame's.

    Window 1024, hop 512. The first frame is compared against zero energy.
    """
    energies = frame_energies(samples, _BEAT_WINDOW, _BEAT_HOP)
    if energies.size == 0:
        return np.zeros(0)
    previous = np.concatenate(([0.0], energies[:-1]))
    frames = np.nonzero(energies > previous * ratio)[0]
    return frames * _BEAT_HOP / float(sample_rate)


def interval_cv(times: np.ndarray) -> tuple[float, float]:
    """(mean, coefficient of variation) of the gaps between consecutive times."""
    intervals = np.diff(times)
    mean = float(np.mean(intervals))
    if mean <= 0.0:
        return mean, 0.0
    return mean, float(np.std(intervals)) / mean


# ---------------------------------------------------------------------------
# Features
# ---------------------------------------------------------------------------


def compute_energy(samples: np.ndarray) -> float:
    """Relative loudness over non-overlapping 2048-sample windows.

    Returns 0.5 when no full window fits or every window has the same RMS.
    """
    energies = frame_energies(samples, _ENERGY_WINDOW, _ENERGY_WINDOW)
    if energies.size == 0:
        return _NEUTRAL
    rms = np.sqrt(energies / _ENERGY_WINDOW)
    low, high = float(np.min(rms)), float(np.max(rms))
    spread = high - low
    if spread <= 0.0:
        return _NEUTRAL
    return _clamp01((float(np.mean(rms)) - low) / spread + _ENERGY_LIFT)


def tempo_suitability(bpm: float) -> float:
    """1.0 for 100–140 BPM, 0.7 for 80–160, 0.4 for 60–180, else 0.1."""
    for low, high, score in _TEMPO_SUITABILITY:
        if low <= bpm <= high:
            return score
    return _UNSUITABLE_TEMPO


def compute_danceability(samples: np.ndarray, sample_rate: int) -> float:
    """Beat regularity blended with tempo suitability.

    Beats are frames with more than 1.5× the previous frame's energy.
    Fewer than 4 beats → 0.2. The implied tempo is 60 / mean interval (s).
    """
    beats = energy_onsets(samples, sample_rate, _BEAT_RATIO)
    if beats.size < _MIN_BEATS:
        return _LOW_DANCEABILITY

    mean_interval, cv = interval_cv(beats)
    regularity = max(0.0, 1.0 - cv)
    suitability = tempo_suitability(60.0 / mean_interval) if mean_interval > 0.0 else _UNSUITABLE_TEMPO
    return _clamp01(0.6 * regularity + 0.4 * suitability)


def compute_valence(samples: np.ndarray, sample_rate: int) -> float:
    """clamp01((best major r - best minor r + 1) / 2) over the plain chroma."""
    chroma = compute_chroma(samples, sample_rate, ChromaMethod.STFT)
    best_major, best_minor = major_minor_tendency(chroma)
    return _clamp01((best_major - best_minor + 1.0) / 2.0)
