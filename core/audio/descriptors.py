"""
core/audio/descriptors.py — Extended track descriptors.

Secondary scores layered on top of the core analysis:

    tempo_stability      agreement of quick per-window tempo estimates
    rhythm_complexity    onset density and onset irregularity
    harmonic_complexity  spectral brightness, rolloff and noisiness
    overall_confidence   0.6 × tempo confidence + 0.4 × key confidence

All scores are in [0, 1]; each has a neutral fallback for buffers too short
to measure.
"""

from __future__ import annotations

import numpy as np

from core.audio.mood import energy_onsets, interval_cv
from core.audio.spectral import frame_magnitudes, spectral_centroid, spectral_flatness, spectral_rolloff
from core.audio.tempo import normalized_autocorrelation

_STABILITY_WINDOW_SEC = 10
_STABILITY_HOP_SEC = 5
_QUICK_TEMPO_SEC = 5
_QUICK_MIN_BPM = 60.0
_QUICK_MAX_BPM = 200.0
_QUICK_DEFAULT_BPM = 120.0

_ONSET_RATIO = 1.3
_MIN_ONSETS = 4
_DENSITY_SCALE = 10.0  # onsets per second mapped to 1.0

_HARMONIC_WINDOW = 4096
_HARMONIC_HOP = 2048
_CENTROID_SCALE = 8000.0


def quick_tempo(samples: np.ndarray, sample_rate: int) -> float:
    """Strongest raw autocorrelation lag in the 60–200 BPM range.

    Uses at most the first 5 s. Returns 120.0 when no lag has positive
    correlation.
    """
    head = samples[: sample_rate * _QUICK_TEMPO_SEC]
    min_lag = int(sample_rate * 60 // _QUICK_MAX_BPM)
    max_lag = int(sample_rate * 60 // _QUICK_MIN_BPM)
    ac = normalized_autocorrelation(head, min(max_lag, head.shape[0] // 4))
    if ac.size <= min_lag:
        return _QUICK_DEFAULT_BPM
    window = ac[min_lag:]
    best = int(np.argmax(window))
    if window[best] <= 0.0:
        return _QUICK_DEFAULT_BPM
    return 60.0 * sample_rate / (min_lag + best)


def tempo_stability(samples: np.ndarray, sample_rate: int) -> float:
    """1 - coefficient of variation of quick tempos over 10 s windows (5 s hop).

    Returns 0.5 when the buffer does not contain a full window.
    """
    window = sample_rate * _STABILITY_WINDOW_SEC
    hop = sample_rate * _STABILITY_HOP_SEC
    tempos = [
        quick_tempo(samples[start : start + window], sample_rate)
        for start in range(0, max(0, samples.shape[0] - window), hop)
    ]
    if not tempos:
        return 0.5
    values = np.asarray(tempos)
    cv = float(np.std(values)) / float(np.mean(values))
    return float(np.clip(1.0 - cv, 0.0, 1.0))


def rhythm_complexity(samples: np.ndarray, sample_rate: int) -> float:
    """0.6 × onset density (per 10/s) + 0.4 × interval irregularity.

    Onsets are frames above 1.3× the previous frame's energy; fewer than 4
    onsets → 0.2.
    """
    onsets = energy_onsets(samples, sample_rate, _ONSET_RATIO)
    if onsets.size < _MIN_ONSETS:
        return 0.2
    density = onsets.size / (samples.shape[0] / float(sample_rate))
    _, irregularity = interval_cv(onsets)
    return 0.6 * min(1.0, density / _DENSITY_SCALE) + 0.4 * min(1.0, irregularity)


def harmonic_complexity(samples: np.ndarray, sample_rate: int) -> float:
    """Mean per-frame 0.4·centroid/8k + 0.3·rolloff share + 0.3·flatness, capped at 1.

    Returns 0.5 when no 4096-sample frame fits.
    """
    total = 0.0
    count = 0
    for block in frame_magnitudes(samples, _HARMONIC_WINDOW, _HARMONIC_HOP):
        n_bins = block.shape[1]
        for mags in block:
            total += (
                0.4 * spectral_centroid(mags, sample_rate) / _CENTROID_SCALE
                + 0.3 * spectral_rolloff(mags, 0.85) / n_bins
                + 0.3 * spectral_flatness(mags)
            )
            count += 1
    if count == 0:
        return 0.5
    return min(1.0, total / count)


def overall_confidence(bpm_confidence: float, key_confidence: float) -> float:
    return 0.6 * bpm_confidence + 0.4 * key_confidence
