"""
core/mastering/filters.py — DSP building blocks for the mastering chain.

Implements:
    - RBJ cookbook peaking biquad and the 9-band EQ built from it
    - Perceptual weighting curve (A-weighting inspired)
    - Feed-forward compressor driven by an attack/release envelope follower
    - Soft saturation, brickwall limiter and peak normalizer
    - Mid/side stereo width

Design:
    - Pure: every function returns a new array and leaves its input untouched.
    - Filters run through scipy.signal.lfilter (direct form II transposed);
      coefficients follow the RBJ Audio EQ Cookbook.
    - The envelope follower is inherently sequential (its coefficient
      depends on the previous output), so it runs as a plain loop over a
      Python list; the gain curve derived from it is vectorised.
"""

from __future__ import annotations

import math

import numpy as np
from scipy import signal as scipy_signal

from core.mastering.types import EQ_BAND_FREQS, EQ_BANDS

_EPS = 1e-10

COMPRESSOR_THRESHOLD_DB = -12.0
ATTACK_SEC = 0.003
RELEASE_SEC = 0.1
LIMIT_CEILING = 0.95
EQ_GAIN_MIN = 0.5
EQ_GAIN_MAX = 2.0


# ---------------------------------------------------------------------------
# Equalisation
# ---------------------------------------------------------------------------


def design_peaking(
    sr: int, centre_hz: float, gain: float, q: float
) -> tuple[np.ndarray, np.ndarray]:
    """Design a peaking EQ biquad using the RBJ Audio EQ Cookbook.

    Args:
        sr:        Sample rate in Hz.
        centre_hz: Centre frequency in Hz (must be below Nyquist).
        gain:      Linear amplitude gain at the centre (1.0 = flat).
        q:         Quality factor.

    Returns:
        (b, a) normalised digital filter coefficients, a[0] == 1.
    """
    A = math.sqrt(gain)
    w0 = 2.0 * math.pi * centre_hz / sr
    cos_w0 = math.cos(w0)
    alpha = math.sin(w0) / (2.0 * q)

    b0 = 1.0 + alpha * A
    b1 = -2.0 * cos_w0
    b2 = 1.0 - alpha * A
    a0 = 1.0 + alpha / A
    a1 = -2.0 * cos_w0
    a2 = 1.0 - alpha / A

    return np.array([b0, b1, b2]) / a0, np.array([1.0, a1 / a0, a2 / a0])


def apply_peaking(samples: np.ndarray, sr: int, centre_hz: float, gain: float, q: float) -> np.ndarray:
    """Filter one channel through a peaking biquad.

    Bands at or above Nyquist are skipped (input returned unchanged as a copy).
    """
    if centre_hz >= sr / 2.0:
        return samples.copy()
    b, a = design_peaking(sr, centre_hz, gain, q)
    return scipy_signal.lfilter(b, a, samples)


def eq_band_gain(target: float, eq_intensity: float, iteration: int) -> float:
    """1 + (target - 1)·eq_intensity·(0.3 / iteration), clamped to [0.5, 2.0]."""
    gain = 1.0 + (target - 1.0) * eq_intensity * (0.3 / iteration)
    return float(min(EQ_GAIN_MAX, max(EQ_GAIN_MIN, gain)))


def apply_eq(
    samples: np.ndarray,
    sr: int,
    targets: tuple[float, ...],
    eq_intensity: float,
    iteration: int,
) -> np.ndarray:
    """Run the 9-band peaking EQ in series, low band first.

    Args:
        samples:      One channel.
        sr:           Sample rate in Hz.
        targets:      Target gain per band of EQ_BANDS (1.0 = leave alone).
        eq_intensity: Strength of the match, 0–1.
        iteration:    1-based corrector pass; later passes are gentler.
    """
    out = samples
    for (centre_hz, q), target in zip(EQ_BANDS, targets):
        out = apply_peaking(out, sr, centre_hz, eq_band_gain(target, eq_intensity, iteration), q)
    return out


# ---------------------------------------------------------------------------
# Perceptual weighting
# ---------------------------------------------------------------------------


def perceptual_weight_anchors() -> tuple[float, ...]:
    """Weight at each EQ band centre.

    Below 1 kHz: 0.5 + 0.5·f/1000. 1–4 kHz: 1.0. Above: 1 - 0.3·log10(f/4000).
    """
    weights = []
    for freq in EQ_BAND_FREQS:
        if freq < 1000.0:
            weights.append(0.5 + 0.5 * (freq / 1000.0))
        elif freq < 4000.0:
            weights.append(1.0)
        else:
            weights.append(1.0 - 0.3 * math.log10(freq / 4000.0))
    return tuple(weights)


_WEIGHT_ANCHORS = perceptual_weight_anchors()


def perceptual_weight(freqs: np.ndarray | float) -> np.ndarray:
    """Linear interpolation of the anchor weights, held constant past the ends."""
    return np.interp(freqs, EQ_BAND_FREQS, _WEIGHT_ANCHORS)


# ---------------------------------------------------------------------------
# Dynamics
# ---------------------------------------------------------------------------


def envelope(samples: np.ndarray, sr: int, attack_sec: float = ATTACK_SEC, release_sec: float = RELEASE_SEC) -> np.ndarray:
    """Peak envelope follower with separate attack and release coefficients.

    coeff = exp(-1 / (t·sr)); the attack coefficient applies while the
    rectified input is above the current envelope.
    """
    attack = math.exp(-1.0 / (attack_sec * sr))
    release = math.exp(-1.0 / (release_sec * sr))
    env = 0.0
    out = []
    for level in np.abs(samples).tolist():
        if level > env:
            env = attack * env + (1.0 - attack) * level
        else:
            env = release * env + (1.0 - release) * level
        out.append(env)
    return np.asarray(out, dtype=np.float64)


def compress(
    samples: np.ndarray,
    sr: int,
    ratio: float,
    threshold_db: float = COMPRESSOR_THRESHOLD_DB,
) -> np.ndarray:
    """Downward compression above `threshold_db` with the given ratio.

    Gain reduction (dB) = (envelope_db - threshold_db)·(1 - 1/ratio) where
    the envelope exceeds the threshold, 0 elsewhere.
    """
    if samples.size == 0:
        return samples.copy()
    env_db = 20.0 * np.log10(envelope(samples, sr) + _EPS)
    over = np.maximum(env_db - threshold_db, 0.0)
    reduction_db = over * (1.0 - 1.0 / ratio)
    return samples * np.power(10.0, -reduction_db / 20.0)


def soft_clip(samples: np.ndarray) -> np.ndarray:
    """tanh(0.9·x)·1.1 saturation; output magnitude stays below 1.1."""
    return np.tanh(samples * 0.9) * 1.1


def brickwall_limit(samples: np.ndarray, ceiling: float = LIMIT_CEILING) -> np.ndarray:
    return np.clip(samples, -ceiling, ceiling)


def normalize_peak(samples: np.ndarray, ceiling: float = LIMIT_CEILING) -> np.ndarray:
    """Scale down so the peak equals `ceiling`; quieter signals are untouched."""
    peak = float(np.max(np.abs(samples))) if samples.size else 0.0
    if peak > ceiling:
        return samples * (ceiling / peak)
    return samples.copy()


# ---------------------------------------------------------------------------
# Stereo
# ---------------------------------------------------------------------------


def apply_stereo_width(left: np.ndarray, right: np.ndarray, width: float) -> tuple[np.ndarray, np.ndarray]:
    """Scale the side signal by `width`.

    mid = (L + R)/2, side = (L - R)/2·width → (mid + side, mid - side).
    width 1.0 is the identity, 0.0 yields two identical (mono) channels.
    """
    mid = (left + right) * 0.5
    side = (left - right) * 0.5 * width
    return mid + side, mid - side
