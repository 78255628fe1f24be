"""
core/mastering/corrector.py — Iterative per-channel correction toward a profile.

Each channel goes through three passes, each gentler than the last
(strength scales with 1 / iteration):

    1. level    pass 1 only: gain min(target / current, 2.0)
    2. EQ       9-band peaking EQ toward the profile's frequency response
    3. weight   perceptual spectral weighting (optional, overlap-add)
    4. dynamics envelope compressor above -12 dB
    5. converge 30% of the remaining RMS error, then tanh soft saturation

`finalize_channel()` then sets the exact target RMS and applies the optional
limiter and normalizer. Stereo width is a cross-channel step and lives in
engine.py, after the channels are joined.

Design:
    - Functions take and return arrays; the caller's buffer is never touched.
    - Zero-RMS signals skip every level ratio (gain 1.0) instead of dividing
      by zero.
"""

from __future__ import annotations

import logging

import numpy as np

from core.audio.spectral import overlap_add
from core.mastering import filters
from core.mastering.profile import rms
from core.mastering.types import EQ_BAND_FREQS, ProcessingSettings, ReferenceProfile

logger = logging.getLogger(__name__)

_EPS = 1e-10

PASSES = 3
MAX_INITIAL_GAIN = 2.0
CONVERGENCE = 0.3
_WEIGHT_FRAME = 2048
_WEIGHT_HOP = 1024


def target_rms(profile: ReferenceProfile, settings: ProcessingSettings) -> float:
    """Profile RMS shifted by the output level: rms·10^(output_level_db / 20)."""
    return profile.rms * 10.0 ** (settings.output_level_db / 20.0)


def _ratio(target: float, current: float) -> float:
    return target / current if current > _EPS else 1.0


def apply_perceptual_weighting(samples: np.ndarray, sr: int, iteration: int) -> np.ndarray:
    """Scale each bin by 1 + (w(f) - 1)·(0.1 / iteration) via overlap-add."""
    freqs = np.fft.rfftfreq(_WEIGHT_FRAME, d=1.0 / sr)
    enhancement = 1.0 + (filters.perceptual_weight(freqs) - 1.0) * (0.1 / iteration)
    return overlap_add(samples, _WEIGHT_FRAME, _WEIGHT_HOP, lambda spectrum: spectrum * enhancement)


def pass_compression_ratio(settings: ProcessingSettings, iteration: int) -> float:
    return 1.0 + (settings.compression_ratio - 1.0) * (0.3 / iteration)


def run_pass(
    samples: np.ndarray,
    sr: int,
    profile: ReferenceProfile,
    settings: ProcessingSettings,
    iteration: int,
) -> np.ndarray:
    """One corrector pass (1-based `iteration`)."""
    target = target_rms(profile, settings)
    out = samples

    if iteration == 1:
        out = out * min(_ratio(target, rms(out)), MAX_INITIAL_GAIN)

    if settings.eq_intensity > 0.0:
        targets = tuple(profile.response_at(freq) for freq in EQ_BAND_FREQS)
        out = filters.apply_eq(out, sr, targets, settings.eq_intensity, iteration)

    if settings.psychoacoustic_processing:
        out = apply_perceptual_weighting(out, sr, iteration)

    out = filters.compress(out, sr, pass_compression_ratio(settings, iteration))

    current = rms(out)
    gentle = 1.0 + (_ratio(target, current) - 1.0) * CONVERGENCE
    out = filters.soft_clip(out * gentle)

    logger.debug("Pass %d/%d: rms %.4f → %.4f (target %.4f)", iteration, PASSES, current, rms(out), target)
    return out


def correct_channel(
    samples: np.ndarray,
    sr: int,
    profile: ReferenceProfile,
    settings: ProcessingSettings,
) -> np.ndarray:
    """Run all passes on one channel and return a new array."""
    out = np.array(samples, dtype=np.float64, copy=True)
    for iteration in range(1, PASSES + 1):
        out = run_pass(out, sr, profile, settings, iteration)
    return out


def finalize_channel(samples: np.ndarray, profile: ReferenceProfile, settings: ProcessingSettings) -> np.ndarray:
    """Exact RMS match, then optional brickwall limit and peak normalization."""
    out = samples * _ratio(target_rms(profile, settings), rms(samples))
    if settings.enable_limiting:
        out = filters.brickwall_limit(out)
    if settings.auto_normalize:
        out = filters.normalize_peak(out)
    return out
