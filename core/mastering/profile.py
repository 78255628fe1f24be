"""
core/mastering/profile.py — Reference profiling and intelligent targets.

A ReferenceProfile is what the corrector steers toward. It is either measured
from a reference buffer or synthesized from the source itself when no
reference is supplied ("intelligent" mode):

    rms / peak / lufs_approx   first-channel level measurements
    dynamic_range_db           loudest 10% of 100 ms block RMS values, in dB
    stereo_width               1 - mean(L·R)
    frequency_response         relative magnitude at the 9 EQ band centres
    psychoacoustic_profile     level above the hearing threshold at 7 bands

Design:
    - Level measurements use the first channel only; stereo width is the only
      measurement that reads two channels.
    - Band magnitudes are taken from the loudest frame so leading silence
      does not flatten the response; they are divided by their mean so
      1.0 means "as loud as the average band" and the EQ stage can treat
      the values directly as relative gains.
    - lufs_approx is a level heuristic (-23 + 20·log10 rms), not BS.1770
      integrated loudness.
"""

from __future__ import annotations

import math

import numpy as np

from core.audio.spectral import frame_starts, transform
from core.audio.tempo import round_half_up
from core.mastering.types import EQ_BAND_FREQS, PSYCHOACOUSTIC_FREQS, ReferenceProfile
from core.types import SampleBuffer

_EPS = 1e-10

_RESPONSE_FRAME = 4096
_PSYCHO_FRAME = 2048
_BLOCK_SEC = 0.1
_TOP_FRACTION = 0.1

# Intelligent target constants
TARGET_RMS = 0.3
TARGET_PEAK = 0.95
TARGET_LUFS = -14.0
_MIN_TARGET_DYNAMIC_RANGE_DB = 6.0
_MAX_TARGET_WIDTH = 1.4
OPTIMAL_PSYCHOACOUSTIC_PROFILE: tuple[float, ...] = (60.0, 65.0, 70.0, 75.0, 80.0, 75.0, 70.0)

# (upper bound Hz exclusive, multiplier, cap) for the balanced target; None = keep as is
_BAND_BOOSTS: tuple[tuple[float, float | None, float | None], ...] = (
    (100.0, 1.2, 1.5),  # bass, moderate boost
    (500.0, None, None),  # low mid, natural
    (2000.0, 1.1, 1.3),  # mids, slight boost
    (8000.0, 1.15, 1.4),  # presence
    (math.inf, 1.1, 1.2),  # air
)


# ---------------------------------------------------------------------------
# Level measurements
# ---------------------------------------------------------------------------


def rms(samples: np.ndarray) -> float:
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples**2)))


def peak(samples: np.ndarray) -> float:
    if samples.size == 0:
        return 0.0
    return float(np.max(np.abs(samples)))


def lufs_approx(samples: np.ndarray) -> float:
    return -23.0 + 20.0 * math.log10(rms(samples) + _EPS)


def dynamic_range_db(samples: np.ndarray, sr: int) -> float:
    """20·log10 of the mean RMS of the loudest 10% of 100 ms blocks.

    At least one block is always averaged. A buffer shorter than one block
    falls back to its overall RMS.
    """
    block = int(sr * _BLOCK_SEC)
    starts = frame_starts(samples.shape[0], block, block) if block > 0 else range(0)
    if len(starts) == 0:
        return 20.0 * math.log10(rms(samples) + _EPS)
    block_rms = sorted((rms(samples[s : s + block]) for s in starts), reverse=True)
    top = block_rms[: max(1, int(len(block_rms) * _TOP_FRACTION))]
    return 20.0 * math.log10(float(np.mean(top)) + _EPS)


def stereo_width(channels: np.ndarray) -> float:
    """1 - mean(L·R) for two or more channels, 1.0 for mono."""
    if channels.shape[0] < 2 or channels.shape[1] == 0:
        return 1.0
    return 1.0 - float(np.mean(channels[0] * channels[1]))


# ---------------------------------------------------------------------------
# Spectral measurements
# ---------------------------------------------------------------------------


def loudest_frame(samples: np.ndarray, size: int) -> np.ndarray:
    """Non-overlapping `size` frame with the highest energy, zero-padded if short."""
    if samples.shape[0] <= size:
        frame = np.zeros(size, dtype=np.float64)
        frame[: samples.shape[0]] = samples
        return frame
    starts = list(frame_starts(samples.shape[0], size, size)) or [0]
    energies = [float(np.dot(samples[s : s + size], samples[s : s + size])) for s in starts]
    best = starts[int(np.argmax(energies))]
    return samples[best : best + size].copy()


def magnitude_at(magnitudes: np.ndarray, freq: float, frame_size: int, sr: int) -> float:
    """Magnitude of the bin nearest `freq`; 0.0 past the last bin."""
    index = round_half_up(freq * frame_size / sr)
    if 0 <= index < magnitudes.shape[0]:
        return float(magnitudes[index])
    return 0.0


def frequency_response(samples: np.ndarray, sr: int) -> tuple[float, ...]:
    """Relative magnitude at each EQ band centre (mean over bands = 1.0).

    A silent signal yields a flat response of 1.0 everywhere.
    """
    mags = transform(loudest_frame(samples, _RESPONSE_FRAME)).magnitudes
    values = np.array([magnitude_at(mags, f, _RESPONSE_FRAME, sr) for f in EQ_BAND_FREQS])
    mean = float(np.mean(values))
    if mean <= _EPS:
        return tuple(1.0 for _ in EQ_BAND_FREQS)
    return tuple(float(v) for v in values / mean)


def hearing_threshold(freq: float) -> float:
    """Approximate threshold of hearing in dB (ISO 226 inspired)."""
    if freq < 100.0:
        return 40.0
    if freq < 1000.0:
        return 10.0 - 20.0 * math.log10(freq / 100.0)
    if freq < 4000.0:
        return 10.0 - 10.0 * math.log10(freq / 1000.0)
    return 10.0 + 20.0 * math.log10(freq / 4000.0)


def psychoacoustic_profile(samples: np.ndarray, sr: int) -> tuple[float, ...]:
    """max(0, 20·log10(magnitude) - hearing threshold) at each psychoacoustic band."""
    mags = transform(loudest_frame(samples, _PSYCHO_FRAME)).magnitudes
    return tuple(
        max(0.0, 20.0 * math.log10(magnitude_at(mags, f, _PSYCHO_FRAME, sr) + _EPS) - hearing_threshold(f))
        for f in PSYCHOACOUSTIC_FREQS
    )


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


def measure_profile(buffer: SampleBuffer) -> ReferenceProfile:
    """Measure a reference buffer."""
    first = buffer.channels[0]
    sr = buffer.sample_rate
    return ReferenceProfile(
        rms=rms(first),
        peak=peak(first),
        lufs_approx=lufs_approx(first),
        dynamic_range_db=dynamic_range_db(first, sr),
        stereo_width=stereo_width(buffer.channels),
        frequency_response=frequency_response(first, sr),
        psychoacoustic_profile=psychoacoustic_profile(first, sr),
        source="reference",
    )


def balanced_response(source_response: tuple[float, ...]) -> tuple[float, ...]:
    """Gently boost the source's own response per region, with caps."""
    target = []
    for freq, value in zip(EQ_BAND_FREQS, source_response):
        for upper, multiplier, cap in _BAND_BOOSTS:
            if freq < upper:
                target.append(value if multiplier is None else min(value * multiplier, cap))
                break
    return tuple(target)


def intelligent_target(source: SampleBuffer) -> ReferenceProfile:
    """Synthesize a mastering target from the source's own characteristics.

    Fixed levels (RMS 0.3, peak 0.95, -14 LUFS) with a balanced version of
    the source's response, 80% of its dynamic range (at least 6 dB) and
    10% more stereo width (at most 1.4).
    """
    measured = measure_profile(source)
    return ReferenceProfile(
        rms=TARGET_RMS,
        peak=TARGET_PEAK,
        lufs_approx=TARGET_LUFS,
        dynamic_range_db=max(measured.dynamic_range_db * 0.8, _MIN_TARGET_DYNAMIC_RANGE_DB),
        stereo_width=min(measured.stereo_width * 1.1, _MAX_TARGET_WIDTH),
        frequency_response=balanced_response(measured.frequency_response),
        psychoacoustic_profile=OPTIMAL_PSYCHOACOUSTIC_PROFILE,
        source="intelligent",
    )
