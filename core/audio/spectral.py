"""
core/audio/spectral.py — Spectral Transform shared by every analyser.

Provides the Hann-windowed magnitude spectrum, frame iteration, the inverse
transform used by overlap-add processing, the 256-bin visualization
spectrum, and spectral shape descriptors (centroid, rolloff, flatness).

Design:
    - All functions are pure: numpy arrays in, numpy arrays / floats out.
    - `transform()` is numerically equal to the direct DFT summation
      |Σ x[n]·e^{-2πikn/N}|. numpy.fft handles any N, so callers never
      need to zero-pad.
    - Frame starts follow `range(0, n - size, hop)`: a frame is taken only
      while a full window fits strictly inside the signal.
    - `frame_magnitudes()` vectorises over blocks of frames via
      sliding_window_view; blocks bound memory on long buffers.
    - `overlap_add()` iterates owned frame copies and accumulates into the
      output by indexed addition, normalised by the summed window.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from scipy.signal import get_window

from core.audio.types import SpectralFrame

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EPS = 1e-10  # small value to prevent log(0)
_BLOCK_FRAMES = 64  # frames per vectorised FFT block
_VIS_WINDOW = 2048  # samples feeding the visualization spectrum
_VIS_BINS = 256  # visualization resolution


# ---------------------------------------------------------------------------
# Windowing and the single-frame transform
# ---------------------------------------------------------------------------


def hann_window(n: int) -> np.ndarray:
    """Symmetric Hann window 0.5 - 0.5·cos(2πi/(N-1)).

    Args:
        n: Window length.

    Returns:
        Window of shape (n,). A length-1 window is [1.0].
    """
    return np.hanning(n)


def transform(window: np.ndarray) -> SpectralFrame:
    """Hann-windowed magnitude spectrum of one analysis window.

    Args:
        window: 1-D sample array of any length N.

    Returns:
        SpectralFrame with N // 2 magnitudes (bins 0 .. N/2 - 1).
        An all-zero window yields an all-zero spectrum.
    """
    x = np.asarray(window, dtype=np.float64)
    n = x.shape[0]
    if n == 0:
        return SpectralFrame(magnitudes=np.zeros(0))
    spectrum = np.fft.rfft(x * hann_window(n))
    return SpectralFrame(magnitudes=np.abs(spectrum[: n // 2]))


def bin_frequencies(window_size: int, sample_rate: int) -> np.ndarray:
    """Centre frequency in Hz of each magnitude bin of a `window_size` frame."""
    return np.arange(window_size // 2) * float(sample_rate) / float(window_size)


def inverse_transform(spectrum: np.ndarray, n: int) -> np.ndarray:
    """Real time-domain frame of length `n` from a one-sided complex spectrum."""
    return np.fft.irfft(spectrum, n)


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


def frame_starts(n_samples: int, size: int, hop: int) -> range:
    """Start offsets of every full frame strictly inside the signal."""
    if hop <= 0:
        raise ValueError(f"hop must be positive, got {hop}")
    return range(0, max(0, n_samples - size), hop)


def iter_frames(samples: np.ndarray, size: int, hop: int) -> Iterator[tuple[int, np.ndarray]]:
    """Yield (start, frame) pairs; each frame is an owned copy."""
    for start in frame_starts(samples.shape[0], size, hop):
        yield start, samples[start : start + size].copy()


def frame_magnitudes(
    samples: np.ndarray,
    size: int,
    hop: int,
    *,
    windowed: bool = True,
    normalize: bool = False,
) -> Iterator[np.ndarray]:
    """Yield blocks of per-frame magnitude spectra.

    Args:
        samples:   1-D signal.
        size:      Frame length.
        hop:       Frame advance.
        windowed:  Apply the Hann window (as `transform()` does).
        normalize: Divide magnitudes by the frame length.

    Yields:
        Arrays of shape (frames_in_block, size // 2), in frame order.
    """
    starts = frame_starts(samples.shape[0], size, hop)
    if len(starts) == 0:
        return
    frames = sliding_window_view(samples, size)[::hop][: len(starts)]
    window = hann_window(size) if windowed else None
    for block_start in range(0, frames.shape[0], _BLOCK_FRAMES):
        block = frames[block_start : block_start + _BLOCK_FRAMES]
        block = block * window if window is not None else np.array(block, dtype=np.float64)
        mags = np.abs(np.fft.rfft(block, axis=1))[:, : size // 2]
        if normalize:
            mags /= float(size)
        yield mags


def overlap_add(
    samples: np.ndarray,
    size: int,
    hop: int,
    process: Callable[[np.ndarray], np.ndarray],
) -> np.ndarray:
    """Process a signal frame by frame in the frequency domain.

    Each frame is windowed with a periodic Hann window, transformed,
    passed to `process` (one-sided complex spectrum in, same shape out),
    inverse-transformed and added back at its offset. The sum is divided
    by the accumulated window, so an identity `process` reproduces the
    input. The signal is zero-padded by one frame on each side, so edge
    samples see the same window overlap as the interior.

    Args:
        samples: 1-D signal (not modified).
        size:    Frame length.
        hop:     Frame advance (size // 2 for 50% overlap).
        process: Spectrum transformation applied to every frame.

    Returns:
        New array of the same length as `samples`.
    """
    n = samples.shape[0]
    window = get_window("hann", size)
    padded = np.pad(samples.astype(np.float64), size)
    out = np.zeros(padded.shape[0], dtype=np.float64)
    weight = np.zeros(padded.shape[0], dtype=np.float64)

    for start, frame in iter_frames(padded, size, hop):
        spectrum = process(np.fft.rfft(frame * window))
        out[start : start + size] += inverse_transform(spectrum, size)
        weight[start : start + size] += window

    core = slice(size, size + n)
    return out[core] / np.maximum(weight[core], _EPS)


# ---------------------------------------------------------------------------
# Visualization
# ---------------------------------------------------------------------------


def visualization_spectrum(samples: np.ndarray) -> tuple[float, ...]:
    """256-bin display spectrum of the first 2048 samples.

    Each bin maps 20·log10(magnitude) from [-100 dB, 0 dB] onto [0, 255].
    Shorter signals are zero-padded.
    """
    head = np.zeros(_VIS_WINDOW, dtype=np.float64)
    count = min(_VIS_WINDOW, samples.shape[0])
    head[:count] = samples[:count]
    mags = transform(head).magnitudes[:_VIS_BINS]
    db = 20.0 * np.log10(mags + _EPS)
    return tuple(float(v) for v in np.clip((db + 100.0) * 2.55, 0.0, 255.0))


# ---------------------------------------------------------------------------
# Spectral shape descriptors
# ---------------------------------------------------------------------------


def spectral_centroid(magnitudes: np.ndarray, sample_rate: int) -> float:
    """Magnitude-weighted mean frequency in Hz (0.0 for a silent frame)."""
    total = float(np.sum(magnitudes))
    if total <= 0.0:
        return 0.0
    freqs = bin_frequencies(2 * magnitudes.shape[0], sample_rate)
    return float(np.sum(freqs * magnitudes) / total)


def spectral_rolloff(magnitudes: np.ndarray, threshold: float = 0.85) -> int:
    """First bin at which the cumulative magnitude reaches `threshold` of the total."""
    if magnitudes.size == 0:
        return 0
    cumulative = np.cumsum(magnitudes)
    target = cumulative[-1] * threshold
    return int(np.searchsorted(cumulative, target, side="left"))


def spectral_flatness(magnitudes: np.ndarray) -> float:
    """Geometric / arithmetic mean ratio (Wiener entropy), 0.0 for silence."""
    if magnitudes.size == 0:
        return 0.0
    arith_mean = float(np.mean(magnitudes))
    if arith_mean <= 0.0:
        return 0.0
    geo_mean = float(np.exp(np.mean(np.log(magnitudes + _EPS))))
    return float(np.clip(geo_mean / arith_mean, 0.0, 1.0))
