"""
Shared type definitions for the analysis and mastering engine.

This module defines the buffer type and the caller-facing error that
establish the contract between the pure core/ layer and the orchestration
layer (engine/).

Naming conventions:
- SampleBuffer: decoded PCM, shape (channels, samples), float64
- InvalidInputError: the only error the core surfaces for bad buffers
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np


class InvalidInputError(ValueError):
    """A required buffer is missing or has no samples.

    Raised by ``master()`` for a missing/empty source and by ``analyze()``
    when no buffer is supplied at all. Subclasses ValueError so callers
    that already guard config errors catch it too.
    """


@dataclass(frozen=True, eq=False)
class SampleBuffer:
    """Decoded multi-channel audio.

    Invariants:
        channels.ndim == 2, shape (C, N) with C >= 1
        sample_rate > 0
        All channels share the same length (guaranteed by the 2-D array).

    The engine never writes into ``channels``; mastering works on a copy
    obtained from ``copy_channels()``.
    """

    channels: np.ndarray
    """Samples, shape (C, N), float64, nominally in [-1, 1]."""

    sample_rate: int
    """Sample rate in Hz."""

    def __post_init__(self) -> None:
        """Coerce channels to a 2-D float64 array and validate."""
        try:
            arr = np.asarray(self.channels, dtype=np.float64)
        except ValueError as exc:
            raise ValueError(f"channels must have equal lengths: {exc}") from exc
        if arr.ndim == 1:
            arr = arr[np.newaxis, :]
        if arr.ndim != 2 or arr.shape[0] == 0:
            raise ValueError(f"channels must have shape (C, N) with C >= 1, got {arr.shape}")
        if int(self.sample_rate) <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")
        object.__setattr__(self, "channels", arr)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @classmethod
    def from_channels(cls, channels: Sequence[Sequence[float]], sample_rate: int) -> SampleBuffer:
        """Build a buffer from a sequence of per-channel sample sequences."""
        return cls(channels=np.asarray(channels, dtype=np.float64), sample_rate=sample_rate)

    @property
    def num_channels(self) -> int:
        return int(self.channels.shape[0])

    @property
    def num_samples(self) -> int:
        return int(self.channels.shape[1])

    @property
    def duration_sec(self) -> float:
        """Length of the buffer in seconds."""
        return float(self.num_samples) / float(self.sample_rate)

    def mono(self) -> np.ndarray:
        """Channel-averaged signal, shape (N,)."""
        if self.num_channels == 1:
            return self.channels[0].copy()
        return np.mean(self.channels, axis=0)

    def is_empty(self) -> bool:
        return self.num_samples == 0

    def is_silent(self) -> bool:
        """True when the buffer is empty or every sample is exactly zero."""
        return self.is_empty() or not np.any(self.channels)

    def copy_channels(self) -> np.ndarray:
        """Owned working copy of the sample array."""
        return self.channels.copy()
