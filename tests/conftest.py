"""
Shared pytest fixtures for the analysis and mastering test suite.

Signals are synthesised in memory; no audio files are read. The click train
period is exactly 43 hops of 512 samples (≈120.18 BPM at 44.1 kHz), so every
frame-based onset detector sees perfectly regular intervals.
"""

from __future__ import annotations

import numpy as np
import pytest

from core.mastering import _preset_loader
from core.types import SampleBuffer

SR = 44100
CLICK_PERIOD = 43 * 512
CLICK_OFFSET = 1000


def _click_train(duration: float = 6.0, sr: int = SR, period: int = CLICK_PERIOD, offset: int = CLICK_OFFSET) -> np.ndarray:
    """Unit impulses every `period` samples starting at `offset`."""
    signal = np.zeros(int(sr * duration), dtype=np.float64)
    signal[offset::period] = 1.0
    return signal


@pytest.fixture()
def silent_buffer() -> SampleBuffer:
    """Two seconds of digital silence, stereo."""
    return SampleBuffer(channels=np.zeros((2, SR * 2)), sample_rate=SR)


@pytest.fixture()
def click_buffer() -> SampleBuffer:
    """Six seconds of a mono click train at ≈120 BPM."""
    return SampleBuffer(channels=_click_train(), sample_rate=SR)


@pytest.fixture()
def music_buffer() -> SampleBuffer:
    """One second of stereo A-major-ish tones over a little noise."""
    t = np.linspace(0, 1.0, SR, endpoint=False)
    rng = np.random.default_rng(7)
    left = (
        0.2 * np.sin(2 * np.pi * 220.0 * t)
        + 0.1 * np.sin(2 * np.pi * 277.18 * t)
        + 0.01 * rng.standard_normal(SR)
    )
    right = (
        0.2 * np.sin(2 * np.pi * 220.0 * t + 0.3)
        + 0.1 * np.sin(2 * np.pi * 329.63 * t)
        + 0.01 * rng.standard_normal(SR)
    )
    return SampleBuffer(channels=np.vstack([left, right]), sample_rate=SR)


@pytest.fixture(autouse=True)
def _clear_preset_cache():
    """Each test loads presets from disk."""
    _preset_loader._CACHE.clear()
    yield
    _preset_loader._CACHE.clear()
