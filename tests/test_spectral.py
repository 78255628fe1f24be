"""
Tests for core/audio/spectral.py — windowed transform, framing, overlap-add.

Uses synthetic signals generated with numpy; no audio files are needed.
"""

from __future__ import annotations

import numpy as np
import pytest

from core.audio.spectral import (
    bin_frequencies,
    frame_magnitudes,
    frame_starts,
    hann_window,
    iter_frames,
    overlap_add,
    spectral_centroid,
    spectral_flatness,
    spectral_rolloff,
    transform,
    visualization_spectrum,
)

SR = 44100
N = 1024


def _bin_sine(k: int, n: int = N, amplitude: float = 0.5) -> np.ndarray:
    """Sine whose frequency falls exactly on bin k of an n-point transform."""
    i = np.arange(n)
    return amplitude * np.sin(2 * np.pi * k * i / n)


def _white_noise(amplitude: float = 0.3, n: int = SR, seed: int = 42) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return amplitude * rng.standard_normal(n)


# ---------------------------------------------------------------------------
# Window and transform
# ---------------------------------------------------------------------------


class TestHannWindow:
    def test_endpoints_and_centre(self) -> None:
        w = hann_window(1025)
        assert w[0] == pytest.approx(0.0, abs=1e-12)
        assert w[-1] == pytest.approx(0.0, abs=1e-12)
        assert w[512] == pytest.approx(1.0)

    def test_symmetric(self) -> None:
        w = hann_window(64)
        np.testing.assert_allclose(w, w[::-1])


class TestTransform:
    def test_returns_half_the_bins(self) -> None:
        assert transform(np.zeros(N)).num_bins == N // 2

    def test_silent_window_gives_zero_spectrum(self) -> None:
        frame = transform(np.zeros(N))
        assert not np.any(frame.magnitudes)

    def test_bin_centred_sine_peaks_at_its_bin(self) -> None:
        for k in (8, 32, 100):
            frame = transform(_bin_sine(k))
            assert int(np.argmax(frame.magnitudes)) == k

    def test_matches_direct_dft_summation(self) -> None:
        x = _white_noise(n=16)
        windowed = x * hann_window(16)
        n = np.arange(16)
        expected = [abs(np.sum(windowed * np.exp(-2j * np.pi * k * n / 16))) for k in range(8)]
        np.testing.assert_allclose(transform(x).magnitudes, expected, atol=1e-10)

    def test_handles_non_power_of_two_lengths(self) -> None:
        assert transform(np.ones(1000)).num_bins == 500

    def test_input_not_modified(self) -> None:
        x = _white_noise(n=N)
        before = x.copy()
        transform(x)
        np.testing.assert_array_equal(x, before)

    def test_bin_frequencies(self) -> None:
        freqs = bin_frequencies(1024, 44100)
        assert freqs.shape == (512,)
        assert freqs[1] == pytest.approx(44100 / 1024)


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


class TestFraming:
    def test_frame_starts_exclude_the_final_fitting_frame(self) -> None:
        assert list(frame_starts(10, 4, 2)) == [0, 2, 4]

    def test_signal_of_exactly_one_window_has_no_frames(self) -> None:
        assert len(frame_starts(4, 4, 2)) == 0

    def test_non_positive_hop_raises(self) -> None:
        with pytest.raises(ValueError, match="hop must be positive"):
            frame_starts(100, 10, 0)

    def test_iter_frames_yields_copies(self) -> None:
        x = np.arange(10, dtype=np.float64)
        for _, frame in iter_frames(x, 4, 2):
            frame[:] = -1.0
        np.testing.assert_array_equal(x, np.arange(10))

    def test_frame_magnitudes_match_single_frame_transform(self) -> None:
        x = _white_noise(n=20000)
        blocks = list(frame_magnitudes(x, 256, 128))
        stacked = np.vstack(blocks)
        starts = list(frame_starts(x.shape[0], 256, 128))
        assert stacked.shape == (len(starts), 128)
        for row, start in zip(stacked[::37], starts[::37]):
            np.testing.assert_allclose(row, transform(x[start : start + 256]).magnitudes, atol=1e-9)

    def test_frame_magnitudes_normalized_and_unwindowed(self) -> None:
        x = np.zeros(2048)
        x[100] = 1.0
        block = next(frame_magnitudes(x, 1024, 512, windowed=False, normalize=True))
        np.testing.assert_allclose(block[0], np.full(512, 1.0 / 1024))

    def test_frame_magnitudes_short_signal_yields_nothing(self) -> None:
        assert list(frame_magnitudes(np.zeros(100), 1024, 512)) == []


class TestOverlapAdd:
    def test_identity_process_reproduces_input(self) -> None:
        x = _white_noise(n=8192)
        result = overlap_add(x, 2048, 1024, lambda spectrum: spectrum)
        np.testing.assert_allclose(result, x, atol=1e-9)

    def test_returns_new_array_of_same_length(self) -> None:
        x = _white_noise(n=5000)
        result = overlap_add(x, 1024, 512, lambda spectrum: spectrum * 0.5)
        assert result.shape == x.shape
        assert result is not x

    def test_uniform_gain_scales_every_sample(self) -> None:
        x = _white_noise(n=8192)
        result = overlap_add(x, 2048, 1024, lambda spectrum: spectrum * 0.5)
        np.testing.assert_allclose(result, 0.5 * x, atol=1e-9)

    def test_identity_holds_at_both_edges(self) -> None:
        x = _white_noise(n=5000)
        result = overlap_add(x, 1024, 512, lambda spectrum: spectrum)
        np.testing.assert_allclose(result[:64], x[:64], atol=1e-9)
        np.testing.assert_allclose(result[-64:], x[-64:], atol=1e-9)

    def test_lowpass_does_not_amplify_edges(self) -> None:
        x = _white_noise(n=8192)

        def lowpass(spectrum: np.ndarray) -> np.ndarray:
            out = spectrum.copy()
            out[64:] = 0.0
            return out

        result = overlap_add(x, 2048, 1024, lowpass)
        assert float(np.max(np.abs(result))) <= float(np.max(np.abs(x)))

    def test_signal_shorter_than_frame_is_processed(self) -> None:
        x = _white_noise(n=100)
        result = overlap_add(x, 2048, 1024, lambda spectrum: spectrum * 0.0)
        np.testing.assert_allclose(result, np.zeros(100), atol=1e-12)


# ---------------------------------------------------------------------------
# Visualization and shape descriptors
# ---------------------------------------------------------------------------


class TestVisualizationSpectrum:
    def test_has_256_bins_in_display_range(self) -> None:
        spectrum = visualization_spectrum(_white_noise())
        assert len(spectrum) == 256
        assert all(0.0 <= v <= 255.0 for v in spectrum)

    def test_silence_is_all_zero(self) -> None:
        assert visualization_spectrum(np.zeros(4096)) == (0.0,) * 256

    def test_short_signal_is_zero_padded(self) -> None:
        spectrum = visualization_spectrum(_white_noise(n=300))
        assert len(spectrum) == 256
        assert max(spectrum) > 0.0


class TestShapeDescriptors:
    def test_centroid_of_single_bin_is_its_frequency(self) -> None:
        mags = np.zeros(2048)
        mags[64] = 1.0
        assert spectral_centroid(mags, SR) == pytest.approx(64 * SR / 4096)

    def test_centroid_of_two_equal_bins_is_their_midpoint(self) -> None:
        mags = np.zeros(2048)
        mags[[100, 300]] = 2.0
        assert spectral_centroid(mags, SR) == pytest.approx(200 * SR / 4096)

    def test_centroid_of_silence_is_zero(self) -> None:
        assert spectral_centroid(np.zeros(512), SR) == 0.0

    def test_rolloff_of_flat_spectrum(self) -> None:
        assert spectral_rolloff(np.ones(100), 0.85) == 84

    def test_flatness_bounds(self) -> None:
        assert spectral_flatness(np.ones(256)) == pytest.approx(1.0)
        tone = transform(_bin_sine(64, n=4096)).magnitudes
        assert spectral_flatness(tone) < 0.1
        assert spectral_flatness(np.zeros(256)) == 0.0
