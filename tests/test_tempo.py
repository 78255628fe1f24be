"""
Tests for core/audio/tempo.py — tempo estimators, ensemble grouping, novelty path.

Signals are synthesised so that each estimator's answer is known exactly:
a click train whose period is a whole number of 512-sample hops, a sine whose
period is a whole number of samples, and an exponential decay plus a 2 Hz
sine for the whole-buffer spectrum.
"""

from __future__ import annotations

import numpy as np
import pytest

from core.audio.tempo import (
    ESTIMATORS,
    TempoMethod,
    combine_estimates,
    comb_score,
    dance_tempo_bonus,
    estimate_autocorrelation,
    estimate_comb,
    estimate_onset,
    estimate_spectral,
    estimate_tempo_ensemble,
    estimate_tempo_novelty,
    group_candidates,
    local_maxima,
    normalized_autocorrelation,
    novelty_curve,
    round_half_up,
    select_primary,
)
from core.audio.types import TempoCandidate
from core.config import TempoConfig

SR = 44100
HOP = 512


def _click_train(duration: float = 6.0, period: int = 43 * HOP, offset: int = 1000, sr: int = SR) -> np.ndarray:
    signal = np.zeros(int(sr * duration))
    signal[offset::period] = 1.0
    return signal


def _white_noise(amplitude: float = 0.3, n: int = SR, seed: int = 42) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return amplitude * rng.standard_normal(n)


def _c(bpm: float, confidence: float) -> TempoCandidate:
    return TempoCandidate(bpm=bpm, confidence=confidence)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_round_half_up(self) -> None:
        assert round_half_up(127.5) == 128
        assert round_half_up(2.5) == 3
        assert round_half_up(119.49) == 119

    def test_local_maxima_are_strict(self) -> None:
        values = np.array([0.0, 2.0, 1.0, 3.0, 3.0, 0.0, 5.0])
        assert list(local_maxima(values)) == [1]

    def test_local_maxima_short_input(self) -> None:
        assert local_maxima(np.array([1.0, 2.0])).size == 0

    def test_normalized_autocorrelation_direct_and_fft_paths_agree(self) -> None:
        x = _white_noise(n=4000)
        short = normalized_autocorrelation(x, 200)
        long = normalized_autocorrelation(x, 1000)
        np.testing.assert_allclose(long[:200], short, atol=1e-10)

    def test_normalized_autocorrelation_divides_by_overlap(self) -> None:
        x = np.ones(10)
        np.testing.assert_allclose(normalized_autocorrelation(x, 5), np.ones(5))

    def test_autocorrelation_lags_past_signal_are_zero(self) -> None:
        ac = normalized_autocorrelation(np.ones(4), 8)
        assert ac.shape == (8,)
        assert not np.any(ac[4:])


# ---------------------------------------------------------------------------
# Estimators
# ---------------------------------------------------------------------------


class TestOnsetEstimator:
    def test_regular_clicks_vote_for_their_tempo(self) -> None:
        candidates = estimate_onset(_click_train(), SR)
        assert candidates == [_c(120.0, 0.7)]

    def test_silence_falls_back_to_default_tempo(self) -> None:
        assert estimate_onset(np.zeros(SR * 2), SR) == [_c(120.0, 0.7)]

    def test_short_buffer_falls_back_to_default_tempo(self) -> None:
        assert estimate_onset(np.zeros(100), SR) == [_c(120.0, 0.7)]


class TestAutocorrelationEstimator:
    def test_lag_is_read_in_hops(self) -> None:
        # Period of 43 samples peaks at lag 43 → 60·44100 / (43·512) ≈ 120.2
        i = np.arange(SR)
        sine = 0.5 * np.sin(2 * np.pi * i / 43.0)
        candidates = estimate_autocorrelation(sine, SR)
        assert [c.bpm for c in candidates] == [120.0, 60.0]
        assert all(c.confidence == 0.8 for c in candidates)

    def test_silence_has_no_peaks(self) -> None:
        assert estimate_autocorrelation(np.zeros(SR), SR) == []


class TestCombEstimator:
    def test_returns_every_even_bpm_normalised_to_best(self) -> None:
        candidates = estimate_comb(_white_noise(n=SR * 3), SR)
        assert len(candidates) == 51
        assert candidates[0].confidence == pytest.approx(1.0)
        confidences = [c.confidence for c in candidates]
        assert confidences == sorted(confidences, reverse=True)
        assert {c.bpm for c in candidates} == {float(b) for b in range(80, 181, 2)}

    def test_silence_scores_zero(self) -> None:
        candidates = estimate_comb(np.zeros(SR * 3), SR)
        assert all(c.confidence == 0.0 for c in candidates)

    def test_comb_score_of_too_short_signal_is_zero(self) -> None:
        assert comb_score(np.ones(100), SR, 80.0) == 0.0


class TestSpectralEstimator:
    def test_reads_peak_bin_as_beat_frequency(self) -> None:
        sr = 1000
        t = np.arange(10 * sr) / sr
        # Monotonic decay spectrum with one 2 Hz line on top of it
        signal = np.exp(-t / 0.5) + 0.5 * np.sin(2 * np.pi * 2.0 * t)
        assert estimate_spectral(signal, sr) == [_c(120.0, 0.6)]

    def test_tiny_input_returns_nothing(self) -> None:
        assert estimate_spectral(np.zeros(1), SR) == []

    def test_registry_covers_every_method(self) -> None:
        assert set(ESTIMATORS) == set(TempoMethod)


# ---------------------------------------------------------------------------
# Grouping and selection
# ---------------------------------------------------------------------------


class TestGroupCandidates:
    def test_close_candidates_merge_into_weighted_mean(self) -> None:
        groups = group_candidates([_c(90.0, 0.1), _c(120.0, 0.3), _c(121.0, 0.2)])
        assert len(groups) == 2
        assert groups[0].bpm == pytest.approx(120.4)
        assert groups[0].confidence == pytest.approx(0.5)
        assert groups[1] == _c(90.0, 0.1)

    def test_group_mean_moves_as_members_join(self) -> None:
        groups = group_candidates([_c(100.0, 1.0), _c(103.0, 1.0), _c(106.0, 1.0)])
        assert [g.bpm for g in groups] == [pytest.approx(101.5), 106.0]

    def test_zero_confidence_group_uses_plain_mean(self) -> None:
        groups = group_candidates([_c(100.0, 0.0), _c(102.0, 0.0)])
        assert groups == [_c(101.0, 0.0)]

    def test_empty_pool(self) -> None:
        assert group_candidates([]) == []


class TestSelectPrimary:
    def test_dance_bonus_can_overtake_a_stronger_group(self) -> None:
        primary = select_primary([_c(100.0, 0.5), _c(130.0, 0.4)])
        assert primary.bpm == 130.0
        assert primary.confidence == pytest.approx(0.55)

    def test_ties_keep_the_earlier_group(self) -> None:
        assert select_primary([_c(100.0, 0.5), _c(150.0, 0.5)]).bpm == 100.0

    def test_confidence_is_clipped(self) -> None:
        assert select_primary([_c(130.0, 0.95)]).confidence == 1.0

    def test_empty_pool_gives_default(self) -> None:
        assert select_primary([]) == _c(120.0, 0.1)

    def test_bonus_bands(self) -> None:
        assert dance_tempo_bonus(110.0) == 0.0
        assert dance_tempo_bonus(125.0) == pytest.approx(0.10)
        assert dance_tempo_bonus(130.0) == pytest.approx(0.15)


class TestCombineEstimates:
    def _results(self) -> dict[TempoMethod, list[TempoCandidate]]:
        return {
            TempoMethod.ONSET: [_c(120.0, 0.7)],
            TempoMethod.AUTOCORRELATION: [_c(121.0, 0.8)],
            TempoMethod.COMB: [_c(90.0, 1.0)],
            TempoMethod.SPECTRAL: [],
        }

    def test_weights_pool_and_rank(self) -> None:
        estimate = combine_estimates(self._results())
        # 120·0.21 + 121·0.28 over 0.49
        assert estimate.bpm == pytest.approx(59.08 / 0.49)
        assert estimate.confidence == pytest.approx(0.59)
        assert [c.bpm for c in estimate.candidates] == [pytest.approx(59.08 / 0.49), 90.0]

    def test_completion_order_does_not_matter(self) -> None:
        forward = self._results()
        backward = dict(reversed(list(forward.items())))
        assert combine_estimates(forward) == combine_estimates(backward)

    def test_candidate_list_is_capped(self) -> None:
        results = {TempoMethod.COMB: [_c(float(b), 1.0) for b in range(80, 181, 10)]}
        estimate = combine_estimates(results, TempoConfig(max_candidates=5))
        assert len(estimate.candidates) == 5

    def test_no_candidates_gives_default(self) -> None:
        estimate = combine_estimates({})
        assert estimate.bpm == 120.0
        assert estimate.confidence == pytest.approx(0.1)
        assert estimate.candidates == ()

    def test_full_ensemble_on_clicks(self) -> None:
        estimate = estimate_tempo_ensemble(_click_train(), SR)
        assert 60.0 <= estimate.bpm <= 200.0
        assert 0.0 <= estimate.confidence <= 1.0
        assert 1 <= len(estimate.candidates) <= 5


# ---------------------------------------------------------------------------
# Novelty path
# ---------------------------------------------------------------------------


class TestNoveltyTempo:
    def test_novelty_curve_is_scaled_to_unit_peak(self) -> None:
        novelty = novelty_curve(_click_train())
        assert novelty.max() == pytest.approx(1.0)
        assert novelty.min() >= 0.0

    def test_silence_returns_default(self) -> None:
        assert estimate_tempo_novelty(np.zeros(SR * 2), SR) == 120.0

    def test_empty_input_returns_default(self) -> None:
        assert estimate_tempo_novelty(np.zeros(0), SR) == 120.0

    def test_result_is_an_integer_bpm_in_range(self) -> None:
        bpm = estimate_tempo_novelty(_white_noise(n=SR * 4), SR)
        assert isinstance(bpm, float)
        assert bpm == round(bpm)
        assert 60.0 <= bpm <= 200.0

    def test_custom_default_tempo(self) -> None:
        config = TempoConfig(default_bpm=100.0)
        assert estimate_tempo_novelty(np.zeros(SR), SR, config=config) == 100.0
