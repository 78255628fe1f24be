"""
Tests for core/audio/analysis.py — ensemble entry point and basic fallback path.

Test organisation:
    TestDefaults          — silent and zero-length buffers
    TestInputValidation   — None and wrong types
    TestEnsemble          — result shape, ranges, worker-count independence
    TestGuardedTasks      — a failing task falls back without aborting
    TestAnalyzeBasic      — novelty path
"""

from __future__ import annotations

import numpy as np
import pytest

from core.audio import analysis, mood
from core.audio.analysis import analyze, analyze_basic, run_tasks
from core.audio.tempo import ESTIMATORS, TempoMethod
from core.config import DEFAULT_ANALYSIS_CONFIG, SEQUENTIAL_ANALYSIS_CONFIG
from core.types import InvalidInputError, SampleBuffer

SR = 44100


def _boom(*args, **kwargs):
    raise RuntimeError("task exploded")


class TestDefaults:
    def test_silent_buffer_returns_defaults(self, silent_buffer: SampleBuffer) -> None:
        result = analyze(silent_buffer)
        assert result.bpm == 120.0
        assert result.bpm_confidence == 0.0
        assert result.key_name == "C Major"
        assert result.chroma == (0.0,) * 12
        assert (result.energy, result.danceability, result.valence) == (0.5, 0.5, 0.5)
        assert result.spectrum == (0.0,) * 256
        assert result.analysis_method == "default"
        assert result.duration_sec == pytest.approx(2.0)

    def test_zero_length_buffer_returns_defaults(self) -> None:
        empty = SampleBuffer(channels=np.zeros((1, 0)), sample_rate=SR)
        result = analyze(empty)
        assert result.analysis_method == "default"
        assert result.duration_sec == 0.0

    def test_basic_path_shares_defaults(self, silent_buffer: SampleBuffer) -> None:
        assert analyze_basic(silent_buffer) == analyze(silent_buffer)


class TestInputValidation:
    def test_none_raises(self) -> None:
        with pytest.raises(InvalidInputError, match="No audio buffer"):
            analyze(None)  # type: ignore[arg-type]

    def test_wrong_type_raises(self) -> None:
        with pytest.raises(InvalidInputError, match="Expected SampleBuffer"):
            analyze(np.zeros(SR))  # type: ignore[arg-type]

    def test_basic_path_validates_too(self) -> None:
        with pytest.raises(InvalidInputError):
            analyze_basic(None)  # type: ignore[arg-type]


class TestEnsemble:
    def test_result_fields(self, click_buffer: SampleBuffer) -> None:
        result = analyze(click_buffer)
        assert result.analysis_method == "ensemble"
        assert 60.0 <= result.bpm <= 200.0
        assert 0.0 <= result.bpm_confidence <= 1.0
        assert 1 <= len(result.bpm_candidates) <= 5
        assert len(result.key_candidates) == 5
        assert result.key == result.key_candidates[0]
        assert len(result.chroma) == 12
        assert len(result.spectrum) == 256
        assert result.sample_rate == SR
        assert result.duration_sec == pytest.approx(6.0)

    def test_scores_in_unit_range(self, music_buffer: SampleBuffer) -> None:
        result = analyze(music_buffer)
        for score in (
            result.energy,
            result.danceability,
            result.valence,
            result.confidence,
            result.tempo_stability,
            result.rhythm_complexity,
            result.harmonic_complexity,
        ):
            assert 0.0 <= score <= 1.0

    def test_chroma_sums_to_one(self, music_buffer: SampleBuffer) -> None:
        assert sum(analyze(music_buffer).chroma) == pytest.approx(1.0)

    def test_overall_confidence_blends_tempo_and_key(self, music_buffer: SampleBuffer) -> None:
        result = analyze(music_buffer)
        expected = 0.6 * result.bpm_confidence + 0.4 * result.key_confidence
        assert result.confidence == pytest.approx(expected)

    def test_identical_for_any_worker_count(self, music_buffer: SampleBuffer) -> None:
        threaded = analyze(music_buffer, config=DEFAULT_ANALYSIS_CONFIG)
        inline = analyze(music_buffer, config=SEQUENTIAL_ANALYSIS_CONFIG)
        assert threaded == inline

    def test_buffer_is_not_modified(self, music_buffer: SampleBuffer) -> None:
        before = music_buffer.channels.copy()
        analyze(music_buffer)
        np.testing.assert_array_equal(music_buffer.channels, before)

    def test_one_silent_channel_still_analysed(self) -> None:
        t = np.linspace(0, 1.0, SR, endpoint=False)
        left = 0.5 * np.sin(2 * np.pi * 440.0 * t)
        buf = SampleBuffer(channels=np.vstack([left, np.zeros(SR)]), sample_rate=SR)
        result = analyze(buf)
        assert result.analysis_method == "ensemble"
        assert max(result.chroma) == result.chroma[9]


class TestGuardedTasks:
    def test_failing_estimator_is_reported_and_skipped(self, click_buffer: SampleBuffer, monkeypatch) -> None:
        monkeypatch.setitem(ESTIMATORS, TempoMethod.COMB, _boom)
        failures: list[tuple[str, Exception]] = []

        result = analyze(
            click_buffer,
            config=SEQUENTIAL_ANALYSIS_CONFIG,
            on_failure=lambda name, exc: failures.append((name, exc)),
        )

        assert result.analysis_method == "ensemble"
        assert [name for name, _ in failures] == ["tempo.comb"]
        assert isinstance(failures[0][1], RuntimeError)

    def test_failing_mood_task_uses_neutral_value(self, music_buffer: SampleBuffer, monkeypatch) -> None:
        monkeypatch.setattr(mood, "compute_valence", _boom)
        result = analyze(music_buffer)
        assert result.valence == 0.5

    def test_failing_spectrum_uses_silent_spectrum(self, music_buffer: SampleBuffer, monkeypatch) -> None:
        monkeypatch.setattr(analysis, "visualization_spectrum", _boom)
        assert analyze(music_buffer).spectrum == (0.0,) * 256

    def test_every_failure_without_hook_still_returns(self, music_buffer: SampleBuffer, monkeypatch) -> None:
        for method in TempoMethod:
            monkeypatch.setitem(ESTIMATORS, method, _boom)
        result = analyze(music_buffer)
        assert result.bpm == 120.0
        assert result.bpm_confidence == pytest.approx(0.1)

    def test_run_tasks_keys_results_by_name(self) -> None:
        tasks = {"a": lambda: 1, "b": lambda: 2}
        assert run_tasks(tasks, 1) == {"a": 1, "b": 2}
        assert run_tasks(tasks, 4) == {"a": 1, "b": 2}


class TestAnalyzeBasic:
    def test_novelty_path(self, click_buffer: SampleBuffer) -> None:
        result = analyze_basic(click_buffer)
        assert result.analysis_method == "novelty"
        assert result.bpm_confidence == 0.6
        assert result.key.confidence == 0.6
        assert result.confidence == 0.6
        assert len(result.bpm_candidates) == 1
        assert len(result.key_candidates) == 1
        assert 60.0 <= result.bpm <= 200.0
