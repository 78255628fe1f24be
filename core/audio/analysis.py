"""
core/audio/analysis.py — Analysis entry points.

`analyze()` runs the full ensemble:

    fan out (thread pool)                        join (fixed order)
    ├─ tempo: onset, autocorrelation,      ──►   combine_estimates → bpm
    │         comb, spectral
    ├─ chroma: cqt, cens, stft             ──►   combine_chroma → match_to_all_keys
    ├─ mood: energy, danceability, valence
    ├─ visualization spectrum
    └─ descriptors: tempo stability, rhythm & harmonic complexity

`analyze_basic()` runs the single novelty-curve tempo path with a plain-chroma
key, for callers that only need a basic estimate (and as the fallback when
the ensemble fails).

Design:
    - Every task is pure and reads the same mono array; nothing is shared
      mutably across threads.
    - Each task is guarded: an exception is logged, reported to the optional
      `on_failure` hook, and replaced by that task's fallback value, so one
      failing voice never aborts the analysis.
    - Results are joined by task name, never by completion order, so the
      outcome is identical for any `max_workers`.
    - Silent or zero-length buffers short-circuit to documented defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import numpy as np

from core.audio import descriptors, mood
from core.audio.key import ChromaMethod, combine_chroma, compute_chroma, match_to_all_keys
from core.audio.spectral import visualization_spectrum
from core.audio.tempo import ESTIMATORS, TempoMethod, combine_estimates, estimate_tempo_novelty
from core.audio.types import (
    DEFAULT_KEY,
    ZERO_CHROMA,
    AnalysisResult,
    KeyCandidate,
    TempoCandidate,
)
from core.config import DEFAULT_ANALYSIS_CONFIG, AnalysisConfig
from core.types import InvalidInputError, SampleBuffer

logger = logging.getLogger(__name__)

FailureHook = Callable[[str, Exception], None]
"""Called with (task name, exception) when a guarded task fails."""

_NEUTRAL = 0.5
_BASIC_CONFIDENCE = 0.6
_SILENT_SPECTRUM: tuple[float, ...] = (0.0,) * 256


# ---------------------------------------------------------------------------
# Task execution
# ---------------------------------------------------------------------------


def _guarded(
    name: str,
    fn: Callable[[], Any],
    fallback: Any,
    on_failure: FailureHook | None,
) -> Callable[[], Any]:
    def run() -> Any:
        try:
            return fn()
        except Exception as exc:
            logger.warning("Analysis task '%s' failed, using fallback: %s", name, exc)
            if on_failure is not None:
                on_failure(name, exc)
            return fallback

    return run


def run_tasks(tasks: dict[str, Callable[[], Any]], max_workers: int) -> dict[str, Any]:
    """Run independent zero-argument tasks and return results keyed by name.

    ``max_workers == 1`` runs every task inline on the calling thread.
    """
    if max_workers <= 1:
        return {name: task() for name, task in tasks.items()}
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {name: executor.submit(task) for name, task in tasks.items()}
        return {name: future.result() for name, future in futures.items()}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_buffer(buffer: Any) -> SampleBuffer:
    if buffer is None:
        raise InvalidInputError("No audio buffer supplied")
    if not isinstance(buffer, SampleBuffer):
        raise InvalidInputError(f"Expected SampleBuffer, got {type(buffer).__name__}")
    return buffer


def default_result(buffer: SampleBuffer) -> AnalysisResult:
    """Documented defaults for a buffer with nothing to measure."""
    return AnalysisResult(
        bpm=120.0,
        bpm_confidence=0.0,
        bpm_candidates=(),
        key=DEFAULT_KEY,
        key_candidates=(),
        chroma=ZERO_CHROMA,
        energy=_NEUTRAL,
        danceability=_NEUTRAL,
        valence=_NEUTRAL,
        duration_sec=buffer.duration_sec,
        sample_rate=buffer.sample_rate,
        spectrum=_SILENT_SPECTRUM,
        confidence=0.0,
        analysis_method="default",
    )


def _chroma_tuple(chroma: np.ndarray) -> tuple[float, ...]:
    return tuple(float(v) for v in chroma)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze(
    buffer: SampleBuffer,
    *,
    config: AnalysisConfig = DEFAULT_ANALYSIS_CONFIG,
    on_failure: FailureHook | None = None,
) -> AnalysisResult:
    """Full ensemble analysis of one buffer.

    Args:
        buffer:     Decoded audio. Multi-channel input is averaged to mono;
                    the visualization spectrum uses the first channel.
        config:     Ensemble constants and thread-pool size.
        on_failure: Optional hook notified of each task that fell back.

    Returns:
        AnalysisResult with analysis_method "ensemble", or the defaults
        (analysis_method "default") for a silent or zero-length buffer.

    Raises:
        InvalidInputError: If buffer is None or not a SampleBuffer.
    """
    buffer = _require_buffer(buffer)
    if buffer.is_silent():
        logger.debug("Silent or empty buffer (%d samples), returning defaults", buffer.num_samples)
        return default_result(buffer)

    samples = buffer.mono()
    first_channel = buffer.channels[0]
    sr = buffer.sample_rate

    def tempo_task(method: TempoMethod) -> Callable[[], Any]:
        fn = ESTIMATORS[method]
        return lambda: fn(samples, sr, config=config.tempo)

    def chroma_task(method: ChromaMethod) -> Callable[[], Any]:
        return lambda: compute_chroma(samples, sr, method)

    specs: list[tuple[str, Callable[[], Any], Any]] = []
    for method in TempoMethod:
        specs.append((f"tempo.{method.value}", tempo_task(method), []))
    for chroma_method in ChromaMethod:
        specs.append((f"chroma.{chroma_method.value}", chroma_task(chroma_method), np.zeros(12)))
    specs.extend(
        [
            ("mood.energy", lambda: mood.compute_energy(samples), _NEUTRAL),
            ("mood.danceability", lambda: mood.compute_danceability(samples, sr), _NEUTRAL),
            ("mood.valence", lambda: mood.compute_valence(samples, sr), _NEUTRAL),
            ("spectrum", lambda: visualization_spectrum(first_channel), _SILENT_SPECTRUM),
            ("descriptor.tempo_stability", lambda: descriptors.tempo_stability(samples, sr), 0.5),
            ("descriptor.rhythm_complexity", lambda: descriptors.rhythm_complexity(samples, sr), 0.2),
            ("descriptor.harmonic_complexity", lambda: descriptors.harmonic_complexity(samples, sr), 0.5),
        ]
    )

    tasks = {name: _guarded(name, fn, fallback, on_failure) for name, fn, fallback in specs}
    results = run_tasks(tasks, config.max_workers)

    tempo = combine_estimates(
        {method: results[f"tempo.{method.value}"] for method in TempoMethod},
        config.tempo,
    )
    chroma = combine_chroma(
        {method: results[f"chroma.{method.value}"] for method in ChromaMethod},
        config.key,
    )
    keys = match_to_all_keys(chroma, config.key)
    key = keys[0]

    logger.debug(
        "Ensemble analysis: %.1f BPM (%.2f), key %s (%.2f)",
        tempo.bpm,
        tempo.confidence,
        key.name,
        key.confidence,
    )
    return AnalysisResult(
        bpm=tempo.bpm,
        bpm_confidence=tempo.confidence,
        bpm_candidates=tempo.candidates,
        key=key,
        key_candidates=tuple(keys[: config.key.max_candidates]),
        chroma=_chroma_tuple(chroma),
        energy=results["mood.energy"],
        danceability=results["mood.danceability"],
        valence=results["mood.valence"],
        duration_sec=buffer.duration_sec,
        sample_rate=sr,
        spectrum=results["spectrum"],
        confidence=descriptors.overall_confidence(tempo.confidence, key.confidence),
        tempo_stability=results["descriptor.tempo_stability"],
        rhythm_complexity=results["descriptor.rhythm_complexity"],
        harmonic_complexity=results["descriptor.harmonic_complexity"],
        analysis_method="ensemble",
    )


def analyze_basic(
    buffer: SampleBuffer,
    *,
    config: AnalysisConfig = DEFAULT_ANALYSIS_CONFIG,
) -> AnalysisResult:
    """Single-path analysis: novelty-curve tempo and plain-chroma key.

    Tempo and key are reported with a flat confidence of 0.6 and a single
    candidate each. Runs on the calling thread.

    Raises:
        InvalidInputError: If buffer is None or not a SampleBuffer.
    """
    buffer = _require_buffer(buffer)
    if buffer.is_silent():
        return default_result(buffer)

    samples = buffer.mono()
    sr = buffer.sample_rate

    bpm = estimate_tempo_novelty(samples, sr, config=config.tempo)
    chroma = compute_chroma(samples, sr, ChromaMethod.STFT)
    best = match_to_all_keys(chroma, config.key)[0]
    key = KeyCandidate(tonic=best.tonic, mode=best.mode, confidence=_BASIC_CONFIDENCE)

    return AnalysisResult(
        bpm=bpm,
        bpm_confidence=_BASIC_CONFIDENCE,
        bpm_candidates=(TempoCandidate(bpm=bpm, confidence=_BASIC_CONFIDENCE),),
        key=key,
        key_candidates=(key,),
        chroma=_chroma_tuple(chroma),
        energy=mood.compute_energy(samples),
        danceability=mood.compute_danceability(samples, sr),
        valence=mood.compute_valence(samples, sr),
        duration_sec=buffer.duration_sec,
        sample_rate=sr,
        spectrum=visualization_spectrum(buffer.channels[0]),
        confidence=_BASIC_CONFIDENCE,
        analysis_method="novelty",
    )
