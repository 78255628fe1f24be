"""
engine/audio_engine.py — High-level orchestrator for analysis and mastering.

AudioAnalysisEngine wraps the pure core entry points with the policies a
caller needs around them:

    buffer
        │
        ├─ cache.get(key)             [engine/cache.py — injected collaborator]
        │       ↓ miss
        ├─ analyze()                  [core/audio/analysis.py — ensemble]
        │       ↓ raises
        ├─ analyze_basic()            [core/audio/analysis.py — novelty fallback]
        │       ↓
        └─ cache.put(), metrics, log

    source (+ reference) (+ settings | preset)
        │
        ├─ load_preset()              [core/mastering/_preset_loader.py]
        └─ master()                   [core/mastering/engine.py]

Design:
    - The cache is injected (any AnalysisCacheProtocol); None disables caching.
    - Guarded task failures inside analyze() are counted through the
      on_failure hook; the core stays metrics-oblivious.
    - InvalidInputError is a caller error: it is recorded and re-raised,
      never masked by the fallback path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from core.audio.analysis import analyze, analyze_basic
from core.audio.types import AnalysisResult
from core.config import DEFAULT_ANALYSIS_CONFIG, AnalysisConfig
from core.mastering import load_preset, master
from core.mastering.types import ProcessingSettings
from core.types import InvalidInputError, SampleBuffer
from engine.cache import AnalysisCacheProtocol, buffer_cache_key
from infrastructure.metrics import (
    LatencyTimer,
    record_analyze,
    record_cache_hit,
    record_cache_miss,
    record_estimator_failure,
    record_master,
)

logger = logging.getLogger(__name__)


@dataclass
class AudioAnalysisEngine:
    """Orchestrates cached, fault-tolerant analysis and preset-aware mastering.

    Attributes:
        cache: Optional result cache. None = every call analyses afresh.
        config: Analysis constants passed to the core.
        max_workers: Thread-pool size override for both analysis and
            per-channel mastering. None keeps the config's value for
            analysis and one thread per channel for mastering.

    Example:
        engine = AudioAnalysisEngine(cache=AnalysisCache())
        result = engine.analyze(buffer)
        print(result.bpm, result.key_name)

        mastered = engine.master(source, preset="streaming")
    """

    cache: AnalysisCacheProtocol | None = None
    config: AnalysisConfig = DEFAULT_ANALYSIS_CONFIG
    max_workers: int | None = None

    def __post_init__(self) -> None:
        if self.max_workers is not None:
            self.config = replace(self.config, max_workers=self.max_workers)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, buffer: SampleBuffer) -> AnalysisResult:
        """Analyse a buffer, consulting the cache first.

        Falls back to the single novelty-curve path when the ensemble
        raises unexpectedly.

        Raises:
            InvalidInputError: If buffer is None or not a SampleBuffer.
        """
        key = buffer_cache_key(buffer) if self.cache is not None and isinstance(buffer, SampleBuffer) else None
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                record_cache_hit()
                record_analyze(method="cached", status="success", latency_seconds=0.0)
                logger.debug("Analysis cache hit (%.1fs buffer)", buffer.duration_sec)
                return cached
            record_cache_miss()

        status = "success"
        with LatencyTimer() as timer:
            try:
                result = analyze(buffer, config=self.config, on_failure=_count_failure)
            except InvalidInputError:
                record_analyze(method="none", status="error", latency_seconds=0.0)
                raise
            except Exception as exc:
                logger.warning("Ensemble analysis failed, falling back to novelty path: %s", exc)
                status = "fallback"
                result = analyze_basic(buffer, config=self.config)

        record_analyze(method=result.analysis_method, status=status, latency_seconds=timer.elapsed)
        logger.info(
            "Analysed %.1fs buffer in %.2fs: %.1f BPM, %s (%s)",
            result.duration_sec,
            timer.elapsed,
            result.bpm,
            result.key_name,
            result.analysis_method,
        )

        if key is not None:
            self.cache.put(key, result)
        return result

    # ------------------------------------------------------------------
    # Mastering
    # ------------------------------------------------------------------

    def master(
        self,
        source: SampleBuffer,
        reference: SampleBuffer | None = None,
        settings: ProcessingSettings | None = None,
        *,
        preset: str | None = None,
    ) -> SampleBuffer:
        """Master a source buffer.

        Args:
            source: Buffer to process.
            reference: Buffer to match; None selects intelligent mode.
            settings: Explicit settings. Takes precedence over `preset`.
            preset: Name of a bundled preset (see available_presets()).

        Raises:
            InvalidInputError: If source is None or empty, or reference is not a SampleBuffer.
            ValueError: If the preset name is unknown.
        """
        if settings is None and preset is not None:
            settings = load_preset(preset)

        has_reference = isinstance(reference, SampleBuffer) and not reference.is_empty()
        mode = "reference" if has_reference else "intelligent"
        with LatencyTimer() as timer:
            try:
                output = master(source, reference, settings, max_workers=self.max_workers)
            except Exception:
                record_master(mode=mode, status="error", latency_seconds=0.0)
                raise

        record_master(mode=mode, status="success", latency_seconds=timer.elapsed)
        logger.info(
            "Mastered %d ch × %d samples (%s mode) in %.2fs",
            output.num_channels,
            output.num_samples,
            mode,
            timer.elapsed,
        )
        return output


def _count_failure(task: str, exc: Exception) -> None:
    record_estimator_failure(task)
