"""
engine — Orchestration around the pure core: result caching, fallback
analysis, preset resolution, metrics and logging.

Public API:
    AudioAnalysisEngine    analyze(buffer), master(source, reference, settings, preset)
    AnalysisCache          thread-safe LRU + TTL result cache
    buffer_cache_key       content hash used as the cache key
"""

from engine.audio_engine import AudioAnalysisEngine
from engine.cache import AnalysisCache, AnalysisCacheProtocol, buffer_cache_key

__all__ = [
    "AudioAnalysisEngine",
    "AnalysisCache",
    "AnalysisCacheProtocol",
    "buffer_cache_key",
]
