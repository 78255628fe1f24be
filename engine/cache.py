"""
Analysis result cache with TTL (Time-To-Live) and LRU (Least Recently Used) eviction.

Skips re-analysis when the same audio is analysed again (e.g. a track
re-submitted after a mastering preview). The core analysis never sees the
cache; the engine consults it.
"""

from __future__ import annotations

import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Protocol, runtime_checkable

from core.audio.types import AnalysisResult
from core.types import SampleBuffer


def buffer_cache_key(buffer: SampleBuffer) -> str:
    """
    Generate a cache key from buffer contents.

    SHA256 over the sample rate, the shape and the raw float64 sample bytes,
    so any change to a single sample produces a different key.

    Args:
        buffer: Audio buffer

    Returns:
        Hex-encoded SHA256 hash
    """
    digest = hashlib.sha256()
    digest.update(f"{buffer.sample_rate}:{buffer.num_channels}x{buffer.num_samples}".encode("utf-8"))
    digest.update(buffer.channels.tobytes())
    return digest.hexdigest()


@runtime_checkable
class AnalysisCacheProtocol(Protocol):
    """What the engine needs from a result cache.

    Keys are computed by the caller (see buffer_cache_key()), so a cache
    never touches sample data.
    """

    def get(self, key: str) -> AnalysisResult | None: ...

    def put(self, key: str, result: AnalysisResult) -> None: ...


@dataclass(frozen=True)
class CacheEntry:
    """Cached analysis with metadata."""

    result: AnalysisResult
    timestamp: float  # Unix timestamp when cached
    duration_sec: float  # Analysed buffer length, for debugging


class AnalysisCache:
    """
    Thread-safe analysis result cache with TTL and LRU eviction.

    Args:
        max_size: Maximum number of entries (default: 10)
        ttl_seconds: Time-to-live in seconds (default: 3600 = 1 hour)
    """

    def __init__(self, max_size: int = 10, ttl_seconds: float = 3600.0) -> None:
        """Initialize cache with size and TTL limits."""
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = Lock()

    def get(self, key: str) -> AnalysisResult | None:
        """
        Retrieve a cached result if available and not expired.

        Args:
            key: Content hash from buffer_cache_key()

        Returns:
            Cached AnalysisResult if found and valid, None otherwise
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            if time.time() - entry.timestamp > self.ttl_seconds:
                del self._cache[key]
                return None

            self._cache.move_to_end(key)
            return entry.result

    def put(self, key: str, result: AnalysisResult) -> None:
        """
        Store a result with the current timestamp.

        Evicts the least-recently-used entry if the cache is full.

        Args:
            key: Content hash from buffer_cache_key()
            result: Analysis result to cache
        """
        with self._lock:
            if len(self._cache) >= self.max_size and key not in self._cache:
                self._cache.popitem(last=False)

            self._cache[key] = CacheEntry(
                result=result,
                timestamp=time.time(),
                duration_sec=result.duration_sec,
            )
            self._cache.move_to_end(key)

    def clear(self) -> None:
        """Clear all cached entries."""
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        """Return current number of cached entries."""
        with self._lock:
            return len(self._cache)

    def evict_expired(self) -> int:
        """
        Remove all expired entries based on TTL.

        Returns:
            Number of entries evicted
        """
        now = time.time()
        with self._lock:
            expired = [
                key for key, entry in self._cache.items() if (now - entry.timestamp) > self.ttl_seconds
            ]
            for key in expired:
                del self._cache[key]
        return len(expired)
