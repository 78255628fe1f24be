"""
core/mastering/engine.py — Reference-matching mastering entry point.

    master(source, reference, settings)
        profile   measure_profile(reference) or intelligent_target(source)
        correct   3-pass corrector per channel (channels run concurrently)
        finalize  exact RMS, limiter, normalizer per channel
        width     mid/side stereo width (2 channels, width != 1)

The output has exactly the source's channel count, length and sample rate.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from core.mastering.corrector import correct_channel, finalize_channel
from core.mastering.filters import apply_stereo_width
from core.mastering.profile import intelligent_target, measure_profile
from core.mastering.types import DEFAULT_SETTINGS, ProcessingSettings, ReferenceProfile
from core.types import InvalidInputError, SampleBuffer

logger = logging.getLogger(__name__)


def resolve_profile(source: SampleBuffer, reference: SampleBuffer | None) -> ReferenceProfile:
    """Measure the reference, or synthesize a target when there is none.

    A zero-length reference counts as no reference.
    """
    if reference is None or reference.is_empty():
        return intelligent_target(source)
    return measure_profile(reference)


def master(
    source: SampleBuffer,
    reference: SampleBuffer | None = None,
    settings: ProcessingSettings | None = None,
    *,
    max_workers: int | None = None,
) -> SampleBuffer:
    """Master `source` toward `reference` (or an intelligent target).

    Args:
        source:      Buffer to process. Never modified.
        reference:   Buffer to match. None selects intelligent mode.
        settings:    Processing controls; defaults to ProcessingSettings().
        max_workers: Threads for per-channel processing. None = one per
                     channel, 1 = sequential.

    Returns:
        New SampleBuffer with the source's shape and sample rate.

    Raises:
        InvalidInputError: If source is None or has no samples, or if
            reference is not a SampleBuffer.
    """
    if source is None:
        raise InvalidInputError("No source buffer supplied")
    if not isinstance(source, SampleBuffer):
        raise InvalidInputError(f"Expected SampleBuffer, got {type(source).__name__}")
    if source.is_empty():
        raise InvalidInputError("Source buffer has no samples")
    if reference is not None and not isinstance(reference, SampleBuffer):
        raise InvalidInputError(f"Expected SampleBuffer reference, got {type(reference).__name__}")

    settings = settings or DEFAULT_SETTINGS
    profile = resolve_profile(source, reference)
    sr = source.sample_rate
    logger.debug(
        "Mastering %d ch × %d samples toward %s profile (rms %.4f)",
        source.num_channels,
        source.num_samples,
        profile.source,
        profile.rms,
    )

    def process(channel: np.ndarray) -> np.ndarray:
        return finalize_channel(correct_channel(channel, sr, profile, settings), profile, settings)

    channels = list(source.copy_channels())
    workers = max_workers if max_workers is not None else len(channels)
    if workers <= 1:
        processed = [process(ch) for ch in channels]
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            processed = list(executor.map(process, channels))

    if len(processed) == 2 and settings.stereo_width != 1.0:
        processed = list(apply_stereo_width(processed[0], processed[1], settings.stereo_width))

    return SampleBuffer(channels=np.vstack(processed), sample_rate=sr)
