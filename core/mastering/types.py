"""
core/mastering/types.py — Frozen data types for reference-matching mastering.

Design:
    - No I/O, no side effects, no state.
    - Per-band data is stored as tuples aligned with the canonical band
      constants below instead of dicts, so profiles stay hashable.
    - ProcessingSettings validates itself at construction (a config error is
      a caller error, raised as ValueError).
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Canonical band layouts
# ---------------------------------------------------------------------------

# (centre Hz, Q) of the 9-band peaking EQ, low to high
EQ_BANDS: tuple[tuple[float, float], ...] = (
    (60.0, 0.7),  # sub bass
    (120.0, 0.8),  # bass
    (250.0, 0.9),  # low mid
    (500.0, 1.0),  # mid
    (1000.0, 1.0),  # upper mid
    (2000.0, 0.9),  # presence
    (4000.0, 0.8),  # high presence
    (8000.0, 0.7),  # brilliance
    (12000.0, 0.6),  # air
)

EQ_BAND_FREQS: tuple[float, ...] = tuple(freq for freq, _ in EQ_BANDS)

PSYCHOACOUSTIC_FREQS: tuple[float, ...] = (125.0, 250.0, 500.0, 1000.0, 2000.0, 4000.0, 8000.0)


# ---------------------------------------------------------------------------
# ReferenceProfile
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReferenceProfile:
    """Measured (or synthesized) target for the corrector.

    Invariants:
        rms >= 0.0, peak >= 0.0
        len(frequency_response) == len(EQ_BAND_FREQS)
        len(psychoacoustic_profile) == len(PSYCHOACOUSTIC_FREQS)
    """

    rms: float
    """Root-mean-square level of the first channel (linear)."""

    peak: float
    """Maximum absolute sample of the first channel (linear)."""

    lufs_approx: float
    """Loudness approximation: -23 + 20·log10(rms)."""

    dynamic_range_db: float
    """20·log10 of the mean of the loudest 10% of 100 ms block RMS values."""

    stereo_width: float
    """1 - mean(L·R); 1.0 for mono."""

    frequency_response: tuple[float, ...]
    """Relative gain at each EQ band centre (1.0 = band average)."""

    psychoacoustic_profile: tuple[float, ...]
    """Level above the hearing threshold (dB) at each psychoacoustic band."""

    source: str = "reference"
    """'reference' when measured from a reference buffer, 'intelligent' when synthesized."""

    def response_at(self, freq: float) -> float:
        """Target gain at an EQ band centre; 1.0 for an unknown or zero band."""
        for band, value in zip(EQ_BAND_FREQS, self.frequency_response):
            if band == freq:
                return value if value > 0.0 else 1.0
        return 1.0

    def frequency_response_dict(self) -> dict[float, float]:
        return dict(zip(EQ_BAND_FREQS, self.frequency_response))

    def psychoacoustic_dict(self) -> dict[float, float]:
        return dict(zip(PSYCHOACOUSTIC_FREQS, self.psychoacoustic_profile))


# ---------------------------------------------------------------------------
# ProcessingSettings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProcessingSettings:
    """User-facing mastering controls.

    Attributes:
        output_level_db: Gain applied to the target RMS, in dB.
        compression_ratio: Full-strength compressor ratio (>= 1). Each pass
            uses a gentler fraction of it.
        eq_intensity: How strongly the EQ follows the target response, 0–1.
            0 disables the EQ stage entirely.
        stereo_width: Side-channel scale for 2-channel output, 0–2.
            1.0 leaves the image untouched, 0.0 collapses to mono.
        auto_normalize: Scale the final peak down to 0.95 when it exceeds it.
        enable_limiting: Hard-clip the final output at ±0.95.
        psychoacoustic_processing: Run the perceptual spectral weighting stage.

    Example:
        >>> settings = ProcessingSettings(compression_ratio=3.0, eq_intensity=0.8)
        >>> out = master(source, reference, settings)
    """

    output_level_db: float = 0.0
    compression_ratio: float = 2.0
    eq_intensity: float = 0.5
    stereo_width: float = 1.0
    auto_normalize: bool = True
    enable_limiting: bool = True
    psychoacoustic_processing: bool = True

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.compression_ratio < 1.0:
            raise ValueError(f"compression_ratio must be >= 1.0, got {self.compression_ratio}")
        if not 0.0 <= self.eq_intensity <= 1.0:
            raise ValueError(f"eq_intensity must be in [0, 1], got {self.eq_intensity}")
        if not 0.0 <= self.stereo_width <= 2.0:
            raise ValueError(f"stereo_width must be in [0, 2], got {self.stereo_width}")


DEFAULT_SETTINGS = ProcessingSettings()
"""Gentle defaults: 2:1 compression, half-strength EQ, unchanged width."""
