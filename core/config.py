"""
Configuration dataclasses for the analysis ensembles.

These immutable config objects decouple the empirically tuned constants
(ensemble weights, tempo preference, chroma blend) from function signatures,
so a caller can recalibrate them without touching the algorithms.

The defaults are calibration points, not derived values: the tempo weights
and the Gaussian tempo preference were tuned by ear on dance music, and the
chroma blend was tuned against the CQT-like / CENS-like approximations in
core/audio/key.py.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TempoConfig:
    """
    Constants for the tempo ensemble and the single novelty-curve path.

    Attributes:
        onset_weight: Vote weight of the onset-interval estimator.
        autocorrelation_weight: Vote weight of the raw-signal autocorrelation estimator.
        comb_weight: Vote weight of the comb-filter estimator.
        spectral_weight: Vote weight of the spectral-peak estimator.
        group_tolerance_bpm: Candidates within this distance merge into one group.
        max_candidates: Number of ranked groups exposed as ``bpm_candidates``.
        preferred_bpm: Centre of the Gaussian tempo preference (novelty path).
        preference_sigma: Width of the Gaussian tempo preference, in BPM.
        min_bpm: Lowest tempo any estimator reports.
        max_bpm: Highest tempo any estimator reports.
        default_bpm: Returned when no estimate can be made.
    """

    onset_weight: float = 0.30
    autocorrelation_weight: float = 0.35
    comb_weight: float = 0.20
    spectral_weight: float = 0.15
    group_tolerance_bpm: float = 3.0
    max_candidates: int = 5
    preferred_bpm: float = 120.0
    preference_sigma: float = 50.0
    min_bpm: float = 60.0
    max_bpm: float = 200.0
    default_bpm: float = 120.0

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        weights = (
            self.onset_weight,
            self.autocorrelation_weight,
            self.comb_weight,
            self.spectral_weight,
        )
        if any(w < 0.0 for w in weights):
            raise ValueError(f"ensemble weights must be non-negative, got {weights}")
        if self.group_tolerance_bpm <= 0.0:
            raise ValueError(
                f"group_tolerance_bpm must be positive, got {self.group_tolerance_bpm}"
            )
        if self.max_candidates <= 0:
            raise ValueError(f"max_candidates must be positive, got {self.max_candidates}")
        if self.preference_sigma <= 0.0:
            raise ValueError(f"preference_sigma must be positive, got {self.preference_sigma}")
        if not 0.0 < self.min_bpm < self.max_bpm:
            raise ValueError(
                f"BPM range must satisfy 0 < min_bpm < max_bpm, got "
                f"({self.min_bpm}, {self.max_bpm})"
            )


@dataclass(frozen=True)
class KeyConfig:
    """
    Constants for the chroma ensemble and template matching.

    Attributes:
        cqt_weight: Blend weight of the CQT-like chroma.
        cens_weight: Blend weight of the CENS-like (median-smoothed) chroma.
        stft_weight: Blend weight of the plain STFT chroma.
        krumhansl_weight: Share of the Krumhansl-Schmuckler correlation in a key score.
        temperley_weight: Share of the Temperley correlation in a key score.
        max_candidates: Number of ranked keys exposed as ``key_candidates``.
    """

    cqt_weight: float = 0.40
    cens_weight: float = 0.35
    stft_weight: float = 0.25
    krumhansl_weight: float = 0.6
    temperley_weight: float = 0.4
    max_candidates: int = 5

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        blend = (self.cqt_weight, self.cens_weight, self.stft_weight)
        if any(w < 0.0 for w in blend) or sum(blend) <= 0.0:
            raise ValueError(f"chroma weights must be non-negative with a positive sum, got {blend}")
        if self.krumhansl_weight < 0.0 or self.temperley_weight < 0.0:
            raise ValueError("template weights must be non-negative")
        if self.max_candidates <= 0:
            raise ValueError(f"max_candidates must be positive, got {self.max_candidates}")


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Top-level configuration for ``analyze()``.

    Attributes:
        tempo: Tempo ensemble constants.
        key: Chroma ensemble constants.
        max_workers: Thread-pool size for the fan-out. ``1`` runs every task
            inline on the calling thread; results are identical either way.

    Example:
        >>> config = AnalysisConfig(max_workers=1)
        >>> result = analyze(buffer, config=config)
    """

    tempo: TempoConfig = field(default_factory=TempoConfig)
    key: KeyConfig = field(default_factory=KeyConfig)
    max_workers: int = 4

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")


# Pre-defined configurations

DEFAULT_ANALYSIS_CONFIG = AnalysisConfig()
"""Default configuration: calibrated weights, 4 worker threads."""

SEQUENTIAL_ANALYSIS_CONFIG = AnalysisConfig(max_workers=1)
"""Same constants, every task run inline on the calling thread."""
