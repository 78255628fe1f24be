"""
core/audio/tempo.py — Tempo estimation: four-voice ensemble and novelty path.

Two ways to estimate BPM from a mono signal:

    1. Ensemble — four independent estimators vote, each with its own weight:
         onset           spectral-flux onsets → inter-onset interval histogram
         autocorrelation raw-signal autocorrelation peaks (lag read as hops)
         comb            comb-filter energy at 80..180 BPM
         spectral        low-frequency peaks of the whole-buffer power spectrum
       Weighted candidates within ±3 BPM merge into groups; the group with the
       highest confidence plus a dance-tempo bonus becomes the primary tempo.

    2. Novelty — one spectral-flux novelty curve, autocorrelated, weighted by a
       Gaussian tempo preference, with a metrical-multiple check on the winner.
       Used when only a basic BPM is needed.

Design:
    - Estimators share the signature (samples, sample_rate, *, config) and are
      registered in a closed `TempoMethod` → function table, so the ensemble
      can run them independently (and concurrently) and join in a fixed order.
    - All functions are pure; nothing mutates `samples`.
    - Every BPM an estimator reports lies in [config.min_bpm, config.max_bpm].
    - Rounding is half-up, so 127.5 BPM reports as 128.

The ensemble weights (0.30 / 0.35 / 0.20 / 0.15) and the Gaussian preference
(120 BPM, σ = 50) are empirical calibration points kept in `TempoConfig`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np

from core.audio.spectral import frame_magnitudes
from core.audio.types import TempoCandidate
from core.config import TempoConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_HOP = 512  # frame hop shared by every tempo path
_ONSET_WINDOW = 1024
_ONSET_FLUX_THRESHOLD = 0.1
_ONSET_CONFIDENCE = 0.7
_AUTOCORR_CONFIDENCE = 0.8
_SPECTRAL_CONFIDENCE = 0.6
_ESTIMATOR_TOP_N = 3
_COMB_BPMS = tuple(range(80, 181, 2))
_NOVELTY_WINDOW = 2048
_NOVELTY_SECONDS = 4.0  # longest beat period searched by the novelty path
_PEAK_THRESHOLD = 0.05
_EMPTY_POOL_CONFIDENCE = 0.1
_DIRECT_AUTOCORR_MAX_LAG = 256  # beyond this, autocorrelate via FFT

_DEFAULT_CONFIG = TempoConfig()


class TempoMethod(Enum):
    """The four voices of the tempo ensemble, in join order."""

    ONSET = "onset"
    AUTOCORRELATION = "autocorrelation"
    COMB = "comb"
    SPECTRAL = "spectral"


@dataclass(frozen=True)
class TempoEstimate:
    """Joined result of the tempo ensemble."""

    bpm: float
    """Primary tempo."""

    confidence: float
    """Primary confidence including the dance-tempo bonus, clipped to [0, 1]."""

    candidates: tuple[TempoCandidate, ...]
    """Top ranked groups (pre-bonus order)."""


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from -inf (127.5 → 128)."""
    return int(math.floor(value + 0.5))


def normalized_autocorrelation(x: np.ndarray, max_lag: int) -> np.ndarray:
    """Autocorrelation r[lag] = Σ x[i]·x[i+lag] / (N - lag) for lag in [0, max_lag).

    Lags at or beyond the signal length are 0.0.
    """
    n = x.shape[0]
    if max_lag <= 0:
        return np.zeros(0)
    result = np.zeros(max_lag, dtype=np.float64)
    usable = min(max_lag, n)
    if usable == 0:
        return result

    if usable <= _DIRECT_AUTOCORR_MAX_LAG:
        for lag in range(usable):
            result[lag] = float(np.dot(x[: n - lag], x[lag:]))
    else:
        nfft = 1 << (2 * n - 1).bit_length()
        spectrum = np.fft.rfft(x, nfft)
        result[:usable] = np.fft.irfft(spectrum * np.conj(spectrum), nfft)[:usable]

    result[:usable] /= n - np.arange(usable, dtype=np.float64)
    return result


def local_maxima(values: np.ndarray) -> np.ndarray:
    """Indices i (1 <= i <= len-2) strictly greater than both neighbours."""
    if values.shape[0] < 3:
        return np.zeros(0, dtype=np.int64)
    inner = values[1:-1]
    mask = (inner > values[:-2]) & (inner > values[2:])
    return np.nonzero(mask)[0] + 1


def spectral_flux(samples: np.ndarray, size: int, hop: int, *, windowed: bool, normalize: bool) -> np.ndarray:
    """Half-wave rectified spectral flux per frame.

    The first frame is compared against an all-zero spectrum.
    """
    flux: list[np.ndarray] = []
    previous = np.zeros(size // 2, dtype=np.float64)
    for block in frame_magnitudes(samples, size, hop, windowed=windowed, normalize=normalize):
        stacked = np.vstack([previous[np.newaxis, :], block])
        flux.append(np.sum(np.maximum(np.diff(stacked, axis=0), 0.0), axis=1))
        previous = block[-1]
    if not flux:
        return np.zeros(0)
    return np.concatenate(flux)


def _in_range(bpm: int, config: TempoConfig) -> bool:
    return config.min_bpm <= bpm <= config.max_bpm


# ---------------------------------------------------------------------------
# Estimators
# ---------------------------------------------------------------------------


def estimate_onset(
    samples: np.ndarray, sample_rate: int, *, config: TempoConfig = _DEFAULT_CONFIG
) -> list[TempoCandidate]:
    """Inter-onset interval histogram over spectral-flux onsets.

    Onsets are frames (window 1024, hop 512, unwindowed magnitude / N) whose
    flux against the previous frame exceeds 0.1. Each interval votes for
    round(60 / interval); the three most voted BPMs are returned (ties go to
    the lower BPM). No intervals at all → a single 120 BPM candidate.
    """
    flux = spectral_flux(samples, _ONSET_WINDOW, _HOP, windowed=False, normalize=True)
    # The first frame has no predecessor and never counts as an onset.
    onset_frames = np.nonzero(flux[1:] > _ONSET_FLUX_THRESHOLD)[0] + 1
    onset_times = onset_frames * _HOP / float(sample_rate)
    intervals = np.diff(onset_times)

    if intervals.size == 0:
        return [TempoCandidate(bpm=config.default_bpm, confidence=_ONSET_CONFIDENCE)]

    histogram: dict[int, int] = {}
    for interval in intervals:
        bpm = round_half_up(60.0 / float(interval))
        if _in_range(bpm, config):
            histogram[bpm] = histogram.get(bpm, 0) + 1

    ranked = sorted(histogram, key=lambda b: (-histogram[b], b))
    return [
        TempoCandidate(bpm=float(b), confidence=_ONSET_CONFIDENCE)
        for b in ranked[:_ESTIMATOR_TOP_N]
    ]


def estimate_autocorrelation(
    samples: np.ndarray, sample_rate: int, *, config: TempoConfig = _DEFAULT_CONFIG
) -> list[TempoCandidate]:
    """Local maxima of the raw-signal autocorrelation, lag read in 512-sample hops.

    Lag i maps to round(60·sr / (i·512)). Only lags up to N/4 are searched;
    the first three in-range peaks are returned.
    """
    max_lag = samples.shape[0] // 4
    # BPM falls with lag, so nothing past the slowest in-range lag can qualify.
    slowest_lag = int(60.0 * sample_rate / ((config.min_bpm - 0.5) * _HOP)) + 2
    ac = normalized_autocorrelation(samples, min(max_lag, slowest_lag + 1))

    bpms: list[int] = []
    for lag in local_maxima(ac):
        bpm = round_half_up(60.0 * sample_rate / (int(lag) * _HOP))
        if _in_range(bpm, config):
            bpms.append(bpm)
            if len(bpms) == _ESTIMATOR_TOP_N:
                break
    return [TempoCandidate(bpm=float(b), confidence=_AUTOCORR_CONFIDENCE) for b in bpms]


def comb_score(samples: np.ndarray, sample_rate: int, bpm: float) -> float:
    """Mean of |x[i]|·|x[i + period]| over i = 0, 512, … while i < N - period."""
    period = 60.0 / bpm * sample_rate
    offsets = np.arange(0, samples.shape[0] - period, _HOP, dtype=np.int64)
    if offsets.size == 0:
        return 0.0
    current = np.abs(samples[offsets])
    delayed = np.abs(samples[offsets + int(math.floor(period))])
    return float(np.mean(current * delayed))


def estimate_comb(
    samples: np.ndarray, sample_rate: int, *, config: TempoConfig = _DEFAULT_CONFIG
) -> list[TempoCandidate]:
    """Comb-filter energy for every even BPM in 80..180, best first.

    Confidence is the score relative to the best score (0.0 when every
    score is zero).
    """
    scores = [(bpm, comb_score(samples, sample_rate, bpm)) for bpm in _COMB_BPMS]
    best = max(score for _, score in scores)
    ranked = sorted(scores, key=lambda item: item[1], reverse=True)
    return [
        TempoCandidate(bpm=float(bpm), confidence=score / best if best > 0.0 else 0.0)
        for bpm, score in ranked
        if _in_range(bpm, config)
    ]


def estimate_spectral(
    samples: np.ndarray, sample_rate: int, *, config: TempoConfig = _DEFAULT_CONFIG
) -> list[TempoCandidate]:
    """Peaks of the whole-buffer power spectrum read as beat frequencies.

    Bin k (frequency k·sr/N) maps to round(freq·60); the first three
    in-range local maxima are returned.
    """
    n = samples.shape[0]
    if n < 2:
        return []
    power = np.abs(np.fft.rfft(samples)[: n // 2]) ** 2 / float(n * n)
    resolution = float(sample_rate) / float(n)

    bpms: list[int] = []
    for k in local_maxima(power):
        bpm = round_half_up(int(k) * resolution * 60.0)
        if bpm > config.max_bpm:
            break
        if _in_range(bpm, config):
            bpms.append(bpm)
            if len(bpms) == _ESTIMATOR_TOP_N:
                break
    return [TempoCandidate(bpm=float(b), confidence=_SPECTRAL_CONFIDENCE) for b in bpms]


TempoEstimatorFn = Callable[..., list[TempoCandidate]]

ESTIMATORS: Mapping[TempoMethod, TempoEstimatorFn] = {
    TempoMethod.ONSET: estimate_onset,
    TempoMethod.AUTOCORRELATION: estimate_autocorrelation,
    TempoMethod.COMB: estimate_comb,
    TempoMethod.SPECTRAL: estimate_spectral,
}


def method_weight(method: TempoMethod, config: TempoConfig) -> float:
    """Ensemble vote weight of one estimator."""
    return {
        TempoMethod.ONSET: config.onset_weight,
        TempoMethod.AUTOCORRELATION: config.autocorrelation_weight,
        TempoMethod.COMB: config.comb_weight,
        TempoMethod.SPECTRAL: config.spectral_weight,
    }[method]


# ---------------------------------------------------------------------------
# Ensemble aggregation
# ---------------------------------------------------------------------------


class _Group:
    """Running accumulator for candidates within tolerance of each other."""

    __slots__ = ("bpm", "confidence", "count", "_bpm_sum", "_weighted_sum")

    def __init__(self, candidate: TempoCandidate) -> None:
        self.bpm = candidate.bpm
        self.confidence = candidate.confidence
        self.count = 1
        self._bpm_sum = candidate.bpm
        self._weighted_sum = candidate.bpm * candidate.confidence

    def add(self, candidate: TempoCandidate) -> None:
        self.confidence += candidate.confidence
        self.count += 1
        self._bpm_sum += candidate.bpm
        self._weighted_sum += candidate.bpm * candidate.confidence
        if self.confidence > 0.0:
            self.bpm = self._weighted_sum / self.confidence
        else:
            self.bpm = self._bpm_sum / self.count


def group_candidates(
    candidates: Sequence[TempoCandidate], tolerance: float = 3.0
) -> list[TempoCandidate]:
    """Merge candidates within `tolerance` BPM of a group's running mean.

    Each candidate joins the first group whose current BPM is within
    tolerance. A group's BPM is the confidence-weighted mean of its members
    (plain mean while its total confidence is zero) and its confidence is
    the sum. Groups are returned sorted by confidence, highest first; equal
    confidences keep creation order.
    """
    groups: list[_Group] = []
    for candidate in candidates:
        for group in groups:
            if abs(group.bpm - candidate.bpm) <= tolerance:
                group.add(candidate)
                break
        else:
            groups.append(_Group(candidate))

    ranked = sorted(groups, key=lambda g: g.confidence, reverse=True)
    return [TempoCandidate(bpm=g.bpm, confidence=g.confidence) for g in ranked]


def dance_tempo_bonus(bpm: float) -> float:
    """+0.10 inside [120, 140], +0.05 more inside [128, 132]."""
    bonus = 0.0
    if 120.0 <= bpm <= 140.0:
        bonus += 0.10
    if 128.0 <= bpm <= 132.0:
        bonus += 0.05
    return bonus


def select_primary(groups: Sequence[TempoCandidate], config: TempoConfig = _DEFAULT_CONFIG) -> TempoCandidate:
    """Pick the group maximising confidence + dance bonus.

    Ties keep the earlier group. An empty pool yields the default tempo at
    confidence 0.1. The returned confidence includes the bonus and is
    clipped to [0, 1].
    """
    if not groups:
        return TempoCandidate(bpm=config.default_bpm, confidence=_EMPTY_POOL_CONFIDENCE)

    best = groups[0]
    best_score = best.confidence
    for group in groups:
        adjusted = group.confidence + dance_tempo_bonus(group.bpm)
        if adjusted > best_score:
            best, best_score = group, adjusted
    return TempoCandidate(bpm=best.bpm, confidence=float(np.clip(best_score, 0.0, 1.0)))


def combine_estimates(
    results: Mapping[TempoMethod, Sequence[TempoCandidate]],
    config: TempoConfig = _DEFAULT_CONFIG,
) -> TempoEstimate:
    """Weight, pool, group and rank the candidates of every estimator.

    Pooling follows `TempoMethod` declaration order regardless of the order
    in which the estimators finished.
    """
    pool: list[TempoCandidate] = []
    for method in TempoMethod:
        weight = method_weight(method, config)
        for candidate in results.get(method, ()):
            pool.append(TempoCandidate(bpm=candidate.bpm, confidence=candidate.confidence * weight))

    groups = group_candidates(pool, config.group_tolerance_bpm)
    primary = select_primary(groups, config)
    logger.debug(
        "Tempo ensemble: %d candidates → %d groups, primary %.1f BPM (%.2f)",
        len(pool),
        len(groups),
        primary.bpm,
        primary.confidence,
    )
    return TempoEstimate(
        bpm=primary.bpm,
        confidence=primary.confidence,
        candidates=tuple(groups[: config.max_candidates]),
    )


def estimate_tempo_ensemble(
    samples: np.ndarray, sample_rate: int, *, config: TempoConfig = _DEFAULT_CONFIG
) -> TempoEstimate:
    """Run every estimator sequentially and combine them."""
    results = {
        method: fn(samples, sample_rate, config=config) for method, fn in ESTIMATORS.items()
    }
    return combine_estimates(results, config)


# ---------------------------------------------------------------------------
# Single novelty-curve path
# ---------------------------------------------------------------------------


def novelty_curve(samples: np.ndarray) -> np.ndarray:
    """Hann-windowed spectral flux (window 2048, hop 512), scaled to max 1."""
    novelty = spectral_flux(samples, _NOVELTY_WINDOW, _HOP, windowed=True, normalize=False)
    peak = float(np.max(novelty)) if novelty.size else 0.0
    if peak > 0.0:
        novelty = novelty / peak
    return novelty


def estimate_tempo_novelty(
    samples: np.ndarray, sample_rate: int, *, config: TempoConfig = _DEFAULT_CONFIG
) -> float:
    """Basic BPM from the autocorrelated novelty curve.

    Steps:
        1. Autocorrelate the novelty curve for lags up to 4 s worth of hops.
        2. Weight lag l by exp(-(bpm(l) - 120)² / (2·50²)).
        3. Keep peaks with prominence and value above 0.05; take the strongest.
        4. Score its ×¼ ×⅓ ×½ ×1 ×2 ×3 ×4 multiples inside the BPM range by the
           autocorrelation at lags p, 2p, 3p, p/2 and p/3.

    Returns:
        Best multiple rounded to an integer BPM, or the default tempo when
        the curve is empty or has no usable peak.
    """
    novelty = novelty_curve(samples)
    if novelty.size == 0:
        return config.default_bpm

    max_lag = int(math.floor(sample_rate * _NOVELTY_SECONDS / 60.0))
    ac = normalized_autocorrelation(novelty, max_lag)
    if ac.size == 0:
        return config.default_bpm
    ac[0] = 0.0

    hop_time = _HOP / float(sample_rate)
    lags = np.arange(1, max_lag, dtype=np.float64)
    lag_bpm = 60.0 / (lags * hop_time)
    ac[1:] *= np.exp(-((lag_bpm - config.preferred_bpm) ** 2) / (2.0 * config.preference_sigma**2))

    peaks = [
        int(i)
        for i in range(1, ac.size - 1)
        if ac[i] - max(ac[i - 1], ac[i + 1]) > _PEAK_THRESHOLD and ac[i] > _PEAK_THRESHOLD
    ]
    if not peaks:
        return config.default_bpm

    best_period = max(peaks, key=lambda p: (ac[p], -p))
    bpm = 60.0 / (best_period * hop_time)

    def _ac_at(lag: float) -> float:
        index = round_half_up(lag)
        return float(ac[index]) if 0 <= index < ac.size else 0.0

    best_score = 0.0
    best_bpm = config.default_bpm
    for factor in (0.25, 1.0 / 3.0, 0.5, 1.0, 2.0, 3.0, 4.0):
        candidate = bpm * factor
        if not config.min_bpm <= candidate <= config.max_bpm:
            continue
        period = 60.0 / candidate / hop_time
        score = sum(_ac_at(period * k) for k in (1.0, 2.0, 3.0, 0.5, 1.0 / 3.0))
        if score > best_score:
            best_score, best_bpm = score, candidate

    return float(round_half_up(best_bpm))
