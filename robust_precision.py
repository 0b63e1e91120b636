"""
Robust precision at a quality threshold.

For every quality cutoff ``qt`` a sample is *acceptable* iff its quality is
>= ``qt``. The decision rule rejects a sample iff its uncertainty score is
above a threshold ``tau``. ``tau`` is calibrated so that at most
``target_fnr`` of the acceptable samples are rejected, re-estimated on
bootstrap resamples and aggregated (mean by default). Precision of the
resulting accept decision is then measured on the original samples.

Missing values (no acceptable sample, nothing accepted, every resample
missing) are returned as ``None``, never as NaN.
"""
import math
import numbers
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

# numerical slack when comparing an empirical FNR with the target
FNR_TOLERANCE = 1e-12

AGGREGATION_MODES = ("mean", "median", "min", "max", "percentile")

RandomState = Union[np.random.Generator, int, None]


def _check_sweep(values: Sequence[float], name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        raise ValueError(f"{name} must be a non-empty 1-d sequence")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite values: {list(values)}")
    return arr


def validate_inputs(
    scores: Sequence[float],
    qualities: Sequence[float],
    quality_thresholds: Sequence[float],
    quantile_grid: Sequence[float],
    bootstrap_count: int,
    aggregation_mode: str,
    target_fnr: float,
    percentile: float = 0.95,
) -> None:
    """Fail fast on caller contract violations, before any computation starts."""
    if len(scores) != len(qualities):
        raise ValueError(
            f"scores and qualities must have the same length ({len(scores)} != {len(qualities)})")
    _check_sweep(quality_thresholds, "quality_thresholds")
    grid = _check_sweep(quantile_grid, "quantile_grid")
    if np.any(grid < 0.0) or np.any(grid > 1.0):
        raise ValueError("quantile_grid values must lie in [0, 1]")
    if (isinstance(bootstrap_count, bool) or not isinstance(bootstrap_count, numbers.Integral)
            or bootstrap_count <= 0):
        raise ValueError(f"bootstrap_count must be a positive integer, got {bootstrap_count!r}")
    if not _is_probability(target_fnr):
        raise ValueError(f"target_fnr must lie in [0, 1], got {target_fnr!r}")
    if aggregation_mode not in AGGREGATION_MODES:
        raise ValueError(f"Unknown aggregation mode '{aggregation_mode}', expected one of {AGGREGATION_MODES}")
    if not _is_probability(percentile):
        raise ValueError(f"percentile must lie in [0, 1], got {percentile!r}")


def _is_probability(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value) and 0.0 <= value <= 1.0


def valid_pairs(scores: Sequence[float], qualities: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Drop every pair with a non-finite value in either coordinate."""
    x = np.asarray(scores, dtype=float)
    y = np.asarray(qualities, dtype=float)
    keep = np.isfinite(x) & np.isfinite(y)
    return x[keep], y[keep]


def calibrate_threshold(
    acceptable_scores: np.ndarray,
    target_fnr: float,
    quantile_grid: Sequence[float],
) -> Optional[float]:
    """
    Smallest grid quantile of the acceptable scores that rejects at most
    ``target_fnr`` of them.

    Quantiles use linear interpolation between order statistics. Since the
    candidates grow with ``q``, the minimum over the admissible candidates is
    also the one with the smallest ``q``.

    Returns None when there is no acceptable sample, or when no grid point
    meets the target (only possible if the grid does not contain 1.0).
    """
    acceptable_scores = np.asarray(acceptable_scores, dtype=float)
    if acceptable_scores.size == 0:
        return None

    candidates = np.quantile(acceptable_scores, np.asarray(quantile_grid, dtype=float), method="linear")
    rejected = (acceptable_scores[None, :] > candidates[:, None]).mean(axis=1)
    admissible = rejected <= target_fnr + FNR_TOLERANCE
    if not admissible.any():
        return None
    return float(candidates[admissible].min())


def bootstrap_thresholds(
    scores: np.ndarray,
    qualities: np.ndarray,
    quality_threshold: float,
    quantile_grid: Sequence[float],
    bootstrap_count: int,
    target_fnr: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    Calibrated thresholds of ``bootstrap_count`` resamples (with replacement,
    same size as the input). Resamples without acceptable samples are left out.
    """
    n = len(scores)
    thresholds = []
    if n == 0:
        return np.asarray(thresholds, dtype=float)

    for _ in range(bootstrap_count):
        idx = rng.integers(0, n, size=n)
        xb = scores[idx]
        yb = qualities[idx]
        th = calibrate_threshold(xb[yb >= quality_threshold], target_fnr, quantile_grid)
        if th is not None:
            thresholds.append(th)
    return np.asarray(thresholds, dtype=float)


_AGGREGATORS: Dict[str, Callable[[np.ndarray], float]] = {
    "mean": np.mean,
    "median": np.median,
    "min": np.min,
    "max": np.max,
}


def aggregate_thresholds(values: np.ndarray, aggregation_mode: str = "mean",
                         percentile: float = 0.95) -> Optional[float]:
    """
    Combine bootstrap thresholds into one robust value (None if there are none).
    The result is clamped to [min, max] of the inputs, since floating point
    summation can push a mean of identical values one ULP past them.
    """
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        return None
    if aggregation_mode == "percentile":
        agg = np.quantile(values, percentile, method="linear")
    else:
        try:
            aggregator = _AGGREGATORS[aggregation_mode]
        except KeyError:
            raise ValueError(f"Unknown aggregation mode '{aggregation_mode}'") from None
        agg = aggregator(values)
    return float(np.clip(agg, values.min(), values.max()))


def precision_at_threshold(
    scores: np.ndarray,
    qualities: np.ndarray,
    threshold: Optional[float],
    quality_threshold: float,
) -> Optional[float]:
    """Fraction of accepted samples (score <= threshold) that are acceptable."""
    if threshold is None:
        return None
    accepted = np.asarray(scores) <= threshold
    n_accepted = int(accepted.sum())
    if n_accepted == 0:
        return None
    true_positives = int((accepted & (np.asarray(qualities) >= quality_threshold)).sum())
    return true_positives / n_accepted


def false_negative_rate(
    scores: np.ndarray,
    qualities: np.ndarray,
    threshold: Optional[float],
    quality_threshold: float,
) -> Optional[float]:
    """Fraction of acceptable samples rejected by the threshold."""
    if threshold is None:
        return None
    acceptable = np.asarray(qualities) >= quality_threshold
    n_acceptable = int(acceptable.sum())
    if n_acceptable == 0:
        return None
    rejected = int((acceptable & (np.asarray(scores) > threshold)).sum())
    return rejected / n_acceptable


def _as_generator(rng: RandomState) -> np.random.Generator:
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def robust_point(
    scores: np.ndarray,
    qualities: np.ndarray,
    quality_threshold: float,
    quantile_grid: Sequence[float],
    bootstrap_count: int,
    aggregation_mode: str,
    target_fnr: float,
    rng: np.random.Generator,
    percentile: float = 0.95,
) -> Tuple[Optional[float], Optional[float]]:
    """Robust threshold and its precision for a single quality cutoff."""
    boot = bootstrap_thresholds(scores, qualities, quality_threshold, quantile_grid,
                                bootstrap_count, target_fnr, rng)
    threshold = aggregate_thresholds(boot, aggregation_mode, percentile)
    precision = precision_at_threshold(scores, qualities, threshold, quality_threshold)
    return threshold, precision


def compute_robust_precision(
    scores: Sequence[float],
    qualities: Sequence[float],
    quality_thresholds: Sequence[float],
    quantile_grid: Sequence[float],
    bootstrap_count: int,
    aggregation_mode: str = "mean",
    target_fnr: float = 0.05,
    rng: RandomState = None,
    percentile: float = 0.95,
) -> Tuple[List[Optional[float]], List[Optional[float]]]:
    """
    Calibrated rejection thresholds and precisions along a quality sweep.

    Parameters
    ----------
    scores, qualities : sequences of float
        Paired uncertainty and quality scores (same length). Non-finite pairs
        are ignored.
    quality_thresholds : sequence of float
        Quality cutoffs, processed in the given order.
    quantile_grid : sequence of float
        Probabilities in [0, 1] searched for candidate thresholds.
    bootstrap_count : int
        Number of resamples per cutoff.
    aggregation_mode : str
        One of ``AGGREGATION_MODES``.
    target_fnr : float
        Tolerated fraction of acceptable samples wrongly rejected.
    rng : numpy Generator or int seed
        Source of randomness. One child generator per cutoff is derived from it
        up front, so cutoffs can be evaluated in any order.
    percentile : float
        Level used by the "percentile" aggregation.

    Returns
    -------
    thresholds, precisions : lists of Optional[float]
        One entry per quality cutoff; None marks a missing value.
    """
    validate_inputs(scores, qualities, quality_thresholds, quantile_grid,
                    bootstrap_count, aggregation_mode, target_fnr, percentile)

    x, y = valid_pairs(scores, qualities)
    generator = _as_generator(rng)
    child_seeds = generator.integers(0, np.iinfo(np.int64).max, size=len(quality_thresholds))

    thresholds: List[Optional[float]] = []
    precisions: List[Optional[float]] = []
    for qt, child_seed in zip(quality_thresholds, child_seeds):
        th, prec = robust_point(x, y, float(qt), quantile_grid, int(bootstrap_count), aggregation_mode,
                                float(target_fnr), np.random.default_rng(int(child_seed)), percentile)
        thresholds.append(th)
        precisions.append(prec)

    return thresholds, precisions
