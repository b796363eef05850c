"""
Bootstrap resampling estimator.

Resamples a dataset with replacement, computes a statistic (mean or median)
per resample and summarises the resulting sampling distribution: percentile
confidence interval, bias, standard error, histograms and a convergence trace
of bias/MSE as more resamples are added.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng, generate_original_data

logger = get_logger(__name__)

STATISTICS = ("mean", "median")

# Below this many statistics the interval and the normal fit are meaningless
MIN_STATISTICS = 10
HISTOGRAM_BINS = 20
COMPARISON_BINS = 15
NORMAL_FIT_POINTS = 101
CONVERGENCE_POINTS = 50


@dataclass(frozen=True)
class BootstrapParams:
    """Parameters of one bootstrap run."""

    sample_size: int = 50
    num_bootstrap_samples: int = 500
    confidence_level: float = 0.95
    statistic: str = "mean"
    data_size: int = 100


@dataclass
class BootstrapResult:
    original_data: np.ndarray
    statistics: np.ndarray
    original_statistic: float
    bootstrap_mean: float
    bias: float
    standard_error: float
    confidence_interval: Optional[List[float]]
    histogram: List[Dict[str, float]] = field(default_factory=list)
    comparison: List[Dict[str, float]] = field(default_factory=list)
    normal_fit: List[Dict[str, float]] = field(default_factory=list)
    convergence: List[Dict[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_data": self.original_data.tolist(),
            "statistics": self.statistics.tolist(),
            "original_statistic": self.original_statistic,
            "bootstrap_mean": self.bootstrap_mean,
            "bias": self.bias,
            "standard_error": self.standard_error,
            "confidence_interval": self.confidence_interval,
            "histogram": self.histogram,
            "comparison": self.comparison,
            "normal_fit": self.normal_fit,
            "convergence": self.convergence,
        }


def compute_statistic(values, statistic: str = "mean") -> float:
    """Mean or median of a sample."""
    if statistic == "mean":
        return float(np.mean(values))
    if statistic == "median":
        return float(np.median(values))
    raise ValueError(f"Unknown statistic: {statistic!r} (expected one of {STATISTICS})")


def generate_bootstrap_samples(
    data: np.ndarray,
    sample_size: int,
    num_samples: int,
    rng: RngLike = None,
) -> np.ndarray:
    """Draw ``num_samples`` resamples of ``sample_size`` values with replacement.

    Returns:
        Array shaped (num_samples, sample_size).
    """
    rng = ensure_rng(rng)
    data = np.asarray(data, dtype=float)
    if data.size == 0:
        raise ValueError("Cannot resample an empty dataset")
    indices = rng.integers(0, data.size, size=(num_samples, sample_size))
    return data[indices]


def bootstrap_statistics(samples: np.ndarray, statistic: str = "mean") -> np.ndarray:
    """Statistic of every resample (row)."""
    if statistic == "mean":
        return samples.mean(axis=1)
    if statistic == "median":
        return np.median(samples, axis=1)
    raise ValueError(f"Unknown statistic: {statistic!r} (expected one of {STATISTICS})")


def calculate_confidence_interval(values, confidence_level: float = 0.95) -> Optional[List[float]]:
    """Percentile confidence interval of the bootstrap statistics.

    Returns ``None`` when fewer than ten statistics are available.
    """
    values = np.sort(np.asarray(values, dtype=float))
    n = values.size
    if n < MIN_STATISTICS:
        return None

    alpha = 1.0 - confidence_level
    lower_index = int(math.floor(n * alpha / 2))
    upper_index = int(math.ceil(n * (1 - alpha / 2))) - 1
    lower_index = min(max(lower_index, 0), n - 1)
    upper_index = min(max(upper_index, lower_index), n - 1)
    return [float(values[lower_index]), float(values[upper_index])]


def calculate_bias_and_mse(stats, true_value: float) -> Dict[str, float]:
    """Absolute bias and mean squared error of statistics against a reference."""
    stats = np.asarray(stats, dtype=float)
    if stats.size == 0:
        return {"bias": 0.0, "mse": 0.0}
    return {
        "bias": float(abs(stats.mean() - true_value)),
        "mse": float(np.mean((stats - true_value) ** 2)),
    }


def bootstrap_histogram(values, bins: int = HISTOGRAM_BINS) -> List[Dict[str, float]]:
    """Histogram of the statistics as ``{bin, x0, x1, count}`` records.

    Degenerate data (every value identical) collapses into a single bin.
    """
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        return []

    low, high = float(values.min()), float(values.max())
    if low == high:
        return [{"bin": low, "x0": low, "x1": high, "count": int(values.size)}]

    counts, edges = np.histogram(values, bins=bins, range=(low, high))
    return [
        {
            "bin": float((edges[i] + edges[i + 1]) / 2),
            "x0": float(edges[i]),
            "x1": float(edges[i + 1]),
            "count": int(counts[i]),
        }
        for i in range(len(counts))
    ]


def comparison_histogram(original, stats, bins: int = COMPARISON_BINS) -> List[Dict[str, float]]:
    """Densities of the original data and of the bootstrap statistics on one grid."""
    original = np.asarray(original, dtype=float)
    stats = np.asarray(stats, dtype=float)
    if original.size == 0 or stats.size == 0:
        return []

    low = float(min(original.min(), stats.min()))
    high = float(max(original.max(), stats.max()))
    if low == high:
        return [{"x": low, "original": 1.0, "bootstrap": 1.0}]

    edges = np.linspace(low, high, bins + 1)
    width = edges[1] - edges[0]
    original_counts, _ = np.histogram(original, bins=edges)
    stats_counts, _ = np.histogram(stats, bins=edges)

    return [
        {
            "x": float((edges[i] + edges[i + 1]) / 2),
            "original": float(original_counts[i] / (original.size * width)),
            "bootstrap": float(stats_counts[i] / (stats.size * width)),
        }
        for i in range(bins)
    ]


def normal_fit(stats, bins: int = HISTOGRAM_BINS) -> List[Dict[str, float]]:
    """Normal curve fitted to the statistics, scaled to histogram counts."""
    stats = np.asarray(stats, dtype=float)
    if stats.size < MIN_STATISTICS:
        return []

    mean = float(stats.mean())
    std = float(stats.std())
    low, high = float(stats.min()), float(stats.max())
    spread = high - low
    if std == 0 or spread == 0:
        return []

    xs = np.linspace(low - 0.2 * spread, high + 0.2 * spread, NORMAL_FIT_POINTS)
    density = np.exp(-0.5 * ((xs - mean) / std) ** 2) / (std * math.sqrt(2 * math.pi))
    scale = stats.size * spread / bins
    return [{"x": float(x), "y": float(y * scale)} for x, y in zip(xs, density)]


def convergence_trace(original, stats, statistic: str = "mean") -> List[Dict[str, float]]:
    """Bias and MSE of the first k statistics for growing k.

    Starts at ten statistics and samples roughly fifty points.
    """
    stats = np.asarray(stats, dtype=float)
    n = stats.size
    if n < MIN_STATISTICS:
        return []

    true_value = compute_statistic(original, statistic)
    step = max(1, n // CONVERGENCE_POINTS)
    trace = []
    for k in range(MIN_STATISTICS, n + 1, step):
        metrics = calculate_bias_and_mse(stats[:k], true_value)
        trace.append({"samples": k, "bias": metrics["bias"], "mse": metrics["mse"]})
    return trace


def run_bootstrap(
    params: BootstrapParams,
    data: Optional[np.ndarray] = None,
    rng: RngLike = None,
) -> BootstrapResult:
    """Run a complete bootstrap analysis.

    Args:
        params: Run parameters.
        data: Original dataset; drawn from N(50, 10²) when omitted.
        rng: Random source.
    """
    rng = ensure_rng(rng)
    if data is None:
        data = generate_original_data(params.data_size, rng)
    data = np.asarray(data, dtype=float)

    samples = generate_bootstrap_samples(data, params.sample_size, params.num_bootstrap_samples, rng)
    stats = bootstrap_statistics(samples, params.statistic)

    original_statistic = compute_statistic(data, params.statistic)
    bootstrap_mean = float(stats.mean())
    standard_error = float(stats.std(ddof=1)) if stats.size > 1 else 0.0

    logger.debug(
        "Bootstrap: %d resamples of %d (%s), SE=%.4f",
        params.num_bootstrap_samples, params.sample_size, params.statistic, standard_error,
    )

    return BootstrapResult(
        original_data=data,
        statistics=stats,
        original_statistic=original_statistic,
        bootstrap_mean=bootstrap_mean,
        bias=bootstrap_mean - original_statistic,
        standard_error=standard_error,
        confidence_interval=calculate_confidence_interval(stats, params.confidence_level),
        histogram=bootstrap_histogram(stats),
        comparison=comparison_histogram(data, stats),
        normal_fit=normal_fit(stats),
        convergence=convergence_trace(data, stats, params.statistic),
    )
