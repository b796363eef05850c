"""
Walker's alias method for sampling a discrete distribution in O(1).

``build_alias_tables`` splits n outcomes into n equal-width buckets, each
holding at most two outcomes: the bucket's own index, kept with
probability ``prob[i]``, and ``alias[i]`` for the rest. A draw picks a
bucket uniformly and flips one biased coin.
"""

from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng

logger = get_logger(__name__)

DEFAULT_PROBABILITIES = (0.3, 0.1, 0.1, 0.25, 0.25)
MAX_OUTCOMES = 50


def normalize(weights: Sequence[float]) -> np.ndarray:
    """Scale weights to sum to one; all-zero weights become uniform."""
    weights = np.asarray(weights, dtype=float)
    if weights.size == 0:
        raise ValueError("at least one outcome is required")
    if np.any(weights < 0) or not np.all(np.isfinite(weights)):
        raise ValueError("weights must be finite and non-negative")
    total = weights.sum()
    if total == 0:
        logger.warning("All weights are zero, using a uniform distribution")
        return np.full(weights.size, 1.0 / weights.size)
    return weights / total


def build_alias_tables(probabilities: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Probability and alias tables for a normalised distribution.

    Buckets left over once one of the worklists runs dry are full up to
    rounding error, so they keep their own outcome with probability 1.
    """
    scaled = np.asarray(probabilities, dtype=float) * len(probabilities)
    n = scaled.size
    prob = np.zeros(n)
    alias = np.arange(n)

    small = [i for i in range(n) if scaled[i] < 1.0]
    large = [i for i in range(n) if scaled[i] >= 1.0]

    while small and large:
        under = small.pop()
        over = large.pop()
        prob[under] = scaled[under]
        alias[under] = over
        scaled[over] -= 1.0 - scaled[under]
        (small if scaled[over] < 1.0 else large).append(over)

    for i in small + large:
        prob[i] = 1.0

    return prob, alias


def implied_distribution(prob: np.ndarray, alias: np.ndarray) -> np.ndarray:
    """Exact outcome probabilities encoded by a pair of tables."""
    n = prob.size
    result = prob / n
    np.add.at(result, alias, (1.0 - prob) / n)
    return result


def sample(prob: np.ndarray, alias: np.ndarray, size: int, rng: RngLike = None) -> np.ndarray:
    rng = ensure_rng(rng)
    buckets = rng.integers(prob.size, size=size)
    coins = rng.random(size)
    return np.where(coins < prob[buckets], buckets, alias[buckets])


def empirical_frequencies(samples: np.ndarray, n: int) -> List[float]:
    if samples.size == 0:
        return [0.0] * n
    return (np.bincount(samples, minlength=n) / samples.size).tolist()


def run_alias(weights: Sequence[float], sample_size: int, rng: RngLike = None) -> Dict[str, Any]:
    """Build the tables for ``weights`` and draw ``sample_size`` outcomes."""
    if sample_size < 0:
        raise ValueError("sample_size must be >= 0")
    probabilities = normalize(weights)
    prob, alias = build_alias_tables(probabilities)
    samples = sample(prob, alias, sample_size, rng)
    frequencies = empirical_frequencies(samples, probabilities.size)
    return {
        "probabilities": probabilities.tolist(),
        "prob_table": prob.tolist(),
        "alias_table": alias.tolist(),
        "sample_size": sample_size,
        "frequencies": frequencies,
        "max_abs_error": float(np.max(np.abs(np.asarray(frequencies) - probabilities))) if sample_size else None,
    }
