"""
Importance sampling estimators of E_f[h(X)].

Target ``f`` is the standard normal and the proposal ``g`` is N(t, 1).
Three estimators are compared:

- plain Monte Carlo under ``f``
- standard importance sampling, mean of h(x)·w(x) with x ~ g
- self-normalised importance sampling, Σ h(x)·w(x) / Σ w(x)

with w = f/g computed in log space. When the weights degenerate (their sum
underflows to zero or overflows) the self-normalised estimate and the
effective sample size are reported as NaN instead of raising.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import numpy as np
from scipy.stats import norm

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng, generate_normal_samples

logger = get_logger(__name__)

METHODS = ("standard", "normalized")
H_KINDS = ("exp", "linear")

CONVERGENCE_SIZES = (10, 50, 100, 500, 1000)
STANDARD_SHIFTS = tuple(np.round(np.arange(-2.0, 3.01, 0.5), 2))
NORMALIZED_SHIFTS = tuple(np.round(np.arange(-3.0, 2.01, 0.5), 2))
STANDARD_SWEEP_SAMPLES = 1000
NORMALIZED_SWEEP_SAMPLES = 200
DISTRIBUTION_RANGE = (-5.0, 7.0)
DISTRIBUTION_STEP = 0.1
HISTOGRAM_BINS = 20


@dataclass(frozen=True)
class ImportanceSamplingParams:
    method: str = "standard"
    proposal_t: float = 1.0
    scale_h: float = 0.6
    h_kind: str = "exp"
    n_demo: int = 200
    n_trials_conv: int = 100
    n_trials_var: int = 80
    max_samples: int = 5000

    def __post_init__(self):
        if self.method not in METHODS:
            raise ValueError(f"Unknown method: {self.method!r}")
        if self.h_kind not in H_KINDS:
            raise ValueError(f"Unknown h_kind: {self.h_kind!r}")


@dataclass
class Estimate:
    estimate: float
    error: float

    def to_dict(self) -> Dict[str, float]:
        return {"estimate": self.estimate, "error": self.error}


def target_density(x):
    return norm.pdf(x)


def proposal_density(x, t: float = 1.0):
    return norm.pdf(x, loc=t)


def h(x, scale: float = 0.5, kind: str = "exp"):
    """Integrand: exp(scale·x) or scale·x."""
    x = np.asarray(x, dtype=float)
    if kind == "exp":
        return np.exp(scale * x)
    if kind == "linear":
        return scale * x
    raise ValueError(f"Unknown h_kind: {kind!r}")


def calculate_true_value(scale: float = 0.5, kind: str = "exp") -> float:
    """Closed form of E[h(X)] for X ~ N(0, 1)."""
    if kind == "exp":
        return float(np.exp(scale * scale / 2))
    if kind == "linear":
        return 0.0
    raise ValueError(f"Unknown h_kind: {kind!r}")


def importance_weights(samples, t: float) -> np.ndarray:
    """w(x) = f(x)/g(x), evaluated as exp(log f − log g)."""
    samples = np.asarray(samples, dtype=float)
    log_w = norm.logpdf(samples) - norm.logpdf(samples, loc=t)
    with np.errstate(over="ignore"):
        return np.exp(log_w)


def _weights_usable(weight_sum) -> bool:
    return bool(np.isfinite(weight_sum) and weight_sum > 0)


def effective_sample_size(weights) -> float:
    """(Σw)² / Σw², NaN for degenerate weights."""
    weights = np.asarray(weights, dtype=float)
    total = weights.sum()
    if not _weights_usable(total):
        return float("nan")
    with np.errstate(over="ignore"):
        squares = np.sum(weights ** 2)
    if not np.isfinite(squares) or squares == 0:
        return float("nan")
    return float(total * total / squares)


def _mean_and_error(values: np.ndarray) -> Estimate:
    n = values.size
    mean = float(values.mean())
    error = float(np.sqrt(values.var(ddof=1) / n)) if n > 1 else 0.0
    return Estimate(mean, error)


def mc_estimate(n: int, scale: float = 0.5, h_kind: str = "exp", rng: RngLike = None) -> Estimate:
    """Direct Monte Carlo with x ~ f."""
    samples = generate_normal_samples(n, 0.0, 1.0, rng)
    return _mean_and_error(h(samples, scale, h_kind))


def _standard_from_samples(samples, t, scale, h_kind) -> Estimate:
    with np.errstate(over="ignore", invalid="ignore"):
        weighted = h(samples, scale, h_kind) * importance_weights(samples, t)
    return _mean_and_error(weighted)


def _normalized_from_samples(samples, t, scale, h_kind) -> Estimate:
    weights = importance_weights(samples, t)
    total = weights.sum()
    if not _weights_usable(total):
        return Estimate(float("nan"), float("nan"))
    normalized = weights / total
    values = h(samples, scale, h_kind)
    estimate = float(np.sum(normalized * values))
    # delta-method standard error of a ratio estimator
    error = float(np.sqrt(np.sum(normalized ** 2 * (values - estimate) ** 2)))
    return Estimate(estimate, error)


def is_estimate(n: int, t: float = 1.0, scale: float = 0.5, h_kind: str = "exp", rng: RngLike = None) -> Estimate:
    """Standard importance sampling with x ~ N(t, 1)."""
    samples = generate_normal_samples(n, t, 1.0, rng)
    return _standard_from_samples(samples, t, scale, h_kind)


def normalized_is_estimate(
    n: int, t: float = -1.5, scale: float = 0.7, h_kind: str = "exp", rng: RngLike = None,
) -> Estimate:
    """Self-normalised importance sampling with x ~ N(t, 1)."""
    samples = generate_normal_samples(n, t, 1.0, rng)
    return _normalized_from_samples(samples, t, scale, h_kind)


def estimate_pair(samples, t: float, scale: float, h_kind: str = "exp") -> Dict[str, Any]:
    """Standard and self-normalised estimates over the same drawn samples."""
    samples = np.asarray(samples, dtype=float)
    weights = importance_weights(samples, t)
    return {
        "standard": _standard_from_samples(samples, t, scale, h_kind).to_dict(),
        "normalized": _normalized_from_samples(samples, t, scale, h_kind).to_dict(),
        "ess": effective_sample_size(weights),
    }


def _finite_mean(values) -> float:
    values = np.asarray(values, dtype=float)
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return float("nan")
    return float(finite.mean())


def _trial_errors(
    n: int, n_trials: int, t: float, scale: float, h_kind: str, rng: np.random.Generator,
) -> Tuple[float, float]:
    """Mean absolute error of both IS estimators over independent trials."""
    true_value = calculate_true_value(scale, h_kind)
    std_errors = np.empty(n_trials)
    norm_errors = np.empty(n_trials)
    for trial in range(n_trials):
        samples = generate_normal_samples(n, t, 1.0, rng)
        std_errors[trial] = abs(_standard_from_samples(samples, t, scale, h_kind).estimate - true_value)
        norm_errors[trial] = abs(_normalized_from_samples(samples, t, scale, h_kind).estimate - true_value)
    return _finite_mean(std_errors), _finite_mean(norm_errors)


def convergence_sizes(max_samples: int) -> List[int]:
    sizes = [s for s in CONVERGENCE_SIZES if s < max_samples]
    return sizes + [int(max_samples)]


def convergence_data(params: ImportanceSamplingParams, rng: RngLike = None) -> List[Dict[str, float]]:
    """Estimates and errors at increasing sample sizes."""
    rng = ensure_rng(rng)
    t, scale, kind = params.proposal_t, params.scale_h, params.h_kind

    records = []
    for n in convergence_sizes(params.max_samples):
        mc = mc_estimate(n, scale, kind, rng)
        standard = is_estimate(n, t, scale, kind, rng)
        std_error, norm_error = _trial_errors(n, params.n_trials_conv, t, scale, kind, rng)
        records.append({
            "sample_size": n,
            "mc_estimate": mc.estimate,
            "mc_error": mc.error,
            "is_estimate": standard.estimate,
            "is_error": standard.error,
            "std_error": std_error,
            "norm_error": norm_error,
        })
    return records


def variance_data(params: ImportanceSamplingParams, rng: RngLike = None) -> List[Dict[str, float]]:
    """Sweep over the proposal shift t.

    Standard method: variance of the IS estimate (1000 samples) across
    trials. Normalised method: ratio of the standard to the normalised mean
    absolute error (200 samples), 1 when the normalised error is zero.
    """
    rng = ensure_rng(rng)
    scale, kind = params.scale_h, params.h_kind
    records = []

    if params.method == "standard":
        for t in STANDARD_SHIFTS:
            estimates = np.array([
                is_estimate(STANDARD_SWEEP_SAMPLES, float(t), scale, kind, rng).estimate
                for _ in range(params.n_trials_var)
            ])
            variance = float(estimates.var(ddof=1)) if estimates.size > 1 else 0.0
            records.append({"parameter": float(t), "variance": variance})
        return records

    for t in NORMALIZED_SHIFTS:
        std_error, norm_error = _trial_errors(
            NORMALIZED_SWEEP_SAMPLES, params.n_trials_var, float(t), scale, kind, rng,
        )
        error_ratio = std_error / norm_error if norm_error > 0 else 1.0
        records.append({"parameter": float(t), "variance": 0.0, "error_ratio": error_ratio})
    return records


def distribution_grid() -> np.ndarray:
    low, high = DISTRIBUTION_RANGE
    return np.round(np.arange(low, high + DISTRIBUTION_STEP / 2, DISTRIBUTION_STEP), 10)


def distribution_data(t: float, scale: float, h_kind: str = "exp") -> List[Dict[str, float]]:
    """Target, proposal, scaled integrand and scaled h·f over the grid."""
    xs = distribution_grid()
    target = target_density(xs)
    proposal = proposal_density(xs, t)
    h_values = h(xs, scale, h_kind)
    area = h_values * target

    h_peak = np.max(np.abs(h_values))
    area_peak = np.max(np.abs(area))
    h_scaled = h_values / h_peak if h_peak > 0 else np.zeros_like(xs)
    area_scaled = area / area_peak if area_peak > 0 else np.zeros_like(xs)

    return [
        {
            "x": float(xs[i]),
            "target": float(target[i]),
            "proposal": float(proposal[i]),
            "h_scaled": float(h_scaled[i]),
            "area": float(area_scaled[i]),
        }
        for i in range(xs.size)
    ]


def sample_data(params: ImportanceSamplingParams, rng: RngLike = None) -> Dict[str, Any]:
    """Demo draws from f and weighted draws from g.

    ``norm_weight`` is rescaled so the weights average one.
    """
    rng = ensure_rng(rng)
    f_samples = generate_normal_samples(params.n_demo, 0.0, 1.0, rng)
    g_samples = generate_normal_samples(params.n_demo, params.proposal_t, 1.0, rng)
    weights = importance_weights(g_samples, params.proposal_t)
    total = weights.sum()
    if _weights_usable(total):
        norm_weights = weights / total * params.n_demo
    else:
        logger.warning("Degenerate importance weights (sum=%s)", total)
        norm_weights = np.full_like(weights, np.nan)

    return {
        "f_samples": f_samples,
        "g_samples": g_samples,
        "weights": weights,
        "norm_weights": norm_weights,
    }


def sample_histogram(f_samples, g_samples, norm_weights, bins: int = HISTOGRAM_BINS) -> List[Dict[str, float]]:
    """Counts of target draws, raw proposal draws and reweighted proposal draws."""
    f_samples = np.asarray(f_samples, dtype=float)
    g_samples = np.asarray(g_samples, dtype=float)
    both = np.concatenate([f_samples, g_samples])
    if both.size == 0:
        return []

    low, high = float(both.min()), float(both.max())
    if low == high:
        high = low + 1.0
    edges = np.linspace(low, high, bins + 1)

    target_counts, _ = np.histogram(f_samples, bins=edges)
    proposal_counts, _ = np.histogram(g_samples, bins=edges)
    norm_weights = np.asarray(norm_weights, dtype=float)
    if np.all(np.isfinite(norm_weights)):
        weighted_counts, _ = np.histogram(g_samples, bins=edges, weights=norm_weights)
    else:
        weighted_counts = np.full(bins, np.nan)

    return [
        {
            "x": float((edges[i] + edges[i + 1]) / 2),
            "target": int(target_counts[i]),
            "proposal": int(proposal_counts[i]),
            "weighted": float(weighted_counts[i]),
        }
        for i in range(bins)
    ]


def run_importance_sampling(params: ImportanceSamplingParams, rng: RngLike = None) -> Dict[str, Any]:
    """Everything the importance sampling page draws, in one payload."""
    rng = ensure_rng(rng)
    samples = sample_data(params, rng)

    logger.debug(
        "Importance sampling: method=%s t=%.2f scale=%.2f h=%s",
        params.method, params.proposal_t, params.scale_h, params.h_kind,
    )

    return {
        "true_value": calculate_true_value(params.scale_h, params.h_kind),
        "distribution": distribution_data(params.proposal_t, params.scale_h, params.h_kind),
        "samples": {
            "f_samples": samples["f_samples"].tolist(),
            "g_samples": [
                {"x": float(x), "weight": float(w), "norm_weight": float(nw)}
                for x, w, nw in zip(samples["g_samples"], samples["weights"], samples["norm_weights"])
            ],
        },
        "histogram": sample_histogram(samples["f_samples"], samples["g_samples"], samples["norm_weights"]),
        "demo_estimates": estimate_pair(samples["g_samples"], params.proposal_t, params.scale_h, params.h_kind),
        "convergence": convergence_data(params, rng),
        "variance": variance_data(params, rng),
    }
