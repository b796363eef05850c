"""
Expectation-maximisation for a 2-D Gaussian mixture.

Clusters carry a mean and a full 2x2 covariance; the mixing weights stay
equal. The E-step computes each point's normalised responsibilities, the
M-step moves every mean to the responsibility-weighted average and
re-estimates its covariance around the new mean. Iteration stops when the
largest mean shift falls below the convergence threshold.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng

logger = get_logger(__name__)

DATA_SEED = 42
INIT_SEED = 123
PDF_FLOOR = 1e-10
COVARIANCE_JITTER = 1e-6
SINGULAR_DET = 1e-10
CONTOUR_RESOLUTION = 50


@dataclass
class EMParams:
    samples_per_cluster: int = 150
    n_clusters: int = 3
    max_iterations: int = 50
    convergence_threshold: float = 1e-4

    def __post_init__(self):
        if self.samples_per_cluster < 1:
            raise ValueError("samples_per_cluster must be >= 1")
        if self.n_clusters < 1:
            raise ValueError("n_clusters must be >= 1")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.convergence_threshold <= 0:
            raise ValueError("convergence_threshold must be > 0")


@dataclass
class GaussianCluster:
    mean: np.ndarray
    covariance: np.ndarray

    def to_dict(self) -> Dict[str, Any]:
        return {"mean": self.mean.tolist(), "covariance": self.covariance.tolist()}


@dataclass
class EMResult:
    points: np.ndarray
    true_labels: np.ndarray
    clusters: List[GaussianCluster]
    responsibilities: np.ndarray
    iterations: int
    converged: bool
    history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def labels(self) -> np.ndarray:
        return self.responsibilities.argmax(axis=1)

    def to_dict(self, contour_resolution: Optional[int] = None) -> Dict[str, Any]:
        payload = {
            "data": [
                {"x": float(x), "y": float(y), "cluster": int(c)}
                for (x, y), c in zip(self.points, self.true_labels)
            ],
            "clusters": [c.to_dict() for c in self.clusters],
            "responsibilities": self.responsibilities.tolist(),
            "labels": self.labels.tolist(),
            "iterations": self.iterations,
            "converged": self.converged,
            "history": self.history,
        }
        if contour_resolution:
            x_range, y_range = padded_bounds(self.points)
            payload["contours"] = [
                contour_grid(c, x_range, y_range, contour_resolution) for c in self.clusters
            ]
        return payload


def inverse_2x2(matrix: np.ndarray) -> np.ndarray:
    """Closed-form inverse; a near-singular matrix maps to a jittered identity."""
    (a, b), (c, d) = matrix
    det = a * d - b * c
    if abs(det) < SINGULAR_DET:
        return np.eye(2) * (1 + COVARIANCE_JITTER)
    return np.array([[d, -b], [-c, a]]) / det


def gaussian_pdf(points, mean, covariance) -> np.ndarray:
    """Bivariate normal density at each row of ``points``.

    A covariance with a non-positive determinant gives ``PDF_FLOOR``
    everywhere instead of raising.
    """
    points = np.atleast_2d(np.asarray(points, dtype=float))
    covariance = np.asarray(covariance, dtype=float)
    det = float(np.linalg.det(covariance))
    if det <= 0:
        return np.full(points.shape[0], PDF_FLOOR)
    diff = points - np.asarray(mean, dtype=float)
    quad = np.einsum("ni,ij,nj->n", diff, inverse_2x2(covariance), diff)
    return np.exp(-0.5 * quad) / (2 * np.pi * np.sqrt(det))


def generate_cluster_data(params: EMParams, rng: RngLike = DATA_SEED) -> Tuple[np.ndarray, np.ndarray]:
    """Axis-aligned Gaussian blobs with means in [2, 10)² and std in [0.8, 1.5).

    Returns:
        (points of shape (n, 2), true cluster label per point)
    """
    rng = ensure_rng(rng)
    means = rng.uniform(2.0, 10.0, size=(params.n_clusters, 2))
    points, labels = [], []
    for cluster, mean in enumerate(means):
        std = rng.uniform(0.8, 1.5, size=2)
        points.append(mean + rng.standard_normal((params.samples_per_cluster, 2)) * std)
        labels.append(np.full(params.samples_per_cluster, cluster))
    return np.vstack(points), np.concatenate(labels)


def initialize_clusters(points: np.ndarray, n_clusters: int, rng: RngLike = INIT_SEED) -> List[GaussianCluster]:
    """Means uniform over the data bounding box, identity covariances."""
    rng = ensure_rng(rng)
    low, high = points.min(axis=0), points.max(axis=0)
    return [
        GaussianCluster(mean=rng.uniform(low, high), covariance=np.eye(2))
        for _ in range(n_clusters)
    ]


def e_step(points: np.ndarray, clusters: List[GaussianCluster]) -> np.ndarray:
    densities = np.column_stack([
        gaussian_pdf(points, c.mean, c.covariance) for c in clusters
    ]) + PDF_FLOOR
    return densities / densities.sum(axis=1, keepdims=True)


def m_step(points: np.ndarray, responsibilities: np.ndarray) -> List[GaussianCluster]:
    clusters = []
    for weights in responsibilities.T:
        total = weights.sum()
        mean = weights @ points / total
        diff = points - mean
        covariance = (weights[:, None] * diff).T @ diff / total + np.eye(2) * COVARIANCE_JITTER
        clusters.append(GaussianCluster(mean=mean, covariance=covariance))
    return clusters


def em_step(points: np.ndarray, clusters: List[GaussianCluster]) -> Tuple[List[GaussianCluster], np.ndarray, float]:
    """One E-step plus M-step.

    Returns:
        (updated clusters, responsibilities, largest mean shift)
    """
    responsibilities = e_step(points, clusters)
    updated = m_step(points, responsibilities)
    shift = max(float(np.linalg.norm(new.mean - old.mean)) for new, old in zip(updated, clusters))
    return updated, responsibilities, shift


def log_likelihood(points: np.ndarray, clusters: List[GaussianCluster]) -> float:
    """Mean log density under the equal-weight mixture."""
    densities = np.column_stack([gaussian_pdf(points, c.mean, c.covariance) for c in clusters])
    return float(np.mean(np.log(densities.mean(axis=1) + PDF_FLOOR)))


def run_em(
    params: EMParams,
    points: Optional[np.ndarray] = None,
    data_rng: RngLike = DATA_SEED,
    init_rng: RngLike = INIT_SEED,
) -> EMResult:
    """Generate (or take) the data and iterate EM until the means settle."""
    if points is None:
        points, true_labels = generate_cluster_data(params, rng=data_rng)
    else:
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or points.shape[1] != 2 or len(points) == 0:
            raise ValueError("points must be a non-empty (n, 2) array")
        true_labels = np.full(len(points), -1)

    clusters = initialize_clusters(points, params.n_clusters, rng=init_rng)
    responsibilities = e_step(points, clusters)
    history = []
    converged = False
    iteration = 0

    while iteration < params.max_iterations:
        clusters, responsibilities, shift = em_step(points, clusters)
        iteration += 1
        history.append({
            "iteration": iteration,
            "mean_shift": shift,
            "log_likelihood": log_likelihood(points, clusters),
            "means": [c.mean.tolist() for c in clusters],
        })
        if shift < params.convergence_threshold:
            converged = True
            break

    logger.debug("EM with %d clusters: %d iterations, converged=%s", params.n_clusters, iteration, converged)
    return EMResult(
        points=points,
        true_labels=true_labels,
        clusters=clusters,
        responsibilities=responsibilities,
        iterations=iteration,
        converged=converged,
        history=history,
    )


def padded_bounds(points: np.ndarray, pad: float = 1.0) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    low, high = points.min(axis=0) - pad, points.max(axis=0) + pad
    return (float(low[0]), float(high[0])), (float(low[1]), float(high[1]))


def contour_grid(
    cluster: GaussianCluster,
    x_range: Tuple[float, float],
    y_range: Tuple[float, float],
    resolution: int = CONTOUR_RESOLUTION,
) -> Dict[str, List]:
    """Density of one cluster on a ``resolution`` square grid; ``z[i][j]`` is at (x[j], y[i])."""
    x = np.linspace(*x_range, resolution)
    y = np.linspace(*y_range, resolution)
    xx, yy = np.meshgrid(x, y)
    z = gaussian_pdf(np.column_stack([xx.ravel(), yy.ravel()]), cluster.mean, cluster.covariance)
    return {"x": x.tolist(), "y": y.tolist(), "z": z.reshape(resolution, resolution).tolist()}
