"""
K-means "city builder" game.

``KMeansGame`` is a small state machine advanced one tick at a time:

    UNINITIALIZED --step--> ASSIGN --step--> UPDATE --step--> ... --> CONVERGED

The first tick seeds the centroids on k distinct cities. Every later tick
assigns each city to its nearest centroid, moves each centroid to the mean
of its cities and records ``{iteration, wcss}``. A cluster that ends up
empty is re-seeded on the city farthest from its centroid, so every cluster
keeps at least one city and WCSS never increases.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np
from sklearn.cluster import KMeans

from ..shared.logger import get_logger
from .generators import RngLike, cities_to_array, ensure_rng

logger = get_logger(__name__)

MIN_CITIES, MAX_CITIES = 10, 70
DEFAULT_MAX_ITERATIONS = 20
CENTROID_TOLERANCE = 1.0  # pixels
WCSS_TOLERANCE = 1e-6
LEVEL_WCSS = 50000.0
LEVEL_POINTS = 1000
EARLY_CONVERGENCE_BONUS = 50
ELBOW_MAX_K = 8


class GamePhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    ASSIGN = "assign"
    UPDATE = "update"
    CONVERGED = "converged"


def compute_wcss(points: np.ndarray, labels: np.ndarray, centroids: np.ndarray) -> float:
    """Within-cluster sum of squared distances."""
    if points.size == 0:
        return 0.0
    return float(np.sum((points - centroids[labels]) ** 2))


def assign_clusters(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Index of the nearest centroid for every point."""
    distances = ((points[:, None, :] - centroids[None, :, :]) ** 2).sum(axis=2)
    return distances.argmin(axis=1)


def reseed_empty_clusters(points: np.ndarray, labels: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Give every empty cluster the farthest point of a multi-city cluster."""
    labels = labels.copy()
    k = centroids.shape[0]
    for cluster in range(k):
        if np.any(labels == cluster):
            continue
        counts = np.bincount(labels, minlength=k)
        donors = counts[labels] > 1
        if not donors.any():
            break
        distances = np.where(donors, ((points - centroids[labels]) ** 2).sum(axis=1), -1.0)
        labels[int(distances.argmax())] = cluster
    return labels


def update_centroids(points: np.ndarray, labels: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Mean of each cluster; a cluster without points keeps its centroid."""
    updated = centroids.copy()
    for cluster in range(centroids.shape[0]):
        members = points[labels == cluster]
        if len(members):
            updated[cluster] = members.mean(axis=0)
    return updated


class KMeansGame:
    """Tick-driven K-means over a fixed set of cities."""

    def __init__(
        self,
        cities,
        k: int,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        rng: RngLike = None,
    ):
        points = cities if isinstance(cities, np.ndarray) else cities_to_array(cities)
        points = np.asarray(points, dtype=float)
        if k < 1:
            raise ValueError("k must be >= 1")
        if len(points) < k:
            raise ValueError(f"Need at least {k} cities for {k} clusters, got {len(points)}")
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")

        self.points = points
        self.k = k
        self.max_iterations = max_iterations
        self.rng = ensure_rng(rng)

        self.phase = GamePhase.UNINITIALIZED
        self.centroids: Optional[np.ndarray] = None
        self.labels: Optional[np.ndarray] = None
        self.iteration = 0
        self.convergence: List[Dict[str, float]] = []
        self.score = 0
        self.level = 1

    @property
    def converged(self) -> bool:
        return self.phase == GamePhase.CONVERGED

    @property
    def wcss(self) -> Optional[float]:
        return self.convergence[-1]["wcss"] if self.convergence else None

    def step(self) -> GamePhase:
        """Advance one tick; a converged game ignores further ticks."""
        if self.phase == GamePhase.CONVERGED:
            return self.phase

        if self.phase == GamePhase.UNINITIALIZED:
            seeds = self.rng.choice(len(self.points), size=self.k, replace=False)
            self.centroids = self.points[seeds].copy()
            self.phase = GamePhase.ASSIGN
            return self.phase

        previous_centroids = self.centroids
        previous_wcss = self.wcss

        labels = assign_clusters(self.points, self.centroids)
        labels = reseed_empty_clusters(self.points, labels, self.centroids)
        self.labels = labels
        self.centroids = update_centroids(self.points, labels, self.centroids)

        wcss = compute_wcss(self.points, labels, self.centroids)
        self.iteration += 1
        self.convergence.append({"iteration": self.iteration, "wcss": wcss})

        moved = np.sqrt(((self.centroids - previous_centroids) ** 2).sum(axis=1))
        settled = bool(np.all(moved < CENTROID_TOLERANCE))
        if previous_wcss is not None:
            settled = settled or abs(previous_wcss - wcss) <= WCSS_TOLERANCE * max(previous_wcss, 1.0)

        self._update_score(wcss, settled)

        if settled or self.iteration >= self.max_iterations:
            self.phase = GamePhase.CONVERGED
            logger.debug("K-means converged after %d iterations (wcss=%.1f)", self.iteration, wcss)
        else:
            self.phase = GamePhase.UPDATE
        return self.phase

    def _update_score(self, wcss: float, settled: bool) -> None:
        efficiency = max(0.0, 100.0 - wcss / 1000.0)
        self.score += int(np.floor(efficiency * self.level))
        if settled and self.iteration < self.max_iterations:
            self.score += (self.max_iterations - self.iteration) * EARLY_CONVERGENCE_BONUS
        if wcss < LEVEL_WCSS and self.score > self.level * LEVEL_POINTS:
            self.level += 1

    def run(self) -> "KMeansGame":
        """Tick until converged."""
        # one initialisation tick plus at most max_iterations updates
        for _ in range(self.max_iterations + 1):
            if self.step() == GamePhase.CONVERGED:
                break
        return self

    def snapshot(self) -> Dict[str, Any]:
        clusters = []
        if self.centroids is not None:
            for index, centroid in enumerate(self.centroids):
                members = (
                    np.flatnonzero(self.labels == index).tolist() if self.labels is not None else []
                )
                clusters.append({
                    "index": index,
                    "center": {"x": float(centroid[0]), "y": float(centroid[1])},
                    "cities": members,
                })
        return {
            "phase": self.phase.value,
            "iteration": self.iteration,
            "k": self.k,
            "clusters": clusters,
            "labels": self.labels.tolist() if self.labels is not None else [],
            "convergence": list(self.convergence),
            "wcss": self.wcss,
            "score": self.score,
            "level": self.level,
        }


def pick_elbow(ks: List[int], wcss: List[float]) -> int:
    """k with the sharpest bend (largest second difference) of the WCSS curve."""
    if len(ks) < 3:
        return ks[-1] if ks else 1
    second = np.diff(np.asarray(wcss, dtype=float), n=2)
    return int(ks[int(np.argmax(second)) + 1])


def elbow_data(cities, max_k: int = ELBOW_MAX_K, random_state: int = 0) -> Dict[str, Any]:
    """WCSS (KMeans inertia) for k = 1..min(max_k, n) and the elbow pick."""
    points = cities if isinstance(cities, np.ndarray) else cities_to_array(cities)
    points = np.asarray(points, dtype=float)
    if len(points) == 0:
        return {"points": [], "optimal_k": None}

    n_distinct = len(np.unique(points, axis=0))
    ks = list(range(1, min(max_k, n_distinct) + 1))
    inertias = []
    for k in ks:
        model = KMeans(n_clusters=k, n_init=10, random_state=random_state)
        model.fit(points)
        inertias.append(float(model.inertia_))

    optimal = pick_elbow(ks, inertias)
    return {
        "points": [
            {"k": k, "wcss": round(w), "is_optimal": k == optimal} for k, w in zip(ks, inertias)
        ],
        "optimal_k": optimal,
    }
