"""
Synthetic data generators shared by the simulations.

Every generator accepts an optional ``rng`` argument (a numpy Generator or
an integer seed). Without it the ambient random source is used, which is
what the interactive pages want; tests and the background tradeoff sweep
pass a seed to get reproducible output.
"""

from typing import Dict, List, Optional, Tuple, Union

import numpy as np

RngLike = Union[None, int, np.random.Generator, np.random.SeedSequence]

# Canvas used by the K-means city builder (pixels)
CITY_CANVAS = (800.0, 400.0)
CITY_MARGIN = 20.0
CITY_NAMES = [
    "Alpha", "Beta", "Gamma", "Delta", "Echo",
    "Foxtrot", "Golf", "Hotel", "India", "Juliet",
]

BREAST_CANCER_FEATURES = [
    "mean radius", "mean texture", "mean perimeter", "mean area",
    "mean smoothness", "mean compactness", "mean concavity",
    "mean concave points", "mean symmetry", "mean fractal dimension",
    "radius error", "texture error", "perimeter error", "area error",
    "smoothness error", "compactness error", "concavity error",
    "concave points error", "symmetry error", "fractal dimension error",
    "worst radius", "worst texture", "worst perimeter", "worst area",
    "worst smoothness", "worst compactness", "worst concavity",
    "worst concave points", "worst symmetry", "worst fractal dimension",
]
BREAST_CANCER_TARGETS = ["Benign", "Malignant"]


def ensure_rng(rng: RngLike = None) -> np.random.Generator:
    """Coerce a seed, seed sequence or generator into a Generator."""
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def true_function(x):
    """Ground truth used by the bias-variance pages: sin(3πx)·e^(-x)."""
    return np.sin(3 * np.pi * x) * np.exp(-x)


def generate_data(samples: int, noise: float, rng: RngLike = None) -> Tuple[np.ndarray, np.ndarray]:
    """Draw a noisy training set from the true function.

    Args:
        samples: Number of points.
        noise: Standard deviation of the Gaussian noise added to y.
        rng: Random source.

    Returns:
        (X, y) with X sorted ascending in [-1, 1).
    """
    rng = ensure_rng(rng)
    X = np.sort(rng.uniform(-1.0, 1.0, size=samples))
    y = true_function(X) + rng.normal(0.0, noise, size=samples)
    return X, y


def generate_plot_x(n_points: int = 100) -> np.ndarray:
    """Fixed evaluation grid over [-1, 1] shared by every trained model."""
    return np.linspace(-1.0, 1.0, n_points)


def generate_normal_samples(
    n: int,
    mean: float = 0.0,
    std: float = 1.0,
    rng: RngLike = None,
) -> np.ndarray:
    """Draw ``n`` normal samples with the Box-Muller transform."""
    rng = ensure_rng(rng)
    # 1 - U keeps u1 in (0, 1] so the log never sees zero
    u1 = 1.0 - rng.random(n)
    u2 = rng.random(n)
    z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
    return mean + std * z


def generate_original_data(size: int = 100, rng: RngLike = None) -> np.ndarray:
    """Bootstrap demo data: N(50, 10²)."""
    return generate_normal_samples(size, 50.0, 10.0, rng)


def generate_classification_dataset(
    num_samples: int,
    num_features: int,
    random_seed: int = 42,
    label_noise: float = 0.0,
) -> Tuple[np.ndarray, np.ndarray]:
    """Binary dataset for the neural network page.

    Features are uniform in [-2, 2]; the label is ``sum(features) > 0``.
    ``label_noise`` flips that fraction of labels so the task is not
    perfectly separable.
    """
    rng = np.random.default_rng(random_seed)
    X = rng.uniform(-2.0, 2.0, size=(num_samples, num_features))
    y = (X.sum(axis=1) > 0).astype(int)
    if label_noise > 0:
        flip = rng.random(num_samples) < label_noise
        y = np.where(flip, 1 - y, y)
    return X, y


def generate_breast_cancer_data(samples: int = 569, random_state: int = 12345) -> Dict[str, object]:
    """Seeded breast-cancer-like dataset with deliberately overlapping classes.

    Class-conditional feature means are 0.4 (benign) and 0.6 (malignant)
    with wide spread, every 4th feature gets extra noise and every 7th
    feature is pure noise, so no model can separate the classes perfectly.
    """
    rng = np.random.default_rng(random_state)
    n_features = len(BREAST_CANCER_FEATURES)

    labels = (rng.random(samples) < 0.35).astype(int)
    centers = np.where(labels == 1, 0.6, 0.4)[:, None]

    data = centers + (rng.random((samples, n_features)) - 0.5) * 0.6
    data += (rng.random((samples, n_features)) - 0.5) * 0.4

    columns = np.arange(n_features)
    noisy = columns % 4 == 0
    data[:, noisy] += (rng.random((samples, int(noisy.sum()))) - 0.5) * 0.3

    uninformative = columns % 7 == 0
    data[:, uninformative] = rng.random((samples, int(uninformative.sum())))

    data = np.clip(data, 0.01, 0.99)

    return {
        "data": data,
        "labels": labels,
        "feature_names": list(BREAST_CANCER_FEATURES),
        "target_names": list(BREAST_CANCER_TARGETS),
    }


def generate_cities(count: int, rng: RngLike = None) -> List[Dict[str, object]]:
    """Random cities on the K-means canvas.

    Names cycle through the NATO alphabet with a numeric suffix
    (Alpha1, Beta1, ..., Alpha2, ...).
    """
    rng = ensure_rng(rng)
    width, height = CITY_CANVAS
    xs = rng.uniform(CITY_MARGIN, width - CITY_MARGIN, size=count)
    ys = rng.uniform(CITY_MARGIN, height - CITY_MARGIN, size=count)
    populations = rng.integers(10000, 100000, size=count)

    cities = []
    for i in range(count):
        name = f"{CITY_NAMES[i % len(CITY_NAMES)]}{i // len(CITY_NAMES) + 1}"
        cities.append({
            "x": float(xs[i]),
            "y": float(ys[i]),
            "name": name,
            "population": int(populations[i]),
        })
    return cities


def cities_to_array(cities: List[Dict[str, object]]) -> np.ndarray:
    """Stack city coordinates into an (n, 2) array."""
    if not cities:
        return np.empty((0, 2))
    return np.array([[float(c["x"]), float(c["y"])] for c in cities])
