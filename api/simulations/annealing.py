"""
Simulated annealing, in two flavours.

``run_tsp`` tours random cities placed inside India. The tour always starts
and ends at city 0; a move swaps two positions of the remaining order and
is accepted when it is shorter or with probability ``exp(-Δ/T)``. The
temperature decays geometrically every iteration.

``run_toy`` maximises a polynomial over the integers ``0 .. 2^r - 1``
viewed as r-bit strings, with a choice of neighbour move and cooling
schedule so the acceptance of worse states can be watched.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import numpy as np

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng

logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0
# longitude / latitude box of the generated cities
INDIA_LNG = (68.0, 97.0)
INDIA_LAT = (8.0, 37.0)
MIN_CITIES, MAX_CITIES = 3, 100

TOY_MAX_BITS = 16
SEARCH_SPACE_MAX_BITS = 8
MIN_TEMPERATURE = 1e-3

NEIGHBOR_TYPES = ("single_bit_flip", "two_bit_flip", "random_walk")
COOLING_SCHEDULES = ("geometric", "linear", "logarithmic")


# ============= Travelling salesman =============


@dataclass
class TSPParams:
    num_cities: int = 20
    initial_temperature: float = 1000.0
    cooling_rate: float = 0.995
    total_iterations: int = 2000

    def __post_init__(self):
        if not MIN_CITIES <= self.num_cities <= MAX_CITIES:
            raise ValueError(f"num_cities must be between {MIN_CITIES} and {MAX_CITIES}")
        if self.initial_temperature <= 0:
            raise ValueError("initial_temperature must be > 0")
        if not 0.0 < self.cooling_rate < 1.0:
            raise ValueError("cooling_rate must be in (0, 1)")
        if self.total_iterations < 1:
            raise ValueError("total_iterations must be >= 1")


@dataclass
class TSPResult:
    cities: List[Dict[str, float]]
    initial_path: List[int]
    current_path: List[int]
    best_path: List[int]
    distances: List[float]
    best_distance: float
    temperatures: List[float] = field(default_factory=list)
    accepted: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cities": self.cities,
            "initial_path": self.initial_path,
            "current_path": self.current_path,
            "best_path": self.best_path,
            "initial_distance": self.distances[0],
            "current_distance": self.distances[-1],
            "best_distance": self.best_distance,
            "distances": self.distances,
            "temperatures": self.temperatures,
            "accepted": self.accepted,
        }


def to_lon_lat(city: Dict[str, float]):
    return -180.0 + city["x"] * 360.0, 90.0 - city["y"] * 180.0


def haversine(city_a: Dict[str, float], city_b: Dict[str, float]) -> float:
    """Great-circle distance in km between two cities in normalised map coordinates."""
    lon1, lat1 = to_lon_lat(city_a)
    lon2, lat2 = to_lon_lat(city_b)
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def path_distance(cities: Sequence[Dict[str, float]], path: Sequence[int]) -> float:
    """Length of the closed tour 0 -> path... -> 0."""
    if len(cities) < 2 or len(path) == 0:
        return 0.0
    stops = [0, *path, 0]
    return sum(haversine(cities[a], cities[b]) for a, b in zip(stops, stops[1:]))


def random_cities(count: int, rng: RngLike = None) -> List[Dict[str, float]]:
    """Cities uniform in the India box, as normalised (x, y) map coordinates."""
    rng = ensure_rng(rng)
    lng = rng.uniform(*INDIA_LNG, size=count)
    lat = rng.uniform(*INDIA_LAT, size=count)
    return [
        {"id": i, "x": float((lo + 180.0) / 360.0), "y": float(1.0 - (la + 90.0) / 180.0)}
        for i, (lo, la) in enumerate(zip(lng, lat))
    ]


def run_tsp(params: TSPParams, cities=None, rng: RngLike = None) -> TSPResult:
    """Anneal a tour for ``params.total_iterations`` iterations.

    ``distances`` holds the current tour length before the first iteration
    and after every iteration, so it has ``total_iterations + 1`` entries.
    """
    rng = ensure_rng(rng)
    if cities is None:
        cities = random_cities(params.num_cities, rng)
    if len(cities) < MIN_CITIES:
        raise ValueError(f"at least {MIN_CITIES} cities are required")

    path = [int(i) for i in rng.permutation(np.arange(1, len(cities)))]
    current = path_distance(cities, path)
    result = TSPResult(
        cities=list(cities),
        initial_path=list(path),
        current_path=path,
        best_path=list(path),
        distances=[current],
        best_distance=current,
    )

    temperature = params.initial_temperature
    for _ in range(params.total_iterations):
        i, j = rng.integers(len(path), size=2)
        if i != j:
            candidate = list(path)
            candidate[i], candidate[j] = candidate[j], candidate[i]
            distance = path_distance(cities, candidate)
            if distance < current or (
                temperature > 0 and rng.random() < math.exp((current - distance) / temperature)
            ):
                path, current = candidate, distance
                result.accepted += 1
                if current < result.best_distance:
                    result.best_path, result.best_distance = list(path), current
        result.distances.append(current)
        result.temperatures.append(temperature)
        temperature *= params.cooling_rate

    result.current_path = path
    logger.debug(
        "TSP annealing over %d cities: %.0f km -> best %.0f km",
        len(cities), result.distances[0], result.best_distance,
    )
    return result


# ============= Bit-string toy =============


@dataclass
class ToyParams:
    r: int = 5
    max_iterations: int = 100
    initial_temperature: float = 1.0
    cooling_rate: float = 0.95
    neighbor_type: str = "single_bit_flip"
    cooling_schedule: str = "geometric"
    coefficients: Sequence[float] = (1.0, -2.0, 3.0, -1.0, 2.0, -1.0)

    def __post_init__(self):
        if not 1 <= self.r <= TOY_MAX_BITS:
            raise ValueError(f"r must be between 1 and {TOY_MAX_BITS}")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.initial_temperature <= 0:
            raise ValueError("initial_temperature must be > 0")
        if self.neighbor_type not in NEIGHBOR_TYPES:
            raise ValueError(f"Unknown neighbor_type: {self.neighbor_type}")
        if self.cooling_schedule not in COOLING_SCHEDULES:
            raise ValueError(f"Unknown cooling_schedule: {self.cooling_schedule}")
        if len(self.coefficients) == 0:
            raise ValueError("coefficients must not be empty")
        if self.neighbor_type == "two_bit_flip" and self.r < 2:
            raise ValueError("two_bit_flip needs r >= 2")


def evaluate_polynomial(n: int, coefficients: Sequence[float]) -> float:
    """Σ cᵢ nⁱ, lowest order first."""
    return float(sum(c * n ** i for i, c in enumerate(coefficients)))


def to_bits(n: int, r: int) -> List[int]:
    """Most significant bit first."""
    return [int(b) for b in format(n, f"0{r}b")]


def flip_bits(state: int, positions: Sequence[int], r: int) -> int:
    for position in positions:
        state ^= 1 << (r - 1 - int(position))
    return state


def neighbor(state: int, r: int, neighbor_type: str, rng: np.random.Generator) -> int:
    if neighbor_type == "single_bit_flip":
        return flip_bits(state, [rng.integers(r)], r)
    if neighbor_type == "two_bit_flip":
        return flip_bits(state, rng.choice(r, size=2, replace=False), r)
    if neighbor_type == "random_walk":
        return int(rng.integers(2 ** r))
    raise ValueError(f"Unknown neighbor_type: {neighbor_type}")


def temperature_at(iteration: int, params: ToyParams) -> float:
    t0 = params.initial_temperature
    if params.cooling_schedule == "linear":
        return max(t0 - t0 / params.max_iterations * iteration, MIN_TEMPERATURE)
    if params.cooling_schedule == "logarithmic":
        return max(t0 / (1 + math.log(2 + iteration)), MIN_TEMPERATURE)
    return t0 * params.cooling_rate ** iteration


def acceptance_probability(current: float, candidate: float, temperature: float) -> float:
    """1 for a non-worse candidate, ``exp(Δ/T)`` otherwise, 0 once frozen."""
    if candidate >= current:
        return 1.0
    if temperature <= 0:
        return 0.0
    return math.exp((candidate - current) / temperature)


def run_toy(params: ToyParams, rng: RngLike = None) -> Dict[str, Any]:
    """Maximise the polynomial; history entry 0 is the random start state."""
    rng = ensure_rng(rng)

    def value_of(n: int) -> float:
        return evaluate_polynomial(n, params.coefficients)

    state = int(rng.integers(2 ** params.r))
    value = value_of(state)
    best_state, best_value = state, value
    accepted_worse = 0

    history = [{
        "iteration": 0,
        "state": state,
        "value": value,
        "best_value": best_value,
        "temperature": temperature_at(0, params),
        "acceptance_probability": 1.0,
        "bits": to_bits(state, params.r),
    }]

    for iteration in range(1, params.max_iterations + 1):
        temperature = temperature_at(iteration, params)
        candidate = neighbor(state, params.r, params.neighbor_type, rng)
        candidate_value = value_of(candidate)
        probability = acceptance_probability(value, candidate_value, temperature)

        if rng.random() < probability:
            state, value = candidate, candidate_value
            if probability < 1.0:
                accepted_worse += 1
        if value > best_value:
            best_state, best_value = state, value

        history.append({
            "iteration": iteration,
            "state": state,
            "value": value,
            "best_value": best_value,
            "temperature": temperature,
            "acceptance_probability": probability,
            "bits": to_bits(state, params.r),
        })

    search_space = []
    if params.r <= SEARCH_SPACE_MAX_BITS:
        search_space = [{"state": n, "value": value_of(n)} for n in range(2 ** params.r)]

    return {
        "history": history,
        "best_state": best_state,
        "best_value": best_value,
        "accepted_worse": accepted_worse,
        "search_space": search_space,
    }
