"""
K-means game API routes for the Simulix backend.

- /kmeans/cities: random cities for a new round
- /kmeans/run: advance the game by a number of ticks (or to convergence)
- /kmeans/elbow: WCSS per k with the elbow pick
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .shared.logger import get_logger
from .simulations.generators import ensure_rng, generate_cities
from .simulations.kmeans import DEFAULT_MAX_ITERATIONS, ELBOW_MAX_K, MAX_CITIES, MIN_CITIES, KMeansGame, elbow_data

logger = get_logger(__name__)

router = APIRouter(prefix="/kmeans", tags=["kmeans"])


class City(BaseModel):
    x: float
    y: float
    name: str = ""
    population: int = 0


class CitiesRequest(BaseModel):
    count: int = Field(30, ge=MIN_CITIES, le=MAX_CITIES, description="Number of cities")
    seed: Optional[int] = Field(None, ge=0)


class RunRequest(BaseModel):
    """Request model for a K-means round.

    Cities are generated from ``count`` and ``seed`` when not supplied.
    ``steps`` limits the number of ticks; omit it to run to convergence.
    """

    cities: Optional[List[City]] = Field(None, min_length=1, max_length=MAX_CITIES)
    count: int = Field(30, ge=MIN_CITIES, le=MAX_CITIES)
    k: int = Field(3, ge=1, le=10, description="Number of clusters")
    max_iterations: int = Field(DEFAULT_MAX_ITERATIONS, ge=1, le=100)
    steps: Optional[int] = Field(None, ge=1, le=101, description="Ticks to play")
    include_frames: bool = Field(False, description="Return a snapshot after every tick")
    seed: Optional[int] = Field(None, ge=0)


class ElbowRequest(BaseModel):
    cities: List[City] = Field(..., min_length=1, max_length=MAX_CITIES)
    max_k: int = Field(ELBOW_MAX_K, ge=2, le=15)
    random_state: int = Field(0, ge=0)


def _city_dicts(cities: List[City]):
    return [city.model_dump() for city in cities]


@router.post("/cities")
def kmeans_cities(request: CitiesRequest):
    """Generate cities on the game canvas."""
    return {"cities": generate_cities(request.count, rng=request.seed)}


@router.post("/run")
def kmeans_run(request: RunRequest):
    """Play a K-means round and return the final (or intermediate) state."""
    if request.cities is not None:
        cities = _city_dicts(request.cities)
        rng = request.seed
    else:
        # one source for both the cities and the centroid seeding
        rng = ensure_rng(request.seed)
        cities = generate_cities(request.count, rng=rng)

    try:
        game = KMeansGame(cities, request.k, max_iterations=request.max_iterations, rng=rng)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    frames = []
    ticks = request.steps if request.steps is not None else request.max_iterations + 1
    for _ in range(ticks):
        game.step()
        if request.include_frames:
            frames.append(game.snapshot())
        if game.converged:
            break

    logger.debug("K-means round: k=%d, %d iterations, phase %s", game.k, game.iteration, game.phase.value)

    state = game.snapshot()
    state["cities"] = cities
    if request.include_frames:
        state["frames"] = frames
    return state


@router.post("/elbow")
def kmeans_elbow(request: ElbowRequest):
    """WCSS for k = 1..max_k and the suggested k."""
    return elbow_data(_city_dicts(request.cities), max_k=request.max_k, random_state=request.random_state)
