"""
Simulated annealing API routes for the Simulix backend.

- /annealing/tsp: anneal a tour over random (or supplied) cities
- /annealing/toy: maximise a polynomial over r-bit integers
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .simulations.annealing import MAX_CITIES, MIN_CITIES, TOY_MAX_BITS, ToyParams, TSPParams, run_toy, run_tsp

router = APIRouter(prefix="/annealing", tags=["annealing"])


class MapCity(BaseModel):
    id: int = 0
    x: float = Field(..., ge=0.0, le=1.0)
    y: float = Field(..., ge=0.0, le=1.0)


class TSPRequest(BaseModel):
    num_cities: int = Field(20, ge=MIN_CITIES, le=MAX_CITIES)
    initial_temperature: float = Field(1000.0, gt=0.0, le=1e6)
    cooling_rate: float = Field(0.995, gt=0.0, lt=1.0)
    total_iterations: int = Field(2000, ge=1, le=20000)
    cities: Optional[List[MapCity]] = Field(None, min_length=MIN_CITIES, max_length=MAX_CITIES)
    seed: Optional[int] = Field(None, ge=0)


class ToyRequest(BaseModel):
    r: int = Field(5, ge=1, le=TOY_MAX_BITS, description="Bits per state")
    max_iterations: int = Field(100, ge=1, le=5000)
    initial_temperature: float = Field(1.0, gt=0.0, le=1e6)
    cooling_rate: float = Field(0.95, gt=0.0, lt=1.0)
    neighbor_type: Literal["single_bit_flip", "two_bit_flip", "random_walk"] = "single_bit_flip"
    cooling_schedule: Literal["geometric", "linear", "logarithmic"] = "geometric"
    coefficients: List[float] = Field([1.0, -2.0, 3.0, -1.0, 2.0, -1.0], min_length=1, max_length=10)
    seed: Optional[int] = Field(None, ge=0)


@router.post("/tsp")
def annealing_tsp(request: TSPRequest):
    cities = None
    if request.cities is not None:
        cities = [{"id": i, "x": c.x, "y": c.y} for i, c in enumerate(request.cities)]
    try:
        params = TSPParams(**request.model_dump(exclude={"cities", "seed"}))
        result = run_tsp(params, cities=cities, rng=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.post("/toy")
def annealing_toy(request: ToyRequest):
    try:
        params = ToyParams(**request.model_dump(exclude={"seed"}))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return run_toy(params, rng=request.seed)
