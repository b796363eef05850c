"""
EM clustering API routes for the Simulix backend.

- /em/data: the synthetic Gaussian blobs
- /em/run: fit a mixture by expectation-maximisation
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .simulations.em_clustering import DATA_SEED, INIT_SEED, EMParams, generate_cluster_data, run_em

router = APIRouter(prefix="/em", tags=["em-clustering"])


class Point(BaseModel):
    x: float
    y: float


class EMRequest(BaseModel):
    samples_per_cluster: int = Field(150, ge=5, le=1000)
    n_clusters: int = Field(3, ge=1, le=8)
    max_iterations: int = Field(50, ge=1, le=500)
    convergence_threshold: float = Field(1e-4, gt=0.0, le=1.0)
    points: Optional[List[Point]] = Field(None, min_length=1, max_length=10000)
    contour_resolution: int = Field(0, ge=0, le=100, description="0 disables the density grids")
    data_seed: Optional[int] = Field(DATA_SEED, ge=0)
    init_seed: Optional[int] = Field(INIT_SEED, ge=0)


def _params(request: EMRequest) -> EMParams:
    return EMParams(
        samples_per_cluster=request.samples_per_cluster,
        n_clusters=request.n_clusters,
        max_iterations=request.max_iterations,
        convergence_threshold=request.convergence_threshold,
    )


@router.post("/data")
def em_data(request: EMRequest):
    points, labels = generate_cluster_data(_params(request), rng=request.data_seed)
    return {
        "data": [
            {"x": float(x), "y": float(y), "cluster": int(c)} for (x, y), c in zip(points, labels)
        ],
    }


@router.post("/run")
def em_run(request: EMRequest):
    """Run EM to convergence (or the iteration cap)."""
    points = [[p.x, p.y] for p in request.points] if request.points else None
    try:
        result = run_em(_params(request), points=points, data_rng=request.data_seed, init_rng=request.init_seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict(contour_resolution=request.contour_resolution)
