"""
Hi-Lo Bayesian card game API routes for the Simulix backend.
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from .simulations.hilo import beta_curve, play

router = APIRouter(prefix="/hilo", tags=["hilo"])


class PlayRequest(BaseModel):
    """Deal a seeded game and play it.

    ``guesses`` are played in order; without them ``strategy`` picks every
    guess for ``rounds`` rounds (the whole deck by default).
    """

    guesses: Optional[List[Literal["higher", "lower"]]] = Field(None, max_length=51)
    strategy: Literal["bayes", "higher", "lower"] = "bayes"
    rounds: Optional[int] = Field(None, ge=0, le=51)
    seed: Optional[int] = Field(None, ge=0)


@router.post("/play")
def hilo_play(request: PlayRequest):
    try:
        game = play(guesses=request.guesses, strategy=request.strategy, rounds=request.rounds, rng=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return game.to_dict()


@router.get("/beta")
def hilo_beta(
    alpha: float = Query(1.0, gt=0.0, le=1000.0),
    beta: float = Query(1.0, gt=0.0, le=1000.0),
    points: int = Query(100, ge=2, le=1000),
):
    """Beta belief curve scaled to a peak of 1."""
    return beta_curve(alpha, beta, points)
