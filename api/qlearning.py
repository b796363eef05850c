"""
Q-learning maze API routes for the Simulix backend.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .simulations.qlearning import DEFAULT_EPISODES, MAX_MAZE_SIZE, MIN_MAZE_SIZE, QLearningParams, train_q_learning

router = APIRouter(prefix="/qlearning", tags=["qlearning"])


class QLearningRequest(BaseModel):
    """Request model for a Q-learning training run.

    ``maze`` is a square grid of 0 (open) and 1 (wall); its size wins over
    ``maze_size``. Pass back ``q_table`` from a previous run to keep training.
    """

    alpha: float = Field(0.3, gt=0.0, le=1.0, description="Learning rate")
    gamma: float = Field(0.9, ge=0.0, le=1.0, description="Discount factor")
    epsilon: float = Field(0.3, ge=0.0, le=1.0, description="Exploration rate")
    maze_size: int = Field(6, ge=MIN_MAZE_SIZE, le=MAX_MAZE_SIZE)
    episodes: int = Field(DEFAULT_EPISODES, ge=1, le=2000)
    maze: Optional[List[List[int]]] = None
    q_table: Optional[List[List[List[float]]]] = None
    seed: Optional[int] = Field(None, ge=0)


@router.post("/train")
def qlearning_train(request: QLearningRequest):
    """Train the agent and return the table, the learning curves and the greedy path."""
    maze_size = len(request.maze) if request.maze else request.maze_size
    try:
        params = QLearningParams(
            alpha=request.alpha,
            gamma=request.gamma,
            epsilon=request.epsilon,
            maze_size=maze_size,
            episodes=request.episodes,
        )
        result = train_q_learning(params, maze=request.maze, q_table=request.q_table, rng=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()
