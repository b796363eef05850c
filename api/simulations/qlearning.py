"""
Tabular Q-learning on a grid maze.

The agent starts in the top-left cell and looks for the goal in the
bottom-right cell. Walls are cells holding 1. Moves are restricted to
open neighbours, reaching the goal pays ``GOAL_REWARD`` and every other
move costs ``STEP_REWARD``. An episode ends at the goal or after
``MAX_EPISODE_STEPS`` moves.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng

logger = get_logger(__name__)

# up, down, left, right as (row, col) offsets
ACTIONS = ((-1, 0), (1, 0), (0, -1), (0, 1))
ACTION_NAMES = ("up", "down", "left", "right")

GOAL_REWARD = 10.0
STEP_REWARD = -0.1
MAX_EPISODE_STEPS = 100
MAX_PATH_STEPS = 50
DEFAULT_EPISODES = 200
MIN_MAZE_SIZE, MAX_MAZE_SIZE = 4, 12

Position = Tuple[int, int]


@dataclass
class QLearningParams:
    alpha: float = 0.3
    gamma: float = 0.9
    epsilon: float = 0.3
    maze_size: int = 6
    episodes: int = DEFAULT_EPISODES

    def __post_init__(self):
        if not 0.0 < self.alpha <= 1.0:
            raise ValueError("alpha must be in (0, 1]")
        if not 0.0 <= self.gamma <= 1.0:
            raise ValueError("gamma must be in [0, 1]")
        if not 0.0 <= self.epsilon <= 1.0:
            raise ValueError("epsilon must be in [0, 1]")
        if not MIN_MAZE_SIZE <= self.maze_size <= MAX_MAZE_SIZE:
            raise ValueError(f"maze_size must be between {MIN_MAZE_SIZE} and {MAX_MAZE_SIZE}")
        if self.episodes < 1:
            raise ValueError("episodes must be >= 1")


@dataclass
class QLearningResult:
    maze: np.ndarray
    q_table: np.ndarray
    episode_rewards: List[float] = field(default_factory=list)
    episode_steps: List[int] = field(default_factory=list)
    episode_epsilons: List[float] = field(default_factory=list)
    path: List[Position] = field(default_factory=list)

    @property
    def reached_goal(self) -> bool:
        size = self.maze.shape[0]
        return bool(self.path) and self.path[-1] == (size - 1, size - 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maze": self.maze.tolist(),
            "q_table": self.q_table.tolist(),
            "policy": greedy_policy(self.q_table, self.maze),
            "max_q": self.q_table.max(axis=2).tolist(),
            "episode_rewards": self.episode_rewards,
            "episode_steps": self.episode_steps,
            "episode_epsilons": self.episode_epsilons,
            "path": [list(p) for p in self.path],
            "path_length": max(len(self.path) - 1, 0),
            "reached_goal": self.reached_goal,
        }


def empty_maze(size: int) -> np.ndarray:
    return np.zeros((size, size), dtype=int)


def validate_maze(maze) -> np.ndarray:
    """Square 0/1 grid with open start and goal corners."""
    maze = np.asarray(maze, dtype=int)
    if maze.ndim != 2 or maze.shape[0] != maze.shape[1]:
        raise ValueError("maze must be a square grid")
    if not MIN_MAZE_SIZE <= maze.shape[0] <= MAX_MAZE_SIZE:
        raise ValueError(f"maze size must be between {MIN_MAZE_SIZE} and {MAX_MAZE_SIZE}")
    if not np.isin(maze, (0, 1)).all():
        raise ValueError("maze cells must be 0 (open) or 1 (wall)")
    if maze[0, 0] or maze[-1, -1]:
        raise ValueError("start and goal cells must be open")
    return maze


def is_open(pos: Position, maze: np.ndarray) -> bool:
    row, col = pos
    return 0 <= row < maze.shape[0] and 0 <= col < maze.shape[1] and maze[row, col] == 0


def valid_actions(pos: Position, maze: np.ndarray) -> List[int]:
    return [
        index for index, (dr, dc) in enumerate(ACTIONS)
        if is_open((pos[0] + dr, pos[1] + dc), maze)
    ]


def best_valid_action(pos: Position, q_table: np.ndarray, actions: Sequence[int]) -> int:
    """Highest-valued action among ``actions``; ties go to the first one."""
    q_values = q_table[pos[0], pos[1]]
    best = actions[0]
    for action in actions[1:]:
        if q_values[action] > q_values[best]:
            best = action
    return best


def choose_action(
    pos: Position,
    q_table: np.ndarray,
    epsilon: float,
    maze: np.ndarray,
    rng: np.random.Generator,
) -> Optional[int]:
    """Epsilon-greedy choice over the moves that stay inside open cells."""
    actions = valid_actions(pos, maze)
    if not actions:
        return None
    if rng.random() < epsilon:
        return actions[int(rng.integers(len(actions)))]
    return best_valid_action(pos, q_table, actions)


def train_episode(
    q_table: np.ndarray,
    maze: np.ndarray,
    params: QLearningParams,
    rng: np.random.Generator,
) -> Tuple[float, int]:
    """Run one episode, updating ``q_table`` in place.

    Returns:
        (total reward, steps taken)
    """
    size = maze.shape[0]
    goal = (size - 1, size - 1)
    pos: Position = (0, 0)
    total_reward = 0.0
    steps = 0

    while steps < MAX_EPISODE_STEPS and pos != goal:
        action = choose_action(pos, q_table, params.epsilon, maze, rng)
        if action is None:
            break
        dr, dc = ACTIONS[action]
        next_pos = (pos[0] + dr, pos[1] + dc)

        reward = GOAL_REWARD if next_pos == goal else STEP_REWARD
        total_reward += reward

        # the goal is terminal: nothing to bootstrap from
        max_next_q = 0.0 if next_pos == goal else float(q_table[next_pos].max())
        current_q = q_table[pos][action]
        q_table[pos][action] = current_q + params.alpha * (reward + params.gamma * max_next_q - current_q)

        pos = next_pos
        steps += 1

    return total_reward, steps


def find_path(q_table: np.ndarray, maze: np.ndarray) -> List[Position]:
    """Follow the greedy policy from the start.

    Stops at the goal, on a revisited cell or after ``MAX_PATH_STEPS``
    moves, so an untrained table yields a short path that misses the goal.
    """
    size = maze.shape[0]
    goal = (size - 1, size - 1)
    pos: Position = (0, 0)
    path = [pos]
    visited = set()

    while len(path) - 1 < MAX_PATH_STEPS and pos != goal:
        if pos in visited:
            break
        visited.add(pos)
        actions = valid_actions(pos, maze)
        if not actions:
            break
        dr, dc = ACTIONS[best_valid_action(pos, q_table, actions)]
        pos = (pos[0] + dr, pos[1] + dc)
        path.append(pos)

    return path


def greedy_policy(q_table: np.ndarray, maze: np.ndarray) -> List[List[Optional[str]]]:
    """Arrow per open cell with a learned value; None elsewhere."""
    size = maze.shape[0]
    policy: List[List[Optional[str]]] = []
    for row in range(size):
        cells: List[Optional[str]] = []
        for col in range(size):
            q_values = q_table[row, col]
            if maze[row, col] or (row, col) == (size - 1, size - 1) or not q_values.any():
                cells.append(None)
            else:
                cells.append(ACTION_NAMES[int(q_values.argmax())])
        policy.append(cells)
    return policy


def train_q_learning(
    params: QLearningParams,
    maze=None,
    q_table: Optional[np.ndarray] = None,
    rng: RngLike = None,
) -> QLearningResult:
    """Train for ``params.episodes`` episodes and extract the greedy path.

    Args:
        maze: Optional wall grid; an open ``maze_size`` grid by default.
        q_table: Optional table of shape (size, size, 4) to keep training.
    """
    rng = ensure_rng(rng)
    maze = empty_maze(params.maze_size) if maze is None else validate_maze(maze)
    size = maze.shape[0]

    if q_table is None:
        q_table = np.zeros((size, size, len(ACTIONS)))
    else:
        q_table = np.array(q_table, dtype=float)
        if q_table.shape != (size, size, len(ACTIONS)):
            raise ValueError(f"q_table must have shape ({size}, {size}, {len(ACTIONS)})")

    result = QLearningResult(maze=maze, q_table=q_table)
    for _ in range(params.episodes):
        result.episode_epsilons.append(params.epsilon)
        reward, steps = train_episode(q_table, maze, params, rng)
        result.episode_rewards.append(reward)
        result.episode_steps.append(steps)

    result.path = find_path(q_table, maze)
    logger.debug(
        "Q-learning %dx%d, %d episodes: path of %d steps (goal=%s)",
        size, size, params.episodes, len(result.path) - 1, result.reached_goal,
    )
    return result
