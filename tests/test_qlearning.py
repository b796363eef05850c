"""
Tests for the Q-learning maze.

Run tests:
    pytest tests/test_qlearning.py -v
"""

import numpy as np
import pytest

from api.simulations.qlearning import (
    GOAL_REWARD,
    STEP_REWARD,
    QLearningParams,
    empty_maze,
    find_path,
    greedy_policy,
    train_episode,
    train_q_learning,
    valid_actions,
    validate_maze,
)

# open cells run along the top row, then down the right column
CORRIDOR = [
    [0, 0, 0, 0],
    [1, 1, 1, 0],
    [1, 1, 1, 0],
    [1, 1, 1, 0],
]


class TestMaze:
    def test_start_corner_moves(self):
        # down and right only
        assert valid_actions((0, 0), empty_maze(4)) == [1, 3]

    def test_walls_block_moves(self):
        assert valid_actions((0, 3), np.array(CORRIDOR)) == [1, 2]

    def test_validate_rejects_bad_grids(self):
        with pytest.raises(ValueError):
            validate_maze([[0, 0, 0], [0, 0, 0]])
        with pytest.raises(ValueError):
            validate_maze([[1] + [0] * 3] + [[0] * 4] * 3)
        with pytest.raises(ValueError):
            validate_maze([[0, 2, 0, 0]] + [[0] * 4] * 3)

    def test_params_validation(self):
        with pytest.raises(ValueError):
            QLearningParams(alpha=0.0)
        with pytest.raises(ValueError):
            QLearningParams(maze_size=2)


class TestEpisode:
    def test_greedy_episode_through_corridor(self):
        maze = np.array(CORRIDOR)
        q_table = np.zeros((4, 4, 4))
        for cell in [(0, 0), (0, 1), (0, 2)]:
            q_table[cell][3] = 1.0
        for cell in [(0, 3), (1, 3), (2, 3)]:
            q_table[cell][1] = 1.0

        params = QLearningParams(alpha=1.0, gamma=0.9, epsilon=0.0, maze_size=4, episodes=1)
        reward, steps = train_episode(q_table, maze, params, np.random.default_rng(0))

        assert steps == 6
        assert reward == pytest.approx(GOAL_REWARD + 5 * STEP_REWARD)
        # the move into the goal does not bootstrap
        assert q_table[2, 3, 1] == pytest.approx(GOAL_REWARD)
        assert q_table[1, 3, 1] == pytest.approx(STEP_REWARD + 0.9 * 1.0)

    def test_untrained_path_stops_on_revisit(self):
        path = find_path(np.zeros((4, 4, 4)), empty_maze(4))
        assert path == [(0, 0), (1, 0), (0, 0)]


class TestTraining:
    def test_corridor_is_learned(self):
        params = QLearningParams(maze_size=4, episodes=200)
        result = train_q_learning(params, maze=CORRIDOR, rng=3)
        assert result.reached_goal
        assert len(result.path) - 1 == 6

    def test_open_maze_reaches_goal(self):
        result = train_q_learning(QLearningParams(episodes=500), rng=0)
        payload = result.to_dict()
        assert payload["reached_goal"]
        assert payload["path_length"] >= 10
        assert len(payload["episode_rewards"]) == 500
        assert payload["episode_epsilons"] == [0.3] * 500
        assert all(steps <= 100 for steps in payload["episode_steps"])

    def test_policy_skips_walls_and_goal(self):
        result = train_q_learning(QLearningParams(maze_size=4, episodes=50), maze=CORRIDOR, rng=1)
        policy = greedy_policy(result.q_table, result.maze)
        assert policy[1][0] is None
        assert policy[3][3] is None

    def test_training_continues_from_table(self):
        first = train_q_learning(QLearningParams(maze_size=4, episodes=5), rng=2)
        second = train_q_learning(QLearningParams(maze_size=4, episodes=5), q_table=first.q_table, rng=2)
        assert not np.array_equal(first.q_table, second.q_table)

    def test_table_shape_must_match_maze(self):
        with pytest.raises(ValueError):
            train_q_learning(QLearningParams(maze_size=4, episodes=1), q_table=np.zeros((5, 5, 4)))
