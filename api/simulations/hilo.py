"""
Hi-Lo card game with Bayesian card counting.

A shuffled 52-card deck (values 1..13, four suits) is dealt one card at a
time. Before each draw the player calls "higher" or "lower"; a tie counts
as a win. The belief over the next card is the share of each value left
in the deck, so it sharpens as cards are seen.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng

logger = get_logger(__name__)

CARD_VALUES = tuple(range(1, 14))
SUITS = ("♠", "♥", "♦", "♣")
CARD_NAMES = {1: "A", 11: "J", 12: "Q", 13: "K"}
GUESSES = ("higher", "lower")
STRATEGIES = ("bayes", "higher", "lower")
BETA_POINTS = 100


def card_name(value: int) -> str:
    return CARD_NAMES.get(value, str(value))


def shuffled_deck(rng: RngLike = None) -> List[int]:
    rng = ensure_rng(rng)
    deck = np.repeat(np.array(CARD_VALUES), len(SUITS))
    return [int(v) for v in rng.permutation(deck)]


def card_probabilities(deck: Sequence[int]) -> List[Dict[str, float]]:
    """P(next card = value) for each value; all zero once the deck is empty."""
    counts = np.bincount(np.asarray(deck, dtype=int), minlength=CARD_VALUES[-1] + 1)[1:]
    total = counts.sum()
    shares = counts / total if total else np.zeros(len(CARD_VALUES))
    return [{"card": value, "probability": float(p)} for value, p in zip(CARD_VALUES, shares)]


def probability_of(guess: str, current: int, deck: Sequence[int]) -> float:
    """Chance that the next card is strictly higher (or lower) than ``current``."""
    if guess not in GUESSES:
        raise ValueError(f"Unknown guess: {guess}")
    probabilities = card_probabilities(deck)
    if guess == "higher":
        return sum(p["probability"] for p in probabilities if p["card"] > current)
    return sum(p["probability"] for p in probabilities if p["card"] < current)


def true_probability_higher(current: int, deck: Sequence[int]) -> float:
    if len(deck) == 0:
        return 0.5
    return sum(1 for card in deck if card > current) / len(deck)


def beta_curve(alpha: float, beta: float, points: int = BETA_POINTS) -> Dict[str, List[float]]:
    """Unnormalised Beta density on ``points + 1`` grid points, scaled to a peak of 1."""
    x = np.linspace(0.0, 1.0, points + 1)
    with np.errstate(divide="ignore", invalid="ignore"):
        y = np.power(x, alpha - 1) * np.power(1 - x, beta - 1)
    y = np.where(np.isfinite(y), y, 0.0)
    peak = y.max()
    if peak > 0:
        y = y / peak
    return {"x": x.tolist(), "y": y.tolist()}


def best_streak(outcomes: Sequence[bool]) -> int:
    best = current = 0
    for correct in outcomes:
        current = current + 1 if correct else 0
        best = max(best, current)
    return best


def current_streak(outcomes: Sequence[bool]) -> int:
    streak = 0
    for correct in reversed(outcomes):
        if not correct:
            break
        streak += 1
    return streak


@dataclass
class HiLoGame:
    """One game; the last element of ``deck`` is the next card."""

    deck: List[int]
    current_card: int
    score: int = 0
    round: int = 1
    history: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def new(cls, rng: RngLike = None) -> "HiLoGame":
        deck = shuffled_deck(rng)
        current = deck.pop()
        return cls(deck=deck, current_card=current)

    @property
    def is_over(self) -> bool:
        return not self.deck

    def probabilities(self) -> List[Dict[str, float]]:
        return card_probabilities(self.deck)

    def recommend(self) -> str:
        higher = probability_of("higher", self.current_card, self.deck)
        lower = probability_of("lower", self.current_card, self.deck)
        return "higher" if higher >= lower else "lower"

    def guess(self, guess: str) -> Dict[str, Any]:
        if guess not in GUESSES:
            raise ValueError(f"Unknown guess: {guess}")
        if self.is_over:
            raise ValueError("The deck is empty")

        prior = probability_of(guess, self.current_card, self.deck)
        next_card = self.deck.pop()
        correct = (
            next_card == self.current_card
            or (guess == "higher" and next_card > self.current_card)
            or (guess == "lower" and next_card < self.current_card)
        )
        posterior = next(p["probability"] for p in self.probabilities() if p["card"] == next_card)

        entry = {
            "round": self.round,
            "current_card": self.current_card,
            "guess": guess,
            "actual_next": next_card,
            "correct": correct,
            "prior_probability": prior,
            "posterior_probability": posterior,
        }
        self.history.append(entry)
        self.score += int(correct)
        self.round += 1
        self.current_card = next_card
        return entry

    def to_dict(self) -> Dict[str, Any]:
        outcomes = [h["correct"] for h in self.history]
        return {
            "current_card": self.current_card,
            "current_card_name": card_name(self.current_card),
            "cards_left": len(self.deck),
            "score": self.score,
            "round": self.round,
            "is_over": self.is_over,
            "history": self.history,
            "probabilities": self.probabilities(),
            "true_probability_higher": true_probability_higher(self.current_card, self.deck),
            "best_streak": best_streak(outcomes),
            "current_streak": current_streak(outcomes),
        }


def play(
    guesses: Optional[Sequence[str]] = None,
    strategy: str = "bayes",
    rounds: Optional[int] = None,
    rng: RngLike = None,
) -> HiLoGame:
    """Deal a game and play it out.

    Explicit ``guesses`` are played in order. Without them the strategy
    picks every guess, for ``rounds`` rounds or until the deck runs out.
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {strategy}")
    game = HiLoGame.new(rng)

    if guesses is not None:
        for guess in guesses:
            if game.is_over:
                break
            game.guess(guess)
    else:
        limit = len(game.deck) if rounds is None else min(rounds, len(game.deck))
        for _ in range(limit):
            game.guess(game.recommend() if strategy == "bayes" else strategy)

    logger.debug("Hi-Lo game: %d/%d correct", game.score, len(game.history))
    return game
