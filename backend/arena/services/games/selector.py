import logging
import random

from arena.errors import InsufficientData

from .entities import Difficulty

logger = logging.getLogger(__name__)


class ChallengeSelector:
    """Draws the ordered challenge set for a game."""

    def __init__(self, challenges, rng: random.Random | None = None):
        self.challenges = challenges
        self.rng = rng or random.Random()

    def select(self, difficulty: Difficulty, count: int) -> list:
        pool = list(self.challenges.find_by_difficulty_active(difficulty))
        if count < 1 or len(pool) < count:
            raise InsufficientData(
                f'Not enough challenges available for {Difficulty(difficulty).value} '
                f'(need {count}, have {len(pool)})'
            )
        # One draw without replacement; order of the sample is the round order
        picked = self.rng.sample(pool, count)
        logger.info(f"[challenge-draw] difficulty={Difficulty(difficulty).value} count={count} pool={len(pool)}")
        return picked

    def pick_one(self, difficulty: Difficulty):
        """A single random active challenge, or None when the pool is empty."""
        pool = list(self.challenges.find_by_difficulty_active(difficulty))
        return self.rng.choice(pool) if pool else None
