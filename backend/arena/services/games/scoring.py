from .entities import ScoringMode

# Streak bonus: +10% per consecutive correct answer already held, capped at +50%
STREAK_STEP_PERCENT = 10
STREAK_MAX_STEPS = 5


def score(challenge, is_correct: bool, elapsed_ms: int, mode: ScoringMode) -> int:
    """Points awarded for one answer.

    Incorrect answers are worth nothing in every mode. TIME_BASED adds one
    point per whole second left on the challenge's time limit. STREAK_BONUS
    and ELIMINATION score like STANDARD here; the session applies the streak
    bonus and eliminations from player state.
    """
    if not is_correct:
        return 0

    base_score = int(challenge.base_score)
    if mode == ScoringMode.TIME_BASED:
        remaining_ms = int(challenge.time_limit) * 1000 - int(elapsed_ms)
        return base_score + max(0, remaining_ms) // 1000
    return base_score


def streak_bonus(points: int, streak: int) -> int:
    """Extra points for a correct answer given the streak held before it."""
    if points <= 0 or streak <= 0:
        return 0
    steps = min(int(streak), STREAK_MAX_STEPS)
    return (int(points) * STREAK_STEP_PERCENT * steps) // 100


def is_correct_answer(challenge, answer) -> bool:
    """Case-insensitive, whitespace-trimmed exact match."""
    expected = str(challenge.correct_answer or '').strip().casefold()
    given = '' if answer is None else str(answer)
    return given.strip().casefold() == expected
