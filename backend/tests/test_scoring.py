import random

import pytest

from arena.errors import InsufficientData
from arena.models import Challenge
from arena.services.games import scoring
from arena.services.games.entities import ChallengeType, Difficulty, ScoringMode
from arena.services.games.selector import ChallengeSelector
from arena.services.games.stores import MemoryChallengeStore


def _challenge(**overrides):
    fields = dict(
        title='Sum', question='What is 15 + 27?', type=ChallengeType.OPEN_ANSWER,
        difficulty=Difficulty.EASY, correct_answer='42', time_limit=30, base_score=100,
    )
    fields.update(overrides)
    return Challenge(**fields)


@pytest.mark.parametrize('mode', list(ScoringMode))
@pytest.mark.parametrize('elapsed_ms', [0, 1500, 30000, 90000])
def test_incorrect_answer_scores_zero_in_every_mode(mode, elapsed_ms):
    assert scoring.score(_challenge(), False, elapsed_ms, mode) == 0


@pytest.mark.parametrize('elapsed_ms', [0, 999, 1000, 12345, 29999, 30000, 45000])
def test_time_based_never_below_standard(elapsed_ms):
    challenge = _challenge()
    standard = scoring.score(challenge, True, elapsed_ms, ScoringMode.STANDARD)
    timed = scoring.score(challenge, True, elapsed_ms, ScoringMode.TIME_BASED)
    assert standard == 100
    assert timed >= standard


def test_time_based_bonus_is_whole_seconds_left():
    challenge = _challenge(time_limit=30)
    assert scoring.score(challenge, True, 0, ScoringMode.TIME_BASED) == 130
    assert scoring.score(challenge, True, 10500, ScoringMode.TIME_BASED) == 119
    assert scoring.score(challenge, True, 31000, ScoringMode.TIME_BASED) == 100


def test_streak_bonus_steps_and_cap():
    assert scoring.streak_bonus(100, 0) == 0
    assert scoring.streak_bonus(100, 1) == 10
    assert scoring.streak_bonus(100, 3) == 30
    assert scoring.streak_bonus(100, 5) == 50
    assert scoring.streak_bonus(100, 9) == 50
    assert scoring.streak_bonus(0, 4) == 0


def test_answer_matching_ignores_case_and_surrounding_space():
    challenge = _challenge(correct_answer='O(n log n)')
    assert scoring.is_correct_answer(challenge, '  o(N LOG n) ')
    assert not scoring.is_correct_answer(challenge, 'O(n^2)')
    assert not scoring.is_correct_answer(challenge, None)
    assert scoring.is_correct_answer(_challenge(correct_answer='0'), 0)


def test_selector_draws_distinct_challenges_of_requested_difficulty():
    store = MemoryChallengeStore(
        [_challenge(title=f'e{i}') for i in range(5)]
        + [_challenge(title=f'h{i}', difficulty=Difficulty.HARD) for i in range(5)]
    )
    picked = ChallengeSelector(store, rng=random.Random(3)).select(Difficulty.EASY, 4)
    assert len(picked) == 4
    assert len({c.id for c in picked}) == 4
    assert all(c.difficulty == 'EASY' for c in picked)


def test_selector_skips_inactive_challenges():
    store = MemoryChallengeStore([_challenge(), _challenge(is_active=False)])
    with pytest.raises(InsufficientData):
        ChallengeSelector(store).select(Difficulty.EASY, 2)


@pytest.mark.parametrize('count', [0, 4])
def test_selector_rejects_impossible_counts(count):
    store = MemoryChallengeStore([_challenge() for _ in range(3)])
    with pytest.raises(InsufficientData):
        ChallengeSelector(store).select(Difficulty.EASY, count)
