"""Aggregate statistics written back to users and challenges after a game."""

EXPERIENCE_PER_LEVEL = 1000


def _running_mean(current: float, count: int, value: float) -> float:
    if count <= 0:
        return float(value)
    return current + (float(value) - current) / (count + 1)


def apply_game_result(user, won: bool, score: int, play_seconds: int) -> None:
    user.average_score = _running_mean(user.average_score or 0.0, user.games_played or 0, score)
    user.games_played = (user.games_played or 0) + 1
    if won:
        user.games_won = (user.games_won or 0) + 1
        user.current_streak = (user.current_streak or 0) + 1
    else:
        user.current_streak = 0
    user.best_streak = max(user.best_streak or 0, user.current_streak)
    user.total_play_time = (user.total_play_time or 0) + max(0, int(play_seconds))
    user.experience = (user.experience or 0) + max(0, int(score))
    user.level = 1 + user.experience // EXPERIENCE_PER_LEVEL


def apply_challenge_usage(challenge, responses) -> None:
    """Fold one round's responses into the challenge's usage stats."""
    challenge.times_used = (challenge.times_used or 0) + 1
    for response in responses:
        attempts = challenge.total_attempts or 0
        challenge.average_time = _running_mean(challenge.average_time or 0.0, attempts, response.elapsed_ms / 1000.0)
        challenge.total_attempts = attempts + 1
        if response.is_correct:
            challenge.correct_attempts = (challenge.correct_attempts or 0) + 1
    if challenge.total_attempts:
        challenge.success_rate = 100.0 * challenge.correct_attempts / challenge.total_attempts
