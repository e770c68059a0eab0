import threading

import pytest

from arena.errors import DuplicateSubmission, InvalidState, NotFound
from arena.services.games.entities import GameStatus, RoundStatus, ScoringMode


def open_rounds(core, game_id):
    return [r.index for r in core.sessions.get_game(game_id).rounds if r.status == RoundStatus.OPEN]


def test_start_opens_first_round_and_announces(core):
    game = core.start_game()
    assert game.status == GameStatus.IN_PROGRESS
    assert game.current_round == 0
    assert open_rounds(core, game.id) == [0]
    assert core.timer.scheduled == [(game.id, 0, 30)]
    topics = {topic for _, _, topic in core.publisher.events('game_started')}
    assert topics == {f'room:{game.room_id}', f'game:{game.id}'}
    _, payload, _ = core.publisher.events('game_started')[0]
    assert 'correct_answer' not in payload['challenge']
    assert payload['round']['index'] == 0


def test_start_twice_is_rejected(core):
    game = core.start_game()
    with pytest.raises(InvalidState):
        core.sessions.start(game.id)


def test_two_player_single_round_scenario(core):
    game = core.start_game(max_players=2, total_challenges=1)
    alice, bob = core.uid('alice'), core.uid('bob')
    answer = core.answer_for(game)

    core.sessions.submit_answer(game.id, alice, answer)
    assert core.sessions.get_game(game.id).status == GameStatus.IN_PROGRESS
    core.sessions.submit_answer(game.id, bob, 'definitely wrong')

    finished = core.sessions.get_game(game.id)
    assert finished.status == GameStatus.FINISHED
    assert finished.finished_at == core.clock()
    assert open_rounds(core, game.id) == []
    results = finished.results
    assert results.winner_id == alice
    by_user = {r.user_id: r for r in results.player_results}
    assert by_user[alice].rank == 1 and by_user[alice].score == 100
    assert by_user[bob].rank == 2 and by_user[bob].score == 0
    assert results.average_score == 50.0
    assert results.hardest_challenge_id == finished.rounds[0].challenge_id
    types = core.publisher.game_types(game.id)
    assert types[-3:] == ['ANSWER_SUBMITTED', 'ROUND_ENDED', 'GAME_ENDED']


def test_answer_result_goes_only_to_the_submitter(core):
    game = core.start_game()
    alice = core.uid('alice')
    core.sessions.submit_answer(game.id, alice, core.answer_for(game))
    [(_, payload, topic)] = core.publisher.events('answer_result')
    assert topic == f'user:{alice}'
    assert payload['is_correct'] and payload['points'] == 100
    [(_, update, _)] = core.publisher.events('game_updated')
    assert update['type'] == 'ANSWER_SUBMITTED'
    assert update['answered'] == 1
    assert 'is_correct' not in update


def test_duplicate_submission_changes_nothing(core):
    game = core.start_game(names=('alice', 'bob', 'carol'))
    alice = core.uid('alice')
    core.sessions.submit_answer(game.id, alice, core.answer_for(game))
    before = core.sessions.get_game(game.id).get_player(alice).to_dict()
    with pytest.raises(DuplicateSubmission):
        core.sessions.submit_answer(game.id, alice, core.answer_for(game))
    after = core.sessions.get_game(game.id)
    assert after.get_player(alice).to_dict() == before
    assert len(after.rounds[0].responses) == 1


def test_round_advances_once_every_connected_player_answered(core):
    game = core.start_game(names=('alice', 'bob', 'carol'))
    core.sessions.submit_answer(game.id, core.uid('alice'), 'x')
    core.sessions.submit_answer(game.id, core.uid('bob'), 'y')
    assert open_rounds(core, game.id) == [0]
    core.sessions.submit_answer(game.id, core.uid('carol'), 'z')
    state = core.sessions.get_game(game.id)
    assert state.current_round == 1
    assert open_rounds(core, game.id) == [1]
    assert all(not p.has_answered for p in state.players)
    assert core.timer.scheduled[-1] == (game.id, 1, 30)


def test_round_closes_exactly_at_its_duration(core):
    game = core.start_game(time_per_challenge=30)
    core.clock.advance(ms=29999)
    assert core.sessions.expire_round(game.id) is False
    assert open_rounds(core, game.id) == [0]
    core.clock.advance(ms=1)
    assert core.sessions.expire_round(game.id, 0) is True
    state = core.sessions.get_game(game.id)
    assert state.rounds[0].status == RoundStatus.CLOSED
    assert open_rounds(core, game.id) == [1]


def test_stale_timer_does_not_close_a_newer_round(core):
    game = core.start_game()
    core.sessions.submit_answer(game.id, core.uid('alice'), 'a')
    core.sessions.submit_answer(game.id, core.uid('bob'), 'b')
    core.clock.advance(seconds=30)
    assert core.sessions.expire_round(game.id, round_index=0) is False
    assert open_rounds(core, game.id) == [1]


def test_expire_round_on_missing_or_finished_game(core):
    assert core.sessions.expire_round('nope') is False
    game = core.start_game()
    core.sessions.end_game(game.id)
    core.clock.advance(seconds=60)
    assert core.sessions.expire_round(game.id) is False


def test_late_answer_closes_round_and_is_rejected(core):
    game = core.start_game(total_challenges=2, time_per_challenge=30)
    core.clock.advance(seconds=31)
    with pytest.raises(InvalidState):
        core.sessions.submit_answer(game.id, core.uid('alice'), core.answer_for(game, 0))
    state = core.sessions.get_game(game.id)
    assert state.rounds[0].status == RoundStatus.CLOSED
    assert state.rounds[0].responses == []
    assert state.current_round == 1
    assert 'ROUND_ENDED' in core.publisher.game_types(game.id)


def test_answer_at_exactly_the_duration_is_too_late(core):
    game = core.start_game(total_challenges=2, time_per_challenge=30)
    core.clock.advance(seconds=30)
    with pytest.raises(InvalidState):
        core.sessions.submit_answer(game.id, core.uid('alice'), core.answer_for(game, 0))
    state = core.sessions.get_game(game.id)
    assert state.rounds[0].status == RoundStatus.CLOSED
    assert state.rounds[0].responses == []
    assert state.players[0].score == 0
    assert open_rounds(core, game.id) == [1]


def test_answer_one_ms_before_the_duration_counts(core):
    game = core.start_game(total_challenges=2, time_per_challenge=30)
    core.clock.advance(ms=29999)
    record = core.sessions.submit_answer(game.id, core.uid('alice'), core.answer_for(game, 0))
    assert record.is_correct
    assert record.elapsed_ms == 29999
    assert open_rounds(core, game.id) == [0]


def test_expiry_of_last_round_finalizes(core):
    game = core.start_game(total_challenges=1)
    core.sessions.submit_answer(game.id, core.uid('alice'), core.answer_for(game))
    core.clock.advance(seconds=30)
    assert core.sessions.expire_round(game.id) is True
    state = core.sessions.get_game(game.id)
    assert state.status == GameStatus.FINISHED
    assert state.results.winner_id == core.uid('alice')


def test_disconnected_players_are_not_waited_for(core):
    game = core.start_game(names=('alice', 'bob', 'carol'))
    core.sessions.set_connected(game.id, core.uid('carol'), False)
    core.sessions.submit_answer(game.id, core.uid('alice'), 'a')
    core.sessions.submit_answer(game.id, core.uid('bob'), 'b')
    assert core.sessions.get_game(game.id).current_round == 1
    assert 'PLAYER_DISCONNECTED' in core.publisher.game_types(game.id)


def test_disconnect_of_last_pending_player_closes_round(core):
    game = core.start_game()
    core.sessions.submit_answer(game.id, core.uid('alice'), 'a')
    core.sessions.set_connected(game.id, core.uid('bob'), False)
    state = core.sessions.get_game(game.id)
    assert state.current_round == 1
    assert open_rounds(core, game.id) == [1]


def test_reconnect_is_announced(core):
    game = core.start_game()
    bob = core.uid('bob')
    core.sessions.set_connected(game.id, bob, False)
    core.sessions.set_connected(game.id, bob, True)
    assert core.sessions.get_game(game.id).get_player(bob).is_connected
    assert core.publisher.game_types(game.id)[-2:] == ['PLAYER_DISCONNECTED', 'PLAYER_RECONNECTED']


def test_everyone_disconnecting_cancels_game(core):
    game = core.start_game()
    core.sessions.set_connected(game.id, core.uid('alice'), False)
    core.sessions.set_connected(game.id, core.uid('bob'), False)
    state = core.sessions.get_game(game.id)
    assert state.status == GameStatus.CANCELLED
    assert open_rounds(core, game.id) == []
    assert state.results is None
    assert core.publisher.game_types(game.id)[-1] == 'GAME_CANCELLED'
    with pytest.raises(InvalidState):
        core.sessions.submit_answer(game.id, core.uid('alice'), 'a')


def test_ties_rank_earlier_joiner_first(core):
    game = core.start_game(names=('bob', 'alice'), total_challenges=1)
    answer = core.answer_for(game)
    core.sessions.submit_answer(game.id, core.uid('alice'), answer)
    core.sessions.submit_answer(game.id, core.uid('bob'), answer)
    results = core.sessions.get_game(game.id).results
    assert [r.score for r in results.player_results] == [100, 100]
    assert [r.username for r in results.player_results] == ['bob', 'alice']
    assert [r.rank for r in results.player_results] == [1, 2]
    assert results.winner_id == core.uid('bob')


def test_ranking_orders_by_score_first(core):
    game = core.start_game(names=('alice', 'bob', 'carol'), total_challenges=1)
    core.sessions.submit_answer(game.id, core.uid('alice'), 'wrong')
    core.sessions.submit_answer(game.id, core.uid('bob'), 'wrong')
    core.sessions.submit_answer(game.id, core.uid('carol'), core.answer_for(game))
    results = core.sessions.get_game(game.id).results
    assert [r.username for r in results.player_results] == ['carol', 'alice', 'bob']
    assert sorted(r.rank for r in results.player_results) == [1, 2, 3]


def test_time_based_scoring_rewards_speed(core):
    game = core.start_game(scoring_mode=ScoringMode.TIME_BASED)
    core.clock.advance(seconds=10)
    record = core.sessions.submit_answer(game.id, core.uid('alice'), core.answer_for(game))
    assert record.elapsed_ms == 10000
    # Challenge time limit is 60s
    assert record.points == 150


def test_streak_bonus_grows_with_consecutive_correct_answers(core):
    game = core.start_game(scoring_mode=ScoringMode.STREAK_BONUS, total_challenges=3)
    alice, bob = core.uid('alice'), core.uid('bob')
    points = []
    for _ in range(3):
        points.append(core.sessions.submit_answer(game.id, alice, core.answer_for(game)).points)
        core.sessions.submit_answer(game.id, bob, 'wrong')
    assert points == [100, 110, 120]
    state = core.sessions.get_game(game.id)
    assert state.status == GameStatus.FINISHED
    assert state.get_player(alice).best_streak == 3
    assert state.get_player(bob).current_streak == 0


def test_elimination_removes_wrong_answerers(core):
    game = core.start_game(scoring_mode=ScoringMode.ELIMINATION, total_challenges=3)
    alice, bob = core.uid('alice'), core.uid('bob')
    core.sessions.submit_answer(game.id, alice, core.answer_for(game))
    core.sessions.submit_answer(game.id, bob, 'wrong')
    state = core.sessions.get_game(game.id)
    assert state.get_player(bob).is_eliminated
    assert state.current_round == 1
    with pytest.raises(InvalidState):
        core.sessions.submit_answer(game.id, bob, core.answer_for(game))
    # Only alice is still playing, so her answer alone closes the round
    core.sessions.submit_answer(game.id, alice, core.answer_for(game))
    assert core.sessions.get_game(game.id).current_round == 2


def test_elimination_with_no_survivors_finishes_game(core):
    game = core.start_game(scoring_mode=ScoringMode.ELIMINATION, total_challenges=3)
    core.sessions.submit_answer(game.id, core.uid('alice'), 'wrong')
    core.sessions.submit_answer(game.id, core.uid('bob'), 'wrong')
    state = core.sessions.get_game(game.id)
    assert state.status == GameStatus.FINISHED
    assert [r.status for r in state.rounds] == [RoundStatus.CLOSED, RoundStatus.PENDING, RoundStatus.PENDING]


def test_end_game_finalizes_mid_round(core):
    game = core.start_game(total_challenges=3)
    core.sessions.submit_answer(game.id, core.uid('alice'), core.answer_for(game))
    ended = core.sessions.end_game(game.id)
    assert ended.status == GameStatus.FINISHED
    assert open_rounds(core, game.id) == []
    assert ended.results.winner_id == core.uid('alice')
    assert ended.results.total_rounds == 3
    with pytest.raises(InvalidState):
        core.sessions.end_game(game.id)
    with pytest.raises(InvalidState):
        core.sessions.submit_answer(game.id, core.uid('bob'), 'late')


def test_results_are_not_recomputed_after_finish(core):
    game = core.start_game(total_challenges=1)
    core.sessions.end_game(game.id)
    results = core.sessions.get_game(game.id).results
    core.sessions.expire_round(game.id)
    with pytest.raises(InvalidState):
        core.sessions.cancel_game(game.id)
    assert core.sessions.get_game(game.id).results == results


def test_submit_rejects_wrong_challenge_and_strangers(core):
    game = core.start_game()
    with pytest.raises(InvalidState):
        core.sessions.submit_answer(game.id, core.uid('alice'), 'a', challenge_id=-1)
    with pytest.raises(NotFound):
        core.sessions.submit_answer(game.id, core.uid('dave'), 'a')
    with pytest.raises(NotFound):
        core.sessions.submit_answer('missing', core.uid('alice'), 'a')


def test_current_challenge_follows_open_round(core):
    game = core.start_game(total_challenges=1)
    challenge = core.sessions.get_current_challenge(game.id)
    assert challenge.id == core.sessions.get_game(game.id).rounds[0].challenge_id
    core.sessions.end_game(game.id)
    assert core.sessions.get_current_challenge(game.id) is None


def test_finished_game_updates_player_and_challenge_stats(core):
    game = core.start_game(total_challenges=1)
    answer = core.answer_for(game)
    core.clock.advance(seconds=4)
    core.sessions.submit_answer(game.id, core.uid('alice'), answer)
    core.clock.advance(seconds=2)
    core.sessions.submit_answer(game.id, core.uid('bob'), 'wrong')

    alice, bob = core.user('alice'), core.user('bob')
    assert (alice.games_played, alice.games_won, alice.current_streak) == (1, 1, 1)
    assert (alice.experience, alice.level) == (100, 1)
    assert (bob.games_played, bob.games_won, bob.current_streak) == (1, 0, 0)
    assert alice.total_play_time == 6

    state = core.sessions.get_game(game.id)
    assert state.results.fastest_answer_ms == 4000
    challenge = core.challenges.find_by_id(state.rounds[0].challenge_id)
    assert challenge.times_used == 1
    assert (challenge.total_attempts, challenge.correct_attempts) == (2, 1)
    assert challenge.success_rate == 50.0
    assert challenge.average_time == 5.0


def test_loaded_games_are_private_copies(core):
    game = core.start_game()
    copy = core.sessions.get_game(game.id)
    copy.players[0].score = 9999
    copy.status = GameStatus.CANCELLED
    fresh = core.sessions.get_game(game.id)
    assert fresh.players[0].score == 0
    assert fresh.status == GameStatus.IN_PROGRESS


def test_status_never_moves_backwards(core):
    game = core.start_game(total_challenges=1)
    finished = core.sessions.end_game(game.id)
    for status in (GameStatus.WAITING, GameStatus.STARTING, GameStatus.IN_PROGRESS, GameStatus.CANCELLED):
        with pytest.raises(InvalidState):
            finished.transition(status)


def test_concurrent_duplicates_accept_exactly_one(core):
    game = core.start_game(names=('alice', 'bob', 'carol'))
    alice = core.uid('alice')
    answer = core.answer_for(game)
    barrier = threading.Barrier(6)
    outcomes = []

    def submit():
        barrier.wait()
        try:
            core.sessions.submit_answer(game.id, alice, answer)
            outcomes.append('ok')
        except DuplicateSubmission:
            outcomes.append('dup')

    threads = [threading.Thread(target=submit) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ['dup'] * 5 + ['ok']
    state = core.sessions.get_game(game.id)
    assert state.get_player(alice).score == 100
    assert len(state.rounds[0].responses) == 1


def test_concurrent_answers_close_round_once(core):
    game = core.start_game(names=('alice', 'bob', 'carol', 'dave'), max_players=4, total_challenges=2)
    names = ('alice', 'bob', 'carol', 'dave')
    barrier = threading.Barrier(len(names))

    def submit(name):
        barrier.wait()
        core.sessions.submit_answer(game.id, core.uid(name), 'x')

    threads = [threading.Thread(target=submit, args=(n,)) for n in names]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    state = core.sessions.get_game(game.id)
    assert len(state.rounds[0].responses) == 4
    assert state.current_round == 1
    assert open_rounds(core, game.id) == [1]
    assert core.publisher.game_types(game.id).count('ROUND_ENDED') == 1


def test_end_game_and_submit_are_mutually_atomic(core):
    game = core.start_game(total_challenges=2)
    alice = core.uid('alice')
    answer = core.answer_for(game)
    barrier = threading.Barrier(2)
    outcome = {}

    def submit():
        barrier.wait()
        try:
            outcome['submit'] = core.sessions.submit_answer(game.id, alice, answer)
        except InvalidState:
            outcome['submit'] = None

    def end():
        barrier.wait()
        core.sessions.end_game(game.id)

    threads = [threading.Thread(target=submit), threading.Thread(target=end)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    state = core.sessions.get_game(game.id)
    assert state.status == GameStatus.FINISHED
    alice_result = next(r for r in state.results.player_results if r.user_id == alice)
    if outcome['submit'] is None:
        assert alice_result.total_answers == 0
        assert state.rounds[0].responses == []
    else:
        assert alice_result.total_answers == 1
        assert alice_result.score == 100
