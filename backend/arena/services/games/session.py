"""Game session state machine.

Game status only moves forward: WAITING -> STARTING -> IN_PROGRESS ->
FINISHED or CANCELLED. While IN_PROGRESS exactly one round, the one at
``current_round``, is OPEN. A round closes when every connected,
non-eliminated player has answered or when it has been open for its full
duration; closing either opens the next round or finalizes the game.

Every mutation runs under the game's lock as load -> mutate -> save.
Notifications are queued while the lock is held and published after it is
released.
"""
import dataclasses
import logging
import uuid
from functools import partial
from typing import Callable, List, Optional

from arena.errors import DuplicateSubmission, InvalidState, NotFound

from . import scoring
from .entities import (
    Game,
    GamePlayer,
    GameResults,
    GameRound,
    GameStatus,
    PlayerAnswer,
    PlayerResult,
    Room,
    RoundStatus,
    ScoringMode,
    utcnow,
)
from .locks import EntityLocks
from .stats import apply_challenge_usage, apply_game_result

logger = logging.getLogger(__name__)

Notice = Callable[[], None]


class GameSession:
    def __init__(self, games, challenges, selector, events, users=None,
                 locks: Optional[EntityLocks] = None, clock=utcnow, timer=None):
        self.games = games
        self.challenges = challenges
        self.selector = selector
        self.events = events
        self.users = users
        self.locks = locks or EntityLocks()
        self.clock = clock
        self.timer = timer

    # ------------------------
    # Queries
    # ------------------------

    def get_game(self, game_id) -> Game:
        return self._load(game_id)

    def get_current_challenge(self, game_id):
        game = self._load(game_id)
        game_round = game.active_round
        if game.status != GameStatus.IN_PROGRESS or game_round is None or not game_round.is_open:
            return None
        return self._challenge(game_round)

    # ------------------------
    # Lifecycle
    # ------------------------

    def create_game(self, room: Room) -> Game:
        """Build a game from a room snapshot; the room is not modified."""
        config = dataclasses.replace(room.config, password_hash=None)
        picked = self.selector.select(config.difficulty, config.total_challenges)
        now = self.clock()
        game = Game(
            id=uuid.uuid4().hex,
            room_id=room.id,
            host_id=room.host_id,
            config=config,
            created_at=now,
            players=[
                GamePlayer(
                    user_id=p.user_id,
                    username=p.username,
                    joined_at=p.joined_at,
                    is_connected=p.is_connected,
                )
                for p in room.players
            ],
            rounds=[
                GameRound(index=i, challenge_id=c.id, duration=config.time_per_challenge)
                for i, c in enumerate(picked)
            ],
        )
        game.transition(GameStatus.STARTING)
        self.games.save(game)
        logger.info(f"[game-create] game={game.id} room={room.id} players={len(game.players)} rounds={len(game.rounds)}")
        return game

    def start(self, game_id) -> Game:
        notices: List[Notice] = []
        with self.locks.hold(self._key(game_id)):
            game = self._load(game_id)
            if game.status not in (GameStatus.WAITING, GameStatus.STARTING):
                raise InvalidState(f'Game cannot be started from {game.status.value}')
            if not game.rounds:
                raise InvalidState('Game has no rounds')
            now = self.clock()
            pending: List[Notice] = []
            game.transition(GameStatus.IN_PROGRESS)
            game.started_at = now
            game.current_round = 0
            self._open_round(game, now, pending, announce=False)
            pending.insert(0, partial(self.events.game_started, game, self._challenge(game.active_round, required=False)))
            self.games.save(game)
            notices.extend(pending)
        logger.info(f"[game-start] game={game.id} rounds={len(game.rounds)}")
        self._dispatch(notices)
        return game

    def submit_answer(self, game_id, user_id, answer, challenge_id=None) -> PlayerAnswer:
        """Record one player's answer for the open round.

        Returns the recorded answer. Round closing and game finalization
        that this answer triggers are only announced through the events.
        """
        notices: List[Notice] = []
        try:
            with self.locks.hold(self._key(game_id)):
                record = self._submit(game_id, user_id, answer, challenge_id, notices)
        finally:
            self._dispatch(notices)
        return record

    def end_game(self, game_id) -> Game:
        """Force-finish a game wherever it is and compute its results."""
        notices: List[Notice] = []
        with self.locks.hold(self._key(game_id)):
            game = self._load(game_id)
            if game.is_terminal:
                raise InvalidState(f'Game already {game.status.value.lower()}')
            pending: List[Notice] = []
            self._finalize(game, self.clock(), pending)
            self.games.save(game)
            notices.extend(pending)
        logger.info(f"[game-end] game={game.id} forced=True")
        self._dispatch(notices)
        return game

    def cancel_game(self, game_id, reason: str = 'Game cancelled') -> Game:
        notices: List[Notice] = []
        with self.locks.hold(self._key(game_id)):
            game = self._load(game_id)
            if game.is_terminal:
                raise InvalidState(f'Game already {game.status.value.lower()}')
            pending: List[Notice] = []
            self._cancel(game, self.clock(), reason, pending)
            self.games.save(game)
            notices.extend(pending)
        self._dispatch(notices)
        return game

    def expire_round(self, game_id, round_index: Optional[int] = None) -> bool:
        """Close the open round if its time is up. Returns True if it closed."""
        notices: List[Notice] = []
        with self.locks.hold(self._key(game_id)):
            game = self.games.find_by_id(game_id)
            if game is None or game.status != GameStatus.IN_PROGRESS:
                return False
            if round_index is not None and game.current_round != round_index:
                return False
            pending: List[Notice] = []
            if not self._close_if_expired(game, self.clock(), pending):
                return False
            self.games.save(game)
            notices.extend(pending)
        self._dispatch(notices)
        return True

    def set_connected(self, game_id, user_id, connected: bool) -> Game:
        notices: List[Notice] = []
        with self.locks.hold(self._key(game_id)):
            game = self._load(game_id)
            player = game.get_player(user_id)
            if player is None:
                raise NotFound('Player is not part of this game')
            if game.is_terminal or player.is_connected == bool(connected):
                return game
            now = self.clock()
            pending: List[Notice] = []
            player.is_connected = bool(connected)
            pending.append(partial(self.events.player_connection, game, player))
            if not any(p.is_connected for p in game.players):
                self._cancel(game, now, 'All players disconnected', pending)
            elif game.status == GameStatus.IN_PROGRESS:
                game_round = game.active_round
                if game_round is not None and game_round.is_open and self._round_complete(game, game_round, now):
                    self._close_round(game, now, pending)
            self.games.save(game)
            notices.extend(pending)
        logger.info(f"[game-connection] game={game_id} user={user_id} connected={bool(connected)}")
        self._dispatch(notices)
        return game

    # ------------------------
    # Transitions (called with the game lock held)
    # ------------------------

    def _submit(self, game_id, user_id, answer, challenge_id, notices: List[Notice]) -> PlayerAnswer:
        game = self._load(game_id)
        if game.status != GameStatus.IN_PROGRESS:
            raise InvalidState('Game is not in progress')

        now = self.clock()
        pending: List[Notice] = []
        if self._close_if_expired(game, now, pending):
            self.games.save(game)
            notices.extend(pending)
            raise InvalidState('Round closed before the answer arrived')

        game_round = game.active_round
        if game_round is None or not game_round.is_open:
            raise InvalidState('No round is open')
        if challenge_id is not None and str(challenge_id) != str(game_round.challenge_id):
            raise InvalidState('Answer is for a challenge that is not open')

        player = game.get_player(user_id)
        if player is None:
            raise NotFound('Player is not part of this game')
        if player.is_eliminated:
            raise InvalidState('Player has been eliminated')
        if player.has_answered or game_round.has_response_from(user_id):
            raise DuplicateSubmission('Player already answered this round')

        challenge = self._challenge(game_round)
        is_correct = scoring.is_correct_answer(challenge, answer)
        elapsed_ms = game_round.elapsed_ms(now)
        mode = game.config.scoring_mode
        points = scoring.score(challenge, is_correct, elapsed_ms, mode)
        if mode == ScoringMode.STREAK_BONUS:
            points += scoring.streak_bonus(points, player.current_streak)

        record = PlayerAnswer(
            user_id=player.user_id,
            challenge_id=game_round.challenge_id,
            answer='' if answer is None else str(answer),
            is_correct=is_correct,
            elapsed_ms=elapsed_ms,
            points=points,
            submitted_at=now,
        )
        self._apply_answer(player, record, now)
        game_round.responses.append(record)
        if mode == ScoringMode.ELIMINATION and not is_correct:
            player.is_eliminated = True

        pending.append(partial(self.events.answer_accepted, game, player, record, len(game_round.responses)))
        if self._round_complete(game, game_round, now):
            self._close_round(game, now, pending)

        self.games.save(game)
        notices.extend(pending)
        logger.info(
            f"[answer] game={game.id} round={game_round.index} user={player.user_id} "
            f"correct={is_correct} points={points} elapsed_ms={elapsed_ms}"
        )
        return record

    @staticmethod
    def _apply_answer(player: GamePlayer, record: PlayerAnswer, now) -> None:
        player.score += record.points
        player.total_answers += 1
        if record.is_correct:
            player.correct_answers += 1
            player.current_streak += 1
            player.best_streak = max(player.best_streak, player.current_streak)
        else:
            player.current_streak = 0
        # Incremental mean over this player's answers
        player.average_response_ms += (record.elapsed_ms - player.average_response_ms) / player.total_answers
        player.has_answered = True
        player.last_answer_at = now

    @staticmethod
    def _round_complete(game: Game, game_round: GameRound, now) -> bool:
        if game_round.is_expired(now):
            return True
        return all(game_round.has_response_from(p.user_id) for p in game.players if p.is_active)

    def _close_if_expired(self, game: Game, now, pending: List[Notice]) -> bool:
        game_round = game.active_round
        if game.status != GameStatus.IN_PROGRESS or game_round is None or not game_round.is_expired(now):
            return False
        logger.info(f"[round-expire] game={game.id} round={game_round.index} elapsed_ms={game_round.elapsed_ms(now)}")
        self._close_round(game, now, pending)
        return True

    def _close_round(self, game: Game, now, pending: List[Notice]) -> None:
        game_round = game.active_round
        game_round.status = RoundStatus.CLOSED
        game_round.closed_at = now
        for p in game.players:
            p.has_answered = False
        pending.append(partial(self.events.round_closed, game, game_round, self._challenge(game_round, required=False)))
        logger.info(f"[round-close] game={game.id} round={game_round.index} responses={len(game_round.responses)}")

        survivors = any(not p.is_eliminated for p in game.players)
        if game.is_last_round or not survivors:
            self._finalize(game, now, pending)
        else:
            game.current_round += 1
            self._open_round(game, now, pending)

    def _open_round(self, game: Game, now, pending: List[Notice], announce: bool = True) -> None:
        game_round = game.active_round
        game_round.status = RoundStatus.OPEN
        game_round.started_at = now
        if announce:
            pending.append(partial(self.events.round_opened, game, self._challenge(game_round, required=False)))
        if self.timer is not None:
            pending.append(partial(self.timer.schedule, game.id, game_round.index, game_round.duration))
        logger.info(f"[round-open] game={game.id} round={game_round.index} duration={game_round.duration}s")

    def _finalize(self, game: Game, now, pending: List[Notice]) -> None:
        self._shut_open_round(game, now)
        game.transition(GameStatus.FINISHED)
        game.finished_at = now
        game.results = self._compute_results(game)
        self._record_stats(game)
        pending.append(partial(self.events.game_finished, game))
        logger.info(f"[game-finish] game={game.id} winner={game.results.winner_id} rounds={len(game.rounds)}")

    def _cancel(self, game: Game, now, reason: str, pending: List[Notice]) -> None:
        self._shut_open_round(game, now)
        game.transition(GameStatus.CANCELLED)
        game.finished_at = now
        pending.append(partial(self.events.game_cancelled, game, reason))
        logger.info(f"[game-cancel] game={game.id} reason={reason!r}")

    @staticmethod
    def _shut_open_round(game: Game, now) -> None:
        for game_round in game.open_rounds:
            game_round.status = RoundStatus.CLOSED
            game_round.closed_at = now
        for p in game.players:
            p.has_answered = False

    @staticmethod
    def _compute_results(game: Game) -> GameResults:
        join_order = {p.user_id: i for i, p in enumerate(game.players)}
        ranked = sorted(game.players, key=lambda p: (-p.score, p.joined_at, join_order[p.user_id]))
        player_results = tuple(
            PlayerResult(
                user_id=p.user_id,
                username=p.username,
                rank=rank,
                score=p.score,
                correct_answers=p.correct_answers,
                total_answers=p.total_answers,
                average_response_ms=p.average_response_ms,
                best_streak=p.best_streak,
            )
            for rank, p in enumerate(ranked, start=1)
        )

        responses = [r for game_round in game.rounds for r in game_round.responses]
        answered_rounds = [r for r in game.rounds if r.responses]
        hardest = None
        if answered_rounds:
            hardest = min(
                answered_rounds,
                key=lambda r: (sum(1 for a in r.responses if a.is_correct) / len(r.responses), r.index),
            ).challenge_id

        return GameResults(
            player_results=player_results,
            winner_id=ranked[0].user_id if ranked else None,
            total_rounds=len(game.rounds),
            average_score=(sum(p.score for p in game.players) / len(game.players)) if game.players else 0.0,
            fastest_answer_ms=min((r.elapsed_ms for r in responses), default=None),
            hardest_challenge_id=hardest,
        )

    def _record_stats(self, game: Game) -> None:
        if self.users is not None:
            started = game.started_at or game.created_at
            play_seconds = int((game.finished_at - started).total_seconds())
            for p in game.players:
                user = self.users.find_by_id(p.user_id)
                if user is None:
                    continue
                apply_game_result(user, p.user_id == game.results.winner_id, p.score, play_seconds)
                self.users.save(user)
        for game_round in game.rounds:
            if game_round.started_at is None:
                continue
            challenge = self.challenges.find_by_id(game_round.challenge_id)
            if challenge is None:
                continue
            apply_challenge_usage(challenge, game_round.responses)
            self.challenges.save(challenge)

    # ------------------------
    # Helpers
    # ------------------------

    @staticmethod
    def _key(game_id) -> str:
        return f"game:{game_id}"

    def _load(self, game_id) -> Game:
        game = self.games.find_by_id(game_id)
        if game is None:
            raise NotFound('Game not found')
        return game

    def _challenge(self, game_round: Optional[GameRound], required: bool = True):
        challenge = self.challenges.find_by_id(game_round.challenge_id) if game_round else None
        if challenge is None and required:
            raise NotFound('Challenge not found')
        return challenge

    @staticmethod
    def _dispatch(notices: List[Notice]) -> None:
        for notice in notices:
            notice()
