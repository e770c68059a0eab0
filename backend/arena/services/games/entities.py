"""Room and game entities.

Rooms and games are plain dataclasses that the services load, mutate as a
private copy and save back whole. ``to_dict``/``from_dict`` is the snapshot
format used by every store, so a saved entity never shares mutable state
with the caller that saved it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from arena.errors import InvalidState


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class Difficulty(str, Enum):
    EASY = 'EASY'
    MEDIUM = 'MEDIUM'
    HARD = 'HARD'
    EXPERT = 'EXPERT'


class ChallengeType(str, Enum):
    LOGIC = 'LOGIC'
    MATH = 'MATH'
    PATTERN = 'PATTERN'
    CODE = 'CODE'
    TRIVIA = 'TRIVIA'
    SEQUENCE = 'SEQUENCE'
    MULTIPLE_CHOICE = 'MULTIPLE_CHOICE'
    OPEN_ANSWER = 'OPEN_ANSWER'


class GameMode(str, Enum):
    CLASSIC = 'CLASSIC'
    BLITZ = 'BLITZ'
    PRACTICE = 'PRACTICE'
    TOURNAMENT = 'TOURNAMENT'


class ScoringMode(str, Enum):
    STANDARD = 'STANDARD'
    TIME_BASED = 'TIME_BASED'
    STREAK_BONUS = 'STREAK_BONUS'
    ELIMINATION = 'ELIMINATION'


class RoomStatus(str, Enum):
    WAITING = 'WAITING'
    IN_PROGRESS = 'IN_PROGRESS'


class GameStatus(str, Enum):
    WAITING = 'WAITING'
    STARTING = 'STARTING'
    IN_PROGRESS = 'IN_PROGRESS'
    FINISHED = 'FINISHED'
    CANCELLED = 'CANCELLED'


class RoundStatus(str, Enum):
    PENDING = 'PENDING'
    OPEN = 'OPEN'
    CLOSED = 'CLOSED'


# Forward-only status transitions
GAME_TRANSITIONS = {
    GameStatus.WAITING: {GameStatus.STARTING, GameStatus.IN_PROGRESS, GameStatus.FINISHED, GameStatus.CANCELLED},
    GameStatus.STARTING: {GameStatus.IN_PROGRESS, GameStatus.FINISHED, GameStatus.CANCELLED},
    GameStatus.IN_PROGRESS: {GameStatus.FINISHED, GameStatus.CANCELLED},
    GameStatus.FINISHED: set(),
    GameStatus.CANCELLED: set(),
}

MIN_ROOM_PLAYERS = 2
MAX_ROOM_PLAYERS = 8


@dataclass
class RoomConfig:
    max_players: int = 4
    difficulty: Difficulty = Difficulty.MEDIUM
    game_mode: GameMode = GameMode.CLASSIC
    scoring_mode: ScoringMode = ScoringMode.STANDARD
    time_per_challenge: int = 60
    total_challenges: int = 5
    is_public: bool = True
    password_hash: Optional[str] = None

    @property
    def requires_password(self) -> bool:
        return bool(self.password_hash)

    def to_dict(self, include_secret: bool = False) -> dict[str, Any]:
        data = {
            'max_players': self.max_players,
            'difficulty': self.difficulty.value,
            'game_mode': self.game_mode.value,
            'scoring_mode': self.scoring_mode.value,
            'time_per_challenge': self.time_per_challenge,
            'total_challenges': self.total_challenges,
            'is_public': self.is_public,
            'requires_password': self.requires_password,
        }
        if include_secret:
            data['password_hash'] = self.password_hash
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'RoomConfig':
        return cls(
            max_players=int(data.get('max_players', 4)),
            difficulty=Difficulty(data.get('difficulty', Difficulty.MEDIUM.value)),
            game_mode=GameMode(data.get('game_mode', GameMode.CLASSIC.value)),
            scoring_mode=ScoringMode(data.get('scoring_mode', ScoringMode.STANDARD.value)),
            time_per_challenge=int(data.get('time_per_challenge', 60)),
            total_challenges=int(data.get('total_challenges', 5)),
            is_public=bool(data.get('is_public', True)),
            password_hash=data.get('password_hash'),
        )


@dataclass
class RoomPlayer:
    user_id: int
    username: str
    joined_at: datetime
    is_ready: bool = False
    is_connected: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            'user_id': self.user_id,
            'username': self.username,
            'joined_at': _dt(self.joined_at),
            'is_ready': self.is_ready,
            'is_connected': self.is_connected,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'RoomPlayer':
        return cls(
            user_id=data['user_id'],
            username=data['username'],
            joined_at=_parse_dt(data['joined_at']),
            is_ready=bool(data.get('is_ready', False)),
            is_connected=bool(data.get('is_connected', True)),
        )


@dataclass
class Room:
    id: str
    room_code: str
    name: str
    host_id: int
    config: RoomConfig
    created_at: datetime
    expires_at: datetime
    players: list[RoomPlayer] = field(default_factory=list)
    status: RoomStatus = RoomStatus.WAITING
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    game_id: Optional[str] = None

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.config.max_players

    def has_player(self, user_id) -> bool:
        return any(p.user_id == user_id for p in self.players)

    def get_player(self, user_id) -> Optional[RoomPlayer]:
        return next((p for p in self.players if p.user_id == user_id), None)

    def is_host(self, user_id) -> bool:
        return self.host_id == user_id

    def can_start(self) -> bool:
        return len(self.players) >= MIN_ROOM_PLAYERS and all(p.is_ready for p in self.players)

    def is_expired(self, now: datetime) -> bool:
        return self.status == RoomStatus.WAITING and now >= self.expires_at

    def to_dict(self, include_secret: bool = False) -> dict[str, Any]:
        return {
            'id': self.id,
            'room_code': self.room_code,
            'name': self.name,
            'host_id': self.host_id,
            'players': [p.to_dict() for p in self.players],
            'config': self.config.to_dict(include_secret=include_secret),
            'status': self.status.value,
            'is_full': self.is_full,
            'can_start': self.can_start(),
            'created_at': _dt(self.created_at),
            'updated_at': _dt(self.updated_at),
            'expires_at': _dt(self.expires_at),
            'started_at': _dt(self.started_at),
            'game_id': self.game_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Room':
        return cls(
            id=data['id'],
            room_code=data['room_code'],
            name=data['name'],
            host_id=data['host_id'],
            config=RoomConfig.from_dict(data.get('config') or {}),
            created_at=_parse_dt(data['created_at']),
            expires_at=_parse_dt(data['expires_at']),
            players=[RoomPlayer.from_dict(p) for p in data.get('players', [])],
            status=RoomStatus(data.get('status', RoomStatus.WAITING.value)),
            updated_at=_parse_dt(data.get('updated_at')),
            started_at=_parse_dt(data.get('started_at')),
            game_id=data.get('game_id'),
        )


@dataclass(frozen=True)
class PlayerAnswer:
    user_id: int
    challenge_id: int
    answer: str
    is_correct: bool
    elapsed_ms: int
    points: int
    submitted_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            'user_id': self.user_id,
            'challenge_id': self.challenge_id,
            'answer': self.answer,
            'is_correct': self.is_correct,
            'elapsed_ms': self.elapsed_ms,
            'points': self.points,
            'submitted_at': _dt(self.submitted_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'PlayerAnswer':
        return cls(
            user_id=data['user_id'],
            challenge_id=data['challenge_id'],
            answer=data['answer'],
            is_correct=bool(data['is_correct']),
            elapsed_ms=int(data['elapsed_ms']),
            points=int(data['points']),
            submitted_at=_parse_dt(data['submitted_at']),
        )


@dataclass
class GameRound:
    index: int
    challenge_id: int
    duration: int  # seconds
    status: RoundStatus = RoundStatus.PENDING
    started_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    responses: list[PlayerAnswer] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status == RoundStatus.OPEN

    @property
    def is_completed(self) -> bool:
        return self.status == RoundStatus.CLOSED

    def has_response_from(self, user_id) -> bool:
        return any(r.user_id == user_id for r in self.responses)

    def elapsed_ms(self, now: datetime) -> int:
        if not self.started_at:
            return 0
        return max(0, int((now - self.started_at).total_seconds() * 1000))

    def is_expired(self, now: datetime) -> bool:
        return self.is_open and self.elapsed_ms(now) >= self.duration * 1000

    def deadline(self) -> Optional[datetime]:
        if not self.started_at:
            return None
        return self.started_at + timedelta(seconds=self.duration)

    def to_dict(self) -> dict[str, Any]:
        return {
            'index': self.index,
            'challenge_id': self.challenge_id,
            'duration': self.duration,
            'status': self.status.value,
            'started_at': _dt(self.started_at),
            'closed_at': _dt(self.closed_at),
            'responses': [r.to_dict() for r in self.responses],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'GameRound':
        return cls(
            index=int(data['index']),
            challenge_id=data['challenge_id'],
            duration=int(data['duration']),
            status=RoundStatus(data.get('status', RoundStatus.PENDING.value)),
            started_at=_parse_dt(data.get('started_at')),
            closed_at=_parse_dt(data.get('closed_at')),
            responses=[PlayerAnswer.from_dict(r) for r in data.get('responses', [])],
        )


@dataclass
class GamePlayer:
    user_id: int
    username: str
    joined_at: datetime
    score: int = 0
    total_answers: int = 0
    correct_answers: int = 0
    current_streak: int = 0
    best_streak: int = 0
    has_answered: bool = False
    average_response_ms: float = 0.0
    last_answer_at: Optional[datetime] = None
    is_connected: bool = True
    is_eliminated: bool = False

    @property
    def is_active(self) -> bool:
        return self.is_connected and not self.is_eliminated

    def to_dict(self) -> dict[str, Any]:
        return {
            'user_id': self.user_id,
            'username': self.username,
            'joined_at': _dt(self.joined_at),
            'score': self.score,
            'total_answers': self.total_answers,
            'correct_answers': self.correct_answers,
            'current_streak': self.current_streak,
            'best_streak': self.best_streak,
            'has_answered': self.has_answered,
            'average_response_ms': self.average_response_ms,
            'last_answer_at': _dt(self.last_answer_at),
            'is_connected': self.is_connected,
            'is_eliminated': self.is_eliminated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'GamePlayer':
        return cls(
            user_id=data['user_id'],
            username=data['username'],
            joined_at=_parse_dt(data['joined_at']),
            score=int(data.get('score', 0)),
            total_answers=int(data.get('total_answers', 0)),
            correct_answers=int(data.get('correct_answers', 0)),
            current_streak=int(data.get('current_streak', 0)),
            best_streak=int(data.get('best_streak', 0)),
            has_answered=bool(data.get('has_answered', False)),
            average_response_ms=float(data.get('average_response_ms', 0.0)),
            last_answer_at=_parse_dt(data.get('last_answer_at')),
            is_connected=bool(data.get('is_connected', True)),
            is_eliminated=bool(data.get('is_eliminated', False)),
        )


@dataclass(frozen=True)
class PlayerResult:
    user_id: int
    username: str
    rank: int
    score: int
    correct_answers: int
    total_answers: int
    average_response_ms: float
    best_streak: int

    def to_dict(self) -> dict[str, Any]:
        return {
            'user_id': self.user_id,
            'username': self.username,
            'rank': self.rank,
            'score': self.score,
            'correct_answers': self.correct_answers,
            'total_answers': self.total_answers,
            'average_response_ms': self.average_response_ms,
            'best_streak': self.best_streak,
        }


@dataclass(frozen=True)
class GameResults:
    player_results: tuple[PlayerResult, ...]
    winner_id: Optional[int]
    total_rounds: int
    average_score: float
    fastest_answer_ms: Optional[int]
    hardest_challenge_id: Optional[int]

    def to_dict(self) -> dict[str, Any]:
        return {
            'player_results': [r.to_dict() for r in self.player_results],
            'winner_id': self.winner_id,
            'total_rounds': self.total_rounds,
            'game_stats': {
                'average_score': self.average_score,
                'fastest_answer_ms': self.fastest_answer_ms,
                'hardest_challenge_id': self.hardest_challenge_id,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'GameResults':
        stats = data.get('game_stats') or {}
        return cls(
            player_results=tuple(PlayerResult(**r) for r in data.get('player_results', [])),
            winner_id=data.get('winner_id'),
            total_rounds=int(data.get('total_rounds', 0)),
            average_score=float(stats.get('average_score', 0.0)),
            fastest_answer_ms=stats.get('fastest_answer_ms'),
            hardest_challenge_id=stats.get('hardest_challenge_id'),
        )


@dataclass
class Game:
    id: str
    room_id: str
    host_id: int
    config: RoomConfig
    created_at: datetime
    players: list[GamePlayer] = field(default_factory=list)
    rounds: list[GameRound] = field(default_factory=list)
    status: GameStatus = GameStatus.WAITING
    current_round: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    results: Optional[GameResults] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (GameStatus.FINISHED, GameStatus.CANCELLED)

    @property
    def active_round(self) -> Optional[GameRound]:
        if 0 <= self.current_round < len(self.rounds):
            return self.rounds[self.current_round]
        return None

    @property
    def open_rounds(self) -> list[GameRound]:
        return [r for r in self.rounds if r.is_open]

    @property
    def is_last_round(self) -> bool:
        return self.current_round >= len(self.rounds) - 1

    def get_player(self, user_id) -> Optional[GamePlayer]:
        return next((p for p in self.players if p.user_id == user_id), None)

    def transition(self, status: GameStatus) -> None:
        if status not in GAME_TRANSITIONS[self.status]:
            raise InvalidState(f'Game cannot move from {self.status.value} to {status.value}')
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'room_id': self.room_id,
            'host_id': self.host_id,
            'config': self.config.to_dict(),
            'players': [p.to_dict() for p in self.players],
            'rounds': [r.to_dict() for r in self.rounds],
            'status': self.status.value,
            'current_round': self.current_round,
            'total_rounds': len(self.rounds),
            'created_at': _dt(self.created_at),
            'started_at': _dt(self.started_at),
            'finished_at': _dt(self.finished_at),
            'results': self.results.to_dict() if self.results else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Game':
        return cls(
            id=data['id'],
            room_id=data['room_id'],
            host_id=data['host_id'],
            config=RoomConfig.from_dict(data.get('config') or {}),
            created_at=_parse_dt(data['created_at']),
            players=[GamePlayer.from_dict(p) for p in data.get('players', [])],
            rounds=[GameRound.from_dict(r) for r in data.get('rounds', [])],
            status=GameStatus(data.get('status', GameStatus.WAITING.value)),
            current_round=int(data.get('current_round', 0)),
            started_at=_parse_dt(data.get('started_at')),
            finished_at=_parse_dt(data.get('finished_at')),
            results=GameResults.from_dict(data['results']) if data.get('results') else None,
        )
