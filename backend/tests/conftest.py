import os
import random
import sys
import threading
from datetime import datetime, timedelta, timezone

import pytest

# Ensure the backend root (containing the `arena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from arena import create_app, db, socketio
from arena.models import Challenge, User
from arena.services.games.broadcaster import EventBroadcaster
from arena.services.games.entities import ChallengeType, Difficulty, RoomConfig
from arena.services.games.locks import EntityLocks
from arena.services.games.rooms import RoomRegistry
from arena.services.games.selector import ChallengeSelector
from arena.services.games.session import GameSession
from arena.services.games.stores import (
    MemoryChallengeStore,
    MemoryGameStore,
    MemoryRoomStore,
    MemoryUserStore,
)


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    CORS_ORIGINS = ['http://localhost:5173']
    BCRYPT_LOG_ROUNDS = 4
    LOCK_TIMEOUT_SEC = 2
    ROOM_TTL_MINUTES = 30
    ROOM_CODE_MAX_ATTEMPTS = 20


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        db.create_all()
    # Requests push their own app context; current_user is cached per context
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


# ---------------------------------------------------------------------------
# Core fixtures: the room/game services wired to in-memory stores
# ---------------------------------------------------------------------------

class FakeClock:
    """Synthetic UTC clock; tests move it forward explicitly."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds=0, ms=0):
        self.now += timedelta(seconds=seconds, milliseconds=ms)


class RecordingPublisher:
    def __init__(self):
        self.sent = []
        self._guard = threading.Lock()

    def __call__(self, event, payload, to):
        with self._guard:
            self.sent.append((event, payload, to))

    def events(self, name=None, to=None):
        return [
            (event, payload, topic) for event, payload, topic in self.sent
            if (name is None or event == name) and (to is None or topic == to)
        ]

    def game_types(self, game_id):
        return [p['type'] for _, p, _ in self.events('game_updated', to=f'game:{game_id}')]

    def clear(self):
        with self._guard:
            self.sent.clear()


class RecordingTimer:
    def __init__(self):
        self.scheduled = []

    def schedule(self, game_id, round_index, duration):
        self.scheduled.append((game_id, round_index, duration))


class Core:
    def __init__(self, challenges_per_difficulty=6):
        self.clock = FakeClock()
        self.publisher = RecordingPublisher()
        self.timer = RecordingTimer()
        self.users = MemoryUserStore([
            User(username=name, email=f'{name}@example.com', password_hash='x')
            for name in ('alice', 'bob', 'carol', 'dave')
        ])
        self.challenges = MemoryChallengeStore([
            Challenge(
                title=f'{difficulty.value.title()} {i}',
                question=f'Question {difficulty.value} {i}?',
                type=ChallengeType.OPEN_ANSWER,
                difficulty=difficulty,
                correct_answer=f'answer-{difficulty.value.lower()}-{i}',
                time_limit=60,
                base_score=100,
            )
            for difficulty in (Difficulty.EASY, Difficulty.MEDIUM)
            for i in range(challenges_per_difficulty)
        ])
        self.rooms_store = MemoryRoomStore()
        self.games_store = MemoryGameStore()
        self.events = EventBroadcaster(self.publisher)
        self.sessions = GameSession(
            games=self.games_store,
            challenges=self.challenges,
            selector=ChallengeSelector(self.challenges, rng=random.Random(7)),
            events=self.events,
            users=self.users,
            locks=EntityLocks(timeout=2),
            clock=self.clock,
            timer=self.timer,
        )
        self.rooms = RoomRegistry(
            rooms=self.rooms_store,
            users=self.users,
            sessions=self.sessions,
            events=self.events,
            locks=EntityLocks(timeout=2),
            clock=self.clock,
            rng=random.Random(11),
        )

    def user(self, name):
        return self.users.find_by_username(name)

    def uid(self, name):
        return self.user(name).id

    def ready_room(self, names=('alice', 'bob'), **config):
        """Room hosted by the first name, joined and readied by the rest."""
        config.setdefault('total_challenges', 3)
        config.setdefault('time_per_challenge', 30)
        room = self.rooms.create_room(self.uid(names[0]), RoomConfig(**config))
        for name in names[1:]:
            self.rooms.join_room(self.uid(name), room.room_code)
            self.rooms.toggle_ready(self.uid(name), room.id)
        return self.rooms.get_room(room.id)

    def start_game(self, names=('alice', 'bob'), **config):
        room = self.ready_room(names, **config)
        game = self.rooms.start_game(self.uid(names[0]), room.id)
        return self.sessions.start(game.id)

    def answer_for(self, game, round_index=None):
        game = self.sessions.get_game(game.id)
        index = game.current_round if round_index is None else round_index
        return self.challenges.find_by_id(game.rounds[index].challenge_id).correct_answer


@pytest.fixture()
def core():
    return Core()
