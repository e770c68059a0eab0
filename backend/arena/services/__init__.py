"""Service wiring for the Flask app."""
from dataclasses import dataclass

from flask import current_app

from arena import socketio
from arena.services.games.broadcaster import EventBroadcaster
from arena.services.games.locks import EntityLocks
from arena.services.games.rooms import RoomRegistry
from arena.services.games.scheduler import RoomSweeper, RoundTimer
from arena.services.games.selector import ChallengeSelector
from arena.services.games.session import GameSession
from arena.services.games.stores import (
    SqlChallengeStore,
    SqlGameStore,
    SqlRoomStore,
    SqlUserStore,
)


@dataclass
class ArenaServices:
    rooms: RoomRegistry
    games: GameSession
    events: EventBroadcaster
    users: SqlUserStore
    challenges: SqlChallengeStore
    selector: ChallengeSelector
    sweeper: RoomSweeper


def socketio_publish(event, payload, to):
    socketio.emit(event, payload, to=to, namespace='/ws')


def init_services(app) -> ArenaServices:
    cfg = app.config
    lock_timeout = float(cfg.get('LOCK_TIMEOUT_SEC', 5))
    users = SqlUserStore()
    challenges = SqlChallengeStore()
    selector = ChallengeSelector(challenges)
    events = EventBroadcaster(socketio_publish)
    games = GameSession(
        games=SqlGameStore(),
        challenges=challenges,
        selector=selector,
        events=events,
        users=users,
        locks=EntityLocks(lock_timeout),
        timer=RoundTimer(app),
    )
    rooms = RoomRegistry(
        rooms=SqlRoomStore(),
        users=users,
        sessions=games,
        events=events,
        locks=EntityLocks(lock_timeout),
        ttl_minutes=int(cfg.get('ROOM_TTL_MINUTES', 30)),
        code_attempts=int(cfg.get('ROOM_CODE_MAX_ATTEMPTS', 20)),
    )
    services = ArenaServices(
        rooms=rooms, games=games, events=events, users=users, challenges=challenges, selector=selector,
        sweeper=RoomSweeper(app),
    )
    app.extensions['arena'] = services
    services.sweeper.start()
    return services


def get_services() -> ArenaServices:
    return current_app.extensions['arena']
