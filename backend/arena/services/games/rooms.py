"""Room lobby management.

A room collects players before a game. Its code is a 6-digit string that is
unique across stored rooms and never changes. Once the host starts a game
the room is IN_PROGRESS and no longer accepts membership changes.
"""
import dataclasses
import logging
import random
import string
import uuid
from datetime import timedelta
from functools import partial
from typing import List, Optional

from arena import bcrypt
from arena.errors import (
    AlreadyMember,
    Forbidden,
    InvalidConfig,
    InvalidState,
    NotFound,
    RoomCodeExhausted,
    RoomFull,
)

from .entities import (
    MAX_ROOM_PLAYERS,
    MIN_ROOM_PLAYERS,
    Room,
    RoomConfig,
    RoomPlayer,
    RoomStatus,
    utcnow,
)
from .locks import EntityLocks

logger = logging.getLogger(__name__)

ROOM_CODE_LENGTH = 6
MAX_TOTAL_CHALLENGES = 50
MIN_TIME_PER_CHALLENGE = 5
MAX_TIME_PER_CHALLENGE = 600


def validate_config(config: RoomConfig) -> None:
    if not MIN_ROOM_PLAYERS <= config.max_players <= MAX_ROOM_PLAYERS:
        raise InvalidConfig(f'max_players must be between {MIN_ROOM_PLAYERS} and {MAX_ROOM_PLAYERS}')
    if not 1 <= config.total_challenges <= MAX_TOTAL_CHALLENGES:
        raise InvalidConfig(f'total_challenges must be between 1 and {MAX_TOTAL_CHALLENGES}')
    if not MIN_TIME_PER_CHALLENGE <= config.time_per_challenge <= MAX_TIME_PER_CHALLENGE:
        raise InvalidConfig(
            f'time_per_challenge must be between {MIN_TIME_PER_CHALLENGE} and {MAX_TIME_PER_CHALLENGE} seconds'
        )


class RoomRegistry:
    def __init__(self, rooms, users, sessions, events, locks: Optional[EntityLocks] = None,
                 clock=utcnow, rng: Optional[random.Random] = None,
                 ttl_minutes: int = 30, code_attempts: int = 20):
        self.rooms = rooms
        self.users = users
        self.sessions = sessions
        self.events = events
        self.locks = locks or EntityLocks()
        self.clock = clock
        self.rng = rng or random.Random()
        self.ttl = timedelta(minutes=ttl_minutes)
        self.code_attempts = code_attempts

    # ------------------------
    # Queries
    # ------------------------

    def get_room(self, room_id) -> Room:
        room = self.rooms.find_by_id(room_id)
        if room is None:
            raise NotFound('Room not found')
        return room

    def get_room_by_code(self, room_code) -> Room:
        room = self.rooms.find_by_code(str(room_code or '').strip())
        if room is None:
            raise NotFound('Room not found')
        return room

    def list_public_rooms(self) -> List[Room]:
        now = self.clock()
        rooms = self.rooms.find_by_status(RoomStatus.WAITING, public_only=True)
        return sorted((r for r in rooms if not r.is_expired(now)), key=lambda r: r.created_at)

    def list_user_rooms(self, user_id) -> List[Room]:
        now = self.clock()
        rooms = self.rooms.find_by_status(RoomStatus.WAITING)
        return [r for r in rooms if r.has_player(user_id) and not r.is_expired(now)]

    @staticmethod
    def can_start(room: Room) -> bool:
        return room.can_start()

    # ------------------------
    # Commands
    # ------------------------

    def create_room(self, host_user_id, config: Optional[RoomConfig] = None,
                    name: Optional[str] = None, password: Optional[str] = None) -> Room:
        user = self.users.find_by_id(host_user_id)
        if user is None:
            raise NotFound('User not found')

        config = dataclasses.replace(config or RoomConfig())
        validate_config(config)
        room_name = (name or f"{user.name}'s room").strip()
        if not 3 <= len(room_name) <= 50:
            raise InvalidConfig('Room name must be between 3 and 50 characters')
        if password:
            config.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

        now = self.clock()
        # Serialize code allocation so two creates cannot claim the same code
        with self.locks.hold('room-codes'):
            room = Room(
                id=uuid.uuid4().hex,
                room_code=self._generate_code(),
                name=room_name,
                host_id=user.id,
                config=config,
                created_at=now,
                updated_at=now,
                expires_at=now + self.ttl,
                players=[RoomPlayer(user_id=user.id, username=user.name, joined_at=now, is_ready=True)],
            )
            self.rooms.save(room)
        logger.info(f"[room-create] room={room.id} code={room.room_code} host={user.id} max_players={config.max_players}")
        return room

    def join_room(self, user_id, room_code, password: Optional[str] = None) -> Room:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise NotFound('User not found')
        found = self.get_room_by_code(room_code)

        notices = []
        with self.locks.hold(self._key(found.id)):
            room = self.get_room(found.id)
            now = self.clock()
            if room.status != RoomStatus.WAITING:
                raise InvalidState('Room is not accepting new players')
            if room.is_expired(now):
                raise InvalidState('Room has expired')
            if room.is_full:
                raise RoomFull('Room is full')
            if room.has_player(user.id):
                raise AlreadyMember('Already in this room')
            if room.config.requires_password and not bcrypt.check_password_hash(room.config.password_hash, password or ''):
                raise Forbidden('Wrong room password')

            room.players.append(RoomPlayer(user_id=user.id, username=user.name, joined_at=now))
            room.updated_at = now
            self.rooms.save(room)
            notices.append(partial(self.events.room_updated, room, 'PLAYER_JOINED', user.name,
                                   f"{user.name} joined the room"))
        logger.info(f"[room-join] room={room.id} user={user.id} players={len(room.players)}")
        self._dispatch(notices)
        return room

    def leave_room(self, user_id, room_id) -> Optional[Room]:
        """Remove a player. Returns the updated room, or None once deleted."""
        notices = []
        with self.locks.hold(self._key(room_id)):
            room = self.get_room(room_id)
            player = room.get_player(user_id)
            if player is None:
                raise NotFound('Player not in room')
            if room.status != RoomStatus.WAITING:
                raise InvalidState('Room is locked once the game has started')

            room.players = [p for p in room.players if p.user_id != user_id]
            if not room.players:
                self.rooms.delete(room)
                notices.append(partial(self.events.room_closed, room.id, player.username,
                                       f"{player.username} left; room closed"))
                logger.info(f"[room-delete] room={room.id} reason=empty")
                room = None
            else:
                room.updated_at = self.clock()
                new_host = None
                if room.is_host(user_id):
                    # Earliest-joined remaining member; list order breaks identical timestamps
                    new_host = min(enumerate(room.players), key=lambda item: (item[1].joined_at, item[0]))[1]
                    room.host_id = new_host.user_id
                    logger.info(f"[room-host] room={room.id} host={new_host.user_id}")
                self.rooms.save(room)
                notices.append(partial(self.events.room_updated, room, 'PLAYER_LEFT', player.username,
                                       f"{player.username} left the room"))
                if new_host is not None:
                    notices.append(partial(self.events.room_updated, room, 'HOST_CHANGED', new_host.username,
                                           f"{new_host.username} is now the host"))
        self._dispatch(notices)
        return room

    def toggle_ready(self, user_id, room_id) -> Room:
        notices = []
        with self.locks.hold(self._key(room_id)):
            room = self.get_room(room_id)
            player = room.get_player(user_id)
            if player is None:
                raise NotFound('Player not in room')
            if room.status != RoomStatus.WAITING:
                raise InvalidState('Room is locked once the game has started')
            player.is_ready = not player.is_ready
            room.updated_at = self.clock()
            self.rooms.save(room)
            state = 'ready' if player.is_ready else 'not ready'
            notices.append(partial(self.events.room_updated, room, 'PLAYER_READY_CHANGED', player.username,
                                   f"{player.username} is {state}"))
        self._dispatch(notices)
        return room

    def set_connected(self, user_id, room_id, connected: bool) -> Room:
        notices = []
        with self.locks.hold(self._key(room_id)):
            room = self.get_room(room_id)
            player = room.get_player(user_id)
            if player is None:
                raise NotFound('Player not in room')
            if player.is_connected != bool(connected):
                player.is_connected = bool(connected)
                room.updated_at = self.clock()
                self.rooms.save(room)
                kind = 'PLAYER_RECONNECTED' if player.is_connected else 'PLAYER_DISCONNECTED'
                verb = 'reconnected' if player.is_connected else 'disconnected'
                notices.append(partial(self.events.room_updated, room, kind, player.username,
                                       f"{player.username} {verb}"))
        self._dispatch(notices)
        return room

    def start_game(self, user_id, room_id):
        """Hand a ready room to the game session; returns the new game."""
        notices = []
        with self.locks.hold(self._key(room_id)):
            room = self.get_room(room_id)
            if not room.is_host(user_id):
                raise Forbidden('Only room host can start the game')
            if room.status != RoomStatus.WAITING:
                raise InvalidState('Game already started for this room')
            if not room.can_start():
                raise InvalidState('Cannot start game - not enough players or room not ready')

            # The room stays untouched if the game cannot be built
            game = self.sessions.create_game(room)
            now = self.clock()
            room.status = RoomStatus.IN_PROGRESS
            room.started_at = now
            room.updated_at = now
            room.game_id = game.id
            self.rooms.save(room)
            host = room.get_player(user_id)
            notices.append(partial(self.events.room_updated, room, 'GAME_STARTING', host.username,
                                   'Game is starting'))
        logger.info(f"[room-start] room={room.id} game={game.id}")
        self._dispatch(notices)
        return game

    def purge_expired(self) -> int:
        """Delete WAITING rooms past their expiry. Returns how many went."""
        purged = 0
        for candidate in self.rooms.find_by_status(RoomStatus.WAITING):
            if not candidate.is_expired(self.clock()):
                continue
            notices = []
            with self.locks.hold(self._key(candidate.id)):
                room = self.rooms.find_by_id(candidate.id)
                if room is None or not room.is_expired(self.clock()):
                    continue
                self.rooms.delete(room)
                purged += 1
                notices.append(partial(self.events.room_closed, room.id, None, 'Room expired'))
            logger.info(f"[room-delete] room={candidate.id} reason=expired")
            self._dispatch(notices)
        return purged

    # ------------------------
    # Helpers
    # ------------------------

    def _generate_code(self) -> str:
        for _ in range(self.code_attempts):
            code = ''.join(self.rng.choice(string.digits) for _ in range(ROOM_CODE_LENGTH))
            if not self.rooms.exists_by_code(code):
                return code
        logger.warning(f"[room-code] exhausted attempts={self.code_attempts}")
        raise RoomCodeExhausted('Unable to create a room code right now')

    @staticmethod
    def _key(room_id) -> str:
        return f"room:{room_id}"

    @staticmethod
    def _dispatch(notices) -> None:
        for notice in notices:
            notice()
