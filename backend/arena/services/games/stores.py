"""Persistence collaborators for the room/game core.

The SQL stores back the running app with Flask-SQLAlchemy. The memory
stores keep the same contract in a dict and are what the core tests use.
Rooms and games are saved as whole snapshots (``to_dict``) and rebuilt on
every read, so callers always work on a private copy.
"""
import json
import threading

from sqlalchemy import or_

from arena import db
from arena.models import Challenge, GameRecord, RoomRecord, User

from .entities import ChallengeType, Difficulty, Game, Room, RoomStatus


class SqlRoomStore:
    def save(self, room: Room) -> Room:
        record = db.session.get(RoomRecord, room.id)
        if record is None:
            record = RoomRecord(id=room.id, room_code=room.room_code)
        record.status = room.status.value
        record.is_public = room.config.is_public
        record.expires_at = room.expires_at
        record.snapshot = json.dumps(room.to_dict(include_secret=True))
        db.session.add(record)
        db.session.commit()
        return room

    def find_by_id(self, room_id):
        record = db.session.get(RoomRecord, str(room_id))
        return Room.from_dict(json.loads(record.snapshot)) if record else None

    def find_by_code(self, room_code):
        record = RoomRecord.query.filter_by(room_code=str(room_code)).first()
        return Room.from_dict(json.loads(record.snapshot)) if record else None

    def exists_by_code(self, room_code) -> bool:
        return RoomRecord.query.filter_by(room_code=str(room_code)).first() is not None

    def find_by_status(self, status: RoomStatus, public_only=False):
        query = RoomRecord.query.filter_by(status=status.value)
        if public_only:
            query = query.filter_by(is_public=True)
        return [Room.from_dict(json.loads(r.snapshot)) for r in query.all()]

    def find_all(self):
        return [Room.from_dict(json.loads(r.snapshot)) for r in RoomRecord.query.all()]

    def delete(self, room: Room) -> None:
        record = db.session.get(RoomRecord, room.id)
        if record is not None:
            db.session.delete(record)
            db.session.commit()


class SqlGameStore:
    def save(self, game: Game) -> Game:
        record = db.session.get(GameRecord, game.id)
        if record is None:
            record = GameRecord(id=game.id, room_id=game.room_id)
        record.status = game.status.value
        record.snapshot = json.dumps(game.to_dict())
        db.session.add(record)
        db.session.commit()
        return game

    def find_by_id(self, game_id):
        record = db.session.get(GameRecord, str(game_id))
        return Game.from_dict(json.loads(record.snapshot)) if record else None

    def delete(self, game: Game) -> None:
        record = db.session.get(GameRecord, game.id)
        if record is not None:
            db.session.delete(record)
            db.session.commit()


class SqlUserStore:
    def find_by_id(self, user_id):
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    def find_by_username(self, username):
        return User.query.filter_by(username=username).first()

    def find_by_email(self, email):
        return User.query.filter_by(email=email).first()

    def exists_by_username(self, username) -> bool:
        return self.find_by_username(username) is not None

    def exists_by_email(self, email) -> bool:
        return self.find_by_email(email) is not None

    def find_active(self):
        return User.query.filter_by(is_active=True).all()

    def search(self, query, limit=10):
        pattern = f"%{query}%"
        return (
            User.query
            .filter(User.is_active.is_(True), User.username.ilike(pattern))
            .order_by(User.username)
            .limit(limit)
            .all()
        )

    def save(self, user):
        db.session.add(user)
        db.session.commit()
        return user


class SqlChallengeStore:
    def find_active(self, offset=0, limit=20):
        return (
            Challenge.query
            .filter_by(is_active=True)
            .order_by(Challenge.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def find_by_difficulty_active(self, difficulty):
        return (
            Challenge.query
            .filter_by(difficulty=Difficulty(difficulty).value, is_active=True)
            .order_by(Challenge.id)
            .all()
        )

    def find_by_type_active(self, challenge_type):
        return (
            Challenge.query
            .filter_by(type=ChallengeType(challenge_type).value, is_active=True)
            .order_by(Challenge.id)
            .all()
        )

    def search(self, query, limit=20):
        pattern = f"%{query}%"
        return (
            Challenge.query
            .filter(
                Challenge.is_active.is_(True),
                or_(Challenge.title.ilike(pattern), Challenge.description.ilike(pattern)),
            )
            .order_by(Challenge.id)
            .limit(limit)
            .all()
        )

    def count(self) -> int:
        return Challenge.query.count()

    def find_by_id(self, challenge_id):
        try:
            return db.session.get(Challenge, int(challenge_id))
        except (TypeError, ValueError):
            return None

    def save(self, challenge):
        db.session.add(challenge)
        db.session.commit()
        return challenge


class _MemorySnapshotStore:
    entity_cls = None

    def __init__(self):
        self._guard = threading.Lock()
        self._items = {}

    def save(self, entity):
        snapshot = self._dump(entity)
        with self._guard:
            self._items[entity.id] = snapshot
        return entity

    def find_by_id(self, entity_id):
        with self._guard:
            snapshot = self._items.get(entity_id)
        return self.entity_cls.from_dict(json.loads(snapshot)) if snapshot else None

    def delete(self, entity) -> None:
        with self._guard:
            self._items.pop(entity.id, None)

    def _all(self):
        with self._guard:
            snapshots = list(self._items.values())
        return [self.entity_cls.from_dict(json.loads(s)) for s in snapshots]

    def _dump(self, entity):
        return json.dumps(entity.to_dict())


class MemoryRoomStore(_MemorySnapshotStore):
    entity_cls = Room

    def _dump(self, entity):
        return json.dumps(entity.to_dict(include_secret=True))

    def find_by_code(self, room_code):
        return next((r for r in self._all() if r.room_code == str(room_code)), None)

    def exists_by_code(self, room_code) -> bool:
        return self.find_by_code(room_code) is not None

    def find_by_status(self, status: RoomStatus, public_only=False):
        return [
            r for r in self._all()
            if r.status == status and (r.config.is_public or not public_only)
        ]

    def find_all(self):
        return self._all()


class MemoryGameStore(_MemorySnapshotStore):
    entity_cls = Game


class MemoryUserStore:
    def __init__(self, users=()):
        self._users = {}
        for user in users:
            self.save(user)

    def find_by_id(self, user_id):
        return self._users.get(user_id)

    def find_by_username(self, username):
        return next((u for u in self._users.values() if u.username == username), None)

    def find_by_email(self, email):
        return next((u for u in self._users.values() if u.email == email), None)

    def exists_by_username(self, username) -> bool:
        return self.find_by_username(username) is not None

    def exists_by_email(self, email) -> bool:
        return self.find_by_email(email) is not None

    def find_active(self):
        return [u for u in self._users.values() if u.is_active]

    def search(self, query, limit=10):
        needle = str(query).lower()
        found = sorted(
            (u for u in self._users.values() if u.is_active and needle in u.username.lower()),
            key=lambda u: u.username,
        )
        return found[:limit]

    def save(self, user):
        if user.id is None:
            user.id = max(self._users, default=0) + 1
        self._users[user.id] = user
        return user


class MemoryChallengeStore:
    def __init__(self, challenges=()):
        self._challenges = {}
        for challenge in challenges:
            self.save(challenge)

    def find_by_difficulty_active(self, difficulty):
        wanted = Difficulty(difficulty).value
        return [
            c for c in self._challenges.values()
            if c.difficulty == wanted and c.is_active
        ]

    def find_by_id(self, challenge_id):
        return self._challenges.get(challenge_id)

    def save(self, challenge):
        if challenge.id is None:
            challenge.id = max(self._challenges, default=0) + 1
        self._challenges[challenge.id] = challenge
        return challenge

    def find_active(self, offset=0, limit=20):
        active = sorted((c for c in self._challenges.values() if c.is_active), key=lambda c: c.id, reverse=True)
        return active[offset:offset + limit]

    def find_by_type_active(self, challenge_type):
        wanted = ChallengeType(challenge_type).value
        return [
            c for c in self._challenges.values()
            if c.type == wanted and c.is_active
        ]

    def search(self, query, limit=20):
        needle = str(query).lower()
        return [
            c for c in self._challenges.values()
            if c.is_active and (needle in c.title.lower() or needle in (c.description or '').lower())
        ][:limit]

    def count(self) -> int:
        return len(self._challenges)
