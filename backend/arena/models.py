from arena import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import json


def _utcnow():
    return datetime.now(timezone.utc)


def _json_list(raw):
    try:
        value = json.loads(raw) if raw else []
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    # Profile
    display_name = db.Column(db.String(64), nullable=True)
    avatar = db.Column(db.String(256), nullable=True)
    level = db.Column(db.Integer, default=1, nullable=False)
    experience = db.Column(db.Integer, default=0, nullable=False)
    # Aggregate stats
    games_played = db.Column(db.Integer, default=0, nullable=False)
    games_won = db.Column(db.Integer, default=0, nullable=False)
    average_score = db.Column(db.Float, default=0.0, nullable=False)
    total_play_time = db.Column(db.Integer, default=0, nullable=False)  # seconds
    best_streak = db.Column(db.Integer, default=0, nullable=False)
    current_streak = db.Column(db.Integer, default=0, nullable=False)
    # Settings
    notifications = db.Column(db.Boolean, default=True, nullable=False)
    sound_enabled = db.Column(db.Boolean, default=True, nullable=False)
    theme = db.Column(db.String(16), default='light', nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    # Soft deactivation; users are never deleted
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    _defaults = {
        'level': 1, 'experience': 0, 'games_played': 0, 'games_won': 0,
        'average_score': 0.0, 'total_play_time': 0, 'best_streak': 0,
        'current_streak': 0, 'notifications': True, 'sound_enabled': True,
        'theme': 'light', 'is_active': True,
    }

    def __init__(self, **kwargs):
        super(User, self).__init__(**kwargs)
        for name, value in self._defaults.items():
            if getattr(self, name) is None:
                setattr(self, name, value)
        if self.created_at is None:
            self.created_at = _utcnow()

    @property
    def name(self):
        return self.display_name or self.username

    @property
    def win_rate(self):
        return self.games_won / self.games_played if self.games_played else 0.0

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        if not self.password_hash or password is None:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'profile': {
                'display_name': self.display_name,
                'avatar': self.avatar,
                'level': self.level,
                'experience': self.experience,
            },
            'stats': {
                'games_played': self.games_played,
                'games_won': self.games_won,
                'win_rate': self.win_rate,
                'average_score': self.average_score,
                'total_play_time': self.total_play_time,
                'best_streak': self.best_streak,
                'current_streak': self.current_streak,
            },
            'settings': {
                'notifications': self.notifications,
                'sound_enabled': self.sound_enabled,
                'theme': self.theme,
            },
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'last_login_at': self.last_login_at.isoformat() if self.last_login_at else None,
        }


class Challenge(db.Model):
    __tablename__ = 'challenge'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    question = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)
    difficulty = db.Column(db.String(16), nullable=False, index=True)
    options_json = db.Column(db.Text, nullable=True)
    correct_answer = db.Column(db.String(256), nullable=False)
    explanation = db.Column(db.Text, nullable=True)
    time_limit = db.Column(db.Integer, default=60, nullable=False)  # seconds
    base_score = db.Column(db.Integer, default=100, nullable=False)
    hints_json = db.Column(db.Text, nullable=True)
    tags_json = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    # Usage stats
    times_used = db.Column(db.Integer, default=0, nullable=False)
    total_attempts = db.Column(db.Integer, default=0, nullable=False)
    correct_attempts = db.Column(db.Integer, default=0, nullable=False)
    average_time = db.Column(db.Float, default=0.0, nullable=False)  # seconds
    success_rate = db.Column(db.Float, default=0.0, nullable=False)  # percent

    _defaults = {
        'time_limit': 60, 'base_score': 100, 'is_active': True, 'times_used': 0,
        'total_attempts': 0, 'correct_attempts': 0, 'average_time': 0.0,
        'success_rate': 0.0,
    }

    def __init__(self, options=None, hints=None, tags=None, **kwargs):
        for enum_field in ('type', 'difficulty'):
            value = kwargs.get(enum_field)
            if value is not None and hasattr(value, 'value'):
                kwargs[enum_field] = value.value
        super(Challenge, self).__init__(**kwargs)
        for name, value in self._defaults.items():
            if getattr(self, name) is None:
                setattr(self, name, value)
        self.options = options or []
        self.hints = hints or []
        self.tags = tags or []

    @property
    def options(self):
        return _json_list(self.options_json)

    @options.setter
    def options(self, value):
        self.options_json = json.dumps(list(value or []))

    @property
    def hints(self):
        return _json_list(self.hints_json)

    @hints.setter
    def hints(self, value):
        self.hints_json = json.dumps(list(value or []))

    @property
    def tags(self):
        return _json_list(self.tags_json)

    @tags.setter
    def tags(self, value):
        self.tags_json = json.dumps(list(value or []))

    def to_dict(self, include_answer=False):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'question': self.question,
            'options': self.options,
            'type': self.type,
            'difficulty': self.difficulty,
            'time_limit': self.time_limit,
            'base_score': self.base_score,
            'hints': self.hints,
            'tags': self.tags,
        }
        if include_answer:
            data['correct_answer'] = self.correct_answer
            data['explanation'] = self.explanation
            data['stats'] = self._usage()
        return data

    def stats_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'type': self.type,
            'difficulty': self.difficulty,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            **self._usage(),
        }

    def _usage(self):
        return {
            'times_used': self.times_used,
            'total_attempts': self.total_attempts,
            'correct_attempts': self.correct_attempts,
            'average_time': self.average_time,
            'success_rate': self.success_rate,
        }


class RoomRecord(db.Model):
    """Persisted room snapshot; the JSON column is the source of truth."""
    __tablename__ = 'room'
    id = db.Column(db.String(32), primary_key=True)
    room_code = db.Column(db.String(6), unique=True, nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False, index=True)
    is_public = db.Column(db.Boolean, default=True, nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    snapshot = db.Column(db.Text, nullable=False)


class GameRecord(db.Model):
    """Persisted game snapshot; the JSON column is the source of truth."""
    __tablename__ = 'game'
    id = db.Column(db.String(32), primary_key=True)
    room_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False, index=True)
    snapshot = db.Column(db.Text, nullable=False)
