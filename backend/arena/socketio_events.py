import functools
import logging
from typing import Any, Dict

from flask import request
from flask_login import current_user
from flask_socketio import emit, join_room, leave_room

from arena import socketio
from arena.api.games import public_state
from arena.api.rooms import room_config_from
from arena.errors import ArenaError, Forbidden
from arena.services import get_services
from arena.services.games.broadcaster import game_topic, room_topic, user_queue

logger = logging.getLogger(__name__)

MAX_CHAT_LENGTH = 500

# Per-socket context: which user, room and game this connection is attached to
_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


def _ctx() -> Dict[str, Any]:
    return _sid_to_ctx.setdefault(_get_sid(), {'user_id': current_user.id})


def authenticated_only(handler):
    """Reject events from anonymous sockets and report domain errors to the caller."""
    @functools.wraps(handler)
    def wrapped(*args, **kwargs):
        if not current_user.is_authenticated:
            get_services().events.error(_get_sid(), 'UNAUTHORIZED', 'Login required')
            return None
        try:
            return handler(*args, **kwargs)
        except ArenaError as exc:
            logger.info(f"[ws-error] sid={_get_sid()} event={handler.__name__} kind={exc.kind} error={exc.message}")
            get_services().events.error(_get_sid(), exc.kind, exc.message)
            return None
    return wrapped


def handle_connect():
    authenticated = bool(current_user.is_authenticated)
    if authenticated:
        join_room(user_queue(current_user.id))
        _sid_to_ctx[_get_sid()] = {'user_id': current_user.id}
    emit('connected', {'message': 'Connected to /ws', 'authenticated': authenticated})


def handle_disconnect(*args):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    services = get_services()
    user_id = ctx['user_id']
    # The socket is gone, so failures are only logged
    if ctx.get('game_id'):
        try:
            game = services.games.get_game(ctx['game_id'])
            if not game.is_terminal:
                services.games.set_connected(game.id, user_id, False)
        except ArenaError as exc:
            logger.warning(f"[ws-disconnect] game={ctx['game_id']} user={user_id} kind={exc.kind} error={exc.message}")
    elif ctx.get('room_id'):
        try:
            room = services.rooms.get_room(ctx['room_id'])
            if room.has_player(user_id):
                services.rooms.set_connected(user_id, room.id, False)
        except ArenaError as exc:
            logger.warning(f"[ws-disconnect] room={ctx['room_id']} user={user_id} kind={exc.kind} error={exc.message}")


@authenticated_only
def handle_create_room(data):
    data = data or {}
    room = get_services().rooms.create_room(
        current_user.id,
        config=room_config_from(data.get('config')),
        name=data.get('name'),
        password=data.get('password'),
    )
    join_room(room_topic(room.id))
    _ctx()['room_id'] = room.id
    emit('room_created', room.to_dict())


@authenticated_only
def handle_join_room(data):
    data = data or {}
    room = get_services().rooms.join_room(current_user.id, data.get('room_code'), password=data.get('password'))
    join_room(room_topic(room.id))
    _ctx()['room_id'] = room.id
    emit('room_joined', room.to_dict())


@authenticated_only
def handle_leave_room(data):
    room_id = (data or {}).get('room_id')
    room = get_services().rooms.leave_room(current_user.id, room_id)
    leave_room(room_topic(room_id))
    _ctx().pop('room_id', None)
    emit('room_left', {'room_id': room_id, 'closed': room is None})


@authenticated_only
def handle_toggle_ready(data):
    get_services().rooms.toggle_ready(current_user.id, (data or {}).get('room_id'))


@authenticated_only
def handle_start_game(data):
    services = get_services()
    game = services.rooms.start_game(current_user.id, (data or {}).get('room_id'))
    join_room(game_topic(game.id))
    _ctx()['game_id'] = game.id
    services.games.start(game.id)


@authenticated_only
def handle_join_game(data):
    services = get_services()
    game = services.games.get_game((data or {}).get('game_id'))
    player = game.get_player(current_user.id)
    if player is None:
        raise Forbidden('Not a player in this game')
    join_room(game_topic(game.id))
    _ctx()['game_id'] = game.id
    if not player.is_connected and not game.is_terminal:
        game = services.games.set_connected(game.id, current_user.id, True)
    emit('game_joined', public_state(game))


@authenticated_only
def handle_submit_answer(data):
    data = data or {}
    get_services().games.submit_answer(
        data.get('game_id'), current_user.id, data.get('answer'), challenge_id=data.get('challenge_id')
    )


@authenticated_only
def handle_chat(data):
    data = data or {}
    services = get_services()
    room = services.rooms.get_room(data.get('room_id'))
    if not room.has_player(current_user.id):
        raise Forbidden('Not a member of this room')
    text = str(data.get('message') or '').strip()[:MAX_CHAT_LENGTH]
    if not text:
        return
    services.events.chat(room.id, current_user.name, text)


def handle_ping(data):
    emit('pong', data or {})


HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'create_room': handle_create_room,
    'join_room': handle_join_room,
    'leave_room': handle_leave_room,
    'toggle_ready': handle_toggle_ready,
    'start_game': handle_start_game,
    'join_game': handle_join_game,
    'submit_answer': handle_submit_answer,
    'chat': handle_chat,
    'ping': handle_ping,
}


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for event, handler in HANDLERS.items():
        socketio.on_event(event, handler, namespace='/ws')
        if testing:
            socketio.on_event(event, handler, namespace='/')
