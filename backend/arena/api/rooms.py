from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from arena.errors import InvalidConfig
from arena.services import get_services
from arena.services.games.entities import Difficulty, GameMode, RoomConfig, ScoringMode


rooms = Blueprint('rooms', __name__)


def room_config_from(data) -> RoomConfig:
    """Build a RoomConfig from request JSON, keeping defaults for missing keys."""
    data = data or {}
    defaults = RoomConfig()
    try:
        return RoomConfig(
            max_players=int(data.get('max_players', defaults.max_players)),
            difficulty=Difficulty(str(data.get('difficulty', defaults.difficulty.value)).upper()),
            game_mode=GameMode(str(data.get('game_mode', defaults.game_mode.value)).upper()),
            scoring_mode=ScoringMode(str(data.get('scoring_mode', defaults.scoring_mode.value)).upper()),
            time_per_challenge=int(data.get('time_per_challenge', defaults.time_per_challenge)),
            total_challenges=int(data.get('total_challenges', defaults.total_challenges)),
            is_public=bool(data.get('is_public', defaults.is_public)),
        )
    except (TypeError, ValueError) as exc:
        raise InvalidConfig(f'Invalid room config: {exc}')


@rooms.route('', methods=['POST'])
@login_required
def create_room():
    data = request.get_json(silent=True) or {}
    room = get_services().rooms.create_room(
        current_user.id,
        config=room_config_from(data.get('config')),
        name=data.get('name'),
        password=data.get('password'),
    )
    return jsonify(room.to_dict()), 201


@rooms.route('', methods=['GET'])
@login_required
def list_public_rooms():
    return jsonify([r.to_dict() for r in get_services().rooms.list_public_rooms()])


@rooms.route('/mine', methods=['GET'])
@login_required
def list_my_rooms():
    return jsonify([r.to_dict() for r in get_services().rooms.list_user_rooms(current_user.id)])


@rooms.route('/<string:room_id>', methods=['GET'])
@login_required
def get_room(room_id):
    room = get_services().rooms.get_room(room_id)
    payload = room.to_dict()
    payload['can_start'] = room.can_start()
    return jsonify(payload)


@rooms.route('/code/<string:room_code>', methods=['GET'])
@login_required
def get_room_by_code(room_code):
    return jsonify(get_services().rooms.get_room_by_code(room_code).to_dict())


@rooms.route('/join', methods=['POST'])
@login_required
def join_room():
    data = request.get_json(silent=True) or {}
    if not data.get('room_code'):
        return jsonify({'error': 'room_code is required'}), 400
    room = get_services().rooms.join_room(current_user.id, data['room_code'], password=data.get('password'))
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>/leave', methods=['POST'])
@login_required
def leave_room(room_id):
    room = get_services().rooms.leave_room(current_user.id, room_id)
    if room is None:
        return jsonify({'room_id': room_id, 'closed': True})
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>/ready', methods=['POST'])
@login_required
def toggle_ready(room_id):
    return jsonify(get_services().rooms.toggle_ready(current_user.id, room_id).to_dict())


@rooms.route('/<string:room_id>/start', methods=['POST'])
@login_required
def start_game(room_id):
    services = get_services()
    game = services.rooms.start_game(current_user.id, room_id)
    game = services.games.start(game.id)
    return jsonify(game.to_dict()), 201
