from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from arena.errors import Forbidden, InvalidState
from arena.services import get_services


games = Blueprint('games', __name__)


def _player_game(game_id):
    game = get_services().games.get_game(game_id)
    if game.get_player(current_user.id) is None:
        raise Forbidden('Not a player in this game')
    return game


def public_state(game) -> dict:
    """Game snapshot for clients; answers in the open round stay hidden."""
    payload = game.to_dict()
    for game_round in payload['rounds']:
        if game_round['status'] == 'OPEN':
            game_round['responses'] = [{'user_id': r['user_id']} for r in game_round['responses']]
    return payload


@games.route('/<string:game_id>/state', methods=['GET'])
@login_required
def get_game_state(game_id):
    return jsonify(public_state(_player_game(game_id)))


@games.route('/<string:game_id>/challenge', methods=['GET'])
@login_required
def get_current_challenge(game_id):
    _player_game(game_id)
    challenge = get_services().games.get_current_challenge(game_id)
    if challenge is None:
        return jsonify({'error': 'No round is open'}), 404
    return jsonify(challenge.to_dict())


@games.route('/<string:game_id>/answer', methods=['POST'])
@login_required
def submit_answer(game_id):
    data = request.get_json(silent=True) or {}
    if 'answer' not in data:
        return jsonify({'error': 'answer is required'}), 400
    record = get_services().games.submit_answer(
        game_id, current_user.id, data['answer'], challenge_id=data.get('challenge_id')
    )
    return jsonify(record.to_dict()), 201


@games.route('/<string:game_id>/end', methods=['POST'])
@login_required
def end_game(game_id):
    game = _player_game(game_id)
    if game.host_id != current_user.id:
        raise Forbidden('Only the host can end the game')
    game = get_services().games.end_game(game_id)
    return jsonify(public_state(game))


@games.route('/<string:game_id>/results', methods=['GET'])
@login_required
def get_results(game_id):
    game = _player_game(game_id)
    if game.results is None:
        raise InvalidState('Game has not finished yet')
    return jsonify(game.results.to_dict())
