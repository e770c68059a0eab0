from flask import Blueprint, jsonify, request
from flask_login import login_required

from arena.errors import ArenaError, NotFound
from arena.seed import seed_challenges
from arena.services import get_services
from arena.services.games.entities import ChallengeType, Difficulty


challenges = Blueprint('challenges', __name__)


def _int_arg(name, default, low, high):
    try:
        return max(low, min(high, int(request.args.get(name, default))))
    except ValueError:
        return default


def _enum(enum_cls, raw):
    try:
        return enum_cls(str(raw).upper())
    except ValueError:
        raise ArenaError(f'Unknown {enum_cls.__name__.lower()}: {raw}')


def _public(items):
    # Answers never leave the server through the bank
    return jsonify([c.to_dict() for c in items])


@challenges.route('', methods=['GET'])
@login_required
def list_challenges():
    page = _int_arg('page', 0, 0, 10_000)
    size = _int_arg('size', 20, 1, 100)
    return _public(get_services().challenges.find_active(offset=page * size, limit=size))


@challenges.route('/difficulty/<string:difficulty>', methods=['GET'])
@login_required
def by_difficulty(difficulty):
    return _public(get_services().challenges.find_by_difficulty_active(_enum(Difficulty, difficulty)))


@challenges.route('/type/<string:challenge_type>', methods=['GET'])
@login_required
def by_type(challenge_type):
    return _public(get_services().challenges.find_by_type_active(_enum(ChallengeType, challenge_type)))


@challenges.route('/search', methods=['GET'])
@login_required
def search():
    query = (request.args.get('query') or '').strip()
    if not query:
        return jsonify({'error': 'query is required'}), 400
    return _public(get_services().challenges.search(query, limit=_int_arg('limit', 20, 1, 100)))


@challenges.route('/random/<string:difficulty>', methods=['GET'])
@login_required
def random_challenge(difficulty):
    challenge = get_services().selector.pick_one(_enum(Difficulty, difficulty))
    return jsonify(challenge.to_dict() if challenge is not None else None)


@challenges.route('/<int:challenge_id>', methods=['GET'])
@login_required
def get_challenge(challenge_id):
    return jsonify(_active(challenge_id).to_dict())


@challenges.route('/<int:challenge_id>/stats', methods=['GET'])
@login_required
def challenge_stats(challenge_id):
    return jsonify(_active(challenge_id).stats_dict())


@challenges.route('/initialize', methods=['POST'])
@login_required
def initialize():
    """Load the default bank; a no-op once any challenge exists."""
    store = get_services().challenges
    created = seed_challenges() if store.count() == 0 else []
    return jsonify({'success': True, 'created': len(created)})


def _active(challenge_id):
    challenge = get_services().challenges.find_by_id(challenge_id)
    if challenge is None or not challenge.is_active:
        raise NotFound('Challenge not found')
    return challenge
