from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from .models import db, User
from .services import get_services
from .services.games.entities import utcnow

main = Blueprint('main', __name__)

@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.is_active and user.check_password(data.get('password')):
        login_user(user)
        user.last_login_at = utcnow()
        db.session.commit()
        return jsonify({"success": True, "user": user.to_dict()})
    return jsonify({"success": False, "message": "Invalid credentials"}), 401

@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not all([username, email, password]):
        return jsonify({"success": False, "message": "Username, email and password are required"}), 400
    if not 3 <= len(username) <= 64:
        return jsonify({"success": False, "message": "Username must be between 3 and 64 characters"}), 400
    if len(password) < 6:
        return jsonify({"success": False, "message": "Password must be at least 6 characters"}), 400
    users = get_services().users
    if users.exists_by_username(username):
        return jsonify({"success": False, "message": "Username already exists"}), 400
    if users.exists_by_email(email):
        return jsonify({"success": False, "message": "Email already registered"}), 400

    new_user = User(username=username, email=email, display_name=data.get('display_name'))
    new_user.set_password(password)
    users.save(new_user)
    login_user(new_user)
    return jsonify({"success": True, "user": new_user.to_dict()}), 201

@main.route('/check_login', methods=['GET', 'OPTIONS'])
def check_login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    @login_required
    def protected_check():
        return jsonify({"success": True, "user": current_user.to_dict()})

    return protected_check()

@main.route('/logout', methods=['POST', 'OPTIONS'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})

@main.route('/users/rankings')
@login_required
def rankings():
    try:
        limit = max(1, min(100, int(request.args.get('limit', 10))))
    except ValueError:
        limit = 10
    users = get_services().users.find_active()
    # Same ordering as the leaderboard: win rate, then wins, then average score
    users.sort(key=lambda u: (u.win_rate, u.games_won, u.average_score), reverse=True)
    return jsonify([
        {'rank': i, **u.to_dict()} for i, u in enumerate(users[:limit], start=1)
    ])

@main.route('/users/<int:user_id>')
@login_required
def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({'error': 'User not found'}), 404
    return jsonify(user.to_dict())

@main.route('/users/search')
@login_required
def search_users():
    query = (request.args.get('query') or '').strip()
    if not query:
        return jsonify({'error': 'query is required'}), 400
    try:
        limit = max(1, min(50, int(request.args.get('limit', 10))))
    except ValueError:
        limit = 10
    return jsonify([u.to_dict() for u in get_services().users.search(query, limit)])

@main.route('/check-username/<string:username>')
def check_username(username):
    available = not get_services().users.exists_by_username(username.strip())
    return jsonify({
        "success": True,
        "available": available,
        "message": "Username available" if available else "Username already taken",
    })

@main.route('/check-email/<string:email>')
def check_email(email):
    available = not get_services().users.exists_by_email(email.strip().lower())
    return jsonify({
        "success": True,
        "available": available,
        "message": "Email available" if available else "Email already registered",
    })

PROFILE_FIELDS = ('display_name', 'avatar')
SETTINGS_FIELDS = ('notifications', 'sound_enabled', 'theme')

@main.route('/profile', methods=['PUT', 'OPTIONS'])
def update_profile():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    @login_required
    def protected_update():
        data = request.get_json(silent=True) or {}
        # Settings may come flat or nested under "settings"
        nested = data.get("settings")
        settings = {**data, **(nested if isinstance(nested, dict) else {})}
        display_name = data.get('display_name')
        if display_name is not None and len(str(display_name).strip()) > 50:
            return jsonify({"success": False, "message": "Display name must not exceed 50 characters"}), 400
        theme = settings.get('theme')
        if theme is not None and not 1 <= len(str(theme)) <= 16:
            return jsonify({"success": False, "message": "Theme must be between 1 and 16 characters"}), 400

        user = current_user._get_current_object()
        for field in PROFILE_FIELDS:
            if data.get(field) is not None:
                setattr(user, field, str(data[field]).strip() or None)
        for field in ('notifications', 'sound_enabled'):
            if settings.get(field) is not None:
                setattr(user, field, bool(settings[field]))
        if theme is not None:
            user.theme = str(theme)
        get_services().users.save(user)
        return jsonify({"success": True, "user": user.to_dict()})

    return protected_update()
