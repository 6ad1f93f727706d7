from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from ..extensions import csrf
from ..models.user import User

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/login', methods=['POST'])
@csrf.exempt
def login():
    """Вход по логину и паролю (форма или JSON)."""
    data = request.get_json(silent=True) or request.form
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''

    if not username or not password:
        return jsonify(ok=False, message='Логин и пароль обязательны.'), 400

    user = User.query.filter_by(username=username).first()
    if user is None or not user.check_password(password):
        current_app.logger.info('[Auth] Failed login for %s', username)
        return jsonify(ok=False, message='Неверный логин или пароль.'), 401

    login_user(user)
    current_app.logger.info('[Auth] User %s logged in', user.id)
    return jsonify(ok=True, user={'id': user.id, 'username': user.username, 'isAdmin': user.is_admin})


@auth_bp.route('/logout')
@login_required
def logout():
    user_id = current_user.id
    logout_user()
    current_app.logger.info('[Auth] User %s logged out', user_id)
    return jsonify(ok=True, message='Вы успешно вышли из системы.')
