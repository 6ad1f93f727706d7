from flask import jsonify
from flask_login import current_user, login_required
from functools import wraps
import logging


def admin_required(f):
    """Доступ только администраторам. Остальным JSON 403."""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        logging.debug(f"Admin route accessed, user: {current_user.get_id()}")
        if not current_user.is_admin:
            logging.debug("User is not admin, access denied")
            return jsonify(ok=False, message='Доступ разрешён только администраторам.'), 403
        return f(*args, **kwargs)
    return decorated_function
