import logging
import os

from flask import Flask, jsonify

from .config import Config
from .errors import register_error_handlers
from .extensions import csrf, db, login_manager, migrate, talisman
from .models.user import User
from .models.store import Store
from .models.theme import Theme
from .models.custom_theme import CustomTheme
from .models.installation import ThemeInstallation, WorkingCopyState
from .models.recent_installation import RecentInstallation


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger(__name__).setLevel(app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)
    login_manager.session_protection = app.config.get('SESSION_PROTECTION', 'strong')

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify(ok=False, message='Требуется авторизация.'), 401

    # Настройка CSP в Talisman
    csp = {
        'default-src': "'self'",
        'script-src': ["'self'", "'unsafe-inline'"],
        'style-src': ["'self'", "'unsafe-inline'"],
        'img-src': ["'self'", 'data:'],
        'connect-src': "'self'",
        'font-src': "'self'",
        'object-src': "'none'",
        'base-uri': "'self'",
        'form-action': "'self'",
    }
    talisman.init_app(
        app,
        content_security_policy=csp,
        force_https=app.config['FORCE_HTTPS'],
        session_cookie_secure=app.config['SESSION_COOKIE_SECURE'],
    )

    @app.after_request
    def add_security_headers(response):
        # превью тем выставляют свой X-Frame-Options
        response.headers.setdefault('X-Frame-Options', 'SAMEORIGIN')
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'no-referrer-when-downgrade'
        return response

    register_error_handlers(app)

    from .views.auth import auth_bp
    from .views.themes import themes_bp
    from .views.custom_themes import custom_themes_bp
    from .admin import admin_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(themes_bp)
    app.register_blueprint(custom_themes_bp)
    app.register_blueprint(admin_bp)

    # Регистрируем команды
    from .cli_commands import register_commands
    register_commands(app)

    if not os.path.exists(app.config['UPLOAD_FOLDER']):
        os.makedirs(app.config['UPLOAD_FOLDER'])

    with app.app_context():
        db.create_all()
    return app
