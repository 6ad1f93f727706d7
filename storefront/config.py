import os
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))
PROJECT_DIR = os.path.dirname(BASE_DIR)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")
    WTF_CSRF_SECRET_KEY = SECRET_KEY
    SQLALCHEMY_DATABASE_URI = f"mysql+pymysql://{os.environ.get('DB_USER')}:{os.environ.get('DB_PASSWORD')}@{os.environ.get('DB_HOST')}:{os.environ.get('DB_PORT')}/{os.environ.get('DB_NAME')}?charset=utf8mb4"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Корень хранилища: uploads/themes, uploads/custom themes, uploads/stores, uploads/users
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(PROJECT_DIR, 'uploads'))
    THEME_MAX_ARCHIVE_SIZE = int(os.environ.get('THEME_MAX_ARCHIVE_SIZE', 500 * 1024 * 1024))  # 500MB
    # Запас под thumbnail и поля формы
    MAX_CONTENT_LENGTH = THEME_MAX_ARCHIVE_SIZE + 20 * 1024 * 1024
    RECENT_INSTALLATIONS_LIMIT = 3

    FORCE_HTTPS = os.environ.get('FORCE_HTTPS', '1') == '1'
    SESSION_COOKIE_SECURE = FORCE_HTTPS
    SESSION_PROTECTION = 'strong'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    FORCE_HTTPS = False
    SESSION_COOKIE_SECURE = False
    LOG_LEVEL = 'DEBUG'
