"""Раскладка файлов тем на диске.

uploads/themes/{dir}/            unzippedTheme/, zipped/, thumbnail/
uploads/custom themes/{dir}/     unzippedTheme/, zipped/, thumbnail/
uploads/stores/{store}/themes/{key}/unzippedTheme/   рабочая копия магазина
uploads/users/{user}/themes/{key}/unzippedTheme/     рабочая копия пользователя без магазина
"""
import os

from flask import current_app

from ..errors import AccessDenied, ValidationError

CODE_DIR = 'unzippedTheme'
ARCHIVE_DIR = 'zipped'
THUMBNAIL_DIR = 'thumbnail'

THEMES_DIR = 'themes'
CUSTOM_THEMES_DIR = 'custom themes'
STORES_DIR = 'stores'
USERS_DIR = 'users'

CUSTOM_PREFIX = 'custom-'

# Служебный мусор архиваторов и ОС
IGNORED_ENTRIES = {'.DS_Store', '__MACOSX', 'Thumbs.db'}


def upload_root():
    return current_app.config['UPLOAD_FOLDER']


def themes_root():
    return os.path.join(upload_root(), THEMES_DIR)


def custom_themes_root():
    return os.path.join(upload_root(), CUSTOM_THEMES_DIR)


def theme_key(package_id, is_custom=False):
    """Ключ каталога темы внутри магазина. Пространства имён не пересекаются."""
    return f"{CUSTOM_PREFIX}{package_id}" if is_custom else str(package_id)


def parse_theme_key(key):
    """"12" -> (12, False), "custom-7" -> (7, True)."""
    raw = str(key or '').strip()
    is_custom = raw.startswith(CUSTOM_PREFIX)
    if is_custom:
        raw = raw[len(CUSTOM_PREFIX):]
    if not raw.isdigit():
        raise ValidationError(f'Malformed theme key: {key!r}')
    return int(raw), is_custom


def store_themes_dir(store_id):
    return os.path.join(upload_root(), STORES_DIR, str(store_id), THEMES_DIR)


def store_theme_dir(store_id, key):
    return os.path.join(store_themes_dir(store_id), key)


def user_theme_dir(user_id, key):
    return os.path.join(upload_root(), USERS_DIR, str(user_id), THEMES_DIR, key)


def is_within(base_dir, target):
    base = os.path.realpath(base_dir)
    target = os.path.realpath(target)
    try:
        return os.path.commonpath([base, target]) == base
    except ValueError:
        # разные диски в Windows
        return False


def safe_join(base_dir, rel_path):
    """Абсолютный путь rel_path внутри base_dir или AccessDenied."""
    if rel_path is None or os.path.isabs(rel_path):
        raise AccessDenied(f'Access denied: {rel_path!r}')
    target = os.path.realpath(os.path.join(base_dir, rel_path))
    if not is_within(base_dir, target):
        raise AccessDenied(f'Access denied: {rel_path!r}')
    return target


def visible_entries(directory):
    if not os.path.isdir(directory):
        return []
    return sorted(e for e in os.listdir(directory) if e not in IGNORED_ENTRIES)


def has_files(directory):
    return bool(visible_entries(directory))


def root_level_files(directory):
    """Файлы (не каталоги) прямо в корне рабочей копии: признак старой раскладки."""
    return [e for e in visible_entries(directory) if os.path.isfile(os.path.join(directory, e))]


def list_relative_files(base_dir):
    """Все файлы под base_dir в виде относительных путей с '/'."""
    files = []
    if not os.path.isdir(base_dir):
        return files
    for current, dirs, names in os.walk(base_dir):
        dirs[:] = sorted(d for d in dirs if d not in IGNORED_ENTRIES)
        for name in sorted(names):
            if name in IGNORED_ENTRIES:
                continue
            rel = os.path.relpath(os.path.join(current, name), base_dir)
            files.append(rel.replace(os.sep, '/'))
    return files
