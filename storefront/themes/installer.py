"""Установка тем в магазины.

Рабочая копия магазина: uploads/stores/{store}/themes/{key}/unzippedTheme/.
Каноничный пакет только читается: копируем при первой установке и больше
никогда не перезаписываем правки магазина.
"""
import logging
import os
import shutil
from collections import namedtuple
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from . import recent
from .archive import remove_tree
from .packages import thumbnail_url
from .resolver import migrate_legacy_layout
from .paths import (CODE_DIR, CUSTOM_PREFIX, IGNORED_ENTRIES, has_files, list_relative_files,
                    store_theme_dir, store_themes_dir, theme_key, visible_entries)
from ..errors import AccessDenied, IOFailure, NotFound, ValidationError
from ..extensions import db
from ..models.custom_theme import CustomTheme
from ..models.installation import ThemeInstallation, WorkingCopyState
from ..models.store import Store
from ..models.theme import Theme

logger = logging.getLogger(__name__)

InstallResult = namedtuple('InstallResult', 'installation working_copy_path')

SCAFFOLD_FILES = {
    'index.html': (
        '<!DOCTYPE html>\n'
        '<html lang="en">\n'
        '<head>\n'
        '  <meta charset="UTF-8">\n'
        '  <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        '  <title>{name}</title>\n'
        '  <link rel="stylesheet" href="style.css">\n'
        '</head>\n'
        '<body>\n'
        '  <h1>{name}</h1>\n'
        '  <script src="script.js"></script>\n'
        '</body>\n'
        '</html>\n'
    ),
    'style.css': 'body {{\n  margin: 0;\n  font-family: sans-serif;\n}}\n',
    'script.js': '// {name}\n',
    'README.md': '# {name}\n\nStarter files created because the theme package had no code.\n',
}


def _as_id(value, label):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {label}: {value!r}')


def get_store(store_id, actor=None):
    """Магазин по id. Чужой магазин доступен только администратору."""
    store = db.session.get(Store, _as_id(store_id, 'store id'))
    if store is None:
        raise NotFound('Store not found')
    if actor is not None and not actor.is_admin and store.owner_id != actor.id:
        raise AccessDenied('Store belongs to another user')
    return store


def get_package(package_id, is_custom, actor=None):
    model = CustomTheme if is_custom else Theme
    package = db.session.get(model, _as_id(package_id, 'theme id'))
    if package is None:
        raise NotFound('Custom theme not found' if is_custom else 'Theme not found')
    if is_custom and actor is not None and package.owner_id != actor.id:
        raise AccessDenied('Custom theme belongs to another user')
    return package


def copy_missing(source, dest):
    for current, dirs, names in os.walk(source):
        dirs[:] = [d for d in dirs if d not in IGNORED_ENTRIES]
        target_dir = os.path.join(dest, os.path.relpath(current, source))
        os.makedirs(target_dir, exist_ok=True)
        for name in names:
            target = os.path.join(target_dir, name)
            if name in IGNORED_ENTRIES or os.path.exists(target):
                continue
            shutil.copy2(os.path.join(current, name), target)


def write_scaffold(code_dir, name):
    os.makedirs(code_dir, exist_ok=True)
    for filename, template in SCAFFOLD_FILES.items():
        path = os.path.join(code_dir, filename)
        if os.path.exists(path):
            continue
        with open(path, 'w', encoding='utf-8') as f:
            f.write(template.format(name=name))


def seed_working_copy(store_id, package, working_root):
    """Заполняет рабочую копию из пакета, если она ещё не заполнена.

    Возвращает True, если файлы копировались.
    """
    key = theme_key(package.id, package.is_custom)
    nested = os.path.join(working_root, CODE_DIR)
    state = WorkingCopyState.lookup(WorkingCopyState.SCOPE_STORE, store_id, key)

    try:
        # Старая раскладка переносится при любом состоянии индекса
        if migrate_legacy_layout(working_root) and state is not None:
            state.is_dirty = True

        if state is not None and state.is_seeded and os.path.isdir(nested):
            logger.debug('Working copy %s already seeded, keeping edits', nested)
            return False

        if state is None:
            # Копия старше индекса: смотрим на диск
            if has_files(nested):
                state = WorkingCopyState.get_or_create(WorkingCopyState.SCOPE_STORE, store_id, key)
                state.is_seeded = True
                state.seeded_at = datetime.utcnow()
                db.session.commit()
                logger.info('Indexed existing working copy %s', nested)
                return False

        state = WorkingCopyState.get_or_create(WorkingCopyState.SCOPE_STORE, store_id, key)
        state.is_seeded = False
        db.session.commit()

        source = package.code_dir
        if source and os.path.isdir(source):
            if state.is_dirty:
                # В копии уже есть правки: докладываем только недостающие файлы
                copy_missing(source, nested)
            else:
                shutil.copytree(source, nested, dirs_exist_ok=True,
                                ignore=shutil.ignore_patterns(*IGNORED_ENTRIES))
            logger.info('Seeded working copy %s from %s', nested, source)
        else:
            logger.warning('Theme source missing at %s, creating scaffold in %s', source, nested)
            write_scaffold(nested, package.name)
    except OSError as e:
        raise IOFailure(f'Failed to prepare working copy: {e}') from e

    state.is_seeded = True
    state.seeded_at = datetime.utcnow()
    db.session.commit()
    return True


def _deactivate_store(store_id, keep_key):
    """У магазина не остаётся активных установок и чужих custom-* копий."""
    now = datetime.utcnow()
    active = ThemeInstallation.query.filter_by(store_id=store_id, is_active=True).all()
    for installation in active:
        installation.is_active = False
        installation.uninstalled_at = now
        if not installation.is_custom and installation.theme is not None:
            installation.theme.installation_count = max((installation.theme.installation_count or 0) - 1, 0)

    themes_dir = store_themes_dir(store_id)
    for entry in visible_entries(themes_dir):
        if not entry.startswith(CUSTOM_PREFIX) or entry == keep_key:
            continue
        remove_tree(os.path.join(themes_dir, entry))
        WorkingCopyState.query.filter_by(
            scope=WorkingCopyState.SCOPE_STORE, owner_id=store_id, theme_key=entry,
        ).delete(synchronize_session=False)
        logger.info('Removed custom working copy %s of store %s', entry, store_id)

    db.session.commit()
    return len(active)


def _record_recent(package, key):
    try:
        recent.record(key, package.name, thumbnail_url(package), package.is_custom)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning('Failed to update recent installations for %s: %s', key, e)


def install(store_id, package_id, is_custom=False, actor=None):
    store = get_store(store_id, actor)
    package = get_package(package_id, is_custom, actor)
    key = theme_key(package.id, is_custom)
    working_root = store_theme_dir(store.id, key)

    deactivated = _deactivate_store(store.id, key)
    logger.debug('Deactivated %s installation(s) of store %s', deactivated, store.id)

    seed_working_copy(store.id, package, working_root)

    if is_custom:
        installation = ThemeInstallation.query.filter_by(store_id=store.id, custom_theme_id=package.id).first()
    else:
        installation = ThemeInstallation.query.filter_by(store_id=store.id, theme_id=package.id).first()
    if installation is None:
        installation = ThemeInstallation(
            store_id=store.id,
            theme_id=None if is_custom else package.id,
            custom_theme_id=package.id if is_custom else None,
        )
        db.session.add(installation)

    installation.is_active = True
    installation.installed_at = datetime.utcnow()
    installation.uninstalled_at = None
    installation.store_path = working_root
    if not is_custom:
        package.installation_count = (package.installation_count or 0) + 1
    db.session.commit()

    _record_recent(package, key)

    active_count = ThemeInstallation.query.filter_by(store_id=store.id, is_active=True).count()
    if active_count != 1:
        raise RuntimeError(f'Store {store.id} has {active_count} active theme installations after install')

    current_app.logger.info('[Themes] Installed %s into store %s', key, store.id)
    return InstallResult(installation, working_root)


def uninstall(installation_id, actor=None):
    """Деактивация. Рабочая копия остаётся на диске вместе с правками."""
    installation = db.session.get(ThemeInstallation, _as_id(installation_id, 'installation id'))
    if installation is None:
        raise NotFound('Installation not found')
    get_store(installation.store_id, actor)

    if installation.is_active:
        installation.is_active = False
        installation.uninstalled_at = datetime.utcnow()
        if not installation.is_custom and installation.theme is not None:
            theme = installation.theme
            theme.installation_count = max((theme.installation_count or 0) - 1, 0)
        db.session.commit()
        current_app.logger.info('[Themes] Uninstalled installation %s of store %s',
                                installation.id, installation.store_id)
    return installation


def list_installed(store_id, include_inactive=False):
    """Установки магазина, новые первыми.

    Пока у магазина есть активная каталожная тема, пользовательские
    не показываются.
    """
    query = ThemeInstallation.query.filter_by(store_id=store_id)
    if not include_inactive:
        query = query.filter(ThemeInstallation.is_active.is_(True))
    rows = query.order_by(ThemeInstallation.installed_at.desc(), ThemeInstallation.id.desc()).all()

    if any(row.is_active and not row.is_custom for row in rows):
        rows = [row for row in rows if not row.is_custom]
    return rows


def installation_details(installation_id, actor=None):
    installation = db.session.get(ThemeInstallation, _as_id(installation_id, 'installation id'))
    if installation is None:
        raise NotFound('Installation not found')
    get_store(installation.store_id, actor)

    code_dir = os.path.join(installation.store_path, CODE_DIR)
    base = code_dir if os.path.isdir(code_dir) else installation.store_path
    files = list_relative_files(base)
    details = installation.to_dict()
    details['workingCopy'] = {
        'exists': os.path.isdir(installation.store_path),
        'codeDir': base,
        'fileCount': len(files),
    }
    return details
