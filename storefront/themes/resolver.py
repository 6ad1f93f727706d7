"""Чей файл побеждает: рабочая копия магазина, копия пользователя или пакет."""
import logging
import os
import shutil
import tempfile
from datetime import datetime

from .paths import (CODE_DIR, has_files, is_within, store_theme_dir, theme_key, user_theme_dir,
                    visible_entries)
from ..errors import AccessDenied, IOFailure
from ..extensions import db
from ..models.installation import WorkingCopyState

logger = logging.getLogger(__name__)


def _nested_or_root(root, require_existing):
    nested = os.path.join(root, CODE_DIR)
    if os.path.isdir(nested):
        return nested
    if os.path.isdir(root):
        return root
    return None if require_existing else nested


class StoreWorkingCopy:
    """Копия магазина. Если её ещё нет, отдаём путь, куда она будет записана."""

    def resolve(self, package, store_id=None, actor_id=None):
        if store_id is None:
            return None
        return _nested_or_root(store_theme_dir(store_id, theme_key(package.id, package.is_custom)),
                               require_existing=False)


class ActorWorkingCopy:
    def resolve(self, package, store_id=None, actor_id=None):
        if actor_id is None or store_id is not None:
            return None
        return _nested_or_root(user_theme_dir(actor_id, theme_key(package.id, package.is_custom)),
                               require_existing=True)


class CanonicalPackage:
    def resolve(self, package, store_id=None, actor_id=None):
        return package.code_dir


STRATEGIES = (StoreWorkingCopy(), ActorWorkingCopy(), CanonicalPackage())


def resolve_base_dir(package, store_id=None, actor_id=None):
    for strategy in STRATEGIES:
        base = strategy.resolve(package, store_id=store_id, actor_id=actor_id)
        if base is not None:
            return base
    return None


def working_root(package, store_id=None, actor_id=None):
    key = theme_key(package.id, package.is_custom)
    if store_id is not None:
        return store_theme_dir(store_id, key), WorkingCopyState.SCOPE_STORE, store_id
    if actor_id is not None:
        return user_theme_dir(actor_id, key), WorkingCopyState.SCOPE_USER, actor_id
    return None, None, None


def candidate_dirs(package, store_id=None, actor_id=None):
    """Существующие уровни по порядку: рабочая копия (вложенная, корень), пакет."""
    dirs = []
    root, _, _ = working_root(package, store_id, actor_id)
    if root is not None:
        for path in (os.path.join(root, CODE_DIR), root):
            if os.path.isdir(path):
                dirs.append(path)
    if package.code_dir and os.path.isdir(package.code_dir):
        dirs.append(package.code_dir)
    return dirs


def migrate_legacy_layout(root):
    """Старые копии лежали прямо в корне. Переносим их в unzippedTheme/."""
    nested = os.path.join(root, CODE_DIR)
    if has_files(nested):
        return False
    entries = [e for e in visible_entries(root) if e != CODE_DIR]
    if not entries:
        return False
    os.makedirs(nested, exist_ok=True)
    for entry in entries:
        shutil.move(os.path.join(root, entry), os.path.join(nested, entry))
    logger.info('Migrated %s legacy root entries into %s', len(entries), nested)
    return True


def save_edit(package, rel_path, content, store_id=None, actor_id=None):
    """Сохраняет правку в рабочую копию и возвращает абсолютный путь файла."""
    root, scope, owner_id = working_root(package, store_id, actor_id)
    if root is None:
        raise AccessDenied('Theme package is read-only, edits need a store or user working copy')

    base = os.path.join(root, CODE_DIR)
    if not rel_path or os.path.isabs(rel_path):
        raise AccessDenied(f'Access denied: {rel_path!r}')
    target = os.path.realpath(os.path.join(base, rel_path))
    if not is_within(base, target) or target == os.path.realpath(base):
        raise AccessDenied(f'Access denied: {rel_path!r}')

    data = content.encode('utf-8') if isinstance(content, str) else bytes(content or b'')
    directory = os.path.dirname(target)
    tmp_path = None
    try:
        # Правки всегда во вложенной папке, старые файлы из корня переносим туда же
        migrate_legacy_layout(root)
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.edit-')
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp_path, target)
        tmp_path = None
        with open(target, 'rb') as f:
            written = f.read()
    except OSError as e:
        raise IOFailure(f'Failed to save {rel_path}: {e}') from e
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)

    if written != data:
        raise IOFailure(f'Saved content of {rel_path} does not match')

    state = WorkingCopyState.get_or_create(scope, owner_id, theme_key(package.id, package.is_custom))
    state.is_dirty = True
    state.last_edit_at = datetime.utcnow()
    db.session.commit()

    logger.info('Saved %s (%s bytes) to %s working copy %s', rel_path, len(data), scope, owner_id)
    return target
