"""Пользовательские темы (uploads/custom themes/). Доступ только у владельца."""
import logging
import os
import shutil

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .archive import create_package_directory, extract_and_normalize, remove_tree
from .packages import (check_archive_upload, check_thumbnail_upload, replace_code, save_archive,
                       save_thumbnail)
from .paths import ARCHIVE_DIR, custom_themes_root, theme_key
from ..errors import AccessDenied, IOFailure, NotFound, ThemeError, ValidationError
from ..extensions import db
from ..models.base import BaseModel
from ..models.custom_theme import CustomTheme
from ..models.installation import ThemeInstallation, WorkingCopyState

logger = logging.getLogger(__name__)


def custom_dir_name(name):
    """Имя каталога: транслитерация и только [A-Za-z0-9 -]."""
    return BaseModel.slugify(name)


def get_owned(custom_theme_id, owner):
    try:
        custom_theme_id = int(custom_theme_id)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid custom theme id: {custom_theme_id!r}')
    custom = db.session.get(CustomTheme, custom_theme_id)
    if custom is None:
        raise NotFound('Custom theme not found')
    if owner is None or custom.owner_id != owner.id:
        raise AccessDenied('Custom theme belongs to another user')
    return custom


def list_for_owner(owner):
    return (CustomTheme.query
            .filter_by(owner_id=owner.id)
            .order_by(CustomTheme.created_at.desc(), CustomTheme.id.desc())
            .all())


def publish(owner, name, archive, thumbnail=None, max_size=None):
    if not name or not name.strip():
        raise ValidationError('Theme name is required')
    if archive is None or not archive.filename:
        raise ValidationError('ZIP file is required')
    check_archive_upload(archive, max_size or current_app.config['THEME_MAX_ARCHIVE_SIZE'])
    if thumbnail is not None and thumbnail.filename:
        check_thumbnail_upload(thumbnail)
    else:
        thumbnail = None

    dir_name = custom_dir_name(name)
    if not dir_name:
        raise ValidationError(f'Theme name has no usable characters: {name!r}')

    dirs = create_package_directory(custom_themes_root(), dir_name)
    try:
        _, archive_path = save_archive(archive, dirs.zipped, dirs.dir_name)
        extract_and_normalize(archive_path, dirs.code)
        thumbnail_filename = save_thumbnail(thumbnail, dirs.thumbnail) if thumbnail else None

        custom = CustomTheme(
            name=name.strip(),
            owner_id=owner.id,
            theme_path=dirs.dir_name,
            root_dir=dirs.root,
            code_dir=dirs.code,
            thumbnail_dir=dirs.thumbnail,
            thumbnail_filename=thumbnail_filename,
        )
        db.session.add(custom)
        db.session.commit()
    except ThemeError:
        remove_tree(dirs.root)
        raise
    except OSError as e:
        remove_tree(dirs.root)
        raise IOFailure(f'Failed to store custom theme files: {e}') from e
    except SQLAlchemyError:
        db.session.rollback()
        remove_tree(dirs.root)
        raise

    logger.info('Custom theme %s created by user %s at %s', custom.id, owner.id, dirs.root)
    return custom


def republish(custom_theme_id, owner, name=None, archive=None, thumbnail=None, max_size=None):
    custom = get_owned(custom_theme_id, owner)
    if archive is not None and archive.filename:
        check_archive_upload(archive, max_size or current_app.config['THEME_MAX_ARCHIVE_SIZE'])
    else:
        archive = None
    if thumbnail is not None and thumbnail.filename:
        check_thumbnail_upload(thumbnail)
    else:
        thumbnail = None

    if name is not None:
        if not name.strip():
            raise ValidationError('Theme name cannot be empty')
        custom.name = name.strip()

    try:
        if archive is not None:
            zipped_dir = os.path.join(custom.root_dir, ARCHIVE_DIR)
            replace_code(archive, zipped_dir, custom.theme_path, custom.root_dir, custom.code_dir)
            logger.info('Custom theme %s code replaced', custom.id)
        if thumbnail is not None:
            custom.thumbnail_filename = save_thumbnail(thumbnail, custom.thumbnail_dir, custom.thumbnail_filename)
    except ThemeError:
        db.session.rollback()
        raise
    except OSError as e:
        db.session.rollback()
        raise IOFailure(f'Failed to update custom theme files: {e}') from e

    db.session.commit()
    return custom


def remove(custom_theme_id, owner):
    custom = get_owned(custom_theme_id, owner)
    key = theme_key(custom.id, is_custom=True)

    deleted = ThemeInstallation.query.filter_by(custom_theme_id=custom.id).delete(synchronize_session=False)
    WorkingCopyState.query.filter_by(theme_key=key).delete(synchronize_session=False)

    if os.path.exists(custom.root_dir):
        try:
            shutil.rmtree(custom.root_dir)
        except OSError as e:
            db.session.rollback()
            raise IOFailure(f'Failed to delete custom theme directory: {e}') from e
    else:
        logger.warning('Custom theme directory not found or already deleted: %s', custom.root_dir)

    db.session.delete(custom)
    db.session.commit()
    logger.info('Custom theme %s deleted with %s installation(s)', key, deleted)
    return deleted


def _read_text(path):
    if not os.path.isfile(path):
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except OSError as e:
        raise IOFailure(f'Failed to read {os.path.basename(path)}: {e}') from e


def get_content(custom):
    """index.html и style.css с диска; поля записи только если файла нет."""
    html = _read_text(os.path.join(custom.code_dir, 'index.html'))
    css = _read_text(os.path.join(custom.code_dir, 'style.css'))
    return {
        'html': html if html is not None else (custom.html or ''),
        'css': css if css is not None else (custom.css or ''),
    }
