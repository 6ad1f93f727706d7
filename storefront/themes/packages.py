"""Каталог тем: публикация, перезаливка и удаление пакетов.

Каталог пакета (uploads/themes/{dir}) принадлежит только этому модулю,
установщик читает из него код, но никогда туда не пишет.
"""
import logging
import os
import shutil
import uuid
from decimal import Decimal, InvalidOperation

from flask import current_app, has_request_context, url_for
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from .archive import (build_archive, create_package_directory, extract_and_normalize,
                      remove_tree, upload_size)
from .paths import CODE_DIR, IGNORED_ENTRIES, theme_key, themes_root
from ..errors import AccessDenied, IOFailure, NotFound, ThemeError, ValidationError, UploadTooLarge
from ..extensions import db
from ..models.installation import ThemeInstallation, WorkingCopyState
from ..models.theme import Theme

logger = logging.getLogger(__name__)

ALLOWED_ARCHIVE_EXTENSIONS = {'zip'}
ALLOWED_THUMBNAIL_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp', 'svg'}
PLANS = ('free', 'premium')
SORT_FIELDS = {
    'createdAt': Theme.created_at,
    'name': Theme.name,
    'price': Theme.price,
    'downloads': Theme.downloads,
    'installationCount': Theme.installation_count,
}


def _as_id(value, label='theme'):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {label} id: {value!r}')


def get_theme(theme_id):
    theme = db.session.get(Theme, _as_id(theme_id))
    if theme is None:
        raise NotFound('Theme not found')
    return theme


def check_archive_upload(archive, limit):
    """Проверка архива до любых изменений на диске."""
    if archive is None or not archive.filename:
        raise ValidationError('ZIP file is required')
    ext = archive.filename.rsplit('.', 1)[-1].lower() if '.' in archive.filename else ''
    if ext not in ALLOWED_ARCHIVE_EXTENSIONS:
        raise ValidationError('Only ZIP archives are supported')
    size = upload_size(archive)
    if size > limit:
        raise UploadTooLarge(f'ZIP file too large. Maximum size is {limit // (1024 * 1024)}MB')
    return size


def check_thumbnail_upload(thumbnail):
    ext = os.path.splitext(thumbnail.filename or '')[1].lower().lstrip('.')
    if ext not in ALLOWED_THUMBNAIL_EXTENSIONS:
        raise ValidationError('Thumbnail must be an image')


def archive_filename(archive, fallback_name):
    return secure_filename(archive.filename) or f'{secure_filename(fallback_name) or "theme"}.zip'


def save_archive(archive, zipped_dir, fallback_name):
    archive_name = archive_filename(archive, fallback_name)
    archive_path = os.path.join(zipped_dir, archive_name)
    os.makedirs(zipped_dir, exist_ok=True)
    archive.save(archive_path)
    return archive_name, archive_path


def save_thumbnail(thumbnail, thumbnail_dir, previous=None):
    """Сохраняет миниатюру под фиксированным именем thumbnail.<ext>."""
    ext = os.path.splitext(thumbnail.filename or '')[1].lower() or '.png'
    filename = f'thumbnail{ext}'
    os.makedirs(thumbnail_dir, exist_ok=True)
    if previous:
        old_path = os.path.join(thumbnail_dir, previous)
        if os.path.exists(old_path):
            os.remove(old_path)
    thumbnail.save(os.path.join(thumbnail_dir, filename))
    return filename


def drop_other_archives(zipped_dir, keep):
    for entry in os.listdir(zipped_dir):
        path = os.path.join(zipped_dir, entry)
        if entry != keep and os.path.isfile(path):
            os.remove(path)


def reextract(archive_path, root_dir, code_dir):
    """Перераспаковка поверх существующего пакета.

    Сначала распаковываем во временный каталог рядом, и только после
    успеха заменяем старый unzippedTheme. Неудачная перезаливка оставляет
    прежний код на месте.
    """
    staging = os.path.join(root_dir, f'.{CODE_DIR}-{uuid.uuid4().hex[:8]}')
    os.makedirs(staging)
    try:
        extract_and_normalize(archive_path, staging)
    except ThemeError:
        shutil.rmtree(staging, ignore_errors=True)
        raise
    if os.path.exists(code_dir):
        shutil.rmtree(code_dir)
    os.rename(staging, code_dir)


def replace_code(archive, zipped_dir, fallback_name, root_dir, code_dir):
    """Новый архив заменяет код и прежний архив только после успешной распаковки."""
    archive_name = archive_filename(archive, fallback_name)
    os.makedirs(zipped_dir, exist_ok=True)
    staged_path = os.path.join(zipped_dir, f'.upload-{uuid.uuid4().hex[:8]}.zip')
    archive.save(staged_path)
    try:
        reextract(staged_path, root_dir, code_dir)
    except (ThemeError, OSError):
        if os.path.exists(staged_path):
            os.remove(staged_path)
        raise
    os.replace(staged_path, os.path.join(zipped_dir, archive_name))
    drop_other_archives(zipped_dir, archive_name)
    return archive_name


def parse_tags(value):
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(',')
    return [tag.strip() for tag in items if tag and tag.strip()]


def parse_price(value):
    if value in (None, ''):
        return Decimal('0')
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f'Invalid price: {value!r}')
    if price < 0:
        raise ValidationError('Price cannot be negative')
    return price


def _check_plan(plan):
    if plan not in PLANS:
        raise ValidationError(f'Unknown plan: {plan!r}')
    return plan


def publish(name, archive, thumbnail, description=None, category=None, plan='free',
            price=None, version=None, tags=None, uploaded_by=None, max_size=None):
    """Загрузка новой темы каталога. Архив и миниатюра обязательны."""
    if not name or not name.strip():
        raise ValidationError('Theme name is required')
    if archive is None or not archive.filename or thumbnail is None or not thumbnail.filename:
        raise ValidationError('Both ZIP file and thumbnail are required')
    archive_size = check_archive_upload(archive, max_size or current_app.config['THEME_MAX_ARCHIVE_SIZE'])
    check_thumbnail_upload(thumbnail)
    plan = _check_plan(plan or 'free')
    price = parse_price(price)

    dirs = create_package_directory(themes_root(), name)
    try:
        archive_name, archive_path = save_archive(archive, dirs.zipped, dirs.dir_name)
        extract_and_normalize(archive_path, dirs.code)
        thumbnail_filename = save_thumbnail(thumbnail, dirs.thumbnail)

        theme = Theme(
            name=name.strip(),
            description=description,
            category=category,
            plan=plan,
            price=price,
            version=version or '1.0.0',
            tags=parse_tags(tags),
            theme_path=dirs.dir_name,
            root_dir=dirs.root,
            code_dir=dirs.code,
            zipped_dir=dirs.zipped,
            thumbnail_dir=dirs.thumbnail,
            archive_name=archive_name,
            archive_size=archive_size,
            thumbnail_filename=thumbnail_filename,
            thumbnail_original_name=thumbnail.filename,
            uploaded_by_id=uploaded_by.id if uploaded_by is not None else None,
        )
        db.session.add(theme)
        db.session.commit()
    except ThemeError:
        remove_tree(dirs.root)
        raise
    except OSError as e:
        remove_tree(dirs.root)
        raise IOFailure(f'Failed to store theme files: {e}') from e
    except SQLAlchemyError:
        db.session.rollback()
        remove_tree(dirs.root)
        raise

    logger.info('Theme %s published to %s', theme.id, dirs.root)
    return theme


UPDATABLE_FIELDS = ('name', 'description', 'category', 'plan', 'price', 'version', 'tags', 'is_active')


def republish(theme_id, archive=None, thumbnail=None, max_size=None, **fields):
    """Обновление темы. Без файлов диск не трогаем."""
    theme = get_theme(theme_id)
    if archive is not None and archive.filename:
        archive_size = check_archive_upload(archive, max_size or current_app.config['THEME_MAX_ARCHIVE_SIZE'])
    else:
        archive = None
    if thumbnail is not None and thumbnail.filename:
        check_thumbnail_upload(thumbnail)
    else:
        thumbnail = None

    for field in UPDATABLE_FIELDS:
        value = fields.get(field)
        if value is None:
            continue
        if field == 'name':
            if not value.strip():
                raise ValidationError('Theme name cannot be empty')
            value = value.strip()
        elif field == 'tags':
            value = parse_tags(value)
        elif field == 'price':
            value = parse_price(value)
        elif field == 'plan':
            value = _check_plan(value)
        setattr(theme, field, value)

    try:
        if archive is not None:
            archive_name = replace_code(archive, theme.zipped_dir, theme.theme_path, theme.root_dir, theme.code_dir)
            theme.archive_name = archive_name
            theme.archive_size = archive_size
            logger.info('Theme %s code replaced from %s', theme.id, archive_name)

        if thumbnail is not None:
            theme.thumbnail_filename = save_thumbnail(thumbnail, theme.thumbnail_dir, theme.thumbnail_filename)
            theme.thumbnail_original_name = thumbnail.filename
    except ThemeError:
        db.session.rollback()
        raise
    except OSError as e:
        db.session.rollback()
        raise IOFailure(f'Failed to update theme files: {e}') from e

    db.session.commit()
    return theme


def remove(theme_id):
    """Каскадное удаление: установки, каталог пакета, запись."""
    theme = get_theme(theme_id)
    key = theme_key(theme.id)

    deleted = ThemeInstallation.query.filter_by(theme_id=theme.id).delete(synchronize_session=False)
    WorkingCopyState.query.filter_by(theme_key=key).delete(synchronize_session=False)
    logger.info('Deleted %s installation(s) of theme %s', deleted, theme.id)

    if os.path.exists(theme.root_dir):
        try:
            shutil.rmtree(theme.root_dir)
        except OSError as e:
            db.session.rollback()
            raise IOFailure(f'Failed to delete theme directory: {e}') from e
    else:
        logger.warning('Theme directory not found or already deleted: %s', theme.root_dir)

    db.session.delete(theme)
    db.session.commit()
    return deleted


def search_themes(search=None, category=None, plan=None, sort='createdAt', order='desc',
                  page=1, per_page=10, only_active=False):
    query = Theme.query
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Theme.name.ilike(pattern), Theme.description.ilike(pattern)))
    if category:
        query = query.filter(Theme.category == category)
    if plan:
        query = query.filter(Theme.plan == plan)
    if only_active:
        query = query.filter(Theme.is_active.is_(True))

    column = SORT_FIELDS.get(sort, Theme.created_at)
    query = query.order_by(column.asc() if order == 'asc' else column.desc(), Theme.id.desc())
    return query.paginate(page=max(page or 1, 1), per_page=min(max(per_page or 10, 1), 100), error_out=False)


def package_structure(theme):
    """Дерево файлов канонического пакета."""
    if not os.path.isdir(theme.code_dir):
        raise NotFound('Theme files not found')

    def walk(directory, relative=''):
        items = []
        for entry in sorted(os.listdir(directory)):
            if entry in IGNORED_ENTRIES:
                continue
            full = os.path.join(directory, entry)
            rel = f'{relative}/{entry}' if relative else entry
            if os.path.isdir(full):
                items.append({'name': entry, 'type': 'directory', 'path': rel, 'children': walk(full, rel)})
            else:
                stat = os.stat(full)
                items.append({'name': entry, 'type': 'file', 'path': rel, 'size': stat.st_size,
                              'modified': stat.st_mtime})
        return items

    return walk(theme.code_dir)


def download(theme, actor=None):
    """zip с распакованным кодом. Премиум-темы только для админов."""
    if not theme.is_active:
        raise ValidationError('Theme is not available for download')
    if theme.plan == 'premium' and not (actor is not None and getattr(actor, 'is_admin', False)):
        raise AccessDenied('Premium theme requires appropriate subscription')
    if not os.path.isdir(theme.code_dir):
        raise NotFound('Theme files not found')

    buffer = build_archive(theme.code_dir)
    theme.downloads = (theme.downloads or 0) + 1
    db.session.commit()
    return buffer, f'{theme.name}-{theme.version}.zip'


def thumbnail_file(package):
    path = package.thumbnail_path
    if not path or not os.path.isfile(path):
        raise NotFound('Thumbnail not found')
    return path


def thumbnail_url(package):
    if not package.thumbnail_filename or not has_request_context():
        return None
    if package.is_custom:
        return url_for('custom_themes.custom_theme_thumbnail', theme_id=package.id)
    return url_for('themes.theme_thumbnail', theme_id=package.id)


def theme_payload(theme):
    """to_dict + ссылки на миниатюру, архив и превью."""
    data = theme.to_dict()
    data['thumbnailUrl'] = thumbnail_url(theme)
    if has_request_context():
        data['downloadUrl'] = url_for('themes.theme_download', theme_id=theme.id)
        data['previewUrl'] = url_for('themes.theme_preview', theme_id=theme.id)
    return data
