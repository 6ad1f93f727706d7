"""Распаковка загруженных архивов тем в канонический каталог пакета."""
import io
import logging
import os
import shutil
import uuid
import zipfile
from collections import namedtuple

from .paths import (ARCHIVE_DIR, CODE_DIR, IGNORED_ENTRIES, THUMBNAIL_DIR, is_within,
                    visible_entries)
from ..errors import ExtractionFailure, IOFailure, ValidationError

logger = logging.getLogger(__name__)

PackageDirectories = namedtuple('PackageDirectories', 'root code zipped thumbnail dir_name')


def create_package_directory(base_dir, name):
    """Создаёт {base_dir}/{name}/ с подкаталогами unzippedTheme, zipped, thumbnail.

    Имя каталога совпадает с name; если такой каталог уже есть, к нему
    добавляется короткий случайный суффикс.
    """
    dir_name = (name or '').strip()
    if not dir_name or dir_name in ('.', '..') or '/' in dir_name or '\\' in dir_name:
        raise ValidationError(f'Invalid package name: {name!r}')

    root = os.path.join(base_dir, dir_name)
    if os.path.exists(root):
        dir_name = f"{dir_name}-{uuid.uuid4().hex[:6]}"
        root = os.path.join(base_dir, dir_name)

    dirs = PackageDirectories(
        root=root,
        code=os.path.join(root, CODE_DIR),
        zipped=os.path.join(root, ARCHIVE_DIR),
        thumbnail=os.path.join(root, THUMBNAIL_DIR),
        dir_name=dir_name,
    )
    try:
        for path in (dirs.code, dirs.zipped, dirs.thumbnail):
            os.makedirs(path, exist_ok=True)
    except OSError as e:
        remove_tree(root)
        raise IOFailure(f'Cannot create package directory {dir_name}: {e}') from e
    return dirs


def extract_and_normalize(archive_path, dest_dir):
    """Распаковывает zip в dest_dir и убирает единственную папку-обёртку."""
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.infolist():
                target = os.path.join(dest_dir, member.filename)
                if not is_within(dest_dir, target):
                    raise ExtractionFailure(f'Archive entry escapes package: {member.filename}')
            archive.extractall(dest_dir)
    except zipfile.BadZipFile as e:
        raise ExtractionFailure(f'ZIP extraction failed: {e}') from e
    except (OSError, RuntimeError) as e:
        # RuntimeError: зашифрованный архив без пароля
        raise ExtractionFailure(f'ZIP extraction failed: {e}') from e

    try:
        _drop_ignored(dest_dir)
        normalize_layout(dest_dir)
    except OSError as e:
        raise ExtractionFailure(f'ZIP normalization failed: {e}') from e


def normalize_layout(dest_dir):
    """Если в dest_dir ровно одна запись и это каталог, поднимаем её содержимое на уровень выше."""
    entries = visible_entries(dest_dir)
    if len(entries) != 1:
        return False
    wrapper = os.path.join(dest_dir, entries[0])
    if not os.path.isdir(wrapper):
        return False

    # Переименовываем обёртку, чтобы вложенная папка с тем же именем не совпала с ней
    staging = os.path.join(dest_dir, f".wrapper-{uuid.uuid4().hex[:8]}")
    os.rename(wrapper, staging)
    _move_up(staging, dest_dir)
    shutil.rmtree(staging, ignore_errors=True)
    logger.info('Normalized extracted structure by removing wrapper folder %s', entries[0])
    return True


def _move_up(src, dest):
    for entry in os.listdir(src):
        src_path = os.path.join(src, entry)
        dest_path = os.path.join(dest, entry)
        if os.path.isdir(src_path):
            os.makedirs(dest_path, exist_ok=True)
            _move_up(src_path, dest_path)
        else:
            os.replace(src_path, dest_path)


def _drop_ignored(dest_dir):
    for entry in os.listdir(dest_dir):
        if entry not in IGNORED_ENTRIES:
            continue
        path = os.path.join(dest_dir, entry)
        if os.path.isdir(path):
            shutil.rmtree(path, ignore_errors=True)
        else:
            os.remove(path)


def upload_size(file):
    """Размер загруженного файла (FileStorage) без чтения в память."""
    stream = file.stream
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


def remove_tree(path):
    """Удаление без исключений: только для уборки, ошибки идут в лог."""
    if not path or not os.path.exists(path):
        logger.warning('Nothing to remove, path is already gone: %s', path)
        return False
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning('Failed to remove %s: %s', path, e)
        return False
    return True


def build_archive(code_dir):
    """Собирает zip из распакованного кода темы (для скачивания)."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for current, dirs, names in os.walk(code_dir):
            dirs.sort()
            for name in sorted(names):
                if name in IGNORED_ENTRIES:
                    continue
                full = os.path.join(current, name)
                archive.write(full, os.path.relpath(full, code_dir))
    buffer.seek(0)
    return buffer
