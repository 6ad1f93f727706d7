"""Отдача файлов тем: выбор уровня, content-type и переписывание ссылок в HTML."""
import logging
import os
import posixpath
import re
from collections import namedtuple

from .paths import CODE_DIR, list_relative_files, safe_join
from .resolver import candidate_dirs, resolve_base_dir
from ..errors import InvalidRequest, IOFailure, NotFound

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    '.html': 'text/html',
    '.htm': 'text/html',
    '.css': 'text/css',
    '.js': 'application/javascript',
    '.json': 'application/json',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.svg': 'image/svg+xml',
    '.ico': 'image/x-icon',
    '.woff': 'font/woff',
    '.woff2': 'font/woff2',
    '.ttf': 'font/ttf',
    '.eot': 'application/vnd.ms-fontobject',
}
DEFAULT_CONTENT_TYPE = 'application/octet-stream'

# Ссылки, которые не трогаем
UNTOUCHED_PREFIXES = ('http://', 'https://', 'data:', 'mailto:', 'tel:', 'javascript:', '#', '//')

ATTR_RE = re.compile(r'(\b(?:src|href)\s*=\s*)(["\'])(.*?)\2', re.IGNORECASE | re.DOTALL)
SRCSET_RE = re.compile(r'(\bsrcset\s*=\s*)(["\'])(.*?)\2', re.IGNORECASE | re.DOTALL)
CSS_URL_RE = re.compile(r'(url\(\s*)(["\']?)([^"\')]+?)\2(\s*\))', re.IGNORECASE)

ServedFile = namedtuple('ServedFile', 'path content_type body')


def content_type_for(path):
    return CONTENT_TYPES.get(os.path.splitext(path)[1].lower(), DEFAULT_CONTENT_TYPE)


def is_rewritable(url):
    url = (url or '').strip()
    return bool(url) and not url.lower().startswith(UNTOUCHED_PREFIXES)


def _absolute(url, base_url, rel_dir):
    url = url.strip()
    if url.startswith('/'):
        joined = url.lstrip('/')
    else:
        joined = posixpath.normpath(posixpath.join(rel_dir, url)) if rel_dir else url
    return f"{base_url.rstrip('/')}/{joined}"


def rewrite_relative_urls(html, base_url, rel_dir=''):
    """src, href, srcset и url(...) с относительными путями переводим на base_url.

    Пути считаются от папки самого HTML-файла (rel_dir).
    """
    def attr(match):
        prefix, quote, value = match.groups()
        if not is_rewritable(value):
            return match.group(0)
        return f'{prefix}{quote}{_absolute(value, base_url, rel_dir)}{quote}'

    def srcset(match):
        prefix, quote, value = match.groups()
        parts = []
        for candidate in value.split(','):
            pieces = candidate.strip().split(None, 1)
            if not pieces:
                continue
            if is_rewritable(pieces[0]):
                pieces[0] = _absolute(pieces[0], base_url, rel_dir)
            parts.append(' '.join(pieces))
        return f'{prefix}{quote}{", ".join(parts)}{quote}'

    def css_url(match):
        prefix, quote, value, suffix = match.groups()
        if not is_rewritable(value):
            return match.group(0)
        return f'{prefix}{quote}{_absolute(value, base_url, rel_dir)}{quote}{suffix}'

    html = ATTR_RE.sub(attr, html)
    html = SRCSET_RE.sub(srcset, html)
    return CSS_URL_RE.sub(css_url, html)


def prepare_custom_preview(html, has_stylesheet):
    """Добавляет viewport/charset и ссылку на style.css, если их нет."""
    head_tags = []
    if not re.search(r'<meta[^>]+charset', html, re.IGNORECASE):
        head_tags.append('<meta charset="UTF-8">')
    if not re.search(r'<meta[^>]+name=["\']viewport["\']', html, re.IGNORECASE):
        head_tags.append('<meta name="viewport" content="width=device-width, initial-scale=1.0">')
    if head_tags:
        opening = re.search(r'<head[^>]*>', html, re.IGNORECASE)
        block = ''.join(head_tags)
        html = html[:opening.end()] + block + html[opening.end():] if opening else block + html

    if has_stylesheet and 'style.css' not in html:
        link = '<link rel="stylesheet" href="style.css">'
        closing = re.search(r'</head>', html, re.IGNORECASE)
        html = html[:closing.start()] + link + html[closing.start():] if closing else link + html
    return html


def _strip_code_prefix(rel_path):
    prefix = CODE_DIR + '/'
    return rel_path[len(prefix):] if rel_path.startswith(prefix) else rel_path


def locate(package, rel_path, store_id=None, actor_id=None):
    """Абсолютный путь файла на первом уровне, где он есть.

    Проверка выхода за базовый каталог идёт по всем уровням до обращения
    к файлам.
    """
    rel_path = (rel_path or '').replace('\\', '/').lstrip('/')
    if not rel_path:
        raise InvalidRequest('File path is required')

    # Проверяем и уровни, которых ещё нет на диске
    safe_join(resolve_base_dir(package, store_id=store_id, actor_id=actor_id) or package.code_dir, rel_path)
    if package.code_dir:
        safe_join(package.code_dir, _strip_code_prefix(rel_path))

    tiers = candidate_dirs(package, store_id=store_id, actor_id=actor_id)
    targets = []
    for base in tiers:
        path = _strip_code_prefix(rel_path) if base == package.code_dir else rel_path
        targets.append(safe_join(base, path))

    for target in targets:
        if os.path.isdir(target):
            raise InvalidRequest(f'Path is a directory: {rel_path}')
        if os.path.isfile(target):
            return target
    raise NotFound(f'File not found: {rel_path}')


def read_file(package, rel_path, store_id=None, actor_id=None):
    path = locate(package, rel_path, store_id=store_id, actor_id=actor_id)
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise IOFailure(f'Failed to read {rel_path}: {e}') from e


def serve(package, rel_path, store_id=None, actor_id=None, base_url=None, custom_preview=False):
    """Файл темы для ответа. Для HTML с base_url тело уже переписано."""
    path = locate(package, rel_path, store_id=store_id, actor_id=actor_id)
    content_type = content_type_for(path)
    if content_type != 'text/html' or not base_url:
        return ServedFile(path, content_type, None)

    try:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            html = f.read()
    except OSError as e:
        raise IOFailure(f'Failed to read {rel_path}: {e}') from e

    rel_dir = posixpath.dirname(_strip_code_prefix(rel_path.replace('\\', '/').lstrip('/')))
    if custom_preview:
        html = prepare_custom_preview(html, os.path.isfile(os.path.join(os.path.dirname(path), 'style.css')))
    return ServedFile(path, content_type, rewrite_relative_urls(html, base_url, rel_dir))


def list_files(package, store_id=None, actor_id=None):
    """Объединение файлов рабочей копии и пакета."""
    files = set()
    base = resolve_base_dir(package, store_id=store_id, actor_id=actor_id)
    if base and base != package.code_dir:
        files.update(list_relative_files(base))
    if package.code_dir:
        files.update(list_relative_files(package.code_dir))
    if not files:
        raise NotFound('Theme has no files')
    return sorted(files)
