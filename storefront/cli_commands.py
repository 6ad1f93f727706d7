import os

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models.custom_theme import CustomTheme
from .models.installation import ThemeInstallation, WorkingCopyState
from .models.store import Store
from .themes.paths import (CODE_DIR, STORES_DIR, THEMES_DIR, USERS_DIR, has_files, parse_theme_key,
                           root_level_files, upload_root, visible_entries)
from .errors import ValidationError


def _scan_working_copies(scope_dir):
    """(owner_id, theme_key, path) для всех рабочих копий под uploads/stores или uploads/users."""
    for owner in visible_entries(scope_dir):
        if not owner.isdigit():
            continue
        themes_dir = os.path.join(scope_dir, owner, THEMES_DIR)
        for key in visible_entries(themes_dir):
            path = os.path.join(themes_dir, key)
            if os.path.isdir(path):
                yield int(owner), key, path


def _is_populated(path):
    return has_files(os.path.join(path, CODE_DIR)) or bool(root_level_files(path))


@click.group('themes')
def themes_cli():
    """Обслуживание рабочих копий тем."""


@themes_cli.command('reindex')
@with_appcontext
def reindex():
    """Пересобрать индекс рабочих копий и записи установок custom-* по диску"""
    indexed = created = skipped = 0
    scopes = (
        (WorkingCopyState.SCOPE_STORE, os.path.join(upload_root(), STORES_DIR)),
        (WorkingCopyState.SCOPE_USER, os.path.join(upload_root(), USERS_DIR)),
    )
    try:
        for scope, scope_dir in scopes:
            for owner_id, key, path in _scan_working_copies(scope_dir):
                try:
                    package_id, is_custom = parse_theme_key(key)
                except ValidationError:
                    click.echo(f'Пропущен каталог с некорректным ключом: {path}')
                    skipped += 1
                    continue
                if not _is_populated(path):
                    continue

                state = WorkingCopyState.get_or_create(scope, owner_id, key)
                if not state.is_seeded:
                    state.is_seeded = True
                    indexed += 1

                if scope != WorkingCopyState.SCOPE_STORE or not is_custom:
                    continue
                if db.session.get(Store, owner_id) is None or db.session.get(CustomTheme, package_id) is None:
                    continue
                exists = ThemeInstallation.query.filter_by(store_id=owner_id, custom_theme_id=package_id).first()
                if exists is None:
                    has_active = ThemeInstallation.query.filter_by(store_id=owner_id, is_active=True).count() > 0
                    db.session.add(ThemeInstallation(
                        store_id=owner_id,
                        custom_theme_id=package_id,
                        is_active=not has_active,
                        store_path=path,
                    ))
                    db.session.flush()
                    created += 1
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise click.ClickException(f'Ошибка при переиндексации: {e}')

    click.echo(f'Переиндексация завершена. Отмечено копий: {indexed}, создано установок: {created}, пропущено: {skipped}.')


@themes_cli.command('stale-copies')
@with_appcontext
def stale_copies():
    """Показать рабочие копии неактивных установок (ничего не удаляет)"""
    rows = (ThemeInstallation.query
            .filter(ThemeInstallation.is_active.is_(False))
            .order_by(ThemeInstallation.uninstalled_at.asc())
            .all())
    count = 0
    for row in rows:
        if not os.path.isdir(row.store_path):
            continue
        count += 1
        uninstalled = row.uninstalled_at.isoformat() if row.uninstalled_at else '-'
        click.echo(f'store={row.store_id}\t{row.to_dict()["themeKey"]}\tuninstalled={uninstalled}\t{row.store_path}')
    click.echo(f'Неактивных рабочих копий: {count}')


def register_commands(app):
    app.cli.add_command(themes_cli)
