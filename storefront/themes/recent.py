"""Журнал последних установок. Только подсказка для интерфейса."""
import logging
from datetime import datetime

from flask import current_app

from .paths import parse_theme_key
from ..errors import ValidationError
from ..extensions import db
from ..models.custom_theme import CustomTheme
from ..models.recent_installation import RecentInstallation
from ..models.theme import Theme

logger = logging.getLogger(__name__)


def _limit():
    return current_app.config.get('RECENT_INSTALLATIONS_LIMIT', 3)


def record(theme_key, theme_name, thumbnail_url=None, is_custom=False):
    """Новая запись вместо старой для того же ключа, лишние удаляются."""
    RecentInstallation.query.filter_by(theme_key=theme_key).delete(synchronize_session=False)
    entry = RecentInstallation(
        theme_key=theme_key,
        theme_name=theme_name,
        thumbnail_url=thumbnail_url,
        is_custom=is_custom,
        installed_at=datetime.utcnow(),
    )
    db.session.add(entry)
    db.session.flush()

    stale = (RecentInstallation.query
             .order_by(RecentInstallation.installed_at.desc(), RecentInstallation.id.desc())
             .offset(_limit())
             .all())
    for row in stale:
        db.session.delete(row)
    db.session.commit()
    if stale:
        logger.debug('Evicted %s old recent installation(s)', len(stale))
    return entry


def _live_package(theme_key):
    try:
        package_id, is_custom = parse_theme_key(theme_key)
    except ValidationError:
        return None
    return db.session.get(CustomTheme if is_custom else Theme, package_id)


def list_recent():
    from .packages import thumbnail_url

    rows = (RecentInstallation.query
            .order_by(RecentInstallation.installed_at.desc(), RecentInstallation.id.desc())
            .limit(_limit())
            .all())
    result = []
    for row in rows:
        package = _live_package(row.theme_key)
        item = {
            'id': row.id,
            'themeKey': row.theme_key,
            'isCustomTheme': row.is_custom,
            'installedAt': row.installed_at.isoformat() if row.installed_at else None,
            'name': row.theme_name,
            'thumbnailUrl': row.thumbnail_url,
            'description': None,
            'category': None,
            'available': package is not None,
        }
        if package is not None:
            item['name'] = package.name
            item['thumbnailUrl'] = thumbnail_url(package) or row.thumbnail_url
            item['description'] = getattr(package, 'description', None)
            item['category'] = getattr(package, 'category', None)
        result.append(item)
    return result


def delete_recent(ids):
    if not ids or not isinstance(ids, (list, tuple)):
        raise ValidationError('ids must be a non-empty list')
    try:
        ids = [int(i) for i in ids]
    except (TypeError, ValueError):
        raise ValidationError('ids must be integers')

    deleted = (RecentInstallation.query
               .filter(RecentInstallation.id.in_(ids))
               .delete(synchronize_session=False))
    db.session.commit()
    return deleted
