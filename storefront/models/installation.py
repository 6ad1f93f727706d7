from datetime import datetime
from ..extensions import db
from .base import BaseModel


class ThemeInstallation(BaseModel):
    """Привязка магазина к пакету темы (каталожной или пользовательской).

    Активной у магазина может быть только одна запись, и в каталожном,
    и в пользовательском пространстве сразу.
    """
    __tablename__ = 'theme_installations'
    __table_args__ = (
        db.UniqueConstraint('store_id', 'theme_id', name='uq_installation_store_theme'),
        db.UniqueConstraint('store_id', 'custom_theme_id', name='uq_installation_store_custom_theme'),
    )

    store_id = db.Column(db.Integer, db.ForeignKey('stores.id'), nullable=False, index=True)
    theme_id = db.Column(db.Integer, db.ForeignKey('themes.id'), nullable=True, index=True)
    custom_theme_id = db.Column(db.Integer, db.ForeignKey('custom_themes.id'), nullable=True, index=True)
    is_active = db.Column(db.Boolean, default=False, nullable=False, index=True)
    store_path = db.Column(db.String(1024), nullable=False)
    installed_at = db.Column(db.DateTime, default=datetime.utcnow)
    uninstalled_at = db.Column(db.DateTime, nullable=True)

    store = db.relationship('Store', backref=db.backref('theme_installations', lazy=True))
    theme = db.relationship('Theme')
    custom_theme = db.relationship('CustomTheme')

    @property
    def is_custom(self):
        return self.custom_theme_id is not None

    @property
    def package(self):
        return self.custom_theme if self.is_custom else self.theme

    def to_dict(self):
        from ..themes.paths import theme_key
        package = self.package
        return {
            'installationId': self.id,
            'storeId': self.store_id,
            'themeKey': theme_key(self.custom_theme_id if self.is_custom else self.theme_id, self.is_custom),
            'themeId': self.theme_id,
            'customThemeId': self.custom_theme_id,
            'name': package.name if package else None,
            'isCustomTheme': self.is_custom,
            'isActive': self.is_active,
            'workingCopyPath': self.store_path,
            'installedAt': self.installed_at.isoformat() if self.installed_at else None,
            'uninstalledAt': self.uninstalled_at.isoformat() if self.uninstalled_at else None,
        }

    def __repr__(self):
        return f"<ThemeInstallation store={self.store_id} theme={self.theme_id} custom={self.custom_theme_id}>"


class WorkingCopyState(BaseModel):
    """Индекс состояния рабочих копий: засеяна ли копия и правилась ли она.

    Заменяет проверки «есть ли файлы в каталоге». Сканирование диска
    осталось только для старых копий без записи и для команды reindex.
    """
    __tablename__ = 'working_copy_states'
    __table_args__ = (
        db.UniqueConstraint('scope', 'owner_id', 'theme_key', name='uq_working_copy_scope_owner_key'),
    )

    SCOPE_STORE = 'store'
    SCOPE_USER = 'user'

    scope = db.Column(db.String(10), nullable=False)
    owner_id = db.Column(db.Integer, nullable=False)
    theme_key = db.Column(db.String(64), nullable=False)
    is_seeded = db.Column(db.Boolean, default=False, nullable=False)
    is_dirty = db.Column(db.Boolean, default=False, nullable=False)
    seeded_at = db.Column(db.DateTime, nullable=True)
    last_edit_at = db.Column(db.DateTime, nullable=True)

    @classmethod
    def lookup(cls, scope, owner_id, theme_key):
        return cls.query.filter_by(scope=scope, owner_id=owner_id, theme_key=theme_key).first()

    @classmethod
    def get_or_create(cls, scope, owner_id, theme_key):
        state = cls.lookup(scope, owner_id, theme_key)
        if state is None:
            state = cls(scope=scope, owner_id=owner_id, theme_key=theme_key,
                        is_seeded=False, is_dirty=False)
            db.session.add(state)
        return state

    def __repr__(self):
        return f"<WorkingCopyState {self.scope}:{self.owner_id}:{self.theme_key} seeded={self.is_seeded}>"
