import os
from datetime import datetime
from ..extensions import db
from .base import BaseModel


class CustomTheme(BaseModel):
    """Пользовательская тема. Без метаданных каталога, доступна только владельцу.

    HTML/CSS хранятся только на диске (unzippedTheme/index.html, style.css),
    в записи лишь пути. Поля html/css остались от старых записей и читаются
    только как запасной вариант.
    """
    __tablename__ = 'custom_themes'

    name = db.Column(db.String(255), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    theme_path = db.Column(db.String(255), unique=True, nullable=False)
    root_dir = db.Column(db.String(1024), nullable=False)
    code_dir = db.Column(db.String(1024), nullable=False)
    thumbnail_dir = db.Column(db.String(1024), nullable=False)
    thumbnail_filename = db.Column(db.String(255))

    html = db.Column(db.Text)
    css = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = db.relationship('User', backref=db.backref('custom_themes', lazy=True))

    is_custom = True

    @property
    def thumbnail_path(self):
        if not self.thumbnail_filename:
            return None
        return os.path.join(self.thumbnail_dir, self.thumbnail_filename)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'ownerId': self.owner_id,
            'themePath': self.theme_path,
            'hasThumbnail': bool(self.thumbnail_filename),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<CustomTheme {self.name}>"
