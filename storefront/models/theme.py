import os
from datetime import datetime
from ..extensions import db
from .base import BaseModel


class Theme(BaseModel):
    """Тема каталога: распакованный пакет на диске + метаданные."""
    __tablename__ = 'themes'

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(100), index=True)
    plan = db.Column(db.String(20), default='free', nullable=False)  # free / premium
    price = db.Column(db.Numeric(10, 2), default=0)
    version = db.Column(db.String(50), default='1.0.0')
    tags = db.Column(db.JSON, default=list)

    # Имя каталога в uploads/themes (уникальное)
    theme_path = db.Column(db.String(255), unique=True, nullable=False)
    root_dir = db.Column(db.String(1024), nullable=False)
    code_dir = db.Column(db.String(1024), nullable=False)
    zipped_dir = db.Column(db.String(1024), nullable=False)
    thumbnail_dir = db.Column(db.String(1024), nullable=False)

    archive_name = db.Column(db.String(255))
    archive_size = db.Column(db.Integer)
    thumbnail_filename = db.Column(db.String(255))
    thumbnail_original_name = db.Column(db.String(255))

    is_active = db.Column(db.Boolean, default=True, nullable=False)  # доступна для превью и скачивания
    downloads = db.Column(db.Integer, default=0, nullable=False)
    installation_count = db.Column(db.Integer, default=0, nullable=False)

    uploaded_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    uploaded_by = db.relationship('User')

    is_custom = False

    @property
    def thumbnail_path(self):
        if not self.thumbnail_filename:
            return None
        return os.path.join(self.thumbnail_dir, self.thumbnail_filename)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'plan': self.plan,
            'price': float(self.price or 0),
            'version': self.version,
            'tags': self.tags or [],
            'themePath': self.theme_path,
            'isActive': self.is_active,
            'downloads': self.downloads or 0,
            'installationCount': self.installation_count or 0,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Theme {self.name}>"
