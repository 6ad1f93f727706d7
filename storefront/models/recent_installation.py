from datetime import datetime
from ..extensions import db
from .base import BaseModel


class RecentInstallation(BaseModel):
    """Последние установки по всей системе (для подсказок в интерфейсе)."""
    __tablename__ = 'recent_installations'

    theme_key = db.Column(db.String(64), nullable=False, index=True)  # "{id}" или "custom-{id}"
    theme_name = db.Column(db.String(255))
    thumbnail_url = db.Column(db.String(1024))
    is_custom = db.Column(db.Boolean, default=False, nullable=False)
    installed_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<RecentInstallation {self.theme_key}>"
