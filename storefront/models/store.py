from datetime import datetime
from ..extensions import db
from .base import BaseModel


class Store(BaseModel):
    """Магазин (тенант). Полная модель живёт в CRUD-части, здесь только то, что нужно темам."""
    __tablename__ = 'stores'

    name = db.Column(db.String(255), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    owner = db.relationship('User', backref=db.backref('stores', lazy=True))

    def __repr__(self):
        return f"<Store {self.name}>"


def addStore(name, owner_id):
    store = Store(name=name, owner_id=owner_id)
    db.session.add(store)
    db.session.commit()
    return store
