"""Shared fixtures: an app per test with its own SQLite file and upload root."""

import io
import zipfile

import pytest
from werkzeug.datastructures import FileStorage

from storefront import create_app
from storefront.config import TestingConfig
from storefront.extensions import db
from storefront.models.store import addStore
from storefront.models.user import addUser
from storefront.themes import packages

PASSWORD = "secret"

# 1x1 transparent PNG
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00"
    b"\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N\x00"
    b"\x00\x00\x00IEND\xaeB`\x82"
)

AURORA_FILES = {
    "Aurora/index.html": '<html><head><link href="style.css" rel="stylesheet"></head>'
                         '<body><img src="img/logo.png"></body></html>',
    "Aurora/style.css": "body { color: black; }",
    "Aurora/img/logo.png": PNG_BYTES,
}

NOVA_FILES = {
    "index.html": "<html><body>Nova</body></html>",
    "style.css": "body { color: blue; }",
}


def make_zip(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def zip_upload(files, filename="theme.zip"):
    return FileStorage(stream=io.BytesIO(make_zip(files)), filename=filename,
                       content_type="application/zip")


def raw_upload(data, filename):
    return FileStorage(stream=io.BytesIO(data), filename=filename)


def thumbnail_upload(filename="thumb.png"):
    return FileStorage(stream=io.BytesIO(PNG_BYTES), filename=filename, content_type="image/png")


@pytest.fixture
def app(tmp_path):
    class Config(TestingConfig):
        UPLOAD_FOLDER = str(tmp_path / "uploads")
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'themes.db'}"

    app = create_app(Config)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(app):
    return addUser("admin", "admin@example.com", PASSWORD, is_admin=True)


@pytest.fixture
def owner(app):
    return addUser("owner", "owner@example.com", PASSWORD)


@pytest.fixture
def other_user(app):
    return addUser("other", "other@example.com", PASSWORD)


@pytest.fixture
def store(owner):
    return addStore("S1", owner.id)


@pytest.fixture
def publish_theme(admin):
    def _publish(name="Aurora", files=None, **metadata):
        return packages.publish(
            name,
            zip_upload(files if files is not None else AURORA_FILES, filename=f"{name}.zip"),
            thumbnail_upload(),
            uploaded_by=admin,
            **metadata,
        )
    return _publish


@pytest.fixture
def login(client):
    def _login(user):
        response = client.post("/auth/login", json={"username": user.username, "password": PASSWORD})
        assert response.status_code == 200, response.get_json()
        return response
    return _login
