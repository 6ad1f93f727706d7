"""HTTP tests for the theme blueprints."""

import io
import os
import zipfile
from decimal import Decimal

import pytest

from conftest import AURORA_FILES, NOVA_FILES, PNG_BYTES, make_zip
from storefront.models.theme import Theme
from storefront.themes.paths import store_theme_dir


def upload_form(name="Aurora", files=AURORA_FILES, thumbnail=True, **fields):
    data = {"name": name, "zipFile": (io.BytesIO(make_zip(files)), f"{name}.zip")}
    if thumbnail:
        data["thumbnail"] = (io.BytesIO(PNG_BYTES), "thumb.png")
    data.update(fields)
    return data


@pytest.fixture
def aurora(publish_theme):
    return publish_theme("Aurora")


class TestAuth:
    def test_bad_credentials(self, client, owner):
        response = client.post("/auth/login", json={"username": "owner", "password": "wrong"})
        assert response.status_code == 401
        assert response.get_json()["ok"] is False

    def test_missing_fields(self, client):
        assert client.post("/auth/login", json={}).status_code == 400

    def test_anonymous_gets_json_401(self, client):
        response = client.get("/themes/recent")
        assert response.status_code == 401
        assert response.get_json()["ok"] is False


class TestAdminThemes:
    def test_upload(self, client, admin, login):
        login(admin)
        response = client.post("/admin/themes", data=upload_form(category="fashion", tags="dark, minimal"),
                               content_type="multipart/form-data")
        assert response.status_code == 201
        payload = response.get_json()["theme"]
        assert payload["name"] == "Aurora"
        assert payload["tags"] == ["dark", "minimal"]
        assert payload["thumbnailUrl"] == f"/themes/{payload['id']}/thumbnail"

        theme = Theme.query.one()
        assert sorted(os.listdir(theme.code_dir)) == ["img", "index.html", "style.css"]

    def test_upload_without_thumbnail(self, client, admin, login):
        login(admin)
        response = client.post("/admin/themes", data=upload_form(thumbnail=False),
                               content_type="multipart/form-data")
        assert response.status_code == 400
        assert response.get_json()["message"] == "Both ZIP file and thumbnail are required"
        assert Theme.query.count() == 0

    def test_non_admin(self, client, owner, login):
        login(owner)
        response = client.post("/admin/themes", data=upload_form(), content_type="multipart/form-data")
        assert response.status_code == 403

    def test_anonymous(self, client):
        assert client.get("/admin/themes").status_code == 401

    def test_list_includes_inactive(self, client, admin, login, aurora):
        aurora.is_active = False
        login(admin)
        response = client.get("/admin/themes")
        assert [t["id"] for t in response.get_json()["themes"]] == [aurora.id]
        assert client.get("/themes").get_json()["themes"] == []

    def test_update_metadata(self, client, admin, login, aurora):
        login(admin)
        response = client.post(f"/admin/themes/{aurora.id}", data={"name": "Aurora 2", "price": "9.50"},
                               content_type="multipart/form-data")
        assert response.status_code == 200
        assert aurora.name == "Aurora 2"
        assert aurora.price == Decimal("9.50")

    def test_delete(self, client, admin, login, aurora):
        root = aurora.root_dir
        login(admin)
        response = client.post(f"/admin/themes/{aurora.id}/delete")
        assert response.get_json()["ok"] is True
        assert not os.path.exists(root)
        assert client.get(f"/themes/{aurora.id}").status_code == 404


class TestCatalog:
    def test_list_and_search(self, client, publish_theme):
        publish_theme("Aurora", description="Northern lights")
        publish_theme("Nova", files=NOVA_FILES)
        response = client.get("/themes?search=northern")
        names = [t["name"] for t in response.get_json()["themes"]]
        assert names == ["Aurora"]
        assert response.get_json()["pagination"]["total"] == 1

    def test_structure(self, client, aurora):
        structure = client.get(f"/themes/{aurora.id}/structure").get_json()["structure"]
        assert [item["name"] for item in structure] == ["img", "index.html", "style.css"]
        assert structure[0]["children"][0]["path"] == "img/logo.png"

    def test_thumbnail(self, client, aurora):
        response = client.get(f"/themes/{aurora.id}/thumbnail")
        assert response.status_code == 200
        assert response.data == PNG_BYTES

    def test_download(self, client, aurora):
        response = client.get(f"/themes/{aurora.id}/download")
        assert response.status_code == 200
        assert response.mimetype == "application/zip"
        names = zipfile.ZipFile(io.BytesIO(response.data)).namelist()
        assert "index.html" in names
        assert aurora.downloads == 1

    def test_premium_download_needs_admin(self, client, publish_theme, owner, login):
        theme = publish_theme("Gold", plan="premium")
        login(owner)
        assert client.get(f"/themes/{theme.id}/download").status_code == 403


class TestPreview:
    def test_html_is_rewritten_and_frameable(self, client, aurora):
        response = client.get(f"/themes/{aurora.id}/preview")
        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert f'href="/themes/{aurora.id}/preview/style.css"' in body
        assert response.headers["X-Frame-Options"] == "ALLOWALL"

    def test_assets(self, client, aurora):
        response = client.get(f"/themes/{aurora.id}/preview/style.css")
        assert response.status_code == 200
        assert response.mimetype == "text/css"

    def test_traversal(self, client, aurora):
        response = client.get(f"/themes/{aurora.id}/preview/..%2F..%2Fthemes.db")
        assert response.status_code in (403, 404)

    def test_inactive_theme(self, client, aurora):
        aurora.is_active = False
        assert client.get(f"/themes/{aurora.id}/preview").status_code == 404

    def test_other_pages_keep_default_frame_policy(self, client, aurora):
        assert client.get("/themes").headers["X-Frame-Options"] == "SAMEORIGIN"


class TestInstallFlow:
    def test_install_edit_and_serve(self, client, aurora, store, owner, login):
        login(owner)
        response = client.post("/themes/install", json={"storeId": store.id, "themeId": aurora.id})
        assert response.status_code == 200
        installation_id = response.get_json()["installationId"]

        response = client.post(f"/themes/{aurora.id}/file",
                               json={"storeId": store.id, "path": "style.css", "content": "body { color: red; }"})
        assert response.status_code == 200
        assert response.get_json()["savedPath"].startswith(
            os.path.realpath(store_theme_dir(store.id, str(aurora.id))))

        response = client.get(f"/themes/{aurora.id}/file?path=style.css&storeId={store.id}")
        assert response.get_json()["content"] == "body { color: red; }"

        response = client.get(f"/stores/{store.id}/themes/{aurora.id}/style.css")
        assert response.get_data(as_text=True) == "body { color: red; }"
        page = client.get(f"/stores/{store.id}/themes/{aurora.id}/").get_data(as_text=True)
        assert f'href="/stores/{store.id}/themes/{aurora.id}/style.css"' in page

        listed = client.get(f"/themes/installed/{store.id}").get_json()["installations"]
        assert [row["installationId"] for row in listed] == [installation_id]

        response = client.post("/themes/uninstall", json={"installationId": installation_id})
        assert response.status_code == 200
        assert client.get(f"/themes/installed/{store.id}").get_json()["installations"] == []

    def test_install_needs_exactly_one_package(self, client, aurora, store, owner, login):
        login(owner)
        response = client.post("/themes/install", json={"storeId": store.id})
        assert response.status_code == 400
        response = client.post("/themes/install", json={"storeId": store.id, "themeId": aurora.id,
                                                        "customThemeId": 1})
        assert response.status_code == 400

    def test_foreign_store(self, client, aurora, store, other_user, login):
        login(other_user)
        response = client.post("/themes/install", json={"storeId": store.id, "themeId": aurora.id})
        assert response.status_code == 403

    def test_traversal_save_is_rejected(self, client, aurora, store, owner, login):
        login(owner)
        response = client.post(f"/themes/{aurora.id}/file",
                               json={"storeId": store.id, "path": "../../../../etc/passwd", "content": "x"})
        assert response.status_code == 403
        assert response.get_json()["ok"] is False

    def test_edit_without_store_uses_user_copy(self, client, aurora, owner, login):
        login(owner)
        client.post(f"/themes/{aurora.id}/file", json={"path": "style.css", "content": "mine"})
        response = client.get(f"/themes/{aurora.id}/file?path=style.css")
        assert response.get_json()["content"] == "mine"
        with open(os.path.join(aurora.code_dir, "style.css")) as f:
            assert f.read() == "body { color: black; }"

    def test_installation_details(self, client, aurora, store, owner, login):
        login(owner)
        installation_id = client.post("/themes/install", json={"storeId": store.id, "themeId": aurora.id}) \
            .get_json()["installationId"]
        details = client.get(f"/themes/installations/{installation_id}").get_json()["installation"]
        assert details["workingCopy"]["exists"] is True


class TestRecent:
    def test_list_and_delete(self, client, aurora, store, owner, admin, login):
        login(owner)
        client.post("/themes/install", json={"storeId": store.id, "themeId": aurora.id})
        items = client.get("/themes/recent").get_json()["installations"]
        assert [item["name"] for item in items] == ["Aurora"]
        assert items[0]["thumbnailUrl"] == f"/themes/{aurora.id}/thumbnail"

        response = client.post("/themes/recent/delete", json={"ids": [items[0]["id"]]})
        assert response.status_code == 403

        client.get("/auth/logout")
        login(admin)
        response = client.post("/themes/recent/delete", json={"ids": [items[0]["id"]]})
        assert response.get_json()["deletedCount"] == 1

    def test_delete_needs_ids(self, client, admin, login):
        login(admin)
        assert client.post("/themes/recent/delete", json={"ids": []}).status_code == 400


class TestCustomThemes:
    def create(self, client, name="Shop"):
        data = {"name": name, "zipFile": (io.BytesIO(make_zip(NOVA_FILES)), "shop.zip")}
        response = client.post("/custom-themes", data=data, content_type="multipart/form-data")
        assert response.status_code == 201, response.get_json()
        return response.get_json()["theme"]

    def test_requires_login(self, client):
        assert client.get("/custom-themes").status_code == 401

    def test_create_list_and_content(self, client, owner, login):
        login(owner)
        theme = self.create(client)
        assert theme["thumbnailUrl"] is None
        listed = client.get("/custom-themes").get_json()["themes"]
        assert [t["id"] for t in listed] == [theme["id"]]
        content = client.get(f"/custom-themes/{theme['id']}/content").get_json()
        assert content["html"] == NOVA_FILES["index.html"]

    def test_other_user_is_denied(self, client, owner, other_user, login):
        login(owner)
        theme = self.create(client)
        client.get("/auth/logout")
        login(other_user)
        assert client.get(f"/custom-themes/{theme['id']}").status_code == 403
        assert client.post(f"/custom-themes/{theme['id']}/delete").status_code == 403

    def test_preview_injects_stylesheet(self, client, owner, login):
        login(owner)
        theme = self.create(client)
        response = client.get(f"/custom-themes/{theme['id']}/preview")
        body = response.get_data(as_text=True)
        assert '<meta charset="UTF-8">' in body
        assert f'href="/custom-themes/{theme["id"]}/preview/style.css"' in body
        assert response.headers["X-Frame-Options"] == "ALLOWALL"

    def test_install_and_delete(self, client, owner, store, login):
        login(owner)
        theme = self.create(client)
        response = client.post(f"/custom-themes/{theme['id']}/install", json={"storeId": store.id})
        assert response.status_code == 200
        assert response.get_json()["workingCopyPath"] == store_theme_dir(store.id, f"custom-{theme['id']}")

        page = client.get(f"/stores/{store.id}/themes/custom-{theme['id']}/")
        assert page.status_code == 200

        response = client.post(f"/custom-themes/{theme['id']}/delete")
        assert response.get_json()["deletedInstallations"] == 1
