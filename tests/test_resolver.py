"""Tests for storefront.themes.resolver."""

import os

import pytest

from storefront.errors import AccessDenied, IOFailure
from storefront.models.installation import WorkingCopyState
from storefront.themes import installer, resolver
from storefront.themes.paths import store_theme_dir, upload_root, user_theme_dir


def _read(path):
    with open(path) as f:
        return f.read()


@pytest.fixture
def aurora(publish_theme):
    return publish_theme("Aurora")


class TestResolveBaseDir:
    def test_canonical_without_working_copy(self, aurora):
        assert resolver.resolve_base_dir(aurora) == aurora.code_dir

    def test_store_tier_path_before_it_exists(self, aurora, store):
        expected = os.path.join(store_theme_dir(store.id, str(aurora.id)), "unzippedTheme")
        assert resolver.resolve_base_dir(aurora, store_id=store.id) == expected
        assert not os.path.exists(expected)

    def test_store_tier_legacy_root(self, aurora, store):
        root = store_theme_dir(store.id, str(aurora.id))
        os.makedirs(root)
        assert resolver.resolve_base_dir(aurora, store_id=store.id) == root

    def test_store_tier_wins_over_actor(self, aurora, store, owner):
        os.makedirs(os.path.join(user_theme_dir(owner.id, str(aurora.id)), "unzippedTheme"))
        installer.install(store.id, aurora.id, actor=owner)
        base = resolver.resolve_base_dir(aurora, store_id=store.id, actor_id=owner.id)
        assert base == os.path.join(store_theme_dir(store.id, str(aurora.id)), "unzippedTheme")

    def test_actor_tier_when_present(self, aurora, owner):
        nested = os.path.join(user_theme_dir(owner.id, str(aurora.id)), "unzippedTheme")
        assert resolver.resolve_base_dir(aurora, actor_id=owner.id) == aurora.code_dir
        os.makedirs(nested)
        assert resolver.resolve_base_dir(aurora, actor_id=owner.id) == nested

    def test_candidate_dirs_order(self, aurora, store, owner):
        assert resolver.candidate_dirs(aurora, store_id=store.id) == [aurora.code_dir]
        installer.install(store.id, aurora.id, actor=owner)
        root = store_theme_dir(store.id, str(aurora.id))
        assert resolver.candidate_dirs(aurora, store_id=store.id) == [
            os.path.join(root, "unzippedTheme"), root, aurora.code_dir,
        ]


class TestSaveEdit:
    def test_writes_into_store_copy(self, aurora, store, owner):
        installer.install(store.id, aurora.id, actor=owner)
        saved = resolver.save_edit(aurora, "style.css", "body { color: red; }", store_id=store.id)

        root = store_theme_dir(store.id, str(aurora.id))
        assert saved == os.path.realpath(os.path.join(root, "unzippedTheme", "style.css"))
        assert _read(saved) == "body { color: red; }"
        assert _read(os.path.join(aurora.code_dir, "style.css")) == "body { color: black; }"

        state = WorkingCopyState.lookup(WorkingCopyState.SCOPE_STORE, store.id, str(aurora.id))
        assert state.is_dirty is True
        assert state.last_edit_at is not None

    def test_creates_intermediate_directories(self, aurora, store, owner):
        installer.install(store.id, aurora.id, actor=owner)
        saved = resolver.save_edit(aurora, "css/deep/new.css", "a{}", store_id=store.id)
        assert saved.endswith(os.path.join("unzippedTheme", "css", "deep", "new.css"))
        assert _read(saved) == "a{}"

    def test_legacy_root_layout_moves_into_nested(self, aurora, store):
        root = store_theme_dir(store.id, str(aurora.id))
        os.makedirs(root)
        with open(os.path.join(root, "index.html"), "w") as f:
            f.write("old")
        with open(os.path.join(root, "style.css"), "w") as f:
            f.write("legacy")

        saved = resolver.save_edit(aurora, "index.html", "new", store_id=store.id)

        nested = os.path.join(root, "unzippedTheme")
        assert saved == os.path.realpath(os.path.join(nested, "index.html"))
        assert sorted(os.listdir(root)) == ["unzippedTheme"]
        assert _read(os.path.join(nested, "style.css")) == "legacy"
        assert resolver.resolve_base_dir(aurora, store_id=store.id) == nested

    def test_actor_tier(self, aurora, owner):
        saved = resolver.save_edit(aurora, "style.css", "mine", actor_id=owner.id)
        expected = os.path.join(user_theme_dir(owner.id, str(aurora.id)), "unzippedTheme", "style.css")
        assert saved == os.path.realpath(expected)
        state = WorkingCopyState.lookup(WorkingCopyState.SCOPE_USER, owner.id, str(aurora.id))
        assert state.is_dirty is True

    def test_bytes_content(self, aurora, store):
        saved = resolver.save_edit(aurora, "img/pixel.bin", b"\x00\x01\x02", store_id=store.id)
        with open(saved, "rb") as f:
            assert f.read() == b"\x00\x01\x02"

    def test_package_is_read_only(self, aurora):
        with pytest.raises(AccessDenied):
            resolver.save_edit(aurora, "style.css", "x")

    @pytest.mark.parametrize("path", ["../../etc/passwd", "../style.css", "/etc/passwd", "css/../../x", "", "."])
    def test_traversal_is_rejected_without_io(self, aurora, store, path):
        with pytest.raises(AccessDenied):
            resolver.save_edit(aurora, path, "pwned", store_id=store.id)
        assert not os.path.exists(os.path.join(upload_root(), "stores"))
        assert WorkingCopyState.query.count() == 0

    def test_failed_write_keeps_previous_content(self, aurora, store, owner, monkeypatch):
        installer.install(store.id, aurora.id, actor=owner)
        target = os.path.join(store_theme_dir(store.id, str(aurora.id)), "unzippedTheme", "style.css")

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(resolver.os, "replace", broken_replace)
        with pytest.raises(IOFailure):
            resolver.save_edit(aurora, "style.css", "half written", store_id=store.id)

        assert _read(target) == "body { color: black; }"
        assert not [e for e in os.listdir(os.path.dirname(target)) if e.startswith(".edit-")]
