"""Tests for storefront.themes.archive."""

import os
import zipfile

import pytest

from conftest import make_zip
from storefront.errors import ExtractionFailure, ValidationError
from storefront.themes.archive import (build_archive, create_package_directory, extract_and_normalize,
                                       normalize_layout, remove_tree)


def _write_zip(path, files):
    path.write_bytes(make_zip(files))
    return str(path)


class TestCreatePackageDirectory:
    def test_creates_layout(self, tmp_path):
        dirs = create_package_directory(str(tmp_path), "Aurora")
        assert dirs.dir_name == "Aurora"
        assert dirs.root == os.path.join(str(tmp_path), "Aurora")
        for path in (dirs.code, dirs.zipped, dirs.thumbnail):
            assert os.path.isdir(path)
        assert os.path.basename(dirs.code) == "unzippedTheme"

    def test_collision_gets_suffix(self, tmp_path):
        first = create_package_directory(str(tmp_path), "Aurora")
        second = create_package_directory(str(tmp_path), "Aurora")
        assert first.root != second.root
        assert second.dir_name.startswith("Aurora-")
        assert len(second.dir_name) == len("Aurora-") + 6

    @pytest.mark.parametrize("name", ["", "  ", ".", "..", "a/b", "a\\b"])
    def test_rejects_bad_names(self, tmp_path, name):
        with pytest.raises(ValidationError):
            create_package_directory(str(tmp_path), name)
        assert os.listdir(tmp_path) == []


class TestExtractAndNormalize:
    def test_single_wrapper_is_removed(self, tmp_path):
        archive = _write_zip(tmp_path / "a.zip", {"Aurora/index.html": "<html></html>",
                                                  "Aurora/style.css": "body{}"})
        dest = tmp_path / "out"
        dest.mkdir()
        extract_and_normalize(archive, str(dest))
        assert sorted(os.listdir(dest)) == ["index.html", "style.css"]

    def test_flat_archive_is_left_alone(self, tmp_path):
        archive = _write_zip(tmp_path / "a.zip", {"index.html": "x", "css/style.css": "y"})
        dest = tmp_path / "out"
        dest.mkdir()
        extract_and_normalize(archive, str(dest))
        assert sorted(os.listdir(dest)) == ["css", "index.html"]

    def test_os_metadata_does_not_block_unwrapping(self, tmp_path):
        archive = _write_zip(tmp_path / "a.zip", {
            "Aurora/index.html": "x",
            "__MACOSX/Aurora/._index.html": "junk",
            ".DS_Store": "junk",
        })
        dest = tmp_path / "out"
        dest.mkdir()
        extract_and_normalize(archive, str(dest))
        assert os.listdir(dest) == ["index.html"]

    def test_wrapper_containing_same_named_folder(self, tmp_path):
        archive = _write_zip(tmp_path / "a.zip", {"Aurora/Aurora/theme.css": "x",
                                                  "Aurora/index.html": "y"})
        dest = tmp_path / "out"
        dest.mkdir()
        extract_and_normalize(archive, str(dest))
        assert sorted(os.listdir(dest)) == ["Aurora", "index.html"]
        assert (dest / "Aurora" / "theme.css").read_text() == "x"

    def test_normalize_is_idempotent(self, tmp_path):
        archive = _write_zip(tmp_path / "a.zip", {"Aurora/index.html": "x", "Aurora/style.css": "y"})
        dest = tmp_path / "out"
        dest.mkdir()
        extract_and_normalize(archive, str(dest))
        before = sorted(os.listdir(dest))
        assert normalize_layout(str(dest)) is False
        assert sorted(os.listdir(dest)) == before

    def test_corrupt_archive(self, tmp_path):
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"definitely not a zip")
        dest = tmp_path / "out"
        dest.mkdir()
        with pytest.raises(ExtractionFailure):
            extract_and_normalize(str(archive), str(dest))

    def test_member_escaping_destination(self, tmp_path):
        archive = _write_zip(tmp_path / "a.zip", {"../evil.txt": "boom", "index.html": "x"})
        dest = tmp_path / "out"
        dest.mkdir()
        with pytest.raises(ExtractionFailure):
            extract_and_normalize(archive, str(dest))
        assert not (tmp_path / "evil.txt").exists()
        assert os.listdir(dest) == []


class TestHelpers:
    def test_remove_tree_missing_path(self, tmp_path):
        assert remove_tree(str(tmp_path / "missing")) is False

    def test_remove_tree(self, tmp_path):
        target = tmp_path / "pkg" / "unzippedTheme"
        target.mkdir(parents=True)
        (target / "index.html").write_text("x")
        assert remove_tree(str(tmp_path / "pkg")) is True
        assert not (tmp_path / "pkg").exists()

    def test_build_archive(self, tmp_path):
        (tmp_path / "css").mkdir()
        (tmp_path / "index.html").write_text("<html></html>")
        (tmp_path / "css" / "style.css").write_text("body{}")
        (tmp_path / ".DS_Store").write_text("junk")
        buffer = build_archive(str(tmp_path))
        with zipfile.ZipFile(buffer) as archive:
            assert sorted(archive.namelist()) == ["css/style.css", "index.html"]
