"""Tests for artifact files at stable, owner-derived paths."""

import os
import time

import pytest

from snapthumb.services.exceptions import InvalidOwnerIdError
from snapthumb.services.imaging.codec import image_size, is_valid_image
from snapthumb.services.imaging.synthesis import ThumbnailSynthesizer
from snapthumb.services.storage.materializer import FileMaterializer, validate_owner_id


@pytest.fixture
def materializer(settings) -> FileMaterializer:
    return FileMaterializer(settings.artifact_dir, ThumbnailSynthesizer(settings))


def test_path_is_derived_from_owner_id(materializer, settings):
    assert materializer.path_for("item-42") == settings.artifact_dir / "item-42.jpg"
    assert materializer.url_for("item-42") == "/thumbnails/item-42.jpg"


@pytest.mark.parametrize(
    "owner_id",
    ["", "../etc/passwd", "a/b", "a\\b", ".hidden", "a..b", "x" * 129, "owner id"],
)
def test_unsafe_owner_ids_are_rejected(owner_id):
    with pytest.raises(InvalidOwnerIdError):
        validate_owner_id(owner_id)


@pytest.mark.parametrize("owner_id", ["1", "item-42", "user_7.v2", "A" * 128])
def test_safe_owner_ids_are_accepted(owner_id):
    assert validate_owner_id(owner_id) == owner_id


def test_placeholder_creates_directory_and_image(materializer, settings):
    assert materializer.write_placeholder("item-1", "Some page", "Technology") is True

    path = settings.artifact_dir / "item-1.jpg"
    assert path.exists()
    assert image_size(path.read_bytes()) == (settings.thumbnail_width, settings.thumbnail_height)


def test_write_final_replaces_in_place(materializer):
    first = materializer.write_final("item-1", b"first")
    second = materializer.write_final("item-1", b"second")

    assert first == second
    assert second.read_bytes() == b"second"
    # No temp files left behind
    assert sorted(p.name for p in second.parent.iterdir()) == ["item-1.jpg"]


def test_write_final_refreshes_modification_time(materializer):
    path = materializer.write_final("item-1", b"first")
    stale = time.time() - 3600
    os.utime(path, (stale, stale))

    materializer.write_final("item-1", b"second")

    assert path.stat().st_mtime > stale + 3000


def test_placeholder_survives_unwritable_directory(settings, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    materializer = FileMaterializer(blocker / "thumbnails", ThumbnailSynthesizer(settings))

    assert materializer.write_placeholder("item-1", "t", "c") is False


def test_placeholder_falls_back_to_minimal(materializer, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("no fonts")

    monkeypatch.setattr(materializer.synthesizer, "render_loading", broken)

    assert materializer.write_placeholder("item-1", "t", "c") is True
    assert is_valid_image(materializer.path_for("item-1").read_bytes())


def test_delete_artifact(materializer):
    materializer.write_final("item-1", b"data")

    assert materializer.delete_artifact("item-1") is True
    assert materializer.delete_artifact("item-1") is False
    assert not materializer.path_for("item-1").exists()


def test_cleanup_stale_temp_files(materializer, settings):
    settings.artifact_dir.mkdir(parents=True)
    (settings.artifact_dir / ".item-1.abc123.tmp").write_bytes(b"partial")
    (settings.artifact_dir / "item-2.jpg").write_bytes(b"keep")

    assert materializer.cleanup_stale_temp_files() == 1
    assert [p.name for p in settings.artifact_dir.iterdir()] == ["item-2.jpg"]
