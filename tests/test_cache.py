"""Tests for the photo upload identity cache."""

from pathlib import Path

from photo_upload_queue.cache import PhotoUploadCache
from photo_upload_queue.models import PhotoUpload


class TestPhotoUploadCache:
    """Test cache lifecycle."""

    def test_get_or_create_returns_same_instance(self) -> None:
        cache = PhotoUploadCache()

        first = cache.get_or_create("content://media/1")

        assert cache.get_or_create("content://media/1") is first
        assert "content://media/1" in cache
        assert len(cache) == 1

    def test_get_or_create_for_path(self, tmp_path: Path) -> None:
        cache = PhotoUploadCache()
        photo = tmp_path / "photo.jpg"

        upload = cache.get_or_create_for_path(photo)

        assert upload.key == photo.resolve().as_uri()
        assert cache.get(upload.key) is upload

    def test_populate_replaces_entries(self) -> None:
        cache = PhotoUploadCache()
        cache.get_or_create("content://media/1")
        restored = PhotoUpload(key="content://media/1", target_id="album")

        cache.populate([restored])

        assert cache.get("content://media/1") is restored

    def test_clear(self) -> None:
        cache = PhotoUploadCache()
        cache.populate([PhotoUpload(key="content://media/1")])

        cache.clear()

        assert len(cache) == 0
        assert cache.get("content://media/1") is None
