"""Pytest configuration and shared fixtures."""

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from photo_upload_queue.controller import PhotoUploadController
from photo_upload_queue.models import Account, PhotoUpload
from photo_upload_queue.persistence import SQLitePhotoUploadStore


class RecordingBus:
    """Bus double that keeps every published event."""

    def __init__(self) -> None:
        self.events: list[object] = []

    def publish(self, event: object) -> None:
        self.events.append(event)

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def temp_photos_dir(tmp_path: Path) -> Path:
    """Create a temporary directory structure with test photos.

    Structure:
        temp_dir/
            album1/
                photo1.jpg
                photo2.png
            album2/
                photo3.jpg
            empty_album/
            notes.txt
    """
    album1 = tmp_path / "album1"
    album1.mkdir()
    (album1 / "photo1.jpg").write_text("fake jpg content")
    (album1 / "photo2.png").write_text("fake png content")

    album2 = tmp_path / "album2"
    album2.mkdir()
    (album2 / "photo3.jpg").write_text("fake jpg content")

    (tmp_path / "empty_album").mkdir()
    (tmp_path / "notes.txt").write_text("not a photo")

    return tmp_path


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def store() -> Iterator[SQLitePhotoUploadStore]:
    with SQLitePhotoUploadStore(":memory:") as s:
        yield s


@pytest.fixture
def controller(bus: RecordingBus, store: SQLitePhotoUploadStore) -> PhotoUploadController:
    return PhotoUploadController(bus, store=store)


@pytest.fixture
def make_upload() -> Callable[[str], PhotoUpload]:
    """Factory for uploads keyed by a fake content URI."""

    def _make(name: str) -> PhotoUpload:
        return PhotoUpload(key=f"content://media/{name}")

    return _make


@pytest.fixture
def account() -> Account:
    return Account(id="acct_1", name="Test User")
