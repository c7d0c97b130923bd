"""Identity cache of photo uploads."""

import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from photo_upload_queue.models import PhotoUpload, photo_key

logger = logging.getLogger(__name__)


class PhotoUploadCache:
    """Maps identity keys to the single live :class:`PhotoUpload` for each photo.

    Producers resolve photos through the cache so that the controller, its
    listeners and the UI all share one instance (and therefore one state) per
    photo. The controller primes the cache when it hydrates from storage and
    clears it on reset.
    """

    def __init__(self) -> None:
        self._items: dict[str, PhotoUpload] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def get(self, key: str) -> PhotoUpload | None:
        return self._items.get(key)

    def get_or_create(self, key: str) -> PhotoUpload:
        """Return the cached upload for ``key``, creating it if needed."""
        with self._lock:
            upload = self._items.get(key)
            if upload is None:
                upload = PhotoUpload(key=key)
                self._items[key] = upload
            return upload

    def get_or_create_for_path(self, path: Path) -> PhotoUpload:
        return self.get_or_create(photo_key(path))

    def populate(self, uploads: Iterable[PhotoUpload]) -> None:
        """Register already-built uploads, replacing any entries with the same key."""
        with self._lock:
            count = 0
            for upload in uploads:
                self._items[upload.key] = upload
                count += 1
        logger.debug(f"Primed upload cache with {count} item(s)")

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
