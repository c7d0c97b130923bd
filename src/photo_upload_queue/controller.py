"""Selection and upload queue state machine."""

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from photo_upload_queue.cache import PhotoUploadCache
from photo_upload_queue.events import (
    Event,
    NotificationBus,
    SelectionAdded,
    SelectionRemoved,
    UploadsModified,
)
from photo_upload_queue.models import (
    Account,
    Friend,
    PhotoUpload,
    Place,
    UploadQuality,
    UploadState,
)
from photo_upload_queue.persistence import PersistenceGateway

logger = logging.getLogger(__name__)


class PhotoUploadController:
    """Owns the selection and the upload queue.

    Photos move from the selection to the upload queue and, when an upload
    fails, back again. Every change is applied in memory first, then written
    to the store (if one is configured), then announced on the bus. The
    in-memory collections are authoritative: a failing store is logged and
    never rolls a change back.

    All access is serialized by a re-entrant lock, so bus handlers may call
    back into the controller while an event is being published.
    """

    def __init__(
        self,
        bus: NotificationBus,
        store: PersistenceGateway | None = None,
        cache: PhotoUploadCache | None = None,
    ) -> None:
        """Initialize the controller and hydrate it from the store.

        Args:
            bus: Bus that change events are published to
            store: Durable store, or None to run without persistence
            cache: Identity cache shared with producers (a new one if omitted)
        """
        self.bus = bus
        self.store = store
        self.cache = cache if cache is not None else PhotoUploadCache()
        self._selected: dict[str, PhotoUpload] = {}
        self._uploading: dict[str, PhotoUpload] = {}
        self._lock = threading.RLock()

        self.populate_from_database()

    @property
    def persistence_enabled(self) -> bool:
        return self.store is not None

    # Mutations

    def add_selection(self, upload: PhotoUpload | None) -> bool:
        """Add a photo to the selection.

        A photo sitting in the upload queue is removed from it first.

        Returns:
            True if the photo was added, False if it was already selected
        """
        if upload is None:
            return False

        with self._lock:
            if upload.key in self._selected:
                return False

            if upload.key in self._uploading:
                self.remove_upload(upload)

            upload.state = UploadState.SELECTED
            self._selected[upload.key] = upload
            self._persist("save selection", lambda store: store.save(upload))

            logger.debug(f"Selected {upload.display_name}")
            self._post_event(SelectionAdded((upload,)))
            return True

    def add_selections(self, uploads: Iterable[PhotoUpload | None]) -> None:
        """Add many photos to the selection, publishing a single event.

        The event carries only the photos that were not already selected.
        Photos taken off the upload queue are announced with one
        ``UploadsModified`` once the whole batch is applied.
        """
        with self._lock:
            selected_keys = set(self._selected)
            uploading_keys = set(self._uploading)
            added: list[PhotoUpload] = []
            demoted = False

            for upload in uploads:
                if upload is None or upload.key in selected_keys:
                    continue

                if upload.key in uploading_keys:
                    self._drop_upload(upload)
                    uploading_keys.discard(upload.key)
                    demoted = True

                upload.state = UploadState.SELECTED
                self._selected[upload.key] = upload
                selected_keys.add(upload.key)
                added.append(upload)

            if not added:
                return

            selected = list(self._selected.values())
            self._persist(
                "save selection",
                lambda store: store.save_all(selected, force_overwrite=True),
            )

            logger.info(f"Added {len(added)} photo(s) to the selection")
            if demoted:
                self._post_event(UploadsModified())
            self._post_event(SelectionAdded(tuple(added)))

    def add_upload(self, upload: PhotoUpload | None) -> bool:
        """Queue a single photo for upload.

        Returns:
            True if the photo was queued, False if it was None or already queued
        """
        if upload is None:
            return False

        with self._lock:
            if upload.key in self._uploading:
                return False

            upload.state = UploadState.UPLOAD_WAITING
            self._persist("save upload", lambda store: store.save(upload))

            self._uploading[upload.key] = upload
            previous = self._selected.pop(upload.key, None)
            if previous is not None and previous is not upload:
                previous.state = UploadState.NONE

            logger.debug(f"Queued {upload.display_name} for upload")
            self._post_event(UploadsModified())
            return True

    def add_uploads_from_selected(
        self,
        account: Account,
        target_id: str,
        quality: UploadQuality,
        place: Place | None = None,
    ) -> None:
        """Promote every selected photo to the upload queue.

        Args:
            account: Account to upload as
            target_id: Destination (album, page or profile) id
            quality: Upload quality setting
            place: Location tag; leaves existing tags alone when None
        """
        with self._lock:
            promoted = list(self._selected.values())
            if not promoted:
                return

            for upload in promoted:
                upload.set_upload_params(account, target_id, quality)
                upload.state = UploadState.UPLOAD_WAITING
                if place is not None:
                    upload.place = place

            self._persist(
                "save promoted uploads",
                lambda store: store.save_all(promoted, force_overwrite=True),
            )

            for upload in promoted:
                self._uploading[upload.key] = upload
            self._selected.clear()

            logger.info(f"Queued {len(promoted)} photo(s) for upload to {target_id}")
            self._post_event(SelectionRemoved(tuple(promoted)))
            self._post_event(UploadsModified())

    def clear_selected(self) -> None:
        with self._lock:
            if not self._selected:
                return

            self._persist("delete selection", lambda store: store.delete_all_selected())

            # Instances may still be held by the cache
            for upload in self._selected.values():
                upload.state = UploadState.NONE

            removed = tuple(self._selected.values())
            self._selected.clear()

            logger.info(f"Cleared {len(removed)} selected photo(s)")
            self._post_event(SelectionRemoved(removed))

    def remove_selection(self, upload: PhotoUpload | None) -> bool:
        """Remove a photo from the selection.

        Returns:
            True if it was removed, False if it was not selected
        """
        if upload is None:
            return False

        with self._lock:
            removed = self._selected.pop(upload.key, None)
            if removed is None:
                return False

            self._persist("delete selection", lambda store: store.delete(removed))
            removed.state = UploadState.NONE

            logger.debug(f"Deselected {removed.display_name}")
            self._post_event(SelectionRemoved((removed,)))
            return True

    def remove_upload(self, upload: PhotoUpload | None) -> None:
        if upload is None:
            return

        with self._lock:
            if self._drop_upload(upload) is not None:
                self._post_event(UploadsModified())

    def move_failed_to_selected(self) -> bool:
        """Move every failed upload back to the selection so it can be retried.

        Returns:
            True if at least one upload was moved
        """
        with self._lock:
            moved = 0
            for upload in list(self._uploading.values()):
                if upload.state is not UploadState.UPLOAD_ERROR:
                    continue

                del self._uploading[upload.key]
                upload.state = UploadState.SELECTED
                self.add_selection(upload)
                moved += 1

            selected = list(self._selected.values())
            self._persist(
                "save selection",
                lambda store: store.save_all(selected, force_overwrite=False),
            )

            if moved:
                logger.info(f"Moved {moved} failed upload(s) back to the selection")
                self._post_event(UploadsModified())
            return moved > 0

    def update_upload_state(
        self,
        upload: PhotoUpload | None,
        state: UploadState,
        result_id: str | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Record the outcome of an upload attempt.

        This is how upload workers report back. Only photos in the upload
        queue can be updated, and only to one of the upload states.

        Args:
            upload: Queued photo
            state: New upload state
            result_id: Remote id of the uploaded photo, on success
            error_message: Failure reason, on error

        Returns:
            True if the state was recorded
        """
        if upload is None or not state.is_upload:
            return False

        with self._lock:
            current = self._uploading.get(upload.key)
            if current is None:
                logger.warning(
                    f"Ignoring state report for {upload.display_name}: not in upload queue"
                )
                return False

            current.state = state
            current.result_id = result_id
            current.error_message = error_message
            self._persist(
                "save upload state",
                lambda store: store.save_all([current], force_overwrite=False),
            )

            self._post_event(UploadsModified())
            return True

    def reset(self) -> None:
        """Forget everything: cache, both collections and the whole store."""
        with self._lock:
            self.cache.clear()

            for upload in [*self._selected.values(), *self._uploading.values()]:
                upload.state = UploadState.NONE
            self._selected.clear()
            self._uploading.clear()

            self._persist("drop store", lambda store: store.drop_all_data())
            logger.info("Upload queue reset")

    def update_database(self) -> None:
        with self._lock:
            selected = list(self._selected.values())
            uploading = list(self._uploading.values())
            self._persist(
                "checkpoint selection",
                lambda store: store.save_all(selected, force_overwrite=False),
            )
            self._persist(
                "checkpoint upload queue",
                lambda store: store.save_all(uploading, force_overwrite=False),
            )

    # Queries

    def get_next_upload(self) -> PhotoUpload | None:
        """Return the oldest upload still waiting to be sent, if any."""
        with self._lock:
            for upload in self._uploading.values():
                if upload.state is UploadState.UPLOAD_WAITING:
                    return upload
            return None

    def get_active_uploads_count(self) -> int:
        """Count uploads that are not completed (waiting or failed)."""
        with self._lock:
            return sum(
                1
                for upload in self._uploading.values()
                if upload.state is not UploadState.UPLOAD_COMPLETED
            )

    def get_selected(self) -> list[PhotoUpload]:
        with self._lock:
            return list(self._selected.values())

    def get_uploading_uploads(self) -> list[PhotoUpload]:
        with self._lock:
            return list(self._uploading.values())

    def get_selected_count(self) -> int:
        with self._lock:
            return len(self._selected)

    def get_uploads_count(self) -> int:
        with self._lock:
            return len(self._uploading)

    def get_upload(self, key: str) -> PhotoUpload | None:
        """Look up a tracked photo by key in either collection."""
        with self._lock:
            return self._selected.get(key) or self._uploading.get(key)

    def has_selections(self) -> bool:
        with self._lock:
            return bool(self._selected)

    def has_uploads(self) -> bool:
        with self._lock:
            return bool(self._uploading)

    def has_waiting_uploads(self) -> bool:
        return self.get_next_upload() is not None

    def has_selections_with_place(self) -> bool:
        with self._lock:
            return any(upload.has_place() for upload in self._selected.values())

    def is_selected(self, upload: PhotoUpload | None) -> bool:
        if upload is None:
            return False
        with self._lock:
            return upload.key in self._selected

    def is_on_upload_list(self, upload: PhotoUpload | None) -> bool:
        if upload is None:
            return False
        with self._lock:
            return upload.key in self._uploading

    # Hydration

    def populate_from_database(self) -> None:
        """Load the persisted selection and upload queue into memory."""
        if self.store is None:
            return

        with self._lock:
            try:
                selected = self.store.load_selected()
                uploading = self.store.load_uploading()
            except Exception as e:
                logger.error(f"Failed to load upload queue from store: {e}")
                return

            for upload in selected:
                self._selected[upload.key] = upload
            self.cache.populate(selected)

            for upload in uploading:
                self._uploading[upload.key] = upload
            self.cache.populate(uploading)

            logger.info(
                f"Restored {len(selected)} selected photo(s) and "
                f"{len(uploading)} upload(s) from store"
            )

    def populate_from_accounts(self, accounts: dict[str, Account]) -> None:
        """Re-link restored uploads to live account objects, matched by id."""
        with self._lock:
            for upload in [*self._selected.values(), *self._uploading.values()]:
                upload.populate_from_accounts(accounts)

    def populate_from_friends(self, friends: dict[str, Friend]) -> None:
        """Re-link restored friend tags to live friend objects, matched by id."""
        with self._lock:
            for upload in [*self._selected.values(), *self._uploading.values()]:
                upload.populate_from_friends(friends)

    def _drop_upload(self, upload: PhotoUpload) -> PhotoUpload | None:
        """Take a photo off the upload queue and out of the store without announcing it."""
        removed = self._uploading.pop(upload.key, None)
        if removed is None:
            return None

        self._persist("delete upload", lambda store: store.delete(removed))
        removed.state = UploadState.NONE

        logger.debug(f"Removed {removed.display_name} from the upload queue")
        return removed

    def _persist(self, action: str, write: Callable[[PersistenceGateway], Any]) -> None:
        """Run a store write; failures are logged and never propagated."""
        if self.store is None:
            return
        try:
            write(self.store)
        except Exception as e:
            logger.error(f"Failed to {action}: {e}")

    def _post_event(self, event: Event) -> None:
        self.bus.publish(event)
