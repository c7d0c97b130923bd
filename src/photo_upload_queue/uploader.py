"""Upload worker that drains the upload queue through a pluggable transport."""

import fnmatch
import logging
from typing import Protocol

from photo_upload_queue.controller import PhotoUploadController
from photo_upload_queue.models import PhotoUpload, UploadResult, UploadState

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Exception raised when a transport fails to deliver a photo."""

    pass


class UploadTransport(Protocol):
    """Sends one photo to its destination and returns the remote photo id."""

    async def upload(self, upload: PhotoUpload) -> str: ...


class DryRunTransport:
    """Transport that pretends to upload, for previews and tests."""

    def __init__(self, fail_pattern: str | None = None) -> None:
        """Initialize the dry-run transport.

        Args:
            fail_pattern: Glob matched against photo names; matching photos fail
        """
        self.fail_pattern = fail_pattern

    async def upload(self, upload: PhotoUpload) -> str:
        name = upload.display_name
        if self.fail_pattern and fnmatch.fnmatch(name, self.fail_pattern):
            raise TransportError(f"[DRY RUN] Simulated failure for {name}")

        logger.info(f"[DRY RUN] Would upload {name} to '{upload.target_id}'")
        return "dry_run_photo_id"


class UploadWorker:
    """Uploads queued photos one at a time, oldest first."""

    def __init__(
        self, controller: PhotoUploadController, transport: UploadTransport
    ) -> None:
        """Initialize upload worker.

        Args:
            controller: Controller owning the upload queue
            transport: Transport used to send each photo
        """
        self.controller = controller
        self.transport = transport

    async def process_queue(self) -> list[UploadResult]:
        """Upload every waiting photo until none remain.

        Photos queued while the worker runs are picked up too. Each photo ends
        in ``UPLOAD_COMPLETED`` or ``UPLOAD_ERROR``; failures are not retried.

        Returns:
            Upload results in the order the photos were processed
        """
        results: list[UploadResult] = []

        while (upload := self.controller.get_next_upload()) is not None:
            result = await self._upload_photo(upload)
            results.append(result)

            if result.success:
                recorded = self.controller.update_upload_state(
                    upload, UploadState.UPLOAD_COMPLETED, result_id=result.photo_id
                )
            else:
                recorded = self.controller.update_upload_state(
                    upload, UploadState.UPLOAD_ERROR, error_message=result.error_message
                )

            # Removed from the queue mid-upload; nothing to record
            if not recorded:
                logger.debug(f"Upload of {upload.display_name} finished after removal")

        if results:
            failed = sum(1 for r in results if not r.success)
            logger.info(f"Processed {len(results)} upload(s), {failed} failed")
        return results

    async def _upload_photo(self, upload: PhotoUpload) -> UploadResult:
        """Upload a single photo.

        Args:
            upload: Queued photo

        Returns:
            Upload result
        """
        try:
            photo_id = await self.transport.upload(upload)
            logger.info(
                f"Successfully uploaded {upload.display_name} to '{upload.target_id}'"
            )
            return UploadResult(
                key=upload.key,
                target_id=upload.target_id,
                success=True,
                photo_id=photo_id,
            )
        except Exception as e:
            logger.error(f"Failed to upload {upload.display_name}: {e}")
            return UploadResult(
                key=upload.key,
                target_id=upload.target_id,
                success=False,
                error_message=str(e) or type(e).__name__,
            )
