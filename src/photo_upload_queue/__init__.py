"""Photo Upload Queue - Track photos from selection through upload."""

__version__ = "0.1.0"

from photo_upload_queue.cache import PhotoUploadCache
from photo_upload_queue.controller import PhotoUploadController
from photo_upload_queue.events import (
    EventBus,
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
    UploadResult,
    UploadState,
)
from photo_upload_queue.persistence import SQLitePhotoUploadStore
from photo_upload_queue.uploader import DryRunTransport, UploadWorker

__all__ = [
    "PhotoUploadCache",
    "PhotoUploadController",
    "EventBus",
    "SelectionAdded",
    "SelectionRemoved",
    "UploadsModified",
    "Account",
    "Friend",
    "PhotoUpload",
    "Place",
    "UploadQuality",
    "UploadResult",
    "UploadState",
    "SQLitePhotoUploadStore",
    "DryRunTransport",
    "UploadWorker",
]
