"""Data models for the photo upload queue."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import unquote, urlparse


class UploadState(str, Enum):
    """Lifecycle state of a photo upload."""

    NONE = "none"
    SELECTED = "selected"
    UPLOAD_WAITING = "upload_waiting"
    UPLOAD_ERROR = "upload_error"
    UPLOAD_COMPLETED = "upload_completed"

    @property
    def is_upload(self) -> bool:
        """Whether this state belongs to the upload queue."""
        return self in UPLOAD_STATES


UPLOAD_STATES = frozenset(
    {UploadState.UPLOAD_WAITING, UploadState.UPLOAD_ERROR, UploadState.UPLOAD_COMPLETED}
)


class UploadQuality(str, Enum):
    """Resize setting applied by the transport when uploading."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    ORIGINAL = "original"


@dataclass(frozen=True)
class Account:
    """Account (profile or page) that photos are uploaded on behalf of."""

    id: str
    name: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Account id cannot be empty")


@dataclass(frozen=True)
class Place:
    """Location tag attached to an upload."""

    id: str
    name: str = ""
    latitude: float | None = None
    longitude: float | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Place id cannot be empty")


@dataclass(frozen=True)
class Friend:
    """Person tagged in a photo."""

    id: str
    name: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Friend id cannot be empty")


@dataclass(eq=False)
class PhotoUpload:
    """A photo tracked by the upload queue.

    Identity is the ``key`` alone: two instances with the same key are the
    same photo, whatever their state or upload parameters. The ``state`` field
    is owned by :class:`~photo_upload_queue.controller.PhotoUploadController`;
    other code should treat it as read-only.
    """

    key: str
    state: UploadState = UploadState.NONE
    account: Account | None = None
    target_id: str | None = None
    quality: UploadQuality | None = None
    place: Place | None = None
    tagged_friends: tuple[Friend, ...] = ()
    result_id: str | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        """Validate upload data."""
        if not self.key:
            raise ValueError("Photo upload key cannot be empty")

    @classmethod
    def from_path(cls, path: Path) -> "PhotoUpload":
        """Create an upload for a local file, keyed by its absolute file URI."""
        return cls(key=photo_key(path))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PhotoUpload):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    @property
    def path(self) -> Path | None:
        """Local file path for ``file://`` keys, otherwise None."""
        parsed = urlparse(self.key)
        if parsed.scheme != "file":
            return None
        return Path(unquote(parsed.path))

    @property
    def display_name(self) -> str:
        return self.path.name if self.path else self.key

    def set_upload_params(
        self, account: Account, target_id: str, quality: UploadQuality
    ) -> None:
        self.account = account
        self.target_id = target_id
        self.quality = quality

    def has_place(self) -> bool:
        return self.place is not None

    def populate_from_accounts(self, accounts: dict[str, Account]) -> None:
        """Swap the stored account reference for the live account with the same id."""
        if self.account is not None and self.account.id in accounts:
            self.account = accounts[self.account.id]

    def populate_from_friends(self, friends: dict[str, Friend]) -> None:
        """Swap stored friend tags for the live friends with the same ids."""
        self.tagged_friends = tuple(
            friends.get(friend.id, friend) for friend in self.tagged_friends
        )


@dataclass(frozen=True)
class UploadResult:
    """Result of a photo upload operation."""

    key: str
    target_id: str | None
    success: bool
    photo_id: str | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        """Validate upload result."""
        if self.success and not self.photo_id:
            raise ValueError("Successful upload must have a photo_id")
        if not self.success and not self.error_message:
            raise ValueError("Failed upload must have an error_message")


def photo_key(path: Path) -> str:
    """Return the identity key for a local photo file."""
    return path.resolve().as_uri()
