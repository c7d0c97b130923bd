"""Durable storage of photo uploads in SQLite, with retry on transient lock errors."""

import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Protocol, TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from photo_upload_queue.models import (
    UPLOAD_STATES,
    Account,
    Friend,
    PhotoUpload,
    Place,
    UploadQuality,
    UploadState,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEMORY_DATABASE = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS photo_uploads (
    key TEXT PRIMARY KEY,
    state TEXT NOT NULL,
    position INTEGER NOT NULL,
    account_id TEXT,
    account_name TEXT,
    target_id TEXT,
    quality TEXT,
    place_id TEXT,
    place_name TEXT,
    place_latitude REAL,
    place_longitude REAL,
    tagged_friends TEXT,
    result_id TEXT,
    error_message TEXT
)
"""

_COLUMNS = (
    "key",
    "state",
    "account_id",
    "account_name",
    "target_id",
    "quality",
    "place_id",
    "place_name",
    "place_latitude",
    "place_longitude",
    "tagged_friends",
    "result_id",
    "error_message",
)

_NEXT_POSITION = "(SELECT COALESCE(MAX(position), 0) + 1 FROM photo_uploads)"

_REPLACE_SQL = (
    f"INSERT OR REPLACE INTO photo_uploads ({', '.join(_COLUMNS)}, position) "
    f"VALUES ({', '.join(':' + c for c in _COLUMNS)}, {_NEXT_POSITION})"
)

# Existing rows keep their position; new rows go to the end
_MERGE_SQL = (
    f"INSERT INTO photo_uploads ({', '.join(_COLUMNS)}, position) "
    f"VALUES ({', '.join(':' + c for c in _COLUMNS)}, {_NEXT_POSITION}) "
    "ON CONFLICT(key) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS if c != "key")
)


class PersistenceError(Exception):
    """Base exception for storage failures."""

    pass


class StoreBusyError(PersistenceError):
    """Exception raised when the database is locked by another connection."""

    pass


class PersistenceGateway(Protocol):
    """Durable store the upload controller synchronizes with."""

    def save(self, upload: PhotoUpload) -> None: ...

    def save_all(
        self, uploads: Sequence[PhotoUpload], force_overwrite: bool
    ) -> None: ...

    def delete(self, upload: PhotoUpload) -> None: ...

    def delete_all_selected(self) -> None: ...

    def load_selected(self) -> list[PhotoUpload]: ...

    def load_uploading(self) -> list[PhotoUpload]: ...

    def drop_all_data(self) -> None: ...


class SQLitePhotoUploadStore:
    """SQLite implementation of :class:`PersistenceGateway`.

    Rows are partitioned by their persisted state: ``selected`` rows form the
    selection, rows in an upload state form the upload queue. Each row carries
    a position so both partitions load back in the order they were saved.
    """

    def __init__(self, db_path: str | Path = MEMORY_DATABASE, timeout: float = 5.0) -> None:
        """Open (and create if needed) the upload database.

        Args:
            db_path: Database file path, or ``":memory:"`` for a private in-memory store
            timeout: Seconds SQLite waits on a locked database before failing
        """
        self.db_path = db_path
        self.timeout = timeout
        self._lock = threading.Lock()
        self._conn = self._connect()

    @property
    def is_memory(self) -> bool:
        return str(self.db_path) == MEMORY_DATABASE

    def __enter__(self) -> "SQLitePhotoUploadStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _connect(self) -> sqlite3.Connection:
        if not self.is_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.db_path), timeout=self.timeout, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        with conn:
            conn.execute(_SCHEMA)
        logger.debug(f"Opened upload store at {self.db_path}")
        return conn

    @retry(
        retry=retry_if_exception_type(StoreBusyError),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
        stop=stop_after_attempt(5),
        reraise=True,
    )
    def _run(self, operation: Callable[[sqlite3.Connection], T], context: str) -> T:
        """Run ``operation`` in a single transaction.

        Args:
            operation: Callable receiving the open connection
            context: Description of the operation, used in errors and logs

        Returns:
            Whatever ``operation`` returns

        Raises:
            StoreBusyError: If the database stays locked after all retries
            PersistenceError: For any other SQLite failure
        """
        with self._lock:
            try:
                with self._conn:
                    return operation(self._conn)
            except sqlite3.OperationalError as e:
                message = str(e).lower()
                if "locked" in message or "busy" in message:
                    logger.warning(f"Upload store busy while {context}, will retry")
                    raise StoreBusyError(f"Database busy: {e}") from e
                raise PersistenceError(f"Store error while {context}: {e}") from e
            except sqlite3.Error as e:
                raise PersistenceError(f"Store error while {context}: {e}") from e

    def save(self, upload: PhotoUpload) -> None:
        self._run(
            lambda conn: conn.execute(_REPLACE_SQL, _to_row(upload)),
            f"saving {upload.key}",
        )

    def save_all(self, uploads: Sequence[PhotoUpload], force_overwrite: bool) -> None:
        """Save many uploads in one transaction.

        Args:
            uploads: Uploads to save, in display order
            force_overwrite: Replace rows outright (moving them to the end of
                the ordering) instead of updating them in place
        """
        if not uploads:
            return
        sql = _REPLACE_SQL if force_overwrite else _MERGE_SQL
        rows = [_to_row(upload) for upload in uploads]

        def write(conn: sqlite3.Connection) -> None:
            # One statement per row so the position subquery sees earlier rows
            for row in rows:
                conn.execute(sql, row)

        self._run(write, f"saving {len(rows)} upload(s)")

    def delete(self, upload: PhotoUpload) -> None:
        self._run(
            lambda conn: conn.execute(
                "DELETE FROM photo_uploads WHERE key = ?", (upload.key,)
            ),
            f"deleting {upload.key}",
        )

    def delete_all_selected(self) -> None:
        self._run(
            lambda conn: conn.execute(
                "DELETE FROM photo_uploads WHERE state = ?",
                (UploadState.SELECTED.value,),
            ),
            "deleting selected uploads",
        )

    def load_selected(self) -> list[PhotoUpload]:
        return self._load([UploadState.SELECTED], "loading selected uploads")

    def load_uploading(self) -> list[PhotoUpload]:
        return self._load(
            sorted(UPLOAD_STATES, key=lambda s: s.value), "loading upload queue"
        )

    def _load(self, states: list[UploadState], context: str) -> list[PhotoUpload]:
        placeholders = ", ".join("?" for _ in states)
        rows = self._run(
            lambda conn: conn.execute(
                f"SELECT * FROM photo_uploads WHERE state IN ({placeholders}) "
                "ORDER BY position",
                [s.value for s in states],
            ).fetchall(),
            context,
        )
        return [_from_row(row) for row in rows]

    def drop_all_data(self) -> None:
        """Delete the whole store and start over with an empty database.

        Raises:
            StoreBusyError: If an in-memory store stays locked after all retries
            PersistenceError: If the database can't be dropped or recreated
        """
        if self.is_memory:

            def recreate(conn: sqlite3.Connection) -> None:
                conn.execute("DROP TABLE IF EXISTS photo_uploads")
                conn.execute(_SCHEMA)

            self._run(recreate, "dropping upload store")
        else:
            with self._lock:
                try:
                    self._conn.close()
                    db_file = Path(self.db_path)
                    for suffix in ("", "-journal", "-wal", "-shm"):
                        db_file.with_name(db_file.name + suffix).unlink(missing_ok=True)
                    self._conn = self._connect()
                except (sqlite3.Error, OSError) as e:
                    raise PersistenceError(
                        f"Store error while dropping upload store: {e}"
                    ) from e
        logger.info(f"Dropped all data in upload store {self.db_path}")


def _to_row(upload: PhotoUpload) -> dict[str, Any]:
    account = upload.account
    place = upload.place
    return {
        "key": upload.key,
        "state": upload.state.value,
        "account_id": account.id if account else None,
        "account_name": account.name if account else None,
        "target_id": upload.target_id,
        "quality": upload.quality.value if upload.quality else None,
        "place_id": place.id if place else None,
        "place_name": place.name if place else None,
        "place_latitude": place.latitude if place else None,
        "place_longitude": place.longitude if place else None,
        "tagged_friends": json.dumps(
            [{"id": f.id, "name": f.name} for f in upload.tagged_friends]
        ),
        "result_id": upload.result_id,
        "error_message": upload.error_message,
    }


def _from_row(row: sqlite3.Row) -> PhotoUpload:
    account = None
    if row["account_id"]:
        account = Account(id=row["account_id"], name=row["account_name"] or "")

    place = None
    if row["place_id"]:
        place = Place(
            id=row["place_id"],
            name=row["place_name"] or "",
            latitude=row["place_latitude"],
            longitude=row["place_longitude"],
        )

    return PhotoUpload(
        key=row["key"],
        state=UploadState(row["state"]),
        account=account,
        target_id=row["target_id"],
        quality=UploadQuality(row["quality"]) if row["quality"] else None,
        place=place,
        tagged_friends=tuple(
            Friend(id=f["id"], name=f.get("name", ""))
            for f in json.loads(row["tagged_friends"] or "[]")
        ),
        result_id=row["result_id"],
        error_message=row["error_message"],
    )
