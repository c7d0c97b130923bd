"""Black-box tests for CLI entry point."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from photo_upload_queue.cli import app
from photo_upload_queue.models import UploadState
from photo_upload_queue.persistence import SQLitePhotoUploadStore

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "queue.db"


def invoke(db_path: Path, *args: str):
    return runner.invoke(app, ["--db", str(db_path), *args])


def stored_states(db_path: Path) -> dict[str, UploadState]:
    with SQLitePhotoUploadStore(db_path) as store:
        uploads = store.load_selected() + store.load_uploading()
    return {u.display_name: u.state for u in uploads}


class TestCLI:
    """Test command-line interface."""

    def test_cli_help(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "Select photos, queue them for upload" in result.stdout

    def test_select(self, db_path: Path, temp_photos_dir: Path) -> None:
        result = invoke(db_path, "select", str(temp_photos_dir / "album1"))

        assert result.exit_code == 0
        assert "Selected 2 new photo(s), 2 selected in total" in result.stdout
        assert stored_states(db_path) == {
            "photo1.jpg": UploadState.SELECTED,
            "photo2.png": UploadState.SELECTED,
        }

    def test_select_again_adds_nothing(self, db_path: Path, temp_photos_dir: Path) -> None:
        invoke(db_path, "select", str(temp_photos_dir / "album1"))

        result = invoke(
            db_path,
            "select",
            str(temp_photos_dir / "album1"),
            str(temp_photos_dir / "album2" / "photo3.jpg"),
        )

        assert result.exit_code == 0
        assert "Selected 1 new photo(s), 3 selected in total" in result.stdout

    def test_select_nonexistent_path(self, db_path: Path, tmp_path: Path) -> None:
        result = invoke(db_path, "select", str(tmp_path / "nonexistent"))

        # Typer validates path existence before our code runs
        assert result.exit_code == 2

    def test_deselect_and_clear(self, db_path: Path, temp_photos_dir: Path) -> None:
        album1 = temp_photos_dir / "album1"
        invoke(db_path, "select", str(album1), str(temp_photos_dir / "album2"))

        result = invoke(db_path, "deselect", str(album1 / "photo1.jpg"))
        assert "Removed 1 photo(s) from the selection" in result.stdout

        result = invoke(db_path, "clear")
        assert result.exit_code == 0
        assert "Cleared 2 selected photo(s)" in result.stdout
        assert stored_states(db_path) == {}

    def test_promote(self, db_path: Path, temp_photos_dir: Path) -> None:
        invoke(db_path, "select", str(temp_photos_dir / "album1"))

        result = invoke(
            db_path,
            "promote",
            "--account-id",
            "acct_1",
            "--target",
            "album_123",
            "--quality",
            "medium",
            "--place-id",
            "place_1",
        )

        assert result.exit_code == 0
        assert "Queued 2 photo(s) for upload, 2 outstanding" in result.stdout
        with SQLitePhotoUploadStore(db_path) as store:
            uploads = store.load_uploading()
        assert [u.target_id for u in uploads] == ["album_123", "album_123"]
        assert all(u.place.id == "place_1" for u in uploads)
        assert all(u.quality.value == "medium" for u in uploads)

    def test_promote_nothing_selected(self, db_path: Path) -> None:
        result = invoke(db_path, "promote", "--account-id", "acct_1", "--target", "t")

        assert result.exit_code == 0
        assert "No photos selected" in result.stdout

    def test_process_success(self, db_path: Path, temp_photos_dir: Path) -> None:
        """Test the dry-run worker completes every queued photo."""
        invoke(db_path, "select", str(temp_photos_dir / "album1"), str(temp_photos_dir / "album2"))
        invoke(db_path, "promote", "--account-id", "acct_1", "--target", "album")

        result = invoke(db_path, "process")

        assert result.exit_code == 0
        assert "Successful: 3" in result.stdout
        assert set(stored_states(db_path).values()) == {UploadState.UPLOAD_COMPLETED}

    def test_process_failure_and_retry(self, db_path: Path, temp_photos_dir: Path) -> None:
        """Test failed uploads exit non-zero and can be moved back to the selection."""
        invoke(db_path, "select", str(temp_photos_dir / "album1"))
        invoke(db_path, "promote", "--account-id", "acct_1", "--target", "album")

        result = invoke(db_path, "process", "--fail", "photo2*")

        assert result.exit_code == 1
        assert "Failed: 1" in result.stdout
        assert stored_states(db_path)["photo2.png"] is UploadState.UPLOAD_ERROR

        result = invoke(db_path, "retry-failed")
        assert "Moved 1 failed upload(s) back to the selection" in result.stdout
        assert stored_states(db_path) == {
            "photo1.jpg": UploadState.UPLOAD_COMPLETED,
            "photo2.png": UploadState.SELECTED,
        }

        result = invoke(db_path, "retry-failed")
        assert "No failed uploads" in result.stdout

    def test_remove_upload(self, db_path: Path, temp_photos_dir: Path) -> None:
        album1 = temp_photos_dir / "album1"
        invoke(db_path, "select", str(album1))
        invoke(db_path, "promote", "--account-id", "acct_1", "--target", "album")

        result = invoke(db_path, "remove-upload", str(album1 / "photo1.jpg"))

        assert "Removed 1 photo(s) from the upload queue" in result.stdout
        assert list(stored_states(db_path)) == ["photo2.png"]

    def test_status(self, db_path: Path, temp_photos_dir: Path) -> None:
        invoke(db_path, "select", str(temp_photos_dir / "album1"))
        invoke(db_path, "promote", "--account-id", "acct_1", "--target", "album")
        invoke(db_path, "select", str(temp_photos_dir / "album2"))

        result = invoke(db_path, "status")

        assert result.exit_code == 0
        assert "Selected: 1" in result.stdout
        assert "Uploads: 2 (2 outstanding)" in result.stdout

    def test_reset(self, db_path: Path, temp_photos_dir: Path) -> None:
        invoke(db_path, "select", str(temp_photos_dir / "album1"))

        result = invoke(db_path, "reset", "--yes")

        assert result.exit_code == 0
        assert stored_states(db_path) == {}

    def test_reset_aborted(self, db_path: Path, temp_photos_dir: Path) -> None:
        invoke(db_path, "select", str(temp_photos_dir / "album1"))

        result = runner.invoke(app, ["--db", str(db_path), "reset"], input="n\n")

        assert result.exit_code == 1
        assert len(stored_states(db_path)) == 2

    def test_db_from_env(self, db_path: Path, temp_photos_dir: Path, monkeypatch) -> None:
        monkeypatch.setenv("PHOTO_UPLOAD_QUEUE_DB", str(db_path))

        result = runner.invoke(app, ["select", str(temp_photos_dir / "album2")])

        assert result.exit_code == 0
        assert stored_states(db_path) == {"photo3.jpg": UploadState.SELECTED}

    def test_no_persist(self, db_path: Path, temp_photos_dir: Path) -> None:
        result = runner.invoke(
            app,
            ["--db", str(db_path), "--no-persist", "select", str(temp_photos_dir / "album1")],
        )

        assert result.exit_code == 0
        assert not db_path.exists()
