"""Command-line interface for the photo upload queue."""

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from photo_upload_queue.controller import PhotoUploadController
from photo_upload_queue.events import EventBus, SelectionAdded
from photo_upload_queue.models import Account, Place, UploadQuality, photo_key
from photo_upload_queue.persistence import SQLitePhotoUploadStore
from photo_upload_queue.uploader import DryRunTransport, UploadWorker
from photo_upload_queue.utils import scan_photos

app = typer.Typer(
    name="photo-upload-queue",
    help="Select photos, queue them for upload and track their progress",
    add_completion=False,
)
console = Console()

DEFAULT_DB_PATH = Path.home() / ".photo-upload-queue.db"


@dataclass(frozen=True)
class Settings:
    """Options shared by every command."""

    db_path: Path
    persist: bool


def setup_logging(verbose: bool) -> None:
    """Configure logging with Rich handler.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


@contextmanager
def open_controller(
    settings: Settings, bus: EventBus | None = None
) -> Iterator[PhotoUploadController]:
    """Build a controller backed by the configured store, closing the store afterwards."""
    bus = bus if bus is not None else EventBus()
    logger = logging.getLogger(__name__)
    bus.subscribe(object, lambda event: logger.debug(f"Event: {event!r}"))

    if not settings.persist:
        yield PhotoUploadController(bus, store=None)
        return

    with SQLitePhotoUploadStore(settings.db_path) as store:
        yield PhotoUploadController(bus, store=store)


def _expand(paths: list[Path]) -> list[Path]:
    """Expand existing directories into their photos; keep other paths as given."""
    expanded: list[Path] = []
    for path in paths:
        if path.is_dir():
            expanded.extend(scan_photos([path]))
        else:
            expanded.append(path)
    return expanded


@app.callback()
def main(
    ctx: typer.Context,
    db_path: Path = typer.Option(
        DEFAULT_DB_PATH,
        "--db",
        envvar="PHOTO_UPLOAD_QUEUE_DB",
        help="SQLite database holding the queue (or set PHOTO_UPLOAD_QUEUE_DB env var)",
    ),
    no_persist: bool = typer.Option(
        False,
        "--no-persist",
        help="Keep the queue in memory only",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Select photos, queue them for upload and track their progress."""
    setup_logging(verbose)
    ctx.obj = Settings(db_path=db_path, persist=not no_persist)


@app.command()
def select(
    ctx: typer.Context,
    paths: list[Path] = typer.Argument(
        ...,
        help="Photo files or directories of photos",
        exists=True,
        readable=True,
    ),
) -> None:
    """Add photos to the selection."""
    photos = scan_photos(paths)
    added = []
    bus = EventBus()
    bus.subscribe(SelectionAdded, lambda event: added.extend(event.items))

    with open_controller(ctx.obj, bus) as controller:
        controller.add_selections(
            [controller.cache.get_or_create_for_path(photo) for photo in photos]
        )
        total = controller.get_selected_count()

    console.print(f"Selected [green]{len(added)}[/green] new photo(s), {total} selected in total")


@app.command()
def deselect(
    ctx: typer.Context,
    paths: list[Path] = typer.Argument(..., help="Photo files or directories"),
) -> None:
    """Remove photos from the selection."""
    with open_controller(ctx.obj) as controller:
        removed = sum(
            1
            for photo in _expand(paths)
            if controller.remove_selection(controller.get_upload(photo_key(photo)))
        )

    console.print(f"Removed {removed} photo(s) from the selection")


@app.command()
def clear(ctx: typer.Context) -> None:
    """Remove every photo from the selection."""
    with open_controller(ctx.obj) as controller:
        count = controller.get_selected_count()
        controller.clear_selected()

    console.print(f"Cleared {count} selected photo(s)")


@app.command()
def promote(
    ctx: typer.Context,
    account_id: str = typer.Option(..., "--account-id", help="Account to upload as"),
    account_name: str = typer.Option("", "--account-name", help="Account display name"),
    target: str = typer.Option(..., "--target", "-t", help="Destination album or page id"),
    quality: UploadQuality = typer.Option(
        UploadQuality.HIGH,
        "--quality",
        "-q",
        case_sensitive=False,
        help="Upload quality",
    ),
    place_id: str = typer.Option(None, "--place-id", help="Tag photos with this place"),
    place_name: str = typer.Option("", "--place-name", help="Place display name"),
) -> None:
    """Queue every selected photo for upload."""
    place = Place(id=place_id, name=place_name) if place_id else None

    with open_controller(ctx.obj) as controller:
        count = controller.get_selected_count()
        if count == 0:
            console.print("[yellow]No photos selected[/yellow]")
            raise typer.Exit(0)

        controller.add_uploads_from_selected(
            Account(id=account_id, name=account_name), target, quality, place
        )
        waiting = controller.get_active_uploads_count()

    console.print(f"Queued [green]{count}[/green] photo(s) for upload, {waiting} outstanding")


@app.command("retry-failed")
def retry_failed(ctx: typer.Context) -> None:
    """Move failed uploads back to the selection."""
    with open_controller(ctx.obj) as controller:
        before = controller.get_selected_count()
        moved = controller.move_failed_to_selected()
        count = controller.get_selected_count() - before

    if moved:
        console.print(f"Moved {count} failed upload(s) back to the selection")
    else:
        console.print("No failed uploads")


@app.command("remove-upload")
def remove_upload(
    ctx: typer.Context,
    paths: list[Path] = typer.Argument(..., help="Photo files or directories"),
) -> None:
    """Remove photos from the upload queue."""
    with open_controller(ctx.obj) as controller:
        before = controller.get_uploads_count()
        for photo in _expand(paths):
            upload = controller.get_upload(photo_key(photo))
            if controller.is_on_upload_list(upload):
                controller.remove_upload(upload)
        removed = before - controller.get_uploads_count()

    console.print(f"Removed {removed} photo(s) from the upload queue")


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the selection and upload queue."""
    with open_controller(ctx.obj) as controller:
        selected = controller.get_selected()
        uploading = controller.get_uploading_uploads()
        active = controller.get_active_uploads_count()

    table = Table(title="Photo upload queue")
    table.add_column("Photo")
    table.add_column("State")
    table.add_column("Target")
    table.add_column("Quality")
    table.add_column("Place")
    for upload in [*selected, *uploading]:
        table.add_row(
            upload.display_name,
            upload.state.value,
            upload.target_id or "",
            upload.quality.value if upload.quality else "",
            (upload.place.name or upload.place.id) if upload.place else "",
        )
    console.print(table)

    console.print(f"  Selected: {len(selected)}")
    console.print(f"  Uploads: {len(uploading)} ({active} outstanding)")


@app.command()
def process(
    ctx: typer.Context,
    fail: str = typer.Option(
        None,
        "--fail",
        help="Glob of photo names the dry-run transport should fail",
    ),
) -> None:
    """Drain the upload queue through the dry-run transport."""
    with open_controller(ctx.obj) as controller:
        worker = UploadWorker(controller, DryRunTransport(fail_pattern=fail))
        results = asyncio.run(worker.process_queue())

    successful = sum(1 for r in results if r.success)
    failed = len(results) - successful

    console.print("\n[bold]Upload Summary:[/bold]")
    console.print(f"  Total photos: {len(results)}")
    console.print(f"  [green]Successful: {successful}[/green]")
    console.print(f"  [red]Failed: {failed}[/red]")

    if failed > 0:
        console.print("\n[bold red]Failed uploads:[/bold red]")
        for result in results:
            if not result.success:
                console.print(f"  - {result.key}: {result.error_message}")
        raise typer.Exit(1)


@app.command()
def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete the selection, the upload queue and the whole database."""
    if not yes:
        typer.confirm("Delete all queued photos and the database?", abort=True)

    with open_controller(ctx.obj) as controller:
        controller.reset()

    console.print("Upload queue reset")


if __name__ == "__main__":
    app()
