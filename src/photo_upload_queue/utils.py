"""Utility functions for collecting photos from the filesystem."""

import logging
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

# Supported image extensions
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".heic"}


def is_image_file(path: Path) -> bool:
    """Check if a file is a supported image format.

    Args:
        path: Path to the file to check

    Returns:
        True if the file is a supported image format, False otherwise
    """
    return path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS


def scan_photos(paths: Iterable[Path]) -> list[Path]:
    """Expand files and directories into a list of photo files.

    Files are kept if they are images. Directories contribute their image
    files (not recursively), in name order. Duplicates are dropped and the
    first occurrence wins.

    Args:
        paths: Files and directories to scan

    Returns:
        Photo paths in the order they were found

    Raises:
        FileNotFoundError: If a path doesn't exist
    """
    photos: list[Path] = []
    seen: set[Path] = set()

    for path in paths:
        if not path.exists():
            raise FileNotFoundError(f"Path does not exist: {path}")

        if path.is_dir():
            candidates = [p for p in sorted(path.iterdir()) if is_image_file(p)]
            if not candidates:
                logger.warning(f"No photos found in directory: {path}")
        elif is_image_file(path):
            candidates = [path]
        else:
            logger.debug(f"Skipping non-image file: {path}")
            continue

        for photo in candidates:
            resolved = photo.resolve()
            if resolved not in seen:
                seen.add(resolved)
                photos.append(photo)

    logger.info(f"Found {len(photos)} photo(s)")
    return photos
