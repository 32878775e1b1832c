"""Reading marker pack zip archives into memory."""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path, PurePosixPath
from typing import Dict, Optional, Union

from ..errors import ArchiveError

ArchiveSource = Union[str, Path, bytes, bytearray]


def _entry_path(info: zipfile.ZipInfo) -> str:
    """Return the normalized (lowercase, relative) path of a zip entry."""
    raw = info.filename.replace("\\", "/")
    path = PurePosixPath(raw)
    if path.is_absolute() or ".." in path.parts:
        raise ArchiveError(f"Unsafe path in archive: {info.filename}")
    normalized = "/".join(part for part in path.parts if part not in ("", "."))
    if not normalized:
        raise ArchiveError(f"Invalid entry name in archive: {info.filename!r}")
    return normalized.lower()


def read_archive_entries(
    source: ArchiveSource,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, bytes]:
    """Read every file entry of a zip archive.

    Parameters
    ----------
    source : str, Path or bytes
        Path to the archive, or the archive bytes
    logger : logging.Logger, optional
        Logger instance

    Returns
    -------
    Dict[str, bytes]
        Lowercased relative path -> file contents, in archive order

    Raises
    ------
    ArchiveError
        If the archive cannot be opened or read, contains an unsafe path,
        or contains the same path twice
    """
    logger = logger or logging.getLogger(__name__)

    if isinstance(source, (bytes, bytearray)):
        handle = io.BytesIO(bytes(source))
        label = "<bytes>"
    else:
        handle = Path(source)
        label = str(source)
        if not handle.exists():
            raise ArchiveError(f"Archive not found: {label}")

    entries: Dict[str, bytes] = {}
    try:
        with zipfile.ZipFile(handle) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                path = _entry_path(info)
                if path in entries:
                    raise ArchiveError(f"Duplicate entry in archive: {path}")
                entries[path] = archive.read(info)
    except ArchiveError:
        raise
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError) as exc:
        raise ArchiveError(f"Cannot read archive {label}: {exc}") from exc

    logger.debug("Read %d entries from %s", len(entries), label)
    return entries
