# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Archive Codec - Pack and unpack snapshot containers.

Every snapshot is a single zip file so it can be moved around as one unit.
Directories are written before their contents and empty directories are
kept as explicit entries, so unpacking reproduces the tree exactly.
"""

import asyncio
import zipfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import List

import structlog

from sitesnap.exceptions import ArchiveError

logger = structlog.get_logger()

SIZE_UNITS = ("B", "kB", "MB", "GB", "TB")

# Thread pool for blocking zip and filesystem work
_executor = ThreadPoolExecutor(max_workers=4)


def archive_tooling_available() -> bool:
    """Check that deflate compression is usable in this interpreter."""
    try:
        import zlib  # noqa: F401
    except ImportError:
        return False
    return True


def list_entries(source: Path) -> List[str]:
    """
    Recursively list a directory as archive entry names.

    Directories end with "/" and precede their contents. Siblings are
    sorted by name so the order is stable across runs.

    Args:
        source: Directory to enumerate

    Returns:
        Relative POSIX paths
    """
    entries: List[str] = []

    def _walk(directory: Path, prefix: str) -> None:
        for child in sorted(directory.iterdir(), key=lambda p: p.name):
            relative = f"{prefix}{child.name}"
            if child.is_symlink() and child.is_dir():
                logger.warning("archive_symlink_dir_skipped", path=str(child))
                continue
            if child.is_dir():
                entries.append(relative + "/")
                _walk(child, relative + "/")
            else:
                entries.append(relative)

    _walk(Path(source), "")
    return entries


async def pack_directory(source: Path, destination: Path) -> bool:
    """
    Pack a directory tree into a zip archive.

    Runs in the thread pool so large trees do not block the event loop.

    Args:
        source: Directory to pack
        destination: Archive file to create

    Returns:
        True if the archive was written and closed cleanly, False if the
        source does not exist or writing failed
    """
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(
        _executor, _pack_directory_sync, Path(source), Path(destination)
    )


def _pack_directory_sync(source: Path, destination: Path) -> bool:
    """Synchronous directory packing."""
    if not source.is_dir():
        logger.warning("pack_source_missing", source=str(source))
        return False

    destination.parent.mkdir(parents=True, exist_ok=True)
    skip = destination.resolve()
    entry_count = 0

    try:
        with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for entry in list_entries(source):
                path = source / entry.rstrip("/")
                if path.resolve() == skip:
                    continue
                zf.write(path, entry)
                entry_count += 1
    except (OSError, zipfile.BadZipFile, ValueError) as e:
        logger.error(
            "pack_failed",
            source=str(source),
            destination=str(destination),
            error=str(e),
        )
        return False

    logger.debug(
        "archive_packed",
        source=str(source),
        destination=str(destination),
        entries=entry_count,
    )
    return True


def _check_member_names(zf: zipfile.ZipFile, archive: Path) -> None:
    for name in zf.namelist():
        parts = PurePosixPath(name).parts
        if name.startswith("/") or ".." in parts or (parts and ":" in parts[0]):
            raise ArchiveError(
                f"Unsafe path in archive: {name}",
                details={"archive_path": str(archive)},
            )


async def unpack_archive(archive: Path, destination: Path) -> bool:
    """
    Extract every entry of an archive under a directory.

    Args:
        archive: Zip file to extract
        destination: Directory to extract into (created if missing)

    Returns:
        True on success, False if the archive cannot be opened

    Raises:
        ArchiveError: If an entry would land outside the destination
    """
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(
        _executor, _unpack_archive_sync, Path(archive), Path(destination)
    )


def _unpack_archive_sync(archive: Path, destination: Path) -> bool:
    """Synchronous extraction."""
    try:
        zf = zipfile.ZipFile(archive)
    except (OSError, zipfile.BadZipFile) as e:
        logger.warning("archive_open_failed", archive_path=str(archive), error=str(e))
        return False

    with zf:
        _check_member_names(zf, archive)
        destination.mkdir(parents=True, exist_ok=True)
        zf.extractall(destination)

    logger.debug("archive_unpacked", archive_path=str(archive), destination=str(destination))
    return True


def read_member(archive: Path, member: str) -> bytes | None:
    """
    Read a single entry without extracting the rest of the archive.

    Returns:
        The entry's bytes, or None if the archive or entry is unavailable
    """
    try:
        with zipfile.ZipFile(archive) as zf:
            return zf.read(member)
    except KeyError:
        return None
    except (OSError, zipfile.BadZipFile) as e:
        logger.warning("archive_read_failed", archive_path=str(archive), error=str(e))
        return None


def archive_members(archive: Path) -> List[str]:
    """List entry names of an archive (empty if it cannot be opened)."""
    try:
        with zipfile.ZipFile(archive) as zf:
            return zf.namelist()
    except (OSError, zipfile.BadZipFile):
        return []


async def replace_directory_contents(target: Path, archive: Path) -> None:
    """
    Replace everything inside a directory with an archive's contents.

    Existing children are removed deepest first (files before their parent
    directories), then the archive is extracted in place.

    Raises:
        ArchiveError: If the archive cannot be opened
    """
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(
        _executor, _replace_directory_contents_sync, Path(target), Path(archive)
    )


def _replace_directory_contents_sync(target: Path, archive: Path) -> None:
    """Synchronous clear-then-extract."""
    target.mkdir(parents=True, exist_ok=True)

    removed = 0
    for path in sorted(target.rglob("*"), key=lambda p: len(p.parts), reverse=True):
        if path.is_dir() and not path.is_symlink():
            path.rmdir()
        else:
            path.unlink()
        removed += 1

    logger.info("directory_cleared", target=str(target), removed=removed)

    if not _unpack_archive_sync(archive, target):
        raise ArchiveError(
            f"Failed to extract {archive.name} into {target}",
            details={"archive_path": str(archive), "target": str(target)},
        )


def size_in_bytes(path: Path) -> int:
    """
    Get the on-disk size of a file, or the total of a directory's files.

    Used for reporting only.
    """
    path = Path(path)
    if not path.exists():
        return 0
    if path.is_file():
        return path.stat().st_size
    return sum(f.stat().st_size for f in path.rglob("*") if f.is_file() and not f.is_symlink())


def format_size(num_bytes: int | float) -> str:
    """
    Convert bytes to a human-readable string using decimal units.

    Examples: 0 -> "0 B", 1500 -> "1.50 kB", 2500000 -> "2.50 MB"
    """
    value = float(num_bytes)
    for unit in SIZE_UNITS:
        if value < 1000 or unit == SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.2f} {unit}"
        value /= 1000
    return f"{value:.2f} {SIZE_UNITS[-1]}"
