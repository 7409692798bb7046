# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Codec and Manifest Tests.
"""

import hashlib
import json
import threading
import zipfile
from pathlib import Path

import pytest

from sitesnap.archive import (
    MANIFEST_MEMBER,
    SnapshotManifest,
    compute_tag,
    format_size,
    list_entries,
    load_manifest_from_archive,
    pack_directory,
    read_member,
    replace_directory_contents,
    size_in_bytes,
    unpack_archive,
)
from sitesnap.config import BackupType
from sitesnap.exceptions import ArchiveError, IntegrityError


def _relative_tree(root: Path) -> set:
    return {
        str(path.relative_to(root)) + ("/" if path.is_dir() else "")
        for path in root.rglob("*")
    }


# ============================================================================
# Codec
# ============================================================================

@pytest.mark.asyncio
async def test_pack_then_unpack_reproduces_tree(site_tree: Path, temp_dir: Path):
    archive = temp_dir / "out" / "content.zip"
    restored = temp_dir / "restored"

    assert await pack_directory(site_tree, archive) is True
    assert await unpack_archive(archive, restored) is True

    assert _relative_tree(restored) == _relative_tree(site_tree)
    assert (restored / "uploads" / "empty").is_dir()
    assert (restored / "uploads" / "2026" / "01" / "photo.jpg").read_bytes() == b"\xff\xd8jpeg-bytes"


@pytest.mark.asyncio
async def test_pack_runs_off_the_event_loop(site_tree: Path, temp_dir: Path, monkeypatch):
    from sitesnap.archive import codec

    threads = []
    real_list_entries = codec.list_entries

    def recording(source):
        threads.append(threading.get_ident())
        return real_list_entries(source)

    monkeypatch.setattr(codec, "list_entries", recording)

    assert await pack_directory(site_tree, temp_dir / "threaded.zip") is True
    assert threads and threads[0] != threading.get_ident()


def test_directories_precede_their_contents(site_tree: Path):
    entries = list_entries(site_tree)

    assert "uploads/empty/" in entries
    for index, entry in enumerate(entries):
        if entry.endswith("/"):
            children = [e for e in entries if e.startswith(entry) and e != entry]
            assert all(entries.index(child) > index for child in children)


@pytest.mark.asyncio
async def test_pack_missing_source_fails(temp_dir: Path):
    archive = temp_dir / "never.zip"

    assert await pack_directory(temp_dir / "missing", archive) is False
    assert not archive.exists()


@pytest.mark.asyncio
async def test_unpack_unreadable_archive_fails(temp_dir: Path):
    bogus = temp_dir / "bogus.zip"
    bogus.write_bytes(b"not a zip file")

    assert await unpack_archive(bogus, temp_dir / "dest") is False


@pytest.mark.asyncio
async def test_unpack_refuses_escaping_entries(temp_dir: Path):
    evil = temp_dir / "evil.zip"
    with zipfile.ZipFile(evil, "w") as zf:
        zf.writestr("../outside.txt", "nope")

    with pytest.raises(ArchiveError):
        await unpack_archive(evil, temp_dir / "dest")
    assert not (temp_dir / "outside.txt").exists()


@pytest.mark.asyncio
async def test_replace_directory_contents(temp_dir: Path):
    source = temp_dir / "source"
    (source / "a").mkdir(parents=True)
    (source / "a" / "kept.txt").write_text("kept")
    archive = temp_dir / "source.zip"
    assert await pack_directory(source, archive)

    target = temp_dir / "target"
    (target / "stale" / "deep").mkdir(parents=True)
    (target / "stale" / "deep" / "old.txt").write_text("old")
    (target / "top.txt").write_text("old")

    await replace_directory_contents(target, archive)

    assert _relative_tree(target) == {"a/", "a/kept.txt"}


def test_read_member(site_tree: Path, temp_dir: Path):
    archive = temp_dir / "one.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("configs/plugins.json", "[]")

    assert read_member(archive, "configs/plugins.json") == b"[]"
    assert read_member(archive, "configs/themes.json") is None
    assert read_member(temp_dir / "missing.zip", "configs/plugins.json") is None


def test_size_in_bytes(temp_dir: Path):
    (temp_dir / "d").mkdir()
    (temp_dir / "d" / "a").write_bytes(b"x" * 10)
    (temp_dir / "d" / "b").write_bytes(b"x" * 5)

    assert size_in_bytes(temp_dir / "d") == 15
    assert size_in_bytes(temp_dir / "d" / "a") == 10
    assert size_in_bytes(temp_dir / "missing") == 0


@pytest.mark.parametrize(
    "num_bytes,expected",
    [(0, "0 B"), (999, "999 B"), (1500, "1.50 kB"), (2_500_000, "2.50 MB"), (3 * 10**12, "3.00 TB")],
)
def test_format_size(num_bytes, expected):
    assert format_size(num_bytes) == expected


# ============================================================================
# Manifest
# ============================================================================

def test_tag_is_pure_function_of_time_and_type():
    assert compute_tag(1_700_000_000, 1) == compute_tag(1_700_000_000, BackupType.FULL)
    assert compute_tag(1_700_000_000, 1) != compute_tag(1_700_000_000, 0)
    assert compute_tag(1_700_000_000, 1) != compute_tag(1_700_000_001, 1)
    # Same digest any other process would compute
    assert compute_tag(1_700_000_000, 1) == hashlib.sha256(b"1700000000:1").hexdigest()


def test_manifest_build_is_valid():
    manifest = SnapshotManifest.build("6.4.2", "standard", "2.50 MB", "11 B", 1_700_000_000, BackupType.FULL)

    assert manifest.is_valid()
    assert manifest.mode is BackupType.FULL
    assert manifest.extra_info() == {
        "core_version": "6.4.2",
        "core_type": "standard",
        "db_size": "2.50 MB",
        "uploads_size": "11 B",
    }


def test_manifest_with_swapped_backup_type_is_invalid():
    manifest = SnapshotManifest.build("6.4.2", "standard", "1 B", "1 B", 1_700_000_000, BackupType.CONFIG_ONLY)
    manifest.backup_type = int(BackupType.FULL)

    assert not manifest.is_valid()


def test_manifest_round_trips_through_archive(temp_dir: Path, archive_writer):
    manifest = SnapshotManifest.build("6.4.2", "standard", "1 B", "1 B", 1_700_000_000, BackupType.FULL)
    archive = archive_writer(temp_dir / "snap.zip", manifest.to_dict())

    loaded = load_manifest_from_archive(archive)
    assert loaded == manifest
    assert loaded.is_valid()


def test_manifest_missing_from_archive(temp_dir: Path):
    archive = temp_dir / "empty.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("readme.txt", "hi")

    with pytest.raises(IntegrityError):
        load_manifest_from_archive(archive)


@pytest.mark.parametrize("payload", ["not json", json.dumps([1, 2]), json.dumps({"core_version": "6.4"})])
def test_malformed_manifest_is_integrity_error(temp_dir: Path, payload):
    archive = temp_dir / "bad.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr(MANIFEST_MEMBER, payload)

    with pytest.raises(IntegrityError):
        load_manifest_from_archive(archive)


def test_unknown_backup_type_is_integrity_error():
    data = SnapshotManifest.build("6.4.2", "standard", "1 B", "1 B", 1_700_000_000, BackupType.FULL).to_dict()
    data["backup_type"] = 7
    data["tag"] = compute_tag(1_700_000_000, 7)

    with pytest.raises(IntegrityError):
        SnapshotManifest.from_dict(data)
