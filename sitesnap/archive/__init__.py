# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive - Snapshot container codec and manifest.
"""

from sitesnap.archive.codec import (
    archive_tooling_available,
    archive_members,
    format_size,
    list_entries,
    pack_directory,
    read_member,
    replace_directory_contents,
    size_in_bytes,
    unpack_archive,
)

from sitesnap.archive.manifest import (
    MANIFEST_MEMBER,
    SnapshotManifest,
    compute_tag,
    load_manifest_from_archive,
)

__all__ = [
    # Codec
    "archive_tooling_available",
    "pack_directory",
    "unpack_archive",
    "read_member",
    "archive_members",
    "list_entries",
    "replace_directory_contents",
    "size_in_bytes",
    "format_size",
    # Manifest
    "MANIFEST_MEMBER",
    "SnapshotManifest",
    "compute_tag",
    "load_manifest_from_archive",
]
