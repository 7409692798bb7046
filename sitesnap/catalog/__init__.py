# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Catalog - Local metadata store for snapshots and storage credentials.
"""

from sitesnap.catalog.store import (
    CREDENTIALS_TABLE,
    EXTRA_INFO_TABLE,
    SNAPSHOTS_TABLE,
    CatalogStore,
    SnapshotRecord,
)

__all__ = [
    "CatalogStore",
    "SnapshotRecord",
    "SNAPSHOTS_TABLE",
    "EXTRA_INFO_TABLE",
    "CREDENTIALS_TABLE",
]
