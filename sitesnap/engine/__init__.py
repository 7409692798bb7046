# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Engine - Snapshot lifecycle: capture, restore and transfers.
"""

from sitesnap.engine.capture import CaptureResult, SnapshotCapture
from sitesnap.engine.core import (
    LIST_FIELDS,
    ImportResult,
    SnapshotEngine,
    initialize_snapshot_root,
    snapshot_row,
)
from sitesnap.engine.restore import Confirm, RestoreResult, SnapshotRestore

__all__ = [
    "SnapshotEngine",
    "initialize_snapshot_root",
    "snapshot_row",
    "LIST_FIELDS",
    # Capture
    "SnapshotCapture",
    "CaptureResult",
    # Restore
    "SnapshotRestore",
    "RestoreResult",
    "Confirm",
    # Pull
    "ImportResult",
]
