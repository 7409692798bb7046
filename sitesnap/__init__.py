# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap - Site snapshot and restore orchestrator.

Captures a site's database, media, plugins, themes and core version into a
single self-describing archive, keeps a local catalog of those archives,
restores from them and moves them to storage services or peer environments.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from sitesnap.builder import build_config, create_empty_config
from sitesnap.config import BackupType, SnapshotConfig

# Environment-based configuration
from sitesnap.env import create_config_from_env

# Core
from sitesnap.catalog import CatalogStore
from sitesnap.engine import SnapshotEngine, initialize_snapshot_root

__all__ = [
    # Version
    "__version__",
    # Configuration
    "SnapshotConfig",
    "BackupType",
    "create_empty_config",
    "build_config",
    "create_config_from_env",
    # Core
    "CatalogStore",
    "SnapshotEngine",
    "initialize_snapshot_root",
]
