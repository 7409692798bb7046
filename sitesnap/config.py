# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so a command sees
the same settings from its first step to its last.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Dict, List

# Fixed names inside the snapshot root and inside every archive
CATALOG_FILENAME = "snapshots.db"
ARCHIVE_SUFFIX = ".zip"
CONFIGS_DIRNAME = "configs"
MANIFEST_FILENAME = "snapshot-details.json"
PLUGINS_FILENAME = "plugins.json"
THEMES_FILENAME = "themes.json"
CONTENT_ARCHIVE_NAME = "content.zip"
UPLOADS_ARCHIVE_NAME = "uploads.zip"

DEFAULT_REGISTRY_URL = "https://api.wordpress.org"


class BackupType(IntEnum):
    """Capture mode, stored as an integer in the catalog and the manifest."""

    CONFIG_ONLY = 0  # extension manifests + media only
    FULL = 1  # entire content tree

    @property
    def label(self) -> str:
        return "full" if self is BackupType.FULL else "config-only"


class SnapshotState(str, Enum):
    """States of the snapshot capture state machine."""

    IDLE = "idle"
    INITIATING = "initiating"
    CAPTURING_MANIFEST = "capturing_manifest"
    CAPTURING_DB = "capturing_db"
    CAPTURING_CONTENT = "capturing_content"
    PACKING = "packing"
    CATALOGING = "cataloging"
    DONE = "done"
    FAILED = "failed"


def default_snapshot_root() -> Path:
    return Path.home() / ".wp-cli" / "snapshots"


@dataclass(frozen=True)
class SnapshotConfig:
    """
    Immutable configuration for snapshot operations.

    The layout inside snapshot_root is fixed: one <name>.zip per snapshot
    and a single catalog file. Only the location of the root is settable.
    """

    # Root directory holding archives and the catalog
    snapshot_root: Path = field(default_factory=default_snapshot_root)

    # Content tree of the site (wp-content)
    content_root: Path = field(default_factory=lambda: Path("./wp-content"))

    # Media directory; defaults to <content_root>/uploads
    uploads_dir: Path | None = None

    # Installation path passed to the host CLI (--path)
    site_path: Path | None = None

    # External binaries
    wp_binary: str = "wp"
    ssh_binary: str = "ssh"
    copy_binary: str = "scp"

    # Command invoked on a peer to receive a pushed archive
    remote_command: str = "sitesnap"

    # Snapshot root on the peer side (copy destination)
    remote_snapshot_root: str = "~/.wp-cli/snapshots"

    # Peer aliases: {"staging": "deploy@staging.example.com:2222"}
    peers: Dict[str, str] = field(default_factory=dict)

    # Public extension registry
    registry_base_url: str = DEFAULT_REGISTRY_URL
    registry_timeout: float = 10.0

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not str(self.snapshot_root):
            errors.append("snapshot_root must not be empty")

        for binary_field in ("wp_binary", "ssh_binary", "copy_binary", "remote_command"):
            if not getattr(self, binary_field):
                errors.append(f"{binary_field} must not be empty")

        for alias, connection in self.peers.items():
            if not alias or not isinstance(connection, str):
                errors.append(f"Invalid peer entry: {alias!r}")

        if self.registry_timeout <= 0:
            errors.append(f"registry_timeout must be > 0, got {self.registry_timeout}")

        if errors:
            from sitesnap.exceptions import ValidationError

            raise ValidationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def catalog_path(self) -> Path:
        return self.snapshot_root / CATALOG_FILENAME

    @property
    def media_dir(self) -> Path:
        return self.uploads_dir if self.uploads_dir else self.content_root / "uploads"

    def archive_path(self, name: str) -> Path:
        return self.snapshot_root / f"{name}{ARCHIVE_SUFFIX}"

    def with_updates(self, **kwargs) -> "SnapshotConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return SnapshotConfig(**current)
