# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Manifest - The in-archive descriptor of a snapshot.

Each archive carries configs/snapshot-details.json. It is the only thing a
restoring or pulling process trusts about an archive's provenance. The
integrity tag is a fingerprint of (backup_time, backup_type): it flags
archives that were not written by this tool, it is not tamper-proof.
"""

import hashlib
import json
from dataclasses import asdict, dataclass
from pathlib import Path

from sitesnap.archive.codec import read_member
from sitesnap.config import CONFIGS_DIRNAME, MANIFEST_FILENAME, BackupType
from sitesnap.exceptions import IntegrityError

MANIFEST_MEMBER = f"{CONFIGS_DIRNAME}/{MANIFEST_FILENAME}"


def compute_tag(backup_time: int, backup_type: int) -> str:
    """
    Compute the integrity tag for a manifest.

    A pure function of its two arguments, stable across processes.
    """
    payload = f"{int(backup_time)}:{int(backup_type)}".encode()
    return hashlib.sha256(payload).hexdigest()


@dataclass
class SnapshotManifest:
    """Descriptor written into every archive at creation time."""

    core_version: str
    core_type: str  # standard or multisite
    db_size: str
    uploads_size: str
    backup_time: int
    backup_type: int
    tag: str = ""

    @classmethod
    def build(
        cls,
        core_version: str,
        core_type: str,
        db_size: str,
        uploads_size: str,
        backup_time: int,
        backup_type: BackupType,
    ) -> "SnapshotManifest":
        """Create a manifest with its tag already computed."""
        return cls(
            core_version=core_version,
            core_type=core_type,
            db_size=db_size,
            uploads_size=uploads_size,
            backup_time=int(backup_time),
            backup_type=int(backup_type),
            tag=compute_tag(backup_time, backup_type),
        )

    @property
    def mode(self) -> BackupType:
        return BackupType(self.backup_type)

    def is_valid(self) -> bool:
        return bool(self.tag) and self.tag == compute_tag(self.backup_time, self.backup_type)

    def extra_info(self) -> dict:
        """Facts mirrored into the catalog's extra-info table."""
        return {
            "core_version": self.core_version,
            "core_type": self.core_type,
            "db_size": self.db_size,
            "uploads_size": self.uploads_size,
        }

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SnapshotManifest":
        try:
            return cls(
                core_version=str(data["core_version"]),
                core_type=str(data["core_type"]),
                db_size=str(data["db_size"]),
                uploads_size=str(data["uploads_size"]),
                backup_time=int(data["backup_time"]),
                # an unknown mode fails here, before anything is cataloged
                backup_type=int(BackupType(int(data["backup_type"]))),
                tag=str(data.get("tag", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise IntegrityError(
                f"Malformed snapshot manifest: {e}",
                details={"keys": sorted(data) if isinstance(data, dict) else []},
            ) from e

    def write(self, configs_dir: Path) -> Path:
        path = Path(configs_dir) / MANIFEST_FILENAME
        path.write_text(json.dumps(self.to_dict(), indent=2))
        return path


def load_manifest_from_archive(archive: Path) -> SnapshotManifest:
    """
    Read only the manifest entry of an archive.

    Raises:
        IntegrityError: If the manifest is missing or cannot be decoded
    """
    raw = read_member(archive, MANIFEST_MEMBER)
    if raw is None:
        raise IntegrityError(
            "Archive has no snapshot manifest",
            details={"archive_path": str(archive), "member": MANIFEST_MEMBER},
        )

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise IntegrityError(
            f"Snapshot manifest is not valid JSON: {e}",
            details={"archive_path": str(archive)},
        ) from e

    if not isinstance(data, dict):
        raise IntegrityError(
            "Snapshot manifest is not an object",
            details={"archive_path": str(archive)},
        )

    return SnapshotManifest.from_dict(data)
