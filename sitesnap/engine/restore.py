# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Restore - Bring a site back to a cataloged snapshot.

This module handles the restore sequence:
1. Check the archive and its manifest, then ask for confirmation
2. Reinstall core when the live version differs or fails verification
3. Unpack the archive and classify what it carries
4. Import the database dump
5. Reinstall plugins and themes (config-only snapshots)
6. Replace the content tree or the media directory

Nothing is rolled back. A failing step stops the sequence and the error
reports which steps already ran.
"""

import json
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Awaitable, Callable, Dict, List

import structlog
from ulid import ULID

from sitesnap.archive.codec import replace_directory_contents, unpack_archive
from sitesnap.archive.manifest import SnapshotManifest, load_manifest_from_archive
from sitesnap.catalog.store import SnapshotRecord
from sitesnap.config import (
    CONTENT_ARCHIVE_NAME,
    UPLOADS_ARCHIVE_NAME,
    BackupType,
    SnapshotConfig,
)
from sitesnap.exceptions import (
    ArchiveError,
    ConfirmationDeclined,
    IntegrityError,
    NotFoundError,
    RestoreError,
    SnapshotError,
)
from sitesnap.host import HostApplication
from sitesnap.progress import TickProgress

logger = structlog.get_logger()

# Confirmation prompt: (question, summary) -> answer
Confirm = Callable[[str, dict], Awaitable[bool]]

RESTORE_QUESTION = "Would you like to proceed with the restore operation?"

RESTORE_STEPS = 5


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    operation_id: str
    snapshot_id: int
    name: str
    backup_type: int
    core_reinstalled: bool
    database_imported: bool
    content_restored: str | None  # "content", "uploads" or None
    duration_seconds: float
    completed_steps: List[str] = field(default_factory=list)
    installed_plugins: List[str] = field(default_factory=list)
    installed_themes: List[str] = field(default_factory=list)
    skipped_extensions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ArchiveContents:
    """Files of an unpacked snapshot, classified by extension."""

    database_dump: Path | None = None
    configs: Dict[str, Path] = field(default_factory=dict)
    archives: Dict[str, Path] = field(default_factory=dict)


def classify_contents(root: Path) -> ArchiveContents:
    """
    Sort unpacked files into dump, JSON configs (by base name) and nested archives.
    """
    contents = ArchiveContents()
    for path in sorted(Path(root).rglob("*")):
        if not path.is_file():
            continue
        suffix = path.suffix.lower()
        if suffix == ".sql":
            contents.database_dump = path
        elif suffix == ".json":
            contents.configs[path.stem] = path
        elif suffix == ".zip":
            contents.archives[path.name] = path
    return contents


def restore_summary(record: SnapshotRecord, extra_info: Dict[str, str]) -> dict:
    """Snapshot facts shown to the operator before confirming."""
    return {
        "id": record["id"],
        "name": record["name"],
        "backup_type": BackupType(record["backup_type"]).label,
        "backup_zip_size": record["backup_zip_size"],
        **extra_info,
    }


def _load_extensions(path: Path) -> List[dict]:
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise ArchiveError(
            f"Unreadable extension list {path.name}: {e}",
            details={"path": str(path)},
        ) from e
    if not isinstance(data, list):
        raise ArchiveError(f"Extension list {path.name} is not a list", details={"path": str(path)})
    return data


class SnapshotRestore:
    """One run of the restore sequence for a resolved snapshot."""

    def __init__(
        self,
        config: SnapshotConfig,
        host: HostApplication,
        confirm: Confirm,
        operation_id: str | None = None,
    ):
        self.config = config
        self.host = host
        self.confirm = confirm
        self.operation_id = operation_id or str(ULID())

        self.completed_steps: List[str] = []
        self.warnings: List[str] = []
        self._log = logger.bind(operation_id=self.operation_id)

    def _step_done(self, step: str, progress: TickProgress) -> None:
        self.completed_steps.append(step)
        progress.tick(step)

    def _warn(self, message: str, **context) -> None:
        self.warnings.append(message)
        self._log.warning("snapshot_restore_warning", message=message, **context)

    async def run(self, record: SnapshotRecord, extra_info: Dict[str, str]) -> RestoreResult:
        """
        Restore a snapshot.

        Raises:
            NotFoundError: If the archive file is gone
            IntegrityError: If the archive manifest fails its tag check
            ConfirmationDeclined: If the operator does not confirm
            RestoreError: If a step fails after the destructive part began
        """
        start_time = datetime.now(UTC)
        archive = self.config.archive_path(record["name"])

        if not archive.is_file():
            raise NotFoundError(
                f"Archive for snapshot {record['name']!r} is missing",
                details={"snapshot_id": record["id"], "archive_path": str(archive)},
            )

        manifest = load_manifest_from_archive(archive)
        if not manifest.is_valid():
            raise IntegrityError(
                "Snapshot archive failed its integrity check",
                details={"snapshot_id": record["id"], "archive_path": str(archive)},
            )

        summary = restore_summary(record, extra_info)
        if not await self.confirm(RESTORE_QUESTION, summary):
            self._log.info("snapshot_restore_declined", snapshot_id=record["id"])
            raise ConfirmationDeclined("Restore cancelled", details={"snapshot_id": record["id"]})

        self._log.info(
            "snapshot_restore_started",
            snapshot_id=record["id"],
            name=record["name"],
            mode=manifest.mode.label,
        )

        progress = TickProgress("restore", RESTORE_STEPS)
        scratch = Path(tempfile.mkdtemp(prefix="sitesnap-restore-"))
        step = "core"

        try:
            core_reinstalled = await self._restore_core(manifest)
            self._step_done("core", progress)

            step = "unpack"
            if not await unpack_archive(archive, scratch):
                raise ArchiveError(
                    f"Failed to open {archive.name}",
                    details={"archive_path": str(archive)},
                )
            contents = classify_contents(scratch)
            self._step_done("unpack", progress)

            step = "database"
            database_imported = False
            if contents.database_dump is not None:
                await self.host.import_database(contents.database_dump)
                database_imported = True
                self._log.info("database_imported", dump=contents.database_dump.name)
            self._step_done("database", progress)

            step = "extensions"
            installed = await self._restore_extensions(manifest, contents)
            self._step_done("extensions", progress)

            step = "content"
            content_restored = await self._restore_content(manifest, contents)
            self._step_done("content", progress)
        except (SnapshotError, OSError) as e:
            self._log.error(
                "snapshot_restore_failed",
                step=step,
                error=str(e),
                completed_steps=self.completed_steps,
                scratch_dir=str(scratch),
            )
            reason = e.message if isinstance(e, SnapshotError) else str(e)
            raise RestoreError(
                f"Restore failed during {step}: {reason}",
                details={"snapshot_id": record["id"], "step": step, "scratch_dir": str(scratch)},
                completed_steps=self.completed_steps,
            ) from e

        shutil.rmtree(scratch, ignore_errors=True)
        progress.finish()

        duration = (datetime.now(UTC) - start_time).total_seconds()
        self._log.info(
            "snapshot_restore_completed",
            snapshot_id=record["id"],
            duration_seconds=duration,
        )

        return RestoreResult(
            operation_id=self.operation_id,
            snapshot_id=record["id"],
            name=record["name"],
            backup_type=manifest.backup_type,
            core_reinstalled=core_reinstalled,
            database_imported=database_imported,
            content_restored=content_restored,
            duration_seconds=duration,
            completed_steps=list(self.completed_steps),
            installed_plugins=installed["plugins"],
            installed_themes=installed["themes"],
            skipped_extensions=installed["skipped"],
            warnings=list(self.warnings),
        )

    async def _restore_core(self, manifest: SnapshotManifest) -> bool:
        """Returns True if core was reinstalled."""
        live_version = await self.host.core_version()

        if live_version == manifest.core_version:
            if await self.host.verify_core_checksums():
                self._log.info("core_reinstall_skipped", core_version=live_version)
                return False
            self._log.warning("core_checksums_failed", core_version=live_version)
        else:
            self._log.info(
                "core_version_mismatch",
                live_version=live_version,
                snapshot_version=manifest.core_version,
            )

        await self.host.install_core(manifest.core_version)
        self._log.info("core_reinstalled", core_version=manifest.core_version)
        return True

    async def _restore_extensions(self, manifest: SnapshotManifest, contents: ArchiveContents) -> dict:
        installed = {"plugins": [], "themes": [], "skipped": []}

        if manifest.mode is BackupType.FULL:
            # The content archive already carries extension code
            self._log.info("extension_reinstall_skipped", reason="full_snapshot")
            return installed

        if "plugins" in contents.configs:
            plugins = _load_extensions(contents.configs["plugins"])
            self._log.warning("removing_installed_plugins")
            await self.host.remove_all_plugins()
            for item in plugins:
                if self._installable(item, "Plugin", installed):
                    await self.host.install_plugin(item["slug"], item["version"], bool(item.get("is_active")))
                    installed["plugins"].append(item["slug"])

        if "themes" in contents.configs:
            themes = _load_extensions(contents.configs["themes"])
            self._log.warning("removing_installed_themes")
            await self.host.remove_all_themes()
            for item in themes:
                if self._installable(item, "Theme", installed):
                    await self.host.install_theme(item["slug"], item["version"], bool(item.get("is_active")))
                    installed["themes"].append(item["slug"])

        return installed

    def _installable(self, item: dict, kind: str, installed: dict) -> bool:
        if item.get("is_public") and item.get("slug"):
            return True
        name = item.get("name") or item.get("slug") or "unknown"
        installed["skipped"].append(name)
        self._warn(
            f"{kind} {name} is not publicly available, please install it from its own source",
            version=item.get("version"),
        )
        return False

    async def _restore_content(self, manifest: SnapshotManifest, contents: ArchiveContents) -> str | None:
        if manifest.mode is BackupType.FULL:
            archive = contents.archives.get(CONTENT_ARCHIVE_NAME)
            target, label = self.config.content_root, "content"
        else:
            archive = contents.archives.get(UPLOADS_ARCHIVE_NAME)
            target, label = self.config.media_dir, "uploads"

        if archive is None:
            self._warn(f"Snapshot carries no {label} archive, {target} left untouched")
            return None

        await replace_directory_contents(target, archive)
        self._log.info("content_restored", target=str(target), kind=label)
        return label
