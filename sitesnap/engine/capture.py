# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Capture - The snapshot creation state machine.

    Idle -> Initiating -> CapturingManifest -> CapturingDB
         -> CapturingContent -> Packing -> Cataloging -> Done

Any state can move to Failed. A failed capture leaves its working tree and
any partial archive where they are so the operator can see what happened.
"""

import json
import os
import secrets
import shutil
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, Dict, List

import structlog
from ulid import ULID

from sitesnap.archive.codec import (
    archive_tooling_available,
    format_size,
    pack_directory,
    size_in_bytes,
)
from sitesnap.archive.manifest import SnapshotManifest
from sitesnap.catalog.store import CatalogStore
from sitesnap.config import (
    CONFIGS_DIRNAME,
    CONTENT_ARCHIVE_NAME,
    PLUGINS_FILENAME,
    THEMES_FILENAME,
    UPLOADS_ARCHIVE_NAME,
    BackupType,
    SnapshotConfig,
    SnapshotState,
)
from sitesnap.errors import explain_missing_archive_tooling, explain_multisite_config_only
from sitesnap.exceptions import ArchiveError, SetupError, ValidationError
from sitesnap.host import ExtensionInfo, HostApplication
from sitesnap.progress import TickProgress
from sitesnap.registry import RegistryLookup

logger = structlog.get_logger()

# Legal moves of the state machine; FAILED is reachable from anywhere
TRANSITIONS: Dict[SnapshotState, SnapshotState] = {
    SnapshotState.IDLE: SnapshotState.INITIATING,
    SnapshotState.INITIATING: SnapshotState.CAPTURING_MANIFEST,
    SnapshotState.CAPTURING_MANIFEST: SnapshotState.CAPTURING_DB,
    SnapshotState.CAPTURING_DB: SnapshotState.CAPTURING_CONTENT,
    SnapshotState.CAPTURING_CONTENT: SnapshotState.PACKING,
    SnapshotState.PACKING: SnapshotState.CATALOGING,
    SnapshotState.CATALOGING: SnapshotState.DONE,
}

CAPTURE_STEPS = 6


@dataclass
class CaptureResult:
    """Result of a successful snapshot creation."""

    operation_id: str
    snapshot_id: int
    name: str
    archive_path: Path
    backup_type: int
    archive_size: str
    manifest: SnapshotManifest
    duration_seconds: float
    warnings: List[str] = field(default_factory=list)


def validate_snapshot_name(name: str) -> str:
    """
    Check a snapshot name can be used as an archive file name.

    Raises:
        ValidationError: If the name is empty or contains path components
    """
    if not name or name.strip() != name:
        raise ValidationError("Snapshot name must be non-empty without surrounding spaces")
    if "/" in name or "\\" in name or name.startswith(".") or "\x00" in name:
        raise ValidationError(
            f"Snapshot name must be a plain file name: {name!r}",
            details={"name": name},
        )
    return name


def working_directory_name(name: str | None, today: datetime) -> str:
    """snapshot-<date>-[<name>-]<7 hex chars>"""
    token = secrets.token_hex(4)[:7]
    suffix = f"{name}-{token}" if name else token
    return f"snapshot-{today:%Y-%m-%d}-{suffix}"


def extension_record(info: ExtensionInfo, slug: str | None, is_active: bool) -> dict:
    return {
        "name": info.name,
        "version": info.version,
        "slug": slug,
        "is_active": is_active,
        "is_public": slug is not None,
    }


class SnapshotCapture:
    """
    One run of the capture state machine.

    A capture object is single use: create a new one per snapshot.
    """

    def __init__(
        self,
        config: SnapshotConfig,
        catalog: CatalogStore,
        host: HostApplication,
        plugin_registry: RegistryLookup,
        theme_registry: RegistryLookup,
        operation_id: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.catalog = catalog
        self.host = host
        self.plugin_registry = plugin_registry
        self.theme_registry = theme_registry
        self.operation_id = operation_id or str(ULID())
        self._clock = clock or (lambda: datetime.now(UTC))

        self.state = SnapshotState.IDLE
        self.history: List[SnapshotState] = [SnapshotState.IDLE]
        self.warnings: List[str] = []
        self.working_dir: Path | None = None
        self.archive_path: Path | None = None

        self._log = logger.bind(operation_id=self.operation_id)

    def _transition(self, new_state: SnapshotState) -> None:
        if new_state is not SnapshotState.FAILED and TRANSITIONS.get(self.state) is not new_state:
            raise RuntimeError(f"Illegal snapshot transition {self.state.value} -> {new_state.value}")

        self._log.info(
            "snapshot_state_changed",
            from_state=self.state.value,
            to_state=new_state.value,
        )
        self.state = new_state
        self.history.append(new_state)

    def _warn(self, message: str, **context) -> None:
        self.warnings.append(message)
        self._log.warning("snapshot_capture_warning", message=message, **context)

    async def run(self, name: str | None = None, mode: BackupType = BackupType.CONFIG_ONLY) -> CaptureResult:
        """
        Create one snapshot.

        Args:
            name: Snapshot name (default: the generated working directory name)
            mode: Full content tree or config-only capture

        Returns:
            CaptureResult describing the cataloged snapshot

        Raises:
            SetupError, ValidationError: Before any side effect
            ArchiveError, HostCommandError, StorageError: From later states
        """
        if self.state is not SnapshotState.IDLE:
            raise RuntimeError("SnapshotCapture objects are single use")

        started = self._clock()
        mode = BackupType(mode)
        progress = TickProgress("create", CAPTURE_STEPS)

        self._log.info("snapshot_create_started", name=name, mode=mode.label)

        try:
            self._transition(SnapshotState.INITIATING)
            configs_dir, archive_name = await self._initiate(name, mode, started)
            progress.tick("initiating")

            self._transition(SnapshotState.CAPTURING_MANIFEST)
            manifest = await self._capture_manifest(configs_dir, mode, started)
            progress.tick("manifest")

            self._transition(SnapshotState.CAPTURING_DB)
            await self._capture_database()
            progress.tick("database")

            self._transition(SnapshotState.CAPTURING_CONTENT)
            await self._capture_content(configs_dir, mode)
            progress.tick("content")

            self._transition(SnapshotState.PACKING)
            await self._pack()
            progress.tick("packing")

            self._transition(SnapshotState.CATALOGING)
            snapshot_id, archive_size = await self._catalog(archive_name, manifest)
            progress.tick("cataloging")

            self._transition(SnapshotState.DONE)
        except Exception as e:
            self._transition(SnapshotState.FAILED)
            self._log.error(
                "snapshot_create_failed",
                error=str(e),
                working_dir=str(self.working_dir) if self.working_dir else None,
                archive_path=str(self.archive_path) if self.archive_path else None,
            )
            raise

        progress.finish()
        duration = (self._clock() - started).total_seconds()

        self._log.info(
            "snapshot_create_completed",
            snapshot_id=snapshot_id,
            name=archive_name,
            archive_size=archive_size,
            duration_seconds=duration,
        )

        return CaptureResult(
            operation_id=self.operation_id,
            snapshot_id=snapshot_id,
            name=archive_name,
            archive_path=self.archive_path,
            backup_type=int(mode),
            archive_size=archive_size,
            manifest=manifest,
            duration_seconds=duration,
            warnings=list(self.warnings),
        )

    async def _initiate(self, name: str | None, mode: BackupType, started: datetime):
        if not archive_tooling_available():
            raise SetupError(explain_missing_archive_tooling())

        content_root = self.config.content_root
        if not content_root.is_dir() or not os.access(content_root, os.R_OK):
            raise SetupError(
                f"Content root is not a readable directory: {content_root}",
                details={"content_root": str(content_root)},
            )

        if name is not None:
            validate_snapshot_name(name)

        if mode is BackupType.CONFIG_ONLY and await self.host.is_multisite():
            raise ValidationError(explain_multisite_config_only())

        dirname = working_directory_name(name, started)
        archive_name = name or dirname
        archive_path = self.config.archive_path(archive_name)

        if archive_path.exists():
            raise ValidationError(
                f"A snapshot archive named {archive_name!r} already exists",
                details={"archive_path": str(archive_path)},
            )

        self.working_dir = self.config.snapshot_root / dirname
        self.archive_path = archive_path

        configs_dir = self.working_dir / CONFIGS_DIRNAME
        configs_dir.mkdir(parents=True)

        self._log.info("snapshot_working_dir_created", working_dir=str(self.working_dir))
        return configs_dir, archive_name

    async def _capture_manifest(self, configs_dir: Path, mode: BackupType, started: datetime) -> SnapshotManifest:
        core_type = "multisite" if await self.host.is_multisite() else "standard"

        manifest = SnapshotManifest.build(
            core_version=await self.host.core_version(),
            core_type=core_type,
            db_size=format_size(await self.host.database_size()),
            uploads_size=format_size(size_in_bytes(self.config.media_dir)),
            backup_time=int(started.timestamp()),
            backup_type=mode,
        )
        manifest.write(configs_dir)

        self._log.debug("snapshot_manifest_written", tag=manifest.tag, core_version=manifest.core_version)
        return manifest

    async def _capture_database(self) -> None:
        dump = await self.host.export_database(self.working_dir)
        if dump.parent.resolve() != self.working_dir.resolve():
            dump = Path(shutil.move(str(dump), str(self.working_dir / dump.name)))

        self._log.info("database_exported", dump=dump.name, size=size_in_bytes(dump))

    async def _capture_content(self, configs_dir: Path, mode: BackupType) -> None:
        if mode is BackupType.FULL:
            destination = self.working_dir / CONTENT_ARCHIVE_NAME
            source = self.config.content_root
        else:
            destination = self.working_dir / UPLOADS_ARCHIVE_NAME
            source = self.config.media_dir

        if source.is_dir():
            if not await pack_directory(source, destination):
                raise ArchiveError(
                    f"Failed to archive {source}",
                    details={"source": str(source), "destination": str(destination)},
                )
        else:
            self._warn(f"Media directory {source} does not exist, nothing to archive")

        plugins = await self._capture_plugins(mode)
        themes = await self._capture_themes(mode)

        (configs_dir / PLUGINS_FILENAME).write_text(json.dumps(plugins, indent=2))
        (configs_dir / THEMES_FILENAME).write_text(json.dumps(themes, indent=2))

        self._log.info(
            "extensions_captured",
            plugins=len(plugins),
            themes=len(themes),
            non_public=sum(1 for item in plugins + themes if not item["is_public"]),
        )

    async def _capture_plugins(self, mode: BackupType) -> List[dict]:
        records = []
        for plugin in await self.host.list_plugins():
            slug = await self.plugin_registry.resolve_public_slug(plugin.identifier)
            if slug is None:
                self._warn_non_public("Plugin", plugin, mode)
            records.append(extension_record(plugin, slug, plugin.is_active))
        return records

    async def _capture_themes(self, mode: BackupType) -> List[dict]:
        active_dir = Path(await self.host.active_theme_directory())
        records = []
        for theme in await self.host.list_themes():
            slug = await self.theme_registry.resolve_public_slug(theme.identifier)
            if slug is None:
                self._warn_non_public("Theme", theme, mode)
            is_active = bool(theme.directory) and Path(theme.directory) == active_dir
            records.append(extension_record(theme, slug, is_active))
        return records

    def _warn_non_public(self, kind: str, info: ExtensionInfo, mode: BackupType) -> None:
        message = f"{kind} {info.name} is not publicly available; it is recorded but will not be reinstalled"
        if mode is BackupType.CONFIG_ONLY:
            message += ". Take a full backup (--full) to keep its code"
        self._warn(message, identifier=info.identifier)

    async def _pack(self) -> None:
        if not await pack_directory(self.working_dir, self.archive_path):
            raise ArchiveError(
                f"Failed to pack snapshot into {self.archive_path.name}",
                details={"working_dir": str(self.working_dir), "archive_path": str(self.archive_path)},
            )

        shutil.rmtree(self.working_dir)
        self._log.info("snapshot_packed", archive_path=str(self.archive_path))

    async def _catalog(self, archive_name: str, manifest: SnapshotManifest):
        archive_size = format_size(size_in_bytes(self.archive_path))

        snapshot_id = await self.catalog.insert_snapshot(
            {
                "name": archive_name,
                "created_at": manifest.backup_time,
                "backup_type": manifest.backup_type,
                "backup_zip_size": archive_size,
            },
            manifest.extra_info(),
        )

        return snapshot_id, archive_size
