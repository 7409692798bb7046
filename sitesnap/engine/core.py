# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Engine - Main orchestrator for snapshot commands.

The engine owns no global state. It is handed a config, an open catalog and
its collaborators at construction and coordinates them per command:
create, list, inspect, restore, delete, configure, push, pull and receive.
"""

import os
from dataclasses import dataclass
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List

import structlog
from ulid import ULID

from sitesnap.archive.codec import archive_tooling_available, format_size, size_in_bytes
from sitesnap.archive.manifest import load_manifest_from_archive
from sitesnap.catalog.store import CatalogStore, SnapshotRecord
from sitesnap.config import ARCHIVE_SUFFIX, BackupType, SnapshotConfig
from sitesnap.engine.capture import CaptureResult, SnapshotCapture
from sitesnap.engine.restore import Confirm, RestoreResult, SnapshotRestore
from sitesnap.errors import (
    explain_missing_archive_tooling,
    explain_unknown_peer,
    explain_unusable_snapshot_root,
)
from sitesnap.exceptions import (
    IntegrityError,
    NotFoundError,
    RemoteError,
    SetupError,
    SnapshotError,
    ValidationError,
)
from sitesnap.host import HostApplication, WPCLIHost
from sitesnap.registry import PublicRegistry, RegistryLookup
from sitesnap.transport.blob import BlobStore, optional_settings, required_settings
from sitesnap.transport.peer import (
    INCOMING_PREFIX,
    PeerTransport,
    check_bare_filename,
    error_response,
    ok_response,
    parse_connection_string,
)

logger = structlog.get_logger()

# Prompt for one credential value: key -> answer
Prompt = Callable[[str], Awaitable[str]]

LIST_FIELDS = (
    "id",
    "name",
    "created_at",
    "backup_type",
    "backup_zip_size",
    "core_version",
    "core_type",
    "db_size",
    "uploads_size",
)

DEFAULT_SERVICE = "aws"


@dataclass
class ImportResult:
    """Result of cataloging an externally sourced archive."""

    snapshot_id: int
    name: str
    archive_path: Path
    backup_type: int


def initialize_snapshot_root(config: SnapshotConfig) -> Path:
    """
    Make sure the snapshot root is usable before any command runs.

    Creates the root itself when its parent exists.

    Raises:
        SetupError: If the root cannot be created, read or written, or zip
            support is missing
    """
    root = config.snapshot_root

    if not root.parent.is_dir():
        raise SetupError(
            explain_unusable_snapshot_root(str(root), "its parent directory does not exist"),
            details={"snapshot_root": str(root)},
        )

    try:
        root.mkdir(exist_ok=True)
    except OSError as e:
        raise SetupError(
            explain_unusable_snapshot_root(str(root), str(e)),
            details={"snapshot_root": str(root)},
        ) from e

    if not root.is_dir() or not os.access(root, os.R_OK | os.W_OK | os.X_OK):
        raise SetupError(
            explain_unusable_snapshot_root(str(root), "it is not readable and writable"),
            details={"snapshot_root": str(root)},
        )

    if not archive_tooling_available():
        raise SetupError(explain_missing_archive_tooling())

    logger.debug("snapshot_root_ready", snapshot_root=str(root))
    return root


def format_timestamp(value: int) -> str:
    return datetime.fromtimestamp(int(value), UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def snapshot_row(record: SnapshotRecord, extra_info: Dict[str, str]) -> dict:
    """Display form of a snapshot: record plus extra info."""
    row = {
        "id": record["id"],
        "name": record["name"],
        "created_at": format_timestamp(record["created_at"]),
        "backup_type": BackupType(record["backup_type"]).label,
        "backup_zip_size": record["backup_zip_size"],
    }
    for key in LIST_FIELDS[5:]:
        row[key] = extra_info.get(key, "")
    for key, value in extra_info.items():
        row.setdefault(key, value)
    return row


def archive_filename(filename: str) -> str:
    return filename if filename.endswith(ARCHIVE_SUFFIX) else f"{filename}{ARCHIVE_SUFFIX}"


class SnapshotEngine:
    """Coordinates the catalog, the archive codec, transports and the host."""

    def __init__(
        self,
        config: SnapshotConfig,
        catalog: CatalogStore,
        host: HostApplication | None = None,
        plugin_registry: RegistryLookup | None = None,
        theme_registry: RegistryLookup | None = None,
        peer_transport: PeerTransport | None = None,
        blob_store_factory: Callable[[str, Dict[str, str]], Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.catalog = catalog
        self.host = host or WPCLIHost.from_config(config)
        self.plugin_registry = plugin_registry or PublicRegistry(
            "plugin", config.registry_base_url, config.registry_timeout
        )
        self.theme_registry = theme_registry or PublicRegistry(
            "theme", config.registry_base_url, config.registry_timeout
        )
        self.peer_transport = peer_transport or PeerTransport.from_config(config)
        self.blob_store_factory = blob_store_factory or BlobStore.from_credentials
        self._clock = clock or (lambda: datetime.now(UTC))

    async def resolve(self, ref: int | str) -> SnapshotRecord:
        """
        Find a snapshot by numeric id, otherwise by name.

        Raises:
            NotFoundError: If nothing matches
        """
        text = str(ref).strip()
        if text.isdigit():
            record = await self.catalog.get_by_id(int(text))
        else:
            record = await self.catalog.get_by_name(text)

        if record is None:
            raise NotFoundError(f"Backup with id/name '{text}' not found", details={"ref": text})
        return record

    async def create(self, name: str | None = None, mode: BackupType = BackupType.CONFIG_ONLY) -> CaptureResult:
        capture = SnapshotCapture(
            self.config,
            self.catalog,
            self.host,
            self.plugin_registry,
            self.theme_registry,
            clock=self._clock,
        )
        return await capture.run(name, mode)

    async def list_snapshots(self) -> List[dict]:
        """
        Get every snapshot in display form.

        Raises:
            NotFoundError: If the catalog is empty
        """
        records = await self.catalog.get_all()
        if not records:
            raise NotFoundError("No backups found")

        return [snapshot_row(record, await self.catalog.get_extra_info(record["id"])) for record in records]

    async def inspect(self, ref: int | str) -> dict:
        record = await self.resolve(ref)
        row = snapshot_row(record, await self.catalog.get_extra_info(record["id"]))
        row["archive_exists"] = self.config.archive_path(record["name"]).is_file()
        return row

    async def restore(self, ref: int | str, confirm: Confirm) -> RestoreResult:
        record = await self.resolve(ref)
        extra_info = await self.catalog.get_extra_info(record["id"])
        return await SnapshotRestore(self.config, self.host, confirm).run(record, extra_info)

    async def delete(self, ref: int | str) -> SnapshotRecord:
        """
        Remove a snapshot's catalog rows and its archive file.

        Raises:
            NotFoundError: If the snapshot does not exist (including a
                second delete of the same snapshot)
        """
        record = await self.resolve(ref)
        if not await self.catalog.delete_by_id(record["id"]):
            raise NotFoundError(f"Backup with id/name '{ref}' not found", details={"ref": str(ref)})

        archive = self.config.archive_path(record["name"])
        if archive.exists():
            archive.unlink()
        else:
            logger.warning("snapshot_archive_missing", snapshot_id=record["id"], archive_path=str(archive))

        logger.info("snapshot_deleted", snapshot_id=record["id"], name=record["name"])
        return record

    async def configure(self, service: str, prompt: Prompt) -> Dict[str, str]:
        """
        Ask for and store every setting a storage service requires.

        Nothing is stored unless every required answer is non-empty.
        Optional settings are asked for afterwards and blank answers skipped.

        Raises:
            ValidationError: If the service is unknown or a required answer
                is empty
        """
        values: Dict[str, str] = {}
        for key in required_settings(service):
            answer = (await prompt(key) or "").strip()
            if not answer:
                raise ValidationError(
                    f"A value for {key!r} is required",
                    details={"service": service, "key": key},
                )
            values[key] = answer

        for key in optional_settings(service):
            answer = (await prompt(key) or "").strip()
            if answer:
                values[key] = answer

        for key, value in values.items():
            await self.catalog.upsert_credential(service, key, value)

        logger.info("storage_service_configured", service=service, keys=sorted(values))
        return values

    async def _blob_store(self, service: str):
        credentials = await self.catalog.get_credentials(service)
        return self.blob_store_factory(service, credentials)

    async def push(self, ref: int | str, service: str | None = None, peer: str | None = None) -> dict:
        """
        Send a snapshot's archive to a storage service or a peer.

        Exactly one of service and peer must be given. On success the
        snapshot gets a pushed_to_* extra info entry.

        Raises:
            ValidationError: Bad target, missing credentials, unparseable peer
            RemoteError: Transfer failure
        """
        if bool(service) == bool(peer):
            raise ValidationError("Specify exactly one of a storage service or a peer alias")

        operation_id = str(ULID())
        log = logger.bind(operation_id=operation_id)

        record = await self.resolve(ref)
        archive = self.config.archive_path(record["name"])

        if peer:
            connection = self.config.peers.get(peer)
            if connection is None:
                raise ValidationError(explain_unknown_peer(peer), details={"peer": peer})
            target = parse_connection_string(connection)

        if not archive.is_file():
            raise NotFoundError(
                f"Archive for snapshot {record['name']!r} is missing",
                details={"archive_path": str(archive)},
            )

        log.info("snapshot_push_started", snapshot_id=record["id"], service=service, peer=peer)

        if service:
            store = await self._blob_store(service)
            if not await store.put_blob(archive):
                raise RemoteError(
                    "Upload could not be confirmed by the storage service",
                    details={"service": service, "archive": archive.name},
                )
            info_key = f"pushed_to_{service}"
            outcome = {"service": service, "key": archive.name}
        else:
            response = await self.peer_transport.push(target, archive, self.config.remote_snapshot_root)
            info_key = f"pushed_to_peer_{peer}"
            outcome = {"peer": peer, "remote_snapshot_id": response.get("snapshot_id")}

        pushed_at = self._clock().strftime("%Y-%m-%dT%H:%M:%SZ")
        await self.catalog.add_extra_info(record["id"], {info_key: pushed_at})

        log.info("snapshot_pushed", snapshot_id=record["id"], destination=info_key)
        return {"snapshot_id": record["id"], "name": record["name"], "pushed_at": pushed_at, **outcome}

    def unique_archive_path(self, filename: str) -> Path:
        """
        Local path for an incoming archive that never clobbers an existing one.

        A timestamp suffix is added when the name is taken.
        """
        candidate = self.config.snapshot_root / archive_filename(filename)
        if not candidate.exists():
            return candidate

        stamp = self._clock().strftime("%Y%m%d%H%M%S")
        stem = candidate.name[: -len(ARCHIVE_SUFFIX)]
        candidate = self.config.snapshot_root / f"{stem}-{stamp}{ARCHIVE_SUFFIX}"
        counter = 1
        while candidate.exists():
            candidate = self.config.snapshot_root / f"{stem}-{stamp}-{counter}{ARCHIVE_SUFFIX}"
            counter += 1
        return candidate

    async def pull(self, filename: str, service: str = DEFAULT_SERVICE) -> ImportResult:
        """
        Download an archive from a storage service and catalog it.

        Raises:
            ValidationError: Bad filename or missing credentials
            RemoteError: If the download fails
            IntegrityError: If the archive's manifest is invalid (the
                downloaded file is removed)
        """
        check_bare_filename(filename)
        store = await self._blob_store(service)
        local_path = self.unique_archive_path(filename)

        logger.info("snapshot_pull_started", service=service, key=filename, local_path=str(local_path))

        if not await store.get_blob(filename, local_path):
            raise RemoteError(
                f"Could not download {filename} from {service}",
                details={"service": service, "key": filename},
            )

        return await self.import_archive(local_path)

    async def import_archive(self, archive: Path) -> ImportResult:
        """
        Validate an archive already inside the snapshot root and catalog it.

        An archive that fails validation is deleted.
        """
        archive = Path(archive)

        try:
            manifest = load_manifest_from_archive(archive)
            if not manifest.is_valid():
                raise IntegrityError(
                    "Archive manifest failed its integrity check",
                    details={"archive_path": str(archive)},
                )
        except IntegrityError:
            archive.unlink(missing_ok=True)
            logger.error("snapshot_archive_rejected", archive_path=str(archive))
            raise

        name = archive.name[: -len(ARCHIVE_SUFFIX)]
        snapshot_id = await self.catalog.insert_snapshot(
            {
                "name": name,
                "created_at": manifest.backup_time,
                "backup_type": manifest.backup_type,
                "backup_zip_size": format_size(size_in_bytes(archive)),
            },
            manifest.extra_info(),
        )

        logger.info("snapshot_imported", snapshot_id=snapshot_id, name=name)
        return ImportResult(
            snapshot_id=snapshot_id,
            name=name,
            archive_path=archive,
            backup_type=manifest.backup_type,
        )

    async def receive(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Handle one request from a pushing peer.

        Never raises for request problems: they are answered with an
        error response line instead.
        """
        try:
            if request.get("action") != "pull":
                raise ValidationError(f"Unsupported action: {request.get('action')!r}")

            filename = check_bare_filename(request.get("filename"))
            upload_name = check_bare_filename(request.get("upload"))
            if not upload_name.startswith(INCOMING_PREFIX):
                raise ValidationError(
                    f"Upload name must start with {INCOMING_PREFIX}",
                    details={"upload": upload_name},
                )

            upload = self.config.snapshot_root / upload_name
            if not upload.is_file():
                raise NotFoundError(f"Uploaded file {upload.name} not found")

            destination = self.unique_archive_path(filename)
            upload.rename(destination)
            result = await self.import_archive(destination)
        except SnapshotError as e:
            logger.error("peer_request_failed", error=str(e))
            return error_response(e.message)
        except OSError as e:
            logger.error("peer_request_failed", error=str(e))
            return error_response(f"Could not store uploaded archive: {e}")

        return ok_response(snapshot_id=result.snapshot_id, name=result.name)
