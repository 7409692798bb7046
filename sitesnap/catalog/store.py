# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Catalog Store - Local SQLite catalog of snapshots.

The catalog holds three tables:
1. snapshots - one row per completed snapshot
2. snapshot_extra_info - open key/value facts attached to a snapshot
3. snapshot_storage_credentials - per-service settings for remote stores

The catalog is convenience metadata. The manifest inside each archive is
the ground truth about what the archive contains.
"""

from pathlib import Path
from typing import Dict, List, Mapping, TypedDict

import aiosqlite
import structlog

from sitesnap.exceptions import StorageError

logger = structlog.get_logger()

SNAPSHOTS_TABLE = "snapshots"
EXTRA_INFO_TABLE = "snapshot_extra_info"
CREDENTIALS_TABLE = "snapshot_storage_credentials"

# Table and column names are only ever taken from this mapping
TABLE_COLUMNS: Dict[str, tuple] = {
    SNAPSHOTS_TABLE: ("name", "created_at", "backup_type", "backup_zip_size"),
    EXTRA_INFO_TABLE: ("info_key", "info_value", "snapshot_id"),
    CREDENTIALS_TABLE: ("storage_service", "info_key", "info_value"),
}


class SnapshotRecord(TypedDict):
    """Record of a completed snapshot."""

    id: int
    name: str
    created_at: int  # seconds since epoch
    backup_type: int  # BackupType value
    backup_zip_size: str  # formatted, display only


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        backup_type INTEGER NOT NULL DEFAULT 0,
        backup_zip_size TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS snapshot_extra_info (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        info_key TEXT NOT NULL,
        info_value TEXT,
        snapshot_id INTEGER NOT NULL,
        FOREIGN KEY (snapshot_id) REFERENCES snapshots(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS snapshot_storage_credentials (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        storage_service TEXT NOT NULL,
        info_key TEXT NOT NULL,
        info_value TEXT,
        UNIQUE (storage_service, info_key)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_extra_info_snapshot_id
    ON snapshot_extra_info(snapshot_id)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_snapshots_name
    ON snapshots(name)
    """,
)


def _row_to_record(row) -> SnapshotRecord:
    return SnapshotRecord(
        id=row[0],
        name=row[1],
        created_at=row[2],
        backup_type=row[3],
        backup_zip_size=row[4],
    )


class CatalogStore:
    """
    Owner of the catalog database handle.

    The handle is opened on first use and reused for every later call in
    the process. One store belongs to one execution context; it is not
    shared across threads.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def __aenter__(self) -> "CatalogStore":
        await self._connection()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _connection(self) -> aiosqlite.Connection:
        if self._db is not None:
            return self._db

        if not self.db_path.parent.is_dir():
            raise StorageError(
                "Catalog directory does not exist",
                details={"db_path": str(self.db_path)},
            )

        try:
            db = await aiosqlite.connect(self.db_path)
            for statement in SCHEMA_STATEMENTS:
                await db.execute(statement)
            await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to open catalog database: {e}",
                details={"db_path": str(self.db_path)},
            ) from e

        self._db = db
        logger.debug("catalog_opened", db_path=str(self.db_path))
        return db

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    def _insert_statement(self, table: str, fields: Mapping[str, object]) -> tuple:
        """Build a parameterized INSERT from allow-listed names only."""
        columns = TABLE_COLUMNS.get(table)
        if columns is None:
            raise StorageError(f"Unknown catalog table: {table}", details={"table": table})

        unknown = [name for name in fields if name not in columns]
        if unknown or not fields:
            raise StorageError(
                f"Invalid columns for {table}",
                details={"table": table, "columns": unknown},
            )

        names = [name for name in columns if name in fields]
        placeholders = ", ".join("?" for _ in names)
        query = f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})"
        return query, [fields[name] for name in names]

    async def insert(self, table: str, fields: Mapping[str, object]) -> int:
        """
        Append a row to one of the catalog tables.

        Args:
            table: One of snapshots, snapshot_extra_info,
                snapshot_storage_credentials
            fields: Column values

        Returns:
            The id assigned to the new row
        """
        query, params = self._insert_statement(table, fields)

        db = await self._connection()
        try:
            cursor = await db.execute(query, params)
            await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to insert into {table}: {e}",
                details={"table": table},
            ) from e

        row_id = cursor.lastrowid
        logger.debug("catalog_row_inserted", table=table, row_id=row_id)
        return row_id

    async def insert_snapshot(self, fields: Mapping[str, object], info: Mapping[str, object]) -> int:
        """
        Record a snapshot together with its extra info.

        The snapshot row and every extra-info row commit together or not
        at all.

        Returns:
            The id assigned to the snapshot
        """
        query, params = self._insert_statement(SNAPSHOTS_TABLE, fields)

        db = await self._connection()
        try:
            cursor = await db.execute(query, params)
            snapshot_id = cursor.lastrowid
            for key, value in info.items():
                await db.execute(
                    *self._insert_statement(
                        EXTRA_INFO_TABLE,
                        {"info_key": key, "info_value": str(value), "snapshot_id": snapshot_id},
                    )
                )
            await db.commit()
        except aiosqlite.Error as e:
            await db.rollback()
            raise StorageError(
                f"Failed to record snapshot: {e}",
                details={"name": fields.get("name")},
            ) from e

        logger.debug("snapshot_record_inserted", snapshot_id=snapshot_id, info_keys=len(info))
        return snapshot_id

    async def add_extra_info(self, snapshot_id: int, info: Mapping[str, object]) -> None:
        """Attach key/value facts to a snapshot."""
        for key, value in info.items():
            await self.insert(
                EXTRA_INFO_TABLE,
                {"info_key": key, "info_value": str(value), "snapshot_id": snapshot_id},
            )

    async def get_all(self) -> List[SnapshotRecord]:
        """Get all snapshots ordered by id."""
        db = await self._connection()
        records: List[SnapshotRecord] = []

        async with db.execute(
            """
            SELECT id, name, created_at, backup_type, backup_zip_size
            FROM snapshots
            ORDER BY id
            """
        ) as cursor:
            async for row in cursor:
                records.append(_row_to_record(row))

        return records

    async def get_by_id(self, snapshot_id: int) -> SnapshotRecord | None:
        db = await self._connection()
        async with db.execute(
            """
            SELECT id, name, created_at, backup_type, backup_zip_size
            FROM snapshots
            WHERE id = ?
            """,
            (snapshot_id,),
        ) as cursor:
            row = await cursor.fetchone()
            return _row_to_record(row) if row else None

    async def get_by_name(self, name: str) -> SnapshotRecord | None:
        """
        Get the first snapshot whose name matches.

        Matching uses SQL LIKE, so it is case-insensitive and honors
        % and _ wildcards.
        """
        if not name:
            return None

        db = await self._connection()
        async with db.execute(
            """
            SELECT id, name, created_at, backup_type, backup_zip_size
            FROM snapshots
            WHERE name LIKE ?
            ORDER BY id
            LIMIT 1
            """,
            (name,),
        ) as cursor:
            row = await cursor.fetchone()
            return _row_to_record(row) if row else None

    async def get_extra_info(self, snapshot_id: int) -> Dict[str, str]:
        """Get the key/value facts of a snapshot; later rows win."""
        db = await self._connection()
        info: Dict[str, str] = {}

        async with db.execute(
            """
            SELECT info_key, info_value
            FROM snapshot_extra_info
            WHERE snapshot_id = ?
            ORDER BY id
            """,
            (snapshot_id,),
        ) as cursor:
            async for row in cursor:
                info[row[0]] = row[1]

        return info

    async def upsert_credential(self, service: str, key: str, value: str) -> None:
        """
        Store a setting for a storage service.

        An existing (service, key) row is updated in place.
        """
        db = await self._connection()
        try:
            await db.execute(
                """
                INSERT INTO snapshot_storage_credentials (storage_service, info_key, info_value)
                VALUES (?, ?, ?)
                ON CONFLICT(storage_service, info_key) DO UPDATE SET
                    info_value = excluded.info_value
                """,
                (service, key, value),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to store credential: {e}",
                details={"service": service, "key": key},
            ) from e

        logger.info("credential_stored", service=service, key=key)

    async def get_credentials(self, service: str) -> Dict[str, str]:
        db = await self._connection()
        async with db.execute(
            """
            SELECT info_key, info_value
            FROM snapshot_storage_credentials
            WHERE storage_service = ?
            ORDER BY id
            """,
            (service,),
        ) as cursor:
            return {row[0]: row[1] async for row in cursor}

    async def list_services(self) -> List[str]:
        db = await self._connection()
        async with db.execute(
            "SELECT DISTINCT storage_service FROM snapshot_storage_credentials ORDER BY storage_service"
        ) as cursor:
            return [row[0] async for row in cursor]

    async def delete_by_id(self, snapshot_id: int) -> bool:
        """
        Delete a snapshot and all of its extra info.

        Both deletes commit together or not at all.

        Returns:
            True if the snapshot existed, False otherwise
        """
        if await self.get_by_id(snapshot_id) is None:
            return False

        db = await self._connection()
        try:
            await db.execute(
                "DELETE FROM snapshot_extra_info WHERE snapshot_id = ?", (snapshot_id,)
            )
            await db.execute("DELETE FROM snapshots WHERE id = ?", (snapshot_id,))
            await db.commit()
        except aiosqlite.Error as e:
            await db.rollback()
            raise StorageError(
                f"Failed to delete snapshot: {e}",
                details={"snapshot_id": snapshot_id},
            ) from e

        logger.info("snapshot_record_deleted", snapshot_id=snapshot_id)
        return True
