# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap FastAPI Integration - Read-mostly admin endpoints.

This module exposes the snapshot catalog over HTTP:
- Health check
- Snapshot listing and details
- Snapshot deletion

Creating and restoring snapshots stay command line operations: they are
long running and restore needs an operator's confirmation.
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, UTC

import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sitesnap.catalog.store import CatalogStore
from sitesnap.config import SnapshotConfig
from sitesnap.engine.core import SnapshotEngine, initialize_snapshot_root
from sitesnap.exceptions import NotFoundError, SnapshotError, ValidationError

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the SITESNAP_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("SITESNAP_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="SITESNAP_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def http_error(error: SnapshotError) -> HTTPException:
    """Map a sitesnap error kind to an HTTP status."""
    if isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, ValidationError):
        status_code = 400
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=error.message)


def register_sitesnap_routes(
    app: FastAPI,
    engine: SnapshotEngine,
    prefix: str = "/admin/sitesnap",
) -> None:
    """
    Register sitesnap admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication.

    Args:
        app: FastAPI application
        engine: Engine bound to an open catalog
        prefix: URL prefix for endpoints (default: /admin/sitesnap)
    """

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Verifies the snapshot root and the catalog are reachable.
        """
        root_ok = engine.config.snapshot_root.is_dir()

        catalog_ok = False
        catalog_error = None
        snapshot_count = None
        try:
            snapshot_count = len(await engine.catalog.get_all())
            catalog_ok = True
        except SnapshotError as e:
            catalog_error = e.message

        status = "healthy"
        if not root_ok or not catalog_ok:
            status = "degraded"
        if not root_ok and not catalog_ok:
            status = "unhealthy"

        return {
            "status": status,
            "snapshot_root_accessible": root_ok,
            "catalog_accessible": catalog_ok,
            "catalog_error": catalog_error,
            "snapshot_count": snapshot_count,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get(f"{prefix}/snapshots", dependencies=[Depends(verify_api_key)])
    async def list_snapshots() -> list:
        """
        List all snapshots with their extra info.

        An empty catalog answers 404, like the list command.
        """
        try:
            return await engine.list_snapshots()
        except SnapshotError as e:
            raise http_error(e)

    @app.get(f"{prefix}/snapshots/{{ref}}", dependencies=[Depends(verify_api_key)])
    async def get_snapshot(ref: str) -> dict:
        try:
            return await engine.inspect(ref)
        except SnapshotError as e:
            raise http_error(e)

    @app.delete(f"{prefix}/snapshots/{{ref}}", dependencies=[Depends(verify_api_key)])
    async def delete_snapshot(ref: str) -> dict:
        """Delete a snapshot's catalog rows and archive."""
        try:
            record = await engine.delete(ref)
        except SnapshotError as e:
            raise http_error(e)

        logger.info("snapshot_deleted_via_api", snapshot_id=record["id"])
        return {"deleted": True, "id": record["id"], "name": record["name"]}


@asynccontextmanager
async def sitesnap_lifespan(app: FastAPI, config: SnapshotConfig, prefix: str = "/admin/sitesnap"):
    """
    Lifespan context manager for FastAPI.

        app = FastAPI(lifespan=lambda app: sitesnap_lifespan(app, config))

    Args:
        app: FastAPI application
        config: sitesnap configuration
        prefix: URL prefix for admin endpoints
    """
    logger.info("sitesnap_lifespan_starting", snapshot_root=str(config.snapshot_root))

    initialize_snapshot_root(config)
    catalog = CatalogStore(config.catalog_path)
    engine = SnapshotEngine(config, catalog)

    app.state.sitesnap_engine = engine
    register_sitesnap_routes(app, engine, prefix)

    logger.info("sitesnap_lifespan_started")

    try:
        yield
    finally:
        logger.info("sitesnap_lifespan_stopping")
        await catalog.close()
        logger.info("sitesnap_lifespan_stopped")


def get_sitesnap_engine(app: FastAPI) -> SnapshotEngine:
    """
    Get the sitesnap engine from a FastAPI app.

    Useful for accessing the catalog in custom endpoints.

    Raises:
        RuntimeError: If sitesnap was not initialized
    """
    engine = getattr(app.state, "sitesnap_engine", None)
    if not engine:
        raise RuntimeError("sitesnap not initialized. Use sitesnap_lifespan first.")
    return engine
