# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Integration Tests for sitesnap.

These tests verify the integration between components:
- FastAPI endpoints
- Command line rendering and exit statuses
- The peer receive loop
"""

import io
import json
from pathlib import Path

import pytest
import structlog
import yaml
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from sitesnap.archive import SnapshotManifest
from sitesnap.config import BackupType

AUTH = {"Authorization": "Bearer test-api-key-12345"}


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()


def _app(engine) -> FastAPI:
    from sitesnap.integrations.fastapi import register_sitesnap_routes

    app = FastAPI()
    register_sitesnap_routes(app, engine)
    return app


# ============================================================================
# FastAPI Integration Tests
# ============================================================================

@pytest.mark.asyncio
async def test_fastapi_health_endpoint(engine):
    """Test the health check endpoint."""
    transport = ASGITransport(app=_app(engine))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/admin/sitesnap/health", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["snapshot_count"] == 0
    assert data["catalog_accessible"] is True


@pytest.mark.asyncio
async def test_fastapi_snapshot_endpoints(engine):
    """List, inspect and delete through the admin API."""
    await engine.create("api", BackupType.CONFIG_ONLY)

    transport = ASGITransport(app=_app(engine))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        listing = await client.get("/admin/sitesnap/snapshots", headers=AUTH)
        assert listing.status_code == 200
        assert [row["name"] for row in listing.json()] == ["api"]

        details = await client.get("/admin/sitesnap/snapshots/api", headers=AUTH)
        assert details.status_code == 200
        assert details.json()["archive_exists"] is True

        deleted = await client.delete("/admin/sitesnap/snapshots/api", headers=AUTH)
        assert deleted.json() == {"deleted": True, "id": 1, "name": "api"}

        again = await client.delete("/admin/sitesnap/snapshots/api", headers=AUTH)
        assert again.status_code == 404

        empty = await client.get("/admin/sitesnap/snapshots", headers=AUTH)
        assert empty.status_code == 404
        assert empty.json()["detail"] == "No backups found"


@pytest.mark.asyncio
async def test_fastapi_unauthorized_access(engine):
    """Test that endpoints require authentication."""
    transport = ASGITransport(app=_app(engine))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        missing = await client.get("/admin/sitesnap/snapshots")
        wrong = await client.get(
            "/admin/sitesnap/snapshots",
            headers={"Authorization": "Bearer wrong-key"},
        )

    assert missing.status_code == 401
    assert wrong.status_code == 403


@pytest.mark.asyncio
async def test_lifespan_exposes_engine(test_config):
    from sitesnap.integrations.fastapi import get_sitesnap_engine, sitesnap_lifespan

    app = FastAPI()
    with pytest.raises(RuntimeError):
        get_sitesnap_engine(app)

    async with sitesnap_lifespan(app, test_config):
        engine = get_sitesnap_engine(app)
        assert engine.config is test_config
        assert await engine.catalog.get_all() == []


# ============================================================================
# Command line
# ============================================================================

ROWS = [
    {"id": 1, "name": "one", "created_at": "2026-01-01T00:00:00Z", "backup_type": "full", "backup_zip_size": "1.20 MB"},
    {"id": 2, "name": "two", "created_at": "2026-01-02T00:00:00Z", "backup_type": "config-only", "backup_zip_size": "3 kB"},
]


def test_render_rows_formats():
    from sitesnap.cli import render_rows

    fields = ("id", "name", "backup_type")

    assert render_rows(ROWS, "count") == "2"
    assert render_rows(ROWS, "ids") == "1 2"
    assert json.loads(render_rows(ROWS, "json", fields))[1] == {"id": 2, "name": "two", "backup_type": "config-only"}
    assert yaml.safe_load(render_rows(ROWS, "yaml", fields))[0]["name"] == "one"
    assert render_rows(ROWS, "csv", fields).splitlines() == [
        "id,name,backup_type",
        "1,one,full",
        "2,two,config-only",
    ]

    table = render_rows(ROWS, "table", fields).splitlines()
    assert table[1].split("|")[1:4] == [" id ", " name ", " backup_type "]
    assert len(table) == 6


def test_render_rows_fills_missing_fields():
    from sitesnap.cli import render_rows

    parsed = json.loads(render_rows(ROWS, "json"))

    assert parsed[0]["core_version"] == ""


def test_cli_list_on_empty_root(temp_dir: Path, capsys, monkeypatch):
    from sitesnap.cli import main

    monkeypatch.delenv("SITESNAP_PEERS", raising=False)

    status = main(["--root", str(temp_dir / "snapshots"), "list", "--format", "count"])

    assert status == 1
    assert "No backups found" in capsys.readouterr().err
    assert (temp_dir / "snapshots" / "snapshots.db").exists()


def test_cli_unusable_root(temp_dir: Path, capsys, monkeypatch):
    from sitesnap.cli import main

    monkeypatch.delenv("SITESNAP_PEERS", raising=False)

    status = main(["--root", str(temp_dir / "missing" / "snapshots"), "list"])

    assert status == 1
    assert "Error: Snapshot directory" in capsys.readouterr().err


def test_cli_push_requires_destination():
    from sitesnap.cli import build_parser

    with pytest.raises(SystemExit):
        build_parser().parse_args(["push", "1"])

    args = build_parser().parse_args(["push", "1", "--peer", "staging"])
    assert args.peer == "staging"
    assert args.service is None


@pytest.mark.asyncio
async def test_serve_receive_answers_each_line(engine, test_config, archive_writer):
    from sitesnap.cli import serve_receive

    manifest = SnapshotManifest.build("6.4.2", "standard", "1 B", "1 B", 1_700_000_000, BackupType.FULL)
    archive_writer(test_config.snapshot_root / ".incoming-01X-weekly.zip", manifest.to_dict())

    stdin = io.StringIO(
        json.dumps({"action": "pull", "filename": "weekly.zip", "upload": ".incoming-01X-weekly.zip"})
        + "\n\n"
        + "garbage\n"
    )
    stdout = io.BytesIO()

    status = await serve_receive(engine, stdin=stdin, stdout=stdout)

    responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert [r["status"] for r in responses] == ["ok", "error"]
    assert responses[0]["name"] == "weekly"
    assert status == 1
