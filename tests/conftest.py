# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for sitesnap tests.

Provides a fake host installation, fake extension registries, a temporary
site tree and test configuration helpers.
"""

import os
import tempfile
from pathlib import Path
from typing import Dict, Generator, List

import pytest
import pytest_asyncio

from sitesnap.host import ExtensionInfo

# Set test environment variables
os.environ["SITESNAP_ADMIN_API_KEY"] = "test-api-key-12345"


class FakeHost:
    """In-memory HostApplication that records every call."""

    def __init__(
        self,
        version: str = "6.4.2",
        multisite: bool = False,
        plugins: List[ExtensionInfo] | None = None,
        themes: List[ExtensionInfo] | None = None,
        active_theme_dir: str = "",
        checksums_ok: bool = True,
    ):
        self.version = version
        self.multisite = multisite
        self.plugins = plugins or []
        self.themes = themes or []
        self.active_theme_dir = active_theme_dir
        self.checksums_ok = checksums_ok
        self.calls: List[tuple] = []

    def called(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def core_version(self) -> str:
        return self.version

    async def is_multisite(self) -> bool:
        return self.multisite

    async def export_database(self, dest_dir: Path) -> Path:
        self.calls.append(("export_database", dest_dir))
        dump = Path(dest_dir) / "site-2026-01-01.sql"
        dump.write_text("-- dump\nCREATE TABLE wp_posts (id INT);\n")
        return dump

    async def import_database(self, dump_path: Path) -> None:
        self.calls.append(("import_database", Path(dump_path).name, Path(dump_path).read_text()))

    async def database_size(self) -> int:
        return 2_500_000

    async def list_plugins(self) -> List[ExtensionInfo]:
        return list(self.plugins)

    async def list_themes(self) -> List[ExtensionInfo]:
        return list(self.themes)

    async def active_theme_directory(self) -> str:
        return self.active_theme_dir

    async def verify_core_checksums(self) -> bool:
        self.calls.append(("verify_core_checksums",))
        return self.checksums_ok

    async def install_core(self, version: str) -> None:
        self.calls.append(("install_core", version))

    async def remove_all_plugins(self) -> None:
        self.calls.append(("remove_all_plugins",))

    async def remove_all_themes(self) -> None:
        self.calls.append(("remove_all_themes",))

    async def install_plugin(self, slug: str, version: str, activate: bool) -> None:
        self.calls.append(("install_plugin", slug, version, activate))

    async def install_theme(self, slug: str, version: str, activate: bool) -> None:
        self.calls.append(("install_theme", slug, version, activate))


class FakeRegistry:
    """RegistryLookup answering from a fixed identifier -> slug mapping."""

    def __init__(self, known: Dict[str, str]):
        self.known = known
        self.lookups: List[str] = []

    async def resolve_public_slug(self, identifier: str) -> str | None:
        self.lookups.append(identifier)
        return self.known.get(identifier)


def always_yes():
    async def confirm(question: str, summary: dict) -> bool:
        confirm.summaries.append(summary)
        return True

    confirm.summaries = []
    return confirm


def always_no():
    async def confirm(question: str, summary: dict) -> bool:
        return False

    return confirm


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def site_tree(temp_dir: Path) -> Path:
    """
    Create a small wp-content tree.

    wp-content/
        plugins/akismet/akismet.php
        themes/twentytwentyfour/style.css
        themes/custom-theme/style.css
        uploads/2026/01/photo.jpg
        uploads/empty/
    """
    content = temp_dir / "wp-content"
    (content / "plugins" / "akismet").mkdir(parents=True)
    (content / "plugins" / "akismet" / "akismet.php").write_text("<?php // akismet")
    for theme in ("twentytwentyfour", "custom-theme"):
        (content / "themes" / theme).mkdir(parents=True)
        (content / "themes" / theme / "style.css").write_text(f"/* {theme} */")
    (content / "uploads" / "2026" / "01").mkdir(parents=True)
    (content / "uploads" / "2026" / "01" / "photo.jpg").write_bytes(b"\xff\xd8jpeg-bytes")
    (content / "uploads" / "empty").mkdir()
    return content


@pytest.fixture
def test_config(temp_dir: Path, site_tree: Path):
    """Create a test configuration rooted in the temp directory."""
    from sitesnap.config import SnapshotConfig

    root = temp_dir / "snapshots"
    root.mkdir()
    return SnapshotConfig(
        snapshot_root=root,
        content_root=site_tree,
        peers={"staging": "deploy@staging.example.com:2222", "broken": "no-at-sign"},
    )


@pytest.fixture
def fake_host(site_tree: Path) -> FakeHost:
    """Three plugins (one private) and two themes (one active)."""
    themes_dir = site_tree / "themes"
    return FakeHost(
        plugins=[
            ExtensionInfo("Akismet Anti-spam", "5.3", "akismet/akismet.php", is_active=True),
            ExtensionInfo("Hello Dolly", "1.7.2", "hello.php", is_active=False),
            ExtensionInfo("Acme Private Tools", "2.0.0", "acme-private/acme.php", is_active=True),
        ],
        themes=[
            ExtensionInfo(
                "Twenty Twenty-Four",
                "1.0",
                "twentytwentyfour",
                directory=str(themes_dir / "twentytwentyfour"),
            ),
            ExtensionInfo(
                "Custom Theme",
                "0.9",
                "custom-theme",
                directory=str(themes_dir / "custom-theme"),
            ),
        ],
        active_theme_dir=str(themes_dir / "twentytwentyfour"),
    )


@pytest.fixture
def plugin_registry() -> FakeRegistry:
    return FakeRegistry({"akismet/akismet.php": "akismet", "hello.php": "hello-dolly"})


@pytest.fixture
def theme_registry() -> FakeRegistry:
    return FakeRegistry({"twentytwentyfour": "twentytwentyfour"})


@pytest_asyncio.fixture
async def catalog(test_config):
    """Open catalog in the test snapshot root."""
    from sitesnap.catalog import CatalogStore

    store = CatalogStore(test_config.catalog_path)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def engine(test_config, catalog, fake_host, plugin_registry, theme_registry):
    """Engine wired to fakes for every external collaborator."""
    from sitesnap.engine import SnapshotEngine

    return SnapshotEngine(
        test_config,
        catalog,
        host=fake_host,
        plugin_registry=plugin_registry,
        theme_registry=theme_registry,
    )


def write_archive(path: Path, manifest: dict, extra: Dict[str, bytes] | None = None) -> Path:
    """Write a minimal snapshot archive with the given manifest."""
    import json
    import zipfile

    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("configs/", "")
        zf.writestr("configs/snapshot-details.json", json.dumps(manifest))
        for name, data in (extra or {}).items():
            zf.writestr(name, data)
    return path


@pytest.fixture
def archive_writer():
    return write_archive


@pytest.fixture
def confirm_yes():
    return always_yes()


@pytest.fixture
def confirm_no():
    return always_no()
