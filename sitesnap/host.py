# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Host Application - The site installation being snapshotted.

The engine never touches the database or the extension registry of the
site directly. It asks a HostApplication, and the default implementation
drives the `wp` command line tool with argument vectors (no shell).
"""

import asyncio
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Protocol, Tuple

import structlog

from sitesnap.exceptions import HostCommandError

logger = structlog.get_logger()

ACTIVE_PLUGIN_STATUSES = ("active", "active-network", "must-use")
DATABASE_DUMP_FILENAME = "database.sql"


@dataclass
class ExtensionInfo:
    """An installed plugin or theme as reported by the host."""

    name: str
    version: str
    identifier: str  # plugin file ("akismet/akismet.php") or theme stylesheet
    is_active: bool = False
    directory: str = ""  # themes only: absolute directory of the theme


class HostApplication(Protocol):
    """Operations the engine needs from the site installation."""

    async def core_version(self) -> str: ...

    async def is_multisite(self) -> bool: ...

    async def export_database(self, dest_dir: Path) -> Path:
        """Dump the database into dest_dir and return the dump's path."""
        ...

    async def import_database(self, dump_path: Path) -> None: ...

    async def database_size(self) -> int: ...

    async def list_plugins(self) -> List[ExtensionInfo]: ...

    async def list_themes(self) -> List[ExtensionInfo]: ...

    async def active_theme_directory(self) -> str: ...

    async def verify_core_checksums(self) -> bool: ...

    async def install_core(self, version: str) -> None: ...

    async def remove_all_plugins(self) -> None: ...

    async def remove_all_themes(self) -> None: ...

    async def install_plugin(self, slug: str, version: str, activate: bool) -> None: ...

    async def install_theme(self, slug: str, version: str, activate: bool) -> None: ...


class WPCLIHost:
    """HostApplication backed by the `wp` binary."""

    def __init__(self, wp_binary: str = "wp", site_path: Path | None = None):
        self.wp_binary = wp_binary
        self.site_path = Path(site_path) if site_path else None

    @classmethod
    def from_config(cls, config) -> "WPCLIHost":
        return cls(wp_binary=config.wp_binary, site_path=config.site_path)

    def command(self, *args: str) -> List[str]:
        argv = [self.wp_binary, *args]
        if self.site_path:
            argv.append(f"--path={self.site_path}")
        return argv

    async def _run(self, *args: str, check: bool = True) -> Tuple[int, str]:
        """
        Run one wp command.

        Returns:
            (exit status, stdout)

        Raises:
            HostCommandError: If check is set and the command exits non-zero
        """
        argv = self.command(*args)
        logger.debug("host_command_started", argv=argv)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise HostCommandError(
                f"Could not run {self.wp_binary}: {e}",
                details={"argv": argv},
            ) from e

        stdout, stderr = await process.communicate()
        output = stdout.decode(errors="replace").strip()

        if check and process.returncode != 0:
            raise HostCommandError(
                f"Command failed: {' '.join(args[:2])}",
                details={
                    "argv": argv,
                    "exit_status": process.returncode,
                    "stderr": stderr.decode(errors="replace").strip(),
                },
            )

        return process.returncode, output

    async def _run_json(self, *args: str) -> list:
        _, output = await self._run(*args)
        try:
            data = json.loads(output or "[]")
        except ValueError as e:
            raise HostCommandError(
                f"Unexpected output from {' '.join(args[:2])}: {e}",
                details={"output": output[:200]},
            ) from e
        return data if isinstance(data, list) else []

    async def core_version(self) -> str:
        _, output = await self._run("core", "version")
        return output

    async def is_multisite(self) -> bool:
        status, _ = await self._run("core", "is-installed", "--network", check=False)
        return status == 0

    async def export_database(self, dest_dir: Path) -> Path:
        # wp locates the site from --path or the process cwd, so the dump
        # target is passed as an absolute file instead of changing directory
        dump = Path(dest_dir).absolute() / DATABASE_DUMP_FILENAME
        _, output = await self._run(
            "db", "export", str(dump), "--add-drop-table", "--porcelain"
        )
        # --porcelain prints only the file name
        lines = output.splitlines()
        if not lines:
            raise HostCommandError("Database export did not report a file name")
        return dump.parent / Path(lines[-1].strip()).name

    async def import_database(self, dump_path: Path) -> None:
        await self._run("db", "import", str(dump_path))

    async def database_size(self) -> int:
        _, output = await self._run("db", "size", "--size_format=b")
        match = re.search(r"\d+", output)
        return int(match.group()) if match else 0

    async def list_plugins(self) -> List[ExtensionInfo]:
        rows = await self._run_json(
            "plugin", "list", "--fields=name,title,file,version,status", "--format=json"
        )
        return [
            ExtensionInfo(
                name=row.get("title") or row.get("name", ""),
                version=row.get("version", ""),
                identifier=row.get("file") or row.get("name", ""),
                is_active=row.get("status") in ACTIVE_PLUGIN_STATUSES,
            )
            for row in rows
        ]

    async def list_themes(self) -> List[ExtensionInfo]:
        rows = await self._run_json(
            "theme", "list", "--fields=name,title,version,status", "--format=json"
        )
        _, theme_root = await self._run("eval", "echo get_theme_root();")
        return [
            ExtensionInfo(
                name=row.get("title") or row.get("name", ""),
                version=row.get("version", ""),
                identifier=row.get("name", ""),
                directory=str(Path(theme_root) / row.get("name", "")),
            )
            for row in rows
        ]

    async def active_theme_directory(self) -> str:
        _, output = await self._run("eval", "echo get_stylesheet_directory();")
        return output

    async def verify_core_checksums(self) -> bool:
        status, _ = await self._run("core", "verify-checksums", check=False)
        return status == 0

    async def install_core(self, version: str) -> None:
        await self._run("core", "download", f"--version={version}", "--force")

    async def remove_all_plugins(self) -> None:
        await self._run("plugin", "deactivate", "--all")
        await self._run("plugin", "uninstall", "--all")

    async def remove_all_themes(self) -> None:
        await self._run("theme", "delete", "--all", "--force")

    async def install_plugin(self, slug: str, version: str, activate: bool) -> None:
        args = ["plugin", "install", slug, f"--version={version}"]
        if activate:
            args.append("--activate")
        await self._run(*args)

    async def install_theme(self, slug: str, version: str, activate: bool) -> None:
        args = ["theme", "install", slug, f"--version={version}"]
        if activate:
            args.append("--activate")
        await self._run(*args)
