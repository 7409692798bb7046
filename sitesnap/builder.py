# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Builder - Functional builder pattern for configuration.

This module provides pure functions for building SnapshotConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from sitesnap.config import DEFAULT_REGISTRY_URL, SnapshotConfig, default_snapshot_root


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "snapshot_root": default_snapshot_root(),
        "content_root": Path("./wp-content"),
        "uploads_dir": None,
        "site_path": None,
        "wp_binary": "wp",
        "ssh_binary": "ssh",
        "copy_binary": "scp",
        "remote_command": "sitesnap",
        "remote_snapshot_root": "~/.wp-cli/snapshots",
        "peers": {},
        "registry_base_url": DEFAULT_REGISTRY_URL,
        "registry_timeout": 10.0,
    }


def with_snapshot_root(config: ConfigDict, path: Path | str) -> ConfigDict:
    """
    Set the directory that holds archives and the catalog.

    Args:
        config: Current configuration dictionary
        path: Snapshot root directory

    Returns:
        New configuration dictionary with the root set
    """
    return {**config, "snapshot_root": Path(path)}


def with_content_root(config: ConfigDict, path: Path | str) -> ConfigDict:
    """
    Set the site content tree captured by full backups.

    Args:
        config: Current configuration dictionary
        path: Content root (wp-content)

    Returns:
        New configuration dictionary with the content root set
    """
    return {**config, "content_root": Path(path)}


def with_uploads_dir(config: ConfigDict, path: Path | str) -> ConfigDict:
    """Set the media directory captured by config-only backups."""
    return {**config, "uploads_dir": Path(path)}


def with_site_path(config: ConfigDict, path: Path | str) -> ConfigDict:
    """Set the installation path handed to the host CLI."""
    return {**config, "site_path": Path(path).expanduser().absolute()}


def with_wp_binary(config: ConfigDict, binary: str) -> ConfigDict:
    """Set the host CLI binary."""
    return {**config, "wp_binary": binary}


def add_peer(config: ConfigDict, alias: str, connection: str) -> ConfigDict:
    """
    Register a peer environment reachable over a remote shell.

    Args:
        config: Current configuration dictionary
        alias: Short name used on the command line
        connection: Connection string, user@host or user@host:port

    Returns:
        New configuration dictionary with the peer added
    """
    new_peers = {**config["peers"], alias: connection}
    return {**config, "peers": new_peers}


def with_registry(config: ConfigDict, base_url: str, timeout: float = 10.0) -> ConfigDict:
    """Point extension lookups at a different registry."""
    return {**config, "registry_base_url": base_url.rstrip("/"), "registry_timeout": timeout}


def apply_builders(config: ConfigDict, *builders: BuilderFunc) -> ConfigDict:
    """
    Apply a sequence of builder functions to a config dict.

    Args:
        config: Starting configuration dictionary
        *builders: Single-argument builder functions

    Returns:
        Configuration dictionary with all builders applied
    """
    for builder in builders:
        config = builder(config)
    return config


def build_config(config: ConfigDict) -> SnapshotConfig:
    """
    Build the final immutable SnapshotConfig.

    Raises:
        ValidationError: If the configuration is invalid
    """
    return SnapshotConfig(**config)
