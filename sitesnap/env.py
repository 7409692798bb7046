# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

These helpers are small wrappers around the functional builder. They read a
fixed set of environment variables so the CLI and the HTTP surface can be
configured without code.
"""

from __future__ import annotations

import os
from typing import Dict

from sitesnap.builder import (
    add_peer,
    build_config,
    create_empty_config,
    with_content_root,
    with_site_path,
    with_snapshot_root,
    with_uploads_dir,
    with_wp_binary,
)
from sitesnap.config import SnapshotConfig
from sitesnap.errors import explain_invalid_peers_env
from sitesnap.exceptions import ValidationError


def _parse_peers(value: str | None) -> Dict[str, str]:
    if not value:
        return {}
    peers: Dict[str, str] = {}
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        alias, sep, connection = entry.partition("=")
        if not sep or not alias.strip() or not connection.strip():
            raise ValidationError(explain_invalid_peers_env(value))
        peers[alias.strip()] = connection.strip()
    return peers


def create_config_from_env() -> SnapshotConfig:
    """
    Create a SnapshotConfig from environment variables.

    Optional environment variables:
        - SITESNAP_ROOT: Snapshot root (default: ~/.wp-cli/snapshots)
        - SITESNAP_CONTENT_ROOT: Content tree (default: ./wp-content)
        - SITESNAP_UPLOADS_DIR: Media directory (default: <content>/uploads)
        - SITESNAP_SITE_PATH: Installation path for the host CLI
        - SITESNAP_WP_BINARY: Host CLI binary (default: wp)
        - SITESNAP_PEERS: alias=user@host[:port], comma separated
    """

    config = create_empty_config()

    root = os.getenv("SITESNAP_ROOT")
    if root:
        config = with_snapshot_root(config, os.path.expanduser(root))

    content_root = os.getenv("SITESNAP_CONTENT_ROOT")
    if content_root:
        config = with_content_root(config, content_root)

    uploads_dir = os.getenv("SITESNAP_UPLOADS_DIR")
    if uploads_dir:
        config = with_uploads_dir(config, uploads_dir)

    site_path = os.getenv("SITESNAP_SITE_PATH")
    if site_path:
        config = with_site_path(config, site_path)

    wp_binary = os.getenv("SITESNAP_WP_BINARY")
    if wp_binary:
        config = with_wp_binary(config, wp_binary)

    for alias, connection in _parse_peers(os.getenv("SITESNAP_PEERS")).items():
        config = add_peer(config, alias, connection)

    return build_config(config)
