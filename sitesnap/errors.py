# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for sitesnap.

These helpers centralize wording for common setup and input errors so that
the CLI, the engine and the HTTP surface present the same actionable text.
"""


def explain_unusable_snapshot_root(path: str, reason: str) -> str:
    """
    Explain that the snapshot root directory cannot be used.
    """

    return (
        f"Snapshot directory {path} is not usable: {reason}. "
        "Create its parent directory or point SITESNAP_ROOT somewhere writable."
    )


def explain_missing_archive_tooling() -> str:
    """
    Explain that zip/deflate support is not available in this interpreter.
    """

    return (
        "Snapshot command requires zip archive support (zlib). "
        "Install a Python build that ships the zlib module."
    )


def explain_multisite_config_only() -> str:
    """
    Explain that config-only capture is refused on multisite installations.
    """

    return (
        "Multisite is not supported in config-only mode. "
        "Run the command again with a full backup (--full)."
    )


def explain_missing_credential(service: str, key: str) -> str:
    """
    Explain that a stored credential is missing for a storage service.
    """

    return (
        f"Storage service {service!r} is missing the {key!r} setting. "
        f"Run 'sitesnap configure {service}' first."
    )


def explain_unknown_peer(alias: str) -> str:
    """
    Explain that a peer alias has no configured connection string.
    """

    return (
        f"Unknown peer alias {alias!r}. "
        "Define it in SITESNAP_PEERS, e.g. SITESNAP_PEERS='staging=deploy@staging.example.com'."
    )


def explain_invalid_connection_string(value: str) -> str:
    """
    Explain that a peer connection string could not be parsed.
    """

    return (
        f"Invalid peer connection string: {value!r}. "
        "Expected the form user@host or user@host:port."
    )


def explain_peer_connection_failed(host: str) -> str:
    """
    Explain that the remote shell connection could not be established.
    """

    return (
        f"Could not connect to {host}. "
        "Check that the host is reachable and that your SSH key is authorized."
    )


def explain_invalid_peers_env(value: str | None) -> str:
    """
    Explain that SITESNAP_PEERS is malformed.
    """

    return (
        f"Invalid SITESNAP_PEERS value: {value!r}. "
        "Expected a comma-separated list of alias=user@host[:port] entries."
    )
