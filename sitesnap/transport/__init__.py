# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Transport - Moving archives to and from remote stores and peers.
"""

from sitesnap.transport.blob import SERVICE_SETTINGS, BlobStore, optional_settings, required_settings
from sitesnap.transport.peer import (
    CONNECTION_FAILED_STATUS,
    PeerTarget,
    PeerTransport,
    decode_message,
    encode_message,
    parse_connection_string,
)

__all__ = [
    # Blob store
    "BlobStore",
    "SERVICE_SETTINGS",
    "required_settings",
    "optional_settings",
    # Peer
    "CONNECTION_FAILED_STATUS",
    "PeerTarget",
    "PeerTransport",
    "parse_connection_string",
    "encode_message",
    "decode_message",
]
