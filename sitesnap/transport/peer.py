# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Peer Transport - Copy archives to another environment over SSH.

A push to a peer is two steps:
1. The archive is copied into the peer's snapshot root under a temporary
   upload name, so an existing archive there is never clobbered.
2. `<remote_command> receive` is started over SSH and sent one JSON request
   line on stdin. The peer answers with one JSON line.

No user-supplied text ever becomes part of a remote shell command: the
remote argv is fixed and everything variable travels in the request line.
"""

import asyncio
import json
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List

import structlog
from ulid import ULID

from sitesnap.errors import explain_invalid_connection_string, explain_peer_connection_failed
from sitesnap.exceptions import RemoteError, ValidationError

logger = structlog.get_logger()

# Exit status ssh/scp use when the connection itself could not be made
CONNECTION_FAILED_STATUS = 255

PROTOCOL_ACTIONS = ("pull",)

# Uploads land under this prefix until the peer catalogs them
INCOMING_PREFIX = ".incoming-"

_CONNECTION_RE = re.compile(r"^(?P<user>[^@\s:/]+)@(?P<host>[^@\s:/]+)(?::(?P<port>\d+))?$")


@dataclass(frozen=True)
class PeerTarget:
    """A parsed peer connection string."""

    user: str
    host: str
    port: int = 22

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"


def parse_connection_string(value: str) -> PeerTarget:
    """
    Parse "user@host" or "user@host:port".

    Raises:
        ValidationError: If user or host is missing or the port is invalid
    """
    match = _CONNECTION_RE.match((value or "").strip())
    if not match:
        raise ValidationError(
            explain_invalid_connection_string(value),
            details={"connection": value},
        )

    port = int(match.group("port") or 22)
    if not 0 < port < 65536:
        raise ValidationError(
            explain_invalid_connection_string(value),
            details={"connection": value, "port": port},
        )

    return PeerTarget(user=match.group("user"), host=match.group("host"), port=port)


def upload_name(filename: str) -> str:
    """Temporary name an archive is copied under on the peer."""
    return f"{INCOMING_PREFIX}{ULID()}-{filename}"


def check_bare_filename(filename: Any) -> str:
    """
    Ensure a name received over the wire names a file, not a path.

    Raises:
        ValidationError: If the name is empty or contains path components
    """
    if not isinstance(filename, str) or not filename:
        raise ValidationError("Request filename must be a non-empty string")

    if PurePosixPath(filename).name != filename or "\\" in filename or filename in (".", ".."):
        raise ValidationError(
            f"Request filename must not contain path components: {filename!r}",
            details={"filename": filename},
        )
    return filename


def encode_message(message: Dict[str, Any]) -> bytes:
    return (json.dumps(message, separators=(",", ":")) + "\n").encode()


def decode_message(line: bytes | str) -> Dict[str, Any]:
    """
    Decode one protocol line.

    Raises:
        ValidationError: If the line is not a JSON object
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")

    try:
        message = json.loads(line)
    except ValueError as e:
        raise ValidationError(f"Malformed protocol line: {e}") from e

    if not isinstance(message, dict):
        raise ValidationError("Protocol line must be a JSON object")
    return message


def pull_request(filename: str, upload: str) -> Dict[str, Any]:
    return {"action": "pull", "filename": filename, "upload": upload}


def ok_response(**fields) -> Dict[str, Any]:
    return {"status": "ok", **fields}


def error_response(error: str) -> Dict[str, Any]:
    return {"status": "error", "error": error}


class PeerTransport:
    """Runs the copy and remote-shell binaries against a peer."""

    def __init__(
        self,
        ssh_binary: str = "ssh",
        copy_binary: str = "scp",
        remote_command: str = "sitesnap",
    ):
        self.ssh_binary = ssh_binary
        self.copy_binary = copy_binary
        self.remote_command = remote_command

    @classmethod
    def from_config(cls, config) -> "PeerTransport":
        return cls(
            ssh_binary=config.ssh_binary,
            copy_binary=config.copy_binary,
            remote_command=config.remote_command,
        )

    def copy_command(self, target: PeerTarget, local_path: Path, remote_path: str) -> List[str]:
        return [
            self.copy_binary,
            "-P",
            str(target.port),
            "-o",
            "BatchMode=yes",
            str(local_path),
            f"{target.destination}:{remote_path}",
        ]

    def receive_command(self, target: PeerTarget) -> List[str]:
        return [
            self.ssh_binary,
            "-p",
            str(target.port),
            "-o",
            "BatchMode=yes",
            target.destination,
            self.remote_command,
            "receive",
        ]

    async def copy_to_peer(self, target: PeerTarget, local_path: Path, remote_path: str) -> int:
        """
        Copy a local archive to a path on the peer.

        Returns:
            The copy binary's exit status (0 on success, 255 when the
            connection could not be established)
        """
        argv = self.copy_command(target, local_path, remote_path)
        logger.info("peer_copy_started", host=target.host, port=target.port, remote_path=remote_path)

        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()

        if process.returncode != 0:
            logger.error(
                "peer_copy_failed",
                host=target.host,
                exit_status=process.returncode,
                stderr=stderr.decode(errors="replace").strip(),
            )
        else:
            logger.info("peer_copy_completed", host=target.host)

        return process.returncode

    async def trigger_remote_pull(
        self, target: PeerTarget, filename: str, upload: str
    ) -> Dict[str, Any]:
        """
        Ask the peer to import an archive that was just copied to it.

        Returns:
            The peer's "ok" response

        Raises:
            RemoteError: If the connection fails or the peer reports an error
        """
        process = await asyncio.create_subprocess_exec(
            *self.receive_command(target),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate(encode_message(pull_request(filename, upload)))

        if process.returncode == CONNECTION_FAILED_STATUS:
            raise RemoteError(
                explain_peer_connection_failed(target.host),
                details={"host": target.host},
                exit_status=process.returncode,
                connection_failed=True,
            )

        lines = [line for line in stdout.splitlines() if line.strip()]
        if not lines:
            raise RemoteError(
                "Peer returned no response",
                details={
                    "host": target.host,
                    "stderr": stderr.decode(errors="replace").strip(),
                },
                exit_status=process.returncode,
            )

        try:
            response = decode_message(lines[-1])
        except ValidationError as e:
            raise RemoteError(
                f"Peer returned an unreadable response: {e.message}",
                details={"host": target.host},
                exit_status=process.returncode,
            ) from e

        if response.get("status") != "ok":
            raise RemoteError(
                f"Peer rejected the archive: {response.get('error', 'unknown error')}",
                details={"host": target.host, "filename": filename},
                exit_status=process.returncode,
            )

        logger.info(
            "peer_pull_completed",
            host=target.host,
            filename=filename,
            snapshot_id=response.get("snapshot_id"),
        )
        return response

    async def push(self, target: PeerTarget, local_path: Path, remote_dir: str) -> Dict[str, Any]:
        """
        Copy an archive to a peer and have the peer catalog it.

        Raises:
            RemoteError: On copy failure (connection_failed for status 255)
                or when the peer's import fails
        """
        local_path = Path(local_path)
        upload = upload_name(local_path.name)
        remote_path = f"{remote_dir.rstrip('/')}/{upload}"

        status = await self.copy_to_peer(target, local_path, remote_path)
        if status == CONNECTION_FAILED_STATUS:
            raise RemoteError(
                explain_peer_connection_failed(target.host),
                details={"host": target.host},
                exit_status=status,
                connection_failed=True,
            )
        if status != 0:
            raise RemoteError(
                f"Copy to {target.host} failed with exit status {status}",
                details={"host": target.host, "archive": local_path.name},
                exit_status=status,
            )

        return await self.trigger_remote_pull(target, local_path.name, upload)
