# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Site Snapshot Exceptions - Custom exceptions for the sitesnap package.
"""

from typing import List


class SnapshotError(Exception):
    """Base exception for all sitesnap errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class SetupError(SnapshotError):
    """Raised when the snapshot root or archive tooling is unusable."""

    pass


class NotFoundError(SnapshotError):
    """Raised when a snapshot id/name does not exist in the catalog."""

    pass


class ValidationError(SnapshotError):
    """Raised when input, credentials or mode combinations are invalid."""

    pass


class ConfirmationDeclined(ValidationError):
    """Raised when the operator does not confirm a destructive action."""

    pass


class IntegrityError(SnapshotError):
    """Raised when an archive manifest fails its integrity tag check."""

    pass


class RemoteError(SnapshotError):
    """Raised when an upload, download or peer copy fails."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        exit_status: int | None = None,
        connection_failed: bool = False,
    ):
        self.exit_status = exit_status
        self.connection_failed = connection_failed
        super().__init__(message, details)


class StorageError(SnapshotError):
    """Raised when catalog operations fail."""

    pass


class ArchiveError(SnapshotError):
    """Raised when an archive cannot be built or safely extracted."""

    pass


class HostCommandError(SnapshotError):
    """Raised when a host application command exits non-zero."""

    pass


class RestoreError(SnapshotError):
    """Raised when a restore step fails after earlier steps already ran."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        completed_steps: List[str] | None = None,
    ):
        self.completed_steps = list(completed_steps or [])
        super().__init__(message, details)
