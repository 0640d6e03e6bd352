# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgbackup Exceptions - Custom exceptions for the pgbackup package.

Parse misses (a key without a timestamp) are not exceptions: the
addressing helpers return None for them and callers skip the entry.
"""


class PGBackupError(Exception):
    """Base exception for all pgbackup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PGBackupError):
    """Raised when configuration is invalid."""

    pass


class InvalidIdentifierError(PGBackupError):
    """Raised when a host or database name cannot be used in a storage key."""

    pass


class StorageError(PGBackupError):
    """Raised when blob store operations fail."""

    pass


class ObjectNotFoundError(StorageError):
    """Raised when a remote object does not exist."""

    pass


class TransientStorageError(StorageError):
    """Raised on network or storage failures. Never retried by pgbackup."""

    pass


class BackupError(PGBackupError):
    """Raised when backup operations fail."""

    pass


class DumpError(BackupError):
    """Raised when pg_dump exits with a non-zero status."""

    pass


class RestoreError(PGBackupError):
    """Raised when restore operations fail."""

    pass


class ToolNotFoundError(PGBackupError):
    """Raised when a required executable is not on PATH."""

    pass
