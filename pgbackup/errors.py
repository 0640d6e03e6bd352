# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for pgbackup.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""

from typing import Iterable


def explain_missing_bucket_env() -> str:
    """
    Explain that the bucket environment variable is missing.
    """

    return (
        "Backup bucket is not configured. "
        "Set the PGBACKUP_BUCKET environment variable or pass bucket=... to create_config()."
    )


def explain_invalid_retention_days_env(value: str | None) -> str:
    """
    Explain that PGBACKUP_RETENTION_DAYS is invalid.
    """

    return (
        f"Invalid PGBACKUP_RETENTION_DAYS value: {value!r}. "
        "It must be a non-negative integer number of days."
    )


def explain_invalid_compress_level_env(value: str | None) -> str:
    """
    Explain that PGBACKUP_COMPRESS_LEVEL is invalid.
    """

    return (
        f"Invalid PGBACKUP_COMPRESS_LEVEL value: {value!r}. "
        "It must be an integer between 1 and 9."
    )


def explain_invalid_port(value: str | None) -> str:
    """
    Explain that a PostgreSQL port value is invalid.
    """

    return (
        f"Invalid PostgreSQL port: {value!r}. "
        "It must be an integer between 1 and 65535."
    )


def explain_invalid_identifier(kind: str, value: str) -> str:
    """
    Explain why a host or database name cannot be used in a storage key.
    """

    if not value:
        return f"{kind} must not be empty."
    return (
        f"Invalid {kind}: {value!r}. "
        "It must not contain '/', because it becomes one segment of the storage key."
    )


def explain_unresolvable_backup(value: str) -> str:
    """
    Explain that a restore argument names no recognizable backup.
    """

    return (
        f"Cannot resolve backup {value!r}. "
        "Pass a key like 'host/database/YYYYMMDD_HHMMSS.sql.gz' or a bare "
        "'YYYYMMDD_HHMMSS.sql.gz' filename."
    )


def explain_missing_tools(names: Iterable[str]) -> str:
    """
    Explain that required executables are not installed.
    """

    missing = ", ".join(sorted(names))
    return (
        f"Required tools not found on PATH: {missing}. "
        "Install the PostgreSQL client tools before running backup or restore."
    )
