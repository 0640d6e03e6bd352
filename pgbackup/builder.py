# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgbackup Builder - Functional builder pattern for configuration.

This module provides pure functions for building BackupConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from pgbackup.config import BackupConfig
from pgbackup.retention import DEFAULT_MAX_AGE_DAYS


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial empty configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "bucket": "",
        "region": "us-east-1",
        "endpoint_url": None,
        "staging_root": Path("/tmp"),
        "retention_days": DEFAULT_MAX_AGE_DAYS,
        "compress_level": 6,
        "pg_dump_path": "pg_dump",
        "psql_path": "psql",
        "max_concurrent_ops": 4,
    }


def with_bucket(config: ConfigDict, bucket_name: str) -> ConfigDict:
    """
    Set the bucket name.

    Args:
        config: Current configuration dictionary
        bucket_name: Name of the bucket holding backups

    Returns:
        New configuration dictionary with bucket set
    """
    return {**config, "bucket": bucket_name}


def with_region(config: ConfigDict, region: str) -> ConfigDict:
    """Set the storage region."""
    return {**config, "region": region}


def with_endpoint(config: ConfigDict, endpoint_url: str | None) -> ConfigDict:
    """
    Point the storage client at an S3-compatible endpoint.

    Use "https://storage.googleapis.com" with HMAC keys for Google Cloud
    Storage.
    """
    return {**config, "endpoint_url": endpoint_url}


def stage_under(config: ConfigDict, staging_root: Path | str) -> ConfigDict:
    """Set the local directory where dumps are staged."""
    return {**config, "staging_root": Path(staging_root)}


def keep_backups_for(config: ConfigDict, days: int) -> ConfigDict:
    """
    Set the retention window in days.

    Backups older than this are removed by clean runs.

    Args:
        config: Current configuration dictionary
        days: Retention window in whole days

    Returns:
        New configuration dictionary with retention set
    """
    if days < 0:
        raise ValueError(f"retention days must be >= 0, got {days}")
    return {**config, "retention_days": days}


def use_binaries(
    config: ConfigDict,
    pg_dump_path: str | None = None,
    psql_path: str | None = None,
) -> ConfigDict:
    """Override the pg_dump and psql executables."""
    updated = dict(config)
    if pg_dump_path:
        updated["pg_dump_path"] = pg_dump_path
    if psql_path:
        updated["psql_path"] = psql_path
    return updated


def with_compress_level(config: ConfigDict, level: int) -> ConfigDict:
    return {**config, "compress_level": level}


def with_max_concurrent_ops(config: ConfigDict, max_ops: int) -> ConfigDict:
    return {**config, "max_concurrent_ops": max_ops}


def build_config(config: ConfigDict) -> BackupConfig:
    """
    Build a frozen BackupConfig from a configuration dictionary.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    return BackupConfig(**config)


def pipe(config: ConfigDict, *funcs: BuilderFunc) -> ConfigDict:
    """
    Apply builder functions left to right.

    Example:
        config = pipe(
            create_empty_config(),
            lambda c: with_bucket(c, "my-backups"),
            lambda c: keep_backups_for(c, 30),
        )
    """
    for func in funcs:
        config = func(config)
    return config


def create_config(
    bucket: str,
    region: str = "us-east-1",
    endpoint_url: str | None = None,
    staging_root: Path | str = Path("/tmp"),
    retention_days: int = DEFAULT_MAX_AGE_DAYS,
    compress_level: int = 6,
    pg_dump_path: str = "pg_dump",
    psql_path: str = "psql",
    max_concurrent_ops: int = 4,
) -> BackupConfig:
    """
    Create a BackupConfig in one call.

    This is the primary user-facing way to configure pgbackup.

    Example:
        config = create_config(
            bucket="my-backups",
            endpoint_url="https://storage.googleapis.com",
            retention_days=30,
        )
    """
    config = create_empty_config()
    config = with_bucket(config, bucket)
    config = with_region(config, region)
    config = with_endpoint(config, endpoint_url)
    config = stage_under(config, staging_root)
    config = keep_backups_for(config, retention_days)
    config = with_compress_level(config, compress_level)
    config = use_binaries(config, pg_dump_path, psql_path)
    config = with_max_concurrent_ops(config, max_concurrent_ops)
    return build_config(config)
