# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

These helpers are small wrappers around create_config() and
DatabaseTarget. They read well-known environment variables, including
the standard libpq ones (PGHOST, PGPORT, PGUSER, PGPASSWORD, PGDATABASE).
"""

from __future__ import annotations

import os
from pathlib import Path

from pgbackup.builder import create_config
from pgbackup.config import BackupConfig
from pgbackup.dump import DatabaseTarget
from pgbackup.errors import (
    explain_invalid_compress_level_env,
    explain_invalid_port,
    explain_invalid_retention_days_env,
    explain_missing_bucket_env,
)
from pgbackup.exceptions import ConfigurationError
from pgbackup.retention import DEFAULT_MAX_AGE_DAYS


def _parse_retention_days(value: str | None) -> int:
    if not value:
        return DEFAULT_MAX_AGE_DAYS
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_retention_days_env(value)) from exc
    if days < 0:
        raise ConfigurationError(explain_invalid_retention_days_env(value))
    return days


def _parse_compress_level(value: str | None) -> int:
    if not value:
        return 6
    try:
        level = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_compress_level_env(value)) from exc
    if not 1 <= level <= 9:
        raise ConfigurationError(explain_invalid_compress_level_env(value))
    return level


def parse_port(value: str | None) -> int:
    if not value:
        return 5432
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_port(value)) from exc
    if not 0 < port < 65536:
        raise ConfigurationError(explain_invalid_port(value))
    return port


def create_config_from_env(*, bucket: str | None = None) -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Required:
        - PGBACKUP_BUCKET: Bucket holding the backups, unless bucket is
          passed explicitly

    Optional environment variables:
        - AWS_REGION: Storage region (default: us-east-1)
        - PGBACKUP_ENDPOINT_URL: S3-compatible endpoint
          (https://storage.googleapis.com for GCS)
        - PGBACKUP_STAGING_ROOT: Staging directory (default: /tmp)
        - PGBACKUP_RETENTION_DAYS: Non-negative integer (default: 90)
        - PGBACKUP_COMPRESS_LEVEL: 1-9 (default: 6)
        - PGBACKUP_PG_DUMP / PGBACKUP_PSQL: Client tool paths
    """

    bucket = bucket or os.getenv("PGBACKUP_BUCKET")
    if not bucket:
        raise ConfigurationError(explain_missing_bucket_env())

    staging_env = os.getenv("PGBACKUP_STAGING_ROOT")

    return create_config(
        bucket=bucket,
        region=os.getenv("AWS_REGION", "us-east-1"),
        endpoint_url=os.getenv("PGBACKUP_ENDPOINT_URL") or None,
        staging_root=Path(staging_env) if staging_env else Path("/tmp"),
        retention_days=_parse_retention_days(os.getenv("PGBACKUP_RETENTION_DAYS")),
        compress_level=_parse_compress_level(os.getenv("PGBACKUP_COMPRESS_LEVEL")),
        pg_dump_path=os.getenv("PGBACKUP_PG_DUMP", "pg_dump"),
        psql_path=os.getenv("PGBACKUP_PSQL", "psql"),
    )


def target_from_env(
    host: str | None = None,
    database: str | None = None,
    user: str | None = None,
    password: str | None = None,
    port: int | None = None,
) -> DatabaseTarget:
    """
    Build a DatabaseTarget, filling gaps from the libpq environment.

    Explicit arguments win over PGHOST, PGDATABASE, PGUSER, PGPASSWORD
    and PGPORT.
    """
    return DatabaseTarget(
        host=host or os.getenv("PGHOST", ""),
        database=database or os.getenv("PGDATABASE", ""),
        user=user or os.getenv("PGUSER", "postgres"),
        password=password if password is not None else os.getenv("PGPASSWORD"),
        port=port if port is not None else parse_port(os.getenv("PGPORT")),
    )
