# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgbackup Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation and passed
explicitly into every operation; there is no process-wide state.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List
import re

from pgbackup.retention import DEFAULT_MAX_AGE_DAYS, RetentionPolicy


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate a bucket name against the rules shared by S3 and GCS.

    Rules:
    - 3-63 characters (up to 222 for dotted GCS names)
    - Lowercase letters, numbers, hyphens, underscores, periods
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3:
        return False

    max_len = 222 if "." in bucket else 63
    if len(bucket) > max_len:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9._-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


def _validate_endpoint_url(url: str) -> bool:
    return bool(re.match(r"^https?://[^/\s]+", url))


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for backup, restore, list and clean runs.

    Database credentials are not part of the config; they travel with
    each DatabaseTarget.
    """

    # Required: bucket holding the backups
    bucket: str

    # Region for the S3 client (default: us-east-1)
    region: str = "us-east-1"

    # S3-compatible endpoint, e.g. https://storage.googleapis.com for GCS
    endpoint_url: str | None = None

    # Root directory for staged dump files
    staging_root: Path = field(default_factory=lambda: Path("/tmp"))

    # Backups older than this many whole days are removed by clean
    retention_days: int = DEFAULT_MAX_AGE_DAYS

    # gzip compression level for dumps
    compress_level: int = 6

    # Executables used to dump and restore
    pg_dump_path: str = "pg_dump"
    psql_path: str = "psql"

    # Maximum databases processed at once in multi-database runs
    max_concurrent_ops: int = 4

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not _validate_bucket_name(self.bucket):
            errors.append(f"Invalid bucket name: {self.bucket}")

        if not isinstance(self.retention_days, int) or self.retention_days < 0:
            errors.append(f"retention_days must be >= 0, got {self.retention_days}")

        if not 1 <= self.compress_level <= 9:
            errors.append(f"compress_level must be between 1 and 9, got {self.compress_level}")

        if self.endpoint_url and not _validate_endpoint_url(self.endpoint_url):
            errors.append(f"Invalid endpoint_url: {self.endpoint_url}")

        if not self.pg_dump_path:
            errors.append("pg_dump_path must not be empty")

        if not self.psql_path:
            errors.append("psql_path must not be empty")

        if self.max_concurrent_ops < 1:
            errors.append(f"max_concurrent_ops must be >= 1, got {self.max_concurrent_ops}")

        # Raise all errors at once
        if errors:
            from pgbackup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

        if not isinstance(self.staging_root, Path):
            object.__setattr__(self, "staging_root", Path(self.staging_root))

    @property
    def retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(max_age_days=self.retention_days)

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return BackupConfig(**current)
