# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgbackup - PostgreSQL backups in S3-compatible object storage.

Dumps databases with pg_dump, stores gzip snapshots under
"<host>/<database>/<YYYYMMDD_HHMMSS>.sql.gz", restores them with psql,
and prunes snapshots older than a retention window.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from pgbackup.builder import create_config
from pgbackup.config import BackupConfig

# Naming and retention
from pgbackup.addressing import (
    BackupArtifact,
    local_staging_path,
    parse_remote_key,
    parse_timestamp,
    remote_key,
)
from pgbackup.retention import (
    RetentionDecision,
    RetentionPolicy,
    evaluate_retention,
    select_expired,
)

# Orchestration
from pgbackup.core import (
    delete_old_backups,
    list_backups,
    perform_backup,
    perform_backups,
    perform_restore,
)
from pgbackup.dump import DatabaseTarget

# Environment-based configuration
from pgbackup.env import create_config_from_env, target_from_env

__all__ = [
    # Version
    "__version__",
    # Configuration
    "create_config",
    "create_config_from_env",
    "BackupConfig",
    "DatabaseTarget",
    "target_from_env",
    # Naming and retention
    "BackupArtifact",
    "remote_key",
    "local_staging_path",
    "parse_timestamp",
    "parse_remote_key",
    "RetentionPolicy",
    "RetentionDecision",
    "select_expired",
    "evaluate_retention",
    # Orchestration
    "perform_backup",
    "perform_backups",
    "perform_restore",
    "list_backups",
    "delete_old_backups",
]
