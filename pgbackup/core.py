# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgbackup Core - Backup, restore, list and clean orchestration.

This module ties the pieces together:

- the addressing helpers name every artifact (remote key and staging path)
- pg_dump / psql produce and consume the dumps
- the blob store holds them
- the retention evaluator decides what clean removes

Every run is stateless. The bucket listing is the only source of truth.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

import structlog
from ulid import ULID

from pgbackup.addressing import (
    BackupArtifact,
    key_prefix,
    parse_backup_filename,
    parse_remote_key,
    parse_timestamp,
    strip_bucket_url,
)
from pgbackup.config import BackupConfig
from pgbackup.dump import DatabaseTarget, dump_to_file, restore_from_file
from pgbackup.errors import explain_unresolvable_backup
from pgbackup.exceptions import (
    InvalidIdentifierError,
    ObjectNotFoundError,
    PGBackupError,
    StorageError,
)
from pgbackup.retention import RetentionPolicy, age_in_days, evaluate_retention
from pgbackup.storage.base import BlobStore

logger = structlog.get_logger()


@dataclass
class BackupResult:
    """Result of backing up one database."""

    operation_id: str  # ULID
    host: str
    database: str
    key: str
    size_bytes: int
    created_at: datetime
    duration_seconds: float


@dataclass
class RestoreResult:
    """Result of restoring one backup into a database."""

    operation_id: str
    host: str
    database: str
    key: str
    duration_seconds: float


@dataclass
class BackupListing:
    """One remote backup as seen in a listing."""

    key: str
    created_at: datetime | None
    age_days: int | None


@dataclass
class CleanResult:
    """Result of pruning old backups for one database."""

    operation_id: str
    host: str
    database: str
    max_age_days: int
    dry_run: bool
    total_listed: int
    expired_keys: List[str] = field(default_factory=list)
    deleted_keys: List[str] = field(default_factory=list)
    missing_keys: List[str] = field(default_factory=list)
    failed_keys: List[str] = field(default_factory=list)
    unparseable_keys: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_keys)


def _remove_staged(path: Path, staging_root: Path) -> None:
    """Remove a staged file and any directories it leaves empty."""
    path.unlink(missing_ok=True)
    parent = path.parent
    while parent != staging_root and staging_root in parent.parents:
        try:
            parent.rmdir()
        except OSError:
            # Not empty (another backup of the same database is staged)
            break
        parent = parent.parent


# ============================================================================
# Backup
# ============================================================================

async def perform_backup(
    config: BackupConfig,
    target: DatabaseTarget,
    store: BlobStore,
    *,
    now: datetime | None = None,
) -> BackupResult:
    """
    Dump a database, upload it, then remove the staged file.

    The staged file is removed only after the upload succeeds. If pg_dump
    fails nothing is uploaded. If the upload fails the staged file is left
    in place for manual recovery and the storage error propagates.

    Args:
        config: Backup configuration
        target: Database to back up
        store: Blob store to upload into
        now: Backup timestamp (default: current local time)

    Returns:
        BackupResult with the storage key and size
    """
    operation_id = str(ULID())
    start_time = datetime.now(UTC)

    artifact = BackupArtifact(
        host=target.host,
        database=target.database,
        created_at=now or datetime.now(),
    )
    key = artifact.storage_key
    staging_path = artifact.staging_path(config.staging_root)

    logger.info(
        "backup_started",
        operation_id=operation_id,
        host=target.host,
        database=target.database,
        key=key,
    )

    try:
        size = await dump_to_file(
            target,
            staging_path,
            pg_dump_path=config.pg_dump_path,
            compress_level=config.compress_level,
        )
    except PGBackupError as e:
        logger.error(
            "backup_dump_failed",
            operation_id=operation_id,
            host=target.host,
            database=target.database,
            error=str(e),
        )
        raise

    try:
        await store.upload_file(key, staging_path)
    except StorageError as e:
        logger.error(
            "backup_upload_failed",
            operation_id=operation_id,
            key=key,
            staging_path=str(staging_path),
            error=str(e),
        )
        raise

    _remove_staged(staging_path, config.staging_root)

    duration = (datetime.now(UTC) - start_time).total_seconds()

    logger.info(
        "backup_uploaded",
        operation_id=operation_id,
        key=key,
        size=size,
        duration=duration,
    )

    return BackupResult(
        operation_id=operation_id,
        host=target.host,
        database=target.database,
        key=key,
        size_bytes=size,
        created_at=artifact.created_at,
        duration_seconds=duration,
    )


async def perform_backups(
    config: BackupConfig,
    targets: Sequence[DatabaseTarget],
    store: BlobStore,
) -> List[BackupResult | BaseException]:
    """
    Back up several databases, at most config.max_concurrent_ops at once.

    One failing database does not stop the others. Targets naming the
    same host and database are backed up once, since they would share a
    storage key, and share that result.

    Returns:
        One entry per target, in order: a BackupResult or the exception
        raised for that target
    """
    semaphore = asyncio.Semaphore(config.max_concurrent_ops)

    async def _one(target: DatabaseTarget) -> BackupResult:
        async with semaphore:
            return await perform_backup(config, target, store)

    unique: Dict[Tuple[str, str], DatabaseTarget] = {}
    for target in targets:
        unique.setdefault((target.host, target.database), target)

    results = await asyncio.gather(
        *(_one(t) for t in unique.values()), return_exceptions=True
    )
    by_address = dict(zip(unique, results))
    return [by_address[(t.host, t.database)] for t in targets]


# ============================================================================
# Restore
# ============================================================================

def resolve_backup(target: DatabaseTarget, backup: str) -> BackupArtifact:
    """
    Turn a user-supplied backup reference into an artifact.

    Accepted forms:
    - "host/database/YYYYMMDD_HHMMSS.sql.gz" (optionally as a gs:// or
      s3:// URL); the backup may come from another host or database
    - "YYYYMMDD_HHMMSS.sql.gz" or "YYYYMMDD_HHMMSS"; resolved against
      the target's host and database

    Raises:
        InvalidIdentifierError: If the reference names no backup
    """
    reference = strip_bucket_url(backup.strip())

    artifact = parse_remote_key(reference)
    if artifact is not None:
        return artifact

    created_at = parse_backup_filename(reference)
    if created_at is not None:
        return BackupArtifact(
            host=target.host,
            database=target.database,
            created_at=created_at,
        )

    raise InvalidIdentifierError(
        explain_unresolvable_backup(backup),
        details={"backup": backup},
    )


def latest_backup(keys: Iterable[str]) -> str | None:
    """
    Return the newest restorable key, if any.

    Only canonical "host/database/YYYYMMDD_HHMMSS.sql.gz" keys count;
    other files with a timestamp in their name cannot be resolved.
    """
    dated: List[Tuple[datetime, str]] = []
    for key in keys:
        artifact = parse_remote_key(key)
        if artifact is not None:
            dated.append((artifact.created_at, key))
    if not dated:
        return None
    return max(dated)[1]


async def perform_restore(
    config: BackupConfig,
    target: DatabaseTarget,
    store: BlobStore,
    backup: str | None = None,
) -> RestoreResult:
    """
    Download a backup and apply it to a database.

    Args:
        config: Backup configuration
        target: Database to restore into
        store: Blob store holding the backup
        backup: Backup reference (see resolve_backup); None restores the
            newest backup of the target database

    Returns:
        RestoreResult

    Raises:
        InvalidIdentifierError: If backup cannot be resolved
        ObjectNotFoundError: If the backup does not exist
        RestoreError: If psql fails (the staged file is kept)
    """
    operation_id = str(ULID())
    start_time = datetime.now(UTC)

    if backup is None:
        prefix = key_prefix(target.host, target.database)
        newest = latest_backup(await store.list_keys(prefix))
        if newest is None:
            raise ObjectNotFoundError(
                f"No backups found under {prefix}",
                details={"prefix": prefix},
            )
        backup = newest

    artifact = resolve_backup(target, backup)
    key = artifact.storage_key
    staging_path = artifact.staging_path(config.staging_root)

    logger.info(
        "restore_started",
        operation_id=operation_id,
        host=target.host,
        database=target.database,
        key=key,
    )

    await store.download_file(key, staging_path)
    logger.debug("restore_downloaded", operation_id=operation_id, key=key)

    try:
        await restore_from_file(target, staging_path, psql_path=config.psql_path)
    except PGBackupError as e:
        logger.error(
            "restore_failed",
            operation_id=operation_id,
            key=key,
            staging_path=str(staging_path),
            error=str(e),
        )
        raise

    _remove_staged(staging_path, config.staging_root)

    duration = (datetime.now(UTC) - start_time).total_seconds()

    logger.info(
        "restore_completed",
        operation_id=operation_id,
        host=target.host,
        database=target.database,
        key=key,
        duration=duration,
    )

    return RestoreResult(
        operation_id=operation_id,
        host=target.host,
        database=target.database,
        key=key,
        duration_seconds=duration,
    )


# ============================================================================
# List
# ============================================================================

async def list_backups(
    store: BlobStore,
    host: str,
    database: str,
    *,
    now: datetime | None = None,
) -> List[BackupListing]:
    """
    List the backups of one database, newest first.

    Keys without a timestamp are listed last with created_at=None.
    """
    if now is None:
        now = datetime.now()

    keys = await store.list_keys(key_prefix(host, database))

    dated: List[BackupListing] = []
    undated: List[BackupListing] = []
    for key in keys:
        created_at = parse_timestamp(key)
        if created_at is None:
            undated.append(BackupListing(key=key, created_at=None, age_days=None))
        else:
            dated.append(
                BackupListing(
                    key=key,
                    created_at=created_at,
                    age_days=age_in_days(created_at, now),
                )
            )

    dated.sort(key=lambda b: (b.created_at, b.key), reverse=True)
    undated.sort(key=lambda b: b.key)
    return dated + undated


# ============================================================================
# Clean
# ============================================================================

async def delete_old_backups(
    config: BackupConfig,
    host: str,
    database: str,
    store: BlobStore,
    *,
    policy: RetentionPolicy | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
) -> CleanResult:
    """
    Delete backups of one database that are past the retention window.

    Keys without a parseable timestamp are never deleted. A key that is
    already gone counts as missing; any other delete failure is recorded
    and the remaining keys are still processed.

    Args:
        config: Backup configuration (supplies the default policy)
        host: Database host
        database: Database name
        store: Blob store holding the backups
        policy: Retention policy (default: config.retention_policy)
        now: Evaluation time (default: current local time)
        dry_run: Report what would be deleted without deleting

    Returns:
        CleanResult
    """
    operation_id = str(ULID())
    start_time = datetime.now(UTC)
    policy = policy or config.retention_policy

    keys = await store.list_keys(key_prefix(host, database))
    decision = evaluate_retention(keys, policy, now)

    logger.info(
        "clean_started",
        operation_id=operation_id,
        host=host,
        database=database,
        max_age_days=policy.max_age_days,
        listed=len(keys),
        expired=len(decision.expired),
        dry_run=dry_run,
    )

    result = CleanResult(
        operation_id=operation_id,
        host=host,
        database=database,
        max_age_days=policy.max_age_days,
        dry_run=dry_run,
        total_listed=len(keys),
        expired_keys=sorted(decision.expired),
        unparseable_keys=sorted(decision.unparseable),
    )

    for key in result.expired_keys:
        if dry_run:
            logger.info("backup_would_prune", operation_id=operation_id, key=key)
            continue

        try:
            await store.delete(key)
        except ObjectNotFoundError:
            result.missing_keys.append(key)
            logger.debug("backup_already_gone", operation_id=operation_id, key=key)
            continue
        except StorageError as e:
            result.failed_keys.append(key)
            result.errors.append(f"{key}: {e}")
            logger.error(
                "backup_prune_failed",
                operation_id=operation_id,
                key=key,
                error=str(e),
            )
            continue

        result.deleted_keys.append(key)
        logger.info("backup_pruned", operation_id=operation_id, key=key)

    result.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()

    logger.info(
        "clean_completed",
        operation_id=operation_id,
        host=host,
        database=database,
        deleted=len(result.deleted_keys),
        failed=len(result.failed_keys),
        skipped_unparseable=len(result.unparseable_keys),
        duration=result.duration_seconds,
        dry_run=dry_run,
    )

    return result


async def clean_many(
    config: BackupConfig,
    pairs: Sequence[Tuple[str, str]],
    store: BlobStore,
    *,
    policy: RetentionPolicy | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
) -> List[CleanResult | BaseException]:
    """
    Run delete_old_backups for several (host, database) pairs.

    Returns:
        One entry per pair, in order: a CleanResult or the exception
        raised for that pair
    """
    semaphore = asyncio.Semaphore(config.max_concurrent_ops)

    async def _one(host: str, database: str) -> CleanResult:
        async with semaphore:
            return await delete_old_backups(
                config,
                host,
                database,
                store,
                policy=policy,
                now=now,
                dry_run=dry_run,
            )

    return list(
        await asyncio.gather(*(_one(h, d) for h, d in pairs), return_exceptions=True)
    )
