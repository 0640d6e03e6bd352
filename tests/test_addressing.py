# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for backup naming: storage keys, staging paths and timestamp parsing.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from pgbackup.addressing import (
    BackupArtifact,
    key_prefix,
    local_staging_path,
    parse_backup_filename,
    parse_remote_key,
    parse_timestamp,
    remote_key,
    strip_bucket_url,
)
from pgbackup.exceptions import InvalidIdentifierError


# ============================================================================
# remote_key / local_staging_path
# ============================================================================

def test_remote_key_format():
    key = remote_key("db1.example.com", "orders", datetime(2024, 3, 1, 10, 0, 0))
    assert key == "db1.example.com/orders/20240301_100000.sql.gz"


def test_remote_key_zero_pads_and_drops_microseconds():
    key = remote_key("h", "d", datetime(2024, 1, 2, 3, 4, 5, 999999))
    assert key == "h/d/20240102_030405.sql.gz"


def test_remote_key_converts_aware_timestamps_to_local_time():
    aware = datetime(2024, 3, 1, 10, 0, 0, tzinfo=timezone.utc)
    expected_local = aware.astimezone().replace(tzinfo=None)
    assert remote_key("h", "d", aware) == remote_key("h", "d", expected_local)


@pytest.mark.parametrize(
    "host, database",
    [
        ("", "orders"),
        ("db1", ""),
        ("db1/eu", "orders"),
        ("db1", "orders/archive"),
        ("..", "orders"),
        ("db1", "."),
        ("db1\\eu", "orders"),
    ],
)
def test_remote_key_rejects_invalid_identifiers(host, database):
    with pytest.raises(InvalidIdentifierError):
        remote_key(host, database, datetime(2024, 3, 1))


def test_local_staging_path_mirrors_remote_key(temp_dir: Path):
    created_at = datetime(2024, 3, 1, 10, 0, 0)
    path = local_staging_path(temp_dir, "db1.example.com", "orders", created_at)

    assert path == temp_dir / "db1.example.com" / "orders" / "20240301_100000.sql.gz"
    assert path.relative_to(temp_dir).as_posix() == remote_key(
        "db1.example.com", "orders", created_at
    )


def test_local_staging_path_rejects_invalid_identifiers(temp_dir: Path):
    with pytest.raises(InvalidIdentifierError):
        local_staging_path(temp_dir, "db1", "../etc", datetime(2024, 3, 1))


def test_key_prefix_scopes_one_database():
    assert key_prefix("db1", "orders") == "db1/orders/"
    assert remote_key("db1", "orders", datetime(2024, 3, 1)).startswith(
        key_prefix("db1", "orders")
    )


# ============================================================================
# parse_timestamp
# ============================================================================

def test_parse_timestamp_from_key():
    assert parse_timestamp("h/d/20240301_100000.sql.gz") == datetime(2024, 3, 1, 10, 0, 0)


def test_parse_timestamp_from_gsutil_url():
    url = "gs://bucket/h/d/20231231_235959.sql.gz"
    assert parse_timestamp(url) == datetime(2023, 12, 31, 23, 59, 59)


@pytest.mark.parametrize(
    "value",
    [
        "h/d/latest.sql.gz",
        "h/d/2024-03-01.sql.gz",
        "h/d/20240301-100000.sql.gz",
        "h/d/",
        "",
        "h/d/120240301_100000.sql.gz",
        "h/d/20240301_1000001.sql.gz",
    ],
)
def test_parse_timestamp_returns_none_without_a_timestamp(value):
    assert parse_timestamp(value) is None


def test_parse_timestamp_rejects_impossible_dates():
    assert parse_timestamp("h/d/20241340_250000.sql.gz") is None


def test_parse_timestamp_ignores_non_strings():
    assert parse_timestamp(None) is None  # type: ignore[arg-type]


def test_parse_timestamp_prefers_filename_over_directories():
    key = "host20200101_000000/db/20240301_100000.sql.gz"
    assert parse_timestamp(key) == datetime(2024, 3, 1, 10, 0, 0)


def test_parse_timestamp_ignores_directory_segments():
    """A stamp-like host or database name does not date the files under it."""
    assert parse_timestamp("h/20240301_100000/dump.sql.gz") is None
    assert parse_timestamp("20200101_000000/db/README") is None


@pytest.mark.parametrize(
    "host, database",
    [
        ("db1.example.com", "orders"),
        ("10.0.0.5", "analytics_2024"),
        ("20200101_000000", "19990101_000000"),
        ("host-with-dash", "db with spaces"),
    ],
)
@pytest.mark.parametrize(
    "created_at",
    [
        datetime(2024, 3, 1, 10, 0, 0),
        datetime(1999, 12, 31, 23, 59, 59),
        datetime(2024, 2, 29, 0, 0, 1, 500000),
    ],
)
def test_timestamp_survives_remote_key(host, database, created_at):
    key = remote_key(host, database, created_at)
    assert parse_timestamp(key) == created_at.replace(microsecond=0)


# ============================================================================
# parse_remote_key / parse_backup_filename
# ============================================================================

def test_parse_remote_key_recovers_artifact():
    artifact = parse_remote_key("db1.example.com/orders/20240301_100000.sql.gz")
    assert artifact == BackupArtifact("db1.example.com", "orders", datetime(2024, 3, 1, 10))


def test_parse_remote_key_accepts_bucket_urls():
    artifact = parse_remote_key("gs://my-bucket/db1/orders/20240301_100000.sql.gz")
    assert artifact is not None
    assert artifact.storage_key == "db1/orders/20240301_100000.sql.gz"


@pytest.mark.parametrize(
    "key",
    [
        "db1/orders/20240301_100000.sql",
        "db1/orders/extra/20240301_100000.sql.gz",
        "orders/20240301_100000.sql.gz",
        "db1/orders/20241301_100000.sql.gz",
        "../orders/20240301_100000.sql.gz",
    ],
)
def test_parse_remote_key_rejects_non_canonical_keys(key):
    assert parse_remote_key(key) is None


def test_parse_backup_filename():
    assert parse_backup_filename("20240301_100000.sql.gz") == datetime(2024, 3, 1, 10)
    assert parse_backup_filename("20240301_100000") == datetime(2024, 3, 1, 10)
    assert parse_backup_filename("backup_20240301_100000.sql.gz") is None
    assert parse_backup_filename("db1/orders/20240301_100000.sql.gz") is None


def test_strip_bucket_url():
    assert strip_bucket_url("gs://b/h/d/x.sql.gz") == "h/d/x.sql.gz"
    assert strip_bucket_url("s3://b/h/d/x.sql.gz", bucket="b") == "h/d/x.sql.gz"
    assert strip_bucket_url("s3://other/h/d/x.sql.gz", bucket="b") == "s3://other/h/d/x.sql.gz"
    assert strip_bucket_url("h/d/x.sql.gz") == "h/d/x.sql.gz"


# ============================================================================
# BackupArtifact
# ============================================================================

def test_artifact_storage_key_is_reproducible():
    created_at = datetime(2024, 3, 1, 10, 0, 0, 123456)
    first = BackupArtifact("db1", "orders", created_at)
    second = BackupArtifact("db1", "orders", created_at.replace(microsecond=0))

    assert first == second
    assert first.storage_key == "db1/orders/20240301_100000.sql.gz"
    assert first.filename == "20240301_100000.sql.gz"
    assert parse_remote_key(first.storage_key) == first


def test_artifact_validates_identifiers():
    with pytest.raises(InvalidIdentifierError):
        BackupArtifact("db1/eu", "orders", datetime(2024, 3, 1))


def test_artifact_now_uses_local_time():
    before = datetime.now().replace(microsecond=0)
    artifact = BackupArtifact.now("db1", "orders")
    after = datetime.now()

    assert before <= artifact.created_at <= after
    assert artifact.created_at.tzinfo is None


def test_artifact_staging_path(temp_dir: Path):
    artifact = BackupArtifact("db1", "orders", datetime(2024, 3, 1) + timedelta(seconds=7))
    assert artifact.staging_path(temp_dir) == temp_dir / "db1/orders/20240301_000007.sql.gz"
