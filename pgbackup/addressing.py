# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgbackup Addressing - Storage keys and staging paths for backup artifacts.

A backup artifact is identified by (host, database, created_at). The same
layout is used in the bucket and in the local staging directory:

    <host>/<database>/<YYYYMMDD_HHMMSS>.sql.gz

Timestamps are naive local time at second resolution. They carry no
timezone suffix, so keys written across a DST change or from machines in
different timezones do not sort or compare reliably.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from pgbackup.errors import explain_invalid_identifier
from pgbackup.exceptions import InvalidIdentifierError

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
BACKUP_SUFFIX = ".sql.gz"

# 8 digits, underscore, 6 digits; not part of a longer run of digits
_TIMESTAMP_RE = re.compile(r"(?<!\d)(\d{8}_\d{6})(?!\d)")

_REMOTE_KEY_RE = re.compile(
    r"^(?P<host>[^/]+)/(?P<database>[^/]+)/(?P<stamp>\d{8}_\d{6})"
    + re.escape(BACKUP_SUFFIX)
    + r"$"
)

_FILENAME_RE = re.compile(r"^\d{8}_\d{6}(?:" + re.escape(BACKUP_SUFFIX) + r")?$")

_URL_PREFIX_RE = re.compile(r"^(?:gs|s3)://[^/]+/")

_FORBIDDEN_CHARS = ("/", "\\", "\x00")


def validate_identifier(kind: str, value: str) -> str:
    """
    Check that a host or database name can be used as one key segment.

    Raises:
        InvalidIdentifierError: If the value is empty, is "." or "..",
            or contains a path separator
    """
    if not isinstance(value, str) or not value:
        raise InvalidIdentifierError(
            explain_invalid_identifier(kind, ""),
            details={kind: value},
        )
    if value in (".", "..") or any(c in value for c in _FORBIDDEN_CHARS):
        raise InvalidIdentifierError(
            explain_invalid_identifier(kind, value),
            details={kind: value},
        )
    return value


def normalize_timestamp(created_at: datetime) -> datetime:
    """
    Reduce a datetime to what a storage key can represent.

    Aware datetimes are converted to local time; the result is naive and
    truncated to whole seconds.
    """
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone().replace(tzinfo=None)
    return created_at.replace(microsecond=0)


def format_timestamp(created_at: datetime) -> str:
    return normalize_timestamp(created_at).strftime(TIMESTAMP_FORMAT)


def key_prefix(host: str, database: str) -> str:
    """Return the listing prefix for one database on one host."""
    validate_identifier("host", host)
    validate_identifier("database", database)
    return f"{host}/{database}/"


def remote_key(host: str, database: str, created_at: datetime) -> str:
    """
    Build the canonical storage key for a backup.

    Example:
        >>> remote_key("db1.example.com", "orders", datetime(2024, 3, 1, 10))
        'db1.example.com/orders/20240301_100000.sql.gz'
    """
    return f"{key_prefix(host, database)}{format_timestamp(created_at)}{BACKUP_SUFFIX}"


def local_staging_path(
    staging_root: Path | str,
    host: str,
    database: str,
    created_at: datetime,
) -> Path:
    """
    Build the local staging path for a backup.

    The path mirrors the storage key under staging_root.
    """
    return Path(staging_root) / remote_key(host, database, created_at)


def _parse_stamp(text: str) -> datetime | None:
    match = _TIMESTAMP_RE.search(text)
    if match is None:
        return None
    try:
        return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        # Right shape, impossible date (e.g. month 13)
        return None


def parse_timestamp(key_or_filename: str) -> datetime | None:
    """
    Extract the backup timestamp embedded in a key or filename.

    Only the last path segment is searched. A host or database name that
    looks like a timestamp never makes other files under it parseable.

    Returns:
        Naive local datetime, or None if no valid timestamp is present
    """
    if not isinstance(key_or_filename, str):
        return None

    return _parse_stamp(key_or_filename.rsplit("/", 1)[-1])


def parse_backup_filename(name: str) -> datetime | None:
    """
    Parse a bare backup filename or stamp.

    Accepts exactly "YYYYMMDD_HHMMSS.sql.gz" or "YYYYMMDD_HHMMSS".
    """
    if not isinstance(name, str) or not _FILENAME_RE.match(name):
        return None
    return _parse_stamp(name)


def strip_bucket_url(key: str, bucket: str | None = None) -> str:
    """
    Remove a gs:// or s3:// bucket prefix from a listing entry.

    When bucket is given, only a URL for that bucket is stripped.
    """
    if bucket is not None:
        for scheme in ("gs://", "s3://"):
            prefix = f"{scheme}{bucket}/"
            if key.startswith(prefix):
                return key[len(prefix):]
        return key
    return _URL_PREFIX_RE.sub("", key, count=1)


def parse_remote_key(key: str) -> "BackupArtifact | None":
    """
    Recover the artifact identity from a canonical storage key.

    Returns:
        BackupArtifact, or None if the key is not in canonical form
    """
    if not isinstance(key, str):
        return None

    match = _REMOTE_KEY_RE.match(strip_bucket_url(key))
    if match is None:
        return None

    created_at = _parse_stamp(match.group("stamp"))
    if created_at is None:
        return None

    try:
        return BackupArtifact(
            host=match.group("host"),
            database=match.group("database"),
            created_at=created_at,
        )
    except InvalidIdentifierError:
        return None


@dataclass(frozen=True)
class BackupArtifact:
    """
    One backup of one database at one point in time.

    created_at is normalized to naive local time at second precision, so
    storage_key always reproduces exactly from the three fields.
    """

    host: str
    database: str
    created_at: datetime

    def __post_init__(self) -> None:
        validate_identifier("host", self.host)
        validate_identifier("database", self.database)
        object.__setattr__(self, "created_at", normalize_timestamp(self.created_at))

    @classmethod
    def now(cls, host: str, database: str) -> "BackupArtifact":
        return cls(host=host, database=database, created_at=datetime.now())

    @property
    def storage_key(self) -> str:
        return remote_key(self.host, self.database, self.created_at)

    @property
    def filename(self) -> str:
        return f"{format_timestamp(self.created_at)}{BACKUP_SUFFIX}"

    def staging_path(self, staging_root: Path | str) -> Path:
        return local_staging_path(staging_root, self.host, self.database, self.created_at)
