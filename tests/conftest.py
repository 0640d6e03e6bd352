# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for pgbackup tests.

Provides an in-memory blob store, fake pg_dump / psql executables and
test configuration helpers.
"""

import os
import stat
import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Set

import pytest

from pgbackup.exceptions import ObjectNotFoundError, TransientStorageError


class InMemoryBlobStore:
    """BlobStore keeping objects in a dict, with injectable failures."""

    def __init__(self, objects: Dict[str, bytes] | None = None):
        self.objects: Dict[str, bytes] = dict(objects or {})
        self.fail_upload = False
        self.fail_delete: Set[str] = set()
        self.deleted: List[str] = []

    async def list_keys(self, prefix: str) -> Set[str]:
        return {key for key in self.objects if key.startswith(prefix)}

    async def upload_file(self, key: str, path: Path) -> None:
        if self.fail_upload:
            raise TransientStorageError("upload failed", details={"key": key})
        self.objects[key] = path.read_bytes()

    async def download_file(self, key: str, path: Path) -> None:
        if key not in self.objects:
            raise ObjectNotFoundError(f"Object not found: {key}", details={"key": key})
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.objects[key])

    async def delete(self, key: str) -> None:
        if key in self.fail_delete:
            raise TransientStorageError("delete failed", details={"key": key})
        if key not in self.objects:
            raise ObjectNotFoundError(f"Object not found: {key}", details={"key": key})
        del self.objects[key]
        self.deleted.append(key)


def write_script(path: Path, body: str) -> Path:
    """Write an executable /bin/sh script."""
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def fake_pg_dump(temp_dir: Path) -> Path:
    """
    pg_dump stand-in.

    Prints a small SQL script naming its arguments and PGPASSWORD.
    Arguments arrive as: -h HOST -p PORT -U USER DBNAME
    """
    return write_script(
        temp_dir / "pg_dump",
        'echo "-- host=$2 port=$4 user=$6 db=$7 password=$PGPASSWORD"\n'
        'echo "CREATE TABLE items (id integer);"\n'
        'echo "INSERT INTO items VALUES (1);"\n',
    )


@pytest.fixture
def failing_pg_dump(temp_dir: Path) -> Path:
    return write_script(
        temp_dir / "pg_dump_fail",
        'echo "-- partial output"\n'
        'echo "pg_dump: error: connection to server failed" >&2\n'
        "exit 1\n",
    )


@pytest.fixture
def fake_psql(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    psql stand-in.

    Copies stdin to $PSQL_CAPTURE and its arguments to $PSQL_CAPTURE.args.
    """
    capture = temp_dir / "psql_capture.sql"
    monkeypatch.setenv("PSQL_CAPTURE", str(capture))
    return write_script(
        temp_dir / "psql",
        'echo "$@" > "$PSQL_CAPTURE.args"\n'
        'cat > "$PSQL_CAPTURE"\n',
    )


@pytest.fixture
def failing_psql(temp_dir: Path) -> Path:
    return write_script(
        temp_dir / "psql_fail",
        "cat > /dev/null\n"
        'echo "ERROR:  relation \\"items\\" already exists" >&2\n'
        "exit 3\n",
    )


@pytest.fixture
def test_config(temp_dir: Path, fake_pg_dump: Path, fake_psql: Path):
    """Create a test configuration using the fake client tools."""
    from pgbackup.config import BackupConfig

    return BackupConfig(
        bucket="test-bucket",
        region="us-east-1",
        staging_root=temp_dir / "staging",
        retention_days=90,
        pg_dump_path=str(fake_pg_dump),
        psql_path=str(fake_psql),
    )


@pytest.fixture
def test_target():
    from pgbackup.dump import DatabaseTarget

    return DatabaseTarget(
        host="db1.example.com",
        database="orders",
        user="backup",
        password="s3cret",
        port=5433,
    )


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove pgbackup and libpq variables from the environment."""
    for name in list(os.environ):
        if name.startswith(("PGBACKUP_", "PG")) or name == "AWS_REGION":
            monkeypatch.delenv(name, raising=False)
