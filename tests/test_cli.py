# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the pgbackup command line.

The blob store is swapped for the in-memory store; pg_dump and psql are
the fake scripts from conftest.
"""

import gzip
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import structlog

from conftest import InMemoryBlobStore
from pgbackup.addressing import remote_key
from pgbackup.cli import EXIT_FAILURE, EXIT_OK, EXIT_USAGE, build_parser, main


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def cli_store(monkeypatch: pytest.MonkeyPatch, blob_store: InMemoryBlobStore) -> InMemoryBlobStore:
    @asynccontextmanager
    async def fake_open(config):
        yield blob_store

    monkeypatch.setattr("pgbackup.cli.open_blob_store", fake_open)
    return blob_store


@pytest.fixture
def cli_env(clean_env, monkeypatch: pytest.MonkeyPatch, temp_dir: Path, fake_pg_dump: Path, fake_psql: Path):
    monkeypatch.setenv("PGBACKUP_BUCKET", "test-bucket")
    monkeypatch.setenv("PGBACKUP_STAGING_ROOT", str(temp_dir / "staging"))
    monkeypatch.setenv("PGBACKUP_PG_DUMP", str(fake_pg_dump))
    monkeypatch.setenv("PGBACKUP_PSQL", str(fake_psql))


# ============================================================================
# Parser
# ============================================================================

def test_parser_backup_accepts_several_databases():
    args = build_parser().parse_args(
        ["backup", "-H", "db1", "-d", "orders", "-d", "users", "-u", "backup", "-p", "6432"]
    )

    assert args.command == "backup"
    assert args.databases == ["orders", "users"]
    assert args.port == 6432


def test_parser_restore_file_option():
    args = build_parser().parse_args(
        ["restore", "-H", "db1", "-d", "orders", "-f", "20240101_000000.sql.gz"]
    )
    assert args.backup == "20240101_000000.sql.gz"


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


# ============================================================================
# main
# ============================================================================

def test_missing_bucket_is_usage_error(clean_env, capsys):
    assert main(["list", "-H", "db1", "-d", "orders"]) == EXIT_USAGE
    assert "PGBACKUP_BUCKET" in capsys.readouterr().err


def test_negative_keep_days_is_usage_error(cli_env, cli_store, capsys):
    assert main(["clean", "-H", "db1", "-d", "orders", "-k", "-1"]) == EXIT_USAGE


def test_backup_command_uploads_each_database(cli_env, cli_store, temp_dir, capsys):
    code = main(["backup", "-H", "db1", "-d", "orders", "-d", "users", "-u", "backup"])

    assert code == EXIT_OK
    assert sorted(key.split("/")[1] for key in cli_store.objects) == ["orders", "users"]
    assert all(key.startswith("db1/") for key in cli_store.objects)
    out = capsys.readouterr().out
    assert "uploaded to db1/orders/" in out
    assert "uploaded to db1/users/" in out


def test_backup_command_reports_failure(cli_env, cli_store, failing_pg_dump, monkeypatch, capsys):
    monkeypatch.setenv("PGBACKUP_PG_DUMP", str(failing_pg_dump))

    assert main(["backup", "-H", "db1", "-d", "orders"]) == EXIT_FAILURE
    assert cli_store.objects == {}
    assert "failed" in capsys.readouterr().err


def test_backup_command_missing_pg_dump(cli_env, cli_store, monkeypatch, capsys):
    monkeypatch.setenv("PGBACKUP_PG_DUMP", "definitely-not-pg_dump")

    assert main(["backup", "-H", "db1", "-d", "orders"]) == EXIT_FAILURE
    assert "definitely-not-pg_dump" in capsys.readouterr().err


def test_restore_command_uses_newest_backup(cli_env, cli_store, capsys):
    older = remote_key("db1", "orders", datetime(2024, 1, 1))
    newer = remote_key("db1", "orders", datetime(2024, 2, 1))
    cli_store.objects[older] = gzip.compress(b"SELECT 'old';\n")
    cli_store.objects[newer] = gzip.compress(b"SELECT 'new';\n")

    assert main(["restore", "-H", "db1", "-d", "orders"]) == EXIT_OK
    assert Path(os.environ["PSQL_CAPTURE"]).read_bytes() == b"SELECT 'new';\n"
    assert newer in capsys.readouterr().out


def test_restore_command_without_backups_fails(cli_env, cli_store, capsys):
    assert main(["restore", "-H", "db1", "-d", "orders"]) == EXIT_FAILURE
    assert "error:" in capsys.readouterr().err


def test_list_command(cli_env, cli_store, capsys):
    created = datetime.now().replace(microsecond=0) - timedelta(days=3, hours=1)
    key = remote_key("db1", "orders", created)
    cli_store.objects[key] = b""
    cli_store.objects["db1/orders/notes.txt"] = b""

    assert main(["list", "-H", "db1", "-d", "orders"]) == EXIT_OK

    out = capsys.readouterr().out
    assert key in out
    assert "(3 days old)" in out
    assert "db1/orders/notes.txt" in out


def test_clean_command_dry_run(cli_env, cli_store, capsys):
    old = remote_key("db1", "orders", datetime.now() - timedelta(days=40))
    fresh = remote_key("db1", "orders", datetime.now() - timedelta(days=2))
    cli_store.objects.update({old: b"", fresh: b""})

    assert main(["clean", "-H", "db1", "-d", "orders", "-k", "30", "--dry-run"]) == EXIT_OK

    out = capsys.readouterr().out
    assert "Would delete 1 backups older than 30 days" in out
    assert old in out
    assert cli_store.deleted == []


def test_clean_command_deletes_and_reports_failures(cli_env, cli_store, capsys):
    old = remote_key("db1", "orders", datetime.now() - timedelta(days=40))
    stuck = remote_key("db1", "orders", datetime.now() - timedelta(days=50))
    cli_store.objects.update({old: b"", stuck: b""})
    cli_store.fail_delete.add(stuck)

    assert main(["clean", "-H", "db1", "-d", "orders", "-k", "30"]) == EXIT_FAILURE

    captured = capsys.readouterr()
    assert cli_store.deleted == [old]
    assert "Deleted 1 backups" in captured.out
    assert "failed:" in captured.err


def test_clean_command_covers_every_database(cli_env, cli_store, capsys):
    for database in ("orders", "users"):
        cli_store.objects[remote_key("db1", database, datetime.now() - timedelta(days=40))] = b""

    assert main(["clean", "-H", "db1", "-d", "orders", "-d", "users", "-k", "30"]) == EXIT_OK

    out = capsys.readouterr().out
    assert "for orders on db1" in out
    assert "for users on db1" in out
    assert cli_store.objects == {}


def test_unwritable_staging_root_exits_with_failure(cli_env, cli_store, temp_dir, monkeypatch, capsys):
    not_a_dir = temp_dir / "not-a-dir"
    not_a_dir.write_text("")
    monkeypatch.setenv("PGBACKUP_STAGING_ROOT", str(not_a_dir))
    cli_store.objects[remote_key("db1", "orders", datetime(2024, 1, 1))] = gzip.compress(b"SELECT 1;\n")

    assert main(["restore", "-H", "db1", "-d", "orders"]) == EXIT_FAILURE
    assert "error:" in capsys.readouterr().err
