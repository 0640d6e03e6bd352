# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgbackup command line interface.

Usage:
    pgbackup backup  -H HOST -d DB [-d DB ...] -u USER [-P PASSWORD] -b BUCKET
    pgbackup restore -H HOST -d DB -u USER [-P PASSWORD] -b BUCKET [-f BACKUP]
    pgbackup list    -H HOST -d DB -b BUCKET
    pgbackup clean   -H HOST -d DB [-d DB ...] -b BUCKET [-k DAYS] [--dry-run]

Anything not given on the command line is read from the environment
(PGBACKUP_BUCKET, PGHOST, PGPORT, PGUSER, PGPASSWORD, ...).
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Sequence

import structlog

from pgbackup import __version__
from pgbackup.config import BackupConfig
from pgbackup.core import (
    BackupResult,
    CleanResult,
    clean_many,
    list_backups,
    perform_backups,
    perform_restore,
)
from pgbackup.dump import DatabaseTarget, check_tools
from pgbackup.env import create_config_from_env, target_from_env
from pgbackup.exceptions import ConfigurationError, PGBackupError
from pgbackup.storage import open_blob_store

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def configure_logging(verbose: bool = False) -> None:
    """Send structlog output to stderr, INFO by default, DEBUG with -v."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.INFO
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _add_storage_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-b", "--bucket", help="Bucket holding the backups")
    parser.add_argument("--region", help="Storage region")
    parser.add_argument(
        "--endpoint-url",
        help="S3-compatible endpoint (https://storage.googleapis.com for GCS)",
    )
    parser.add_argument(
        "--staging-root",
        type=Path,
        help="Local staging directory (default: /tmp)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def _add_connection_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-p", "--port", type=int, help="PostgreSQL port (default: 5432)")
    parser.add_argument("-u", "--user", help="PostgreSQL user")
    parser.add_argument(
        "-P",
        "--password",
        help="PostgreSQL password (prefer the PGPASSWORD environment variable)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pgbackup",
        description="Back up, restore, list and prune PostgreSQL backups in object storage.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    backup = subparsers.add_parser("backup", help="Back up one or more databases")
    backup.add_argument("-H", "--host", help="PostgreSQL host")
    backup.add_argument(
        "-d",
        "--database",
        action="append",
        dest="databases",
        help="Database name (repeat for several databases)",
    )
    _add_connection_options(backup)
    _add_storage_options(backup)

    restore = subparsers.add_parser("restore", help="Restore a database from a backup")
    restore.add_argument("-H", "--host", help="PostgreSQL host")
    restore.add_argument("-d", "--database", help="Database name")
    restore.add_argument(
        "-f",
        "--file",
        dest="backup",
        help="Backup to restore: host/db/YYYYMMDD_HHMMSS.sql.gz or a bare "
        "YYYYMMDD_HHMMSS.sql.gz (default: newest backup)",
    )
    _add_connection_options(restore)
    _add_storage_options(restore)

    list_cmd = subparsers.add_parser("list", help="List backups of a database")
    list_cmd.add_argument("-H", "--host", help="PostgreSQL host")
    list_cmd.add_argument("-d", "--database", help="Database name")
    _add_storage_options(list_cmd)

    clean = subparsers.add_parser("clean", help="Delete backups past the retention window")
    clean.add_argument("-H", "--host", help="PostgreSQL host")
    clean.add_argument(
        "-d",
        "--database",
        action="append",
        dest="databases",
        help="Database name (repeat for several databases)",
    )
    clean.add_argument(
        "-k",
        "--keep-days",
        type=int,
        help="Days to keep backups (default: 90)",
    )
    clean.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without deleting",
    )
    _add_storage_options(clean)

    return parser


def config_from_args(args: argparse.Namespace) -> BackupConfig:
    """Environment configuration with command line overrides applied."""
    config = create_config_from_env(bucket=args.bucket)

    overrides = {
        "region": args.region,
        "endpoint_url": args.endpoint_url,
        "staging_root": args.staging_root,
        "retention_days": getattr(args, "keep_days", None),
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        config = config.with_updates(**overrides)
    return config


def _targets(args: argparse.Namespace, databases: Sequence[str | None]) -> List[DatabaseTarget]:
    return [
        target_from_env(
            host=args.host,
            database=database,
            user=getattr(args, "user", None),
            password=getattr(args, "password", None),
            port=getattr(args, "port", None),
        )
        for database in databases
    ]


async def _cmd_backup(config: BackupConfig, args: argparse.Namespace) -> int:
    check_tools(config.pg_dump_path)
    targets = _targets(args, args.databases or [None])

    async with open_blob_store(config) as store:
        results = await perform_backups(config, targets, store)

    exit_code = EXIT_OK
    for target, result in zip(targets, results):
        if isinstance(result, BackupResult):
            print(f"Backup of {target.database} on {target.host} uploaded to {result.key}")
        else:
            exit_code = EXIT_FAILURE
            print(
                f"Backup of {target.database} on {target.host} failed: {result}",
                file=sys.stderr,
            )
    return exit_code


async def _cmd_restore(config: BackupConfig, args: argparse.Namespace) -> int:
    check_tools(config.psql_path)
    target = _targets(args, [args.database])[0]

    async with open_blob_store(config) as store:
        result = await perform_restore(config, target, store, args.backup)

    print(f"Restore of {target.database} on {target.host} from {result.key} completed")
    return EXIT_OK


async def _cmd_list(config: BackupConfig, args: argparse.Namespace) -> int:
    target = _targets(args, [args.database])[0]

    async with open_blob_store(config) as store:
        listings = await list_backups(store, target.host, target.database)

    print(f"Available backups for {target.database} on {target.host}:")
    for listing in listings:
        if listing.created_at is None:
            print(f"  {listing.key}")
        else:
            print(
                f"  {listing.key}  {listing.created_at.isoformat(sep=' ')}"
                f"  ({listing.age_days} days old)"
            )
    return EXIT_OK


async def _cmd_clean(config: BackupConfig, args: argparse.Namespace) -> int:
    targets = _targets(args, args.databases or [None])
    policy = config.retention_policy

    async with open_blob_store(config) as store:
        results = await clean_many(
            config,
            [(target.host, target.database) for target in targets],
            store,
            policy=policy,
            dry_run=args.dry_run,
        )

    exit_code = EXIT_OK
    for target, result in zip(targets, results):
        if not isinstance(result, CleanResult):
            exit_code = EXIT_FAILURE
            print(
                f"Cleaning {target.database} on {target.host} failed: {result}",
                file=sys.stderr,
            )
            continue

        verb = "Would delete" if args.dry_run else "Deleted"
        keys = result.expired_keys if args.dry_run else result.deleted_keys
        print(
            f"{verb} {len(keys)} backups older than {policy.max_age_days} days "
            f"for {target.database} on {target.host}"
        )
        for key in keys:
            print(f"  {key}")
        if result.failed_keys:
            exit_code = EXIT_FAILURE
            for error in result.errors:
                print(f"  failed: {error}", file=sys.stderr)
    return exit_code


_COMMANDS = {
    "backup": _cmd_backup,
    "restore": _cmd_restore,
    "list": _cmd_list,
    "clean": _cmd_clean,
}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = config_from_args(args)
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        return asyncio.run(_COMMANDS[args.command](config, args))
    except (PGBackupError, OSError) as e:
        # OSError: staging directory not writable or full
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
