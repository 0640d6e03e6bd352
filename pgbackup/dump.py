# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgbackup Dump - Run pg_dump and psql against a PostgreSQL server.

pg_dump output is streamed through gzip straight into a staging file,
and restores stream the staging file back through gunzip into psql.
Neither side buffers the whole dump in memory.

Failures of the external tools surface only as a non-zero exit status;
they are turned into DumpError / RestoreError here so callers never
upload or restore half a dump.
"""

import asyncio
import os
import shutil
import tempfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, cast

import aiofiles
import structlog

from pgbackup.addressing import validate_identifier
from pgbackup.errors import explain_invalid_port, explain_missing_tools
from pgbackup.exceptions import (
    ConfigurationError,
    DumpError,
    RestoreError,
    ToolNotFoundError,
)

logger = structlog.get_logger()

CHUNK_SIZE = 64 * 1024

# zlib window bits for a gzip container
_GZIP_WBITS = 16 + zlib.MAX_WBITS

# Keep the end of stderr; pg_dump prints the real error last
_STDERR_TAIL = 2000


@dataclass(frozen=True)
class DatabaseTarget:
    """Connection details for one PostgreSQL database."""

    host: str
    database: str
    user: str = "postgres"
    password: str | None = field(default=None, repr=False)
    port: int = 5432

    def __post_init__(self) -> None:
        validate_identifier("host", self.host)
        validate_identifier("database", self.database)
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise ConfigurationError(explain_invalid_port(str(self.port)))

    def connection_args(self) -> List[str]:
        return ["-h", self.host, "-p", str(self.port), "-U", self.user]

    def environment(self) -> Dict[str, str]:
        """Process environment for the client tools, with PGPASSWORD set."""
        env = dict(os.environ)
        if self.password is not None:
            env["PGPASSWORD"] = self.password
        return env


def check_tools(*names: str) -> None:
    """
    Ensure every named executable is on PATH.

    Raises:
        ToolNotFoundError: Listing all missing executables
    """
    missing = [name for name in names if shutil.which(name) is None]
    if missing:
        raise ToolNotFoundError(
            explain_missing_tools(missing),
            details={"missing": missing},
        )


def _tail(stderr: bytes) -> str:
    return stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:].strip()


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """
    Kill a client tool and reap it.

    stdin is closed after the kill: a wrapper script's children keep the
    other pipes open until they see EOF, and wait() blocks until every
    pipe is closed.
    """
    if proc.returncode is None:
        proc.kill()
    if proc.stdin is not None:
        proc.stdin.close()
    await proc.wait()


async def dump_to_file(
    target: DatabaseTarget,
    dest: Path,
    *,
    pg_dump_path: str = "pg_dump",
    compress_level: int = 6,
) -> int:
    """
    Dump a database into a gzip file.

    The dump is written to a uniquely named ".part" file next to dest and
    renamed only after pg_dump exits cleanly.

    Args:
        target: Database to dump
        dest: Final path of the .sql.gz file
        pg_dump_path: pg_dump executable
        compress_level: gzip level (1-9)

    Returns:
        Size of the compressed file in bytes

    Raises:
        DumpError: If pg_dump exits with a non-zero status
        ToolNotFoundError: If pg_dump cannot be started
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=dest.parent, prefix=dest.name + ".", suffix=".part")
    os.close(fd)
    temp_path = Path(temp_name)

    try:
        proc = await asyncio.create_subprocess_exec(
            pg_dump_path,
            *target.connection_args(),
            target.database,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=target.environment(),
        )
    except FileNotFoundError as e:
        temp_path.unlink(missing_ok=True)
        raise ToolNotFoundError(
            explain_missing_tools([pg_dump_path]),
            details={"missing": [pg_dump_path]},
        ) from e
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise

    stdout = cast(asyncio.StreamReader, proc.stdout)
    stderr_task = asyncio.create_task(cast(asyncio.StreamReader, proc.stderr).read())
    compressor = zlib.compressobj(compress_level, zlib.DEFLATED, _GZIP_WBITS)
    written = 0

    try:
        async with aiofiles.open(temp_path, "wb") as f:
            while True:
                chunk = await stdout.read(CHUNK_SIZE)
                if not chunk:
                    break
                data = compressor.compress(chunk)
                if data:
                    await f.write(data)
                    written += len(data)
            data = compressor.flush()
            await f.write(data)
            written += len(data)

        returncode = await proc.wait()
        stderr = await stderr_task
    except BaseException:
        await _terminate(proc)
        stderr_task.cancel()
        temp_path.unlink(missing_ok=True)
        raise

    if returncode != 0:
        temp_path.unlink(missing_ok=True)
        raise DumpError(
            f"pg_dump exited with status {returncode}",
            details={
                "host": target.host,
                "database": target.database,
                "stderr": _tail(stderr),
            },
        )

    temp_path.replace(dest)

    logger.debug(
        "dump_written",
        host=target.host,
        database=target.database,
        path=str(dest),
        size=written,
    )

    return written


async def _feed_decompressed(
    source: Path,
    stdin: asyncio.StreamWriter,
) -> None:
    """Stream a gzip file, decompressed, into a process's stdin."""
    decompressor = zlib.decompressobj(_GZIP_WBITS)
    in_member = False

    async with aiofiles.open(source, "rb") as f:
        while True:
            chunk = await f.read(CHUNK_SIZE)
            if not chunk:
                break
            while chunk:
                in_member = True
                stdin.write(decompressor.decompress(chunk))
                await stdin.drain()
                # Concatenated gzip members
                if decompressor.eof:
                    in_member = False
                    chunk = decompressor.unused_data
                    decompressor = zlib.decompressobj(_GZIP_WBITS)
                else:
                    chunk = b""

    if in_member:
        raise zlib.error("truncated gzip stream")


async def restore_from_file(
    target: DatabaseTarget,
    source: Path,
    *,
    psql_path: str = "psql",
) -> None:
    """
    Apply a gzip SQL dump to a database with psql.

    psql runs with ON_ERROR_STOP so a failing statement gives a
    non-zero exit status.

    Raises:
        RestoreError: If the file is unreadable, not gzip, or psql fails
    """
    if not source.exists():
        raise RestoreError(
            f"Backup file not found: {source}",
            details={"path": str(source)},
        )

    try:
        proc = await asyncio.create_subprocess_exec(
            psql_path,
            *target.connection_args(),
            "-v",
            "ON_ERROR_STOP=1",
            target.database,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
            env=target.environment(),
        )
    except FileNotFoundError as e:
        raise ToolNotFoundError(
            explain_missing_tools([psql_path]),
            details={"missing": [psql_path]},
        ) from e

    stdin = cast(asyncio.StreamWriter, proc.stdin)
    stderr_task = asyncio.create_task(cast(asyncio.StreamReader, proc.stderr).read())

    try:
        await _feed_decompressed(source, stdin)
    except (BrokenPipeError, ConnectionResetError):
        # psql exited early; its exit status says why
        pass
    except zlib.error as e:
        # Kill before closing stdin so psql never sees a clean EOF
        await _terminate(proc)
        stderr_task.cancel()
        raise RestoreError(
            f"Backup file is not valid gzip: {e}",
            details={"path": str(source)},
        ) from e
    except BaseException:
        await _terminate(proc)
        stderr_task.cancel()
        raise

    stdin.close()
    try:
        returncode = await proc.wait()
        stderr = await stderr_task
    except BaseException:
        await _terminate(proc)
        stderr_task.cancel()
        raise

    if returncode != 0:
        raise RestoreError(
            f"psql exited with status {returncode}",
            details={
                "host": target.host,
                "database": target.database,
                "stderr": _tail(stderr),
            },
        )

    logger.debug(
        "restore_applied",
        host=target.host,
        database=target.database,
        path=str(source),
    )
