# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Blob store interface used by the backup orchestration.

Keys are hierarchical strings ("host/database/stamp.sql.gz"). Listing is
scoped by key prefix.
"""

from pathlib import Path
from typing import Protocol, Set


class BlobStore(Protocol):
    """
    Object storage operations needed for backups.

    Implementations raise ObjectNotFoundError for missing objects and
    TransientStorageError for network or service failures. They do not
    retry.
    """

    async def list_keys(self, prefix: str) -> Set[str]:
        """Return every object key under prefix."""
        ...

    async def upload_file(self, key: str, path: Path) -> None:
        """Upload a local file to key, replacing any existing object."""
        ...

    async def download_file(self, key: str, path: Path) -> None:
        """Download key into a local file."""
        ...

    async def delete(self, key: str) -> None:
        """Delete key. Raises ObjectNotFoundError if it does not exist."""
        ...
