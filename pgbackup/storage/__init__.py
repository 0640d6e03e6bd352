# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Storage - Blob store interface and the S3-compatible implementation.
"""

from pgbackup.storage.base import BlobStore
from pgbackup.storage.s3 import S3BlobStore, open_blob_store

__all__ = [
    "BlobStore",
    "S3BlobStore",
    "open_blob_store",
]
