"""
Blob storage for published boxes.

BlobStore capability, Azure and in-memory implementations, and the
chunked block/commit uploader.
"""

from __future__ import annotations

from boxpublisher.storage.azure import AzureBlobStore
from boxpublisher.storage.base import (
    BlobConditionFailedError,
    BlobNotFoundError,
    BlobObject,
    BlobStore,
    BlobStoreError,
    BlockRef,
    BlockStatus,
)
from boxpublisher.storage.chunked import (
    MAX_BLOCK_SIZE,
    ChunkedUploader,
    decode_block_id,
    effective_block_size,
    encode_block_id,
)
from boxpublisher.storage.memory import InMemoryBlobStore

__all__ = [
    "MAX_BLOCK_SIZE",
    "AzureBlobStore",
    "BlobConditionFailedError",
    "BlobNotFoundError",
    "BlobObject",
    "BlobStore",
    "BlobStoreError",
    "BlockRef",
    "BlockStatus",
    "ChunkedUploader",
    "InMemoryBlobStore",
    "decode_block_id",
    "effective_block_size",
    "encode_block_id",
]
