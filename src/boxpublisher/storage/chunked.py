"""
Chunked (block/commit) upload of large objects.

Protocol:
1. Declare the destination as an empty block object.
2. Read the source in blocks of at most block_size bytes; stage each block
   under a deterministic id: base64 of the 11-digit zero-padded block index.
3. Commit the ordered block list in a single call. Only the commit makes
   the object readable; staged but uncommitted blocks expire on the
   provider side.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import TYPE_CHECKING, BinaryIO

from boxpublisher.storage.base import BlockRef, BlockStatus

if TYPE_CHECKING:
    from boxpublisher.storage.base import BlobStore

logger = logging.getLogger(__name__)

# Largest block the store accepts for a single put_block call
MAX_BLOCK_SIZE = 4 * 1024 * 1024

BLOCK_ID_DIGITS = 11


def effective_block_size(block_size: int) -> int:
    """Clamp a configured block size to (0, MAX_BLOCK_SIZE]."""
    if block_size <= 0 or block_size > MAX_BLOCK_SIZE:
        return MAX_BLOCK_SIZE
    return block_size


def encode_block_id(index: int) -> str:
    """Block id for a zero-based block index."""
    if index < 0:
        raise ValueError(f"block index must be >= 0, got {index}")
    return base64.b64encode(f"{index:0{BLOCK_ID_DIGITS}d}".encode("ascii")).decode("ascii")


def decode_block_id(block_id: str) -> int:
    """Recover the block index from a block id.

    Raises:
        ValueError: If block_id was not produced by encode_block_id.
    """
    try:
        raw = base64.b64decode(block_id, validate=True).decode("ascii")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid block id: {block_id!r}") from e
    if len(raw) != BLOCK_ID_DIGITS or not raw.isdigit():
        raise ValueError(f"Invalid block id: {block_id!r}")
    return int(raw)


def _read_block(stream: BinaryIO, size: int) -> bytes:
    """Read up to size bytes, tolerating short reads before EOF."""
    parts: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


class ChunkedUploader:
    """
    Uploads a stream as a block object.

    Blocks are staged strictly sequentially, so peak memory is one block.
    Any failure aborts the upload; nothing is retried.
    """

    def __init__(self, store: BlobStore, block_size: int = MAX_BLOCK_SIZE) -> None:
        """
        Initialize the uploader.

        Args:
            store: Blob store to stage and commit blocks in.
            block_size: Maximum bytes per block. Values <= 0 or above
                MAX_BLOCK_SIZE fall back to MAX_BLOCK_SIZE.
        """
        self._store = store
        self._block_size = effective_block_size(block_size)

    @property
    def block_size(self) -> int:
        return self._block_size

    async def upload(self, stream: BinaryIO, container: str, path: str) -> list[BlockRef]:
        """
        Upload everything remaining in ``stream`` to ``container/path``.

        Args:
            stream: Readable binary stream.
            container: Destination container.
            path: Destination object path.

        Returns:
            The committed block list, in byte order.

        Raises:
            BlobStoreError: If declaring, staging or committing fails.
            OSError: If the stream cannot be read.
        """
        start = time.monotonic()
        await self._store.create_empty_object(container, path)

        blocks: list[BlockRef] = []
        total_bytes = 0
        while True:
            data = _read_block(stream, self._block_size)
            if not data:
                break
            block_id = encode_block_id(len(blocks))
            await self._store.put_block(container, path, block_id, data)
            blocks.append(BlockRef(block_id=block_id, status=BlockStatus.LATEST))
            total_bytes += len(data)
            logger.debug(
                "Block staged",
                extra={"block_index": len(blocks) - 1, "block_bytes": len(data)},
            )

        await self._store.put_block_list(container, path, blocks)

        elapsed = time.monotonic() - start
        logger.info(
            f"Committed {path}: {len(blocks)} blocks, {total_bytes} bytes in {elapsed:.2f}s",
            extra={"blocks": len(blocks), "bytes": total_bytes},
        )
        return blocks
