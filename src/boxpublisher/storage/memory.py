"""
In-process blob store.

Honors the same block/commit rules as the remote store: blocks can only be
staged against a declared object, and staged blocks are invisible until the
block list is committed. Backs tests and the CLI `--dry-run` mode.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING
from urllib.parse import quote

from boxpublisher.storage.base import (
    BlobConditionFailedError,
    BlobNotFoundError,
    BlobObject,
    BlobStore,
    BlobStoreError,
    BlockStatus,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from boxpublisher.storage.base import BlockRef


def _etag(data: bytes, generation: int) -> str:
    return f'"{generation:x}-{hashlib.sha256(data).hexdigest()[:16]}"'


class InMemoryBlobStore(BlobStore):
    """Dictionary-backed BlobStore."""

    def __init__(self, base_url: str = "memory://store") -> None:
        self._base_url = base_url.rstrip("/")
        self._objects: dict[tuple[str, str], BlobObject] = {}
        self._staged: dict[tuple[str, str], dict[str, bytes]] = {}
        self._generation = 0
        # Operation log: (operation, container, path)
        self.calls: list[tuple[str, str, str]] = []

    def _store(self, key: tuple[str, str], data: bytes, content_type: str | None) -> None:
        self._generation += 1
        self._objects[key] = BlobObject(
            data=data,
            etag=_etag(data, self._generation),
            content_type=content_type,
        )

    async def create_empty_object(self, container: str, path: str) -> None:
        self.calls.append(("create_empty_object", container, path))
        key = (container, path)
        self._store(key, b"", "application/octet-stream")
        self._staged[key] = {}

    async def put_block(self, container: str, path: str, block_id: str, data: bytes) -> None:
        self.calls.append(("put_block", container, path))
        key = (container, path)
        if key not in self._objects:
            raise BlobNotFoundError(
                f"Cannot stage block for undeclared object {container}/{path}",
                status=404,
                error_code="BlobNotFound",
            )
        self._staged.setdefault(key, {})[block_id] = bytes(data)

    async def put_block_list(
        self,
        container: str,
        path: str,
        blocks: Sequence[BlockRef],
    ) -> None:
        self.calls.append(("put_block_list", container, path))
        key = (container, path)
        staged = self._staged.get(key, {})
        parts: list[bytes] = []
        for block in blocks:
            if block.status is BlockStatus.COMMITTED or block.block_id not in staged:
                raise BlobStoreError(
                    f"Block {block.block_id!r} is not staged for {container}/{path}",
                    status=400,
                    error_code="InvalidBlockList",
                )
            parts.append(staged[block.block_id])
        current = self._objects.get(key)
        self._store(key, b"".join(parts), current.content_type if current else None)
        self._staged[key] = {}

    async def get_object(self, container: str, path: str) -> BlobObject:
        self.calls.append(("get_object", container, path))
        obj = self._objects.get((container, path))
        if obj is None:
            raise BlobNotFoundError(
                f"The specified blob does not exist: {container}/{path}",
                status=404,
                error_code="BlobNotFound",
            )
        return obj

    async def put_object(
        self,
        container: str,
        path: str,
        data: bytes,
        content_type: str,
        *,
        if_match: str | None = None,
        if_none_match: str | None = None,
    ) -> None:
        self.calls.append(("put_object", container, path))
        key = (container, path)
        current = self._objects.get(key)
        if if_match is not None and (current is None or current.etag != if_match):
            raise BlobConditionFailedError(
                f"ETag mismatch for {container}/{path}",
                status=412,
                error_code="ConditionNotMet",
            )
        if if_none_match == "*" and current is not None:
            raise BlobConditionFailedError(
                f"Object already exists: {container}/{path}",
                status=409,
                error_code="BlobAlreadyExists",
            )
        self._store(key, bytes(data), content_type)

    def object_url(self, container: str, path: str) -> str:
        return f"{self._base_url}/{container}/{quote(path)}"

    def staged_block_ids(self, container: str, path: str) -> list[str]:
        """Ids of blocks staged but not yet committed."""
        return list(self._staged.get((container, path), {}))

    def __contains__(self, key: object) -> bool:
        return key in self._objects
