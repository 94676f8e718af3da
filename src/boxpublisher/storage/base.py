"""
Blob store capability.

Abstract base for the object store the publisher writes to. Objects are
either written whole (put_object) or assembled from staged blocks that only
become readable once the ordered block list is committed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class BlobStoreError(Exception):
    """Raised when a store operation fails (auth, network, server error)."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error_code = error_code


class BlobNotFoundError(BlobStoreError):
    """Raised when the requested object does not exist."""


class BlobConditionFailedError(BlobStoreError):
    """Raised when a conditional write loses against a concurrent writer."""


class BlockStatus(str, Enum):
    """Which copy of a block a block list refers to."""

    COMMITTED = "Committed"
    UNCOMMITTED = "Uncommitted"
    LATEST = "Latest"


@dataclass(frozen=True)
class BlockRef:
    """Entry of a block list commit."""

    block_id: str
    status: BlockStatus = BlockStatus.LATEST


@dataclass(frozen=True)
class BlobObject:
    """Object content as returned by get_object."""

    data: bytes
    etag: str | None = None
    content_type: str | None = None


class BlobStore(ABC):
    """Abstract base class for blob stores."""

    @abstractmethod
    async def create_empty_object(self, container: str, path: str) -> None:
        """Declare an empty block object so blocks can be staged against it."""
        ...

    @abstractmethod
    async def put_block(self, container: str, path: str, block_id: str, data: bytes) -> None:
        """Stage one block of an object. Not readable until committed."""
        ...

    @abstractmethod
    async def put_block_list(
        self,
        container: str,
        path: str,
        blocks: Sequence[BlockRef],
    ) -> None:
        """
        Commit an object from staged blocks.

        The order of ``blocks`` is the byte order of the committed object.
        """
        ...

    @abstractmethod
    async def get_object(self, container: str, path: str) -> BlobObject:
        """
        Read a whole object.

        Raises:
            BlobNotFoundError: If the object does not exist.
            BlobStoreError: On any other failure.
        """
        ...

    @abstractmethod
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
        """
        Create or overwrite an object in a single request.

        ``if_match`` / ``if_none_match`` make the write conditional on the
        current ETag; a failed precondition raises BlobConditionFailedError.
        """
        ...

    @abstractmethod
    def object_url(self, container: str, path: str) -> str:
        """Public URL of an object."""
        ...

    async def close(self) -> None:
        """Close any resources held by this store."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
