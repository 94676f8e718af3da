"""
Azure Blob Storage client on the azure-storage-blob async SDK.

Operations used by the publisher:
- upload_blob (BlockBlob): declare an empty block object / write the manifest
- stage_block: stage one block
- commit_block_list: commit staged blocks in order
- download_blob: read an object

Authentication is the storage account name and key (SharedKey). Signing,
URL encoding and the wire format are left to the SDK; aiohttp is its
transport.
"""

from __future__ import annotations

import base64
import binascii
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from azure.core import MatchConditions
from azure.core.exceptions import (
    AzureError,
    HttpResponseError,
    ResourceExistsError,
    ResourceModifiedError,
    ResourceNotFoundError,
)
from azure.core.pipeline.transport import AioHttpTransport
from azure.storage.blob import BlobBlock, BlobType, BlockState, ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from boxpublisher.storage.base import (
    BlobConditionFailedError,
    BlobNotFoundError,
    BlobObject,
    BlobStore,
    BlobStoreError,
    BlockStatus,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from azure.storage.blob.aio import BlobClient

    from boxpublisher.publisher.config import PublishConfig
    from boxpublisher.storage.base import BlockRef

logger = logging.getLogger(__name__)

NOT_FOUND_CODE = "BlobNotFound"

_BLOCK_STATES: dict[BlockStatus, BlockState] = {
    BlockStatus.COMMITTED: BlockState.COMMITTED,
    BlockStatus.UNCOMMITTED: BlockState.UNCOMMITTED,
    BlockStatus.LATEST: BlockState.LATEST,
}


def default_endpoint(account_name: str) -> str:
    """Public blob endpoint of a storage account."""
    return f"https://{account_name}.blob.core.windows.net"


def sdk_block_id(block_id: str) -> str:
    """Block id in the form the SDK expects.

    The SDK base64-encodes block ids itself, so it is handed the decoded
    text. The id on the wire is then exactly ``block_id``.
    """
    return base64.b64decode(block_id).decode("ascii")


@contextmanager
def _translate_errors(operation: str, container: str, path: str) -> Iterator[None]:
    """Map SDK exceptions onto the BlobStore error taxonomy."""
    target = f"{operation} {container}/{path}"
    try:
        yield
    except ResourceNotFoundError as e:
        error_code = getattr(e, "error_code", None)
        if error_code == NOT_FOUND_CODE:
            raise BlobNotFoundError(f"{target}: {e.message}", status=404, error_code=error_code) from e
        raise BlobStoreError(f"{target}: {e.message}", status=e.status_code, error_code=error_code) from e
    except (ResourceModifiedError, ResourceExistsError) as e:
        raise BlobConditionFailedError(
            f"{target}: {e.message}",
            status=e.status_code,
            error_code=getattr(e, "error_code", None),
        ) from e
    except HttpResponseError as e:
        error_code = getattr(e, "error_code", None)
        logger.error(
            "Blob request rejected",
            extra={"operation": operation, "status": e.status_code, "error_code": error_code},
        )
        raise BlobStoreError(f"{target}: {e.message}", status=e.status_code, error_code=error_code) from e
    except AzureError as e:
        logger.error("Blob request failed", extra={"operation": operation, "error": str(e)})
        raise BlobStoreError(f"{target} failed: {e}") from e


class AzureBlobStore(BlobStore):
    """
    Async Azure Blob Storage client.

    One BlobServiceClient per store, created on first use. Every call
    carries its own read deadline (request_timeout_s). The SDK's retry
    policy is disabled; errors are never retried here.
    """

    def __init__(
        self,
        account_name: str,
        access_key: str,
        *,
        endpoint: str | None = None,
        request_timeout_s: float = 60.0,
    ) -> None:
        """
        Initialize the client.

        Args:
            account_name: Storage account name.
            access_key: Base64-encoded storage account key.
            endpoint: Blob endpoint override (e.g. an emulator URL).
            request_timeout_s: Deadline for each HTTP call.

        Raises:
            ValueError: If access_key is not valid base64.
        """
        try:
            base64.b64decode(access_key, validate=True)
        except binascii.Error as e:
            raise ValueError("access_key must be a base64-encoded account key") from e
        self._account_name = account_name
        self._access_key = access_key
        self._endpoint = (endpoint or default_endpoint(account_name)).rstrip("/")
        self._request_timeout_s = request_timeout_s
        self._service: BlobServiceClient | None = None

    @classmethod
    def from_config(cls, config: PublishConfig) -> AzureBlobStore:
        """Build a client from publish configuration."""
        return cls(
            config.storage_account_name,
            config.access_key.get_secret_value(),
            endpoint=config.endpoint,
            request_timeout_s=config.request_timeout_s,
        )

    def _get_service(self) -> BlobServiceClient:
        """Get or create the service client."""
        if self._service is None:
            self._service = BlobServiceClient(
                account_url=self._endpoint,
                credential={"account_name": self._account_name, "account_key": self._access_key},
                connection_timeout=self._request_timeout_s,
                read_timeout=self._request_timeout_s,
                retry_total=0,
                transport=AioHttpTransport(),
            )
        return self._service

    def _blob(self, container: str, path: str) -> BlobClient:
        return self._get_service().get_blob_client(container, path.lstrip("/"))

    async def close(self) -> None:
        """Close the service client and its HTTP transport."""
        if self._service is not None:
            await self._service.close()
            self._service = None

    def object_url(self, container: str, path: str) -> str:
        return f"{self._endpoint}/{quote(container)}/{quote(path.lstrip('/'), safe='~/')}"

    async def create_empty_object(self, container: str, path: str) -> None:
        with _translate_errors("create", container, path):
            await self._blob(container, path).upload_blob(
                b"",
                blob_type=BlobType.BLOCKBLOB,
                overwrite=True,
            )

    async def put_block(self, container: str, path: str, block_id: str, data: bytes) -> None:
        with _translate_errors("stage_block", container, path):
            await self._blob(container, path).stage_block(
                sdk_block_id(block_id),
                data,
                length=len(data),
            )

    async def put_block_list(
        self,
        container: str,
        path: str,
        blocks: Sequence[BlockRef],
    ) -> None:
        block_list = [
            BlobBlock(sdk_block_id(b.block_id), _BLOCK_STATES[b.status]) for b in blocks
        ]
        with _translate_errors("commit_block_list", container, path):
            await self._blob(container, path).commit_block_list(block_list)

    async def get_object(self, container: str, path: str) -> BlobObject:
        with _translate_errors("download", container, path):
            downloader = await self._blob(container, path).download_blob()
            data = await downloader.readall()
        properties = downloader.properties
        return BlobObject(
            data=data,
            etag=properties.etag,
            content_type=properties.content_settings.content_type,
        )

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
        if if_none_match not in (None, "*"):
            raise ValueError(f"if_none_match only supports '*', got {if_none_match!r}")
        kwargs: dict[str, Any] = {
            "blob_type": BlobType.BLOCKBLOB,
            "content_settings": ContentSettings(content_type=content_type),
            # overwrite=False makes the SDK send If-None-Match: *
            "overwrite": if_none_match is None,
        }
        if if_match is not None:
            kwargs["etag"] = if_match
            kwargs["match_condition"] = MatchConditions.IfNotModified
        with _translate_errors("upload", container, path):
            await self._blob(container, path).upload_blob(data, **kwargs)

    def __repr__(self) -> str:
        # Never expose the account key
        return f"AzureBlobStore(account={self._account_name!r}, endpoint={self._endpoint!r})"
