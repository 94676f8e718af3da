"""
Box publication orchestrator.

Publishes one box and records it in the manifest, strictly in sequence:

    IDLE -> VALIDATED -> VERSION_RESOLVED -> CHECKSUM_COMPUTED -> UPLOADED
         -> MANIFEST_FETCHED -> MANIFEST_MERGED -> MANIFEST_PUBLISHED -> DONE

Any failure moves to FAILED and aborts. Nothing is retried or rolled back:
an uploaded box stays in place if the manifest write fails afterwards.

The manifest is rewritten in full. Without conditional_manifest_write two
concurrent publishes to the same manifest race and the last writer wins;
publishes for one box family must be serialized by the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from boxpublisher.registry.checksum import CHECKSUM_TYPE, compute_file_sha256
from boxpublisher.registry.manifest import (
    Manifest,
    ProviderEntry,
    decode_manifest,
    encode_manifest,
    resolve_version,
)
from boxpublisher.storage.base import BlobConditionFailedError, BlobNotFoundError
from boxpublisher.storage.chunked import ChunkedUploader

if TYPE_CHECKING:
    from pathlib import Path

    from boxpublisher.metrics import PublishMetrics
    from boxpublisher.publisher.artifact import BuildArtifact
    from boxpublisher.publisher.config import PublishConfig
    from boxpublisher.storage.base import BlobStore

logger = logging.getLogger(__name__)

MANIFEST_CONTENT_TYPE = "application/json"


class PublishStage(str, Enum):
    """Publish state machine stages."""

    IDLE = "idle"
    VALIDATED = "validated"
    VERSION_RESOLVED = "version_resolved"
    CHECKSUM_COMPUTED = "checksum_computed"
    UPLOADED = "uploaded"
    MANIFEST_FETCHED = "manifest_fetched"
    MANIFEST_MERGED = "manifest_merged"
    MANIFEST_PUBLISHED = "manifest_published"
    DONE = "done"
    FAILED = "failed"


class PublishError(Exception):
    """Raised when a publish aborts.

    Attributes:
        stage: Last stage that completed before the failure.
    """

    def __init__(self, message: str, stage: PublishStage) -> None:
        super().__init__(message)
        self.stage = stage


@dataclass(frozen=True)
class ManifestFound:
    """The manifest exists remotely."""

    manifest: Manifest
    etag: str | None = None


@dataclass(frozen=True)
class ManifestNotFound:
    """No manifest exists yet; ``manifest`` is a fresh empty one."""

    manifest: Manifest


ManifestFetchResult = ManifestFound | ManifestNotFound


@dataclass(frozen=True)
class PublishResult:
    """Outcome of a successful publish.

    Attributes:
        url: Public URL of the uploaded box.
        version: Version the box was published under.
        provider: Provider name of the box.
        checksum: SHA256 of the box.
        artifact_path: Object path of the box in the container.
        manifest: Manifest as written.
    """

    url: str
    version: str
    provider: str
    checksum: str
    artifact_path: str
    manifest: Manifest


def build_artifact_path(box_dir: str, version: str, box: Path) -> str:
    """Object path of a box: {box_dir}/{version}/{file name}."""
    parts = [box_dir.strip("/"), version, box.name]
    return "/".join(p for p in parts if p)


class BoxPublisher:
    """
    Publishes boxes to a blob store and maintains the manifest.

    One instance per configuration; publish() may be called repeatedly but
    never concurrently for the same manifest.
    """

    def __init__(
        self,
        config: PublishConfig,
        store: BlobStore,
        uploader: ChunkedUploader | None = None,
        metrics: PublishMetrics | None = None,
    ) -> None:
        """
        Initialize the publisher.

        Args:
            config: Validated publish configuration.
            store: Blob store holding boxes and the manifest.
            uploader: Chunked uploader (default: one over ``store`` using
                config.block_size).
            metrics: Optional metrics sink.
        """
        self._config = config
        self._store = store
        self._uploader = uploader or ChunkedUploader(store, config.block_size)
        self._metrics = metrics
        self._stage = PublishStage.IDLE
        self._completed = PublishStage.IDLE

    @property
    def stage(self) -> PublishStage:
        """Current stage of the most recent publish."""
        return self._stage

    def _advance(self, stage: PublishStage) -> None:
        self._stage = stage
        self._completed = stage
        logger.debug("Publish stage reached", extra={"stage": stage.value})

    async def fetch_manifest(self) -> ManifestFetchResult:
        """
        Fetch the manifest, or start an empty one if it does not exist.

        Returns:
            ManifestFound or ManifestNotFound.

        Raises:
            BlobStoreError: On any store failure other than a missing object.
            ManifestError: If the stored manifest cannot be decoded.
        """
        try:
            obj = await self._store.get_object(self._config.container_name, self._config.manifest)
        except BlobNotFoundError:
            logger.info(f"No manifest at {self._config.manifest}, starting a new one")
            return ManifestNotFound(manifest=Manifest.empty(self._config.box_name))
        return ManifestFound(manifest=decode_manifest(obj.data), etag=obj.etag)

    async def publish(self, artifact: BuildArtifact) -> PublishResult:
        """
        Publish a build artifact.

        Args:
            artifact: Build output containing exactly one .box file.

        Returns:
            PublishResult with the public box URL.

        Raises:
            PublishError: On any failure, with the last completed stage.
        """
        self._stage = PublishStage.IDLE
        self._completed = PublishStage.IDLE
        start = time.monotonic()
        try:
            result = await self._run_with_deadline(artifact)
        except PublishError as e:
            if self._metrics is not None:
                self._metrics.record_failure(
                    artifact.provider, e.stage.value, time.monotonic() - start
                )
            raise
        if self._metrics is not None:
            self._metrics.record_success(result.provider, time.monotonic() - start)
        return result

    async def _run_with_deadline(self, artifact: BuildArtifact) -> PublishResult:
        timeout_s = self._config.publish_timeout_s
        if timeout_s is None:
            return await self._run(artifact)
        try:
            async with asyncio.timeout(timeout_s):
                return await self._run(artifact)
        except TimeoutError as e:
            self._stage = PublishStage.FAILED
            msg = f"Publish timed out after {timeout_s}s (last completed stage: {self._completed.value})"
            raise PublishError(msg, stage=self._completed) from e

    async def _run(self, artifact: BuildArtifact) -> PublishResult:
        try:
            return await self._publish(artifact)
        except asyncio.CancelledError:
            self._stage = PublishStage.FAILED
            raise
        except Exception as e:
            self._stage = PublishStage.FAILED
            logger.error(
                "Publish failed",
                extra={"stage": self._completed.value, "error": str(e)},
            )
            msg = f"Publish failed after stage {self._completed.value!r}: {e}"
            raise PublishError(msg, stage=self._completed) from e

    async def _publish(self, artifact: BuildArtifact) -> PublishResult:
        config = self._config
        container = config.container_name

        box = artifact.box_file()
        provider = artifact.provider
        logger.info(
            f"Preparing to upload box for '{provider}' provider to container '{container}'"
        )
        box_size = box.stat().st_size
        logger.info(f"Box to upload: {box} ({box_size} bytes)")
        self._advance(PublishStage.VALIDATED)

        if config.version:
            version = config.version
            logger.info(f"Using {version} as new version")
        else:
            current = await self.fetch_manifest()
            version = resolve_version(None, current.manifest, config.version_bump)
            logger.info(f"No version defined, using {version} as new version")
        self._advance(PublishStage.VERSION_RESOLVED)

        logger.info("Generating checksum")
        checksum = await asyncio.to_thread(compute_file_sha256, box)
        logger.info(f"Checksum is {checksum}")
        self._advance(PublishStage.CHECKSUM_COMPUTED)

        path = build_artifact_path(config.box_dir, version, box)
        logger.info(f"Uploading box: {path}")
        with box.open("rb") as f:
            blocks = await self._uploader.upload(f, container, path)
        if self._metrics is not None:
            self._metrics.record_upload(box_size, len(blocks))
        url = self._store.object_url(container, path)
        self._advance(PublishStage.UPLOADED)

        # Re-fetch after the upload so the newest remote manifest is merged
        logger.info("Fetching latest manifest")
        fetched = await self.fetch_manifest()
        manifest = fetched.manifest
        self._advance(PublishStage.MANIFEST_FETCHED)

        logger.info(f"Adding {provider} {version} box to manifest")
        manifest.add_provider(
            version,
            ProviderEntry(
                name=provider,
                url=url,
                checksum_type=CHECKSUM_TYPE,
                checksum=checksum,
            ),
        )
        self._advance(PublishStage.MANIFEST_MERGED)

        logger.info(f"Uploading the manifest: {config.manifest}")
        if_match: str | None = None
        if_none_match: str | None = None
        if config.conditional_manifest_write:
            if isinstance(fetched, ManifestFound):
                if fetched.etag is None:
                    raise BlobConditionFailedError(
                        f"{container}/{config.manifest}: store returned no ETag; "
                        "cannot make a conditional manifest write"
                    )
                if_match = fetched.etag
            else:
                if_none_match = "*"
        await self._store.put_object(
            container,
            config.manifest,
            encode_manifest(manifest),
            MANIFEST_CONTENT_TYPE,
            if_match=if_match,
            if_none_match=if_none_match,
        )
        self._advance(PublishStage.MANIFEST_PUBLISHED)

        self._advance(PublishStage.DONE)
        return PublishResult(
            url=url,
            version=version,
            provider=provider,
            checksum=checksum,
            artifact_path=path,
            manifest=manifest,
        )
