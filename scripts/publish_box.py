#!/usr/bin/env python3
"""
CLI script for publishing a box to blob storage.

Uploads the box with the chunked block/commit protocol, then adds it to the
manifest under the given (or next) version.

Usage:
    python scripts/publish_box.py --config publish.yml --builder virtualbox build/demo.box
    python scripts/publish_box.py --config publish.yml --builder vmware build/demo.box --version 1.2.0
    python scripts/publish_box.py --config publish.yml --builder virtualbox build/demo.box --dry-run

Exit codes: 0 published, 1 publish failed, 2 invalid configuration/usage.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from boxpublisher.logging_config import setup_logging
from boxpublisher.metrics import PublishMetrics
from boxpublisher.publisher.artifact import BuildArtifact
from boxpublisher.publisher.config import ConfigError, PublishConfig, load_config
from boxpublisher.publisher.orchestrator import BoxPublisher, PublishError, PublishResult
from boxpublisher.storage.azure import AzureBlobStore, default_endpoint
from boxpublisher.storage.base import BlobStore
from boxpublisher.storage.memory import InMemoryBlobStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for the publish CLI."""
    parser = argparse.ArgumentParser(
        description="Publish a box to blob storage and record it in the manifest.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "files",
        type=Path,
        nargs="+",
        help="Build output files (exactly one .box file)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to publish config YAML",
    )
    parser.add_argument(
        "--builder",
        "-b",
        required=True,
        help="Builder id that produced the box (e.g. virtualbox, vmware)",
    )
    parser.add_argument(
        "--version",
        default=None,
        help="Version to publish under (default: next version from the manifest)",
    )
    parser.add_argument(
        "--box-name",
        default=None,
        help="Box family name (overrides config)",
    )
    parser.add_argument(
        "--container",
        dest="container_name",
        default=None,
        help="Container name (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines instead of human-readable output",
    )
    parser.add_argument(
        "--metrics-file",
        type=Path,
        default=None,
        help="Write Prometheus metrics to this textfile-collector file",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run every publish step against an in-memory store; nothing is uploaded",
    )
    return parser


def build_store(config: PublishConfig, *, dry_run: bool = False) -> BlobStore:
    """Blob store for a publish run.

    A dry run keeps the real object URLs so the printed result matches
    what a real publish would report.
    """
    if dry_run:
        base_url = config.endpoint or default_endpoint(config.storage_account_name)
        return InMemoryBlobStore(base_url=base_url)
    return AzureBlobStore.from_config(config)


async def run_publish(
    config: PublishConfig,
    artifact: BuildArtifact,
    store: BlobStore | None = None,
    metrics: PublishMetrics | None = None,
) -> PublishResult:
    """Publish an artifact, closing the store afterwards.

    Args:
        config: Validated configuration.
        artifact: Build output to publish.
        store: Blob store (default: Azure client built from config).
        metrics: Optional metrics sink.
    """
    store = store or AzureBlobStore.from_config(config)
    try:
        return await BoxPublisher(config, store, metrics=metrics).publish(artifact)
    finally:
        await store.close()


def _write_metrics(metrics: PublishMetrics, path: Path) -> None:
    try:
        metrics.write_textfile(path)
    except OSError as e:
        # Metrics never change the exit code
        logger.warning(f"Cannot write metrics file {path}: {e}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, json_format=args.json_logs)

    overrides = {
        "version": args.version,
        "box_name": args.box_name,
        "container_name": args.container_name,
    }
    try:
        config = load_config(args.config, overrides=overrides)
    except ConfigError as e:
        logger.error(str(e))
        return 2

    artifact = BuildArtifact(builder_id=args.builder, files=tuple(args.files))
    metrics = PublishMetrics() if args.metrics_file else None
    store = build_store(config, dry_run=args.dry_run)
    if args.dry_run:
        logger.info("Dry run: nothing will be written to blob storage")
    try:
        result = asyncio.run(run_publish(config, artifact, store, metrics=metrics))
    except PublishError as e:
        logger.error(f"{e} (stage={e.stage.value})")
        return 1
    finally:
        if metrics is not None:
            _write_metrics(metrics, args.metrics_file)

    logger.info(f"Published {result.provider} {result.version}: {result.url}")
    print(result.url)
    return 0


if __name__ == "__main__":
    sys.exit(main())
