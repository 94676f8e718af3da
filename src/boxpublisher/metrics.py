"""
Prometheus metrics for box publication.

A publish run is a batch job, so metrics are collected in a private registry
and written once to a node_exporter textfile-collector file at the end of
the run. Only low-cardinality labels are used: no box names, versions,
paths or URLs.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge, write_to_textfile
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from pathlib import Path

# Labels that would grow without bound across publishes
FORBIDDEN_LABELS = frozenset(
    {
        "box_name",
        "version",
        "path",
        "url",
        "container",
        "checksum",
        "block_id",
    }
)

OUTCOME_SUCCESS = "success"
OUTCOME_FAILURE = "failure"


class PublishMetrics:
    """
    Metrics for one publisher process.

    Metric names:
    - boxpublisher_publishes_total{outcome, provider}
    - boxpublisher_publish_failures_total{stage}
    - boxpublisher_uploaded_bytes_total / boxpublisher_uploaded_blocks_total
    - boxpublisher_last_publish_duration_seconds
    - boxpublisher_last_success_timestamp_seconds

    Usage:
        metrics = PublishMetrics()
        publisher = BoxPublisher(config, store, metrics=metrics)
        ...
        metrics.write_textfile(Path("/var/lib/node_exporter/boxpublisher.prom"))
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize metrics.

        Args:
            registry: Prometheus CollectorRegistry. If None, a private one is created.
        """
        self._registry = registry or CollectorRegistry()

        self._publishes = Counter(
            "boxpublisher_publishes",
            "Publish attempts by outcome",
            ["outcome", "provider"],
            registry=self._registry,
        )
        self._failures = Counter(
            "boxpublisher_publish_failures",
            "Failed publishes by last completed stage",
            ["stage"],
            registry=self._registry,
        )
        self._uploaded_bytes = Counter(
            "boxpublisher_uploaded_bytes",
            "Box bytes committed to the blob store",
            registry=self._registry,
        )
        self._uploaded_blocks = Counter(
            "boxpublisher_uploaded_blocks",
            "Blocks committed to the blob store",
            registry=self._registry,
        )
        self._last_duration = Gauge(
            "boxpublisher_last_publish_duration_seconds",
            "Wall time of the most recent publish",
            registry=self._registry,
        )
        self._last_success = Gauge(
            "boxpublisher_last_success_timestamp_seconds",
            "Unix time of the most recent successful publish",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_upload(self, size_bytes: int, blocks: int) -> None:
        """Record a committed box upload."""
        self._uploaded_bytes.inc(size_bytes)
        self._uploaded_blocks.inc(blocks)

    def record_success(self, provider: str, duration_s: float) -> None:
        self._publishes.labels(outcome=OUTCOME_SUCCESS, provider=provider).inc()
        self._last_duration.set(duration_s)
        self._last_success.set(time.time())

    def record_failure(self, provider: str, stage: str, duration_s: float) -> None:
        self._publishes.labels(outcome=OUTCOME_FAILURE, provider=provider).inc()
        self._failures.labels(stage=stage).inc()
        self._last_duration.set(duration_s)

    def write_textfile(self, path: Path) -> None:
        """Write all metrics in text exposition format (atomic replace)."""
        write_to_textfile(str(path), self._registry)
