"""
Box publication.

Validated configuration, build artifacts, provider naming and the
publish orchestrator.
"""

from __future__ import annotations

from boxpublisher.publisher.artifact import ArtifactError, BuildArtifact, select_box_file
from boxpublisher.publisher.config import ConfigError, PublishConfig, load_config, parse_config
from boxpublisher.publisher.orchestrator import (
    BoxPublisher,
    ManifestFetchResult,
    ManifestFound,
    ManifestNotFound,
    PublishError,
    PublishResult,
    PublishStage,
)
from boxpublisher.publisher.providers import provider_from_builder

__all__ = [
    "ArtifactError",
    "BoxPublisher",
    "BuildArtifact",
    "ConfigError",
    "ManifestFetchResult",
    "ManifestFound",
    "ManifestNotFound",
    "PublishConfig",
    "PublishError",
    "PublishResult",
    "PublishStage",
    "load_config",
    "parse_config",
    "provider_from_builder",
    "select_box_file",
]
