"""Box manifest model.

The manifest is the small JSON index that maps a box family to its known
versions and, per version, one download URL and checksum per provider:

    {
        "name": "demo",
        "versions": [
            {
                "version": "1.0.0",
                "providers": [
                    {
                        "name": "virtualbox",
                        "url": "https://acct.blob.core.windows.net/boxes/demo/1.0.0/demo.box",
                        "checksum_type": "sha256",
                        "checksum": "abc123..."
                    }
                ]
            }
        ]
    }

The remote object is always rewritten in full; the model is mutated by
add_provider() only, which never removes versions or providers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import orjson

from boxpublisher.registry.checksum import CHECKSUM_TYPE
from boxpublisher.registry.version import (
    ZERO_VERSION,
    BoxVersion,
    BumpPolicy,
    parse_box_version,
)

logger = logging.getLogger(__name__)


class ManifestError(Exception):
    """Base exception for manifest operations."""


class ManifestValidationError(ManifestError):
    """Raised when a manifest document has an invalid shape."""


def _require_str(data: dict[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        msg = f"{where}: {key!r} must be a string, got {type(value).__name__}"
        raise ManifestValidationError(msg)
    return value


def _optional_str(data: dict[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        msg = f"{where}: {key!r} must be a string, got {type(value).__name__}"
        raise ManifestValidationError(msg)
    return value


def _require_list(data: dict[str, Any], key: str, where: str) -> list[Any]:
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"{where}: {key!r} must be a list, got {type(value).__name__}"
        raise ManifestValidationError(msg)
    return value


def _require_dict(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        msg = f"{where}: expected an object, got {type(value).__name__}"
        raise ManifestValidationError(msg)
    return value


@dataclass
class ProviderEntry:
    """Download location of one provider variant of a box version.

    Attributes:
        name: Provider identifier (e.g. "virtualbox").
        url: Fully-qualified artifact URL.
        checksum: Hex-encoded digest of the artifact.
        checksum_type: Digest algorithm identifier.
    """

    name: str
    url: str
    checksum: str
    checksum_type: str = CHECKSUM_TYPE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "url": self.url,
            "checksum_type": self.checksum_type,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderEntry:
        """Create from dictionary.

        Only name and url are required. Entries written by other tools may
        omit the checksum fields; they decode as empty strings.
        """
        where = "provider"
        return cls(
            name=_require_str(data, "name", where),
            url=_require_str(data, "url", where),
            checksum_type=_optional_str(data, "checksum_type", where),
            checksum=_optional_str(data, "checksum", where),
        )


@dataclass
class VersionEntry:
    """All provider variants published under one version string."""

    version: str
    providers: list[ProviderEntry] = field(default_factory=list)

    def get_provider(self, name: str) -> ProviderEntry | None:
        """Get provider entry by name."""
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None

    @property
    def provider_names(self) -> list[str]:
        """Provider names in stored order."""
        return [p.name for p in self.providers]

    def put_provider(self, provider: ProviderEntry) -> None:
        """Replace the same-named provider in place, or append a new one."""
        for i, existing in enumerate(self.providers):
            if existing.name == provider.name:
                self.providers[i] = provider
                return
        self.providers.append(provider)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "version": self.version,
            "providers": [p.to_dict() for p in self.providers],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VersionEntry:
        """Create from dictionary.

        Raises:
            ManifestValidationError: On bad shape or duplicate provider names.
        """
        version = _require_str(data, "version", "version entry")
        where = f"version {version!r}"
        providers = [
            ProviderEntry.from_dict(_require_dict(p, where))
            for p in _require_list(data, "providers", where)
        ]
        seen: set[str] = set()
        for provider in providers:
            if provider.name in seen:
                msg = f"{where}: duplicate provider {provider.name!r}"
                raise ManifestValidationError(msg)
            seen.add(provider.name)
        return cls(version=version, providers=providers)


@dataclass
class Manifest:
    """Box family manifest.

    Attributes:
        name: Box family name, set on first publish and never changed.
        versions: Version entries in stored (insertion) order.
    """

    name: str
    versions: list[VersionEntry] = field(default_factory=list)

    @classmethod
    def empty(cls, name: str) -> Manifest:
        """Manifest for a box family that has never been published."""
        return cls(name=name, versions=[])

    def get_version(self, version: str) -> VersionEntry | None:
        """Get version entry by exact version string."""
        for entry in self.versions:
            if entry.version == version:
                return entry
        return None

    @property
    def version_strings(self) -> list[str]:
        """Version strings in stored order."""
        return [v.version for v in self.versions]

    def add_provider(self, version: str, provider: ProviderEntry) -> VersionEntry:
        """Add or replace a provider under a version, creating the version if needed.

        Other versions and other providers are never touched.

        Args:
            version: Exact version string.
            provider: Provider entry to store.

        Returns:
            The version entry that now holds the provider.
        """
        entry = self.get_version(version)
        if entry is None:
            entry = VersionEntry(version=version)
            self.versions.append(entry)
        entry.put_provider(provider)
        return entry

    def latest_version(self) -> BoxVersion | None:
        """Highest parseable version, or None when there is none.

        Version strings that are not MAJOR.MINOR.PATCH are skipped.
        """
        parsed: list[BoxVersion] = []
        for raw in self.version_strings:
            try:
                parsed.append(parse_box_version(raw))
            except ValueError:
                logger.warning(
                    "Ignoring unparseable version in manifest",
                    extra={"manifest_name": self.name, "version": raw},
                )
        return max(parsed) if parsed else None

    def next_version(self, policy: BumpPolicy = BumpPolicy.MINOR) -> str:
        """Version string to use when the caller did not supply one."""
        latest = self.latest_version() or ZERO_VERSION
        return str(latest.bump(policy))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "versions": [v.to_dict() for v in self.versions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        """Create from dictionary.

        Raises:
            ManifestValidationError: On bad shape or duplicate version strings.
        """
        data = _require_dict(data, "manifest")
        name = _require_str(data, "name", "manifest")
        versions = [
            VersionEntry.from_dict(_require_dict(v, "manifest versions"))
            for v in _require_list(data, "versions", "manifest")
        ]
        seen: set[str] = set()
        for entry in versions:
            if entry.version in seen:
                msg = f"manifest {name!r}: duplicate version {entry.version!r}"
                raise ManifestValidationError(msg)
            seen.add(entry.version)
        return cls(name=name, versions=versions)


def resolve_version(
    explicit: str | None,
    manifest: Manifest,
    policy: BumpPolicy = BumpPolicy.MINOR,
) -> str:
    """Pick the version to publish under.

    An explicit version is used verbatim, even when it already exists in the
    manifest. Otherwise the next version is derived from the manifest.
    """
    if explicit is not None and explicit.strip():
        return explicit.strip()
    return manifest.next_version(policy)


def encode_manifest(manifest: Manifest) -> bytes:
    """Serialize manifest to JSON bytes using orjson."""
    return orjson.dumps(
        manifest.to_dict(),
        option=orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE,
    )


def decode_manifest(data: bytes | str) -> Manifest:
    """Deserialize manifest from JSON.

    Raises:
        ManifestError: If the payload is not JSON.
        ManifestValidationError: If the JSON is not a valid manifest.
    """
    try:
        raw = orjson.loads(data)
    except orjson.JSONDecodeError as e:
        msg = f"Manifest is not valid JSON: {e}"
        raise ManifestError(msg) from e
    return Manifest.from_dict(raw)
