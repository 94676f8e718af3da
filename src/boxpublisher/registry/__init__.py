"""Box manifest registry.

- Manifest model (name -> versions -> providers) with merge-by-provider
- Version parsing and next-version policy
- Streaming SHA256 checksums
"""

from boxpublisher.registry.checksum import (
    CHECKSUM_TYPE,
    compute_file_sha256,
    compute_stream_sha256,
)
from boxpublisher.registry.manifest import (
    Manifest,
    ManifestError,
    ManifestValidationError,
    ProviderEntry,
    VersionEntry,
    decode_manifest,
    encode_manifest,
    resolve_version,
)
from boxpublisher.registry.version import (
    BoxVersion,
    BumpPolicy,
    parse_box_version,
)

__all__ = [
    "CHECKSUM_TYPE",
    "BoxVersion",
    "BumpPolicy",
    "Manifest",
    "ManifestError",
    "ManifestValidationError",
    "ProviderEntry",
    "VersionEntry",
    "compute_file_sha256",
    "compute_stream_sha256",
    "decode_manifest",
    "encode_manifest",
    "parse_box_version",
    "resolve_version",
]
