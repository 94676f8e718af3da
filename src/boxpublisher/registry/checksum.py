"""Streaming SHA-256 checksums for box artifacts.

The whole artifact is never held in memory: content is fed to the digest in
bounded chunks so boxes of arbitrary size can be hashed.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, BinaryIO

if TYPE_CHECKING:
    from pathlib import Path

# Single algorithm identifier recorded in the manifest
CHECKSUM_TYPE = "sha256"

DEFAULT_READ_SIZE = 64 * 1024


def compute_stream_sha256(stream: BinaryIO, chunk_size: int = DEFAULT_READ_SIZE) -> str:
    """Compute SHA256 hash of everything remaining in a binary stream.

    Args:
        stream: Readable binary stream, consumed to EOF.
        chunk_size: Bytes read per iteration.

    Returns:
        Hex-encoded SHA256 hash (64 chars).
    """
    hasher = hashlib.sha256()
    for chunk in iter(lambda: stream.read(chunk_size), b""):
        hasher.update(chunk)
    return hasher.hexdigest()


def compute_file_sha256(filepath: Path) -> str:
    """Compute SHA256 hash of a file.

    Args:
        filepath: Path to file.

    Returns:
        Hex-encoded SHA256 hash (64 chars).

    Raises:
        FileNotFoundError: If file doesn't exist.
        OSError: If the file cannot be read to the end.
    """
    with filepath.open("rb") as f:
        return compute_stream_sha256(f)
