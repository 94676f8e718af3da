"""Build artifacts handed to the publisher."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from boxpublisher.publisher.providers import provider_from_builder

BOX_SUFFIX = ".box"


class ArtifactError(Exception):
    """Raised when an artifact does not contain exactly one box file."""


@dataclass(frozen=True)
class BuildArtifact:
    """Output of one build.

    Attributes:
        builder_id: Identifier of the builder that produced the files
            (e.g. "vmware"), used to derive the provider name.
        files: Files produced by the build.
    """

    builder_id: str
    files: tuple[Path, ...] = field(default_factory=tuple)

    @property
    def provider(self) -> str:
        """Provider name the box targets."""
        return provider_from_builder(self.builder_id)

    def box_file(self) -> Path:
        """The single box file of this artifact.

        Raises:
            ArtifactError: If there is not exactly one file, or it is not a box.
        """
        return select_box_file(self.files)


def select_box_file(files: tuple[Path, ...] | list[Path]) -> Path:
    """Return the only file of an artifact, which must be a .box file.

    Args:
        files: Artifact files.

    Returns:
        Path of the box file.

    Raises:
        ArtifactError: If files is empty, has more than one entry, or the
            entry does not end with .box.
    """
    names = [str(f) for f in files]
    if len(files) != 1:
        msg = f"Expected exactly one {BOX_SUFFIX} file in artifact, got {len(files)}: {names}"
        raise ArtifactError(msg)
    box = Path(files[0])
    if box.suffix != BOX_SUFFIX:
        msg = f"Unknown files in artifact, expected a {BOX_SUFFIX} file: {names}"
        raise ArtifactError(msg)
    return box
