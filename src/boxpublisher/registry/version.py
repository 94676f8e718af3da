"""Box version parsing, ordering and next-version policy.

Version string format:
    MAJOR.MINOR.PATCH   (numeric components only, no pre-release/build tags)

Example:
    1.0.0
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class BumpPolicy(str, Enum):
    """How a new version is minted when none is supplied.

    MINOR: MAJOR.(MINOR+1).0 from the latest version (historical behavior:
        0.0.2 -> 0.1.0).
    PATCH: MAJOR.MINOR.(PATCH+1) from the latest version.
    """

    MINOR = "minor"
    PATCH = "patch"


VERSION_PATTERN = re.compile(r"^(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)$")


@dataclass(frozen=True, order=True)
class BoxVersion:
    """Parsed MAJOR.MINOR.PATCH version.

    Ordering is numeric per component, so 0.10.0 > 0.9.9.

    Attributes:
        major: Major component.
        minor: Minor component.
        patch: Patch component.
    """

    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def bump(self, policy: BumpPolicy = BumpPolicy.MINOR) -> BoxVersion:
        """Return the version that follows this one under the given policy."""
        if policy is BumpPolicy.PATCH:
            return BoxVersion(self.major, self.minor, self.patch + 1)
        return BoxVersion(self.major, self.minor + 1, 0)


ZERO_VERSION = BoxVersion(0, 0, 0)


def parse_box_version(version_str: str) -> BoxVersion:
    """Parse a version string into components.

    Args:
        version_str: Version string in MAJOR.MINOR.PATCH format.

    Returns:
        BoxVersion with parsed components.

    Raises:
        ValueError: If version string doesn't match expected format.
    """
    match = VERSION_PATTERN.match(version_str.strip())
    if match is None:
        msg = f"Invalid version string: {version_str!r}. Expected format: MAJOR.MINOR.PATCH"
        raise ValueError(msg)
    return BoxVersion(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
    )
