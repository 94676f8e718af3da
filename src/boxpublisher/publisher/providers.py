"""Builder id to box provider name mapping."""

from __future__ import annotations

# Builders whose provider name differs from the builder id, plus the known
# identical ones for documentation
BUILDER_PROVIDERS: dict[str, str] = {
    "aws": "aws",
    "digitalocean": "digitalocean",
    "virtualbox": "virtualbox",
    "vmware": "vmware_desktop",
    "parallels": "parallels",
}


def provider_from_builder(builder_id: str) -> str:
    """Provider name for a builder id; unknown ids are passed through."""
    return BUILDER_PROVIDERS.get(builder_id, builder_id)
