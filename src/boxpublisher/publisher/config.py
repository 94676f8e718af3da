"""
Publish configuration.

PublishConfig is frozen and validated once, before any network activity.
Configuration is read from YAML; string values may reference environment
variables as ``${NAME}`` (``$$`` is a literal ``$``). Every problem found
(missing keys, invalid values, bad placeholders) is reported together in a
single ConfigError.

Example publish.yml:

    storage_account_name: mystorage
    container_name: boxes
    access_key: ${AZURE_STORAGE_ACCESS_KEY}
    manifest: demo/manifest.json
    box_name: acme/demo
    box_dir: demo
"""

from __future__ import annotations

import base64
import binascii
import os
import re
from typing import TYPE_CHECKING, Any

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from boxpublisher.registry.version import BumpPolicy
from boxpublisher.storage.chunked import MAX_BLOCK_SIZE

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

# Env var consulted when access_key is absent from the config file
ACCESS_KEY_ENV_VAR = "AZURE_STORAGE_ACCESS_KEY"

REQUIRED_KEYS = (
    "storage_account_name",
    "container_name",
    "access_key",
    "manifest",
    "box_name",
    "box_dir",
)

_PLACEHOLDER_PATTERN = re.compile(r"\$(?:(?P<escaped>\$)|\{(?P<name>[^}]*)\}|(?P<invalid>))")
_ENV_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigError(Exception):
    """Raised when configuration is invalid. Carries every problem found."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        lines = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} configuration error(s):\n{lines}")


class PlaceholderError(ValueError):
    """Raised when a ${NAME} placeholder cannot be rendered."""


def render_placeholders(value: str, env: Mapping[str, str]) -> str:
    """Substitute ${NAME} references with values from env.

    Args:
        value: Raw configuration string.
        env: Variable lookup (usually os.environ).

    Returns:
        Rendered string.

    Raises:
        PlaceholderError: On unterminated/empty/invalid names or unset variables.
    """

    def _replace(match: re.Match[str]) -> str:
        if match.group("escaped"):
            return "$"
        name = match.group("name")
        if name is None:
            raise PlaceholderError(f"unescaped '$' at position {match.start()} (use $$ or ${{NAME}})")
        if not _ENV_NAME_PATTERN.match(name):
            raise PlaceholderError(f"invalid variable name {name!r}")
        if name not in env:
            raise PlaceholderError(f"variable {name!r} is not set")
        return env[name]

    return _PLACEHOLDER_PATTERN.sub(_replace, value)


class PublishConfig(BaseModel):
    """Settings for publishing one box (frozen)."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    storage_account_name: str = Field(min_length=1, description="Storage account name")
    container_name: str = Field(min_length=1, description="Blob container holding boxes")
    access_key: SecretStr = Field(description="Base64 storage account key")
    manifest: str = Field(min_length=1, description="Object path of the manifest")
    box_name: str = Field(min_length=1, description="Box family name for a new manifest")
    box_dir: str = Field(min_length=1, description="Object directory for box artifacts")
    version: str | None = Field(default=None, description="Explicit version; omitted = auto")

    endpoint: str | None = Field(default=None, description="Blob endpoint override")
    block_size: int = Field(
        default=MAX_BLOCK_SIZE,
        description="Upload block size; <= 0 or above the maximum uses the maximum",
    )
    request_timeout_s: float = Field(default=60.0, gt=0, description="Per-request deadline")
    publish_timeout_s: float | None = Field(
        default=None,
        gt=0,
        description="Deadline for the whole publish sequence",
    )
    version_bump: BumpPolicy = Field(
        default=BumpPolicy.MINOR,
        description="Next-version policy when version is omitted",
    )
    conditional_manifest_write: bool = Field(
        default=False,
        description="Write the manifest with an ETag precondition",
    )

    @field_validator("access_key")
    @classmethod
    def validate_access_key(cls, v: SecretStr) -> SecretStr:
        """Ensure access_key is present and base64 encoded."""
        raw = v.get_secret_value().strip()
        if not raw:
            raise ValueError("access_key must be set")
        try:
            base64.b64decode(raw, validate=True)
        except binascii.Error as e:
            raise ValueError("access_key must be base64 encoded") from e
        return SecretStr(raw)

    @field_validator("version", "endpoint", mode="before")
    @classmethod
    def empty_to_none(cls, v: Any) -> Any:
        """Treat blank optional strings as omitted."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str | None) -> str | None:
        """Ensure endpoint is an http(s) URL."""
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError(f"endpoint must be an http(s) URL, got {v!r}")
        return v


def _format_validation_error(error: ValidationError, skip: set[str]) -> list[str]:
    messages: list[str] = []
    for item in error.errors():
        key = ".".join(str(p) for p in item["loc"]) or "config"
        if key in skip:
            continue
        if item["type"] in {"missing", "string_too_short"}:
            messages.append(f"{key} must be set")
        elif item["type"] == "extra_forbidden":
            messages.append(f"{key} is not a known setting")
        elif item["type"] == "value_error":
            # Validator messages already name the setting
            messages.append(str(item.get("ctx", {}).get("error", item["msg"])))
        else:
            messages.append(f"{key}: {item['msg']}")
    return messages


def parse_config(
    raw: Mapping[str, Any],
    *,
    env: Mapping[str, str] | None = None,
) -> PublishConfig:
    """Validate raw settings into a PublishConfig.

    Args:
        raw: Settings mapping (e.g. parsed YAML merged with CLI overrides).
        env: Environment for placeholders and the access key fallback
             (default: os.environ).

    Returns:
        Validated PublishConfig.

    Raises:
        ConfigError: With every problem found.
    """
    env = os.environ if env is None else env
    errors: list[str] = []
    rendered: dict[str, Any] = {}
    failed_keys: set[str] = set()

    for key, value in raw.items():
        if isinstance(value, str):
            try:
                value = render_placeholders(value, env)
            except PlaceholderError as e:
                errors.append(f"Error parsing {key} template: {e}")
                failed_keys.add(key)
                continue
        rendered[key] = value

    if "access_key" not in failed_keys and not rendered.get("access_key"):
        fallback = env.get(ACCESS_KEY_ENV_VAR)
        if fallback:
            rendered["access_key"] = fallback

    try:
        config = PublishConfig.model_validate(rendered)
    except ValidationError as e:
        # Keys whose template failed are reported once, not again as missing
        errors.extend(_format_validation_error(e, skip=failed_keys))
        raise ConfigError(errors) from e

    if errors:
        raise ConfigError(errors)
    return config


def load_config(
    path: Path | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> PublishConfig:
    """Load publish configuration from a YAML file.

    Args:
        path: YAML config file (optional when overrides supply everything).
        overrides: Settings taking precedence over the file; None values
                   are ignored.
        env: Environment for placeholders (default: os.environ).

    Returns:
        Validated PublishConfig.

    Raises:
        ConfigError: If the file cannot be read/parsed or settings are invalid.
    """
    raw: dict[str, Any] = {}
    if path is not None:
        try:
            with path.open() as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError([f"Cannot read config file {path}: {e}"]) from e
        except yaml.YAMLError as e:
            raise ConfigError([f"Invalid YAML in {path}: {e}"]) from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError([f"Config file {path} must contain a mapping"])
        raw.update({str(k): v for k, v in data.items()})

    for key, value in (overrides or {}).items():
        if value is not None:
            raw[key] = value

    return parse_config(raw, env=env)
