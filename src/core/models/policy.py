"""Gallery upload policy.

The policy is an immutable snapshot passed into every upload call; nothing
in the pipeline reads upload configuration from module-level state.

Recognized settings (see `GalleryPolicy.from_settings`):

    upload_target          only "local" is supported
    allowed_extensions     csv of canonical extensions ("jpeg" means "jpg")
    max_filesize_kb        0 = unlimited, absent = 10MB
    strip_exif             remove metadata after orientation is baked in
    variant.<key>.width    per-variant max width, 0 = auto
    variant.<key>.height   per-variant max height, 0 = auto
"""

import os
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, field_validator

from core.utils.constants import (
    DEFAULT_ALLOWED_EXTENSIONS,
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_STRIP_EXIF,
    DEFAULT_UPLOAD_TARGET,
    DEFAULT_VARIANT_SPECS,
    ENV_GALLERY_ALLOWED_EXTENSIONS,
    ENV_GALLERY_MAX_FILESIZE_KB,
    ENV_GALLERY_STRIP_EXIF,
    ENV_GALLERY_UPLOAD_TARGET,
    ENV_GALLERY_VARIANT_PREFIX,
    EXTENSION_ALIASES,
)

EXTENSION_PATTERN = re.compile(r"^[a-z0-9]+$")
VARIANT_KEY_PATTERN = re.compile(r"^[a-z0-9]+$")
VARIANT_SETTING_PATTERN = re.compile(r"^variant\.([a-z0-9]+)\.(width|height)$")

TRUTHY_STRINGS = frozenset({"1", "true", "yes", "on"})


def normalize_extension(extension: str) -> str:
    """Lowercase an extension and map aliases such as `jpeg` to `jpg`."""
    ext = extension.strip().lower().lstrip(".")
    return EXTENSION_ALIASES.get(ext, ext)


def parse_allowed_extensions(raw: str | Iterable[str]) -> frozenset[str]:
    """Parse a csv string (or iterable) into a normalized extension set.

    Empty entries and entries with characters outside [a-z0-9] are dropped.
    """
    parts = raw.split(",") if isinstance(raw, str) else list(raw)

    allowed: set[str] = set()
    for part in parts:
        ext = normalize_extension(str(part))
        if ext and EXTENSION_PATTERN.match(ext):
            allowed.add(ext)

    return frozenset(allowed)


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY_STRINGS


class VariantSpec(BaseModel):
    """Configured maximum box for one variant; 0 on an axis means auto."""

    model_config = ConfigDict(frozen=True)

    width: StrictInt = Field(0, ge=0, description="Max width, 0 = auto")
    height: StrictInt = Field(0, ge=0, description="Max height, 0 = auto")

    @property
    def keeps_source_size(self) -> bool:
        return self.width == 0 and self.height == 0


def default_variant_specs() -> dict[str, VariantSpec]:
    return {
        key: VariantSpec(width=width, height=height)
        for key, (width, height) in DEFAULT_VARIANT_SPECS.items()
    }


class GalleryPolicy(BaseModel):
    """Immutable upload policy for one ingestion call."""

    model_config = ConfigDict(frozen=True)

    upload_target: StrictStr = Field(DEFAULT_UPLOAD_TARGET, description="Storage target name")
    max_bytes: StrictInt = Field(
        DEFAULT_MAX_FILE_SIZE,
        ge=0,
        description="Maximum upload size in bytes, 0 = unlimited",
    )
    allowed_extensions: frozenset[str] = Field(
        default_factory=lambda: parse_allowed_extensions(DEFAULT_ALLOWED_EXTENSIONS),
        description="Canonical extensions accepted after byte sniffing",
    )
    strip_metadata: StrictBool = Field(
        DEFAULT_STRIP_EXIF,
        description="Strip EXIF/XMP/ICC after orientation normalization",
    )
    variants: dict[str, VariantSpec] = Field(
        default_factory=default_variant_specs,
        description="Variant key to maximum box, in generation order",
    )

    @field_validator("upload_target", mode="before")
    @classmethod
    def normalize_upload_target(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def normalize_allowed_extensions(cls, value: Any) -> frozenset[str]:
        if isinstance(value, (str, list, tuple, set, frozenset)):
            return parse_allowed_extensions(value)
        raise ValueError("allowed_extensions must be a csv string or a collection of strings")

    @field_validator("variants")
    @classmethod
    def validate_variant_keys(cls, value: dict[str, VariantSpec]) -> dict[str, VariantSpec]:
        for key in value:
            if not VARIANT_KEY_PATTERN.match(key):
                raise ValueError(f"Invalid variant key '{key}'. Use lowercase letters and digits only")
        return value

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "GalleryPolicy":
        """Build a policy from a flat settings mapping.

        Variant keys not mentioned in `settings` keep their default boxes;
        new `variant.<key>.*` entries add variants after the defaults.

        Raises:
            ValueError: If a numeric option cannot be parsed
        """
        upload_target = str(settings.get("upload_target", DEFAULT_UPLOAD_TARGET))
        allowed = settings.get("allowed_extensions", DEFAULT_ALLOWED_EXTENSIONS)
        strip_metadata = parse_bool(settings.get("strip_exif", DEFAULT_STRIP_EXIF))

        max_bytes = DEFAULT_MAX_FILE_SIZE
        if "max_filesize_kb" in settings:
            kilobytes = int(settings["max_filesize_kb"])
            if kilobytes > 0:
                max_bytes = kilobytes * 1024
            elif kilobytes == 0:
                max_bytes = 0

        boxes: dict[str, dict[str, int]] = {
            key: {"width": width, "height": height}
            for key, (width, height) in DEFAULT_VARIANT_SPECS.items()
        }
        for name, raw in settings.items():
            match = VARIANT_SETTING_PATTERN.match(name)
            if not match:
                continue
            key, axis = match.groups()
            boxes.setdefault(key, {"width": 0, "height": 0})[axis] = max(0, int(raw))

        return cls(
            upload_target=upload_target,
            max_bytes=max_bytes,
            allowed_extensions=allowed,
            strip_metadata=strip_metadata,
            variants={key: VariantSpec(**box) for key, box in boxes.items()},
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GalleryPolicy":
        """Build a policy from GALLERY_* environment variables.

        Example:
            GALLERY_MAX_FILESIZE_KB=500
            GALLERY_VARIANT_SM_WIDTH=320
        """
        env = os.environ if environ is None else environ
        settings: dict[str, Any] = {}

        simple = {
            ENV_GALLERY_UPLOAD_TARGET: "upload_target",
            ENV_GALLERY_ALLOWED_EXTENSIONS: "allowed_extensions",
            ENV_GALLERY_MAX_FILESIZE_KB: "max_filesize_kb",
            ENV_GALLERY_STRIP_EXIF: "strip_exif",
        }
        for env_name, setting in simple.items():
            if env_name in env:
                settings[setting] = env[env_name]

        for env_name, raw in env.items():
            if not env_name.startswith(ENV_GALLERY_VARIANT_PREFIX):
                continue
            key, _, axis = env_name[len(ENV_GALLERY_VARIANT_PREFIX):].lower().rpartition("_")
            if key and axis in ("width", "height"):
                settings[f"variant.{key}.{axis}"] = raw

        return cls.from_settings(settings)
