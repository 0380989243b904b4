"""Gallery asset and variant models."""

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, field_validator

from core.utils.constants import ASSET_STATUS_READY, STORAGE_TARGET_LOCAL
from core.utils.validators import sanitize_text


class ImageVariant(BaseModel):
    """One resized rendition of a gallery asset."""

    variant_key: StrictStr = Field(..., description="Configured variant key (e.g. sm)")
    stored_filename: StrictStr = Field(..., description="File name under the owner directory")
    stored_path: StrictStr = Field(..., description="Path relative to the upload root")
    mime_type: StrictStr = Field(..., description="MIME type of the stored file")
    extension: StrictStr = Field(..., description="Canonical file extension")
    byte_size: StrictInt = Field(..., description="Stored file size in bytes")
    width: StrictInt = Field(..., description="Stored width in pixels")
    height: StrictInt = Field(..., description="Stored height in pixels")

    created_at: StrictStr | None = Field(None, description="ISO-8601 creation timestamp (UTC)")


class ImageAsset(BaseModel):
    """Gallery image registered for one owner, stored as its canonical original."""

    asset_id: StrictInt | None = Field(None, description="Assigned by the registrar on insert")
    owner_id: StrictInt = Field(..., description="Owning page identifier")
    storage_target: StrictStr = Field(STORAGE_TARGET_LOCAL, description="Storage backend name")

    original_filename: StrictStr = Field(..., description="Sanitized client file name")
    stored_filename: StrictStr = Field(..., description="File name under the owner directory")
    stored_path: StrictStr = Field(..., description="Path relative to the upload root")
    mime_type: StrictStr = Field(..., description="Sniffed MIME type")
    extension: StrictStr = Field(..., description="Canonical file extension")
    byte_size: StrictInt = Field(..., description="Stored original size in bytes")
    width: StrictInt = Field(..., description="Stored width in pixels")
    height: StrictInt = Field(..., description="Stored height in pixels")
    hash_sha256: StrictStr = Field(..., description="SHA-256 of the uploaded bytes")

    status: StrictStr = Field(ASSET_STATUS_READY, description="Processing status")
    sort_order: StrictInt = Field(1, description="Position within the owner's gallery")
    is_cover: StrictBool = False
    is_preview: StrictBool = False
    include_in_gallery: StrictBool = True

    alt_text: StrictStr = ""
    title_text: StrictStr = ""
    caption: StrictStr = ""
    credit: StrictStr = ""
    license: StrictStr = ""
    focal_x: float | None = None
    focal_y: float | None = None

    created_at: StrictStr | None = Field(None, description="ISO-8601 creation timestamp (UTC)")
    updated_at: StrictStr | None = Field(None, description="ISO-8601 last update timestamp (UTC)")

    variants: list[ImageVariant] = Field(
        default_factory=list,
        description="Variants, populated when an asset is fetched back",
    )


class GalleryItemUpdate(BaseModel):
    """Editable gallery fields of one asset.

    Every field is written on update; omitted fields fall back to the
    defaults below rather than keeping their stored value.
    """

    model_config = ConfigDict(frozen=True)

    alt_text: str = ""
    title_text: str = ""
    caption: str = ""
    credit: str = ""
    license: str = ""
    focal_x: float | None = Field(None, allow_inf_nan=False)
    focal_y: float | None = Field(None, allow_inf_nan=False)
    sort_order: int = Field(1, description="Position within the owner's gallery")
    is_cover: bool = False
    is_preview: bool = False
    include_in_gallery: bool = True

    @field_validator("alt_text", "title_text", "caption", "credit", "license")
    @classmethod
    def clean_text(cls, value: str) -> str:
        return sanitize_text(value)
