"""Pydantic models for the upload pipeline result."""

from pydantic import BaseModel, Field

from core.models.errors import ImageServiceError
from core.utils.constants import ERROR_CODE_INTERNAL_ERROR

INTERNAL_FAILURE_MESSAGE = "Image processing failed."


class UploadResult(BaseModel):
    """Outcome of one upload attempt. Failures are values, not exceptions."""

    ok: bool = Field(..., description="True when the asset was registered")
    asset_id: int | None = Field(None, description="New asset id on success")
    error: str | None = Field(None, description="User-facing failure message")
    error_code: str | None = Field(None, description="Stable error code")
    error_kind: str | None = Field(
        None,
        description="validation, duplicate, storage, transcode, registration or internal",
    )

    @classmethod
    def success(cls, asset_id: int) -> "UploadResult":
        return cls(ok=True, asset_id=asset_id)

    @classmethod
    def failure(cls, exc: ImageServiceError) -> "UploadResult":
        return cls(
            ok=False,
            error=exc.message,
            error_code=exc.error_code,
            error_kind=exc.kind,
        )

    @classmethod
    def internal_failure(cls) -> "UploadResult":
        return cls(
            ok=False,
            error=INTERNAL_FAILURE_MESSAGE,
            error_code=ERROR_CODE_INTERNAL_ERROR,
            error_kind=ImageServiceError.kind,
        )
