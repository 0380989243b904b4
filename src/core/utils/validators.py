"""Upload validation utilities.

Validation is read-only: it inspects the uploaded file and the policy and
either returns a `ValidatedUpload` or raises a `ValidationError`. The size
check runs before any byte of the file is read.
"""

import re
from pathlib import Path, PurePath

from aws_lambda_powertools import Logger
from PIL import Image, UnidentifiedImageError

from core.models.errors import FileSizeError, MIMETypeError, ValidationError
from core.models.policy import GalleryPolicy, normalize_extension
from core.models.upload import UploadRequest, UploadStatus, ValidatedUpload, upload_status_message
from core.utils.constants import (
    ERROR_CODE_DIMENSIONS_UNREADABLE,
    ERROR_CODE_EXTENSION_MISMATCH,
    ERROR_CODE_EXTENSION_NOT_ALLOWED,
    ERROR_CODE_UNSUPPORTED_UPLOAD_TARGET,
    ERROR_CODE_UPLOAD_TRANSPORT_FAILED,
    MIME_TYPE_EXTENSION_MAP,
    STORAGE_TARGET_LOCAL,
    TEXT_FIELD_MAX_LENGTH,
    format_file_size,
)
from core.utils.mime import detect_file_mime_type

logger = Logger(UTC=True)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_text(value: str, max_length: int = TEXT_FIELD_MAX_LENGTH) -> str:
    """Remove ASCII control characters, trim and truncate."""
    return _CONTROL_CHARS.sub("", value).strip()[:max_length]


def claimed_extension(filename: str) -> str:
    """Return the normalized extension of a client-supplied file name."""
    name = PurePath(filename).name
    if "." not in name:
        return ""
    return normalize_extension(name.rpartition(".")[2])


def read_dimensions(path: Path) -> tuple[int, int]:
    """Read width and height from the image header without decoding pixels.

    Raises:
        ValidationError: If the header cannot be parsed
    """
    try:
        with Image.open(path) as header:
            width, height = header.size
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise ValidationError(
            message="Failed to read image dimensions.",
            error_code=ERROR_CODE_DIMENSIONS_UNREADABLE,
        ) from exc

    if width < 1 or height < 1:
        raise ValidationError(
            message="Failed to read image dimensions.",
            error_code=ERROR_CODE_DIMENSIONS_UNREADABLE,
            details={"width": width, "height": height},
        )

    return width, height


def validate_upload(request: UploadRequest | None, policy: GalleryPolicy) -> ValidatedUpload:
    """Validate one uploaded file against the gallery policy.

    Args:
        request: Upload handed over by the caller
        policy: Policy snapshot for this call

    Returns:
        The validated upload with canonical extension, MIME type and dimensions

    Raises:
        ValidationError: If any check fails (FileSizeError / MIMETypeError
            for size and type problems)
    """
    if request is None:
        raise ValidationError(message="No upload payload provided.")

    if request.status != UploadStatus.OK:
        raise ValidationError(
            message=upload_status_message(request.status),
            error_code=ERROR_CODE_UPLOAD_TRANSPORT_FAILED,
            details={"status": request.status},
        )

    source_path = request.tmp_path
    if source_path is None or not source_path.is_file():
        raise ValidationError(message="Uploaded image could not be validated as an upload.")

    if policy.upload_target != STORAGE_TARGET_LOCAL:
        raise ValidationError(
            message="Only local gallery storage is supported in this build.",
            error_code=ERROR_CODE_UNSUPPORTED_UPLOAD_TARGET,
            details={"upload_target": policy.upload_target},
        )

    if request.size <= 0 or (policy.max_bytes > 0 and request.size > policy.max_bytes):
        logger.warning(
            "Upload size rejected",
            extra={
                "size": format_file_size(max(request.size, 0)),
                "max_size": format_file_size(policy.max_bytes) if policy.max_bytes else "unlimited",
            },
        )
        raise FileSizeError(
            message="Image exceeds configured max filesize.",
            details={"size": request.size, "max_size": policy.max_bytes},
        )

    # Detect real MIME type from bytes, never trust the file name.
    try:
        mime_type = detect_file_mime_type(source_path)
    except (ValueError, OSError) as exc:
        raise MIMETypeError(message="Only gif/jpg/jpeg/png images are supported.") from exc

    extension = MIME_TYPE_EXTENSION_MAP.get(mime_type)
    if extension is None:
        raise MIMETypeError(
            message="Only gif/jpg/jpeg/png images are supported.",
            details={"mime_type": mime_type},
        )

    if extension not in policy.allowed_extensions:
        raise ValidationError(
            message="Detected image format is not allowed by current configuration.",
            error_code=ERROR_CODE_EXTENSION_NOT_ALLOWED,
            details={"extension": extension},
        )

    claimed = claimed_extension(request.filename)
    if claimed and claimed != extension:
        raise ValidationError(
            message="Uploaded extension does not match detected image bytes.",
            error_code=ERROR_CODE_EXTENSION_MISMATCH,
            details={"claimed": claimed, "detected": extension},
        )

    width, height = read_dimensions(source_path)

    return ValidatedUpload(
        source_path=source_path,
        original_filename=request.filename,
        claimed_size=request.size,
        mime_type=mime_type,
        extension=extension,
        width=width,
        height=height,
    )
