"""Global constants used throughout the application.

This module centralizes error codes, upload constraints, default gallery
policy values and environment variable names so they can be changed in
one place.
"""

from typing import Final

# ============================================================================
# Error Codes
# ============================================================================


# Validation Errors
ERROR_CODE_VALIDATION_FAILED = "VALIDATION_FAILED"
ERROR_CODE_UPLOAD_TRANSPORT_FAILED = "UPLOAD_TRANSPORT_FAILED"
ERROR_CODE_UNSUPPORTED_MIME_TYPE = "UNSUPPORTED_MIME_TYPE"
ERROR_CODE_FILE_SIZE_EXCEEDED = "FILE_SIZE_EXCEEDED"
ERROR_CODE_EXTENSION_NOT_ALLOWED = "EXTENSION_NOT_ALLOWED"
ERROR_CODE_EXTENSION_MISMATCH = "EXTENSION_MISMATCH"
ERROR_CODE_DIMENSIONS_UNREADABLE = "DIMENSIONS_UNREADABLE"
ERROR_CODE_UNSUPPORTED_UPLOAD_TARGET = "UNSUPPORTED_UPLOAD_TARGET"

# Duplicate Errors
ERROR_CODE_IMAGE_DUPLICATE_IMAGE = "DUPLICATE_IMAGE_ERROR"

# Storage Errors
ERROR_CODE_STORAGE = "STORAGE_ERROR"
ERROR_CODE_STORAGE_DIRECTORY_FAILED = "STORAGE_DIRECTORY_FAILED"
ERROR_CODE_STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"

# Transcode Errors
ERROR_CODE_TRANSCODE = "TRANSCODE_ERROR"
ERROR_CODE_TRANSCODE_DECODE_FAILED = "TRANSCODE_DECODE_FAILED"
ERROR_CODE_TRANSCODE_ENCODE_FAILED = "TRANSCODE_ENCODE_FAILED"

# Registration / DynamoDB Errors
ERROR_CODE_REGISTRATION = "REGISTRATION_ERROR"
ERROR_CODE_DYNAMODB = "DYNAMODB_ERROR"
ERROR_CODE_METADATA_CREATE_FAILED = "METADATA_CREATE_FAILED"
ERROR_CODE_METADATA_FETCH_FAILED = "METADATA_FETCH_FAILED"
ERROR_CODE_METADATA_DELETE_FAILED = "METADATA_DELETE_FAILED"
ERROR_CODE_METADATA_DUPLICATE_CHECK_FAILED = "METADATA_DUPLICATE_CHECK_FAILED"
ERROR_CODE_METADATA_SEQUENCE_FAILED = "METADATA_SEQUENCE_FAILED"
ERROR_CODE_METADATA_UPDATE_FAILED = "METADATA_UPDATE_FAILED"
ERROR_CODE_GALLERY_UPDATE_TOO_LARGE = "GALLERY_UPDATE_TOO_LARGE"

# Internal / Unexpected
ERROR_CODE_INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# Upload Constraints
# ============================================================================

# Used when the policy does not mention max_filesize_kb at all.
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB in bytes

MIME_TYPE_EXTENSION_MAP: Final[dict[str, str]] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
}

# Claimed extensions normalized before comparing with the canonical one.
EXTENSION_ALIASES: Final[dict[str, str]] = {
    "jpeg": "jpg",
}

# Pillow format name per canonical extension.
PIL_FORMAT_BY_EXTENSION: Final[dict[str, str]] = {
    "jpg": "JPEG",
    "png": "PNG",
    "gif": "GIF",
}

JPEG_QUALITY = 85
HASH_CHUNK_SIZE = 1024 * 1024
TOKEN_BYTES = 16
TEXT_FIELD_MAX_LENGTH = 255


# ============================================================================
# Gallery Policy Defaults
# ============================================================================

DEFAULT_UPLOAD_TARGET = "local"
DEFAULT_ALLOWED_EXTENSIONS = "gif,jpg,jpeg,png"
DEFAULT_STRIP_EXIF = True

DEFAULT_VARIANT_SPECS: Final[dict[str, tuple[int, int]]] = {
    "sm": (200, 200),
    "md": (600, 600),
    "lg": (1000, 1000),
}

ASSET_STATUS_READY = "ready"
STORAGE_TARGET_LOCAL = "local"


# ============================================================================
# DynamoDB Item Layout
# ============================================================================

ASSET_KEY_PREFIX = "ASSET#"
VARIANT_KEY_SEGMENT = "#VARIANT#"
HASH_KEY_PREFIX = "HASH#"
SEQUENCE_OWNER_ID = 0
SEQUENCE_ITEM_KEY = "SEQUENCE#asset"

ENTITY_ASSET = "asset"
ENTITY_VARIANT = "variant"
ENTITY_HASH = "hash"

# DynamoDB rejects larger TransactWriteItems calls
TRANSACT_MAX_ITEMS = 100

# Largest rendition first when picking a page preview
PREVIEW_VARIANT_PRIORITY = ("lg", "md", "sm")


# ============================================================================
# Environment Variable Names
# ============================================================================

ENV_AWS_ENDPOINT_URL = "AWS_ENDPOINT_URL"
ENV_AWS_REGION = "AWS_REGION"
DEFAULT_AWS_REGION = "us-east-1"
ENV_GALLERY_ASSET_TABLE_NAME = "GALLERY_ASSET_TABLE_NAME"
ENV_GALLERY_UPLOAD_ROOT = "GALLERY_UPLOAD_ROOT"

ENV_GALLERY_UPLOAD_TARGET = "GALLERY_UPLOAD_TARGET"
ENV_GALLERY_ALLOWED_EXTENSIONS = "GALLERY_ALLOWED_EXTENSIONS"
ENV_GALLERY_MAX_FILESIZE_KB = "GALLERY_MAX_FILESIZE_KB"
ENV_GALLERY_STRIP_EXIF = "GALLERY_STRIP_EXIF"
ENV_GALLERY_VARIANT_PREFIX = "GALLERY_VARIANT_"


# ============================================================================
# Helper Functions
# ============================================================================


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted file size string
    """
    size: float = float(size_bytes)

    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0

    return f"{size:.1f} TB"
