"""Upload request models."""

from enum import IntEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class UploadStatus(IntEnum):
    """Transport outcome reported by whatever received the upload."""

    OK = 0
    INI_SIZE = 1
    FORM_SIZE = 2
    PARTIAL = 3
    NO_FILE = 4
    NO_TMP_DIR = 6
    CANT_WRITE = 7
    EXTENSION = 8


UPLOAD_STATUS_MESSAGES: dict[UploadStatus, str] = {
    UploadStatus.INI_SIZE: "Uploaded image exceeds upload size limits.",
    UploadStatus.FORM_SIZE: "Uploaded image exceeds upload size limits.",
    UploadStatus.PARTIAL: "Uploaded image was only partially received.",
    UploadStatus.NO_FILE: "Please choose an image file to upload.",
    UploadStatus.NO_TMP_DIR: "Server temporary upload directory is missing.",
    UploadStatus.CANT_WRITE: "Server failed to write uploaded image.",
    UploadStatus.EXTENSION: "A server extension blocked the upload.",
}

UNKNOWN_UPLOAD_STATUS_MESSAGE = "Image upload failed with an unknown error."


def upload_status_message(status: int) -> str:
    """Map a transport status code to a user-facing message."""
    try:
        return UPLOAD_STATUS_MESSAGES.get(UploadStatus(status), UNKNOWN_UPLOAD_STATUS_MESSAGE)
    except ValueError:
        return UNKNOWN_UPLOAD_STATUS_MESSAGE


class UploadRequest(BaseModel):
    """One uploaded file as handed over by the caller.

    The temporary file is owned by the caller and is only ever read.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    tmp_path: Path | None = Field(None, description="Temporary file holding the uploaded bytes")
    filename: StrictStr = Field("upload", description="Client-supplied file name")
    size: StrictInt = Field(0, description="Client-claimed size in bytes")
    status: int = Field(int(UploadStatus.OK), description="Transport status code")

    @classmethod
    def from_path(cls, path: Path, *, filename: str | None = None) -> "UploadRequest":
        """Build a successful upload request for a file already on disk."""
        return cls(
            tmp_path=path,
            filename=filename if filename is not None else path.name,
            size=path.stat().st_size,
            status=int(UploadStatus.OK),
        )


class ValidatedUpload(BaseModel):
    """Upload that passed validation, with sniffed type and header size."""

    model_config = ConfigDict(frozen=True)

    source_path: Path
    original_filename: StrictStr
    claimed_size: StrictInt
    mime_type: StrictStr
    extension: StrictStr
    width: StrictInt
    height: StrictInt
