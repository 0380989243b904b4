from collections.abc import Mapping
from pathlib import Path

MAGIC_BYTES: Mapping[bytes, str] = {
    b"\xff\xd8\xff": "image/jpeg",
    b"\x89PNG\r\n\x1a\n": "image/png",
    b"GIF87a": "image/gif",
    b"GIF89a": "image/gif",
}

SNIFF_LENGTH = max(len(signature) for signature in MAGIC_BYTES)


def detect_mime_type(file_data: bytes) -> str:
    for signature, mime in MAGIC_BYTES.items():
        if file_data.startswith(signature):
            return mime

    raise ValueError("Unsupported or unknown file type")


def detect_file_mime_type(path: Path) -> str:
    """Sniff the MIME type of a file on disk from its leading bytes."""
    with open(path, "rb") as handle:
        head = handle.read(SNIFF_LENGTH)

    return detect_mime_type(head)
