"""Content addressing for uploaded files."""

import hashlib
from pathlib import Path

from core.utils.constants import HASH_CHUNK_SIZE


def sha256_file(path: Path, *, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Return the hex SHA-256 digest of the file's full byte content.

    The digest covers the bytes exactly as uploaded, before any
    transcoding, so a re-upload is detected even after policy changes.
    """
    digest = hashlib.sha256()

    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)

    return digest.hexdigest()
