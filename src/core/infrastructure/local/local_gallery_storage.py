"""Local-disk implementation of GalleryFileStorage."""

import contextlib
import os
import secrets
from collections.abc import Iterable, Mapping
from pathlib import Path, PurePosixPath

from aws_lambda_powertools import Logger

from core.imaging.transcoder import EncodedImage
from core.models.errors import StorageError
from core.repositories.storage_repository import GalleryFileStorage, WrittenAsset, WrittenFile
from core.utils.constants import (
    ENV_GALLERY_UPLOAD_ROOT,
    ERROR_CODE_STORAGE_DIRECTORY_FAILED,
    ERROR_CODE_STORAGE_WRITE_FAILED,
    TOKEN_BYTES,
)

logger = Logger(UTC=True)

DIRECTORY_MODE = 0o775


class LocalGalleryStorage(GalleryFileStorage):
    """Gallery files on local disk, one directory per owner.

    Layout relative to the upload root:
        {owner_id}/{token}.{ext}          canonical original
        {owner_id}/{token}_{key}.{ext}    one file per variant
    """

    def __init__(self, upload_root: Path | str | None = None) -> None:
        """Create storage rooted at `upload_root` or $GALLERY_UPLOAD_ROOT."""
        root = upload_root or os.getenv(ENV_GALLERY_UPLOAD_ROOT)
        if not root:
            raise RuntimeError(f"{ENV_GALLERY_UPLOAD_ROOT} environment variable is not set")

        self.upload_root = Path(root)

    @staticmethod
    def generate_token() -> str:
        """Generate the shared filename stem for one upload attempt."""
        return secrets.token_hex(TOKEN_BYTES)

    def owner_directory(self, owner_id: int) -> Path:
        return self.upload_root / str(owner_id)

    def ensure_owner_directory(self, owner_id: int) -> Path:
        """Create the owner's directory (and parents) if it does not exist.

        Raises:
            StorageError: If the directory cannot be created
        """
        directory = self.owner_directory(owner_id)

        try:
            directory.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(
                "Failed to create owner directory",
                extra={"owner_id": owner_id, "directory": str(directory)},
            )
            raise StorageError(
                message="Failed to create page image directory.",
                error_code=ERROR_CODE_STORAGE_DIRECTORY_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        return directory

    def write_asset_files(
        self,
        *,
        owner_id: int,
        extension: str,
        original: EncodedImage,
        variants: Mapping[str, EncodedImage],
    ) -> WrittenAsset:
        """Write the original first, then each variant, under one token.

        On the first failed write every file already written for this
        attempt is removed before StorageError is raised.
        """
        directory = self.ensure_owner_directory(owner_id)
        token = self.generate_token()

        written: list[str] = []
        label = "processed source image"

        try:
            original_file = self._store(owner_id, directory, f"{token}.{extension}", original)
            written.append(original_file.stored_path)

            variant_files: dict[str, WrittenFile] = {}
            for key, encoded in variants.items():
                label = f"generated {key} variant"
                variant_file = self._store(owner_id, directory, f"{token}_{key}.{extension}", encoded)
                written.append(variant_file.stored_path)
                variant_files[key] = variant_file

        except OSError as exc:
            logger.error(
                "Gallery file write failed",
                extra={"owner_id": owner_id, "written": written, "error": str(exc)},
            )
            self.rollback(written)
            self.remove_owner_directory_if_empty(owner_id=owner_id)
            raise StorageError(
                message=f"Failed to store {label}.",
                error_code=ERROR_CODE_STORAGE_WRITE_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        logger.debug(
            "Gallery files written",
            extra={"owner_id": owner_id, "token": token, "count": len(written)},
        )

        return WrittenAsset(token=token, original=original_file, variants=variant_files)

    def _store(self, owner_id: int, directory: Path, filename: str, encoded: EncodedImage) -> WrittenFile:
        self._write_file(directory / filename, encoded.data)

        return WrittenFile(
            stored_filename=filename,
            stored_path=f"{owner_id}/{filename}",
            byte_size=encoded.byte_size,
        )

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        # "x" refuses to clobber an existing file.
        handle = open(path, "xb")
        try:
            with handle:
                handle.write(data)
        except OSError:
            with contextlib.suppress(OSError):
                path.unlink()
            raise

    def rollback(self, stored_paths: Iterable[str]) -> None:
        for stored_path in stored_paths:
            try:
                self.remove_stored_path(stored_path)
            except OSError:
                logger.warning(
                    "Failed to remove file during rollback",
                    extra={"stored_path": stored_path},
                )

    def resolve_stored_path(self, stored_path: str) -> Path | None:
        """Map a relative stored path to an absolute path inside the upload root.

        Returns None for empty or absolute paths, any `..` segment, and
        anything that would resolve outside the root.
        """
        if not stored_path:
            return None

        relative = PurePosixPath(stored_path)
        if relative.is_absolute() or ".." in relative.parts:
            return None

        root = self.upload_root.resolve()
        candidate = (root / relative).resolve()
        if candidate == root or not candidate.is_relative_to(root):
            return None

        return candidate

    def remove_stored_path(self, stored_path: str) -> bool:
        path = self.resolve_stored_path(stored_path)
        if path is None:
            logger.warning(
                "Refusing to delete path outside gallery storage",
                extra={"stored_path": stored_path},
            )
            return False

        if not path.is_file():
            return False

        try:
            path.unlink()
        except FileNotFoundError:
            return False

        return True

    def remove_owner_directory_if_empty(self, *, owner_id: int) -> bool:
        directory = self.owner_directory(owner_id)
        if not directory.is_dir():
            return False

        if any(directory.iterdir()):
            return False

        try:
            directory.rmdir()
        except OSError:
            logger.warning(
                "Failed to remove empty owner directory",
                extra={"owner_id": owner_id, "directory": str(directory)},
            )
            return False

        return True
