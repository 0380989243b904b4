"""Abstract contract for gallery file storage."""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping

from pydantic import BaseModel, Field, StrictInt, StrictStr

from core.imaging.transcoder import EncodedImage


class WrittenFile(BaseModel):
    """One file written for an upload attempt."""

    stored_filename: StrictStr
    stored_path: StrictStr = Field(..., description="Path relative to the upload root")
    byte_size: StrictInt


class WrittenAsset(BaseModel):
    """Every file written for one upload attempt, all sharing one token."""

    token: StrictStr
    original: WrittenFile
    variants: dict[str, WrittenFile]

    @property
    def stored_paths(self) -> list[str]:
        return [self.original.stored_path, *(f.stored_path for f in self.variants.values())]


class GalleryFileStorage(ABC):
    """Contract for writing and removing gallery files.

    Implementations must leave no file behind when `write_asset_files`
    fails: either every file of the attempt exists or none does.
    """

    @abstractmethod
    def write_asset_files(
        self,
        *,
        owner_id: int,
        extension: str,
        original: EncodedImage,
        variants: Mapping[str, EncodedImage],
    ) -> WrittenAsset:
        """Write the original and every variant under one fresh token.

        Args:
            owner_id: Owning page identifier
            extension: Canonical extension used for every file
            original: Encoded canonical original
            variants: Encoded variants by key, written in mapping order

        Returns:
            Relative paths and sizes of everything written

        Raises:
            StorageError: If the owner directory or any file cannot be written
        """

    @abstractmethod
    def rollback(self, stored_paths: Iterable[str]) -> None:
        """Best-effort removal of files written by a failed attempt.

        Never raises; failures are logged.
        """

    @abstractmethod
    def remove_stored_path(self, stored_path: str) -> bool:
        """Delete one stored file if it lies inside gallery storage.

        Returns:
            True if a file was removed, False if it was absent or rejected

        Raises:
            OSError: If the file exists but cannot be removed
        """

    @abstractmethod
    def remove_owner_directory_if_empty(self, *, owner_id: int) -> bool:
        """Remove the owner's directory when nothing is left in it.

        Returns:
            True if the directory was removed
        """
