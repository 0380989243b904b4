"""Business logic for gallery image deletion.

Rows are deleted first; files named by the deleted rows are removed
afterwards and file failures are logged, never surfaced. An owner directory
left empty is removed last.
"""

from collections.abc import Iterable

from aws_lambda_powertools import Logger

from core.infrastructure.aws.dynamodb_asset_registrar import DynamoDBAssetRegistrar
from core.infrastructure.local.local_gallery_storage import LocalGalleryStorage
from core.repositories.metadata_repository import ImageAssetRepository
from core.repositories.storage_repository import GalleryFileStorage

logger = Logger(UTC=True)


class DeleteService:
    """Application service responsible for deleting gallery assets.

    It does not perform low-level infrastructure operations directly.
    """

    def __init__(
        self,
        registrar: ImageAssetRepository | None = None,
        storage: GalleryFileStorage | None = None,
    ) -> None:
        """Initialize the delete service with required infrastructure dependencies."""
        self.registrar = registrar or DynamoDBAssetRegistrar()
        self.storage = storage or LocalGalleryStorage()

    def delete_image_for_owner(self, owner_id: int, asset_id: int) -> bool:
        """Delete one asset, its variants and their files.

        Returns:
            False if the asset does not exist for this owner

        Raises:
            RegistrationError: If the rows cannot be deleted
        """
        logger.debug(
            "Starting image deletion",
            extra={"owner_id": owner_id, "asset_id": asset_id},
        )

        stored_paths = self.registrar.delete_asset(owner_id=owner_id, asset_id=asset_id)
        if stored_paths is None:
            logger.info(
                "Image not found",
                extra={"owner_id": owner_id, "asset_id": asset_id},
            )
            return False

        self._remove_files(stored_paths)
        self.storage.remove_owner_directory_if_empty(owner_id=owner_id)

        logger.info(
            "Image deleted successfully",
            extra={"owner_id": owner_id, "asset_id": asset_id},
        )
        return True

    def delete_all_for_owner(self, owner_id: int) -> None:
        """Delete every asset of an owner, e.g. when the page itself is deleted.

        Raises:
            RegistrationError: If the rows cannot be deleted
        """
        logger.debug("Starting owner gallery deletion", extra={"owner_id": owner_id})

        stored_paths = self.registrar.delete_all_for_owner(owner_id=owner_id)
        self._remove_files(stored_paths)
        self.storage.remove_owner_directory_if_empty(owner_id=owner_id)

        logger.info(
            "Owner gallery deleted",
            extra={"owner_id": owner_id, "files": len(stored_paths)},
        )

    def _remove_files(self, stored_paths: Iterable[str]) -> None:
        for stored_path in stored_paths:
            try:
                self.storage.remove_stored_path(stored_path)
            except OSError as exc:
                logger.warning(
                    "Failed to delete gallery file",
                    extra={"stored_path": stored_path, "error": str(exc)},
                )
