"""
Business logic for reading a page gallery.
"""

from aws_lambda_powertools import Logger

from core.infrastructure.aws.dynamodb_asset_registrar import DynamoDBAssetRegistrar
from core.models.errors import ValidationError
from core.models.image import ImageAsset
from core.repositories.metadata_repository import ImageAssetRepository
from core.utils.constants import PREVIEW_VARIANT_PRIORITY

logger = Logger(UTC=True)


class ListService:
    """Application service responsible for listing gallery assets.

    This service coordinates:
    - Reading every asset of a page for editing
    - Reading the public gallery (ready and included, cover first)
    - Choosing the stored file that represents the page
    """

    def __init__(self, registrar: ImageAssetRepository | None = None) -> None:
        """Initialize list service with required dependencies."""
        self.registrar = registrar or DynamoDBAssetRegistrar()

    def list_images(self, owner_id: int) -> list[ImageAsset]:
        """Every asset of the page with variants, in gallery order."""
        self._check_owner(owner_id)

        assets = self.registrar.list_for_owner(owner_id=owner_id)

        logger.info(
            "Gallery listed",
            extra={"owner_id": owner_id, "count": len(assets)},
        )
        return assets

    def list_public_images(self, owner_id: int) -> list[ImageAsset]:
        self._check_owner(owner_id)

        assets = self.registrar.list_ready_for_owner(owner_id=owner_id)

        logger.info(
            "Public gallery listed",
            extra={"owner_id": owner_id, "count": len(assets)},
        )
        return assets

    def preview_path(self, owner_id: int) -> str | None:
        """
        Stored path of the file to use as the page's preview image.

        The largest configured variant of the preview asset is preferred;
        the original is used when the asset has none of them.

        Returns:
            Path relative to the upload root, or None for an empty gallery
        """
        self._check_owner(owner_id)

        asset = self.registrar.preview_asset_for_owner(owner_id=owner_id)
        if asset is None:
            logger.debug("No preview image", extra={"owner_id": owner_id})
            return None

        variants = {variant.variant_key: variant for variant in asset.variants}
        for key in PREVIEW_VARIANT_PRIORITY:
            variant = variants.get(key)
            if variant is not None and variant.stored_path:
                return variant.stored_path

        return asset.stored_path or None

    @staticmethod
    def _check_owner(owner_id: int) -> None:
        if owner_id < 1:
            raise ValidationError(
                message="Invalid page id.",
                details={"owner_id": owner_id},
            )
