"""
Business logic for editing a page gallery.

Applies per-asset display fields and the cover/preview selection in one
registrar transaction.
"""

from collections.abc import Mapping
from typing import Any

from aws_lambda_powertools import Logger
from pydantic import ValidationError as PydanticValidationError

from core.infrastructure.aws.dynamodb_asset_registrar import DynamoDBAssetRegistrar
from core.models.errors import ValidationError
from core.models.image import GalleryItemUpdate
from core.repositories.metadata_repository import ImageAssetRepository

logger = Logger(UTC=True)


class GalleryUpdateService:
    """Application service responsible for gallery edits."""

    def __init__(self, registrar: ImageAssetRepository | None = None) -> None:
        self.registrar = registrar or DynamoDBAssetRegistrar()

    def update_gallery_for_owner(
        self,
        owner_id: int,
        updates: Mapping[int, GalleryItemUpdate | Mapping[str, Any]],
    ) -> int:
        """Update gallery fields of several assets of one page.

        Args:
            owner_id: Owning page identifier
            updates: Asset id to new field values; plain mappings are validated

        Returns:
            Number of assets updated

        Raises:
            ValidationError: If the page id or a field value is invalid
            RegistrationError: If the update cannot be stored
        """
        if owner_id < 1:
            raise ValidationError(
                message="Invalid page id.",
                details={"owner_id": owner_id},
            )

        validated: dict[int, GalleryItemUpdate] = {}
        for asset_id, update in updates.items():
            try:
                validated[int(asset_id)] = (
                    update
                    if isinstance(update, GalleryItemUpdate)
                    else GalleryItemUpdate.model_validate(update)
                )
            except (PydanticValidationError, TypeError, ValueError) as exc:
                logger.warning(
                    "Invalid gallery update",
                    extra={"owner_id": owner_id, "asset_id": asset_id, "error": str(exc)},
                )
                raise ValidationError(
                    message="Invalid gallery image settings.",
                    details={"owner_id": owner_id, "asset_id": asset_id},
                ) from exc

        if not validated:
            return 0

        updated = self.registrar.update_gallery_for_owner(owner_id=owner_id, updates=validated)

        logger.info(
            "Gallery update applied",
            extra={"owner_id": owner_id, "updated": updated},
        )
        return updated
