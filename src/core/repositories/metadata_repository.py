"""Abstract contract for gallery asset persistence."""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from core.models.image import GalleryItemUpdate, ImageAsset, ImageVariant


class ImageAssetRepository(ABC):
    """Contract for registering and removing gallery assets.

    Implementations could be DynamoDB, PostgreSQL, SQLite, etc.
    The ingestion pipeline depends on this interface, not the implementation.
    """

    @abstractmethod
    def has_hash(self, *, owner_id: int, file_hash: str) -> bool:
        """Check whether the owner already has an asset with this content hash.

        Raises:
            RegistrationError: If the check fails
        """

    @abstractmethod
    def next_sort_order(self, *, owner_id: int) -> int:
        """Return the sort order for a newly appended asset (at least 1).

        Raises:
            RegistrationError: If the lookup fails
        """

    @abstractmethod
    def insert_asset_with_variants(
        self,
        *,
        asset: ImageAsset,
        variants: list[ImageVariant],
    ) -> int:
        """Persist one asset and all of its variants atomically.

        Either every row exists afterwards or none does.

        Returns:
            The new asset id

        Raises:
            DuplicateImageError: If the owner already has this content hash
            RegistrationError: If persistence fails for other reasons
        """

    @abstractmethod
    def fetch_asset(self, *, owner_id: int, asset_id: int) -> ImageAsset | None:
        """Fetch one asset with its variants, or None if it does not exist.

        Raises:
            RegistrationError: If the fetch fails
        """

    @abstractmethod
    def list_for_owner(self, *, owner_id: int) -> list[ImageAsset]:
        """Return every asset of an owner with its variants.

        Ordered by sort order, then asset id; variants by key.

        Raises:
            RegistrationError: If the read fails
        """

    @abstractmethod
    def list_ready_for_owner(self, *, owner_id: int) -> list[ImageAsset]:
        """Return ready assets shown in the gallery, cover first.

        Raises:
            RegistrationError: If the read fails
        """

    @abstractmethod
    def preview_asset_for_owner(self, *, owner_id: int) -> ImageAsset | None:
        """Return the ready asset representing the owner's page.

        The first asset marked preview, else the first marked cover, else the
        first in gallery order.

        Raises:
            RegistrationError: If the read fails
        """

    @abstractmethod
    def update_gallery_for_owner(
        self,
        *,
        owner_id: int,
        updates: Mapping[int, GalleryItemUpdate],
    ) -> int:
        """Apply gallery field updates keyed by asset id in one transaction.

        Afterwards at most one asset of the owner is cover and at most one is
        preview. Ids the owner does not have are ignored.

        Returns:
            Number of assets updated

        Raises:
            ValidationError: If the change set exceeds one transaction
            RegistrationError: If the update fails
        """

    @abstractmethod
    def delete_asset(self, *, owner_id: int, asset_id: int) -> list[str] | None:
        """Delete one asset and its variants.

        Returns:
            Stored paths of the deleted rows, or None if the asset was not found

        Raises:
            RegistrationError: If deletion fails
        """

    @abstractmethod
    def delete_all_for_owner(self, *, owner_id: int) -> list[str]:
        """Delete every asset and variant of an owner.

        Returns:
            Unique stored paths of the deleted rows

        Raises:
            RegistrationError: If deletion fails
        """
