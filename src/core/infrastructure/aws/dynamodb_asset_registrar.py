"""DynamoDB-backed implementation of ImageAssetRepository.

Single-table layout, partition key `owner_id` (N), sort key `item_key` (S):

    ASSET#{asset_id:010d}                  asset item
    ASSET#{asset_id:010d}#VARIANT#{key}    one item per variant
    HASH#{sha256}                          content-hash uniqueness guard

Integer asset ids come from a sequence item stored under owner 0.
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from core.infrastructure.adapters.dynamodb_adapter import DynamoDBAdapter, DynamoDBAdapterProtocol
from core.models.errors import DuplicateImageError, DynamoDBError, ValidationError
from core.models.image import GalleryItemUpdate, ImageAsset, ImageVariant
from core.repositories.metadata_repository import ImageAssetRepository
from core.utils.constants import (
    ASSET_KEY_PREFIX,
    ASSET_STATUS_READY,
    ENTITY_ASSET,
    ENTITY_HASH,
    ENTITY_VARIANT,
    ERROR_CODE_GALLERY_UPDATE_TOO_LARGE,
    ERROR_CODE_METADATA_CREATE_FAILED,
    ERROR_CODE_METADATA_DELETE_FAILED,
    ERROR_CODE_METADATA_DUPLICATE_CHECK_FAILED,
    ERROR_CODE_METADATA_FETCH_FAILED,
    ERROR_CODE_METADATA_SEQUENCE_FAILED,
    ERROR_CODE_METADATA_UPDATE_FAILED,
    HASH_KEY_PREFIX,
    SEQUENCE_ITEM_KEY,
    SEQUENCE_OWNER_ID,
    TRANSACT_MAX_ITEMS,
    VARIANT_KEY_SEGMENT,
)
from core.utils.time import utc_now_iso

Item = dict[str, Any]

logger = Logger(UTC=True)

SEQUENCE_ATTRIBUTE = "current_value"

# Flags held by at most one asset per owner
PRIMARY_FLAGS = ("is_cover", "is_preview")


def asset_item_key(asset_id: int) -> str:
    return f"{ASSET_KEY_PREFIX}{asset_id:010d}"


def variant_item_key(asset_id: int, variant_key: str) -> str:
    return f"{asset_item_key(asset_id)}{VARIANT_KEY_SEGMENT}{variant_key}"


def hash_item_key(file_hash: str) -> str:
    return f"{HASH_KEY_PREFIX}{file_hash}"


def _plain(value: Any) -> Any:
    """Turn DynamoDB Decimals back into int/float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def _from_item(item: Item) -> Item:
    return {name: _plain(value) for name, value in item.items()}


def _first_flagged(rows: Iterable[tuple[int, int, bool]]) -> int | None:
    """Return the asset id of the first flagged `(sort_order, asset_id, flag)` row."""
    flagged = sorted((sort_order, asset_id) for sort_order, asset_id, flag in rows if flag)
    return flagged[0][1] if flagged else None


def _is_conditional_cancellation(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    code = error.get("Code")

    if code == "ConditionalCheckFailedException":
        return True
    if code != "TransactionCanceledException":
        return False

    reasons = exc.response.get("CancellationReasons") or []
    if not reasons:
        return "ConditionalCheckFailed" in error.get("Message", "")

    return any(reason.get("Code") == "ConditionalCheckFailed" for reason in reasons)


class DynamoDBAssetRegistrar(ImageAssetRepository):
    """DynamoDB-backed asset registry with error handling.

    All boto3 errors are caught and translated into
    domain-specific errors with stable semantics.
    """

    def __init__(self, adapter: DynamoDBAdapterProtocol | None = None) -> None:
        """Initialize with DynamoDB adapter."""
        self._db: DynamoDBAdapterProtocol = adapter or DynamoDBAdapter()

    def has_hash(self, *, owner_id: int, file_hash: str) -> bool:
        """Check the owner's hash guard item.

        BEHAVIOR ON ERROR:
        - If the check fails, an exception is raised (fail-closed approach)
        - No upload proceeds on an unknown duplicate state

        Raises:
            DynamoDBError: If check fails
        """
        logger.debug(
            "Checking for duplicate",
            extra={"owner_id": owner_id, "file_hash": file_hash},
        )

        try:
            response = self._db.get_item(
                key={"owner_id": owner_id, "item_key": hash_item_key(file_hash)}
            )
        except ClientError as exc:
            logger.error("DynamoDB duplicate check failed", extra={"owner_id": owner_id})
            raise DynamoDBError(
                message="Unable to verify duplicate image",
                error_code=ERROR_CODE_METADATA_DUPLICATE_CHECK_FAILED,
                details={"owner_id": owner_id},
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected error checking duplicate")
            raise DynamoDBError(
                message="Unable to verify duplicate image",
                error_code=ERROR_CODE_METADATA_DUPLICATE_CHECK_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        return bool(response.get("Item"))

    def next_sort_order(self, *, owner_id: int) -> int:
        """Return one past the highest sort order of the owner's assets.

        Raises:
            DynamoDBError: If the query fails
        """
        items = self._query_owner(owner_id=owner_id, prefix=ASSET_KEY_PREFIX)
        orders = [
            int(item.get("sort_order", 0))
            for item in items
            if item.get("entity") == ENTITY_ASSET
        ]
        return max(1, max(orders, default=0) + 1)

    def insert_asset_with_variants(
        self,
        *,
        asset: ImageAsset,
        variants: list[ImageVariant],
    ) -> int:
        """Write asset, variants and hash guard in one transaction.

        Every put is conditional on the item not existing, so a concurrent
        upload of the same bytes for the same owner fails here even if both
        passed `has_hash`.

        Raises:
            DuplicateImageError: If the hash guard already exists
            DynamoDBError: If the sequence or transaction fails
        """
        owner_id = asset.owner_id

        try:
            asset_id = self._db.increment_counter(
                key={"owner_id": SEQUENCE_OWNER_ID, "item_key": SEQUENCE_ITEM_KEY},
                attribute=SEQUENCE_ATTRIBUTE,
            )
        except Exception as exc:
            logger.exception("Failed to allocate asset id", extra={"owner_id": owner_id})
            raise DynamoDBError(
                message="Unable to save image metadata at this time",
                error_code=ERROR_CODE_METADATA_SEQUENCE_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        now = utc_now_iso()

        asset_item: Item = {
            **asset.model_dump(exclude={"variants"}),
            "asset_id": asset_id,
            "item_key": asset_item_key(asset_id),
            "entity": ENTITY_ASSET,
            "created_at": now,
            "updated_at": now,
        }
        variant_items: list[Item] = [
            {
                **variant.model_dump(),
                "owner_id": owner_id,
                "asset_id": asset_id,
                "item_key": variant_item_key(asset_id, variant.variant_key),
                "entity": ENTITY_VARIANT,
                "created_at": now,
            }
            for variant in variants
        ]
        hash_item: Item = {
            "owner_id": owner_id,
            "item_key": hash_item_key(asset.hash_sha256),
            "entity": ENTITY_HASH,
            "asset_id": asset_id,
            "created_at": now,
        }

        logger.debug(
            "Registering asset",
            extra={"owner_id": owner_id, "asset_id": asset_id, "variants": len(variants)},
        )

        try:
            self._db.transact_put_items(
                items=[asset_item, *variant_items, hash_item],
                condition_expression="attribute_not_exists(item_key)",
            )
        except ClientError as exc:
            logger.error(
                "DynamoDB transaction failed",
                extra={"owner_id": owner_id, "asset_id": asset_id},
            )

            if _is_conditional_cancellation(exc):
                raise DuplicateImageError(
                    message="This image already exists in the page gallery.",
                    details={"owner_id": owner_id},
                ) from exc

            raise DynamoDBError(
                message="Unable to save image metadata at this time",
                error_code=ERROR_CODE_METADATA_CREATE_FAILED,
                details={"owner_id": owner_id, "asset_id": asset_id},
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected error registering asset")
            raise DynamoDBError(
                message="Unable to save image metadata at this time",
                error_code=ERROR_CODE_METADATA_CREATE_FAILED,
                details={"owner_id": owner_id, "asset_id": asset_id},
            ) from exc

        logger.info("Asset registered", extra={"owner_id": owner_id, "asset_id": asset_id})
        return asset_id

    def fetch_asset(self, *, owner_id: int, asset_id: int) -> ImageAsset | None:
        items = self._query_owner(owner_id=owner_id, prefix=asset_item_key(asset_id))
        assets = self._assemble_assets(owner_id=owner_id, items=items)
        return assets[0] if assets else None

    def list_for_owner(self, *, owner_id: int) -> list[ImageAsset]:
        """Read the owner's assets and variants in gallery order.

        Raises:
            DynamoDBError: If the query fails or an item is malformed
        """
        items = self._query_owner(owner_id=owner_id, prefix=ASSET_KEY_PREFIX)
        assets = self._assemble_assets(owner_id=owner_id, items=items)

        logger.debug("Assets listed", extra={"owner_id": owner_id, "count": len(assets)})
        return assets

    def list_ready_for_owner(self, *, owner_id: int) -> list[ImageAsset]:
        ready = [
            asset
            for asset in self.list_for_owner(owner_id=owner_id)
            if asset.status == ASSET_STATUS_READY and asset.include_in_gallery
        ]
        return sorted(ready, key=lambda asset: (not asset.is_cover, asset.sort_order, asset.asset_id))

    def preview_asset_for_owner(self, *, owner_id: int) -> ImageAsset | None:
        ready = [
            asset
            for asset in self.list_for_owner(owner_id=owner_id)
            if asset.status == ASSET_STATUS_READY
        ]
        if not ready:
            return None

        for flag in ("is_preview", "is_cover"):
            chosen = next((asset for asset in ready if getattr(asset, flag)), None)
            if chosen is not None:
                return chosen

        return ready[0]

    def update_gallery_for_owner(
        self,
        *,
        owner_id: int,
        updates: Mapping[int, GalleryItemUpdate],
    ) -> int:
        """Write gallery field updates and clear competing cover/preview flags.

        A cover or preview requested by `updates` wins over a stored one; among
        several requests the lowest sort order (then id) wins. Every changed
        asset item is written in one TransactWriteItems call, each conditional
        on the item still existing.

        Raises:
            ValidationError: If the update touches more assets than one
                transaction can hold
            DynamoDBError: If the read or the transaction fails
        """
        current = {asset.asset_id: asset for asset in self.list_for_owner(owner_id=owner_id)}
        requested = {asset_id: update for asset_id, update in updates.items() if asset_id in current}

        ignored = sorted(set(updates) - set(requested))
        if ignored:
            logger.info(
                "Ignoring updates for unknown assets",
                extra={"owner_id": owner_id, "asset_ids": ignored},
            )

        if not requested:
            return 0

        now = utc_now_iso()
        changes: dict[int, Item] = {
            asset_id: {**update.model_dump(), "updated_at": now}
            for asset_id, update in requested.items()
        }

        for flag in PRIMARY_FLAGS:
            state = [
                (
                    changes[asset_id]["sort_order"] if asset_id in requested else asset.sort_order,
                    asset_id,
                    changes[asset_id][flag] if asset_id in requested else getattr(asset, flag),
                )
                for asset_id, asset in current.items()
            ]
            winner = _first_flagged(row for row in state if row[1] in requested)
            if winner is None:
                winner = _first_flagged(state)

            for _, asset_id, flagged in state:
                if flagged and asset_id != winner:
                    changes.setdefault(asset_id, {"updated_at": now})[flag] = False

        if len(changes) > TRANSACT_MAX_ITEMS:
            raise ValidationError(
                message="Too many gallery images in one update.",
                error_code=ERROR_CODE_GALLERY_UPDATE_TOO_LARGE,
                details={"owner_id": owner_id, "count": len(changes)},
            )

        logger.debug(
            "Updating gallery",
            extra={"owner_id": owner_id, "requested": len(requested), "written": len(changes)},
        )

        try:
            self._db.transact_update_items(
                updates=[
                    ({"owner_id": owner_id, "item_key": asset_item_key(asset_id)}, attributes)
                    for asset_id, attributes in sorted(changes.items())
                ],
                condition_expression="attribute_exists(item_key)",
            )
        except ClientError as exc:
            logger.error(
                "DynamoDB gallery update failed",
                extra={"owner_id": owner_id, "conditional": _is_conditional_cancellation(exc)},
            )
            raise DynamoDBError(
                message="Unable to update gallery metadata",
                error_code=ERROR_CODE_METADATA_UPDATE_FAILED,
                details={"owner_id": owner_id},
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected error updating gallery")
            raise DynamoDBError(
                message="Unable to update gallery metadata",
                error_code=ERROR_CODE_METADATA_UPDATE_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        logger.info(
            "Gallery updated",
            extra={"owner_id": owner_id, "updated": len(requested)},
        )
        return len(requested)

    def delete_asset(self, *, owner_id: int, asset_id: int) -> list[str] | None:
        """Delete asset, variants and hash guard in one transaction.

        Raises:
            DynamoDBError: If the query or deletion fails
        """
        items = self._query_owner(owner_id=owner_id, prefix=asset_item_key(asset_id))

        asset_item = next((item for item in items if item.get("entity") == ENTITY_ASSET), None)
        if asset_item is None:
            logger.info(
                "Asset not found for deletion",
                extra={"owner_id": owner_id, "asset_id": asset_id},
            )
            return None

        keys = [{"owner_id": owner_id, "item_key": item["item_key"]} for item in items]
        if asset_item.get("hash_sha256"):
            keys.append({"owner_id": owner_id, "item_key": hash_item_key(asset_item["hash_sha256"])})

        try:
            self._db.transact_delete_items(keys=keys)
        except Exception as exc:
            logger.exception(
                "Failed to delete asset rows",
                extra={"owner_id": owner_id, "asset_id": asset_id},
            )
            raise DynamoDBError(
                message="Unable to delete image metadata",
                error_code=ERROR_CODE_METADATA_DELETE_FAILED,
                details={"owner_id": owner_id, "asset_id": asset_id},
            ) from exc

        logger.info("Asset rows deleted", extra={"owner_id": owner_id, "asset_id": asset_id})

        return [
            item["stored_path"]
            for item in items
            if item.get("entity") in (ENTITY_ASSET, ENTITY_VARIANT) and item.get("stored_path")
        ]

    def delete_all_for_owner(self, *, owner_id: int) -> list[str]:
        """Delete every item in the owner's partition.

        Raises:
            DynamoDBError: If the query or deletion fails
        """
        items = self._query_owner(owner_id=owner_id)
        if not items:
            return []

        paths = dict.fromkeys(
            item["stored_path"]
            for item in items
            if item.get("entity") in (ENTITY_ASSET, ENTITY_VARIANT) and item.get("stored_path")
        )

        try:
            self._db.batch_delete_items(
                keys=[{"owner_id": owner_id, "item_key": item["item_key"]} for item in items]
            )
        except Exception as exc:
            logger.exception("Failed to delete owner rows", extra={"owner_id": owner_id})
            raise DynamoDBError(
                message="Unable to delete image metadata",
                error_code=ERROR_CODE_METADATA_DELETE_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        logger.info(
            "Owner rows deleted",
            extra={"owner_id": owner_id, "count": len(items)},
        )
        return list(paths)

    @staticmethod
    def _assemble_assets(*, owner_id: int, items: list[Item]) -> list[ImageAsset]:
        """Build assets from asset and variant items of one partition.

        Raises:
            DynamoDBError: If an item does not match the asset model
        """
        variants_by_asset: dict[int, list[Item]] = {}
        for item in items:
            if item.get("entity") == ENTITY_VARIANT:
                variants_by_asset.setdefault(item.get("asset_id"), []).append(item)

        try:
            assets = [
                ImageAsset.model_validate(
                    {
                        **item,
                        "variants": [
                            ImageVariant.model_validate(variant)
                            for variant in sorted(
                                variants_by_asset.get(item.get("asset_id"), []),
                                key=lambda variant: variant.get("variant_key", ""),
                            )
                        ],
                    }
                )
                for item in items
                if item.get("entity") == ENTITY_ASSET
            ]
        except ValueError as exc:
            logger.error("Invalid asset item format", extra={"owner_id": owner_id})
            raise DynamoDBError(
                message="Invalid image metadata format",
                error_code=ERROR_CODE_METADATA_FETCH_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        return sorted(assets, key=lambda asset: (asset.sort_order, asset.asset_id))

    def _query_owner(self, *, owner_id: int, prefix: str | None = None) -> list[Item]:
        """Return every item in the owner's partition, optionally by key prefix.

        Raises:
            DynamoDBError: If the query fails
        """
        key_condition = Key("owner_id").eq(owner_id)
        if prefix:
            key_condition &= Key("item_key").begins_with(prefix)

        query_kwargs: dict[str, Any] = {"KeyConditionExpression": key_condition}
        items: list[Item] = []

        try:
            while True:
                response = self._db.query(**query_kwargs)
                page_items = response.get("Items", [])

                if not isinstance(page_items, list):
                    raise DynamoDBError(
                        message="Invalid query response from DynamoDB",
                        error_code=ERROR_CODE_METADATA_FETCH_FAILED,
                        details={"owner_id": owner_id},
                    )

                items.extend(_from_item(item) for item in page_items)

                last_evaluated_key = response.get("LastEvaluatedKey")
                if not last_evaluated_key:
                    break
                query_kwargs["ExclusiveStartKey"] = last_evaluated_key

        except DynamoDBError:
            raise

        except ClientError as exc:
            logger.error("DynamoDB query failed", extra={"owner_id": owner_id})
            raise DynamoDBError(
                message="Unable to read image metadata",
                error_code=ERROR_CODE_METADATA_FETCH_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        except Exception as exc:
            logger.exception("Unexpected error querying owner items")
            raise DynamoDBError(
                message="Unable to read image metadata",
                error_code=ERROR_CODE_METADATA_FETCH_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        return items
