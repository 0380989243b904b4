"""Unit tests for DynamoDBAssetRegistrar."""

import itertools
from collections.abc import Callable
from typing import Any

import pytest
from botocore.exceptions import ClientError

from core.infrastructure.aws.dynamodb_asset_registrar import (
    DynamoDBAssetRegistrar,
    asset_item_key,
    hash_item_key,
    variant_item_key,
)
from core.models.errors import DuplicateImageError, DynamoDBError, RegistrationError, ValidationError
from core.models.image import GalleryItemUpdate, ImageAsset, ImageVariant


def make_asset(owner_id: int = 7, file_hash: str = "a" * 64, sort_order: int = 1) -> ImageAsset:
    return ImageAsset(
        owner_id=owner_id,
        original_filename="photo.png",
        stored_filename="tok.png",
        stored_path=f"{owner_id}/tok.png",
        mime_type="image/png",
        extension="png",
        byte_size=1234,
        width=400,
        height=200,
        hash_sha256=file_hash,
        sort_order=sort_order,
        alt_text="photo",
        title_text="photo",
        focal_x=0.25,
    )


def make_variants(owner_id: int = 7, keys: tuple[str, ...] = ("sm", "md")) -> list[ImageVariant]:
    return [
        ImageVariant(
            variant_key=key,
            stored_filename=f"tok_{key}.png",
            stored_path=f"{owner_id}/tok_{key}.png",
            mime_type="image/png",
            extension="png",
            byte_size=100,
            width=100,
            height=50,
        )
        for key in keys
    ]


def asset_item(asset_id: int, owner_id: int = 7, **fields: Any) -> dict[str, Any]:
    return {
        **make_asset(owner_id=owner_id).model_dump(exclude={"variants"}),
        **fields,
        "asset_id": asset_id,
        "item_key": asset_item_key(asset_id),
        "entity": "asset",
    }


class DummyAdapter:
    """Minimal DynamoDBAdapter stub."""

    get_item: Callable[..., dict[str, Any]]
    increment_counter: Callable[..., int]
    query: Callable[..., dict[str, Any]]
    transact_put_items: Callable[..., None]
    transact_delete_items: Callable[..., None]
    transact_update_items: Callable[..., None]
    batch_delete_items: Callable[..., None]

    def __init__(self) -> None:
        self.get_item = lambda **_: {}
        self.increment_counter = lambda **_: 1
        self.query = lambda **_: {"Items": []}
        self.transact_put_items = lambda **_: None
        self.transact_delete_items = lambda **_: None
        self.transact_update_items = lambda **_: None
        self.batch_delete_items = lambda **_: None


def client_error(code: str, operation: str, **extra: Any) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": extra.pop("message", "")}, **extra}, operation)


class TestItemKeys:
    def test_keys_are_zero_padded_and_sortable(self) -> None:
        assert asset_item_key(42) == "ASSET#0000000042"
        assert variant_item_key(42, "sm") == "ASSET#0000000042#VARIANT#sm"
        assert hash_item_key("ff") == "HASH#ff"
        assert asset_item_key(9) < asset_item_key(10)


class TestErrorTranslation:
    def test_has_hash_client_error(self) -> None:
        adapter = DummyAdapter()

        def raise_error(**_: Any) -> dict[str, Any]:
            raise client_error("InternalError", "GetItem")

        adapter.get_item = raise_error

        with pytest.raises(DynamoDBError) as exc_info:
            DynamoDBAssetRegistrar(adapter).has_hash(owner_id=1, file_hash="x")

        assert exc_info.value.error_code == "METADATA_DUPLICATE_CHECK_FAILED"

    def test_sequence_failure(self) -> None:
        adapter = DummyAdapter()
        adapter.increment_counter = lambda **_: (_ for _ in ()).throw(Exception("boom"))

        with pytest.raises(DynamoDBError) as exc_info:
            DynamoDBAssetRegistrar(adapter).insert_asset_with_variants(asset=make_asset(), variants=[])

        assert exc_info.value.error_code == "METADATA_SEQUENCE_FAILED"

    @pytest.mark.parametrize(
        "error",
        [
            client_error(
                "TransactionCanceledException",
                "TransactWriteItems",
                CancellationReasons=[{"Code": "None"}, {"Code": "ConditionalCheckFailed"}],
            ),
            client_error(
                "TransactionCanceledException",
                "TransactWriteItems",
                message="Transaction cancelled [None, ConditionalCheckFailed]",
            ),
        ],
    )
    def test_conditional_cancellation_is_duplicate(self, error: ClientError) -> None:
        adapter = DummyAdapter()

        def raise_error(**_: Any) -> None:
            raise error

        adapter.transact_put_items = raise_error

        with pytest.raises(DuplicateImageError):
            DynamoDBAssetRegistrar(adapter).insert_asset_with_variants(asset=make_asset(), variants=[])

    def test_other_cancellation_is_registration_error(self) -> None:
        adapter = DummyAdapter()

        def raise_error(**_: Any) -> None:
            raise client_error(
                "TransactionCanceledException",
                "TransactWriteItems",
                CancellationReasons=[{"Code": "ThrottlingError"}],
            )

        adapter.transact_put_items = raise_error

        with pytest.raises(RegistrationError) as exc_info:
            DynamoDBAssetRegistrar(adapter).insert_asset_with_variants(asset=make_asset(), variants=[])

        assert not isinstance(exc_info.value, DuplicateImageError)
        assert exc_info.value.error_code == "METADATA_CREATE_FAILED"

    def test_query_failure(self) -> None:
        adapter = DummyAdapter()

        def raise_error(**_: Any) -> dict[str, Any]:
            raise client_error("InternalError", "Query")

        adapter.query = raise_error

        with pytest.raises(DynamoDBError) as exc_info:
            DynamoDBAssetRegistrar(adapter).next_sort_order(owner_id=1)

        assert exc_info.value.error_code == "METADATA_FETCH_FAILED"

    def test_invalid_query_response(self) -> None:
        adapter = DummyAdapter()
        adapter.query = lambda **_: {"Items": "not-a-list"}

        with pytest.raises(DynamoDBError):
            DynamoDBAssetRegistrar(adapter).delete_all_for_owner(owner_id=1)

    def test_delete_failure(self) -> None:
        adapter = DummyAdapter()
        adapter.query = lambda **_: {
            "Items": [{"item_key": asset_item_key(1), "entity": "asset", "stored_path": "1/a.png"}]
        }

        def raise_error(**_: Any) -> None:
            raise client_error("InternalError", "TransactWriteItems")

        adapter.transact_delete_items = raise_error

        with pytest.raises(DynamoDBError) as exc_info:
            DynamoDBAssetRegistrar(adapter).delete_asset(owner_id=1, asset_id=1)

        assert exc_info.value.error_code == "METADATA_DELETE_FAILED"

    def test_malformed_asset_item(self) -> None:
        adapter = DummyAdapter()
        adapter.query = lambda **_: {"Items": [{"item_key": asset_item_key(1), "entity": "asset"}]}

        with pytest.raises(DynamoDBError) as exc_info:
            DynamoDBAssetRegistrar(adapter).list_for_owner(owner_id=1)

        assert exc_info.value.message == "Invalid image metadata format"

    def test_update_failure(self) -> None:
        adapter = DummyAdapter()
        adapter.query = lambda **_: {"Items": [asset_item(1)]}

        def raise_error(**_: Any) -> None:
            raise client_error(
                "TransactionCanceledException",
                "TransactWriteItems",
                CancellationReasons=[{"Code": "ConditionalCheckFailed"}],
            )

        adapter.transact_update_items = raise_error

        with pytest.raises(RegistrationError) as exc_info:
            DynamoDBAssetRegistrar(adapter).update_gallery_for_owner(
                owner_id=7, updates={1: GalleryItemUpdate(caption="x")}
            )

        assert exc_info.value.error_code == "METADATA_UPDATE_FAILED"

    def test_update_clears_competing_flags_in_one_transaction(self) -> None:
        adapter = DummyAdapter()
        adapter.query = lambda **_: {
            "Items": [
                asset_item(1, sort_order=1, is_cover=True, is_preview=True),
                asset_item(2, sort_order=2),
                asset_item(3, sort_order=3),
            ]
        }
        calls: list[dict[str, Any]] = []
        adapter.transact_update_items = lambda **kwargs: calls.append(kwargs)

        DynamoDBAssetRegistrar(adapter).update_gallery_for_owner(
            owner_id=7, updates={3: GalleryItemUpdate(sort_order=3, is_cover=True)}
        )

        assert len(calls) == 1
        assert calls[0]["condition_expression"] == "attribute_exists(item_key)"
        written = {key["item_key"]: attributes for key, attributes in calls[0]["updates"]}
        assert set(written) == {asset_item_key(1), asset_item_key(3)}
        assert written[asset_item_key(1)]["is_cover"] is False
        assert "is_preview" not in written[asset_item_key(1)]
        assert written[asset_item_key(3)]["is_cover"] is True

    def test_update_too_large_for_one_transaction(self) -> None:
        adapter = DummyAdapter()
        adapter.query = lambda **_: {"Items": [asset_item(asset_id) for asset_id in range(1, 102)]}

        with pytest.raises(ValidationError) as exc_info:
            DynamoDBAssetRegistrar(adapter).update_gallery_for_owner(
                owner_id=7,
                updates={asset_id: GalleryItemUpdate() for asset_id in range(1, 102)},
            )

        assert exc_info.value.error_code == "GALLERY_UPDATE_TOO_LARGE"


class TestDynamoDBAssetRegistrar:
    def test_insert_and_fetch(self, dynamodb_table) -> None:
        registrar = DynamoDBAssetRegistrar()

        asset_id = registrar.insert_asset_with_variants(asset=make_asset(), variants=make_variants())
        fetched = registrar.fetch_asset(owner_id=7, asset_id=asset_id)

        assert asset_id == 1
        assert fetched is not None
        assert fetched.asset_id == 1
        assert fetched.owner_id == 7
        assert fetched.stored_path == "7/tok.png"
        assert fetched.byte_size == 1234
        assert fetched.focal_x == 0.25
        assert fetched.focal_y is None
        assert fetched.is_cover is False
        assert fetched.include_in_gallery is True
        assert fetched.created_at is not None
        assert sorted(v.variant_key for v in fetched.variants) == ["md", "sm"]

    def test_asset_ids_are_sequential_across_owners(self, dynamodb_table) -> None:
        registrar = DynamoDBAssetRegistrar()

        first = registrar.insert_asset_with_variants(asset=make_asset(owner_id=1), variants=[])
        second = registrar.insert_asset_with_variants(
            asset=make_asset(owner_id=2, file_hash="b" * 64), variants=[]
        )

        assert (first, second) == (1, 2)

    def test_has_hash(self, dynamodb_table) -> None:
        registrar = DynamoDBAssetRegistrar()
        registrar.insert_asset_with_variants(asset=make_asset(), variants=[])

        assert registrar.has_hash(owner_id=7, file_hash="a" * 64) is True
        assert registrar.has_hash(owner_id=8, file_hash="a" * 64) is False
        assert registrar.has_hash(owner_id=7, file_hash="b" * 64) is False

    def test_duplicate_hash_insert_is_rejected_atomically(self, dynamodb_table, dynamodb_items) -> None:
        registrar = DynamoDBAssetRegistrar()
        registrar.insert_asset_with_variants(asset=make_asset(), variants=make_variants())

        with pytest.raises(DuplicateImageError):
            registrar.insert_asset_with_variants(asset=make_asset(), variants=make_variants())

        assets = [item for item in dynamodb_items(7) if item["entity"] == "asset"]
        assert len(assets) == 1
        assert len(dynamodb_items(7)) == 4

    def test_next_sort_order(self, dynamodb_table) -> None:
        registrar = DynamoDBAssetRegistrar()

        assert registrar.next_sort_order(owner_id=7) == 1

        registrar.insert_asset_with_variants(asset=make_asset(sort_order=4), variants=make_variants())

        assert registrar.next_sort_order(owner_id=7) == 5
        assert registrar.next_sort_order(owner_id=8) == 1

    def test_fetch_missing_asset(self, dynamodb_table) -> None:
        assert DynamoDBAssetRegistrar().fetch_asset(owner_id=7, asset_id=99) is None

    def test_delete_asset(self, dynamodb_table, dynamodb_items) -> None:
        registrar = DynamoDBAssetRegistrar()
        asset_id = registrar.insert_asset_with_variants(asset=make_asset(), variants=make_variants())

        paths = registrar.delete_asset(owner_id=7, asset_id=asset_id)

        assert sorted(paths) == ["7/tok.png", "7/tok_md.png", "7/tok_sm.png"]
        assert dynamodb_items(7) == []
        assert registrar.has_hash(owner_id=7, file_hash="a" * 64) is False

    def test_delete_asset_of_other_owner_is_not_found(self, dynamodb_table) -> None:
        registrar = DynamoDBAssetRegistrar()
        asset_id = registrar.insert_asset_with_variants(asset=make_asset(), variants=[])

        assert registrar.delete_asset(owner_id=8, asset_id=asset_id) is None
        assert registrar.fetch_asset(owner_id=7, asset_id=asset_id) is not None

    def test_delete_all_for_owner(self, dynamodb_table, dynamodb_items) -> None:
        registrar = DynamoDBAssetRegistrar()
        registrar.insert_asset_with_variants(asset=make_asset(), variants=make_variants())
        registrar.insert_asset_with_variants(
            asset=make_asset(file_hash="b" * 64).model_copy(update={"stored_path": "7/other.png"}),
            variants=[],
        )
        registrar.insert_asset_with_variants(asset=make_asset(owner_id=8), variants=[])

        paths = registrar.delete_all_for_owner(owner_id=7)

        assert sorted(paths) == ["7/other.png", "7/tok.png", "7/tok_md.png", "7/tok_sm.png"]
        assert dynamodb_items(7) == []
        assert len(dynamodb_items(8)) == 2

    def test_delete_all_for_empty_owner(self, dynamodb_table) -> None:
        assert DynamoDBAssetRegistrar().delete_all_for_owner(owner_id=12) == []


@pytest.fixture
def gallery(dynamodb_table) -> Callable[..., list[int]]:
    """
    Helper inserting one asset per sort order for owner 7.

    Usage:
        first, second = gallery(1, 2)
    """
    registrar = DynamoDBAssetRegistrar()
    hashes = itertools.count(1)

    def _insert(*sort_orders: int, **fields: Any) -> list[int]:
        return [
            registrar.insert_asset_with_variants(
                asset=make_asset(file_hash=f"{next(hashes):064x}", sort_order=sort_order).model_copy(update=fields),
                variants=make_variants(),
            )
            for sort_order in sort_orders
        ]

    return _insert


class TestGalleryReads:
    def test_list_orders_by_sort_order_then_id(self, gallery) -> None:
        first, second, third = gallery(3, 1, 1)

        assets = DynamoDBAssetRegistrar().list_for_owner(owner_id=7)

        assert [asset.asset_id for asset in assets] == [second, third, first]
        assert [v.variant_key for v in assets[0].variants] == ["md", "sm"]

    def test_list_keeps_owners_apart(self, gallery) -> None:
        gallery(1)

        assert DynamoDBAssetRegistrar().list_for_owner(owner_id=8) == []

    def test_ready_list_puts_cover_first_and_skips_hidden(self, gallery) -> None:
        registrar = DynamoDBAssetRegistrar()
        first, second, third = gallery(1, 2, 3)
        registrar.update_gallery_for_owner(
            owner_id=7,
            updates={
                second: GalleryItemUpdate(sort_order=2, include_in_gallery=False),
                third: GalleryItemUpdate(sort_order=3, is_cover=True),
            },
        )

        ready = registrar.list_ready_for_owner(owner_id=7)

        assert [asset.asset_id for asset in ready] == [third, first]

    def test_ready_list_skips_unfinished_assets(self, gallery) -> None:
        (done,) = gallery(2)
        gallery(1, status="processing")

        assert [a.asset_id for a in DynamoDBAssetRegistrar().list_ready_for_owner(owner_id=7)] == [done]

    def test_preview_without_assets(self, dynamodb_table) -> None:
        assert DynamoDBAssetRegistrar().preview_asset_for_owner(owner_id=7) is None

    def test_preview_falls_back_to_first_ready_asset(self, gallery) -> None:
        gallery(1, status="processing")
        first, _ = gallery(2, 3)

        assert DynamoDBAssetRegistrar().preview_asset_for_owner(owner_id=7).asset_id == first

    def test_preview_prefers_preview_over_cover(self, gallery) -> None:
        registrar = DynamoDBAssetRegistrar()
        first, second, third = gallery(1, 2, 3)

        registrar.update_gallery_for_owner(owner_id=7, updates={second: GalleryItemUpdate(sort_order=2, is_cover=True)})
        assert registrar.preview_asset_for_owner(owner_id=7).asset_id == second

        registrar.update_gallery_for_owner(owner_id=7, updates={third: GalleryItemUpdate(sort_order=3, is_preview=True)})
        assert registrar.preview_asset_for_owner(owner_id=7).asset_id == third


class TestGalleryUpdate:
    def test_writes_every_editable_field(self, gallery) -> None:
        registrar = DynamoDBAssetRegistrar()
        (asset_id,) = gallery(1)
        before = registrar.fetch_asset(owner_id=7, asset_id=asset_id)

        updated = registrar.update_gallery_for_owner(
            owner_id=7,
            updates={
                asset_id: GalleryItemUpdate(
                    alt_text=" Sunset\x00 ",
                    title_text="Title",
                    caption="Caption",
                    credit="Jo",
                    license="CC-BY",
                    focal_x=0.5,
                    focal_y=0.125,
                    sort_order=9,
                    include_in_gallery=False,
                )
            },
        )

        asset = registrar.fetch_asset(owner_id=7, asset_id=asset_id)
        assert updated == 1
        assert asset.alt_text == "Sunset"
        assert (asset.title_text, asset.caption, asset.credit, asset.license) == ("Title", "Caption", "Jo", "CC-BY")
        assert (asset.focal_x, asset.focal_y) == (0.5, 0.125)
        assert asset.sort_order == 9
        assert asset.include_in_gallery is False
        assert asset.hash_sha256 == before.hash_sha256
        assert len(asset.variants) == 2

    def test_omitted_fields_reset_to_defaults(self, gallery) -> None:
        registrar = DynamoDBAssetRegistrar()
        (asset_id,) = gallery(4)

        registrar.update_gallery_for_owner(owner_id=7, updates={asset_id: GalleryItemUpdate()})

        asset = registrar.fetch_asset(owner_id=7, asset_id=asset_id)
        assert (asset.alt_text, asset.focal_x, asset.sort_order) == ("", None, 1)

    def test_new_cover_replaces_stored_cover(self, gallery) -> None:
        registrar = DynamoDBAssetRegistrar()
        first, second = gallery(1, 2)

        registrar.update_gallery_for_owner(owner_id=7, updates={first: GalleryItemUpdate(sort_order=1, is_cover=True)})
        registrar.update_gallery_for_owner(owner_id=7, updates={second: GalleryItemUpdate(sort_order=2, is_cover=True)})

        covers = [a.asset_id for a in registrar.list_for_owner(owner_id=7) if a.is_cover]
        assert covers == [second]

    def test_competing_requests_keep_lowest_sort_order(self, gallery) -> None:
        registrar = DynamoDBAssetRegistrar()
        first, second = gallery(1, 2)

        registrar.update_gallery_for_owner(
            owner_id=7,
            updates={
                first: GalleryItemUpdate(sort_order=5, is_preview=True),
                second: GalleryItemUpdate(sort_order=3, is_preview=True),
            },
        )

        previews = [a.asset_id for a in registrar.list_for_owner(owner_id=7) if a.is_preview]
        assert previews == [second]

    def test_unknown_assets_are_ignored(self, gallery, dynamodb_items) -> None:
        registrar = DynamoDBAssetRegistrar()
        (asset_id,) = gallery(1)

        updated = registrar.update_gallery_for_owner(
            owner_id=7,
            updates={asset_id: GalleryItemUpdate(caption="kept"), 999: GalleryItemUpdate(caption="ghost")},
        )

        assert updated == 1
        assert not [item for item in dynamodb_items(7) if item["item_key"] == asset_item_key(999)]

    def test_other_owner_assets_are_untouched(self, gallery) -> None:
        registrar = DynamoDBAssetRegistrar()
        (asset_id,) = gallery(1)

        assert registrar.update_gallery_for_owner(owner_id=8, updates={asset_id: GalleryItemUpdate()}) == 0
        assert registrar.fetch_asset(owner_id=7, asset_id=asset_id).alt_text == "photo"
