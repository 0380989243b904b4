"""
Pytest configuration and fixtures for gallery ingestion tests.
Provides AWS mocking, the DynamoDB asset table, a temporary upload root
and Pillow-generated fixture images.
"""

import os
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws
from PIL import Image

from core.infrastructure.local.local_gallery_storage import LocalGalleryStorage
from core.models.policy import GalleryPolicy
from core.models.upload import UploadRequest
from core.utils.constants import (
    ENV_AWS_ENDPOINT_URL,
    ENV_AWS_REGION,
    ENV_GALLERY_ASSET_TABLE_NAME,
    ENV_GALLERY_UPLOAD_ROOT,
)

TEST_TABLE_NAME = "gallery-assets-test"
TEST_REGION = "us-east-1"


@pytest.fixture(autouse=True)
def aws_environment(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.setenv(ENV_AWS_REGION, TEST_REGION)
    monkeypatch.setenv(ENV_GALLERY_ASSET_TABLE_NAME, TEST_TABLE_NAME)
    monkeypatch.delenv(ENV_AWS_ENDPOINT_URL, raising=False)


@pytest.fixture(scope="function")
def aws_mock():
    with mock_aws():
        yield


@pytest.fixture(scope="function")
def dynamodb_resource(aws_mock):
    return boto3.resource("dynamodb", region_name=os.getenv(ENV_AWS_REGION))


def _create_dynamodb_table(dynamodb_resource):
    """Helper to create the single-table asset registry."""
    return dynamodb_resource.create_table(
        TableName=os.getenv(ENV_GALLERY_ASSET_TABLE_NAME),
        BillingMode="PAY_PER_REQUEST",
        KeySchema=[
            {"AttributeName": "owner_id", "KeyType": "HASH"},
            {"AttributeName": "item_key", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "owner_id", "AttributeType": "N"},
            {"AttributeName": "item_key", "AttributeType": "S"},
        ],
    )


@pytest.fixture(scope="function")
def dynamodb_table(dynamodb_resource):
    """
    Create the DynamoDB asset table for testing.

    The table lives only inside the moto context of the test.
    """
    table_name = os.getenv(ENV_GALLERY_ASSET_TABLE_NAME)

    try:
        table = dynamodb_resource.Table(table_name)
        table.load()
    except ClientError:
        table = _create_dynamodb_table(dynamodb_resource)
        table.wait_until_exists()

    yield table


@pytest.fixture
def dynamodb_items(dynamodb_table) -> Callable[[int], list[dict[str, Any]]]:
    """
    Helper to read every item of one owner partition.

    Usage:
        items = dynamodb_items(7)
    """

    def _items(owner_id: int) -> list[dict[str, Any]]:
        response = dynamodb_table.query(
            KeyConditionExpression="owner_id = :o",
            ExpressionAttributeValues={":o": owner_id},
        )
        return list(response.get("Items", []))

    return _items


@pytest.fixture
def upload_root(tmp_path, monkeypatch) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    monkeypatch.setenv(ENV_GALLERY_UPLOAD_ROOT, str(root))
    return root


@pytest.fixture
def storage(upload_root) -> LocalGalleryStorage:
    return LocalGalleryStorage(upload_root)


@pytest.fixture
def default_policy() -> GalleryPolicy:
    return GalleryPolicy()


@pytest.fixture
def incoming_dir(tmp_path) -> Path:
    """Stand-in for the web server's temporary upload directory."""
    directory = tmp_path / "incoming"
    directory.mkdir()
    return directory


@pytest.fixture
def make_image(incoming_dir) -> Callable[..., Path]:
    """
    Helper to write a Pillow-generated image to the incoming directory.

    Usage:
        path = make_image("photo.jpg", size=(2000, 1000), image_format="JPEG")
        path = make_image("turned.jpg", orientation=6)
        path = make_image("anim.gif", image_format="GIF", frames=3)
    """

    def _make(
        name: str,
        *,
        size: tuple[int, int] = (64, 48),
        image_format: str = "PNG",
        color: tuple[int, int, int] = (200, 40, 40),
        mode: str = "RGB",
        orientation: int | None = None,
        frames: int = 1,
    ) -> Path:
        path = incoming_dir / name
        image = Image.new(mode, size, color if mode == "RGB" else 128)

        options: dict[str, Any] = {}
        if orientation is not None:
            exif = Image.Exif()
            exif[0x0112] = orientation
            options["exif"] = exif.tobytes()

        if frames > 1:
            extra: Iterable[Image.Image] = [
                Image.new(mode, size, (index * 40, 90, 10)) for index in range(1, frames)
            ]
            image.save(path, format=image_format, save_all=True, append_images=list(extra))
        else:
            image.save(path, format=image_format, **options)

        return path

    return _make


@pytest.fixture
def make_upload(make_image) -> Callable[..., UploadRequest]:
    """
    Helper to build an UploadRequest for a freshly generated image.

    Usage:
        upload = make_upload("photo.png", size=(300, 200))
    """

    def _make(name: str, *, filename: str | None = None, **image_kwargs: Any) -> UploadRequest:
        path = make_image(name, **image_kwargs)
        return UploadRequest.from_path(path, filename=filename)

    return _make


@pytest.fixture
def stored_files(upload_root) -> Callable[[], list[Path]]:
    """Helper listing every file currently under the upload root."""

    def _files() -> list[Path]:
        return sorted(p for p in upload_root.rglob("*") if p.is_file())

    return _files
