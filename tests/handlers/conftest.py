import pytest

from core.imaging.transcoder import ImageTranscoder
from core.infrastructure.aws.dynamodb_asset_registrar import DynamoDBAssetRegistrar
from handlers.delete_image.service import DeleteService
from handlers.list_image.service import ListService
from handlers.update_gallery.service import GalleryUpdateService
from handlers.upload_image.service import UploadService


@pytest.fixture
def registrar(dynamodb_table) -> DynamoDBAssetRegistrar:
    return DynamoDBAssetRegistrar()


@pytest.fixture
def upload_service(registrar, storage) -> UploadService:
    return UploadService(registrar=registrar, storage=storage, transcoder=ImageTranscoder())


@pytest.fixture
def delete_service(registrar, storage) -> DeleteService:
    return DeleteService(registrar=registrar, storage=storage)


@pytest.fixture
def list_service(registrar) -> ListService:
    return ListService(registrar=registrar)


@pytest.fixture
def gallery_update_service(registrar) -> GalleryUpdateService:
    return GalleryUpdateService(registrar=registrar)


@pytest.fixture
def uploaded(upload_service, make_upload, default_policy):
    """
    Helper uploading distinct generated images for one owner.

    Usage:
        first, second = uploaded(7, count=2)
    """

    def _upload(owner_id: int, *, count: int = 1, size: tuple[int, int] = (1200, 800)) -> list[int]:
        asset_ids = []
        for index in range(count):
            upload = make_upload(f"{owner_id}-{index}.png", size=size, color=(index * 30, owner_id, 90))
            result = upload_service.upload_for_owner(owner_id=owner_id, upload=upload, policy=default_policy)
            assert result.ok, result.error
            asset_ids.append(result.asset_id)
        return asset_ids

    return _upload
