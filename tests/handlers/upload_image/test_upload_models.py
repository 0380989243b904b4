from core.models.errors import DuplicateImageError, StorageError
from handlers.upload_image.models import UploadResult


class TestUploadResult:
    def test_success(self) -> None:
        result = UploadResult.success(12)

        assert result.ok is True
        assert result.asset_id == 12
        assert result.error is None
        assert result.error_kind is None

    def test_failure_from_domain_error(self) -> None:
        result = UploadResult.failure(DuplicateImageError(message="This image already exists in the page gallery."))

        assert result.ok is False
        assert result.asset_id is None
        assert result.error == "This image already exists in the page gallery."
        assert result.error_code == "DUPLICATE_IMAGE_ERROR"
        assert result.error_kind == "duplicate"

    def test_failure_keeps_specific_error_code(self) -> None:
        err = StorageError(message="Failed to store generated sm variant.", error_code="STORAGE_WRITE_FAILED")

        result = UploadResult.failure(err)

        assert result.error_code == "STORAGE_WRITE_FAILED"
        assert result.error_kind == "storage"

    def test_internal_failure(self) -> None:
        result = UploadResult.internal_failure()

        assert result.ok is False
        assert result.error == "Image processing failed."
        assert result.error_code == "INTERNAL_ERROR"
        assert result.error_kind == "internal"
