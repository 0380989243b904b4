"""Business logic for gallery image ingestion.

This module coordinates validation, deduplication, transcoding, file storage
and asset registration for one uploaded image. Every failure is converted
into an `UploadResult`; files written by a failed attempt are removed first.
"""

from pathlib import Path

from aws_lambda_powertools import Logger

from core.imaging.geometry import plan_variants
from core.imaging.transcoder import ImageTranscoder, TranscodedImages
from core.infrastructure.aws.dynamodb_asset_registrar import DynamoDBAssetRegistrar
from core.infrastructure.local.local_gallery_storage import LocalGalleryStorage
from core.models.errors import DuplicateImageError, ImageServiceError, ValidationError
from core.models.image import ImageAsset, ImageVariant
from core.models.policy import GalleryPolicy
from core.models.upload import UploadRequest, ValidatedUpload
from core.repositories.metadata_repository import ImageAssetRepository
from core.repositories.storage_repository import GalleryFileStorage, WrittenAsset
from core.utils.constants import ASSET_STATUS_READY, STORAGE_TARGET_LOCAL
from core.utils.hashing import sha256_file
from core.utils.time import utc_now_iso
from core.utils.validators import sanitize_text, validate_upload

from .models import UploadResult

logger = Logger(UTC=True)


class UploadService:
    """Application service responsible for gallery uploads.

    This service orchestrates:
    - Upload validation against the per-call policy
    - Duplicate detection by content hash
    - Decoding, variant planning and encoding
    - Writing all files under one token
    - Registering the asset and its variants
    """

    def __init__(
        self,
        registrar: ImageAssetRepository | None = None,
        storage: GalleryFileStorage | None = None,
        transcoder: ImageTranscoder | None = None,
    ) -> None:
        """Initialize the upload service with required infrastructure dependencies."""
        self.registrar = registrar or DynamoDBAssetRegistrar()
        self.storage = storage or LocalGalleryStorage()
        self.transcoder = transcoder or ImageTranscoder()

    def upload_for_owner(
        self,
        *,
        owner_id: int,
        upload: UploadRequest | None,
        policy: GalleryPolicy,
    ) -> UploadResult:
        """Ingest one uploaded image for an owner.

        Never raises for per-upload failures.

        Args:
            owner_id: Owning page identifier
            upload: Uploaded file handed over by the caller
            policy: Policy snapshot for this call

        Returns:
            Successful result with the new asset id, or a failure result
            carrying message, error code and error kind
        """
        logger.debug("Starting image upload", extra={"owner_id": owner_id})

        try:
            asset_id = self._ingest(owner_id=owner_id, upload=upload, policy=policy)

        except ImageServiceError as exc:
            logger.warning(
                "Image upload rejected",
                extra={
                    "owner_id": owner_id,
                    "error_code": exc.error_code,
                    "error_kind": exc.kind,
                    "error": exc.message,
                },
            )
            return UploadResult.failure(exc)

        except Exception:
            logger.exception("Unexpected error during image upload", extra={"owner_id": owner_id})
            return UploadResult.internal_failure()

        logger.info(
            "Image uploaded successfully",
            extra={"owner_id": owner_id, "asset_id": asset_id},
        )
        return UploadResult.success(asset_id)

    def _ingest(
        self,
        *,
        owner_id: int,
        upload: UploadRequest | None,
        policy: GalleryPolicy,
    ) -> int:
        """Run the pipeline and return the new asset id.

        The flow is:
        1. Validate the upload (no side effects)
        2. Hash the uploaded bytes and reject duplicates
        3. Decode the first frame and plan variants from its real size
        4. Encode the original and every variant
        5. Write all files under one token
        6. Register rows (roll back written files on failure)
        """
        if owner_id < 1:
            raise ValidationError(
                message="Invalid page id.",
                details={"owner_id": owner_id},
            )

        # Step 1: Validate
        validated = validate_upload(upload, policy)

        # Step 2: Deduplicate by content hash
        file_hash = sha256_file(validated.source_path)
        if self.registrar.has_hash(owner_id=owner_id, file_hash=file_hash):
            logger.info("Duplicate image detected", extra={"owner_id": owner_id})
            raise DuplicateImageError(
                message="This image already exists in the page gallery.",
                details={"owner_id": owner_id},
            )

        # Steps 3-4: Decode, plan and encode
        decoded = self.transcoder.decode(validated.source_path)
        try:
            plans = plan_variants(decoded.image.width, decoded.image.height, policy.variants)
            rendered = self.transcoder.transcode(
                decoded,
                validated.extension,
                plans,
                policy.strip_metadata,
            )
        finally:
            decoded.image.close()

        # Step 5: Write files
        written = self.storage.write_asset_files(
            owner_id=owner_id,
            extension=validated.extension,
            original=rendered.original,
            variants=rendered.variants,
        )

        # Step 6: Register rows
        try:
            sort_order = self.registrar.next_sort_order(owner_id=owner_id)
            asset, variants = self._build_rows(
                owner_id=owner_id,
                validated=validated,
                file_hash=file_hash,
                rendered=rendered,
                written=written,
                sort_order=sort_order,
            )
            return self.registrar.insert_asset_with_variants(asset=asset, variants=variants)
        except Exception:
            logger.warning(
                "Registration failed, removing written files",
                extra={"owner_id": owner_id, "stored_paths": written.stored_paths},
            )
            self.storage.rollback(written.stored_paths)
            self.storage.remove_owner_directory_if_empty(owner_id=owner_id)
            raise

    @staticmethod
    def _build_rows(
        *,
        owner_id: int,
        validated: ValidatedUpload,
        file_hash: str,
        rendered: TranscodedImages,
        written: WrittenAsset,
        sort_order: int,
    ) -> tuple[ImageAsset, list[ImageVariant]]:
        timestamp = utc_now_iso()
        original_filename = sanitize_text(validated.original_filename)
        display_text = sanitize_text(Path(original_filename).stem)

        asset = ImageAsset(
            owner_id=owner_id,
            storage_target=STORAGE_TARGET_LOCAL,
            original_filename=original_filename,
            stored_filename=written.original.stored_filename,
            stored_path=written.original.stored_path,
            mime_type=validated.mime_type,
            extension=validated.extension,
            byte_size=written.original.byte_size or validated.claimed_size,
            width=rendered.original.width,
            height=rendered.original.height,
            hash_sha256=file_hash,
            status=ASSET_STATUS_READY,
            sort_order=sort_order,
            alt_text=display_text,
            title_text=display_text,
            created_at=timestamp,
            updated_at=timestamp,
        )

        variants = [
            ImageVariant(
                variant_key=key,
                stored_filename=written.variants[key].stored_filename,
                stored_path=written.variants[key].stored_path,
                mime_type=validated.mime_type,
                extension=validated.extension,
                byte_size=written.variants[key].byte_size,
                width=encoded.width,
                height=encoded.height,
                created_at=timestamp,
            )
            for key, encoded in rendered.variants.items()
        ]

        return asset, variants
