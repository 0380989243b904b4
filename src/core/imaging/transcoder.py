"""Pillow-backed decode, orientation, resize and encode for gallery uploads."""

import io
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from aws_lambda_powertools import Logger
from PIL import Image, features
from pydantic import BaseModel, Field, StrictBytes, StrictInt

from core.imaging.geometry import TargetSize
from core.models.errors import TranscodeError
from core.utils.constants import (
    ERROR_CODE_TRANSCODE_DECODE_FAILED,
    ERROR_CODE_TRANSCODE_ENCODE_FAILED,
    JPEG_QUALITY,
    PIL_FORMAT_BY_EXTENSION,
)

logger = Logger(UTC=True)

ORIENTATION_TAG = 0x0112
ORIENTATION_TOP_LEFT = 1

# EXIF orientation value -> pixel transform that brings it to top-left.
ORIENTATION_TRANSFORMS: dict[int, Image.Transpose] = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}

# Info keys that describe pixels rather than metadata.
PIXEL_INFO_KEYS = ("transparency", "background")

RESIZABLE_MODES = frozenset({"RGB", "RGBA", "L", "LA", "CMYK"})
JPEG_MODES = frozenset({"RGB", "L", "CMYK"})

IMAGE_ERRORS = (OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError)


class EncodedImage(BaseModel):
    """Encoded bytes of one stored rendition."""

    data: StrictBytes = Field(..., repr=False)
    width: StrictInt
    height: StrictInt

    @property
    def byte_size(self) -> int:
        return len(self.data)


class TranscodedImages(BaseModel):
    original: EncodedImage
    variants: dict[str, EncodedImage]


@dataclass
class DecodedImage:
    """First frame of the source with orientation already applied."""

    image: Image.Image
    exif: Image.Exif
    icc_profile: bytes | None = None
    xmp: bytes | None = None
    frame_count: int = 1

    @property
    def size(self) -> TargetSize:
        return TargetSize(self.image.width, self.image.height)


class ImageTranscoder:
    """Decodes an upload once and re-encodes the original plus every variant."""

    def __init__(self, *, jpeg_quality: int = JPEG_QUALITY) -> None:
        """Verify the required encoders exist.

        Raises:
            RuntimeError: If Pillow was built without JPEG, PNG or GIF support
        """
        Image.init()
        missing = [fmt for fmt in PIL_FORMAT_BY_EXTENSION.values() if fmt not in Image.SAVE]
        if missing or not features.check_codec("jpg") or not features.check_codec("zlib"):
            raise RuntimeError(
                "Image upload requires Pillow with JPEG, PNG and GIF support "
                f"(missing: {', '.join(missing) or 'libjpeg/zlib'})"
            )

        self.jpeg_quality = jpeg_quality

    def decode(self, path: Path) -> DecodedImage:
        """Decode the first frame and bake EXIF orientation into the pixels.

        Raises:
            TranscodeError: If the source cannot be decoded
        """
        try:
            with Image.open(path) as source:
                frame_count = getattr(source, "n_frames", 1)
                source.seek(0)
                frame = source.copy()
                exif = source.getexif()
        except IMAGE_ERRORS as exc:
            logger.warning("Image decode failed", extra={"error": str(exc)})
            raise TranscodeError(
                message="Failed to decode uploaded image.",
                error_code=ERROR_CODE_TRANSCODE_DECODE_FAILED,
            ) from exc

        icc_profile = frame.info.get("icc_profile")
        xmp = frame.info.get("xmp")

        try:
            frame = self.auto_orient(frame, exif)
        except IMAGE_ERRORS as exc:
            raise TranscodeError(
                message="Failed to normalize image orientation.",
                error_code=ERROR_CODE_TRANSCODE_DECODE_FAILED,
            ) from exc

        frame.info = {key: frame.info[key] for key in PIXEL_INFO_KEYS if key in frame.info}

        logger.debug(
            "Image decoded",
            extra={"width": frame.width, "height": frame.height, "frames": frame_count},
        )

        return DecodedImage(
            image=frame,
            exif=exif,
            icc_profile=icc_profile,
            xmp=xmp,
            frame_count=frame_count,
        )

    @staticmethod
    def auto_orient(image: Image.Image, exif: Image.Exif) -> Image.Image:
        """Apply the EXIF orientation to pixel data and reset the tag to top-left."""
        orientation = exif.get(ORIENTATION_TAG, ORIENTATION_TOP_LEFT)
        transform = ORIENTATION_TRANSFORMS.get(orientation)

        if transform is not None:
            image = image.transpose(transform)

        if ORIENTATION_TAG in exif:
            exif[ORIENTATION_TAG] = ORIENTATION_TOP_LEFT

        return image

    def transcode(
        self,
        decoded: DecodedImage,
        extension: str,
        plans: Mapping[str, TargetSize],
        strip_metadata: bool,
    ) -> TranscodedImages:
        """Encode the canonical original and one rendition per planned variant.

        Variants planned at the source size are re-encoded unresized so a
        file exists for every key.

        Raises:
            TranscodeError: On the first resize or encode failure
        """
        image_format = PIL_FORMAT_BY_EXTENSION.get(extension)
        if image_format is None:
            raise TranscodeError(
                message=f"Unsupported output extension '{extension}'.",
                error_code=ERROR_CODE_TRANSCODE_ENCODE_FAILED,
            )

        save_options = self._save_options(decoded, image_format, strip_metadata)

        try:
            original = self._encode(decoded.image, image_format, save_options)
        except IMAGE_ERRORS as exc:
            raise TranscodeError(
                message="Failed to encode processed source image.",
                error_code=ERROR_CODE_TRANSCODE_ENCODE_FAILED,
            ) from exc

        variants: dict[str, EncodedImage] = {}
        for key, target in plans.items():
            try:
                rendition = decoded.image
                if target != decoded.size:
                    rendition = self._resize(decoded.image, target)
                variants[key] = self._encode(rendition, image_format, save_options)
            except IMAGE_ERRORS as exc:
                raise TranscodeError(
                    message=f"Failed to generate {key} variant.",
                    error_code=ERROR_CODE_TRANSCODE_ENCODE_FAILED,
                    details={"variant_key": key},
                ) from exc

        return TranscodedImages(original=original, variants=variants)

    def _save_options(
        self,
        decoded: DecodedImage,
        image_format: str,
        strip_metadata: bool,
    ) -> dict[str, Any]:
        options: dict[str, Any] = {}

        if image_format == "JPEG":
            options["quality"] = self.jpeg_quality

        if strip_metadata or image_format == "GIF":
            return options

        if len(decoded.exif):
            options["exif"] = decoded.exif.tobytes()
        if decoded.icc_profile:
            options["icc_profile"] = decoded.icc_profile
        if decoded.xmp and image_format == "JPEG":
            options["xmp"] = decoded.xmp

        return options

    @staticmethod
    def _resize(image: Image.Image, target: TargetSize) -> Image.Image:
        # Palette and bilevel images would fall back to nearest-neighbour.
        if image.mode not in RESIZABLE_MODES:
            has_alpha = "transparency" in image.info or image.mode in ("PA", "RGBa", "La")
            image = image.convert("RGBA" if has_alpha else "RGB")

        return image.resize((target.width, target.height), Image.Resampling.LANCZOS)

    @staticmethod
    def _encode(image: Image.Image, image_format: str, options: dict[str, Any]) -> EncodedImage:
        if image_format == "JPEG" and image.mode not in JPEG_MODES:
            image = image.convert("RGB")

        buffer = io.BytesIO()
        image.save(buffer, format=image_format, **options)

        return EncodedImage(data=buffer.getvalue(), width=image.width, height=image.height)
