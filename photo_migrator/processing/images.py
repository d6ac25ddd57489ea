"""
Image validation and multi-format encoding.

Content is validated by its magic bytes before upload so that corrupt
or non-image files fail permanently instead of being copied. When
variant formats are requested, Pillow downsizes the photo and encodes
each format with a quality search towards a target size.
"""

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from photo_migrator.core.exceptions import PermanentItemError
from photo_migrator.models.config import ImageFormat
from photo_migrator.storage.base import ObjectVariant

logger = logging.getLogger(__name__)


CONTENT_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "avif": "image/avif",
    "heic": "image/heic",
}

EXTENSIONS = {
    ImageFormat.JPEG: "jpg",
    ImageFormat.WEBP: "webp",
    ImageFormat.AVIF: "avif",
    ImageFormat.PNG: "png",
}

PILLOW_FORMATS = {
    ImageFormat.JPEG: "JPEG",
    ImageFormat.WEBP: "WEBP",
    ImageFormat.AVIF: "AVIF",
    ImageFormat.PNG: "PNG",
}

AVIF_BRANDS = {b"avif", b"avis"}
HEIC_BRANDS = {b"heic", b"heix", b"hevc", b"hevx", b"mif1", b"msf1"}


def detect_image_format(data: bytes) -> Optional[str]:
    """
    Identify an image format from its leading bytes.

    Returns:
        One of jpeg, png, gif, webp, bmp, avif, heic; or None if unrecognised
    """
    if len(data) < 4:
        return None
    if data[:3] == b"\xff\xd8\xff":
        return "jpeg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    if data[:2] == b"BM":
        return "bmp"
    if data[4:8] == b"ftyp":
        brand = data[8:12]
        if brand in AVIF_BRANDS:
            return "avif"
        if brand in HEIC_BRANDS:
            return "heic"
    return None


def validate_image(data: bytes, ref: Optional[str] = None) -> str:
    """
    Check that content looks like a supported image.

    Returns:
        The detected format name

    Raises:
        PermanentItemError: If the content is empty or not a recognised image
    """
    if not data:
        raise PermanentItemError(
            f"Empty file: {ref}", reason="empty content", ref=ref, operation="validate"
        )
    fmt = detect_image_format(data)
    if fmt is None:
        raise PermanentItemError(
            f"Invalid image content: {ref}", reason="invalid content", ref=ref, operation="validate"
        )
    return fmt


def content_type_for(fmt: Optional[str]) -> Optional[str]:
    return CONTENT_TYPES.get(fmt) if fmt else None


@dataclass
class ProcessorSettings:
    """Encoding settings."""
    max_dimension: int = 1200
    target_size_kb: int = 100
    quality: int = 85
    min_quality: int = 40
    quality_step: int = 10
    strip_metadata: bool = True


class ImageProcessor:
    """
    Encodes photos into one or more formats with Pillow.
    """

    def __init__(self, settings: Optional[ProcessorSettings] = None):
        self.settings = settings or ProcessorSettings()

    async def encode_variants(
        self,
        data: bytes,
        formats: Iterable[ImageFormat],
        ref: Optional[str] = None,
    ) -> List[ObjectVariant]:
        """
        Encode an image into each requested format.

        Formats the local Pillow build cannot write are skipped with a
        warning.

        Raises:
            PermanentItemError: If the image cannot be decoded, or no format
                could be encoded
        """
        return await asyncio.to_thread(self._encode_all, data, list(formats), ref)

    def _encode_all(self, data: bytes, formats: List[ImageFormat], ref: Optional[str]) -> List[ObjectVariant]:
        image = self._load(data, ref)
        variants = []
        for fmt in formats:
            try:
                encoded = self._encode(image, fmt)
            except (KeyError, OSError, ValueError) as e:
                logger.warning(f"Could not encode {ref} as {fmt.value}: {e}")
                continue
            variants.append(ObjectVariant(
                name=fmt.value,
                data=encoded,
                extension=EXTENSIONS[fmt],
                content_type=CONTENT_TYPES[fmt.value],
            ))

        if not variants:
            raise PermanentItemError(
                f"No output formats could be encoded for {ref}",
                reason="encoding failed",
                ref=ref,
                operation="encode",
            )
        return variants

    def _load(self, data: bytes, ref: Optional[str]) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
            raise PermanentItemError(
                f"Cannot decode image {ref}: {e}",
                reason="undecodable image",
                ref=ref,
                operation="decode",
            ) from e

        image = ImageOps.exif_transpose(image)
        limit = self.settings.max_dimension
        if image.width > limit or image.height > limit:
            image.thumbnail((limit, limit), Image.Resampling.LANCZOS)
        return image

    def _encode(self, image: Image.Image, fmt: ImageFormat) -> bytes:
        pillow_format = PILLOW_FORMATS[fmt]
        metadata = self._metadata(image)
        if fmt == ImageFormat.PNG:
            return self._save(image, pillow_format, optimize=True, **metadata)

        if fmt == ImageFormat.JPEG and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        target_bytes = self.settings.target_size_kb * 1024
        quality = self.settings.quality
        encoded = self._save(image, pillow_format, quality=quality, **metadata)
        while len(encoded) > target_bytes and quality - self.settings.quality_step >= self.settings.min_quality:
            quality -= self.settings.quality_step
            encoded = self._save(image, pillow_format, quality=quality, **metadata)
        return encoded

    def _metadata(self, image: Image.Image) -> dict:
        """EXIF and ICC data to carry into encoded variants, unless stripping."""
        if self.settings.strip_metadata:
            return {"exif": b"", "icc_profile": None}
        metadata = {}
        exif = image.getexif()
        if exif:
            metadata["exif"] = exif.tobytes()
        icc_profile = image.info.get("icc_profile")
        if icc_profile:
            metadata["icc_profile"] = icc_profile
        return metadata

    @staticmethod
    def _save(image: Image.Image, pillow_format: str, **params) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format=pillow_format, **params)
        return buffer.getvalue()
