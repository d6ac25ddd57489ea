"""
Image processing for the Photo Migrator.
"""

from .images import (
    ImageProcessor,
    ProcessorSettings,
    content_type_for,
    detect_image_format,
    validate_image,
)

__all__ = [
    "ImageProcessor",
    "ProcessorSettings",
    "content_type_for",
    "detect_image_format",
    "validate_image",
]
