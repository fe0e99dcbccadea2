"""Server-side image optimisation for uploads."""

import io
from dataclasses import dataclass
from datetime import datetime

from PIL import Image, ImageOps

from ..logging_config import get_logger, log_error, log_performance
from ..ui.handlers.error import ValidationError

logger = get_logger(__name__)


@dataclass
class ProcessedImage:
    data: bytes
    content_type: str
    width: int | None = None
    height: int | None = None
    optimized: bool = False


class ImageProcessor:
    """Verifies uploaded images and shrinks large raster images before storage."""

    # Formats re-encoded by optimize(); GIF and SVG pass through untouched
    OPTIMIZABLE_TYPES = {
        "image/jpeg": "JPEG",
        "image/png": "PNG",
        "image/webp": "WEBP",
    }

    def __init__(self, max_dimension: int = 2048, quality: int = 85, min_size: int = 50 * 1024) -> None:
        self.max_dimension = max_dimension
        self.quality = quality
        self.min_size = min_size

    def verify(self, image_data: bytes, filename: str) -> tuple[int, int]:
        """
        Check that the data decodes as an image.

        Returns:
            tuple: Image size as (width, height)

        Raises:
            ValidationError: If the image is corrupted or not an image
        """
        try:
            with Image.open(io.BytesIO(image_data)) as image:
                size = image.size
                image.verify()
        except Exception as e:
            log_error(e, {"operation": "verify_image", "filename": filename, "file_size": len(image_data)})
            raise ValidationError(
                f"Invalid or corrupted image file '{filename}'",
                field="file",
                code="invalid_image",
                details={"filename": filename},
                original_exception=e,
            ) from e
        return size

    def _calculate_target_size(self, original_size: tuple[int, int]) -> tuple[int, int]:
        """Fit inside max_dimension x max_dimension keeping the aspect ratio. Never upscales."""
        width, height = original_size
        scale = min(self.max_dimension / width, self.max_dimension / height, 1.0)
        return (max(int(width * scale), 1), max(int(height * scale), 1))

    def optimize(self, image_data: bytes, content_type: str, filename: str) -> ProcessedImage:
        """
        Verify an image and re-encode it in its own format when worthwhile.

        Args:
            image_data: Raw image bytes
            content_type: MIME type of the upload
            filename: Name used in logs and errors

        Returns:
            ProcessedImage holding either the optimised or the original bytes

        Raises:
            ValidationError: If a raster image cannot be decoded
        """
        image_format = self.OPTIMIZABLE_TYPES.get(content_type.lower())
        if image_format is None:
            return ProcessedImage(data=image_data, content_type=content_type)

        width, height = self.verify(image_data, filename)
        if len(image_data) < self.min_size:
            return ProcessedImage(data=image_data, content_type=content_type, width=width, height=height)

        start_time = datetime.now()
        with Image.open(io.BytesIO(image_data)) as image:
            image = ImageOps.exif_transpose(image)
            target_size = self._calculate_target_size(image.size)
            if target_size != image.size:
                image = image.resize(target_size, Image.Resampling.LANCZOS)
            if image_format == "JPEG" and image.mode not in ("RGB", "L"):
                image = image.convert("RGB")

            buffer = io.BytesIO()
            save_options: dict = {"format": image_format, "optimize": True}
            if image_format in ("JPEG", "WEBP"):
                save_options["quality"] = self.quality
            image.save(buffer, **save_options)

        optimized = buffer.getvalue()
        if len(optimized) >= len(image_data) and target_size == (width, height):
            logger.debug("image_optimization_skipped", filename=filename, original_size=len(image_data))
            return ProcessedImage(data=image_data, content_type=content_type, width=width, height=height)

        duration = (datetime.now() - start_time).total_seconds()
        log_performance(
            "optimize_image",
            duration,
            filename=filename,
            original_file_size=len(image_data),
            optimized_file_size=len(optimized),
            target_size=target_size,
        )
        return ProcessedImage(
            data=optimized,
            content_type=content_type,
            width=target_size[0],
            height=target_size[1],
            optimized=True,
        )
