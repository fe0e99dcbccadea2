"""
Unit tests for image optimisation.
"""

import io

import pytest
from PIL import Image

from design_vault.services.image_processor import ImageProcessor
from design_vault.ui.handlers.error import ValidationError
from tests.conftest import create_test_image


class TestImageProcessor:
    """Test cases for ImageProcessor class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.processor = ImageProcessor(max_dimension=50, quality=80, min_size=0)

    def test_verify_success(self):
        """Test verification returns the image size."""
        assert self.processor.verify(create_test_image("PNG", (30, 20)), "a.png") == (30, 20)

    def test_verify_invalid_data(self):
        """Test invalid data raises a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            self.processor.verify(b"not an image" * 20, "broken.png")

        assert exc_info.value.code == "invalid_image"
        assert exc_info.value.http_status == 400

    @pytest.mark.parametrize(
        "original,expected",
        [((200, 100), (50, 25)), ((100, 200), (25, 50)), ((40, 30), (40, 30)), ((50, 50), (50, 50))],
    )
    def test_calculate_target_size(self, original, expected):
        """Test the target size keeps the aspect ratio and never upscales."""
        assert self.processor._calculate_target_size(original) == expected

    def test_optimize_resizes_large_image(self):
        """Test a large raster image is downscaled in its own format."""
        result = self.processor.optimize(create_test_image("PNG", (200, 100)), "image/png", "wide.png")

        assert result.optimized is True
        assert (result.width, result.height) == (50, 25)
        with Image.open(io.BytesIO(result.data)) as image:
            assert image.format == "PNG"
            assert image.size == (50, 25)

    def test_optimize_jpeg_with_alpha_converted(self):
        """Test RGBA input saved as JPEG is converted to RGB."""
        data = create_test_image("PNG", (200, 200), mode="RGBA")
        result = self.processor.optimize(data, "image/jpeg", "alpha.jpg")

        with Image.open(io.BytesIO(result.data)) as image:
            assert image.format == "JPEG"
            assert image.mode == "RGB"

    def test_small_files_untouched(self):
        """Test files under the minimum size are returned as-is."""
        processor = ImageProcessor(min_size=1024 * 1024)
        data = create_test_image("PNG", (200, 100))

        result = processor.optimize(data, "image/png", "small.png")

        assert result.data == data
        assert result.optimized is False
        assert (result.width, result.height) == (200, 100)

    def test_non_optimizable_types_pass_through(self):
        """Test GIF and SVG are never re-encoded or decoded."""
        svg = b"<svg xmlns='http://www.w3.org/2000/svg'></svg>"
        result = self.processor.optimize(svg, "image/svg+xml", "icon.svg")

        assert result.data == svg
        assert result.optimized is False

    def test_optimize_invalid_raster(self):
        """Test corrupt raster data is rejected."""
        with pytest.raises(ValidationError):
            self.processor.optimize(b"garbage", "image/png", "broken.png")
