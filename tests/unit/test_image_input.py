"""Unit tests for image_input: data URL construction and validation."""

from __future__ import annotations

import pytest

from chart_signal.errors import InvalidImageError
from chart_signal.image_input import (
    encode_image_bytes,
    encode_image_file,
    estimated_size,
    split_data_url,
    validate_image_data,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class TestValidateImageData:
    @pytest.mark.parametrize("subtype", ["jpeg", "jpg", "png", "gif", "webp"])
    def test_allowed_types(self, subtype):
        assert validate_image_data(f"data:image/{subtype};base64,AAAA") == subtype

    @pytest.mark.parametrize(
        "data_url",
        ["data:image/bmp;base64,AAAA", "data:text/plain;base64,AAAA", "AAAA", "data:image/png,AAAA"],
    )
    def test_rejected_formats(self, data_url):
        with pytest.raises(InvalidImageError, match="Invalid image format"):
            validate_image_data(data_url)

    def test_size_estimated_from_encoded_length(self):
        assert estimated_size("A" * 400) == 300

    def test_too_large(self):
        data_url = "data:image/png;base64," + "A" * 200
        with pytest.raises(InvalidImageError, match="Image too large. Maximum size is 100 bytes."):
            validate_image_data(data_url, max_bytes=100)

    def test_default_limit_message(self):
        data_url = "data:image/png;base64," + "A" * (14 * 1024 * 1024)
        with pytest.raises(InvalidImageError, match="Maximum size is 10MB"):
            validate_image_data(data_url)


class TestEncoding:
    def test_encode_bytes(self):
        data_url = encode_image_bytes(b"abc", "image/png")
        assert data_url == "data:image/png;base64,YWJj"

    def test_encode_rejects_unsupported(self):
        with pytest.raises(InvalidImageError):
            encode_image_bytes(b"abc", "image/bmp")

    def test_encode_file(self, tmp_path):
        path = tmp_path / "chart.png"
        path.write_bytes(PNG_BYTES)
        data_url = encode_image_file(path)
        assert data_url.startswith("data:image/png;base64,")
        assert validate_image_data(data_url) == "png"

    def test_encode_file_unknown_type(self, tmp_path):
        path = tmp_path / "chart"
        path.write_bytes(PNG_BYTES)
        with pytest.raises(InvalidImageError):
            encode_image_file(path)

    def test_split_data_url_normalizes_jpg(self):
        assert split_data_url("data:image/jpg;base64,AAAA") == ("image/jpeg", "AAAA")
