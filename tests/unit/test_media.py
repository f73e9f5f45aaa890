"""
Unit Tests - Product Media
"""
import uuid

import pytest

from storefront.catalog.media import LocalMediaStore, classify_media, media_path, validate_media
from storefront.errors import ValidationFailedError

MB = 1024 * 1024


class TestMediaRules:
    """Tests for media type and size rules"""

    @pytest.mark.parametrize("content_type,kind", [("image/jpeg", "image"), ("video/mp4", "video"), ("IMAGE/PNG", "image")])
    def test_classify(self, content_type, kind):
        """Test MIME prefixes map to media kinds"""
        assert classify_media(content_type) == kind

    @pytest.mark.parametrize("content_type", ["application/pdf", "", None])
    def test_other_types_rejected(self, content_type):
        """Test anything but images and videos is refused"""
        with pytest.raises(ValidationFailedError):
            classify_media(content_type)

    def test_size_limits_per_kind(self):
        """Test images stop at 10 MB and videos at 50 MB"""
        assert validate_media("image/png", 10 * MB) == "image"
        assert validate_media("video/mp4", 40 * MB) == "video"

        with pytest.raises(ValidationFailedError):
            validate_media("image/png", 10 * MB + 1)
        with pytest.raises(ValidationFailedError):
            validate_media("video/mp4", 50 * MB + 1)
        with pytest.raises(ValidationFailedError):
            validate_media("image/png", 0)

    def test_path_is_sanitized(self):
        """Test the stored name keeps only safe characters and no directories"""
        product_id = uuid.uuid4()

        path = media_path(product_id, "../../etc/my photo!.jpg")

        assert path.startswith(f"products/{product_id}/")
        assert path.endswith("-my-photo-.jpg")
        assert ".." not in path


class TestLocalMediaStore:
    """Tests for LocalMediaStore"""

    async def test_upload_writes_file(self, tmp_path):
        """Test bytes land under the root and the public URL is returned"""
        store = LocalMediaStore(root=str(tmp_path), public_base_url="/media/")

        url = await store.upload("products/p1/a.jpg", b"jpeg-bytes", "image/jpeg")

        assert url == "/media/products/p1/a.jpg"
        assert (tmp_path / "products" / "p1" / "a.jpg").read_bytes() == b"jpeg-bytes"

    async def test_traversal_rejected(self, tmp_path):
        """Test paths escaping the root are refused"""
        store = LocalMediaStore(root=str(tmp_path / "media"))

        with pytest.raises(ValidationFailedError):
            await store.upload("../outside.jpg", b"x", "image/jpeg")
