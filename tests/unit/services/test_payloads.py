"""
Unit tests for payload builders.
"""

import httpx
import pytest

from bitarchive.errors import RemoteError, ValidationError
from bitarchive.services.payloads import (
    collect_image_paths,
    infer_extension,
    payload_from_bytes,
    payload_from_path,
    payload_from_url,
    sniff_extension,
)
from bitarchive.utils.naming import MAX_BYTES


class TestInferExtension:
    """Test cases for extension inference."""

    def test_uri_wins_over_mime(self):
        assert infer_extension("photo.PNG", "image/jpeg") == "png"

    def test_mime_when_uri_has_no_extension(self):
        assert infer_extension("content://media/42", "image/webp") == "webp"

    def test_host_name_is_not_an_extension(self, png_bytes):
        assert infer_extension("https://cdn.example.com?id=5", "image/png") == "png"
        assert infer_extension("https://cdn.example.com?id=5", None, png_bytes) == "png"

    def test_generic_image_mime_defaults_to_jpg(self):
        assert infer_extension(None, "image/*") == "jpg"

    def test_sniffs_bytes(self, png_bytes):
        assert sniff_extension(png_bytes) == "png"
        assert infer_extension(None, "application/octet-stream", png_bytes) == "png"

    def test_unknown(self):
        assert sniff_extension(b"not an image") is None
        assert infer_extension(None, None, b"not an image") is None


class TestPayloadBuilders:
    """Test cases for payload builders."""

    def test_from_path(self, tmp_path, jpeg_bytes):
        path = tmp_path / "IMG_0001.JPEG"
        path.write_bytes(jpeg_bytes)

        payload = payload_from_path(path)

        assert payload.extension == "jpg"
        assert payload.data == jpeg_bytes
        assert payload.source == str(path)

    def test_from_path_sniffs_extensionless_file(self, tmp_path, png_bytes):
        path = tmp_path / "download"
        path.write_bytes(png_bytes)
        assert payload_from_path(path).extension == "png"

    def test_from_path_too_large(self, tmp_path):
        path = tmp_path / "huge.jpg"
        with open(path, "wb") as f:
            f.truncate(MAX_BYTES + 1)

        with pytest.raises(ValidationError) as exc_info:
            payload_from_path(path)
        assert exc_info.value.code == "file_too_large"

    def test_from_missing_path(self, tmp_path):
        with pytest.raises(ValidationError):
            payload_from_path(tmp_path / "nope.jpg")

    def test_from_bytes_with_mime(self, png_bytes):
        payload = payload_from_bytes(png_bytes, "image/png")
        assert payload.extension == "png"

    def test_from_bytes_unknown_type(self):
        with pytest.raises(ValidationError):
            payload_from_bytes(b"plain text", "text/plain")

    def test_collect_image_paths(self, tmp_path):
        (tmp_path / "a.jpg").write_bytes(b"1")
        (tmp_path / "b.txt").write_bytes(b"1")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "c.PNG").write_bytes(b"1")

        assert [p.name for p in collect_image_paths(tmp_path)] == ["a.jpg"]
        assert [p.name for p in collect_image_paths(tmp_path, recursive=True)] == ["a.jpg", "c.PNG"]


class TestPayloadFromUrl:
    """Test cases for remote downloads."""

    @pytest.mark.asyncio
    async def test_download(self, png_bytes):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})
        )
        async with httpx.AsyncClient(transport=transport) as client:
            payload = await payload_from_url("https://example.com/share?id=1", client=client)

        assert payload.extension == "png"
        assert payload.data == png_bytes
        assert payload.source == "https://example.com/share?id=1"

    @pytest.mark.asyncio
    async def test_download_error_status(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(RemoteError):
                await payload_from_url("https://example.com/a.jpg", client=client)

    @pytest.mark.asyncio
    async def test_download_too_large(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"\0" * (MAX_BYTES + 1)))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(ValidationError):
                await payload_from_url("https://example.com/a.jpg", client=client)
