"""Pytest tests for image upload and cleanup."""

import json
import tempfile
from pathlib import Path

import httpx
import pytest

from restaurant_admin_tui.api import ApiClient
from restaurant_admin_tui.errors import TransportError
from restaurant_admin_tui.storage import ObjectStorageClient, is_deletable_image_url


@pytest.fixture
def temp_image():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "burger.webp"
        path.write_bytes(b"RIFF0000WEBPVP8 ")
        yield path


def storage_with(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    api = ApiClient("http://admin.test", session_token="abc", http_client=client)
    return ObjectStorageClient(api)


class TestDeletableUrls:
    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "   ",
            "/img/mensaje-error.png",
            "/img/menu/burger.webp",
            "http://localhost:3000/img/a.png",
            "http://127.0.0.1/img/a.png",
        ],
    )
    def test_skipped(self, url):
        assert not is_deletable_image_url(url)

    def test_bucket_url(self):
        assert is_deletable_image_url("https://cdn.example.com/hero/id-1/image.webp")

    def test_custom_fallback(self):
        fallback = "https://cdn.example.com/fallback.png"
        assert not is_deletable_image_url(fallback, fallback)


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_sends_multipart_and_returns_url(self, temp_image):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "publicUrl": "https://cdn.example.com/x.webp"})

        storage = storage_with(handler)

        url = await storage.upload(temp_image, "imagen_productos", "menu-id-3", "productosimage")

        assert url == "https://cdn.example.com/x.webp"
        request = seen[0]
        assert request.url.path == "/api/admin/upload-image"
        body = request.content
        assert b'name="recordKey"' in body
        assert b"menu-id-3" in body
        assert b'filename="burger.webp"' in body

    @pytest.mark.asyncio
    async def test_missing_file(self):
        storage = storage_with(lambda request: httpx.Response(500))

        with pytest.raises(TransportError) as exc_info:
            await storage.upload(Path("/nonexistent/burger.webp"), "hero", "id-1")

        assert "burger.webp" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_public_url(self, temp_image):
        storage = storage_with(lambda request: httpx.Response(200, json={"ok": True}))

        with pytest.raises(TransportError):
            await storage.upload(temp_image, "hero", "id-1")


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_posts_public_url(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        storage = storage_with(handler)

        assert await storage.delete(" https://cdn.example.com/a.webp ") is True
        assert json.loads(seen[0].content) == {"publicUrl": "https://cdn.example.com/a.webp"}

    @pytest.mark.asyncio
    async def test_local_url_is_skipped(self):
        seen = []
        storage = storage_with(lambda request: seen.append(request) or httpx.Response(200, json={"ok": True}))

        assert await storage.delete("/img/a.png") is False
        assert seen == []

    @pytest.mark.asyncio
    async def test_delete_failure_raises(self):
        storage = storage_with(lambda request: httpx.Response(500, json={"ok": False, "error": "denied"}))

        with pytest.raises(TransportError) as exc_info:
            await storage.delete("https://cdn.example.com/a.webp")

        assert exc_info.value.message == "denied"
