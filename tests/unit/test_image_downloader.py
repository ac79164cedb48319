"""Unit tests for image URL helpers and ImageDownloader."""
import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from dropship.config import ImageSettings
from dropship.errors import ImageDownloadError, InvalidUrlError
from dropship.services.extraction.image_downloader import (
    ImageDownloader,
    filter_valid_urls,
    is_valid_image_url,
    normalize_image_url,
)
from tests.conftest import minimal_jpeg

CDN = "https://ae01.alicdn.com/kf"


def make_downloader(handler, **overrides) -> ImageDownloader:
    settings = ImageSettings(**{"max_concurrent": 2, "max_retries": 1, "retry_base_delay_ms": 0, **overrides})
    limiter = AsyncMock()
    return ImageDownloader(
        settings,
        limiter=limiter,
        transport=httpx.MockTransport(handler),
        jitter=False,
    )


class TestUrlHelpers:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("//ae01.alicdn.com/kf/abc.jpg_640x640q90.jpg", f"{CDN}/abc.jpg"),
            (f"{CDN}/abc.jpg_220x220.jpg", f"{CDN}/abc.jpg"),
            (f"{CDN}/abc_Q90.png", f"{CDN}/abc.png"),
            (f"  {CDN}/abc.webp  ", f"{CDN}/abc.webp"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_image_url(raw) == expected

    @pytest.mark.parametrize(
        "url, valid",
        [
            (f"{CDN}/abc.jpg", True),
            ("https://example.com/photo.PNG", True),
            ("https://ae01.alicdn.com/kf/abc", True),
            ("https://example.com/page.html", False),
            ("ftp://ae01.alicdn.com/kf/abc.jpg", False),
            ("not a url", False),
            ("http://169.254.169.254/latest/meta-data/x.jpg", False),
            ("http://127.0.0.1:6379/a.png", False),
            ("http://localhost/a.jpg", False),
            ("http://10.0.0.8/kf/a.jpg", False),
        ],
    )
    def test_is_valid_image_url(self, url, valid):
        assert is_valid_image_url(url) is valid

    def test_filter_dedupes_after_normalizing(self):
        urls = [
            f"{CDN}/a.jpg_640x640.jpg",
            f"{CDN}/a.jpg",
            "",
            "https://example.com/index.html",
            f"{CDN}/b.png",
        ]
        assert filter_valid_urls(urls) == [f"{CDN}/a.jpg", f"{CDN}/b.png"]

    def test_filter_drops_internal_hosts(self):
        urls = ["http://169.254.169.254/latest/meta-data/x.jpg", "http://127.0.0.1:6379/a.png", f"{CDN}/c.jpg"]
        assert filter_valid_urls(urls) == [f"{CDN}/c.jpg"]


class TestDownloadImage:
    @pytest.mark.asyncio
    async def test_sniffs_dimensions_and_content_type(self):
        body = minimal_jpeg(800, 600)

        def handler(request):
            return httpx.Response(200, content=body, headers={"content-type": "image/jpeg; charset=binary"})

        downloader = make_downloader(handler)
        image = await downloader.download_image(f"{CDN}/a.jpg")
        await downloader.close()

        assert image.size == len(body)
        assert (image.width, image.height) == (800, 600)
        assert image.content_type == "image/jpeg"
        downloader.limiter.wait_turn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_format_has_no_dimensions(self):
        downloader = make_downloader(lambda request: httpx.Response(200, content=b"RIFF....WEBP"))
        image = await downloader.download_image(f"{CDN}/a.webp")
        await downloader.close()
        assert image.width is None and image.height is None

    @pytest.mark.asyncio
    async def test_rejects_non_image_url_without_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        downloader = make_downloader(handler)
        with pytest.raises(ImageDownloadError):
            await downloader.download_image("https://example.com/index.html")
        await downloader.close()
        assert calls == []

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        responses = iter([httpx.Response(503), httpx.Response(200, content=b"x")])
        downloader = make_downloader(lambda request: next(responses))
        image = await downloader.download_image(f"{CDN}/a.jpg")
        await downloader.close()
        assert image.content == b"x"

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        downloader = make_downloader(handler, max_retries=3)
        with pytest.raises(ImageDownloadError) as exc_info:
            await downloader.download_image(f"{CDN}/a.jpg")
        await downloader.close()
        assert exc_info.value.status_code == 404
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_follows_redirect_to_public_host(self):
        def handler(request):
            if request.url.path == "/kf/a.jpg":
                return httpx.Response(302, headers={"location": "https://ae02.alicdn.com/kf/b.jpg"})
            return httpx.Response(200, content=b"moved")

        downloader = make_downloader(handler)
        image = await downloader.download_image(f"{CDN}/a.jpg")
        await downloader.close()
        assert image.content == b"moved"

    @pytest.mark.asyncio
    async def test_redirect_to_internal_host_is_refused(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            if request.url.host == "ae01.alicdn.com":
                return httpx.Response(302, headers={"location": "http://169.254.169.254/latest/meta-data/x.jpg"})
            return httpx.Response(200, content=b"secret")

        downloader = make_downloader(handler, max_retries=3)
        with pytest.raises(InvalidUrlError):
            await downloader.download_image(f"{CDN}/a.jpg")
        await downloader.close()
        assert calls == [f"{CDN}/a.jpg"]


class TestDownloadImages:
    @pytest.mark.asyncio
    async def test_failures_are_skipped(self):
        def handler(request):
            if "bad" in request.url.path:
                return httpx.Response(404)
            return httpx.Response(200, content=request.url.path.encode())

        downloader = make_downloader(handler)
        images = await downloader.download_images([f"{CDN}/valid1.jpg", f"{CDN}/bad.jpg", f"{CDN}/valid2.jpg"])
        await downloader.close()

        assert [image.url for image in images] == [f"{CDN}/valid1.jpg", f"{CDN}/valid2.jpg"]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        downloader = make_downloader(lambda request: httpx.Response(200))
        assert await downloader.download_images([]) == []
        await downloader.close()

    @pytest.mark.asyncio
    async def test_concurrent_batches_share_the_in_flight_ceiling(self):
        in_flight = 0
        peak = 0

        async def handler(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200, content=b"img")

        downloader = make_downloader(handler, max_concurrent=2)
        first = [f"{CDN}/first{n}.jpg" for n in range(5)]
        second = [f"{CDN}/second{n}.jpg" for n in range(5)]
        results = await asyncio.gather(downloader.download_images(first), downloader.download_images(second))
        await downloader.close()

        assert [len(images) for images in results] == [5, 5]
        assert peak == 2


class TestDownloadAsWebp:
    @pytest.mark.asyncio
    async def test_identity_conversion_keeps_original(self):
        body = minimal_jpeg(10, 10)
        downloader = make_downloader(lambda request: httpx.Response(200, content=body, headers={"content-type": "image/jpeg"}))
        image = await downloader.download_as_webp(f"{CDN}/a.jpg")
        await downloader.close()
        assert image.content == body
        assert image.content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_converted_bytes_are_labelled_webp(self):
        downloader = make_downloader(lambda request: httpx.Response(200, content=b"jpeg-bytes"))
        with patch(
            "dropship.services.extraction.image_downloader.convert_to_webp",
            return_value=b"RIFF-webp",
        ):
            image = await downloader.download_as_webp(f"{CDN}/a.jpg")
        await downloader.close()
        assert image.content == b"RIFF-webp"
        assert image.content_type == "image/webp"
        assert image.size == len(b"RIFF-webp")


class TestImageMetadata:
    @pytest.mark.asyncio
    async def test_head_request(self):
        def handler(request):
            assert request.method == "HEAD"
            return httpx.Response(200, headers={"content-type": "image/png", "content-length": "2048"})

        downloader = make_downloader(handler)
        meta = await downloader.get_image_metadata(f"{CDN}/a.png")
        await downloader.close()
        assert meta.content_type == "image/png"
        assert meta.size == 2048

    @pytest.mark.asyncio
    async def test_failure_returns_none(self):
        downloader = make_downloader(lambda request: httpx.Response(500))
        assert await downloader.get_image_metadata(f"{CDN}/a.png") is None
        assert await downloader.get_image_metadata("https://example.com/") is None
        await downloader.close()
