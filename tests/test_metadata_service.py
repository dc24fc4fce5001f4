"""Tests for MetadataService against a mocked HTTP transport."""
import asyncio
import time

import httpx
import pytest

ARTICLE_HTML = """
<html><head>
  <title>Plain Title</title>
  <meta property="og:title" content="Article Title">
  <meta property="og:description" content="About the article">
  <meta property="og:image" content="/images/thumb.png">
</head><body></body></html>
"""


def html_response(body: str = ARTICLE_HTML, status: int = 200) -> httpx.Response:
    return httpx.Response(status, html=body)


class TestSuccessfulFetch:
    """Pages that load and carry metadata."""

    async def test_complete_metadata(self, make_service):
        service = make_service(lambda request: html_response())

        outcome = await service.fetch_metadata_with_final_url("https://example.com/post")

        assert outcome.final_url == "https://example.com/post"
        assert outcome.metadata.title == "Article Title"
        assert outcome.metadata.description == "About the article"
        assert outcome.metadata.thumbnail_url == "https://example.com/images/thumb.png"
        assert outcome.metadata.domain == "example.com"
        assert not outcome.metadata.is_fallback

    async def test_fetch_metadata_returns_metadata_only(self, make_service):
        service = make_service(lambda request: html_response())

        metadata = await service.fetch_metadata("https://www.example.com/post")

        assert metadata.title == "Article Title"
        assert metadata.domain == "example.com"

    async def test_request_headers(self, make_service):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return html_response()

        service = make_service(handler, user_agent="TestBot/1.0")
        await service.fetch_metadata("https://example.com")

        assert seen["user-agent"] == "TestBot/1.0"
        assert "text/html" in seen["accept"]

    async def test_page_without_title_falls_back_to_domain(self, make_service):
        service = make_service(lambda request: html_response("<html><body><p>x</p></body></html>"))

        metadata = await service.fetch_metadata("https://example.com/empty")

        assert metadata.title == "example.com"
        assert metadata.is_fallback

    async def test_response_charset_is_honoured(self, make_service):
        body = "<html><head><title>Café</title></head></html>".encode("iso-8859-1")
        service = make_service(
            lambda request: httpx.Response(
                200,
                content=body,
                headers={"Content-Type": "text/html; charset=iso-8859-1"},
            )
        )

        metadata = await service.fetch_metadata("https://example.com")

        assert metadata.title == "Café"

    async def test_unknown_charset_decodes_as_utf8(self, make_service):
        service = make_service(
            lambda request: httpx.Response(
                200,
                content=b"<title>Fine</title>",
                headers={"Content-Type": "text/html; charset=no-such-charset"},
            )
        )

        metadata = await service.fetch_metadata("https://example.com")

        assert metadata.title == "Fine"

    async def test_meta_charset_is_used_without_header_charset(self, make_service):
        body = (
            '<html><head><meta charset="windows-1251">'
            "<title>Привет</title></head></html>"
        ).encode("windows-1251")
        service = make_service(
            lambda request: httpx.Response(
                200, content=body, headers={"Content-Type": "text/html"}
            )
        )

        metadata = await service.fetch_metadata("https://example.ru")

        assert metadata.title == "Привет"

    async def test_body_is_read_only_up_to_the_limit(self, make_service):
        body = "<title>Early</title>" + " " * 200 + '<meta property="og:title" content="Late">'
        service = make_service(lambda request: html_response(body), max_body_bytes=64)

        metadata = await service.fetch_metadata("https://example.com")

        assert metadata.title == "Early"

    async def test_non_html_content_uses_domain(self, make_service):
        service = make_service(
            lambda request: httpx.Response(
                200, content=b"%PDF-1.7", headers={"Content-Type": "application/pdf"}
            )
        )

        outcome = await service.fetch_metadata_with_final_url("https://example.com/a.pdf")

        assert outcome.metadata.is_fallback
        assert outcome.final_url == "https://example.com/a.pdf"


class TestRedirects:
    """Metadata follows the page the redirects land on."""

    @staticmethod
    def shortener(request: httpx.Request) -> httpx.Response:
        if request.url.host == "bit.ly":
            return httpx.Response(301, headers={"Location": "https://www.apple.com/iphone"})
        return html_response(
            '<html><head><meta property="og:title" content="iPhone">'
            '<meta property="og:image" content="/hero.jpg"></head></html>'
        )

    async def test_domain_and_final_url_are_the_destination(self, make_service):
        service = make_service(self.shortener)

        outcome = await service.fetch_metadata_with_final_url("https://bit.ly/abc123")

        assert outcome.final_url == "https://www.apple.com/iphone"
        assert outcome.metadata.domain == "apple.com"
        assert outcome.metadata.title == "iPhone"
        assert outcome.metadata.thumbnail_url == "https://www.apple.com/hero.jpg"

    async def test_error_after_redirect_uses_destination_domain(self, make_service):
        def handler(request):
            if request.url.host == "short.example":
                return httpx.Response(302, headers={"Location": "https://gone.example.org/x"})
            return httpx.Response(404)

        service = make_service(handler)

        outcome = await service.fetch_metadata_with_final_url("https://short.example/x")

        assert outcome.final_url == "https://gone.example.org/x"
        assert outcome.metadata == outcome.metadata.fallback("gone.example.org")


class TestFailures:
    """Every failure degrades to domain-only metadata instead of raising."""

    @pytest.mark.parametrize("status", [403, 404, 500])
    async def test_http_error_status(self, make_service, status):
        service = make_service(lambda request: html_response(status=status))

        outcome = await service.fetch_metadata_with_final_url("https://www.example.com/missing")

        assert outcome.metadata.title == "example.com"
        assert outcome.metadata.domain == "example.com"
        assert outcome.metadata.description is None
        assert outcome.metadata.thumbnail_url is None
        assert outcome.final_url == "https://www.example.com/missing"

    async def test_connection_refused(self, make_service):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        service = make_service(handler)

        outcome = await service.fetch_metadata_with_final_url("https://example.com/")

        assert outcome.metadata.is_fallback
        assert outcome.metadata.domain == "example.com"
        assert outcome.final_url == "https://example.com/"

    async def test_unexpected_error_is_contained(self, make_service):
        def handler(request):
            raise RuntimeError("transport exploded")

        service = make_service(handler)

        metadata = await service.fetch_metadata("https://example.com/")

        assert metadata.is_fallback

    async def test_stalled_body_times_out(self, make_service):
        async def stalled_body():
            yield b"<html><head><title>Never finished"
            await asyncio.sleep(3600)
            yield b"</title></head></html>"

        service = make_service(
            lambda request: httpx.Response(
                200, content=stalled_body(), headers={"Content-Type": "text/html"}
            ),
            timeout=0.2,
        )

        started = time.monotonic()
        outcome = await service.fetch_metadata_with_final_url("https://slow.example.com/")
        elapsed = time.monotonic() - started

        assert elapsed < 2
        assert outcome.metadata.is_fallback
        assert outcome.metadata.domain == "slow.example.com"
        assert outcome.final_url == "https://slow.example.com/"

    async def test_stalled_headers_time_out(self, make_service):
        async def handler(request):
            await asyncio.sleep(3600)
            return html_response()

        service = make_service(handler, timeout=0.2)

        started = time.monotonic()
        metadata = await service.fetch_metadata("https://slow.example.com/")

        assert time.monotonic() - started < 2
        assert metadata.is_fallback


class TestOwnership:
    """Client lifetime."""

    async def test_owned_client_is_closed(self):
        from anchor_api.services import MetadataService

        service = MetadataService()
        await service.aclose()

        assert service.client.is_closed

    async def test_injected_client_is_left_open(self, make_service):
        service = make_service(lambda request: html_response())
        await service.aclose()

        assert not service.client.is_closed
