import asyncio
import logging
from typing import Optional

import httpx

from anchor_api.config import settings
from anchor_api.schemas.metadata import FetchOutcome, LinkMetadata
from anchor_api.services.domain import extract_domain
from anchor_api.services.extractor import extract_metadata

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class MetadataService:
    """Fetches a page and turns it into LinkMetadata.

    Never raises for a bad target: HTTP errors, timeouts, network failures
    and unparseable pages all degrade to domain-only metadata.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.metadata_fetch_timeout,
        user_agent: str = settings.user_agent,
        max_body_bytes: int = settings.metadata_max_body_bytes,
    ):
        """
        Args:
            client: HTTP client to use; one is created (and owned) when omitted
            timeout: Seconds for the whole fetch, body download included
            user_agent: User-Agent header sent with every request
            max_body_bytes: HTML bytes read before the rest is ignored
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_body_bytes = max_body_bytes

    async def fetch_metadata(self, url: str) -> LinkMetadata:
        outcome = await self.fetch_metadata_with_final_url(url)
        return outcome.metadata

    async def fetch_metadata_with_final_url(self, url: str) -> FetchOutcome:
        """Fetch ``url`` and report where the redirects ended up.

        Returns:
            FetchOutcome; ``final_url`` is ``url`` itself when there was no
            redirect or the request failed before a response arrived.
        """
        domain = extract_domain(url)
        try:
            # One budget for connect, headers and the body stream.
            return await asyncio.wait_for(self._fetch(url), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Metadata fetch timed out after %.1fs: %s", self.timeout, url)
        except httpx.HTTPError as exc:
            logger.warning("Metadata fetch failed for %s: %s", url, exc)
        except Exception:
            logger.warning("Metadata extraction failed for %s", url, exc_info=True)
        return FetchOutcome(metadata=LinkMetadata.fallback(domain), final_url=url)

    async def _fetch(self, url: str) -> FetchOutcome:
        headers = {"User-Agent": self.user_agent, "Accept": ACCEPT_HEADER}
        async with self.client.stream(
            "GET", url, headers=headers, follow_redirects=True
        ) as response:
            final_url = str(response.url)
            final_domain = extract_domain(final_url)

            if response.status_code != 200:
                logger.info(
                    "HTTP %s for %s, using domain only", response.status_code, final_url
                )
                return FetchOutcome(
                    metadata=LinkMetadata.fallback(final_domain), final_url=final_url
                )

            content_type = response.headers.get("Content-Type", "").lower()
            if content_type and not content_type.startswith(HTML_CONTENT_TYPES):
                logger.info("Not an HTML page (%s): %s", content_type, final_url)
                return FetchOutcome(
                    metadata=LinkMetadata.fallback(final_domain), final_url=final_url
                )

            body = await self._read_body(response)
            charset = response.charset_encoding
            # Without a header charset, BeautifulSoup sniffs <meta charset>.
            html = self._decode(body, charset) if charset else body

        extracted = extract_metadata(html, final_url)
        metadata = LinkMetadata(
            title=extracted.title or final_domain,
            domain=final_domain,
            description=extracted.description,
            thumbnail_url=extracted.thumbnail_url,
        )
        return FetchOutcome(metadata=metadata, final_url=final_url)

    async def _read_body(self, response: httpx.Response) -> bytes:
        chunks: list[bytes] = []
        size = 0
        async for chunk in response.aiter_bytes():
            chunks.append(chunk)
            size += len(chunk)
            if size >= self.max_body_bytes:
                break
        return b"".join(chunks)[: self.max_body_bytes]

    @staticmethod
    def _decode(body: bytes, charset: str) -> str:
        try:
            return body.decode(charset, errors="replace")
        except LookupError:
            return body.decode("utf-8", errors="replace")

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
