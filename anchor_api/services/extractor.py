"""Metadata extraction from fetched HTML.

Sources are consulted in the order social crawlers use them: Open Graph,
then Twitter Card, then plain HTML (``<title>``, ``<meta name="description">``).
JSON-LD structured data and the first ``<h1>`` are last-resort sources for
pages that carry none of those.
"""
import json
import logging
import re
from collections.abc import Iterator
from typing import Any, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from anchor_api.schemas.metadata import ExtractedMetadata

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_JSON_LD_MIME = re.compile(r"application/ld\+json", re.IGNORECASE)

_JSON_LD_TYPES = {
    "VideoObject",
    "Article",
    "NewsArticle",
    "BlogPosting",
    "WebPage",
    "Product",
    "Organization",
    "WebSite",
}


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = _WHITESPACE.sub(" ", value).strip()
    return text or None


def _collect_meta(soup: BeautifulSoup) -> dict[str, str]:
    """Map lower-cased ``property``/``name`` keys to their first non-empty content."""
    found: dict[str, str] = {}
    for tag in soup.find_all("meta"):
        content = _clean(tag.get("content"))
        if content is None:
            continue
        for attr in ("property", "name"):
            key = tag.get(attr)
            if isinstance(key, str):
                found.setdefault(key.strip().lower(), content)
    return found


def _first(meta: dict[str, str], *keys: str) -> Optional[str]:
    for key in keys:
        if key in meta:
            return meta[key]
    return None


def _iter_json_ld_objects(data: Any) -> Iterator[dict[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _iter_json_ld_objects(item)
    elif isinstance(data, dict):
        yield data
        graph = data.get("@graph")
        if isinstance(graph, list):
            yield from _iter_json_ld_objects(graph)


def _json_ld_types(obj: dict[str, Any]) -> set[str]:
    value = obj.get("@type")
    if isinstance(value, str):
        return {value}
    if isinstance(value, list):
        return {item for item in value if isinstance(item, str)}
    return set()


def _json_ld_image(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("url")
    return _clean(value)


def _extract_json_ld(soup: BeautifulSoup) -> ExtractedMetadata:
    title = description = image = None

    for script in soup.find_all("script", attrs={"type": _JSON_LD_MIME}):
        raw = script.string or script.get_text()
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.debug("Skipping malformed JSON-LD block: %s", exc)
            continue

        for obj in _iter_json_ld_objects(data):
            if not _json_ld_types(obj) & _JSON_LD_TYPES:
                continue
            title = title or _clean(obj.get("headline")) or _clean(obj.get("name"))
            description = description or _clean(obj.get("description"))
            image = (
                image
                or _json_ld_image(obj.get("image"))
                or _json_ld_image(obj.get("thumbnailUrl"))
                or _json_ld_image(obj.get("logo"))
            )

    return ExtractedMetadata(title=title, description=description, thumbnail_url=image)


def make_absolute_url(url: str, base_url: str) -> str:
    """Resolve a possibly relative image URL against the page it came from."""
    if url.lower().startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        scheme = urlsplit(base_url).scheme or "https"
        return f"{scheme}:{url}"
    return urljoin(base_url, url)


def extract_metadata(html: str | bytes, base_url: str) -> ExtractedMetadata:
    """Pull title, description and thumbnail out of an HTML document.

    Args:
        html: Raw page markup. Entities are decoded by the parser. Bytes
            are decoded by BeautifulSoup using any `<meta charset>`.
        base_url: URL the page was served from, used to absolutize
            relative thumbnail URLs.

    Returns:
        ExtractedMetadata with ``None`` for anything the page lacks.
    """
    soup = BeautifulSoup(html, "html.parser")
    meta = _collect_meta(soup)
    json_ld = _extract_json_ld(soup)

    title_tag = soup.find("title")
    h1_tag = soup.find("h1")

    title = (
        _first(meta, "og:title", "twitter:title")
        or (_clean(title_tag.get_text()) if title_tag else None)
        or json_ld.title
        or (_clean(h1_tag.get_text()) if h1_tag else None)
    )
    description = (
        _first(meta, "og:description", "twitter:description", "description")
        or json_ld.description
    )

    thumbnail = _first(meta, "og:image", "twitter:image") or json_ld.thumbnail_url
    if thumbnail is not None:
        try:
            thumbnail = make_absolute_url(thumbnail, base_url)
        except ValueError:
            logger.debug("Dropping unresolvable thumbnail %r on %s", thumbnail, base_url)
            thumbnail = None

    return ExtractedMetadata(title=title, description=description, thumbnail_url=thumbnail)
