"""Readable article extraction.

Boilerplate is stripped with lxml, the main region is chosen by
readability-lxml's text/link density scoring, and byline/site name come
from trafilatura's metadata extraction.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlparse

import lxml.html
from lxml import etree
from readability import Document
from readability.readability import Unparseable
from trafilatura.metadata import extract_metadata

from wedding_news.errors import ParseError
from wedding_news.schemas.content import ExtractedContent
from wedding_news.services.page_fetcher import fetch_page

logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 250
EXCERPT_LENGTH = 200

BOILERPLATE_TAGS = ("script", "style", "noscript", "nav", "footer", "aside", "form", "iframe")
BOILERPLATE_MARKERS = (
    "ad",
    "ads",
    "advert",
    "advertisement",
    "sponsor",
    "sponsored",
    "promo",
    "share",
    "social",
    "newsletter",
    "cookie",
    "related",
)


def _is_boilerplate(element) -> bool:
    attributes = f"{element.get('class') or ''} {element.get('id') or ''}"
    tokens = attributes.lower().replace("_", "-").split()
    return any(
        token == marker or token.startswith(marker + "-")
        for token in tokens
        for marker in BOILERPLATE_MARKERS
    )


def _strip_boilerplate(html: str) -> str:
    try:
        root = lxml.html.document_fromstring(html)
    except (etree.ParserError, ValueError) as exc:
        raise ParseError(f"Unparseable HTML: {exc}") from exc

    for element in list(root.iter(*BOILERPLATE_TAGS)):
        element.drop_tree()

    for element in list(root.iter()):
        if not isinstance(element.tag, str) or element.tag in ("html", "body"):
            continue
        if _is_boilerplate(element) and element.getparent() is not None:
            element.drop_tree()

    return lxml.html.tostring(root, encoding="unicode")


def _plain_text(fragment: str) -> str:
    try:
        text = lxml.html.fromstring(fragment).text_content()
    except (etree.ParserError, ValueError):
        return ""
    return " ".join(text.split())


def _site_name_from_url(url: str) -> Optional[str]:
    hostname = urlparse(url).hostname
    if not hostname:
        return None
    return hostname.removeprefix("www.")


class ContentExtractor:
    def __init__(self, fetch_timeout: float = 10.0, min_content_length: int = MIN_CONTENT_LENGTH):
        self.fetch_timeout = fetch_timeout
        self.min_content_length = min_content_length

    def extract(self, html: str, source_url: str) -> ExtractedContent:
        """Produce title, content HTML, excerpt, byline and site name.

        Raises:
            ParseError: empty/unparseable HTML, or the best content region
                holds fewer than min_content_length characters of text.
        """
        if not html or not html.strip():
            raise ParseError(f"Empty document for {source_url}")

        cleaned = _strip_boilerplate(html)
        try:
            document = Document(cleaned, url=source_url)
            content = document.summary(html_partial=True)
            title = document.short_title()
        except Unparseable as exc:
            raise ParseError(f"Readability failed for {source_url}: {exc}") from exc

        text = _plain_text(content)
        if len(text) < self.min_content_length:
            raise ParseError(
                f"No confident content region in {source_url} ({len(text)} chars)"
            )

        logger.debug("Extracted %d characters from %s", len(text), source_url)
        metadata = extract_metadata(html, default_url=source_url)
        byline = getattr(metadata, "author", None) if metadata else None
        site_name = getattr(metadata, "sitename", None) if metadata else None
        description = getattr(metadata, "description", None) if metadata else None
        if not title and metadata is not None:
            title = getattr(metadata, "title", None)

        return ExtractedContent(
            title=title or site_name or source_url,
            content=content,
            excerpt=description or text[:EXCERPT_LENGTH],
            byline=byline or None,
            site_name=site_name or _site_name_from_url(source_url),
        )

    async def fetch(self, url: str) -> str:
        """Fetch the page HTML without blocking the event loop. Raises FetchError."""
        return await asyncio.to_thread(fetch_page, url, self.fetch_timeout)

    async def fetch_and_extract(self, url: str) -> tuple[str, ExtractedContent]:
        """One network fetch of url, then extraction.

        Raises:
            FetchError: the page could not be fetched.
            ParseError: the page had no recognizable main content.
        """
        html = await self.fetch(url)
        return html, await asyncio.to_thread(self.extract, html, url)
