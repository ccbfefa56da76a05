"""Pick the single best representative image for an article.

Candidates come from the search result's image hints and from scanning the
article HTML. A fixed precedence table decides between them:

    1. ORIGINAL hint, as-is
    2. SOURCE / LARGE hint, size parameters upgraded
    3. embedded <img> in the extracted content (likely-featured first)
    4. THUMBNAIL hint
    5. og:image / twitter:image meta tag of the full page

Every candidate passes the validation gate first. Failing URLs are skipped,
never repaired. "No image" is a normal outcome and returns None.
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import lxml.html
from lxml import etree

from wedding_news.errors import ImageValidationError
from wedding_news.schemas.search import ImageField

logger = logging.getLogger(__name__)

LARGE_IMAGE_SIZE = 1600
MIN_FEATURED_DIMENSION = 300
# Below the stored column limit, leaving room for the size upgrades
MAX_IMAGE_URL_LENGTH = 2048

REJECT_MARKERS = ("icon", "logo", "avatar", "badge")
PLACEHOLDER_MARKERS = ("placeholder", "blank.gif", "spacer.gif", "pixel.gif")
_ONE_BY_ONE_RE = re.compile(r"(?<!\d)1x1(?!\d)")

# Hosts that accept a trailing "=s<N>" / "=w<N>-h<N>" size directive.
SIZE_DIRECTIVE_HOSTS = (
    "googleusercontent.com",
    "ggpht.com",
    "bp.blogspot.com",
)
_SIZE_DIRECTIVE_RE = re.compile(r"=(?:[swh]\d+)(?:-[a-z0-9]+)*$", re.IGNORECASE)
_WP_SIZE_SUFFIX_RE = re.compile(
    r"-\d{2,4}x\d{2,4}(?=\.(?:jpe?g|png|webp|gif)$)", re.IGNORECASE
)
_WIDTH_PARAMS = ("w", "width")
_DROPPED_SIZE_PARAMS = ("h", "height", "resize", "fit")

_LAZY_SRC_ATTRIBUTES = ("src", "data-src", "data-lazy-src", "data-original")
_META_IMAGE_KEYS = ("og:image", "og:image:url", "og:image:secure_url", "twitter:image")


class ImageTier(str, enum.Enum):
    ORIGINAL = "original"
    SOURCE = "source"
    LARGE = "large"
    EMBEDDED = "embedded"
    THUMBNAIL = "thumbnail"
    OPEN_GRAPH = "open_graph"


_HINT_TIERS = {
    ImageField.ORIGINAL: ImageTier.ORIGINAL,
    ImageField.SOURCE: ImageTier.SOURCE,
    ImageField.LARGE: ImageTier.LARGE,
    ImageField.THUMBNAIL: ImageTier.THUMBNAIL,
}


@dataclass(frozen=True)
class ImageCandidate:
    url: str
    tier: ImageTier
    width: Optional[int] = None
    height: Optional[int] = None
    css_class: str = ""

    @property
    def min_dimension(self) -> Optional[int]:
        if self.width is None or self.height is None:
            return None
        return min(self.width, self.height)


def candidates_from_hints(hints: dict[ImageField, str]) -> list[ImageCandidate]:
    """Turn a search result's image hints into tiered candidates."""
    return [
        ImageCandidate(url=url, tier=_HINT_TIERS[field])
        for field, url in hints.items()
        if field in _HINT_TIERS
    ]


def validate_image_url(url: Optional[str]) -> str:
    """Return the stripped URL if it passes the gate.

    Raises:
        ImageValidationError: not absolute http(s), a data URI, "undefined",
            a known placeholder, or longer than MAX_IMAGE_URL_LENGTH.
    """
    if not url or not url.strip():
        raise ImageValidationError("empty image URL")
    url = url.strip()
    if len(url) > MAX_IMAGE_URL_LENGTH:
        raise ImageValidationError(f"URL longer than {MAX_IMAGE_URL_LENGTH} characters")
    lowered = url.lower()
    if "data:" in lowered:
        raise ImageValidationError("data URI")
    parsed = urlsplit(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ImageValidationError(f"not an absolute http(s) URL: {url[:100]}")
    if "undefined" in lowered:
        raise ImageValidationError("URL contains 'undefined'")
    if any(marker in lowered for marker in PLACEHOLDER_MARKERS) or _ONE_BY_ONE_RE.search(
        lowered
    ):
        raise ImageValidationError(f"placeholder image: {url[:100]}")
    return url


def is_valid_image_url(url: Optional[str]) -> bool:
    try:
        validate_image_url(url)
    except ImageValidationError:
        return False
    return True


def _has_size_directive_host(hostname: str) -> bool:
    return any(
        hostname == host or hostname.endswith("." + host) for host in SIZE_DIRECTIVE_HOSTS
    )


def upgrade_host_directive(url: str, size: int = LARGE_IMAGE_SIZE) -> str:
    """Rewrite a trailing size directive on known image hosts to a large rendition."""
    parts = urlsplit(url)
    if not _has_size_directive_host((parts.hostname or "").lower()):
        return url
    path, count = _SIZE_DIRECTIVE_RE.subn(f"=s{size}", parts.path)
    if count == 0:
        return url
    return urlunsplit(parts._replace(path=path))


def upgrade_size_params(url: str, size: int = LARGE_IMAGE_SIZE) -> str:
    """Request a large rendition from size-parameterized image URLs.

    Handles width query parameters (height/resize are dropped so the aspect
    ratio is kept), WordPress "-150x150.jpg" thumbnails and host size
    directives.
    """
    url = upgrade_host_directive(url, size)
    parts = urlsplit(url)

    path = _WP_SIZE_SUFFIX_RE.sub("", parts.path)

    query = parts.query
    params = parse_qsl(query, keep_blank_values=True)
    keys = {key.lower() for key, _ in params}
    if keys & set(_WIDTH_PARAMS + ("resize",)):
        rewritten = []
        for key, value in params:
            lowered = key.lower()
            if lowered in _DROPPED_SIZE_PARAMS:
                continue
            if lowered in _WIDTH_PARAMS and value.isdigit():
                value = str(size)
            rewritten.append((key, value))
        query = urlencode(rewritten)

    return urlunsplit(parts._replace(path=path, query=query))


def _parse_dimension(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    value = value.strip().lower().removesuffix("px")
    if not value.isdigit():
        return None
    return int(value)


def _parse_html(html: Optional[str]):
    if not html or not html.strip():
        return None
    try:
        return lxml.html.fromstring(html)
    except (etree.ParserError, ValueError):
        return None


def scan_embedded_images(html: Optional[str], base_url: Optional[str] = None) -> list[ImageCandidate]:
    """Collect <img> elements as candidates, in document order.

    Icon/logo/avatar/badge images are dropped here. Relative sources are
    resolved against base_url.
    """
    root = _parse_html(html)
    if root is None:
        return []

    candidates = []
    for img in root.iter("img"):
        css_class = (img.get("class") or "").lower()
        if any(marker in css_class for marker in REJECT_MARKERS):
            continue
        for attribute in _LAZY_SRC_ATTRIBUTES:
            src = (img.get(attribute) or "").strip()
            if not src:
                continue
            if base_url and not src.lower().startswith("data:"):
                src = urljoin(base_url, src)
            if not is_valid_image_url(src):
                continue
            if any(marker in src.lower() for marker in REJECT_MARKERS):
                break
            candidates.append(
                ImageCandidate(
                    url=src,
                    tier=ImageTier.EMBEDDED,
                    width=_parse_dimension(img.get("width")),
                    height=_parse_dimension(img.get("height")),
                    css_class=css_class,
                )
            )
            break
    return candidates


def find_open_graph_image(html: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    root = _parse_html(html)
    if root is None:
        return None

    found: dict[str, str] = {}
    for meta in root.iter("meta"):
        key = (meta.get("property") or meta.get("name") or "").strip().lower()
        content = (meta.get("content") or "").strip()
        if key in _META_IMAGE_KEYS and content and key not in found:
            found[key] = urljoin(base_url, content) if base_url else content

    for key in _META_IMAGE_KEYS:
        if key in found:
            return found[key]
    return None


class ImageResolver:
    def __init__(
        self,
        min_featured_dimension: int = MIN_FEATURED_DIMENSION,
        large_size: int = LARGE_IMAGE_SIZE,
    ):
        self.min_featured_dimension = min_featured_dimension
        self.large_size = large_size

    def resolve(
        self,
        candidates: Iterable[ImageCandidate],
        content: Optional[str] = None,
        page: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> Optional[str]:
        """Return the best image URL, or None when nothing passes validation.

        Args:
            candidates: tiered candidates, usually from candidates_from_hints().
            content: extracted article HTML, scanned for embedded images.
            page: full fetched document; scanned for embedded images when
                there is no content, and for the og:image fallback.
            base_url: page URL for resolving relative image sources.
        """
        by_tier: dict[ImageTier, list[ImageCandidate]] = {}
        for candidate in candidates:
            by_tier.setdefault(candidate.tier, []).append(candidate)

        url = self._first_valid(by_tier.get(ImageTier.ORIGINAL, []))
        if url:
            return self._finish(url, ImageTier.ORIGINAL)

        higher = by_tier.get(ImageTier.SOURCE, []) + by_tier.get(ImageTier.LARGE, [])
        url = self._first_valid(higher)
        if url:
            return self._finish(upgrade_size_params(url, self.large_size), ImageTier.SOURCE)

        embedded = by_tier.get(ImageTier.EMBEDDED, []) + scan_embedded_images(
            content if content else page, base_url
        )
        url = self._pick_embedded(embedded)
        if url:
            return self._finish(url, ImageTier.EMBEDDED)

        url = self._first_valid(by_tier.get(ImageTier.THUMBNAIL, []))
        if url:
            return self._finish(url, ImageTier.THUMBNAIL)

        og_candidates = list(by_tier.get(ImageTier.OPEN_GRAPH, []))
        og_url = find_open_graph_image(page, base_url)
        if og_url:
            og_candidates.append(ImageCandidate(url=og_url, tier=ImageTier.OPEN_GRAPH))
        url = self._first_valid(og_candidates)
        if url:
            return self._finish(url, ImageTier.OPEN_GRAPH)

        return None

    def _first_valid(self, candidates: list[ImageCandidate]) -> Optional[str]:
        for candidate in candidates:
            try:
                return validate_image_url(candidate.url)
            except ImageValidationError as exc:
                logger.debug("Skipping %s image candidate: %s", candidate.tier.value, exc)
        return None

    def _pick_embedded(self, candidates: list[ImageCandidate]) -> Optional[str]:
        usable = [
            c
            for c in candidates
            if is_valid_image_url(c.url)
            and not any(
                marker in c.url.lower() or marker in c.css_class
                for marker in REJECT_MARKERS
            )
        ]
        for candidate in usable:
            dimension = candidate.min_dimension
            if dimension is not None and dimension > self.min_featured_dimension:
                return candidate.url.strip()
        if usable:
            return usable[0].url.strip()
        return None

    def _finish(self, url: str, tier: ImageTier) -> str:
        logger.debug("Resolved %s image %s", tier.value, url)
        return upgrade_host_directive(url, self.large_size)
