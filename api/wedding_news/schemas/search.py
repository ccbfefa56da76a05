import enum
from typing import Any, Optional

from pydantic import Field

from wedding_news.schemas import AppBaseModel
from wedding_news.schemas.article import MAX_LINK_LENGTH


class ImageField(str, enum.Enum):
    """Image hint fields a search result may carry, most trusted first."""

    ORIGINAL = "original"
    SOURCE = "source"
    LARGE = "large"
    THUMBNAIL = "thumbnail"


# Top-level provider keys that carry image hints. The provider's own
# "source" key is the publisher, so the source-tier hint uses another name.
_TOP_LEVEL_IMAGE_KEYS: tuple[tuple[str, ImageField], ...] = (
    ("original", ImageField.ORIGINAL),
    ("original_image", ImageField.ORIGINAL),
    ("source_image", ImageField.SOURCE),
    ("large", ImageField.LARGE),
    ("large_image", ImageField.LARGE),
    ("thumbnail", ImageField.THUMBNAIL),
    ("thumbnail_small", ImageField.THUMBNAIL),
)

# Keys inside a nested "image"/"images" object.
_NESTED_IMAGE_KEYS: tuple[tuple[str, ImageField], ...] = (
    ("original", ImageField.ORIGINAL),
    ("source", ImageField.SOURCE),
    ("large", ImageField.LARGE),
    ("thumbnail", ImageField.THUMBNAIL),
)


class RawSearchResult(AppBaseModel):
    """Unprocessed news-search result."""

    title: str = Field(..., min_length=1)
    link: str = Field(..., min_length=1)
    snippet: Optional[str] = None
    source: Optional[str] = None
    published: Optional[str] = None
    images: dict[ImageField, str] = Field(default_factory=dict)

    @classmethod
    def from_provider(cls, payload: dict[str, Any]) -> Optional["RawSearchResult"]:
        """Build from one provider news result.

        None when title or link is missing, or the link is too long to store.
        """
        title = _text(payload.get("title"))
        link = _text(payload.get("link"))
        if not title or not link or len(link) > MAX_LINK_LENGTH:
            return None

        source = payload.get("source")
        if isinstance(source, dict):
            source = source.get("name")

        return cls(
            title=title,
            link=link,
            snippet=_text(payload.get("snippet")),
            source=_text(source),
            published=_text(payload.get("date")),
            images=_image_hints(payload),
        )


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _image_hints(payload: dict[str, Any]) -> dict[ImageField, str]:
    hints: dict[ImageField, str] = {}
    for key, field in _TOP_LEVEL_IMAGE_KEYS:
        url = _text(payload.get(key))
        if url:
            hints.setdefault(field, url)

    for nested_key in ("image", "images"):
        nested = payload.get(nested_key)
        if isinstance(nested, str):
            url = _text(nested)
            if url:
                hints.setdefault(ImageField.SOURCE, url)
        elif isinstance(nested, dict):
            for key, field in _NESTED_IMAGE_KEYS:
                url = _text(nested.get(key))
                if url:
                    hints.setdefault(field, url)
    return hints
