from typing import Optional

from wedding_news.schemas import AppBaseModel


class ExtractedContent(AppBaseModel):
    """Readable representation of an article page."""

    title: str
    content: str
    excerpt: Optional[str] = None
    byline: Optional[str] = None
    site_name: Optional[str] = None
