from typing import Optional

from pydantic import Field, HttpUrl

from wedding_news.schemas import AppBaseModel
from wedding_news.schemas.article import ArticleListItem


class IngestRequest(AppBaseModel):
    """POST /ingest request body. Omitted fields fall back to settings."""

    query: Optional[str] = Field(None, min_length=1, max_length=200)
    num_results: Optional[int] = Field(None, ge=1, le=100)
    target_count: Optional[int] = Field(None, ge=1, le=100)


class IngestResponse(AppBaseModel):
    """POST /ingest response: the imaged articles of this run, in search order."""

    items: list[ArticleListItem]
    count: int


class IngestUrlRequest(AppBaseModel):
    """POST /ingest/url request body."""

    url: HttpUrl


class IngestPreview(AppBaseModel):
    """POST /ingest/url response (extraction result, not stored)."""

    title: str
    content: str
    excerpt: Optional[str] = None
    byline: Optional[str] = None
    site_name: Optional[str] = None
    image: Optional[str] = None
