import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from wedding_news.schemas import AppBaseModel

MAX_LINK_LENGTH = 2083
MAX_SOURCE_LENGTH = 200


class ArticleUpsert(AppBaseModel):
    """Full replacement row for an article, keyed by link.

    Every mutable column is written on conflict, so callers holding only a
    refreshed field must start from the stored record.
    """

    link: str = Field(..., min_length=1, max_length=MAX_LINK_LENGTH)
    title: str = Field(..., min_length=1)
    snippet: Optional[str] = None
    source: Optional[str] = Field(None, max_length=MAX_SOURCE_LENGTH)
    published: datetime
    image: Optional[str] = Field(None, max_length=MAX_LINK_LENGTH)
    content: Optional[str] = None
    content_fetched_at: Optional[datetime] = None
    is_archived: bool = False

    @field_validator("source", mode="before")
    @classmethod
    def clip_source(cls, value):
        # Publisher names are display text; a long one is cut, not rejected
        if isinstance(value, str):
            return value[:MAX_SOURCE_LENGTH]
        return value


class ArticleListItem(AppBaseModel):
    """GET /articles response item (no content body)."""

    id: uuid.UUID
    title: str
    link: str
    snippet: Optional[str] = None
    source: Optional[str] = None
    published: datetime
    image: Optional[str] = None
    created_at: datetime


class ArticleDetail(ArticleListItem):
    """GET /articles/{id} and /articles/by-link response."""

    content: Optional[str] = None
    is_archived: bool


class ArticlePage(AppBaseModel):
    """GET /articles offset-paginated response."""

    items: list[ArticleListItem]
    total: int
    offset: int
    limit: int
    has_more: bool
