import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from wedding_news.errors import FetchError, ParseError
from wedding_news.models.article import NewsArticle
from wedding_news.schemas.article import ArticleUpsert
from wedding_news.services.content_extractor import ContentExtractor
from wedding_news.services.image_resolver import ImageResolver

logger = logging.getLogger(__name__)


def content_is_stale(
    fetched_at: Optional[datetime], staleness: timedelta, now: datetime
) -> bool:
    """True when content was never fetched or the last attempt is outside the window."""
    return fetched_at is None or fetched_at <= now - staleness


async def upsert_article(session: AsyncSession, data: ArticleUpsert) -> NewsArticle:
    """Insert or fully replace the article with the same link.

    A single INSERT ... ON CONFLICT statement, so concurrent writers to one
    link never produce duplicates; the last writer wins.
    """
    values = data.model_dump()
    stmt = insert(NewsArticle).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[NewsArticle.link],
        set_={key: stmt.excluded[key] for key in values if key != "link"},
    ).returning(NewsArticle)
    result = await session.scalars(
        stmt, execution_options={"populate_existing": True}
    )
    return result.one()


async def list_page(
    session: AsyncSession,
    offset: int = 0,
    limit: int = 10,
    title_filter: Optional[str] = None,
    include_archived: bool = False,
) -> tuple[list[NewsArticle], bool, int]:
    """Return (items, has_more, total).

    Articles with an image come first, then newest first.
    """
    query = select(NewsArticle)
    if not include_archived:
        query = query.where(NewsArticle.is_archived.is_(False))
    if title_filter:
        escaped = (
            title_filter.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        query = query.where(NewsArticle.title.ilike(f"%{escaped}%", escape="\\"))

    count_result = await session.execute(
        select(func.count()).select_from(query.subquery())
    )
    total = count_result.scalar_one()

    query = query.order_by(
        NewsArticle.image.is_(None),
        NewsArticle.created_at.desc(),
        NewsArticle.published.desc(),
        NewsArticle.id,
    )
    result = await session.execute(query.offset(offset).limit(limit))
    articles = list(result.scalars().all())

    return articles, offset + len(articles) < total, total


async def get_article_by_link(session: AsyncSession, link: str) -> NewsArticle | None:
    result = await session.execute(select(NewsArticle).where(NewsArticle.link == link))
    return result.scalar_one_or_none()


async def get_article_by_id(
    session: AsyncSession, article_id: uuid.UUID
) -> NewsArticle | None:
    result = await session.execute(
        select(NewsArticle).where(NewsArticle.id == article_id)
    )
    return result.scalar_one_or_none()


async def _claim_content_fetch(
    session: AsyncSession, article: NewsArticle, staleness: timedelta, now: datetime
) -> bool:
    # Concurrent readers of the same row serialize on this UPDATE; only the
    # first one inside the window gets a row back.
    result = await session.execute(
        update(NewsArticle)
        .where(
            NewsArticle.id == article.id,
            or_(
                NewsArticle.content_fetched_at.is_(None),
                NewsArticle.content_fetched_at <= now - staleness,
            ),
        )
        .values(content_fetched_at=now)
        .returning(NewsArticle.id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none() is not None


async def get_article_with_content(
    session: AsyncSession,
    link: str,
    extractor: ContentExtractor,
    resolver: ImageResolver,
    staleness: timedelta,
    now: Optional[datetime] = None,
) -> NewsArticle | None:
    """Read an article, backfilling missing content at most once per window.

    The fetch attempt is recorded even when it fails, so a broken source is
    not re-fetched on every read.
    """
    article = await get_article_by_link(session, link)
    if article is None or article.content:
        return article

    if now is None:
        now = datetime.now(timezone.utc)
    if not content_is_stale(article.content_fetched_at, staleness, now):
        return article
    if not await _claim_content_fetch(session, article, staleness, now):
        await session.refresh(article)
        return article
    article.content_fetched_at = now

    try:
        html = await extractor.fetch(link)
    except FetchError as exc:
        logger.warning("Content backfill fetch failed for %s: %s", link, exc)
        await session.flush()
        return article

    content = None
    try:
        extracted = await asyncio.to_thread(extractor.extract, html, link)
        content = extracted.content
    except ParseError as exc:
        logger.warning("Content backfill found no article body in %s: %s", link, exc)
    article.content = content

    if article.image is None:
        article.image = await asyncio.to_thread(
            resolver.resolve, [], content=content, page=html, base_url=link
        )

    await session.flush()
    return article


async def archive_article(session: AsyncSession, article: NewsArticle) -> NewsArticle:
    article.is_archived = True
    await session.flush()
    return article
