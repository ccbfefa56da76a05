"""Search → fetch → extract → resolve image → upsert.

Each search result is enriched independently under a concurrency cap. A
failure on one article is logged and never aborts the batch; only the
search itself (ConfigError / ProviderError) can fail a run.

Articles are always stored, but only the ones with a resolved image are
returned from a run.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wedding_news.config import Settings
from wedding_news.errors import FetchError, ParseError
from wedding_news.models.article import NewsArticle
from wedding_news.schemas.article import ArticleUpsert
from wedding_news.schemas.content import ExtractedContent
from wedding_news.schemas.ingest import IngestPreview
from wedding_news.schemas.search import RawSearchResult
from wedding_news.services.article_service import (
    content_is_stale,
    get_article_by_link,
    upsert_article,
)
from wedding_news.services.content_extractor import ContentExtractor
from wedding_news.services.image_resolver import ImageResolver, candidates_from_hints
from wedding_news.services.published_time import normalize_published
from wedding_news.services.search_client import SearchClient

logger = logging.getLogger(__name__)


async def extract_article(
    url: str, extractor: ContentExtractor, resolver: ImageResolver
) -> IngestPreview:
    """Fetch and extract one URL without storing it.

    Raises:
        UnsafeURLError: URL points to a private or reserved address.
        FetchError: page could not be fetched.
        ParseError: page has no recognizable article body.
    """
    html, extracted = await extractor.fetch_and_extract(url)
    image = await asyncio.to_thread(
        resolver.resolve, [], content=extracted.content, page=html, base_url=url
    )
    return IngestPreview(**extracted.model_dump(), image=image)


class IngestionOrchestrator:
    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        search_client: Optional[SearchClient] = None,
        extractor: Optional[ContentExtractor] = None,
        resolver: Optional[ImageResolver] = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.search_client = search_client or SearchClient(settings)
        self.extractor = extractor or ContentExtractor(
            fetch_timeout=settings.fetch_timeout_seconds
        )
        self.resolver = resolver or ImageResolver()
        self.staleness = timedelta(hours=settings.content_staleness_hours)

    async def run(
        self,
        query: Optional[str] = None,
        num_results: Optional[int] = None,
        target_count: Optional[int] = None,
    ) -> list[NewsArticle]:
        """Search the provider and ingest the results.

        Raises:
            ConfigError: search credentials are missing.
            ProviderError: the search could not be queried.
        """
        raw_results = await self.search_client.search(query=query, num_results=num_results)
        return await self.ingest(raw_results, target_count=target_count)

    async def ingest(
        self,
        raw_results: list[RawSearchResult],
        target_count: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[NewsArticle]:
        """Enrich and store raw results; return the imaged ones in search order.

        Once target_count imaged articles exist, queued items are skipped.
        Items already in flight still finish and are stored.
        """
        target = self.settings.ingest_target_count if target_count is None else target_count
        if now is None:
            now = datetime.now(timezone.utc)

        unique: list[RawSearchResult] = []
        seen: set[str] = set()
        for raw in raw_results:
            if raw.link not in seen:
                seen.add(raw.link)
                unique.append(raw)

        semaphore = asyncio.Semaphore(max(1, self.settings.fetch_concurrency))
        imaged = 0

        async def work(raw: RawSearchResult) -> Optional[NewsArticle]:
            nonlocal imaged
            async with semaphore:
                if imaged >= target:
                    return None
                article = await self._enrich(raw, now)
                if article.image:
                    imaged += 1
                return article

        outcomes = await asyncio.gather(
            *(work(raw) for raw in unique), return_exceptions=True
        )

        articles: list[NewsArticle] = []
        stored = 0
        for raw, outcome in zip(unique, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Failed to ingest %s", raw.link, exc_info=outcome)
                continue
            if outcome is None:
                continue
            stored += 1
            if outcome.image:
                articles.append(outcome)

        logger.info(
            "Ingested batch: %d results, %d stored, %d with images",
            len(unique),
            stored,
            len(articles),
        )
        return articles[:target]

    async def _enrich(self, raw: RawSearchResult, now: datetime) -> NewsArticle:
        async with self.session_factory() as session:
            existing = await get_article_by_link(session, raw.link)

        content: Optional[str] = None
        content_fetched_at: Optional[datetime] = now
        page: Optional[str] = None
        extracted: Optional[ExtractedContent] = None

        if (
            existing is not None
            and existing.content
            and not content_is_stale(existing.content_fetched_at, self.staleness, now)
        ):
            content = existing.content
            content_fetched_at = existing.content_fetched_at
        else:
            try:
                page = await self.extractor.fetch(raw.link)
            except FetchError as exc:
                logger.warning("Fetch failed for %s: %s", raw.link, exc)
            else:
                try:
                    extracted = await asyncio.to_thread(
                        self.extractor.extract, page, raw.link
                    )
                    content = extracted.content
                except ParseError as exc:
                    logger.warning("No article body in %s: %s", raw.link, exc)

        image = await asyncio.to_thread(
            self.resolver.resolve,
            candidates_from_hints(raw.images),
            content=content,
            page=page,
            base_url=raw.link,
        )

        # Keep what an earlier run already derived when this run found less.
        if existing is not None:
            content = content or existing.content
            image = image or existing.image

        data = ArticleUpsert(
            link=raw.link,
            title=raw.title,
            snippet=raw.snippet,
            source=raw.source or (extracted.site_name if extracted else None),
            published=normalize_published(raw.published, now),
            image=image,
            content=content,
            content_fetched_at=content_fetched_at,
            is_archived=existing.is_archived if existing is not None else False,
        )
        async with self.session_factory() as session:
            article = await upsert_article(session, data)
            await session.commit()
        return article
