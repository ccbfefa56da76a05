import uuid
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Security
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from wedding_news.database import get_session, settings
from wedding_news.dependencies import (
    api_key_header,
    api_key_is_valid,
    get_extractor,
    get_orchestrator,
    get_resolver,
    verify_api_key,
)
from wedding_news.rate_limit import limiter
from wedding_news.schemas.article import ArticleDetail, ArticlePage
from wedding_news.services.article_service import (
    archive_article,
    get_article_by_id,
    get_article_by_link,
    get_article_with_content,
    list_page,
)
from wedding_news.services.content_extractor import ContentExtractor
from wedding_news.services.image_resolver import ImageResolver
from wedding_news.services.ingest_service import IngestionOrchestrator

router = APIRouter(prefix="/articles", tags=["articles"])

# Target for the on-demand search run when a title search matches nothing.
SEARCH_FALLBACK_TARGET = 2


@router.get("", response_model=ArticlePage)
@limiter.limit("60/minute")
async def list_articles(
    request: Request,
    offset: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    q: Optional[str] = Query(None, min_length=1, max_length=200),
    search_fallback: bool = Query(False),
    session: AsyncSession = Depends(get_session),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
    api_key: Optional[str] = Security(api_key_header),
):
    """Paged listing. With search_fallback, an unmatched title query runs a
    small provider search; that write path needs an API key.
    """
    if search_fallback and not api_key_is_valid(api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")

    articles, has_more, total = await list_page(session, offset, limit, title_filter=q)

    if q and search_fallback and total == 0 and settings.search_configured:
        articles = await orchestrator.run(
            query=f"{q} wedding", target_count=SEARCH_FALLBACK_TARGET
        )
        return ArticlePage(
            items=articles,
            total=len(articles),
            offset=0,
            limit=limit,
            has_more=False,
        )

    return ArticlePage(
        items=articles,
        total=total,
        offset=offset,
        limit=limit,
        has_more=has_more,
    )


@router.get("/by-link", response_model=ArticleDetail)
@limiter.limit("60/minute")
async def get_article_by_link_endpoint(
    request: Request,
    link: str = Query(..., min_length=1, max_length=2083),
    session: AsyncSession = Depends(get_session),
    extractor: ContentExtractor = Depends(get_extractor),
    resolver: ImageResolver = Depends(get_resolver),
):
    """Single article; missing content is backfilled once per staleness window."""
    article = await get_article_with_content(
        session,
        link,
        extractor,
        resolver,
        timedelta(hours=settings.content_staleness_hours),
    )
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


@router.post("/archive", response_model=ArticleDetail)
@limiter.limit("30/minute")
async def archive_article_endpoint(
    request: Request,
    link: str = Query(..., min_length=1, max_length=2083),
    session: AsyncSession = Depends(get_session),
    _api_key: str = Security(verify_api_key),
):
    article = await get_article_by_link(session, link)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return await archive_article(session, article)


@router.get("/{article_id}", response_model=ArticleDetail)
@limiter.limit("60/minute")
async def get_article(
    request: Request,
    article_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
):
    article = await get_article_by_id(session, article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return article
