from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Security
from starlette.requests import Request

from wedding_news.dependencies import (
    get_extractor,
    get_orchestrator,
    get_resolver,
    verify_api_key,
)
from wedding_news.errors import FetchError, ParseError, UnsafeURLError
from wedding_news.rate_limit import limiter
from wedding_news.schemas.ingest import (
    IngestPreview,
    IngestRequest,
    IngestResponse,
    IngestUrlRequest,
)
from wedding_news.services.content_extractor import ContentExtractor
from wedding_news.services.image_resolver import ImageResolver
from wedding_news.services.ingest_service import IngestionOrchestrator, extract_article

router = APIRouter(prefix="/ingest", tags=["ingest"])


@router.post("", response_model=IngestResponse)
@limiter.limit("5/minute")
async def run_ingestion(
    request: Request,
    data: Optional[IngestRequest] = None,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
    _api_key: str = Security(verify_api_key),
):
    """Search the news provider and enrich + store the results.

    ConfigError / ProviderError are mapped to 503 / 502 by the app-level
    exception handlers.
    """
    data = data or IngestRequest()
    articles = await orchestrator.run(
        query=data.query,
        num_results=data.num_results,
        target_count=data.target_count,
    )
    return IngestResponse(items=articles, count=len(articles))


@router.post("/url", response_model=IngestPreview)
@limiter.limit("10/minute")
async def preview_article(
    request: Request,
    data: IngestUrlRequest,
    extractor: ContentExtractor = Depends(get_extractor),
    resolver: ImageResolver = Depends(get_resolver),
    _api_key: str = Security(verify_api_key),
):
    """Extract one URL (content + image) without storing it."""
    try:
        return await extract_article(str(data.url), extractor, resolver)
    except UnsafeURLError:
        raise HTTPException(
            status_code=400, detail="URL points to a private or reserved address"
        )
    except FetchError:
        raise HTTPException(status_code=422, detail="Failed to fetch URL")
    except ParseError:
        raise HTTPException(
            status_code=422, detail="Failed to extract content from URL"
        )
