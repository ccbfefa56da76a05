from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from wedding_news.database import AsyncSessionFactory, settings
from wedding_news.services.content_extractor import ContentExtractor
from wedding_news.services.image_resolver import ImageResolver
from wedding_news.services.ingest_service import IngestionOrchestrator

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def api_key_is_valid(api_key: str | None) -> bool:
    keys = settings.get_api_keys()
    if not keys:
        # No keys configured (development mode): writes are open
        return True
    return bool(api_key) and api_key in keys


async def verify_api_key(
    api_key: str | None = Security(api_key_header),
) -> str:
    if not api_key_is_valid(api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return api_key or ""


def get_extractor() -> ContentExtractor:
    return ContentExtractor(fetch_timeout=settings.fetch_timeout_seconds)


def get_resolver() -> ImageResolver:
    return ImageResolver()


def get_orchestrator() -> IngestionOrchestrator:
    return IngestionOrchestrator(
        settings,
        AsyncSessionFactory,
        extractor=get_extractor(),
        resolver=get_resolver(),
    )
