from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from wedding_news.database import get_session, settings
from wedding_news.schemas.health import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(session: AsyncSession = Depends(get_session)):
    search_provider = "configured" if settings.search_configured else "missing"
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "db": "disconnected",
                "search_provider": search_provider,
            },
        )
    return HealthResponse(status="healthy", db="connected", search_provider=search_provider)
