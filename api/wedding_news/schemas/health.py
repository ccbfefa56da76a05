from wedding_news.schemas import AppBaseModel


class HealthResponse(AppBaseModel):
    """GET /health response."""

    status: str
    db: str
    search_provider: str
