"""News search provider client (SerpAPI news mode)."""

import logging
from typing import Optional

import httpx

from wedding_news.config import Settings
from wedding_news.errors import ConfigError, ProviderError
from wedding_news.schemas.search import RawSearchResult

logger = logging.getLogger(__name__)


class SearchClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        # Tests inject httpx.MockTransport here.
        self._transport = transport

    async def search(
        self,
        query: Optional[str] = None,
        num_results: Optional[int] = None,
        freshness: Optional[str] = None,
    ) -> list[RawSearchResult]:
        """Query the provider in news mode.

        Raises:
            ConfigError: no API key configured.
            ProviderError: transport failure, non-2xx status, malformed body,
                or no usable result after filtering.
        """
        if not self.settings.search_configured:
            raise ConfigError("SERP_API_KEY is not configured")

        query = query or self.settings.search_query
        params = {
            "q": query,
            "tbm": "nws",
            "num": str(num_results or self.settings.search_num_results),
            "api_key": self.settings.serp_api_key,
        }
        tbs = freshness if freshness is not None else self.settings.search_freshness
        if tbs:
            params["tbs"] = tbs

        logger.info("Searching news provider for %r", query)
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.search_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.get(self.settings.serp_api_url, params=params)
        except httpx.HTTPError as exc:
            # The request URL carries the API key; log the error type only.
            raise ProviderError(f"Search request failed: {type(exc).__name__}") from exc

        if not response.is_success:
            raise ProviderError(f"Search provider returned status {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("Search provider returned a non-JSON body") from exc

        news_results = data.get("news_results") if isinstance(data, dict) else None
        if not isinstance(news_results, list):
            raise ProviderError("No news_results in search provider response")

        results = []
        for item in news_results:
            if not isinstance(item, dict):
                continue
            result = RawSearchResult.from_provider(item)
            if result is not None:
                results.append(result)

        if not results:
            raise ProviderError("Search provider returned no usable results")

        logger.info("Search returned %d usable results (%d raw)", len(results), len(news_results))
        return results
