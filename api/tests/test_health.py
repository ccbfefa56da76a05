from wedding_news.database import settings


async def test_health_ok(client):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["db"] == "connected"


async def test_health_reports_search_provider(client, monkeypatch):
    monkeypatch.setattr(settings, "serp_api_key", "")
    response = await client.get("/health")
    assert response.json()["search_provider"] == "missing"

    monkeypatch.setattr(settings, "serp_api_key", "configured-key")
    response = await client.get("/health")
    assert response.json()["search_provider"] == "configured"
