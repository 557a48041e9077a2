import httpx
from app.main import app


async def test_health():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        r = await ac.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


async def test_health_db(client):
    r = await client.get("/v1/health/db")
    assert r.status_code == 200
