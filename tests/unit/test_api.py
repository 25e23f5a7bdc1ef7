"""API endpoint tests: FastAPI TestClient."""
from fastapi.testclient import TestClient

from src.api.v2.app import create_app
from src.core.config import Settings
from src.core.fetchers.base import PageFetcher
from src.core.services import build_services
from src.core.sources.registry import SourceConfig

GOOD_PAGE = """
<div>11,000 FROST / MB</div><div>20,000 FROST / MB</div>
<div>644 / 4,167 TB</div><div>Epoch 150</div>
"""
SOURCE = SourceConfig("walruscan", "https://walruscan.test/mainnet/home")


class MockFetcher(PageFetcher):

    def __init__(self, page: str = GOOD_PAGE):
        super().__init__(retries=1, retry_backoff_seconds=0)
        self.page = page
        self.call_count = 0

    @property
    def name(self) -> str:
        return "mock"

    async def fetch_rendered(self, url: str, timeout_ms: int) -> str:
        self.call_count += 1
        return self.page


def _client(page: str = GOOD_PAGE):
    fetcher = MockFetcher(page)
    services = build_services(Settings(), fetcher=fetcher, sources=[SOURCE])
    return TestClient(create_app(services=services)), fetcher, services


# ── Service endpoints ────────────────────────────────────────────────────


def test_health():
    client, _, _ = _client()
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["version"] == "1.0.0"
    assert "timestamp" in r.json()


def test_root_lists_endpoints():
    client, _, _ = _client()
    r = client.get("/")
    assert r.status_code == 200
    body = r.json()
    assert body["endpoints"]["metrics"] == "/api/v2/metrics"
    assert body["scheduler"]["last_run_at"] is None


# ── Metrics endpoints ────────────────────────────────────────────────────


def test_metrics_cache_miss_refreshes_once():
    client, fetcher, _ = _client()
    r = client.get("/api/v2/metrics")
    assert r.status_code == 200
    body = r.json()
    assert body["source"] == "fresh"
    assert body["data"]["storage_price"]["value"] == 11000
    assert body["data"]["write_price"]["value"] == 20000
    assert body["data"]["epoch"]["number"] == 150
    assert body["data"]["provenance"] == "realtime"

    r = client.get("/api/v2/metrics")
    assert r.json()["source"] == "cache"
    assert r.json()["last_update"] is not None
    assert fetcher.call_count == 1


def test_metrics_unavailable_is_503():
    client, _, _ = _client(page="<p>Under maintenance</p>")
    r = client.get("/api/v2/metrics")
    assert r.status_code == 503
    assert r.json()["code"] == "METRICS_UNAVAILABLE"


def test_force_refresh():
    client, fetcher, _ = _client()
    client.get("/api/v2/metrics")
    r = client.post("/api/v2/refresh")
    assert r.status_code == 200
    assert r.json()["outcome"] == "updated"
    assert r.json()["data"]["storage_capacity"]["total"] == 4167
    assert fetcher.call_count == 2


def test_force_refresh_while_running_is_202():
    client, fetcher, services = _client()
    services.scheduler.state.is_running = True
    r = client.post("/api/v2/refresh")
    assert r.status_code == 202
    assert r.json()["outcome"] == "skipped"
    assert fetcher.call_count == 0


def test_force_refresh_without_valid_record_is_503():
    client, _, services = _client(page="<p>Epoch 150</p>")
    r = client.post("/api/v2/refresh")
    assert r.status_code == 503
    assert not services.cache.has(services.settings.metrics_cache_key)


def test_last_update():
    client, _, _ = _client()
    r = client.get("/api/v2/last-update")
    assert r.json() == {"last_update": None, "cache_status": "empty"}

    client.post("/api/v2/refresh")
    r = client.get("/api/v2/last-update")
    assert r.json()["cache_status"] == "active"
    assert r.json()["last_update"] is not None


def test_status():
    client, _, _ = _client()
    client.post("/api/v2/refresh")
    r = client.get("/api/v2/status")
    assert r.status_code == 200
    body = r.json()
    assert body["scheduler"]["is_running"] is False
    assert body["scheduler"]["last_run_at"] is not None
    assert body["cache"]["keys"] == ["walrus-data"]
    assert body["cache"]["max_size"] == 50


# ── Lifespan ─────────────────────────────────────────────────────────────


def test_lifespan_bootstraps_and_schedules():
    fetcher = MockFetcher()
    services = build_services(Settings(), fetcher=fetcher, sources=[SOURCE])
    with TestClient(create_app(services=services)) as client:
        assert fetcher.call_count == 1
        assert services.scheduler.state.job_active
        r = client.get("/api/v2/metrics")
        assert r.json()["source"] == "cache"
    assert not services.scheduler.state.job_active
