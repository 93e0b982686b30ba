"""HTTP API tests against the in-memory database."""

import httpx
import pytest
import pytest_asyncio

from pricesync.api.deps import get_sandbox_service, get_task_runner
from pricesync.api.routes import marketplaces as marketplace_routes
from pricesync.auth import RequestContext
from pricesync.db.models import SandboxSettings
from pricesync.main import app
from pricesync.marketplace.kaspi import KaspiClient
from pricesync.sync.sandbox import SandboxService
from pricesync.worker.tasks import SyncTaskRunner

ADMIN = {"X-User-Id": "admin-1", "X-User-Roles": "admin"}
MANAGER = {"X-User-Id": "manager-1", "X-User-Roles": "manager"}
USER = {"X-User-Id": "user-1", "X-User-Roles": "user"}

CARD = {
    "sku": "K1",
    "title": "Phone",
    "brand": "Acme",
    "category": "phones",
    "description": "A phone",
    "images": [{"url": "https://img.test/phone.jpg"}],
}

ORDER = {
    "id": "o1",
    "code": "100200",
    "status": "NEW",
    "entries": [],
}


def mock_marketplace(monkeypatch, handler):
    """Route marketplace calls made by the API through ``handler``."""

    def factory(marketplace):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return KaspiClient(marketplace.api_key, base_url="https://kaspi.test", http_client=http_client)

    monkeypatch.setattr(marketplace_routes, "client_for_marketplace", factory)
    monkeypatch.setattr(marketplace_routes, "catalog_for_marketplace", factory)


@pytest.fixture
def runner(store):
    return SyncTaskRunner(store)


@pytest.fixture
def sandbox(runner):
    return SandboxService(runner)


@pytest_asyncio.fixture
async def client(runner, sandbox):
    app.dependency_overrides[get_task_runner] = lambda: runner
    app.dependency_overrides[get_sandbox_service] = lambda: sandbox
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
    await runner.close()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_user_header_is_rejected(client):
    response = await client.get("/api/suppliers")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_plain_user_cannot_create_supplier(client):
    response = await client.post("/api/suppliers", json={"name": "Acme"}, headers=USER)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_creates_supplier_without_echoing_secrets(client):
    response = await client.post(
        "/api/suppliers",
        json={"name": "Acme", "api_key": "secret-key", "website_password": "hunter2"},
        headers=ADMIN,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Acme"
    assert body["has_api_key"] is True
    assert "api_key" not in body
    assert "website_password" not in body

    listed = await client.get("/api/suppliers", headers=USER)
    assert [s["id"] for s in listed.json()] == [body["id"]]


@pytest.mark.asyncio
async def test_unknown_supplier_is_404(client):
    response = await client.get("/api/suppliers/does-not-exist", headers=USER)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_manager_starts_download_run(client, runner, make_supplier):
    await make_supplier("Acme")
    response = await client.post("/api/sync/download", json={}, headers=MANAGER)

    assert response.status_code == 202
    body = response.json()
    assert body["kind"] == "download"
    assert body["total_steps"] == 1

    run = runner.get_active(body["run_id"])
    if run is not None:
        await run.wait()
    await runner.close()
    detail = await client.get(f"/api/sync/runs/{body['run_id']}", headers=MANAGER)
    assert detail.status_code == 200
    assert detail.json()["state"] == "completed"
    assert detail.json()["needs_review"] is True


@pytest.mark.asyncio
async def test_cancel_unknown_run_conflicts(client):
    response = await client.post("/api/sync/runs/nope/cancel", headers=MANAGER)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_sandbox_quota_exhausted_returns_429(client, store, sandbox):
    ctx = RequestContext.from_values(MANAGER["X-User-Id"], ["manager"])
    row = await sandbox.settings_for(ctx)
    await store.update(SandboxSettings, row.id, {"max_test_requests": 0})

    response = await client.post("/api/sandbox/runs/download", headers=MANAGER)

    assert response.status_code == 429
    assert response.json() == {"detail": "quota_exceeded", "used": 0, "limit": 0}


@pytest.mark.asyncio
async def test_csv_export_is_an_attachment(client, make_marketplace, make_product):
    marketplace = await make_marketplace()
    await make_product(
        "K1",
        price=50000,
        marketplace_id=marketplace.id,
        marketplace_article="K1",
        name_marketplace="Phone",
    )

    response = await client.get(
        "/api/products/export",
        params={"marketplace_id": marketplace.id, "format": "csv"},
        headers=MANAGER,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"].endswith('.csv"')
    assert "Phone" in response.content.decode("utf-8-sig")


@pytest.mark.asyncio
async def test_storage_settings_are_admin_only(client):
    assert (await client.get("/api/settings/storage", headers=MANAGER)).status_code == 403
    response = await client.get("/api/settings/storage", headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["file_format"] == "xlsx"


@pytest.mark.asyncio
async def test_empty_upload_selection_is_rejected(client, runner, make_marketplace):
    marketplace = await make_marketplace()
    response = await client.post(
        "/api/sync/upload",
        json={"marketplace_ids": [marketplace.id], "product_ids": []},
        headers=MANAGER,
    )
    assert response.status_code == 422
    assert runner.list_active() == []


@pytest.mark.asyncio
async def test_add_product_submits_card(client, make_marketplace, monkeypatch):
    sent = []

    def handler(request):
        sent.append(request)
        return httpx.Response(200, json={"uploadCode": "u-1", "status": "UPLOADED"})

    mock_marketplace(monkeypatch, handler)
    marketplace = await make_marketplace()

    response = await client.post(f"/api/marketplaces/{marketplace.id}/products", json=CARD, headers=MANAGER)

    assert response.status_code == 201
    assert response.json() == {"uploadCode": "u-1", "status": "UPLOADED"}
    assert sent[0].url.path == "/goods"
    assert sent[0].headers["X-Auth-Token"] == "token"


@pytest.mark.asyncio
async def test_add_product_bad_card_and_rejection(client, make_marketplace, monkeypatch):
    sent = []

    def handler(request):
        sent.append(request)
        return httpx.Response(400, text="unknown category")

    mock_marketplace(monkeypatch, handler)
    marketplace = await make_marketplace()
    url = f"/api/marketplaces/{marketplace.id}/products"

    bad = await client.post(url, json={**CARD, "images": []}, headers=MANAGER)
    assert bad.status_code == 422
    assert sent == []

    rejected = await client.post(url, json=CARD, headers=MANAGER)
    assert rejected.status_code == 502
    assert rejected.json()["detail"] == "400: unknown category"


@pytest.mark.asyncio
async def test_sandbox_marketplace_does_not_send_cards(client, make_marketplace):
    marketplace = await make_marketplace(sandbox_mode=True)
    response = await client.post(f"/api/marketplaces/{marketplace.id}/products", json=CARD, headers=MANAGER)

    assert response.status_code == 201
    assert response.json()["status"] == "SANDBOX"


@pytest.mark.asyncio
async def test_accept_only_new_orders(client, make_marketplace, monkeypatch):
    orders = [ORDER, {**ORDER, "id": "o2", "code": "100201", "status": "COMPLETED"}]
    accepted = []

    def handler(request):
        if request.method == "POST":
            accepted.append(request.url.path)
            return httpx.Response(200, json={})
        return httpx.Response(200, json={"data": orders})

    mock_marketplace(monkeypatch, handler)
    marketplace = await make_marketplace()
    base = f"/api/marketplaces/{marketplace.id}/orders"

    completed = await client.post(f"{base}/o2/accept", json={"code": "100201"}, headers=MANAGER)
    assert completed.status_code == 409
    assert accepted == []

    missing = await client.post(f"{base}/o9/accept", json={"code": "1"}, headers=MANAGER)
    assert missing.status_code == 404

    ok = await client.post(f"{base}/o1/accept", json={"code": "100200"}, headers=MANAGER)
    assert ok.status_code == 204
    assert accepted == ["/orders/o1/status"]
