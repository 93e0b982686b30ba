"""Tests for the marketplace client against a mocked transport."""

import json

import httpx
import pytest

from pricesync.errors import RemoteError, ValidationError
from pricesync.marketplace.kaspi import DryRunCatalog, KaspiClient, client_for_marketplace
from pricesync.marketplace.schemas import OrderStatus, OrdersQuery, order_status_label

BASE_URL = "https://kaspi.test/shop/api/v2"

ORDER = {
    "id": "o1",
    "code": "100200",
    "status": "NEW",
    "totalPrice": 50000,
    "entries": [
        {
            "id": "e1",
            "unitType": "PIECE",
            "quantity": 1,
            "totalPrice": 50000,
            "entryNumber": "1",
            "category": "phones",
            "title": "Phone",
            "deliveryCost": 0,
            "basePrice": 50000,
            "isImeiRequired": True,
        }
    ],
}

PRODUCT = {
    "sku": "K1",
    "title": "Phone",
    "brand": "Acme",
    "category": "phones",
    "description": "A phone",
    "images": [{"url": "https://img.test/phone.jpg"}],
    "attributes": [{"code": "color", "value": "black"}],
}


def make_client(handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return KaspiClient("secret-token", base_url=BASE_URL, http_client=http_client)


@pytest.mark.asyncio
async def test_get_orders_sends_auth_and_parses():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(200, json={"data": [ORDER]})

    client = make_client(handler)
    orders = await client.get_orders(OrdersQuery(page=0, page_size=20))

    request = seen["request"]
    assert request.method == "GET"
    assert request.url.path == "/shop/api/v2/orders"
    assert request.url.params["pageSize"] == "20"
    assert request.headers["X-Auth-Token"] == "secret-token"
    assert request.headers["Accept"] == "application/vnd.api+json"
    assert orders[0].status == OrderStatus.NEW
    assert orders[0].entries[0].is_imei_required is True
    assert order_status_label(orders[0].status.value) == "Новый"


@pytest.mark.asyncio
async def test_error_response_keeps_status_and_body():
    client = make_client(lambda request: httpx.Response(401, text="invalid token"))

    with pytest.raises(RemoteError) as exc_info:
        await client.get_categories()

    assert exc_info.value.status_code == 401
    assert str(exc_info.value) == "401: invalid token"


@pytest.mark.asyncio
async def test_transport_failure_is_remote_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(RemoteError) as exc_info:
        await make_client(handler).get_categories()
    assert exc_info.value.status_code == 0


@pytest.mark.asyncio
async def test_unexpected_shape_is_validation_error():
    client = make_client(lambda request: httpx.Response(200, json={"items": []}))
    with pytest.raises(ValidationError):
        await client.get_orders()

    client = make_client(lambda request: httpx.Response(200, json={"data": [{"id": "o1"}]}))
    with pytest.raises(ValidationError):
        await client.get_orders()


@pytest.mark.asyncio
async def test_unknown_order_status_is_rejected():
    order = {**ORDER, "status": "TELEPORTED"}
    client = make_client(lambda request: httpx.Response(200, json={"data": [order]}))
    with pytest.raises(ValidationError):
        await client.get_orders()


@pytest.mark.asyncio
async def test_accept_order_body():
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(200, json={})

    await make_client(handler).accept_order("o1", "100200")

    request = seen["request"]
    assert request.method == "POST"
    assert request.url.path.endswith("/orders/o1/status")
    assert json.loads(request.content) == {
        "type": "orders",
        "id": "o1",
        "code": "100200",
        "status": "ACCEPTED_BY_MERCHANT",
    }


@pytest.mark.asyncio
async def test_add_product_validates_before_sending():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"uploadCode": "u-1", "status": "UPLOADED"})

    client = make_client(handler)

    with pytest.raises(ValidationError):
        await client.add_product({**PRODUCT, "images": []})
    with pytest.raises(ValidationError):
        await client.add_product({**PRODUCT, "brand": "  "})
    assert calls == []

    result = await client.add_product(PRODUCT)
    assert result.upload_code == "u-1"
    sent = json.loads(calls[0].content)
    assert sent["images"] == [{"url": "https://img.test/phone.jpg"}]
    assert calls[0].headers["Content-Type"] == "application/vnd.api+json"


@pytest.mark.asyncio
async def test_entry_changes_and_imei_are_checked_locally():
    client = make_client(lambda request: httpx.Response(200, json={}))
    with pytest.raises(ValidationError):
        await client.set_imei("o1", " ")
    with pytest.raises(ValidationError):
        await client.modify_order_entry("o1", "e1", {})


@pytest.mark.asyncio
async def test_dry_run_catalog_never_sends():
    catalog = DryRunCatalog()
    result = await catalog.add_product(PRODUCT)

    assert result.status == "SANDBOX"
    assert result.upload_code.startswith("sandbox-")
    assert catalog.submitted[0].sku == "K1"


def test_client_requires_api_key():
    class Row:
        name = "Kaspi"
        api_key = None
        api_endpoint = None

    with pytest.raises(ValidationError):
        client_for_marketplace(Row())


@pytest.mark.asyncio
async def test_get_orders_defaults_page_size():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"data": []})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = KaspiClient("secret-token", base_url=BASE_URL, http_client=http_client, page_size=25)
    await client.get_orders()

    assert seen["params"] == {"pageSize": "25"}


@pytest.mark.asyncio
async def test_find_order_pages_until_found_or_exhausted():
    pages = {
        "0": [{**ORDER, "id": "o1"}, {**ORDER, "id": "o2"}],
        "1": [{**ORDER, "id": "o3", "status": "COMPLETED"}],
    }
    requested = []

    def handler(request):
        page = request.url.params["page"]
        requested.append(page)
        return httpx.Response(200, json={"data": pages.get(page, [])})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = KaspiClient("secret-token", base_url=BASE_URL, http_client=http_client, page_size=2)

    order = await client.find_order("o3")
    assert order.status == OrderStatus.COMPLETED
    assert requested == ["0", "1"]

    requested.clear()
    assert await client.find_order("missing") is None
    assert requested == ["0", "1"]
