import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock

from stocklink.core.exceptions import ShopifyAPIError, ShopifyGraphQLError
from stocklink.services.shopify.client import ShopifyClient, numeric_id


def make_response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text
    response.headers = {}
    return response


@pytest.fixture
def http(mocker):
    """Patched httpx.AsyncClient; returns the object whose `request` is awaited."""
    mock_client = mocker.patch("httpx.AsyncClient")
    inner = mock_client.return_value.__aenter__.return_value
    inner.request = AsyncMock()
    return inner


@pytest.fixture
def client():
    return ShopifyClient("test-shop.myshopify.com", "shpat_test", api_version="2025-01", sleep=AsyncMock())


def test_numeric_id():
    assert numeric_id("gid://shopify/Location/123") == "123"
    assert numeric_id("456") == "456"


def test_requires_credentials():
    with pytest.raises(ValueError):
        ShopifyClient("", "token")


@pytest.mark.asyncio
async def test_execute_sends_token_and_returns_data(http, client):
    http.request.return_value = make_response(payload={"data": {"shop": {"name": "Test"}}})

    data = await client.execute("{ shop { name } }")

    assert data == {"shop": {"name": "Test"}}
    args, kwargs = http.request.call_args
    assert args == ("POST", "https://test-shop.myshopify.com/admin/api/2025-01/graphql.json")
    assert kwargs["headers"]["X-Shopify-Access-Token"] == "shpat_test"


@pytest.mark.asyncio
async def test_execute_raises_on_graphql_errors(http, client):
    http.request.return_value = make_response(payload={"errors": [{"message": "Throttled", "path": ["shop"]}]})

    with pytest.raises(ShopifyGraphQLError) as exc_info:
        await client.execute("{ shop { name } }")
    assert "Throttled" in str(exc_info.value)


@pytest.mark.asyncio
async def test_http_error_raises_api_error_with_status(http, client):
    http.request.return_value = make_response(status_code=500, text="boom")

    with pytest.raises(ShopifyAPIError) as exc_info:
        await client.execute("{ shop { name } }")
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_network_error_wrapped(http, client):
    http.request.side_effect = httpx.ConnectError("refused")

    with pytest.raises(ShopifyAPIError):
        await client.execute("{ shop { name } }")


@pytest.mark.asyncio
async def test_throttle_status_triggers_wait(http, client):
    http.request.return_value = make_response(payload={
        "data": {},
        "extensions": {"cost": {"throttleStatus": {
            "maximumAvailable": 1000.0, "currentlyAvailable": 100.0, "restoreRate": 50.0,
        }}},
    })

    await client.execute("{ a }")
    assert client.currently_available_points == 100.0
    await client.execute("{ b }")

    client._sleep.assert_awaited_once()


@pytest.mark.asyncio
async def test_set_inventory_level_uses_numeric_ids(http, client):
    http.request.return_value = make_response(payload={"inventory_level": {"available": 4}})

    await client.set_inventory_level("gid://shopify/Location/7", "gid://shopify/InventoryItem/99", 4)

    args, kwargs = http.request.call_args
    assert args == ("POST", "https://test-shop.myshopify.com/admin/api/2025-01/inventory_levels/set.json")
    assert kwargs["json"] == {"location_id": 7, "inventory_item_id": 99, "available": 4}


@pytest.mark.asyncio
async def test_get_bulk_operation_returns_node(mocker, client):
    execute = mocker.patch.object(ShopifyClient, "execute", AsyncMock(return_value={"node": {"id": "op", "status": "RUNNING"}}))

    node = await client.get_bulk_operation("op")

    assert node["status"] == "RUNNING"
    assert execute.call_args.args[1] == {"id": "op"}
