import pytest
from unittest.mock import AsyncMock, MagicMock

from stocklink.core.exceptions import EtsyAPIError
from stocklink.schemas.etsy import EtsyListing, EtsyListingsPage
from stocklink.services.etsy.client import EtsyClient, user_id_from_token


@pytest.fixture
def client():
    return EtsyClient("client-id", "12345.access-token", timeout=5)


def test_user_id_from_token():
    assert user_id_from_token("12345.abcdef") == "12345"


@pytest.mark.asyncio
async def test_requests_carry_api_key_and_bearer_token(mocker, client):
    mock_client = mocker.patch("httpx.AsyncClient")
    response = MagicMock(status_code=200)
    response.json.return_value = {"shop_id": 77, "shop_name": "Makers"}
    mock_client.return_value.__aenter__.return_value.request = AsyncMock(return_value=response)

    shop = await client.get_user_shop()

    assert shop.shop_id == 77
    kwargs = mock_client.return_value.__aenter__.return_value.request.call_args.kwargs
    assert kwargs["url"] == "https://openapi.etsy.com/v3/application/users/12345/shops"
    assert kwargs["headers"]["x-api-key"] == "client-id"
    assert kwargs["headers"]["Authorization"] == "Bearer 12345.access-token"


@pytest.mark.asyncio
async def test_error_status_raises(mocker, client):
    mock_client = mocker.patch("httpx.AsyncClient")
    response = MagicMock(status_code=403, text="forbidden")
    mock_client.return_value.__aenter__.return_value.request = AsyncMock(return_value=response)

    with pytest.raises(EtsyAPIError) as exc_info:
        await client.get_listing_inventory(1)
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_get_all_listings_pages_through_results(mocker, client):
    pages = [
        EtsyListingsPage(count=3, results=[EtsyListing(listing_id=1), EtsyListing(listing_id=2)]),
        EtsyListingsPage(count=3, results=[EtsyListing(listing_id=3)]),
    ]
    get_page = mocker.patch.object(EtsyClient, "get_shop_listings", AsyncMock(side_effect=pages))

    listings = await client.get_all_listings(77, page_size=2)

    assert [l.listing_id for l in listings] == [1, 2, 3]
    assert get_page.call_args_list[1].kwargs == {"limit": 2, "offset": 2}


@pytest.mark.asyncio
async def test_update_listing_inventory_puts_payload(mocker, client):
    make_request = mocker.patch.object(EtsyClient, "_make_request", AsyncMock(return_value={}))

    await client.update_listing_inventory(10, {"products": []})

    make_request.assert_awaited_once_with("PUT", "/listings/10/inventory", data={"products": []})
