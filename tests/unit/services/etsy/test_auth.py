import pytest
import httpx
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

from stocklink.core.exceptions import TokenError
from stocklink.models.shop import Shop
from stocklink.services.etsy.auth import TOKEN_URL, EtsyAuthManager

NOW = datetime(2026, 1, 1, 12, 0, 0)


def token_response(status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.text = "error"
    response.json.return_value = {
        "access_token": "12345.new-access",
        "token_type": "Bearer",
        "expires_in": 3600,
        "refresh_token": "12345.new-refresh",
    }
    return response


@pytest.fixture
def http(mocker):
    mock_client = mocker.patch("httpx.AsyncClient")
    inner = mock_client.return_value.__aenter__.return_value
    inner.post = AsyncMock(return_value=token_response())
    return inner


@pytest.fixture
def shop_service():
    service = AsyncMock()
    service.save_etsy_token.side_effect = lambda shop, *args: shop
    return service


@pytest.fixture
def manager(shop_service):
    return EtsyAuthManager(
        shop_service,
        client_id="client-id",
        redirect_uri="https://example.com/cb",
        refresh_margin_minutes=10,
        now=lambda: NOW,
    )


def onboarded_shop(expires):
    return Shop(
        shop_domain="test-shop.myshopify.com",
        etsy_onboarded=True,
        etsy_access_token="12345.old-access",
        etsy_refresh_token="12345.old-refresh",
        etsy_token_expires=expires,
    )


@pytest.mark.asyncio
async def test_valid_token_is_reused(http, manager):
    shop = onboarded_shop(NOW + timedelta(minutes=30))

    assert await manager.get_access_token(shop) == "12345.old-access"
    http.post.assert_not_called()


@pytest.mark.asyncio
async def test_token_inside_margin_is_refreshed(http, manager, shop_service):
    shop = onboarded_shop(NOW + timedelta(minutes=9))

    token = await manager.get_access_token(shop)

    assert token == "12345.new-access"
    args, kwargs = http.post.call_args
    assert args[0] == TOKEN_URL
    assert kwargs["data"] == {
        "grant_type": "refresh_token",
        "client_id": "client-id",
        "refresh_token": "12345.old-refresh",
    }
    shop_service.save_etsy_token.assert_awaited_once_with(
        shop, "12345.new-access", "12345.new-refresh", NOW + timedelta(seconds=3600)
    )


@pytest.mark.asyncio
async def test_first_token_uses_authorization_code(http, manager):
    shop = Shop(
        shop_domain="test-shop.myshopify.com",
        etsy_onboarded=False,
        etsy_code_reference="auth-code",
        etsy_code_verifier="verifier",
    )

    await manager.get_access_token(shop)

    payload = http.post.call_args.kwargs["data"]
    assert payload["grant_type"] == "authorization_code"
    assert payload["code"] == "auth-code"
    assert payload["code_verifier"] == "verifier"
    assert payload["redirect_uri"] == "https://example.com/cb"


@pytest.mark.asyncio
async def test_no_credentials_is_token_error(http, manager):
    shop = Shop(shop_domain="test-shop.myshopify.com", etsy_onboarded=False)

    with pytest.raises(TokenError):
        await manager.get_access_token(shop)
    http.post.assert_not_called()


@pytest.mark.asyncio
async def test_rejected_refresh_is_token_error(http, manager, shop_service):
    http.post.return_value = token_response(status_code=401)

    with pytest.raises(TokenError):
        await manager.get_access_token(onboarded_shop(NOW))
    shop_service.save_etsy_token.assert_not_called()


@pytest.mark.asyncio
async def test_network_failure_is_token_error(http, manager):
    http.post.side_effect = httpx.ConnectTimeout("timeout")

    with pytest.raises(TokenError):
        await manager.get_access_token(onboarded_shop(NOW))
