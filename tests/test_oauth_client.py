"""
Unit tests for the provider HTTP client.
"""

import httpx
import pytest
from respx import MockRouter

from authmate.core.exceptions import ProfileFetchFailedError, TokenExchangeFailedError
from authmate.oauth.client import OAuthHttpClient

from tests.conftest import make_google_config

TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


@pytest.mark.asyncio
async def test_exchange_code_posts_form(respx_mock: MockRouter):
    route = respx_mock.post(TOKEN_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "access_token": "T1",
                "expires_in": 3600,
                "token_type": "Bearer",
                "refresh_token": "R1",
                "scope": "openid email",
                "id_token": "ID",
            },
        )
    )

    result = await OAuthHttpClient().exchange_code(make_google_config(), "abc123")

    assert result.access_token == "T1"
    assert result.refresh_token == "R1"
    assert result.expires_in == 3600
    assert result.id_token == "ID"

    request = route.calls.last.request
    form = dict(httpx.QueryParams(request.content.decode()))
    assert form == {
        "grant_type": "authorization_code",
        "code": "abc123",
        "client_id": "test-google-id",
        "client_secret": "test-google-secret",
        "redirect_uri": "http://testserver/oauth/google/callback",
    }
    assert request.headers["accept"] == "application/json"


@pytest.mark.asyncio
async def test_exchange_code_error_carries_status(respx_mock: MockRouter):
    respx_mock.post(TOKEN_URL).mock(
        return_value=httpx.Response(400, json={"error": "invalid_grant"})
    )

    with pytest.raises(TokenExchangeFailedError) as exc_info:
        await OAuthHttpClient().exchange_code(make_google_config(), "bad")

    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_exchange_code_network_error(respx_mock: MockRouter):
    respx_mock.post(TOKEN_URL).mock(side_effect=httpx.ConnectError("Connection failed"))

    with pytest.raises(TokenExchangeFailedError) as exc_info:
        await OAuthHttpClient().exchange_code(make_google_config(), "abc")

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_exchange_code_timeout(respx_mock: MockRouter):
    respx_mock.post(TOKEN_URL).mock(side_effect=httpx.ReadTimeout("too slow"))

    with pytest.raises(TokenExchangeFailedError):
        await OAuthHttpClient(timeout=0.1).exchange_code(make_google_config(), "abc")


@pytest.mark.asyncio
async def test_exchange_code_invalid_body(respx_mock: MockRouter):
    respx_mock.post(TOKEN_URL).mock(return_value=httpx.Response(200, json={"foo": "bar"}))

    with pytest.raises(TokenExchangeFailedError, match="Invalid token response"):
        await OAuthHttpClient().exchange_code(make_google_config(), "abc")


@pytest.mark.asyncio
async def test_refresh_posts_refresh_grant(respx_mock: MockRouter):
    route = respx_mock.post(TOKEN_URL).mock(
        return_value=httpx.Response(200, json={"access_token": "T2", "expires_in": 60})
    )

    result = await OAuthHttpClient().refresh(make_google_config(), "R1")

    assert result.access_token == "T2"
    form = dict(httpx.QueryParams(route.calls.last.request.content.decode()))
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "R1"
    assert "redirect_uri" not in form


@pytest.mark.asyncio
async def test_fetch_user_info_sends_bearer(respx_mock: MockRouter):
    route = respx_mock.get(USERINFO_URL).mock(
        return_value=httpx.Response(200, json={"sub": "1", "email": "a@example.com"})
    )

    data = await OAuthHttpClient().fetch_user_info(make_google_config(), "T1")

    assert data["sub"] == "1"
    assert route.calls.last.request.headers["authorization"] == "Bearer T1"


@pytest.mark.asyncio
async def test_fetch_user_info_error_carries_status(respx_mock: MockRouter):
    respx_mock.get(USERINFO_URL).mock(return_value=httpx.Response(401))

    with pytest.raises(ProfileFetchFailedError) as exc_info:
        await OAuthHttpClient().fetch_user_info(make_google_config(), "T1")

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_fetch_user_info_rejects_non_object(respx_mock: MockRouter):
    respx_mock.get(USERINFO_URL).mock(return_value=httpx.Response(200, json=["x"]))

    with pytest.raises(ProfileFetchFailedError, match="JSON object"):
        await OAuthHttpClient().fetch_user_info(make_google_config(), "T1")
