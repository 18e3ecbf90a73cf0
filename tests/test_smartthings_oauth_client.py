try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
from urllib.parse import parse_qs

import httpx
import pytest

from broker.clients.smartthings_auth import SmartThingsOAuthClient, encode_scopes
from broker.core.config import SmartThingsSettings
from broker.core.errors import UpstreamAuthError

TOKEN_URL = "https://auth.example.com/oauth/token"


def _settings(**overrides: str) -> SmartThingsSettings:
    values = {
        "ST_CLIENT_ID": "client id",
        "ST_CLIENT_SECRET": "s3cret",
        "ST_REDIRECT_URI": "https://broker.example.com/v1/callback",
        "ST_TOKEN_URL": TOKEN_URL,
        "ST_AUTHORIZATION_URL": "https://api.example.com/oauth/authorize",
    }
    values.update(overrides)
    return SmartThingsSettings(**values)


def _client(handler) -> SmartThingsOAuthClient:
    return SmartThingsOAuthClient(
        _settings(), timeout=1.0, transport=httpx.MockTransport(handler)
    )


def test_encode_scopes_keeps_colon_and_asterisk_literal() -> None:
    assert encode_scopes("r:devices:* x:devices:*") == "r:devices:*%20x:devices:*"
    assert encode_scopes("  r:locations:*\tw:scenes/x ") == "r:locations:*%20w:scenes%2Fx"


def test_build_authorization_url_orders_and_encodes_parameters() -> None:
    client = SmartThingsOAuthClient(_settings())

    url = client.build_authorization_url("abc123")

    assert url == (
        "https://api.example.com/oauth/authorize?response_type=code"
        "&client_id=client%20id"
        "&redirect_uri=https%3A%2F%2Fbroker.example.com%2Fv1%2Fcallback"
        "&scope=r:devices:*%20x:devices:*"
        "&state=abc123"
    )
    assert "+" not in url


def test_build_authorization_url_supports_scope_override_and_omission() -> None:
    client = SmartThingsOAuthClient(_settings())

    overridden = client.build_authorization_url("s", scopes="r:locations:*")
    omitted = client.build_authorization_url("s", include_scope=False)

    assert "scope=r:locations:*&" in overridden
    assert "scope=" not in omitted


def test_redirect_uri_defaults_to_public_base_url() -> None:
    settings = SmartThingsSettings(
        ST_CLIENT_ID="id",
        ST_CLIENT_SECRET="secret",
        ST_REDIRECT_URI=None,
        PUBLIC_BASE_URL="https://broker.example.com/",
    )

    assert SmartThingsOAuthClient(settings).redirect_uri == (
        "https://broker.example.com/v1/callback"
    )


@pytest.mark.asyncio
async def test_exchange_code_posts_form_with_basic_auth() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["content_type"] = request.headers["content-type"]
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(
            200,
            json={"access_token": "at", "refresh_token": "rt", "expires_in": 86399},
        )

    grant = await _client(handler).exchange_code(
        "abc123", "https://broker.example.com/v1/callback"
    )

    assert grant.access_token == "at"
    assert grant.refresh_token == "rt"
    assert grant.expires_in == 86399
    assert seen["url"] == TOKEN_URL
    expected_basic = base64.b64encode(b"client id:s3cret").decode()
    assert seen["auth"] == f"Basic {expected_basic}"
    assert seen["content_type"].startswith("application/x-www-form-urlencoded")
    assert seen["form"] == {
        "grant_type": ["authorization_code"],
        "code": ["abc123"],
        "client_id": ["client id"],
        "redirect_uri": ["https://broker.example.com/v1/callback"],
    }


@pytest.mark.asyncio
async def test_refresh_allows_missing_rotated_refresh_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["old-refresh"]
        return httpx.Response(200, json={"access_token": "new", "expires_in": "3600"})

    grant = await _client(handler).refresh("old-refresh")

    assert grant.access_token == "new"
    assert grant.refresh_token is None
    assert grant.expires_in == 3600


@pytest.mark.asyncio
async def test_non_success_status_raises_without_echoing_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "invalid_grant", "secret": "leak-me"})

    with pytest.raises(UpstreamAuthError) as excinfo:
        await _client(handler).refresh("refresh")

    assert excinfo.value.upstream_status == 401
    assert "leak-me" not in str(excinfo.value)
    assert "401" in excinfo.value.to_public_message()


@pytest.mark.asyncio
async def test_timeout_surfaces_as_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UpstreamAuthError) as excinfo:
        await _client(handler).exchange_code("code", "https://broker.example.com/cb")

    assert excinfo.value.upstream_status is None
    assert "timed out" in str(excinfo.value)


@pytest.mark.asyncio
async def test_exchange_requires_refresh_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "at", "expires_in": 60})

    with pytest.raises(UpstreamAuthError):
        await _client(handler).exchange_code("code", "https://broker.example.com/cb")


@pytest.mark.asyncio
async def test_non_json_body_raises_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(UpstreamAuthError):
        await _client(handler).refresh("refresh")
