"""
Tests for the Graph API client: appsecret_proof, authenticated GETs and the
authorization-code exchange.
"""

import urllib.parse
import httpx
import pytest

from adwizard.graph_client import (
    GraphAPIClient, GraphAPIError, TokenExchangeError,
    build_authorization_url, exchange_code_for_token, generate_appsecret_proof,
)

API_URL = "https://graph.facebook.com/v18.0"


def test_appsecret_proof_is_hmac_sha256_hex():
    # RFC 4231 test case 2: key "Jefe", data "what do ya want for nothing?"
    proof = generate_appsecret_proof("what do ya want for nothing?", "Jefe")
    assert proof == "5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"


def test_appsecret_proof_depends_on_secret():
    assert generate_appsecret_proof("token", "secret-a") != generate_appsecret_proof("token", "secret-b")


def test_authorization_url_carries_client_scope_and_state():
    url = build_authorization_url(
        "https://www.facebook.com", "v18.0", "123",
        "http://wizard.test/oauth-callback",
        "ads_management,ads_read,business_management", "S1",
    )
    parsed = urllib.parse.urlparse(url)
    query = urllib.parse.parse_qs(parsed.query)
    assert parsed.netloc == "www.facebook.com"
    assert parsed.path == "/v18.0/dialog/oauth"
    assert query["client_id"] == ["123"]
    assert query["redirect_uri"] == ["http://wizard.test/oauth-callback"]
    assert query["scope"] == ["ads_management,ads_read,business_management"]
    assert query["response_type"] == ["code"]
    assert query["state"] == ["S1"]


@pytest.mark.anyio
async def test_get_attaches_token_and_proof(graph):
    graph.add("/me/adaccounts", {"data": [{"id": "act_1"}]})
    client = GraphAPIClient(API_URL, "TOKEN", "SECRET", transport=graph.transport)

    data = await client.get_data("me/adaccounts", {"fields": "id,name"})

    assert data == [{"id": "act_1"}]
    params = graph.requests[0].url.params
    assert params["access_token"] == "TOKEN"
    assert params["appsecret_proof"] == generate_appsecret_proof("TOKEN", "SECRET")
    assert params["fields"] == "id,name"


@pytest.mark.anyio
async def test_non_success_status_surfaces_status_and_body(graph):
    graph.add("/me/adaccounts", status=400, text='{"error":{"message":"Invalid OAuth access token"}}')
    client = GraphAPIClient(API_URL, "TOKEN", "SECRET", transport=graph.transport)

    with pytest.raises(GraphAPIError) as exc_info:
        await client.get("me/adaccounts")

    assert exc_info.value.status_code == 400
    assert "Invalid OAuth access token" in exc_info.value.body
    assert str(exc_info.value).startswith("API call failed: 400 - ")


@pytest.mark.anyio
async def test_transport_error_is_wrapped(graph):
    graph.fail("/me/adaccounts", httpx.ConnectError("connection refused"))
    client = GraphAPIClient(API_URL, "TOKEN", "SECRET", transport=graph.transport)

    with pytest.raises(GraphAPIError) as exc_info:
        await client.get("me/adaccounts")
    assert exc_info.value.status_code is None


@pytest.mark.anyio
async def test_malformed_json_is_an_error(graph):
    graph.add("/me/adaccounts", text="<html>proxy error</html>")
    client = GraphAPIClient(API_URL, "TOKEN", "SECRET", transport=graph.transport)

    with pytest.raises(GraphAPIError, match="malformed"):
        await client.get("me/adaccounts")


@pytest.mark.anyio
async def test_get_data_without_data_key_is_empty(graph):
    graph.add("/me/businesses", {"paging": {}})
    client = GraphAPIClient(API_URL, "TOKEN", "SECRET", transport=graph.transport)
    assert await client.get_data("me/businesses") == []


@pytest.mark.anyio
async def test_get_data_drops_rows_that_are_not_objects(graph):
    graph.add("/me/adaccounts", {"data": ["act_1", {"id": "act_2"}, None]})
    client = GraphAPIClient(API_URL, "TOKEN", "SECRET", transport=graph.transport)
    assert await client.get_data("me/adaccounts") == [{"id": "act_2"}]


@pytest.mark.anyio
async def test_exchange_code_returns_access_token(graph):
    graph.add("/oauth/access_token", {"access_token": "T", "token_type": "bearer"})

    token = await exchange_code_for_token(
        API_URL, "123", "abc", "http://wizard.test/oauth-callback", "XYZ", transport=graph.transport,
    )

    assert token == "T"
    params = graph.requests[0].url.params
    assert params["client_id"] == "123"
    assert params["client_secret"] == "abc"
    assert params["code"] == "XYZ"
    assert params["redirect_uri"] == "http://wizard.test/oauth-callback"


@pytest.mark.anyio
async def test_exchange_code_non_success(graph):
    graph.add("/oauth/access_token", status=400, text='{"error":{"message":"This authorization code has been used."}}')

    with pytest.raises(TokenExchangeError) as exc_info:
        await exchange_code_for_token(API_URL, "123", "abc", "http://x/cb", "XYZ", transport=graph.transport)

    assert exc_info.value.status_code == 400
    assert "Token exchange failed: 400 - " in str(exc_info.value)
    assert "authorization code has been used" in str(exc_info.value)


@pytest.mark.anyio
async def test_exchange_code_without_token_in_body(graph):
    graph.add("/oauth/access_token", {"token_type": "bearer"})
    with pytest.raises(TokenExchangeError, match="access_token"):
        await exchange_code_for_token(API_URL, "123", "abc", "http://x/cb", "XYZ", transport=graph.transport)


@pytest.mark.anyio
async def test_exchange_code_network_failure(graph):
    graph.fail("/oauth/access_token", httpx.ConnectTimeout("timed out"))
    with pytest.raises(TokenExchangeError):
        await exchange_code_for_token(API_URL, "123", "abc", "http://x/cb", "XYZ", transport=graph.transport)
