"""
End-to-end tests through the HTTP API: credentials → OAuth redirect →
callback → account selection → .env download, plus campaign CSV export.
"""

import csv
import io
import urllib.parse
import pytest
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport

from adwizard.dependencies import get_graph_transport, get_session_store


@pytest.fixture
async def client(store, graph):
    from adwizard.main import app
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_graph_transport] = lambda: graph.transport
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def _stub_graph(graph):
    graph.add("/oauth/access_token", {"access_token": "T"})
    graph.add("/me/adaccounts", {"data": [
        {"id": "act_999", "name": "Main", "account_status": 1, "currency": "USD"},
    ]})
    graph.add("/me/businesses", {"data": []})


async def _authorize(client) -> str:
    """Submit credentials and follow the wizard to the OAuth dialog; returns the state."""
    response = await client.post("/api/wizard/credentials", json={"app_id": "123", "app_secret": "abc"})
    assert response.status_code == 200
    assert response.json()["step"] == "oauth"

    response = await client.get("/api/wizard/authorize")
    assert response.status_code == 302
    location = urllib.parse.urlparse(response.headers["location"])
    assert location.netloc == "www.facebook.com"
    return urllib.parse.parse_qs(location.query)["state"][0]


@pytest.mark.anyio
async def test_end_to_end_env_download(client, graph):
    _stub_graph(graph)

    with patch("adwizard.services.oauth_service.secrets.token_urlsafe", return_value="S1"):
        oauth_state = await _authorize(client)
    assert oauth_state == "S1"

    response = await client.get("/oauth-callback", params={"code": "XYZ", "state": "S1"})
    assert response.status_code == 303
    assert response.headers["location"] == "/"

    view = (await client.get("/api/wizard")).json()
    assert view["step"] == "accounts"
    assert view["has_access_token"] is True
    assert "access_token" not in view
    assert [a["id"] for a in view["ad_accounts"]] == ["act_999"]

    response = await client.post("/api/wizard/accounts/act_999/select")
    assert response.status_code == 200
    assert response.json()["step"] == "complete"

    response = await client.get("/api/wizard/env")
    assert response.status_code == 200
    assert 'filename=".env"' in response.headers["content-disposition"]
    assert "META_ACCESS_TOKEN=T" in response.text
    assert "META_AD_ACCOUNT_ID=999" in response.text


@pytest.mark.anyio
async def test_double_callback_exchanges_once(client, graph):
    _stub_graph(graph)
    oauth_state = await _authorize(client)

    for _ in range(2):
        response = await client.get("/oauth-callback", params={"code": "XYZ", "state": oauth_state})
        assert response.status_code == 303

    assert len(graph.calls_to("/oauth/access_token")) == 1
    assert (await client.get("/api/wizard")).json()["step"] == "accounts"


@pytest.mark.anyio
async def test_forged_state_is_rejected_without_exchange(client, graph):
    _stub_graph(graph)
    await _authorize(client)

    await client.get("/oauth-callback", params={"code": "XYZ", "state": "not-the-state"})

    view = (await client.get("/api/wizard")).json()
    assert view["step"] == "credentials"
    assert view["error"] == "State mismatch - possible CSRF attack"
    assert graph.calls_to("/oauth/access_token") == []


@pytest.mark.anyio
async def test_oauth_error_is_surfaced(client, graph):
    await _authorize(client)

    response = await client.get("/oauth-callback", params={"error": "access_denied"})
    assert response.status_code == 303

    view = (await client.get("/api/wizard")).json()
    assert view["step"] == "credentials"
    assert view["error"] == "OAuth error: access_denied"


@pytest.mark.anyio
async def test_missing_credentials_return_400(client, graph):
    response = await client.post("/api/wizard/credentials", json={"app_id": "123", "app_secret": ""})
    assert response.status_code == 400
    assert response.json()["detail"] == "Please enter both App ID and App Secret"


@pytest.mark.anyio
async def test_authorize_before_credentials_is_409(client):
    response = await client.get("/api/wizard/authorize")
    assert response.status_code == 409


@pytest.mark.anyio
async def test_sessions_are_isolated_by_cookie(store, graph):
    from adwizard.main import app
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_graph_transport] = lambda: graph.transport
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as alice, \
                AsyncClient(transport=transport, base_url="http://test") as bob:
            await alice.post("/api/wizard/credentials", json={"app_id": "123", "app_secret": "abc"})
            assert (await alice.get("/api/wizard")).json()["step"] == "oauth"
            assert (await bob.get("/api/wizard")).json()["step"] == "credentials"
    finally:
        app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_campaign_extraction_and_csv(client, graph):
    _stub_graph(graph)
    graph.add("/act_999/campaigns", {"data": [
        {"id": "c1", "name": "Spring, Sale", "status": "ACTIVE"},
        {"id": "c2", "name": "Dormant", "status": "PAUSED"},
    ]})
    graph.add("/act_999/insights", {"data": [
        {"campaign_id": "c1", "impressions": "100", "clicks": "7", "spend": "12.5"},
    ]})
    oauth_state = await _authorize(client)
    await client.get("/oauth-callback", params={"code": "XYZ", "state": oauth_state})

    response = await client.post("/api/wizard/accounts/act_999/extractor")
    assert response.json()["step"] == "extractor"

    response = await client.post("/api/campaigns/extract", params={"date_preset": "last_7d"})
    assert response.status_code == 200
    report = response.json()
    assert report["summary"] == {
        "campaign_count": 2,
        "total_spend": 12.5,
        "total_impressions": 100,
        "total_clicks": 7,
    }
    assert report["campaigns"][1]["impressions"] == 0

    response = await client.get("/api/campaigns/export.csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "campaign_data_last_7d_" in response.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert [r["name"] for r in rows] == ["Spring, Sale", "Dormant"]


@pytest.mark.anyio
async def test_bad_date_preset_is_400(client, graph):
    _stub_graph(graph)
    oauth_state = await _authorize(client)
    await client.get("/oauth-callback", params={"code": "XYZ", "state": oauth_state})
    await client.post("/api/wizard/accounts/act_999/extractor")

    response = await client.post("/api/campaigns/extract", params={"date_preset": "forever"})
    assert response.status_code == 400


@pytest.mark.anyio
async def test_campaigns_require_oauth(client):
    response = await client.get("/api/campaigns")
    assert response.status_code == 409


@pytest.mark.anyio
async def test_reset_starts_over(client, graph):
    _stub_graph(graph)
    oauth_state = await _authorize(client)
    await client.get("/oauth-callback", params={"code": "XYZ", "state": oauth_state})

    response = await client.post("/api/wizard/reset")

    assert response.status_code == 200
    view = response.json()
    assert view["step"] == "credentials"
    assert view["ad_accounts"] == []
    assert view["has_access_token"] is False
