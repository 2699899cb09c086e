"""
Facebook Graph API Client
Builds the OAuth dialog URL, exchanges authorization codes for access tokens,
and issues authenticated GETs signed with appsecret_proof.
Pure request builder / response parser: no retries, throttling or caching.
"""

import hashlib
import hmac
import logging
import urllib.parse
from typing import Any, Optional
import httpx

logger = logging.getLogger(__name__)


class GraphAPIError(Exception):
    """A Graph API call failed. status_code is None for transport/decoding failures."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenExchangeError(GraphAPIError):
    """The authorization-code exchange did not yield an access token."""
    pass


def generate_appsecret_proof(access_token: str, app_secret: str) -> str:
    """Hex HMAC-SHA256 of the access token keyed by the app secret."""
    return hmac.new(
        app_secret.encode("utf-8"),
        access_token.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def build_authorization_url(
    dialog_base_url: str,
    api_version: str,
    app_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
) -> str:
    """OAuth dialog URL the user agent is sent to."""
    query = urllib.parse.urlencode({
        "client_id": app_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "response_type": "code",
        "state": state,
    }, safe=",")
    return f"{dialog_base_url.rstrip('/')}/{api_version}/dialog/oauth?{query}"


async def exchange_code_for_token(
    api_url: str,
    app_id: str,
    app_secret: str,
    redirect_uri: str,
    code: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Exchange an authorization code for a user access token.
    Raises TokenExchangeError on any failure (network, non-2xx, bad body).
    """
    params = {
        "client_id": app_id,
        "redirect_uri": redirect_uri,
        "client_secret": app_secret,
        "code": code,
    }
    try:
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.get(f"{api_url}/oauth/access_token", params=params)
    except httpx.HTTPError as e:
        raise TokenExchangeError(f"Token exchange failed: {e}") from e

    if not response.is_success:
        raise TokenExchangeError(
            f"Token exchange failed: {response.status_code} - {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    try:
        token_data = response.json()
    except ValueError as e:
        raise TokenExchangeError(
            f"Token exchange failed: malformed response body: {response.text[:200]}",
            status_code=response.status_code,
            body=response.text,
        ) from e

    access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
    if not access_token:
        raise TokenExchangeError(
            "Token exchange failed: response did not include an access_token",
            status_code=response.status_code,
            body=response.text,
        )

    logger.info(f"Exchanged authorization code for access token (app {app_id})")
    return access_token


class GraphAPIClient:
    """
    Authenticated Graph API client for one access token / app secret pair.
    Every call carries access_token and appsecret_proof as query parameters.
    """

    def __init__(
        self,
        api_url: str,
        access_token: str,
        app_secret: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.access_token = access_token
        self.app_secret = app_secret
        self.transport = transport

    @property
    def appsecret_proof(self) -> str:
        return generate_appsecret_proof(self.access_token, self.app_secret)

    def auth_params(self) -> dict[str, str]:
        return {
            "access_token": self.access_token,
            "appsecret_proof": self.appsecret_proof,
        }

    async def get(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET {api_url}/{endpoint} and return the decoded JSON body."""
        query = {**self.auth_params(), **(params or {})}
        url = f"{self.api_url}/{endpoint.lstrip('/')}"

        logger.info(f"Graph API call: GET {endpoint} with params: {sorted((params or {}).keys())}")

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(url, params=query)
        except httpx.HTTPError as e:
            logger.error(f"Graph API call failed: {endpoint} - {e}")
            raise GraphAPIError(f"API call failed: {e}") from e

        if not response.is_success:
            raise GraphAPIError(
                f"API call failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise GraphAPIError(
                f"API call failed: malformed response body from {endpoint}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def get_data(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> list[dict]:
        """GET an edge and return the objects in its `data` list (first page only)."""
        payload = await self.get(endpoint, params)
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            return []
        rows = [row for row in payload["data"] if isinstance(row, dict)]
        if len(rows) != len(payload["data"]):
            logger.warning(f"Dropped {len(payload['data']) - len(rows)} non-object rows from {endpoint}")
        return rows
